"""
Units module - Protocol components that live as ledger units.

Each component keeps its books in its unit state and exposes:
- create_*_unit factories
- pure calculate_* helpers
- read-only queries (get_*)
- compute_* functions returning a PendingTransaction

All of them are re-exported here for convenience.
"""

# Liquidity pool
from .pool import (
    DEFAULT_MAX_UTILIZATION_BPS,
    DEFAULT_BASE_RATE_BPS,
    LenderPosition,
    PoolState,
    load_pool,
    create_pool_unit,
    calculate_share_bps,
    calculate_utilization_bps,
    calculate_interest_per_share,
    calculate_pending_interest,
    get_pool_state,
    get_available_liquidity,
    get_utilization_rate,
    get_lender_info,
    get_pending_interest,
    verify_pool_reconciliation,
    compute_deposit,
    compute_withdraw,
    compute_borrow,
    compute_repay,
)

# Credential registry
from .collateral import (
    ADVANCE_RATE_PCT,
    HISTORY_WINDOW,
    PaymentRecord,
    Credential,
    Valuation,
    create_registry_unit,
    calculate_lifetime_penalty,
    calculate_score,
    calculate_collateral_value,
    load_credential,
    get_valuation,
    get_collateral_value,
    get_owner_credentials,
    compute_mint,
    compute_stake,
    compute_unstake,
    compute_record_remittance,
    compute_record_missed_payment,
)

# Loan manager
from .loan_manager import (
    APR_TIERS,
    DEFAULT_RATE_BPS,
    DEFAULT_THRESHOLD_MISSED,
    LOAN_TRANSITIONS,
    LoanStatus,
    Loan,
    LoanBook,
    load_loan_book,
    create_loan_manager_unit,
    calculate_interest_rate,
    calculate_total_interest,
    calculate_monthly_payment,
    calculate_interest_portion,
    calculate_automatic_payment,
    split_payment,
    transition,
    get_loan,
    get_borrower_loans,
    get_defaulted_loans,
    compute_request_loan,
    compute_approve_loan,
    compute_make_payment,
    compute_automatic_repayment,
    compute_mark_payment_missed,
)

# Verifier
from .verifier import (
    VerificationStatus,
    VerificationRequest,
    create_verifier_unit,
    calculate_reliability_score,
    get_verification_request,
    get_verification_status,
    is_monitored,
    compute_request_verification,
    compute_submit_verification,
    compute_start_monitoring,
    compute_report_remittance,
    compute_report_missed_payment,
)
