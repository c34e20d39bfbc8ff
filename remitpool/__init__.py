"""
remitpool - Pooled lending against remittance-history credentials

Lenders supply a fungible asset to a shared pool; borrowers draw against it
by pledging a scored remittance credential; interest flows back to lenders
pro-rata as loans are repaid. Every component keeps its books as unit state
in one double-entry Ledger, so each entry point commits atomically.

Usage:
    from remitpool import Ledger, asset, build_transaction, Move, SYSTEM_WALLET
    from remitpool import protocol

    ledger = Ledger("main", verbose=False)
    ledger.register_unit(asset("USDC", "USD Coin"))
    for wallet in ("lender", "borrower", "admin", "op"):
        ledger.register_wallet(wallet)

    # Fund the lender via SYSTEM_WALLET (issuance)
    ledger.execute(build_transaction(ledger, [
        Move(Decimal(1_000_000), "USDC", SYSTEM_WALLET, "lender", "issuance")
    ]))

    d = protocol.deploy(ledger, "USDC", owner="admin", operators=("op",))
    protocol.deposit(ledger, d.pool, "lender", 1_000_000)
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    ProtocolEvent,
    TransactionOrigin,
    OriginType,
    build_transaction,
    emit,
    require_amount,
    Unit,
    UnitStateChange,
    ExecuteResult,
    asset,
    component_unit,
    SYSTEM_WALLET,
    BPS_DENOMINATOR,
    INTEREST_SCALE,
    PAYMENT_INTERVAL,
    I128_MAX,
    I128_MIN,
    UNIT_TYPE_CASH,
    UNIT_TYPE_LENDING_POOL,
    UNIT_TYPE_LOAN_MANAGER,
    UNIT_TYPE_CREDENTIAL_REGISTRY,
    UNIT_TYPE_VERIFIER,
)

# Errors
from .core import (
    LedgerError,
    InvalidAmount,
    InsufficientBalance,
    InsufficientLiquidity,
    MaxUtilizationExceeded,
    Unauthorized,
    InvalidState,
    NotFound,
    OwnershipMismatch,
    AlreadyInitialized,
    AlreadyStaked,
    NotStaked,
    InsufficientFunds,
    BalanceConstraintViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    StaleState,
)

# Ledger
from .ledger import Ledger
from .staging import StagedView

# Components
from .units import (
    LenderPosition,
    PoolState,
    PaymentRecord,
    Credential,
    Valuation,
    LoanStatus,
    Loan,
    VerificationStatus,
    get_pool_state,
    get_available_liquidity,
    get_utilization_rate,
    get_lender_info,
    get_pending_interest,
    verify_pool_reconciliation,
    get_valuation,
    get_collateral_value,
    get_loan,
    get_borrower_loans,
    get_defaulted_loans,
    get_verification_status,
)

from . import protocol
from .protocol import Deployment, deploy

__version__ = "0.1.0"
