"""
protocol.py - Executing entry points

Every function here takes the Ledger explicitly, computes a PendingTransaction
from read-only views, and commits it with Ledger.execute_or_raise(). Either
the whole call is applied or the ledger is unchanged and the specific
LedgerError is raised.

Typical wiring:

    ledger = Ledger("main", verbose=False)
    ledger.register_unit(asset("USDC", "USD Coin"))
    d = deploy(ledger, "USDC", owner="admin", operators=("op",))

    deposit(ledger, d.pool, "lender", 1_000_000)
    token = submit_verification(ledger, d.verifier, "op", "borrower", 5_000, 24, 120_000, history)
    loan_id = request_loan(ledger, d.loan_manager, "borrower", token, 100_000, 12)
    approve_loan(ledger, d.loan_manager, loan_id)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

from .core import (
    Transaction, TransactionOrigin, OriginType,
    AlreadyInitialized, InvalidState,
)
from .ledger import Ledger
from .staging import StagedView
from .units.pool import (
    DEFAULT_BASE_RATE_BPS, DEFAULT_MAX_UTILIZATION_BPS,
    create_pool_unit, compute_deposit, compute_withdraw, compute_borrow, compute_repay,
)
from .units.collateral import (
    PaymentRecord, create_registry_unit, compute_mint,
)
from .units.loan_manager import (
    create_loan_manager_unit, load_loan_book,
    compute_request_loan, compute_approve_loan, compute_make_payment,
    compute_automatic_repayment, compute_mark_payment_missed,
)
from .units.verifier import (
    create_verifier_unit, compute_start_monitoring,
    compute_request_verification, compute_submit_verification,
    compute_report_remittance, compute_report_missed_payment,
)


POOL_SYMBOL = "POOL"
POOL_WALLET = "pool"
LOAN_MANAGER_SYMBOL = "LOANS"
REGISTRY_SYMBOL = "CRED"
VERIFIER_SYMBOL = "ORACLE"


def _event_value(tx: Transaction, name: str, key: str) -> Any:
    for ev in tx.events:
        if ev.name == name:
            return ev.data[key]
    raise InvalidState(f"transaction {tx.exec_id} emitted no {name} event")


def _require_new(ledger: Ledger, symbol: str) -> None:
    if symbol in ledger.list_units():
        raise AlreadyInitialized(f"{symbol} is already initialized")


# ============================================================================
# DEPLOYMENT
# ============================================================================

def initialize_pool(
    ledger: Ledger,
    loan_manager: str,
    asset_symbol: str,
    base_rate_bps: int = DEFAULT_BASE_RATE_BPS,
    symbol: str = POOL_SYMBOL,
    wallet: str = POOL_WALLET,
    max_utilization_bps: int = DEFAULT_MAX_UTILIZATION_BPS,
) -> str:
    """
    Register a pool lending `asset_symbol`, with all totals zeroed.

    Raises:
        AlreadyInitialized: If `symbol` is already registered
    """
    _require_new(ledger, symbol)
    unit = create_pool_unit(
        symbol, f"{asset_symbol} lending pool", asset_symbol, wallet,
        loan_managers=(loan_manager,),
        base_rate_bps=base_rate_bps,
        max_utilization_bps=max_utilization_bps,
    )
    if not ledger.is_registered(wallet):
        ledger.register_wallet(wallet)
    ledger.register_unit(unit)
    return symbol


def initialize_registry(
    ledger: Ledger,
    owner: str,
    loan_managers: Tuple[str, ...] = (),
    oracles: Tuple[str, ...] = (),
    symbol: str = REGISTRY_SYMBOL,
) -> str:
    _require_new(ledger, symbol)
    ledger.register_unit(create_registry_unit(
        symbol, "Remittance credentials", owner, loan_managers, oracles,
    ))
    return symbol


def initialize_loan_manager(
    ledger: Ledger,
    pool: str,
    registry: str,
    verifier: Optional[str] = None,
    symbol: str = LOAN_MANAGER_SYMBOL,
    enforce_advance_rate: bool = False,
) -> str:
    """
    Register a loan manager. When `verifier` is given it may drive
    repayments and misses, and monitors every approved loan.
    """
    _require_new(ledger, symbol)
    ledger.register_unit(create_loan_manager_unit(
        symbol, "Loan manager", pool, registry,
        verifiers=(verifier,) if verifier else (),
        monitor=verifier,
        enforce_advance_rate=enforce_advance_rate,
    ))
    return symbol


def initialize_verifier(
    ledger: Ledger,
    registry: str,
    loan_manager: str,
    operators: Tuple[str, ...] = (),
    symbol: str = VERIFIER_SYMBOL,
) -> str:
    _require_new(ledger, symbol)
    ledger.register_unit(create_verifier_unit(
        symbol, "Remittance verifier", registry, loan_manager, operators,
    ))
    return symbol


@dataclass(frozen=True, slots=True)
class Deployment:
    pool: str
    loan_manager: str
    registry: str
    verifier: str


def deploy(
    ledger: Ledger,
    asset_symbol: str,
    owner: str,
    operators: Tuple[str, ...] = (),
    base_rate_bps: int = DEFAULT_BASE_RATE_BPS,
    enforce_advance_rate: bool = False,
) -> Deployment:
    """
    Register all four components with their allow-lists wired to each other.

    The asset unit must already be registered.
    """
    initialize_pool(ledger, LOAN_MANAGER_SYMBOL, asset_symbol, base_rate_bps)
    initialize_registry(
        ledger, owner,
        loan_managers=(LOAN_MANAGER_SYMBOL,),
        oracles=(VERIFIER_SYMBOL,),
    )
    initialize_loan_manager(
        ledger, POOL_SYMBOL, REGISTRY_SYMBOL, VERIFIER_SYMBOL,
        enforce_advance_rate=enforce_advance_rate,
    )
    initialize_verifier(ledger, REGISTRY_SYMBOL, LOAN_MANAGER_SYMBOL, operators)
    return Deployment(POOL_SYMBOL, LOAN_MANAGER_SYMBOL, REGISTRY_SYMBOL, VERIFIER_SYMBOL)


# ============================================================================
# POOL
# ============================================================================

def deposit(ledger: Ledger, pool: str, lender: str, amount: int) -> Transaction:
    return ledger.execute_or_raise(compute_deposit(ledger, pool, lender, amount))


def withdraw(ledger: Ledger, pool: str, lender: str, amount: int) -> Transaction:
    return ledger.execute_or_raise(compute_withdraw(ledger, pool, lender, amount))


def borrow(ledger: Ledger, pool: str, caller: str, amount: int, borrower: str, loan_id: int) -> Transaction:
    return ledger.execute_or_raise(compute_borrow(ledger, pool, caller, amount, borrower, loan_id))


def repay(ledger: Ledger, pool: str, caller: str, principal: int, interest: int, loan_id: int) -> Transaction:
    return ledger.execute_or_raise(compute_repay(ledger, pool, caller, principal, interest, loan_id))


# ============================================================================
# CREDENTIALS
# ============================================================================

def mint_credential(
    ledger: Ledger,
    registry: str,
    caller: str,
    owner: str,
    monthly_amount: int,
    reliability_score: int,
    history_months: int,
    total_sent: int,
    payment_history: Iterable[PaymentRecord] = (),
) -> int:
    """Mint a credential and return its token id."""
    tx = ledger.execute_or_raise(compute_mint(
        ledger, registry, caller, owner,
        monthly_amount, reliability_score, history_months, total_sent, payment_history,
    ))
    return _event_value(tx, "collateral_minted", "token_id")


# ============================================================================
# LOANS
# ============================================================================

def request_loan(
    ledger: Ledger,
    manager: str,
    borrower: str,
    collateral_id: int,
    amount: int,
    duration_months: int,
) -> int:
    """Record a Pending loan and return its id."""
    tx = ledger.execute_or_raise(compute_request_loan(
        ledger, manager, borrower, collateral_id, amount, duration_months,
    ))
    return _event_value(tx, "loan_requested", "loan_id")


def approve_loan(ledger: Ledger, manager: str, loan_id: int) -> Transaction:
    """
    Activate a loan and, when the manager has a monitoring verifier, start
    monitoring it in the same transaction.
    """
    book = load_loan_book(ledger, manager)
    staged = StagedView(ledger)
    staged.stage(compute_approve_loan(staged, manager, loan_id))
    if book.monitor is not None:
        staged.stage(compute_start_monitoring(
            staged, book.monitor, manager, loan_id, book.get(loan_id).collateral_id,
        ))
    origin = TransactionOrigin(OriginType.USER_ACTION, manager, manager, "approve_loan")
    return ledger.execute_or_raise(staged.build(origin))


def make_payment(ledger: Ledger, manager: str, loan_id: int, amount: int) -> Transaction:
    return ledger.execute_or_raise(compute_make_payment(ledger, manager, loan_id, amount))


def process_automatic_repayment(
    ledger: Ledger,
    manager: str,
    caller: str,
    loan_id: int,
    remittance_amount: int,
) -> int:
    """Apply a remittance to a loan; returns the leftover."""
    pending, leftover = compute_automatic_repayment(ledger, manager, caller, loan_id, remittance_amount)
    ledger.execute_or_raise(pending)
    return leftover


def mark_payment_missed(ledger: Ledger, manager: str, caller: str, loan_id: int) -> Transaction:
    return ledger.execute_or_raise(compute_mark_payment_missed(ledger, manager, caller, loan_id))


# ============================================================================
# VERIFICATION
# ============================================================================

def request_verification(
    ledger: Ledger,
    verifier: str,
    user: str,
    provider: str,
    account_id: str,
) -> Transaction:
    return ledger.execute_or_raise(compute_request_verification(
        ledger, verifier, user, provider, account_id,
    ))


def submit_verification(
    ledger: Ledger,
    verifier: str,
    operator: str,
    user: str,
    monthly_amount: int,
    history_months: int,
    total_sent: int,
    payment_history: Iterable[PaymentRecord] = (),
) -> int:
    """Confirm a pending request; returns the minted credential's token id."""
    tx = ledger.execute_or_raise(compute_submit_verification(
        ledger, verifier, operator, user,
        monthly_amount, history_months, total_sent, payment_history,
    ))
    return _event_value(tx, "verification_complete", "token_id")


def start_monitoring_loan(
    ledger: Ledger,
    verifier: str,
    caller: str,
    loan_id: int,
    collateral_id: int,
) -> Transaction:
    return ledger.execute_or_raise(compute_start_monitoring(
        ledger, verifier, caller, loan_id, collateral_id,
    ))


def report_remittance(
    ledger: Ledger,
    verifier: str,
    operator: str,
    collateral_id: int,
    amount: int,
    loan_id: int,
) -> int:
    """Record a remittance and repay from it; returns the leftover."""
    pending, leftover = compute_report_remittance(
        ledger, verifier, operator, collateral_id, amount, loan_id,
    )
    ledger.execute_or_raise(pending)
    return leftover


def report_missed_payment(
    ledger: Ledger,
    verifier: str,
    operator: str,
    loan_id: int,
    collateral_id: int,
) -> Transaction:
    return ledger.execute_or_raise(compute_report_missed_payment(
        ledger, verifier, operator, loan_id, collateral_id,
    ))
