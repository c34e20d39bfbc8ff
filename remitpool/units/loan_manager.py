"""
loan_manager.py - Loan Lifecycle Manager

Owns the loan book and the loan state machine:

    Pending --approve--> Active --balance reaches 0--> Repaid
                           |
                           +--second missed payment--> Defaulted

Repaid and Defaulted are terminal. Every status change goes through
transition(), which checks LOAN_TRANSITIONS.

A loan is priced once at request time from the collateral's reliability
score and never repriced:

    apr_bps         = tier(score)                      (1500 / 2000 / 3000 / 4000)
    total_interest  = principal * apr_bps * months / (12 * 10000)
    monthly_payment = (principal + total_interest) / months

Each payment is split against the outstanding balance:

    interest_portion  = outstanding * (apr_bps / 12) / 10000
    principal_portion = amount - interest_portion       (capped at outstanding)

Approving and paying span the credential registry and the pool. The compute
functions stage each step on a StagedView and return one PendingTransaction.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    BPS_DENOMINATOR, PAYMENT_INTERVAL, TX_NONCE_KEY, UNIT_TYPE_LOAN_MANAGER,
    InvalidAmount, InvalidState, NotFound, OwnershipMismatch, Unauthorized,
    build_transaction, component_unit, emit, require_amount, to_quantity,
)
from ..staging import StagedView
from .collateral import get_valuation, calculate_collateral_value, compute_stake, compute_unstake
from .pool import load_pool, compute_borrow, compute_repay


# (minimum score, apr in bps), highest tier first
APR_TIERS: Tuple[Tuple[int, int], ...] = (
    (90, 1500),
    (80, 2000),
    (70, 3000),
)
DEFAULT_RATE_BPS = 4000
DEFAULT_THRESHOLD_MISSED = 2
MONTHS_PER_YEAR = 12


class LoanStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    REPAID = "Repaid"
    DEFAULTED = "Defaulted"


LOAN_TRANSITIONS: Dict[LoanStatus, FrozenSet[LoanStatus]] = {
    LoanStatus.PENDING: frozenset({LoanStatus.ACTIVE}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.REPAID, LoanStatus.DEFAULTED}),
    LoanStatus.REPAID: frozenset(),
    LoanStatus.DEFAULTED: frozenset(),
}


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Loan:
    """Immutable snapshot of one loan record."""
    loan_id: int
    borrower: str
    collateral_id: int
    principal: int
    outstanding_balance: int
    apr_bps: int
    duration_months: int
    monthly_payment: int
    total_interest: int
    start_time: datetime
    next_payment_due: datetime
    status: LoanStatus = LoanStatus.PENDING
    total_repaid: int = 0
    payments_made: int = 0
    payments_missed: int = 0
    defaulted_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return not LOAN_TRANSITIONS[self.status]

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Loan:
        return cls(
            loan_id=raw['loan_id'],
            borrower=raw['borrower'],
            collateral_id=raw['collateral_id'],
            principal=raw['principal'],
            outstanding_balance=raw['outstanding_balance'],
            apr_bps=raw['apr_bps'],
            duration_months=raw['duration_months'],
            monthly_payment=raw['monthly_payment'],
            total_interest=raw['total_interest'],
            start_time=raw['start_time'],
            next_payment_due=raw['next_payment_due'],
            status=LoanStatus(raw['status']),
            total_repaid=raw.get('total_repaid', 0),
            payments_made=raw.get('payments_made', 0),
            payments_missed=raw.get('payments_missed', 0),
            defaulted_at=raw.get('defaulted_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'loan_id': self.loan_id,
            'borrower': self.borrower,
            'collateral_id': self.collateral_id,
            'principal': self.principal,
            'outstanding_balance': self.outstanding_balance,
            'apr_bps': self.apr_bps,
            'duration_months': self.duration_months,
            'monthly_payment': self.monthly_payment,
            'total_interest': self.total_interest,
            'start_time': self.start_time,
            'next_payment_due': self.next_payment_due,
            'status': self.status.value,
            'total_repaid': self.total_repaid,
            'payments_made': self.payments_made,
            'payments_missed': self.payments_missed,
            'defaulted_at': self.defaulted_at,
        }


@dataclass(frozen=True, slots=True)
class LoanBook:
    """
    Immutable snapshot of a loan manager's configuration and loan book.

    pool and registry name the units this manager draws funds from and
    stakes collateral in. verifiers may trigger automatic repayment and
    report missed payments; monitor is the verifier that watches new loans.
    """
    pool: str
    registry: str
    verifiers: Tuple[str, ...] = ()
    monitor: Optional[str] = None
    enforce_advance_rate: bool = False
    next_loan_id: int = 1
    loans: Mapping[int, Loan] = field(default_factory=dict)
    borrower_loans: Mapping[str, Tuple[int, ...]] = field(default_factory=dict)
    tx_nonce: int = 0   # advanced by build_transaction

    def get(self, loan_id: int) -> Loan:
        loan = self.loans.get(loan_id)
        if loan is None:
            raise NotFound(f"loan {loan_id} not found")
        return loan


def load_loan_book(view: LedgerView, symbol: str) -> LoanBook:
    raw = view.get_unit_state(symbol)
    return LoanBook(
        pool=raw['pool'],
        registry=raw['registry'],
        verifiers=tuple(raw.get('verifiers', ())),
        monitor=raw.get('monitor'),
        enforce_advance_rate=raw.get('enforce_advance_rate', False),
        next_loan_id=raw.get('next_loan_id', 1),
        loans={loan_id: Loan.from_dict(l) for loan_id, l in raw.get('loans', {}).items()},
        borrower_loans={b: tuple(ids) for b, ids in raw.get('borrower_loans', {}).items()},
        tx_nonce=raw.get(TX_NONCE_KEY, 0),
    )


def to_state_dict(book: LoanBook) -> Dict[str, Any]:
    return {
        'pool': book.pool,
        'registry': book.registry,
        'verifiers': list(book.verifiers),
        'monitor': book.monitor,
        'enforce_advance_rate': book.enforce_advance_rate,
        'next_loan_id': book.next_loan_id,
        'loans': {loan_id: loan.to_dict() for loan_id, loan in book.loans.items()},
        'borrower_loans': {b: list(ids) for b, ids in book.borrower_loans.items()},
        TX_NONCE_KEY: book.tx_nonce,
    }


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_interest_rate(reliability_score: int) -> int:
    """Annual rate in basis points for a collateral score."""
    for min_score, rate_bps in APR_TIERS:
        if reliability_score >= min_score:
            return rate_bps
    return DEFAULT_RATE_BPS


def calculate_total_interest(principal: int, apr_bps: int, months: int) -> int:
    return principal * apr_bps * months // (MONTHS_PER_YEAR * BPS_DENOMINATOR)


def calculate_monthly_payment(principal: int, apr_bps: int, months: int) -> int:
    """Flat schedule: principal plus simple interest, spread evenly (truncated)."""
    total = principal + calculate_total_interest(principal, apr_bps, months)
    return total // months


def calculate_interest_portion(outstanding: int, apr_bps: int) -> int:
    """One month of interest on the outstanding balance."""
    return outstanding * (apr_bps // MONTHS_PER_YEAR) // BPS_DENOMINATOR


def split_payment(amount: int, outstanding: int, apr_bps: int) -> Tuple[int, int]:
    """
    Split a payment into (principal_portion, interest_portion).

    Interest is credited first, up to the amount paid. Principal is capped
    at the outstanding balance; anything above the payoff amount is booked
    as interest so the pool's books always match the cash it received.
    """
    interest = min(calculate_interest_portion(outstanding, apr_bps), amount)
    principal = min(amount - interest, outstanding)
    return principal, amount - principal


def transition(loan: Loan, new_status: LoanStatus) -> Loan:
    """
    Raises:
        InvalidState: If LOAN_TRANSITIONS does not allow the change
    """
    if new_status not in LOAN_TRANSITIONS[loan.status]:
        raise InvalidState(
            f"loan {loan.loan_id} cannot move from {loan.status.value} to {new_status.value}"
        )
    return replace(loan, status=new_status)


# ============================================================================
# UNIT CREATION AND QUERIES
# ============================================================================

def create_loan_manager_unit(
    symbol: str,
    name: str,
    pool: str,
    registry: str,
    verifiers: Tuple[str, ...] = (),
    monitor: Optional[str] = None,
    enforce_advance_rate: bool = False,
) -> Unit:
    """
    Create an empty loan manager.

    Args:
        symbol: Manager unit symbol (e.g., "LOANS")
        name: Human-readable name
        pool: Pool unit to borrow from and repay to
        registry: Credential registry holding collateral
        verifiers: Verifier symbols allowed to drive repayments and misses
        monitor: Verifier that starts monitoring each approved loan
        enforce_advance_rate: Reject requests above the collateral's appraised value
    """
    book = LoanBook(
        pool=pool,
        registry=registry,
        verifiers=tuple(verifiers),
        monitor=monitor,
        enforce_advance_rate=enforce_advance_rate,
    )
    return component_unit(symbol, name, UNIT_TYPE_LOAN_MANAGER, to_state_dict(book))


def get_loan(view: LedgerView, manager: str, loan_id: int) -> Loan:
    return load_loan_book(view, manager).get(loan_id)


def get_borrower_loans(view: LedgerView, manager: str, borrower: str) -> List[Loan]:
    book = load_loan_book(view, manager)
    return [book.loans[loan_id] for loan_id in book.borrower_loans.get(borrower, ())]


def get_defaulted_loans(view: LedgerView, manager: str) -> List[Loan]:
    book = load_loan_book(view, manager)
    return [
        loan for _, loan in sorted(book.loans.items())
        if loan.status == LoanStatus.DEFAULTED
    ]


def _store_loan(book: LoanBook, loan: Loan, **changes: Any) -> LoanBook:
    return replace(book, loans={**book.loans, loan.loan_id: loan}, **changes)


def _book_change(manager: str, old: LoanBook, new: LoanBook) -> List[UnitStateChange]:
    return [UnitStateChange(manager, to_state_dict(old), to_state_dict(new))]


def _require_verifier(book: LoanBook, caller: str) -> None:
    if caller not in book.verifiers:
        raise Unauthorized(f"{caller} is not a registered verifier")


# ============================================================================
# COMPUTE FUNCTIONS
# ============================================================================

def compute_request_loan(
    view: LedgerView,
    manager: str,
    borrower: str,
    collateral_id: int,
    amount: int,
    duration_months: int,
) -> PendingTransaction:
    """
    Record a Pending loan priced from the collateral's score.

    The new loan's id is the book's next_loan_id before the call.

    Raises:
        InvalidAmount: If amount or duration_months is not positive, or the
                       manager enforces the advance rate and amount exceeds
                       the collateral's appraised value, or the
                       monthly payment truncates to zero
        NotFound: If the credential does not exist
        OwnershipMismatch: If the credential is not owned by borrower
    """
    amount = require_amount(amount)
    duration_months = require_amount(duration_months, "duration_months")

    book = load_loan_book(view, manager)
    valuation = get_valuation(view, book.registry, collateral_id)
    if valuation.owner != borrower:
        raise OwnershipMismatch(f"credential {collateral_id} is not owned by {borrower}")

    if book.enforce_advance_rate:
        limit = calculate_collateral_value(
            valuation.monthly_amount, duration_months, valuation.reliability_score
        )
        if amount > limit:
            raise InvalidAmount(f"amount {amount} exceeds collateral value {limit}")

    apr_bps = calculate_interest_rate(valuation.reliability_score)
    monthly_payment = calculate_monthly_payment(amount, apr_bps, duration_months)
    if monthly_payment == 0:
        raise InvalidAmount(f"amount {amount} over {duration_months} months gives no monthly payment")
    now = view.current_time
    loan_id = book.next_loan_id
    loan = Loan(
        loan_id=loan_id,
        borrower=borrower,
        collateral_id=collateral_id,
        principal=amount,
        outstanding_balance=amount,
        apr_bps=apr_bps,
        duration_months=duration_months,
        monthly_payment=monthly_payment,
        total_interest=calculate_total_interest(amount, apr_bps, duration_months),
        start_time=now,
        next_payment_due=now + PAYMENT_INTERVAL,
    )
    new_book = _store_loan(
        book, loan,
        next_loan_id=loan_id + 1,
        borrower_loans={
            **book.borrower_loans,
            borrower: book.borrower_loans.get(borrower, ()) + (loan_id,),
        },
    )
    origin = TransactionOrigin(OriginType.USER_ACTION, borrower, manager, "request_loan")
    events = [emit("loan_requested", manager, borrower=borrower, loan_id=loan_id)]
    return build_transaction(view, [], _book_change(manager, book, new_book), origin, events)


def compute_approve_loan(view: LedgerView, manager: str, loan_id: int) -> PendingTransaction:
    """
    Activate a Pending loan: stake its collateral and disburse the principal.

    Raises:
        NotFound: If the loan does not exist
        InvalidState: If the loan is not Pending
        AlreadyStaked: If the collateral is already locked
        InsufficientLiquidity, MaxUtilizationExceeded: From the pool
    """
    staged = StagedView(view)
    book = load_loan_book(staged, manager)
    loan = book.get(loan_id)
    active = transition(loan, LoanStatus.ACTIVE)

    staged.stage(compute_stake(staged, book.registry, manager, loan.collateral_id, loan_id))
    staged.stage(compute_borrow(staged, book.pool, manager, loan.principal, loan.borrower, loan_id))
    staged.stage(build_transaction(
        staged, [], _book_change(manager, book, _store_loan(book, active)),
        events=[emit("loan_approved", manager, loan_id=loan_id)],
    ))
    return staged.build(TransactionOrigin(OriginType.USER_ACTION, manager, manager, "approve_loan"))


def compute_make_payment(
    view: LedgerView,
    manager: str,
    loan_id: int,
    amount: int,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Take a payment from the borrower and book it against the loan and pool.

    A payment that clears the outstanding balance marks the loan Repaid and
    releases its collateral.

    Raises:
        InvalidAmount: If amount <= 0
        NotFound: If the loan does not exist
        InvalidState: If the loan is not Active
    """
    amount = require_amount(amount)
    staged = StagedView(view)
    book = load_loan_book(staged, manager)
    loan = book.get(loan_id)
    if loan.status != LoanStatus.ACTIVE:
        raise InvalidState(f"loan {loan_id} is {loan.status.value}, not Active")

    principal_part, interest_part = split_payment(amount, loan.outstanding_balance, loan.apr_bps)
    outstanding = loan.outstanding_balance - principal_part
    updated = replace(
        loan,
        outstanding_balance=outstanding,
        total_repaid=loan.total_repaid + amount,
        payments_made=loan.payments_made + 1,
        next_payment_due=loan.next_payment_due + PAYMENT_INTERVAL,
    )
    if outstanding <= 0:
        updated = transition(updated, LoanStatus.REPAID)

    pool = load_pool(staged, book.pool)
    moves = [Move(to_quantity(amount), pool.asset, loan.borrower, pool.wallet, f"loan_{loan_id}")]
    staged.stage(build_transaction(
        staged, moves, _book_change(manager, book, _store_loan(book, updated)),
        events=[emit("payment_made", manager, loan_id=loan_id, amount=amount)],
    ))
    if updated.status == LoanStatus.REPAID:
        staged.stage(compute_unstake(staged, book.registry, manager, loan.collateral_id))
    staged.stage(compute_repay(staged, book.pool, manager, principal_part, interest_part, loan_id))

    if origin is None:
        origin = TransactionOrigin(OriginType.USER_ACTION, loan.borrower, manager, "make_payment")
    return staged.build(origin)


def calculate_automatic_payment(remittance_amount: int, loan: Loan) -> int:
    """
    Portion of a remittance applied to the loan.

    At most one monthly installment, and never more than it takes to clear
    the loan (outstanding balance plus this month's interest).
    """
    payoff = loan.outstanding_balance + calculate_interest_portion(
        loan.outstanding_balance, loan.apr_bps
    )
    return min(remittance_amount, loan.monthly_payment, payoff)


def compute_automatic_repayment(
    view: LedgerView,
    manager: str,
    caller: str,
    loan_id: int,
    remittance_amount: int,
) -> Tuple[PendingTransaction, int]:
    """
    Apply a detected remittance to a loan on a verifier's behalf.

    Returns:
        (pending transaction, leftover) where leftover is the part of the
        remittance not applied to the loan

    Raises:
        Unauthorized: If caller is not a registered verifier
        InvalidAmount: If remittance_amount <= 0
        NotFound, InvalidState: As make_payment
    """
    book = load_loan_book(view, manager)
    _require_verifier(book, caller)
    remittance_amount = require_amount(remittance_amount, "remittance_amount")
    loan = book.get(loan_id)

    payment = calculate_automatic_payment(remittance_amount, loan)
    origin = TransactionOrigin(OriginType.ORACLE, caller, manager, "automatic_repayment")
    pending = compute_make_payment(view, manager, loan_id, payment, origin)
    return pending, remittance_amount - payment


def compute_mark_payment_missed(
    view: LedgerView,
    manager: str,
    caller: str,
    loan_id: int,
) -> PendingTransaction:
    """
    Count a missed payment; the DEFAULT_THRESHOLD_MISSED-th miss defaults the loan.

    A defaulted loan keeps its collateral staked. The loan_defaulted event
    carries what a recovery process needs.

    Raises:
        Unauthorized: If caller is not a registered verifier
        NotFound: If the loan does not exist
        InvalidState: If the loan is not Active
    """
    book = load_loan_book(view, manager)
    _require_verifier(book, caller)
    loan = book.get(loan_id)
    if loan.status != LoanStatus.ACTIVE:
        raise InvalidState(f"loan {loan_id} is {loan.status.value}, not Active")

    missed = loan.payments_missed + 1
    updated = replace(loan, payments_missed=missed)
    events = [emit("payment_missed", manager, loan_id=loan_id, count=missed)]
    if missed >= DEFAULT_THRESHOLD_MISSED:
        updated = replace(transition(updated, LoanStatus.DEFAULTED), defaulted_at=view.current_time)
        events.append(emit(
            "loan_defaulted", manager,
            loan_id=loan_id,
            borrower=loan.borrower,
            collateral_id=loan.collateral_id,
            outstanding=loan.outstanding_balance,
        ))

    origin = TransactionOrigin(OriginType.ORACLE, caller, manager, "mark_payment_missed")
    changes = _book_change(manager, book, _store_loan(book, updated))
    return build_transaction(view, [], changes, origin, events)
