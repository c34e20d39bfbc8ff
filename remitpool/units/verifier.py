"""
verifier.py - Remittance Verification Oracle

The verifier is the bridge between off-ledger remittance providers and the
protocol. Authorized operators:

    - confirm a user's remittance history, which mints a credential;
    - report remittances on monitored loans, which updates the credential
      and pays the loan's installment automatically;
    - report missed payments, which lowers the credential's score and
      counts toward default.

The verifier acts on the registry and loan manager under its own symbol,
so both must list it (registry: oracles, manager: verifiers).
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from ..core import (
    LedgerView, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType, UNIT_TYPE_VERIFIER,
    InvalidState, NotFound, Unauthorized,
    build_transaction, component_unit, emit, require_amount,
)
from ..staging import StagedView
from .collateral import (
    PaymentRecord, compute_mint, compute_record_remittance, compute_record_missed_payment,
)
from .loan_manager import compute_automatic_repayment, compute_mark_payment_missed


class VerificationStatus(str, Enum):
    PENDING = "Pending"
    VERIFIED = "Verified"
    FAILED = "Failed"


@dataclass(frozen=True, slots=True)
class VerificationRequest:
    user: str
    provider: str
    account_id: str
    requested_at: datetime
    status: VerificationStatus = VerificationStatus.PENDING
    token_id: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> VerificationRequest:
        return cls(
            user=raw['user'],
            provider=raw['provider'],
            account_id=raw['account_id'],
            requested_at=raw['requested_at'],
            status=VerificationStatus(raw['status']),
            token_id=raw.get('token_id'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user': self.user,
            'provider': self.provider,
            'account_id': self.account_id,
            'requested_at': self.requested_at,
            'status': self.status.value,
            'token_id': self.token_id,
        }


def calculate_reliability_score(payment_history: Iterable[PaymentRecord]) -> int:
    """Share of paid months, 0-100; a user with no history scores 100."""
    records = list(payment_history)
    if not records:
        return 100
    paid = sum(1 for r in records if r.paid)
    return paid * 100 // len(records)


def create_verifier_unit(
    symbol: str,
    name: str,
    registry: str,
    loan_manager: str,
    operators: Tuple[str, ...] = (),
) -> Unit:
    """
    Create a verifier with its operator allow-list.

    Args:
        symbol: Verifier unit symbol (e.g., "ORACLE")
        name: Human-readable name
        registry: Credential registry it mints into and updates
        loan_manager: Loan manager it drives repayments on
        operators: Wallets allowed to submit verifications and reports
    """
    state = {
        'registry': registry,
        'loan_manager': loan_manager,
        'operators': list(operators),
        'requests': {},
        'monitored': {},
    }
    return component_unit(symbol, name, UNIT_TYPE_VERIFIER, state)


def _require_operator(state: Mapping[str, Any], operator: str) -> None:
    if operator not in state['operators']:
        raise Unauthorized(f"{operator} is not an authorized operator")


def _require_monitored(state: Mapping[str, Any], loan_id: int, collateral_id: int) -> None:
    monitored = state['monitored']
    if loan_id not in monitored:
        raise InvalidState(f"loan {loan_id} is not being monitored")
    if monitored[loan_id] != collateral_id:
        raise InvalidState(f"loan {loan_id} is not backed by credential {collateral_id}")


def get_verification_request(view: LedgerView, verifier: str, user: str) -> VerificationRequest:
    raw = view.get_unit_state(verifier)['requests'].get(user)
    if raw is None:
        raise NotFound(f"no verification request for {user}")
    return VerificationRequest.from_dict(raw)


def get_verification_status(view: LedgerView, verifier: str, user: str) -> VerificationStatus:
    return get_verification_request(view, verifier, user).status


def is_monitored(view: LedgerView, verifier: str, loan_id: int) -> bool:
    return loan_id in view.get_unit_state(verifier)['monitored']


def compute_request_verification(
    view: LedgerView,
    verifier: str,
    user: str,
    provider: str,
    account_id: str,
) -> PendingTransaction:
    """Open (or reopen) a Pending verification request for `user`."""
    state = view.get_unit_state(verifier)
    request = VerificationRequest(user, provider, account_id, view.current_time)
    new_state = {**state, 'requests': {**state['requests'], user: request.to_dict()}}
    origin = TransactionOrigin(OriginType.USER_ACTION, user, verifier, "request_verification")
    events = [emit("verification_requested", verifier, user=user)]
    return build_transaction(view, [], [UnitStateChange(verifier, state, new_state)], origin, events)


def compute_submit_verification(
    view: LedgerView,
    verifier: str,
    operator: str,
    user: str,
    monthly_amount: int,
    history_months: int,
    total_sent: int,
    payment_history: Iterable[PaymentRecord] = (),
) -> PendingTransaction:
    """
    Score a confirmed history, mint the user's credential and mark the
    request Verified.

    Raises:
        Unauthorized: If operator is not on the allow-list
        NotFound: If the user has no request
        InvalidState: If the request was already processed
    """
    state = view.get_unit_state(verifier)
    _require_operator(state, operator)
    request = get_verification_request(view, verifier, user)
    if request.status != VerificationStatus.PENDING:
        raise InvalidState(f"verification for {user} already {request.status.value}")

    history = tuple(payment_history)
    score = calculate_reliability_score(history)
    registry = state['registry']
    token_id = view.get_unit_state(registry)['next_token_id']

    staged = StagedView(view)
    staged.stage(compute_mint(
        staged, registry, verifier, user,
        monthly_amount, score, history_months, total_sent, history,
    ))
    verified = VerificationRequest(
        request.user, request.provider, request.account_id, request.requested_at,
        VerificationStatus.VERIFIED, token_id,
    )
    new_state = {**state, 'requests': {**state['requests'], user: verified.to_dict()}}
    staged.stage(build_transaction(
        staged, [], [UnitStateChange(verifier, state, new_state)],
        events=[emit("verification_complete", verifier, user=user, score=score, token_id=token_id)],
    ))
    return staged.build(TransactionOrigin(OriginType.ORACLE, operator, verifier, "submit_verification"))


def compute_start_monitoring(
    view: LedgerView,
    verifier: str,
    caller: str,
    loan_id: int,
    collateral_id: int,
) -> PendingTransaction:
    """
    Watch a loan for remittances. Only the verifier's loan manager may call.

    Raises:
        Unauthorized: If caller is not this verifier's loan manager
    """
    state = view.get_unit_state(verifier)
    if caller != state['loan_manager']:
        raise Unauthorized(f"{caller} is not the loan manager of {verifier}")
    new_state = {**state, 'monitored': {**state['monitored'], loan_id: collateral_id}}
    origin = TransactionOrigin(OriginType.CONTRACT, caller, verifier, "start_monitoring")
    events = [emit("monitoring_started", verifier, loan_id=loan_id)]
    return build_transaction(view, [], [UnitStateChange(verifier, state, new_state)], origin, events)


def compute_report_remittance(
    view: LedgerView,
    verifier: str,
    operator: str,
    collateral_id: int,
    amount: int,
    loan_id: int,
) -> Tuple[PendingTransaction, int]:
    """
    Record a detected remittance and apply it to the monitored loan.

    Returns:
        (pending transaction, leftover) as process_automatic_repayment

    Raises:
        Unauthorized: If operator is not on the allow-list
        InvalidAmount: If amount <= 0
        InvalidState: If the loan is not monitored, or is monitored against
                      a different credential
    """
    state = view.get_unit_state(verifier)
    _require_operator(state, operator)
    amount = require_amount(amount)
    _require_monitored(state, loan_id, collateral_id)

    staged = StagedView(view)
    staged.stage(compute_record_remittance(
        staged, state['registry'], verifier, collateral_id, amount, amount,
    ))
    repayment, leftover = compute_automatic_repayment(
        staged, state['loan_manager'], verifier, loan_id, amount,
    )
    staged.stage(repayment)
    staged.stage(build_transaction(staged, [], events=[emit(
        "remittance_reported", verifier, loan_id=loan_id, collateral_id=collateral_id, amount=amount,
    )]))
    origin = TransactionOrigin(OriginType.ORACLE, operator, verifier, "report_remittance")
    return staged.build(origin), leftover


def compute_report_missed_payment(
    view: LedgerView,
    verifier: str,
    operator: str,
    loan_id: int,
    collateral_id: int,
) -> PendingTransaction:
    """
    Record a missed month on the credential and count it against the loan.

    Raises:
        Unauthorized: If operator is not on the allow-list
        InvalidState: If the loan is not monitored against collateral_id,
                      or the loan manager refuses the miss
        NotFound: From the registry or loan manager
    """
    state = view.get_unit_state(verifier)
    _require_operator(state, operator)
    _require_monitored(state, loan_id, collateral_id)

    staged = StagedView(view)
    staged.stage(compute_record_missed_payment(staged, state['registry'], verifier, collateral_id))
    staged.stage(compute_mark_payment_missed(staged, state['loan_manager'], verifier, loan_id))
    staged.stage(build_transaction(staged, [], events=[emit(
        "payment_missed_reported", verifier, loan_id=loan_id, collateral_id=collateral_id,
    )]))
    origin = TransactionOrigin(OriginType.ORACLE, operator, verifier, "report_missed_payment")
    return staged.build(origin)
