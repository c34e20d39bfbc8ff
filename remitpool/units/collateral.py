"""
collateral.py - Remittance Credential Registry

Credentials are non-transferable tokens that summarize a borrower's
remittance history. A loan manager pledges them as collateral by staking;
oracles keep the history current. The registry is a single unit whose state
holds every credential.

Scoring:
    recent_score = paid * 100 / len(history)      (100 for an empty history)
    score        = max(0, recent_score - lifetime_penalty(missed))

    history is a rolling window of the last 24 monthly records. The lifetime
    penalty never rolls off: 0, 2, 5, 9 for 0-3 misses, then +5 per miss.

Valuation:
    collateral_value = monthly_amount * months * score / 100 * 70 / 100
    (integer truncation at each step)
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..core import (
    LedgerView, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType, UNIT_TYPE_CREDENTIAL_REGISTRY,
    InvalidAmount, NotFound, Unauthorized, AlreadyStaked, NotStaked,
    build_transaction, component_unit, emit, require_amount,
)


ADVANCE_RATE_PCT = 70
HISTORY_WINDOW = 24
MAX_SCORE = 100


@dataclass(frozen=True, slots=True)
class PaymentRecord:
    month_index: int
    paid: bool


@dataclass(frozen=True, slots=True)
class Credential:
    """Immutable snapshot of one credential."""
    token_id: int
    owner: str
    monthly_amount: int
    reliability_score: int
    history_months: int
    total_sent: int
    last_remittance: Optional[datetime]
    lifetime_missed_payments: int
    staked: bool = False
    staked_in_loan: Optional[int] = None
    payment_history: Tuple[PaymentRecord, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Credential:
        return cls(
            token_id=raw['token_id'],
            owner=raw['owner'],
            monthly_amount=raw['monthly_amount'],
            reliability_score=raw['reliability_score'],
            history_months=raw['history_months'],
            total_sent=raw['total_sent'],
            last_remittance=raw.get('last_remittance'),
            lifetime_missed_payments=raw.get('lifetime_missed_payments', 0),
            staked=raw.get('staked', False),
            staked_in_loan=raw.get('staked_in_loan'),
            payment_history=tuple(
                PaymentRecord(r['month_index'], r['paid'])
                for r in raw.get('payment_history', ())
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'token_id': self.token_id,
            'owner': self.owner,
            'monthly_amount': self.monthly_amount,
            'reliability_score': self.reliability_score,
            'history_months': self.history_months,
            'total_sent': self.total_sent,
            'last_remittance': self.last_remittance,
            'lifetime_missed_payments': self.lifetime_missed_payments,
            'staked': self.staked,
            'staked_in_loan': self.staked_in_loan,
            'payment_history': [
                {'month_index': r.month_index, 'paid': r.paid}
                for r in self.payment_history
            ],
        }


@dataclass(frozen=True, slots=True)
class Valuation:
    """What a lender needs to know about a credential."""
    owner: str
    reliability_score: int
    monthly_amount: int
    history_months: int
    total_sent: int


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_lifetime_penalty(lifetime_missed: int) -> int:
    if lifetime_missed <= 0:
        return 0
    if lifetime_missed == 1:
        return 2
    if lifetime_missed == 2:
        return 5
    if lifetime_missed == 3:
        return 9
    return 9 + (lifetime_missed - 3) * 5


def calculate_score(history: Iterable[PaymentRecord], lifetime_missed: int) -> int:
    records = list(history)
    if records:
        paid = sum(1 for r in records if r.paid)
        recent = paid * MAX_SCORE // len(records)
    else:
        recent = MAX_SCORE
    return max(0, recent - calculate_lifetime_penalty(lifetime_missed))


def calculate_collateral_value(monthly_amount: int, months: int, score: int) -> int:
    """Appraised value of a credential pledged for `months`."""
    base_value = monthly_amount * months
    score_adjusted = base_value * score // MAX_SCORE
    return score_adjusted * ADVANCE_RATE_PCT // 100


def _append_record(history: Tuple[PaymentRecord, ...], record: PaymentRecord) -> Tuple[PaymentRecord, ...]:
    return (history + (record,))[-HISTORY_WINDOW:]


# ============================================================================
# UNIT CREATION AND STATE ACCESS
# ============================================================================

def create_registry_unit(
    symbol: str,
    name: str,
    owner: str,
    loan_managers: Tuple[str, ...] = (),
    oracles: Tuple[str, ...] = (),
) -> Unit:
    """
    Create an empty credential registry.

    Args:
        symbol: Registry unit symbol (e.g., "CRED")
        name: Human-readable name
        owner: Administrator wallet
        loan_managers: Loan manager symbols allowed to stake and unstake
        oracles: Identities allowed to mint and update remittance history
    """
    state = {
        'owner': owner,
        'loan_managers': list(loan_managers),
        'oracles': list(oracles),
        'next_token_id': 1,
        'credentials': {},
    }
    return component_unit(symbol, name, UNIT_TYPE_CREDENTIAL_REGISTRY, state)


def load_credential(view: LedgerView, registry: str, token_id: int) -> Credential:
    """
    Raises:
        NotFound: If no credential has this id
    """
    raw = view.get_unit_state(registry)['credentials'].get(token_id)
    if raw is None:
        raise NotFound(f"credential {token_id} not found")
    return Credential.from_dict(raw)


def get_valuation(view: LedgerView, registry: str, token_id: int) -> Valuation:
    cred = load_credential(view, registry, token_id)
    return Valuation(
        owner=cred.owner,
        reliability_score=cred.reliability_score,
        monthly_amount=cred.monthly_amount,
        history_months=cred.history_months,
        total_sent=cred.total_sent,
    )


def get_collateral_value(view: LedgerView, registry: str, token_id: int, months: int) -> int:
    cred = load_credential(view, registry, token_id)
    return calculate_collateral_value(cred.monthly_amount, months, cred.reliability_score)


def get_owner_credentials(view: LedgerView, registry: str, owner: str) -> List[Credential]:
    credentials = view.get_unit_state(registry)['credentials']
    return [
        Credential.from_dict(raw)
        for _, raw in sorted(credentials.items())
        if raw['owner'] == owner
    ]


def _store(
    view: LedgerView,
    registry: str,
    state: Dict[str, Any],
    cred: Credential,
    origin: TransactionOrigin,
    events: List,
    **updates: Any,
) -> PendingTransaction:
    new_state = {
        **state,
        'credentials': {**state['credentials'], cred.token_id: cred.to_dict()},
        **updates,
    }
    changes = [UnitStateChange(registry, state, new_state)]
    return build_transaction(view, [], changes, origin, events)


def _require_member(state: Mapping[str, Any], role: str, caller: str) -> None:
    if caller not in state.get(role, ()):
        raise Unauthorized(f"{caller} is not an authorized {role[:-1].replace('_', ' ')}")


# ============================================================================
# COMPUTE FUNCTIONS
# ============================================================================

def compute_mint(
    view: LedgerView,
    registry: str,
    caller: str,
    owner: str,
    monthly_amount: int,
    reliability_score: int,
    history_months: int,
    total_sent: int,
    payment_history: Iterable[PaymentRecord] = (),
) -> PendingTransaction:
    """
    Mint a credential for `owner`. The new token id is the registry's
    next_token_id before the call.

    Raises:
        Unauthorized: If caller is neither the owner nor a registered oracle
        InvalidAmount: If an amount is negative or the score is above 100
    """
    state = view.get_unit_state(registry)
    if caller != owner and caller not in state.get('oracles', ()):
        raise Unauthorized(f"{caller} cannot mint for {owner}")
    require_amount(monthly_amount, "monthly_amount", allow_zero=True)
    require_amount(total_sent, "total_sent", allow_zero=True)
    require_amount(history_months, "history_months", allow_zero=True)
    require_amount(reliability_score, "reliability_score", allow_zero=True)
    if reliability_score > MAX_SCORE:
        raise InvalidAmount(f"reliability_score {reliability_score} exceeds {MAX_SCORE}")

    history = tuple(payment_history)[-HISTORY_WINDOW:]
    token_id = state['next_token_id']
    cred = Credential(
        token_id=token_id,
        owner=owner,
        monthly_amount=monthly_amount,
        reliability_score=reliability_score,
        history_months=history_months,
        total_sent=total_sent,
        last_remittance=view.current_time,
        lifetime_missed_payments=sum(1 for r in history if not r.paid),
        payment_history=history,
    )
    origin = TransactionOrigin(OriginType.SYSTEM, caller, registry, "mint")
    events = [emit("collateral_minted", registry, owner=owner, token_id=token_id)]
    return _store(view, registry, state, cred, origin, events, next_token_id=token_id + 1)


def compute_stake(
    view: LedgerView,
    registry: str,
    caller: str,
    token_id: int,
    loan_id: int,
) -> PendingTransaction:
    """
    Lock a credential against `loan_id`.

    Raises:
        Unauthorized: If caller is not a registered loan manager
        NotFound: If the credential does not exist
        AlreadyStaked: If the credential is already locked
    """
    state = view.get_unit_state(registry)
    _require_member(state, 'loan_managers', caller)
    cred = load_credential(view, registry, token_id)
    if cred.staked:
        raise AlreadyStaked(f"credential {token_id} already staked in loan {cred.staked_in_loan}")

    staked = replace(cred, staked=True, staked_in_loan=loan_id)
    origin = TransactionOrigin(OriginType.CONTRACT, caller, registry, "stake")
    events = [emit("collateral_staked", registry, token_id=token_id, loan_id=loan_id)]
    return _store(view, registry, state, staked, origin, events)


def compute_unstake(
    view: LedgerView,
    registry: str,
    caller: str,
    token_id: int,
) -> PendingTransaction:
    """
    Release a staked credential.

    Raises:
        Unauthorized: If caller is not a registered loan manager
        NotFound: If the credential does not exist
        NotStaked: If the credential is not locked
    """
    state = view.get_unit_state(registry)
    _require_member(state, 'loan_managers', caller)
    cred = load_credential(view, registry, token_id)
    if not cred.staked:
        raise NotStaked(f"credential {token_id} is not staked")

    released = replace(cred, staked=False, staked_in_loan=None)
    origin = TransactionOrigin(OriginType.CONTRACT, caller, registry, "unstake")
    events = [emit("collateral_unstaked", registry, token_id=token_id)]
    return _store(view, registry, state, released, origin, events)


def compute_record_remittance(
    view: LedgerView,
    registry: str,
    caller: str,
    token_id: int,
    monthly_amount: int,
    amount: int,
) -> PendingTransaction:
    """Append a paid month, add `amount` to total_sent and rescore."""
    state = view.get_unit_state(registry)
    _require_member(state, 'oracles', caller)
    require_amount(monthly_amount, "monthly_amount", allow_zero=True)
    require_amount(amount, allow_zero=True)
    cred = load_credential(view, registry, token_id)

    history = _append_record(cred.payment_history, PaymentRecord(cred.history_months + 1, True))
    updated = replace(
        cred,
        monthly_amount=monthly_amount,
        total_sent=cred.total_sent + amount,
        history_months=cred.history_months + 1,
        last_remittance=view.current_time,
        payment_history=history,
        reliability_score=calculate_score(history, cred.lifetime_missed_payments),
    )
    origin = TransactionOrigin(OriginType.ORACLE, caller, registry, "record_remittance")
    events = [emit("collateral_updated", registry, token_id=token_id, score=updated.reliability_score)]
    return _store(view, registry, state, updated, origin, events)


def compute_record_missed_payment(
    view: LedgerView,
    registry: str,
    caller: str,
    token_id: int,
) -> PendingTransaction:
    """Append a missed month, bump the lifetime miss count and rescore."""
    state = view.get_unit_state(registry)
    _require_member(state, 'oracles', caller)
    cred = load_credential(view, registry, token_id)

    history = _append_record(cred.payment_history, PaymentRecord(cred.history_months + 1, False))
    missed = cred.lifetime_missed_payments + 1
    updated = replace(
        cred,
        history_months=cred.history_months + 1,
        lifetime_missed_payments=missed,
        payment_history=history,
        reliability_score=calculate_score(history, missed),
    )
    origin = TransactionOrigin(OriginType.ORACLE, caller, registry, "record_missed_payment")
    events = [emit("collateral_updated", registry, token_id=token_id, score=updated.reliability_score)]
    return _store(view, registry, state, updated, origin, events)
