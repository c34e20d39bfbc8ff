"""
Core types and pure functions for the pooled lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, ProtocolEvent, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError and the protocol error taxonomy
4. Type aliases: Positions, BalanceMap, UnitState
5. Amount validation and integer fixed-point helpers
6. Unit factories: the fungible pool asset

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Wallet balances are Decimal. The pool asset uses zero decimal places, so
# every balance is an integral Decimal; the context only has to be wide
# enough to hold signed 128-bit values exactly.
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption of the pool asset.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Unit type constants (strings, not enum).
UNIT_TYPE_CASH = "CASH"
UNIT_TYPE_LENDING_POOL = "LENDING_POOL"
UNIT_TYPE_LOAN_MANAGER = "LOAN_MANAGER"
UNIT_TYPE_CREDENTIAL_REGISTRY = "CREDENTIAL_REGISTRY"
UNIT_TYPE_VERIFIER = "VERIFIER"

# Basis points: 10000 bps = 100%.
BPS_DENOMINATOR = 10_000

# Fixed-point scale of the accumulated interest per share.
INTEREST_SCALE = 1_000_000_000

# State key of component units; advanced by every state change so a unit
# never returns to an earlier state and intent ids never repeat.
TX_NONCE_KEY = "tx_nonce"

# Payment periods are a fixed 30-day interval, not a calendar month.
PAYMENT_INTERVAL = timedelta(seconds=30 * 24 * 60 * 60)

# Monetary amounts are signed 128-bit integers in the asset's smallest unit.
I128_MAX = 2 ** 127 - 1
I128_MIN = -(2 ** 127)

# Epsilon for Decimal comparisons.
QUANTITY_EPSILON = Decimal("1e-12")

DECIMAL_ROUNDING = {
    'CASH': ROUND_DOWN,
}


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, Decimal]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]

# Internal state for a unit: pool totals, loan book, credential registry, etc.
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Every compute_* function in the unit modules takes a LedgerView and
    returns a PendingTransaction; none of them can change the ledger.
    The Ledger implements this protocol, as do StagedView (for composing
    nested component calls) and FakeView (tests).
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Return the balance of a specific unit in a wallet."""
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was successfully validated and applied to the ledger.
    ALREADY_APPLIED: Transaction ID was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation (insufficient funds, unknown wallet,
              stale state or future timestamp).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """
    Classification of where a transaction originated.

    Used for audit trails and reconciliation.
    """
    USER_ACTION = "user_action"           # Lender or borrower entry point
    CONTRACT = "contract"                 # Component-to-component call
    ORACLE = "oracle"                     # Verifier-triggered repayment or miss
    SYSTEM = "system"                     # Deployment, issuance


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger and protocol errors."""
    pass


class InvalidAmount(LedgerError):
    """Raised when an amount is non-positive, negative where forbidden, or outside the i128 range."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when a wallet or lender position cannot cover the requested amount."""
    pass


class InsufficientLiquidity(LedgerError):
    """Raised when the pool's idle liquidity cannot cover a withdrawal or borrow."""
    pass


class MaxUtilizationExceeded(LedgerError):
    """Raised when a borrow would push pool utilization above its cap."""
    pass


class Unauthorized(LedgerError):
    """Raised when the caller is not on the callee's allow-list."""
    pass


class InvalidState(LedgerError):
    """Raised when an operation is not permitted in the record's current status."""
    pass


class NotFound(LedgerError):
    """Raised when a loan, lender position, credential or request does not exist."""
    pass


class OwnershipMismatch(LedgerError):
    """Raised when a credential is not owned by the borrower pledging it."""
    pass


class AlreadyInitialized(LedgerError):
    """Raised when a component is initialized twice."""
    pass


class AlreadyStaked(LedgerError):
    """Raised when staking a credential that is already locked as collateral."""
    pass


class NotStaked(LedgerError):
    """Raised when unstaking a credential that is not locked."""
    pass


class InsufficientFunds(InsufficientBalance):
    """Raised when a move would cause a wallet balance to fall below the unit's minimum."""
    pass


class BalanceConstraintViolation(LedgerError):
    """Raised when a move would cause a wallet balance to exceed the unit's maximum."""
    pass


class UnitNotRegistered(NotFound):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(NotFound):
    """Raised when attempting to operate on a wallet that has not been registered with the ledger."""
    pass


class StaleState(LedgerError):
    """Raised when a state change was computed against a unit state that has since changed."""
    pass


# ============================================================================
# AMOUNT HELPERS
# ============================================================================

def require_amount(value: Any, name: str = "amount", allow_zero: bool = False) -> int:
    """
    Validate a monetary amount in the asset's smallest unit.

    Amounts are plain ints constrained to the signed 128-bit range.

    Raises:
        InvalidAmount: If value is not an int, is out of range, is negative,
                       or is zero when allow_zero is False.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {type(value).__name__}")
    if value < I128_MIN or value > I128_MAX:
        raise InvalidAmount(f"{name} {value} is outside the i128 range")
    if value < 0 or (value == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise InvalidAmount(f"{name} must be {qualifier}, got {value}")
    return value


def to_quantity(amount: int) -> Decimal:
    """Convert an integer amount into a Move quantity."""
    return Decimal(amount)


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Caller identity (wallet or component symbol)
        unit_symbol: Symbol of the unit that was entered (if applicable)
        event_type: Entry point name (e.g., "deposit", "approve_loan")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Record of a unit state change for transaction logging.

    Stores complete before/after state snapshots. old_state is checked
    against the live state at execution time; a mismatch rejects the
    transaction.

    Attributes:
        unit: Symbol of the unit whose state changed
        old_state: Complete state before the change (dict or None)
        new_state: Complete state after the change (dict)
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """
        Compute fields that differ between old and new state.

        Returns:
            Dict mapping field name to (old_value, new_value) tuples.
        """
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = (old_val, new_val)
        return changes


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class ProtocolEvent:
    """
    A named notification emitted by a component.

    Events travel inside a PendingTransaction and become visible in the
    ledger's event log only when that transaction is applied.

    Attributes:
        name: Event name (e.g., "deposit", "payment_made")
        source: Symbol of the emitting component
        payload: Ordered (key, value) pairs
    """
    name: str
    source: str
    payload: Tuple[Tuple[str, Any], ...] = ()

    @property
    def data(self) -> Dict[str, Any]:
        return dict(self.payload)

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self.payload)
        return f"{self.name}({args})"


def emit(name: str, source: str, **payload: Any) -> ProtocolEvent:
    """Create a ProtocolEvent, keeping payload keys in call order."""
    return ProtocolEvent(name=name, source=source, payload=tuple(payload.items()))


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (must be finite and non-zero).
        unit_symbol: The symbol of the unit being transferred (e.g., "USDC").
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if abs(self.quantity) < QUANTITY_EPSILON:
            raise ValueError("Move quantity is effectively zero")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """
    Normalize a Decimal to a canonical string representation.

    Decimal("1.0") and Decimal("1.00") both become "1".
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Independent of dict insertion order and Decimal representation.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, Enum):
        return f"E:{value.value}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, set):
        serialized = ",".join(_canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    events: Tuple[ProtocolEvent, ...] = (),
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Based solely on the semantic content (moves, state changes, events,
    origin), not on timestamps. Because state changes carry the complete
    old_state, two otherwise identical operations issued against different
    ledger states never collide.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (_normalize_decimal(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.unit_symbol:
        content_parts.append(f"unit:{origin.unit_symbol}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for m in sorted_moves:
        qty = _normalize_decimal(m.quantity)
        content_parts.append(f"move:{qty}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    for sc in sorted(state_changes, key=lambda s: s.unit):
        old_canonical = _canonicalize(sc.old_state)
        new_canonical = _canonicalize(sc.new_state)
        content_parts.append(f"state_change:{sc.unit}|{old_canonical}|{new_canonical}")

    for ev in events:
        content_parts.append(f"emit:{ev.source}|{ev.name}|{_canonicalize(list(ev.payload))}")

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Created by compute_* functions and submitted to the ledger for execution.

    Lifecycle:
    1. A compute function reads a LedgerView and returns a PendingTransaction
    2. intent_id is auto-computed from content (deterministic hash)
    3. Ledger.execute() validates and applies it, creating a Transaction record

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When this pending transaction was created
        events: Tuple of events emitted if and when the transaction is applied
        intent_id: Content-addressable hash of the transaction intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    events: Tuple[ProtocolEvent, ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin, self.events
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves, state deltas or events."""
        return not self.moves and not self.state_changes and not self.events

    def __repr__(self) -> str:
        return (
            f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, "
            f"{len(self.events)} events, {self.origin})"
        )


def _advance_nonce(sc: UnitStateChange) -> UnitStateChange:
    """Deep-copied state change; component units get old tx_nonce + 1."""
    new_state = copy.deepcopy(sc.new_state)
    if isinstance(sc.old_state, dict) and TX_NONCE_KEY in sc.old_state:
        new_state[TX_NONCE_KEY] = sc.old_state[TX_NONCE_KEY] + 1
    return UnitStateChange(
        unit=sc.unit,
        old_state=copy.deepcopy(sc.old_state),
        new_state=new_state,
    )


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    events: Optional[List[ProtocolEvent]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves, state deltas and events.

    This is the standard way to create transactions.

    Args:
        view: Read-only ledger view (provides current_time)
        moves: List of moves to include in the transaction
        state_changes: Optional list of UnitStateChange objects
        origin: Transaction origin (defaults to CONTRACT origin)
        events: Optional list of events to emit on commit

    Returns:
        A PendingTransaction ready for execution

    Example:
        def compute_repay(view, pool, principal, interest):
            old_state = view.get_unit_state(pool)
            new_state = {**old_state, "total_borrowed": old_state["total_borrowed"] - principal}
            changes = [UnitStateChange(unit=pool, old_state=old_state, new_state=new_state)]
            return build_transaction(view, [], changes)
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.CONTRACT,
            source_id="contract",
        )

    # Deep copy state changes to prevent mutation
    copied_changes: Tuple[UnitStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(_advance_nonce(sc) for sc in state_changes)

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        events=tuple(events or ()),
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger (for ordering)
        events: Events emitted by this transaction
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    events: Tuple[ProtocolEvent, ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes and not self.events:
            raise ValueError("Transaction must have moves, state_changes, or events")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100  # Inner content width
        bar = "─" * w

        def pad(text: str) -> str:
            """Pad or truncate text to exactly w characters."""
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   timestamp      : ' + str(self.timestamp))}│",
            f"│{pad('   ledger_name    : ' + self.ledger_name)}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
        ]
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        if self.state_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' State Changes (' + str(len(self.state_changes)) + '):')}│")
            for sc in self.state_changes:
                lines.append(f"│{pad('   [' + sc.unit + ']')}│")
                for field_name, (old_val, new_val) in sc.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        if self.events:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Events (' + str(len(self.events)) + '):')}│")
            for ev in self.events:
                lines.append(f"│{pad('   ' + ev.source + ': ' + repr(ev))}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """
    Convert a mutable state dict to an immutable frozen representation.

    Returns:
        Tuple of (key, value) pairs, sorted by key for determinism
    """
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state representation back to a mutable dict."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit registered with the ledger.

    Units are either a fungible asset (held in wallets) or a stateful
    protocol component (pool, loan manager, credential registry, verifier)
    whose books live in its state.

    Attributes:
        symbol: Short identifier for the unit (e.g., "USDC", "POOL").
        name: Human-readable name for the unit.
        unit_type: Category of the unit (CASH, LENDING_POOL, ...).
        min_balance: Minimum allowed balance in any wallet.
        max_balance: Maximum allowed balance in any wallet.
        decimal_places: Number of decimal places for rounding (None = no rounding).
        _frozen_state: Internal frozen state representation (tuple of key-value pairs).
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """Get the unit's state as a new mutable dictionary."""
        return _thaw_state(self._frozen_state)

    def round(self, value: Decimal) -> Decimal:
        """
        Round a value to this unit's decimal precision using quantize.

        Returns the value unchanged if decimal_places is None.
        """
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        quantizer = Decimal(10) ** -self.decimal_places
        rounding_mode = DECIMAL_ROUNDING.get(self.unit_type, ROUND_HALF_EVEN)
        return value.quantize(quantizer, rounding=rounding_mode)


def component_unit(symbol: str, name: str, unit_type: str, state: UnitState) -> Unit:
    """
    Create a stateful protocol component unit.

    Component units carry books in their state and never hold balances:
    min and max balance are both zero. The state starts with tx_nonce 0,
    which build_transaction advances on every change.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=unit_type,
        min_balance=Decimal("0"),
        max_balance=Decimal("0"),
        decimal_places=0,
        _frozen_state=_freeze_state({**state, TX_NONCE_KEY: 0}),
    )


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def asset(symbol: str, name: str) -> Unit:
    """
    Create the fungible pool asset.

    Balances are whole numbers of the asset's smallest unit and may not go
    negative, so a transfer from an underfunded wallet is rejected.

    Args:
        symbol: Asset code (e.g., "USDC").
        name: Full name of the asset.

    Returns:
        A Unit of type CASH with zero decimal places and a zero minimum balance.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_CASH,
        decimal_places=0,
        min_balance=Decimal("0"),
        _frozen_state=_freeze_state({'issuer': SYSTEM_WALLET}),
    )
