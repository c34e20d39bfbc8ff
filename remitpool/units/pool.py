"""
pool.py - Liquidity Pool Ledger

The pool holds lender deposits of a single fungible asset in its own wallet,
lends them to borrowers through authorized loan managers, and distributes
repaid interest to lenders pro-rata.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES: PoolState, LenderPosition
2. PURE CALCULATION FUNCTIONS (calculate_*): integer arithmetic, no view
3. ADAPTERS: load_pool() / to_state_dict()
4. COMPUTE FUNCTIONS (compute_*): (view, pool_symbol, ...) -> PendingTransaction

Interest distribution is lazy. Each repayment raises an accumulator,
accumulated_interest_per_share (scale 1e9). A lender's claim is

    pending = principal * accumulated_interest_per_share / 1e9 - checkpoint

and the checkpoint is rebased whenever the lender's principal changes, so
interest earned before a deposit is never credited to the new principal.

Key Formulas:
    available = total_liquidity - total_borrowed
    utilization_bps = total_borrowed * 10000 / total_liquidity
    share_bps = principal * 10000 / total_liquidity
    pool wallet balance = available + total_interest_earned - total_interest_distributed
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    BPS_DENOMINATOR, INTEREST_SCALE, I128_MAX, TX_NONCE_KEY, UNIT_TYPE_LENDING_POOL,
    InvalidAmount, InsufficientBalance, InsufficientLiquidity,
    MaxUtilizationExceeded, Unauthorized, NotFound,
    build_transaction, component_unit, emit, require_amount, to_quantity,
)


DEFAULT_MAX_UTILIZATION_BPS = 9000
DEFAULT_BASE_RATE_BPS = 800


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LenderPosition:
    """
    One lender's stake in the pool.

    Created on first deposit and never deleted; a fully withdrawn position
    keeps zero principal.
    """
    principal: int = 0
    deposit_time: Optional[datetime] = None   # time of the first deposit
    interest_checkpoint: int = 0              # principal * acc / 1e9 at last settlement
    share_bps: int = 0                        # share of total_liquidity when last touched

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> LenderPosition:
        return cls(
            principal=raw.get('principal', 0),
            deposit_time=raw.get('deposit_time'),
            interest_checkpoint=raw.get('interest_checkpoint', 0),
            share_bps=raw.get('share_bps', 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'principal': self.principal,
            'deposit_time': self.deposit_time,
            'interest_checkpoint': self.interest_checkpoint,
            'share_bps': self.share_bps,
        }


@dataclass(frozen=True, slots=True)
class PoolState:
    """
    Immutable snapshot of the pool's books.

    asset and wallet are fixed at initialization; the totals change with
    every deposit, withdrawal, borrow and repayment.
    """
    asset: str
    wallet: str
    loan_managers: Tuple[str, ...]
    base_rate_bps: int
    max_utilization_bps: int
    total_liquidity: int = 0
    total_borrowed: int = 0
    total_interest_earned: int = 0
    total_interest_distributed: int = 0
    accumulated_interest_per_share: int = 0
    lenders: Mapping[str, LenderPosition] = field(default_factory=dict)
    tx_nonce: int = 0   # advanced by build_transaction

    @property
    def available_liquidity(self) -> int:
        return self.total_liquidity - self.total_borrowed

    @property
    def undistributed_interest(self) -> int:
        return self.total_interest_earned - self.total_interest_distributed


def load_pool(view: LedgerView, symbol: str) -> PoolState:
    """
    Load the pool's books from ledger state as a frozen PoolState.

    This is the only function in this module that reads pool state from a view.
    """
    raw = view.get_unit_state(symbol)
    return PoolState(
        asset=raw['asset'],
        wallet=raw['wallet'],
        loan_managers=tuple(raw.get('loan_managers', ())),
        base_rate_bps=raw.get('base_rate_bps', DEFAULT_BASE_RATE_BPS),
        max_utilization_bps=raw.get('max_utilization_bps', DEFAULT_MAX_UTILIZATION_BPS),
        total_liquidity=raw.get('total_liquidity', 0),
        total_borrowed=raw.get('total_borrowed', 0),
        total_interest_earned=raw.get('total_interest_earned', 0),
        total_interest_distributed=raw.get('total_interest_distributed', 0),
        accumulated_interest_per_share=raw.get('accumulated_interest_per_share', 0),
        lenders={
            lender: LenderPosition.from_dict(pos)
            for lender, pos in raw.get('lenders', {}).items()
        },
        tx_nonce=raw.get(TX_NONCE_KEY, 0),
    )


def to_state_dict(pool: PoolState) -> Dict[str, Any]:
    """Inverse of load_pool(): the dict stored as the pool unit's state."""
    return {
        'asset': pool.asset,
        'wallet': pool.wallet,
        'loan_managers': list(pool.loan_managers),
        'base_rate_bps': pool.base_rate_bps,
        'max_utilization_bps': pool.max_utilization_bps,
        'total_liquidity': pool.total_liquidity,
        'total_borrowed': pool.total_borrowed,
        'total_interest_earned': pool.total_interest_earned,
        'total_interest_distributed': pool.total_interest_distributed,
        'accumulated_interest_per_share': pool.accumulated_interest_per_share,
        'lenders': {lender: pos.to_dict() for lender, pos in pool.lenders.items()},
        TX_NONCE_KEY: pool.tx_nonce,
    }


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_share_bps(principal: int, total_liquidity: int) -> int:
    """Lender share of the pool in basis points; 0 for an empty pool."""
    if total_liquidity <= 0:
        return 0
    return principal * BPS_DENOMINATOR // total_liquidity


def calculate_utilization_bps(total_borrowed: int, total_liquidity: int) -> int:
    """Borrowed fraction of liquidity in basis points; 0 for an empty pool."""
    if total_liquidity <= 0:
        return 0
    return total_borrowed * BPS_DENOMINATOR // total_liquidity


def calculate_interest_per_share(interest: int, total_liquidity: int) -> int:
    """Accumulator increase for `interest` spread over `total_liquidity`."""
    if interest <= 0 or total_liquidity <= 0:
        return 0
    return interest * INTEREST_SCALE // total_liquidity


def calculate_pending_interest(
    position: LenderPosition,
    accumulated_interest_per_share: int,
    undistributed_interest: int,
) -> int:
    """
    Interest owed to a lender since their last settlement.

    Bounded by the interest the pool has earned but not yet paid out, so
    per-lender truncation can never overdraw the pool.
    """
    accrued = position.principal * accumulated_interest_per_share // INTEREST_SCALE
    pending = accrued - position.interest_checkpoint
    return max(0, min(pending, undistributed_interest))


def _checked(value: int, name: str) -> int:
    if value > I128_MAX:
        raise InvalidAmount(f"{name} would overflow: {value}")
    return value


# ============================================================================
# UNIT CREATION
# ============================================================================

def create_pool_unit(
    symbol: str,
    name: str,
    asset_symbol: str,
    wallet: str,
    loan_managers: Tuple[str, ...] = (),
    base_rate_bps: int = DEFAULT_BASE_RATE_BPS,
    max_utilization_bps: int = DEFAULT_MAX_UTILIZATION_BPS,
) -> Unit:
    """
    Create the pool unit with all totals zeroed.

    Args:
        symbol: Pool unit symbol (e.g., "POOL")
        name: Human-readable pool name
        asset_symbol: Symbol of the fungible asset the pool lends
        wallet: Wallet that holds pooled funds
        loan_managers: Symbols of loan managers allowed to borrow and repay
        base_rate_bps: Reference rate, informational only
        max_utilization_bps: Borrowing cap as a fraction of liquidity

    Raises:
        InvalidAmount: If a rate is negative or max_utilization_bps exceeds 10000
    """
    require_amount(base_rate_bps, "base_rate_bps", allow_zero=True)
    require_amount(max_utilization_bps, "max_utilization_bps", allow_zero=True)
    if max_utilization_bps > BPS_DENOMINATOR:
        raise InvalidAmount(f"max_utilization_bps {max_utilization_bps} exceeds {BPS_DENOMINATOR}")
    if not wallet or not asset_symbol:
        raise ValueError("pool requires an asset symbol and a wallet")

    pool = PoolState(
        asset=asset_symbol,
        wallet=wallet,
        loan_managers=tuple(loan_managers),
        base_rate_bps=base_rate_bps,
        max_utilization_bps=max_utilization_bps,
    )
    return component_unit(symbol, name, UNIT_TYPE_LENDING_POOL, to_state_dict(pool))


# ============================================================================
# QUERIES
# ============================================================================

def get_pool_state(view: LedgerView, pool_symbol: str) -> PoolState:
    return load_pool(view, pool_symbol)


def get_available_liquidity(view: LedgerView, pool_symbol: str) -> int:
    return load_pool(view, pool_symbol).available_liquidity


def get_utilization_rate(view: LedgerView, pool_symbol: str) -> int:
    """Current utilization in basis points (0 when the pool is empty)."""
    pool = load_pool(view, pool_symbol)
    return calculate_utilization_bps(pool.total_borrowed, pool.total_liquidity)


def get_lender_info(view: LedgerView, pool_symbol: str, lender: str) -> LenderPosition:
    """The lender's position, or an all-zero record if they never deposited."""
    return load_pool(view, pool_symbol).lenders.get(lender, LenderPosition())


def get_pending_interest(view: LedgerView, pool_symbol: str, lender: str) -> int:
    pool = load_pool(view, pool_symbol)
    position = pool.lenders.get(lender)
    if position is None:
        return 0
    return calculate_pending_interest(
        position, pool.accumulated_interest_per_share, pool.undistributed_interest
    )


def verify_pool_reconciliation(view: LedgerView, pool_symbol: str) -> Dict[str, Any]:
    """
    Check the pool's books against its wallet and its lender positions.

    Returns:
        Dict with 'valid', 'wallet_balance', 'expected_balance',
        'principal_sum' and 'total_liquidity'.
    """
    pool = load_pool(view, pool_symbol)
    wallet_balance = view.get_balance(pool.wallet, pool.asset)
    expected = pool.available_liquidity + pool.undistributed_interest
    principal_sum = sum(pos.principal for pos in pool.lenders.values())
    return {
        'valid': (
            wallet_balance == Decimal(expected)
            and principal_sum == pool.total_liquidity
            and pool.available_liquidity >= 0
        ),
        'wallet_balance': wallet_balance,
        'expected_balance': expected,
        'principal_sum': principal_sum,
        'total_liquidity': pool.total_liquidity,
    }


# ============================================================================
# LENDER OPERATIONS
# ============================================================================

def compute_deposit(
    view: LedgerView,
    pool_symbol: str,
    lender: str,
    amount: int,
) -> PendingTransaction:
    """
    Deposit `amount` of the pool asset from `lender`.

    Any interest the lender had pending is paid out in the same transaction
    and the checkpoint is rebased onto the new principal.

    Raises:
        InvalidAmount: If amount <= 0 or a total would overflow
    """
    amount = require_amount(amount)
    pool = load_pool(view, pool_symbol)
    acc = pool.accumulated_interest_per_share

    position = pool.lenders.get(lender)
    if position is None:
        position = LenderPosition(deposit_time=view.current_time)
    pending = calculate_pending_interest(position, acc, pool.undistributed_interest)

    new_total = _checked(pool.total_liquidity + amount, "total_liquidity")
    new_principal = position.principal + amount
    new_position = LenderPosition(
        principal=new_principal,
        deposit_time=position.deposit_time,
        interest_checkpoint=new_principal * acc // INTEREST_SCALE,
        share_bps=calculate_share_bps(new_principal, new_total),
    )

    moves = [Move(to_quantity(amount), pool.asset, lender, pool.wallet, f"deposit_{pool_symbol}")]
    if pending > 0:
        moves.append(Move(to_quantity(pending), pool.asset, pool.wallet, lender, f"interest_{pool_symbol}"))

    new_pool = replace(
        pool,
        total_liquidity=new_total,
        total_interest_distributed=pool.total_interest_distributed + pending,
        lenders={**pool.lenders, lender: new_position},
    )
    changes = [UnitStateChange(pool_symbol, to_state_dict(pool), to_state_dict(new_pool))]
    origin = TransactionOrigin(OriginType.USER_ACTION, lender, pool_symbol, "deposit")
    events = [emit("deposit", pool_symbol, lender=lender, amount=amount)]
    return build_transaction(view, moves, changes, origin, events)


def compute_withdraw(
    view: LedgerView,
    pool_symbol: str,
    lender: str,
    amount: int,
) -> PendingTransaction:
    """
    Withdraw `amount` of principal plus any pending interest.

    Raises:
        InvalidAmount: If amount <= 0
        NotFound: If the lender has no position
        InsufficientBalance: If amount exceeds the lender's principal
        InsufficientLiquidity: If amount exceeds idle pool liquidity
    """
    amount = require_amount(amount)
    pool = load_pool(view, pool_symbol)

    position = pool.lenders.get(lender)
    if position is None:
        raise NotFound(f"no lender position for {lender}")
    if amount > position.principal:
        raise InsufficientBalance(
            f"{lender} withdraw {amount} exceeds principal {position.principal}"
        )
    if amount > pool.available_liquidity:
        raise InsufficientLiquidity(
            f"withdraw {amount} exceeds available liquidity {pool.available_liquidity}"
        )

    acc = pool.accumulated_interest_per_share
    pending = calculate_pending_interest(position, acc, pool.undistributed_interest)
    payout = amount + pending

    new_total = pool.total_liquidity - amount
    new_principal = position.principal - amount
    new_position = LenderPosition(
        principal=new_principal,
        deposit_time=position.deposit_time,
        interest_checkpoint=new_principal * acc // INTEREST_SCALE,
        share_bps=calculate_share_bps(new_principal, new_total),
    )

    moves = [Move(to_quantity(payout), pool.asset, pool.wallet, lender, f"withdraw_{pool_symbol}")]
    new_pool = replace(
        pool,
        total_liquidity=new_total,
        total_interest_distributed=pool.total_interest_distributed + pending,
        lenders={**pool.lenders, lender: new_position},
    )
    changes = [UnitStateChange(pool_symbol, to_state_dict(pool), to_state_dict(new_pool))]
    origin = TransactionOrigin(OriginType.USER_ACTION, lender, pool_symbol, "withdraw")
    events = [emit("withdraw", pool_symbol, lender=lender, amount=amount)]
    return build_transaction(view, moves, changes, origin, events)


# ============================================================================
# LOAN MANAGER OPERATIONS
# ============================================================================

def _require_loan_manager(pool: PoolState, caller: str) -> None:
    if caller not in pool.loan_managers:
        raise Unauthorized(f"{caller} is not an authorized loan manager")


def compute_borrow(
    view: LedgerView,
    pool_symbol: str,
    caller: str,
    amount: int,
    borrower: str,
    loan_id: int,
) -> PendingTransaction:
    """
    Disburse `amount` from the pool to `borrower` for loan `loan_id`.

    Raises:
        Unauthorized: If caller is not an authorized loan manager
        InvalidAmount: If amount <= 0
        InsufficientLiquidity: If amount exceeds idle liquidity
        MaxUtilizationExceeded: If the borrow would push utilization over the cap
    """
    pool = load_pool(view, pool_symbol)
    _require_loan_manager(pool, caller)
    amount = require_amount(amount)

    if amount > pool.available_liquidity:
        raise InsufficientLiquidity(
            f"borrow {amount} exceeds available liquidity {pool.available_liquidity}"
        )
    new_borrowed = pool.total_borrowed + amount
    utilization = calculate_utilization_bps(new_borrowed, pool.total_liquidity)
    if utilization > pool.max_utilization_bps:
        raise MaxUtilizationExceeded(
            f"utilization {utilization} bps would exceed {pool.max_utilization_bps} bps"
        )

    moves = [Move(to_quantity(amount), pool.asset, pool.wallet, borrower, f"loan_{loan_id}")]
    new_pool = replace(pool, total_borrowed=new_borrowed)
    changes = [UnitStateChange(pool_symbol, to_state_dict(pool), to_state_dict(new_pool))]
    origin = TransactionOrigin(OriginType.CONTRACT, caller, pool_symbol, "borrow")
    events = [emit("borrow", pool_symbol, loan_id=loan_id, borrower=borrower, amount=amount)]
    return build_transaction(view, moves, changes, origin, events)


def compute_repay(
    view: LedgerView,
    pool_symbol: str,
    caller: str,
    principal: int,
    interest: int,
    loan_id: int,
) -> PendingTransaction:
    """
    Book a repayment that has already reached the pool wallet.

    Only the books change here: the loan manager moves the funds from the
    borrower in the same transaction.

    Raises:
        Unauthorized: If caller is not an authorized loan manager
        InvalidAmount: If either portion is negative, or principal exceeds
                       the outstanding total_borrowed
    """
    pool = load_pool(view, pool_symbol)
    _require_loan_manager(pool, caller)
    principal = require_amount(principal, "principal", allow_zero=True)
    interest = require_amount(interest, "interest", allow_zero=True)
    if principal > pool.total_borrowed:
        raise InvalidAmount(
            f"principal {principal} exceeds total borrowed {pool.total_borrowed}"
        )

    new_pool = replace(
        pool,
        total_borrowed=pool.total_borrowed - principal,
        total_interest_earned=_checked(pool.total_interest_earned + interest, "total_interest_earned"),
        accumulated_interest_per_share=(
            pool.accumulated_interest_per_share
            + calculate_interest_per_share(interest, pool.total_liquidity)
        ),
    )
    changes = [UnitStateChange(pool_symbol, to_state_dict(pool), to_state_dict(new_pool))]
    origin = TransactionOrigin(OriginType.CONTRACT, caller, pool_symbol, "repay")
    events = [emit("repay", pool_symbol, loan_id=loan_id, total_amount=principal + interest)]
    return build_transaction(view, [], changes, origin, events)
