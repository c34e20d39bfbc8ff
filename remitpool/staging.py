"""
staging.py - Read-through overlay for composing component calls

A single protocol entry point often spans several components: approving a
loan stakes a credential in the registry, draws funds from the pool and
updates the loan book. Each step is a pure compute function over a
LedgerView. StagedView lets a later step see the deltas of earlier steps
without touching the ledger, then coalesces everything into ONE
PendingTransaction so the ledger applies all of it or none of it.

    staged = StagedView(ledger)
    staged.stage(compute_stake(staged, registry, manager, token_id, loan_id))
    staged.stage(compute_borrow(staged, pool, manager, amount, borrower, loan_id))
    pending = staged.build(origin)
"""

from __future__ import annotations
import copy
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Set, Tuple

from .core import (
    LedgerView, Move, PendingTransaction, ProtocolEvent, TransactionOrigin,
    Unit, UnitState, UnitStateChange, Positions,
)


class StagedView:
    """
    LedgerView over a base view plus staged, uncommitted transactions.

    Balances include the net effect of staged moves; unit state reflects the
    latest staged new_state. Everything else reads through to the base view.
    """

    def __init__(self, base: LedgerView):
        self._base = base
        self._moves: List[Move] = []
        self._events: List[ProtocolEvent] = []
        self._states: Dict[str, UnitState] = {}
        self._order: List[str] = []
        self._deltas: Dict[Tuple[str, str], Decimal] = {}

    @property
    def current_time(self) -> datetime:
        return self._base.current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        base = self._base.get_balance(wallet_id, unit_symbol)
        return base + self._deltas.get((wallet_id, unit_symbol), Decimal("0"))

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        if unit_symbol in self._states:
            return copy.deepcopy(self._states[unit_symbol])
        return self._base.get_unit_state(unit_symbol)

    def get_positions(self, unit_symbol: str) -> Positions:
        positions = self._base.get_positions(unit_symbol)
        for (wallet, symbol), delta in self._deltas.items():
            if symbol != unit_symbol:
                continue
            positions[wallet] = positions.get(wallet, Decimal("0")) + delta
        return {w: q for w, q in positions.items() if q != 0}

    def list_wallets(self) -> Set[str]:
        return self._base.list_wallets()

    def get_unit(self, symbol: str) -> Unit:
        return self._base.get_unit(symbol)

    def stage(self, pending: PendingTransaction) -> PendingTransaction:
        """
        Overlay a pending transaction onto this view.

        Returns the pending transaction unchanged so calls can be chained.
        """
        for move in pending.moves:
            self._moves.append(move)
            src = (move.source, move.unit_symbol)
            dst = (move.dest, move.unit_symbol)
            self._deltas[src] = self._deltas.get(src, Decimal("0")) - move.quantity
            self._deltas[dst] = self._deltas.get(dst, Decimal("0")) + move.quantity
        for sc in pending.state_changes:
            if sc.unit not in self._states:
                self._order.append(sc.unit)
            self._states[sc.unit] = copy.deepcopy(sc.new_state)
        self._events.extend(pending.events)
        return pending

    def build(self, origin: TransactionOrigin) -> PendingTransaction:
        """
        Coalesce everything staged into one PendingTransaction.

        Each touched unit contributes a single state change whose old_state
        is the base view's state, so the ledger detects any interleaved write.
        """
        state_changes = tuple(
            UnitStateChange(
                unit=symbol,
                old_state=self._base.get_unit_state(symbol),
                new_state=copy.deepcopy(self._states[symbol]),
            )
            for symbol in self._order
        )
        return PendingTransaction(
            moves=tuple(self._moves),
            state_changes=state_changes,
            origin=origin,
            timestamp=self.current_time,
            events=tuple(self._events),
        )
