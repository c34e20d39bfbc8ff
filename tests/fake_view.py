"""
fake_view.py - Test Helper for LedgerView

Provides a minimal LedgerView implementation for testing compute functions
without requiring a full Ledger instance.
"""

from __future__ import annotations
import copy
from datetime import datetime
from decimal import Decimal
from typing import Dict, Set, Optional, Any

from remitpool import LedgerView, UnitNotRegistered
from remitpool.core import Unit


# Type aliases (matching core.py)
Positions = Dict[str, Decimal]
UnitState = Dict[str, Any]


class FakeView:
    """
    Minimal LedgerView implementation for testing compute functions.

    Example:
        view = FakeView(
            balances={'alice': {'USDC': 1000}},
            states={'POOL': create_pool_unit(...).state},
            time=datetime(2025, 1, 1)
        )

        pending = compute_deposit(view, 'POOL', 'alice', 500)
    """

    def __init__(
        self,
        balances: Dict[str, Dict[str, int]],
        states: Optional[Dict[str, UnitState]] = None,
        time: Optional[datetime] = None,
        units: Optional[Dict[str, Unit]] = None
    ):
        self._balances = balances
        self._states = states or {}
        self._time = time or datetime(2025, 1, 1)
        self._units = units or {}

    @property
    def current_time(self) -> datetime:
        return self._time

    def get_balance(self, wallet: str, unit: str) -> Decimal:
        return Decimal(self._balances.get(wallet, {}).get(unit, 0))

    def get_unit_state(self, unit: str) -> UnitState:
        if unit not in self._states:
            raise UnitNotRegistered(f"Unit {unit} not registered")
        return copy.deepcopy(self._states[unit])

    def get_positions(self, unit: str) -> Positions:
        return {
            w: Decimal(b[unit])
            for w, b in self._balances.items()
            if unit in b and b[unit] != 0
        }

    def list_wallets(self) -> Set[str]:
        return set(self._balances.keys())

    def get_unit(self, symbol: str) -> Any:
        return self._units[symbol]


def view_of(*units: Unit, balances: Optional[Dict[str, Dict[str, int]]] = None,
            time: Optional[datetime] = None) -> FakeView:
    """Build a FakeView holding the given units' initial states."""
    return FakeView(
        balances=balances or {},
        states={u.symbol: u.state for u in units},
        time=time,
        units={u.symbol: u for u in units},
    )
