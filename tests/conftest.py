"""
conftest.py - Shared pytest fixtures for remitpool tests

Provides common fixtures used across unit, functional and conformance tests:
- An empty ledger with the pool asset registered
- A fully deployed protocol (pool, registry, loan manager, verifier)
- A funded pool and a borrower holding a high-score credential
- Helpers for issuance and state comparison
"""

import pytest
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from remitpool import (
    Ledger, Move, SYSTEM_WALLET,
    asset, build_transaction,
)
from remitpool import protocol


START = datetime(2025, 1, 1)
ASSET = "USDC"
WALLETS = ("lender", "lender2", "borrower", "borrower2", "admin", "op")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def fund(ledger: Ledger, wallet: str, amount: int) -> None:
    """Issue `amount` of the pool asset to `wallet` from SYSTEM_WALLET."""
    ledger.execute_or_raise(build_transaction(ledger, [
        Move(Decimal(amount), ASSET, SYSTEM_WALLET, wallet, f"issuance_{wallet}_{len(ledger.transaction_log)}")
    ]))


def balance(ledger: Ledger, wallet: str) -> int:
    return int(ledger.get_balance(wallet, ASSET))


def snapshot(ledger: Ledger) -> Dict[str, Any]:
    """Capture every balance and unit state for before/after comparison."""
    return {
        'balances': {
            w: dict(ledger.get_wallet_balances(w)) for w in sorted(ledger.list_wallets())
        },
        'states': {u: ledger.get_unit_state(u) for u in ledger.list_units()},
        'events': len(ledger.event_log),
        'transactions': len(ledger.transaction_log),
    }


def make_ledger() -> Ledger:
    ledger = Ledger("test", initial_time=START, verbose=False)
    ledger.register_unit(asset(ASSET, "USD Coin"))
    for wallet in WALLETS:
        ledger.register_wallet(wallet)
    return ledger


def make_deployed(**kwargs) -> tuple:
    ledger = make_ledger()
    d = protocol.deploy(ledger, ASSET, owner="admin", operators=("op",), **kwargs)
    return ledger, d


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def ledger() -> Ledger:
    """Empty ledger with the pool asset and the standard wallets registered."""
    return make_ledger()


@pytest.fixture
def deployed():
    """Ledger with all four components deployed and wired."""
    return make_deployed()


@pytest.fixture
def funded(deployed):
    """Deployed protocol where `lender` has deposited 1,000,000."""
    ledger, d = deployed
    fund(ledger, "lender", 1_000_000)
    protocol.deposit(ledger, d.pool, "lender", 1_000_000)
    return ledger, d


@pytest.fixture
def credential(funded):
    """Funded protocol plus a score-95 credential owned by `borrower`."""
    ledger, d = funded
    token_id = protocol.mint_credential(
        ledger, d.registry, "borrower", "borrower",
        monthly_amount=20_000, reliability_score=95,
        history_months=24, total_sent=480_000,
    )
    return ledger, d, token_id


@pytest.fixture
def active_loan(credential):
    """A 100,000 / 12-month loan against the score-95 credential, approved."""
    ledger, d, token_id = credential
    loan_id = protocol.request_loan(ledger, d.loan_manager, "borrower", token_id, 100_000, 12)
    protocol.approve_loan(ledger, d.loan_manager, loan_id)
    return ledger, d, token_id, loan_id

