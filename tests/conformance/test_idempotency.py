"""
Idempotency Conformance Tests

INVARIANTS:

    execute(T); execute(T)  ≡  execute(T)         (second call: ALREADY_APPLIED)
    a recomputed call after balances recur is a new intent and applies
    get_* queries never change balances, unit states or logs
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from remitpool import (
    ExecuteResult, InvalidState,
    get_pool_state, get_available_liquidity, get_utilization_rate, get_lender_info,
    get_pending_interest, verify_pool_reconciliation,
    get_valuation, get_collateral_value, get_loan, get_borrower_loans,
    get_defaulted_loans, get_verification_status,
)
from remitpool.units.pool import compute_deposit
from remitpool.units.collateral import get_owner_credentials
from remitpool.units.verifier import is_monitored
from remitpool import protocol
from tests.conftest import fund, balance, snapshot, make_deployed


class TestDuplicateExecution:
    """The same PendingTransaction is applied at most once."""

    @given(st.integers(1, 1_000_000))
    @settings(max_examples=30, deadline=None)
    def test_duplicate_deposit(self, amount):
        ledger, d = make_deployed()
        fund(ledger, "lender", 2_000_000)
        pending = compute_deposit(ledger, d.pool, "lender", amount)

        assert ledger.execute(pending) == ExecuteResult.APPLIED
        after_first = snapshot(ledger)
        assert ledger.execute(pending) == ExecuteResult.ALREADY_APPLIED
        assert snapshot(ledger) == after_first
        assert get_pool_state(ledger, d.pool).total_liquidity == amount
        assert balance(ledger, "lender") == 2_000_000 - amount

    @given(st.integers(1, 1_000_000))
    @settings(max_examples=30, deadline=None)
    def test_recomputed_deposit_after_round_trip_applies(self, amount):
        """Balances recur after a round trip; the replayed intent does not."""
        ledger, d = make_deployed()
        fund(ledger, "lender", amount)
        first = compute_deposit(ledger, d.pool, "lender", amount)
        ledger.execute_or_raise(first)
        protocol.withdraw(ledger, d.pool, "lender", amount)

        second = compute_deposit(ledger, d.pool, "lender", amount)
        assert second.intent_id != first.intent_id
        assert ledger.execute(first) == ExecuteResult.ALREADY_APPLIED
        assert ledger.execute(second) == ExecuteResult.APPLIED
        assert get_pool_state(ledger, d.pool).total_liquidity == amount

    def test_duplicate_raises_through_execute_or_raise(self, funded):
        ledger, d = funded
        fund(ledger, "lender2", 10)
        pending = compute_deposit(ledger, d.pool, "lender2", 10)
        ledger.execute_or_raise(pending)
        with pytest.raises(InvalidState):
            ledger.execute_or_raise(pending)


class TestQueriesAreReadOnly:
    """Every query leaves the ledger exactly as it found it."""

    def test_all_queries(self, active_loan):
        ledger, d, token_id, loan_id = active_loan
        protocol.request_verification(ledger, d.verifier, "borrower2", "wise", "acct")
        before = snapshot(ledger)

        for _ in range(2):
            get_pool_state(ledger, d.pool)
            get_available_liquidity(ledger, d.pool)
            get_utilization_rate(ledger, d.pool)
            get_lender_info(ledger, d.pool, "lender")
            get_lender_info(ledger, d.pool, "stranger")
            get_pending_interest(ledger, d.pool, "lender")
            verify_pool_reconciliation(ledger, d.pool)
            get_valuation(ledger, d.registry, token_id)
            get_collateral_value(ledger, d.registry, token_id, 12)
            get_owner_credentials(ledger, d.registry, "borrower")
            get_loan(ledger, d.loan_manager, loan_id)
            get_borrower_loans(ledger, d.loan_manager, "borrower")
            get_defaulted_loans(ledger, d.loan_manager)
            get_verification_status(ledger, d.verifier, "borrower2")
            is_monitored(ledger, d.verifier, loan_id)

        assert snapshot(ledger) == before

    def test_returned_state_is_detached(self, active_loan):
        ledger, d, _, loan_id = active_loan
        state = ledger.get_unit_state(d.loan_manager)
        state["loans"][loan_id]["outstanding_balance"] = 0
        assert get_loan(ledger, d.loan_manager, loan_id).outstanding_balance == 100_000

    def test_unknown_lender_reads_as_zero(self, funded):
        ledger, d = funded
        info = get_lender_info(ledger, d.pool, "stranger")
        assert info.principal == 0
        assert info.share_bps == 0
        assert get_pending_interest(ledger, d.pool, "stranger") == 0
