"""
Loan State Machine Conformance Tests

INVARIANTS:

    Status only moves forward:   Pending → Active → {Repaid | Defaulted}
    Repaid and Defaulted are terminal
    outstanding_balance is non-increasing while Active; reaching 0 ⟹ Repaid
    payments_missed ≥ 2 ⟹ Defaulted
    After every successful approval: utilization_bps ≤ max_utilization_bps
"""

import pytest
from hypothesis import given, settings, note
from hypothesis import strategies as st
from datetime import timedelta

from remitpool import (
    LedgerError, InvalidState, LoanStatus, get_loan, get_utilization_rate, get_pool_state,
)
from remitpool.units.loan_manager import LOAN_TRANSITIONS, DEFAULT_THRESHOLD_MISSED
from remitpool import protocol
from tests.conftest import fund, make_deployed


ORDER = {
    LoanStatus.PENDING: 0,
    LoanStatus.ACTIVE: 1,
    LoanStatus.REPAID: 2,
    LoanStatus.DEFAULTED: 2,
}

loan_action = st.one_of(
    st.just(("approve", 0)),
    st.just(("miss", 0)),
    st.tuples(st.just("pay"), st.integers(1, 60_000)),
)


class TestTransitionTable:
    """Static shape of LOAN_TRANSITIONS."""

    def test_every_edge_moves_forward(self):
        for source, targets in LOAN_TRANSITIONS.items():
            for target in targets:
                assert ORDER[target] > ORDER[source]

    def test_terminal_states(self):
        terminal = {s for s, targets in LOAN_TRANSITIONS.items() if not targets}
        assert terminal == {LoanStatus.REPAID, LoanStatus.DEFAULTED}


class TestLoanLifecycleProperties:
    """Random operation sequences against one loan."""

    @given(st.lists(loan_action, max_size=30))
    @settings(max_examples=80, deadline=None)
    def test_status_is_monotonic(self, actions):
        ledger, d = make_deployed()
        fund(ledger, "lender", 1_000_000)
        fund(ledger, "borrower", 200_000)
        protocol.deposit(ledger, d.pool, "lender", 1_000_000)
        token_id = protocol.mint_credential(ledger, d.registry, "borrower", "borrower", 10_000, 75, 24, 240_000)
        loan_id = protocol.request_loan(ledger, d.loan_manager, "borrower", token_id, 150_000, 12)

        prev = get_loan(ledger, d.loan_manager, loan_id)
        for kind, amount in actions:
            ledger.advance_time(ledger.current_time + timedelta(days=1))
            try:
                if kind == "approve":
                    protocol.approve_loan(ledger, d.loan_manager, loan_id)
                elif kind == "miss":
                    protocol.mark_payment_missed(ledger, d.loan_manager, d.verifier, loan_id)
                else:
                    protocol.make_payment(ledger, d.loan_manager, loan_id, amount)
            except LedgerError as exc:
                note(f"{kind} rejected: {type(exc).__name__}")

            loan = get_loan(ledger, d.loan_manager, loan_id)
            assert loan.status == prev.status or loan.status in LOAN_TRANSITIONS[prev.status]
            if prev.status == LoanStatus.ACTIVE:
                assert loan.outstanding_balance <= prev.outstanding_balance
            if loan.outstanding_balance <= 0:
                assert loan.status == LoanStatus.REPAID
            if loan.payments_missed >= DEFAULT_THRESHOLD_MISSED:
                assert loan.status == LoanStatus.DEFAULTED
            if prev.is_terminal:
                assert loan == prev
            prev = loan

    @pytest.mark.parametrize("finish", ["repay", "default"])
    def test_terminal_loans_reject_everything(self, active_loan, finish):
        ledger, d, _, loan_id = active_loan
        if finish == "repay":
            fund(ledger, "borrower", 1_250)
            protocol.make_payment(ledger, d.loan_manager, loan_id, 101_250)
        else:
            protocol.mark_payment_missed(ledger, d.loan_manager, d.verifier, loan_id)
            protocol.mark_payment_missed(ledger, d.loan_manager, d.verifier, loan_id)

        with pytest.raises(InvalidState):
            protocol.make_payment(ledger, d.loan_manager, loan_id, 1)
        with pytest.raises(InvalidState):
            protocol.approve_loan(ledger, d.loan_manager, loan_id)
        with pytest.raises(InvalidState):
            protocol.mark_payment_missed(ledger, d.loan_manager, d.verifier, loan_id)


class TestUtilizationBound:
    """Borrowing never pushes utilization past the cap."""

    @given(st.lists(st.integers(6, 400_000), min_size=1, max_size=8))
    @settings(max_examples=60, deadline=None)
    def test_cap_holds_after_every_approval(self, amounts):
        ledger, d = make_deployed()
        fund(ledger, "lender", 1_000_000)
        protocol.deposit(ledger, d.pool, "lender", 1_000_000)
        cap = get_pool_state(ledger, d.pool).max_utilization_bps

        for amount in amounts:
            token_id = protocol.mint_credential(ledger, d.registry, "borrower", "borrower", 50_000, 92, 24, 1)
            loan_id = protocol.request_loan(ledger, d.loan_manager, "borrower", token_id, amount, 6)
            try:
                protocol.approve_loan(ledger, d.loan_manager, loan_id)
            except LedgerError as exc:
                note(f"approve {amount} rejected: {type(exc).__name__}")
                continue
            assert get_utilization_rate(ledger, d.pool) <= cap
