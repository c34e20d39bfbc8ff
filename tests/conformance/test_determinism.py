"""
Determinism Conformance Tests

INVARIANT: The same operations from the same starting state produce the
same ledger, bit for bit.

    run(ops, L0) = run(ops, L0')   when L0 = L0'

Intent ids are content hashes, so identical runs also produce identical
transaction identities.
"""

from hypothesis import given, settings
from hypothesis import strategies as st
from datetime import timedelta

from remitpool import LedgerError
from remitpool import protocol
from tests.conftest import fund, snapshot, make_deployed


def _run(amounts):
    ledger, d = make_deployed()
    fund(ledger, "lender", 1_000_000)
    fund(ledger, "borrower", 50_000)
    protocol.deposit(ledger, d.pool, "lender", 1_000_000)
    token_id = protocol.mint_credential(ledger, d.registry, "borrower", "borrower", 10_000, 81, 12, 120_000)
    loan_id = protocol.request_loan(ledger, d.loan_manager, "borrower", token_id, 80_000, 10)
    protocol.approve_loan(ledger, d.loan_manager, loan_id)
    for amount in amounts:
        ledger.advance_time(ledger.current_time + timedelta(days=30))
        try:
            protocol.make_payment(ledger, d.loan_manager, loan_id, amount)
        except LedgerError:
            pass
    return ledger


class TestDeterminism:
    """Replaying a run reproduces it exactly."""

    @given(st.lists(st.integers(1, 20_000), max_size=12))
    @settings(max_examples=30, deadline=None)
    def test_replay_is_identical(self, amounts):
        first = _run(amounts)
        second = _run(amounts)
        assert snapshot(first) == snapshot(second)
        assert [tx.intent_id for tx in first.transaction_log] == [
            tx.intent_id for tx in second.transaction_log
        ]
        assert [repr(ev) for ev in first.get_events()] == [repr(ev) for ev in second.get_events()]

    def test_clone_replays_identically(self):
        ledger = _run([8_000, 8_000])
        clone = ledger.clone()
        assert snapshot(clone) == snapshot(ledger)
