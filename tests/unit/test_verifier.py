"""
test_verifier.py - Tests for the Remittance Verification Oracle

Tests:
- Reliability scoring from a confirmed history
- request / submit verification flow and operator allow-list
- Monitoring of approved loans
- Reported remittances and missed payments driving the loan manager
"""

import pytest

from remitpool import (
    InvalidState, NotFound, Unauthorized, InvalidAmount,
    PaymentRecord, VerificationStatus, LoanStatus,
    get_loan, get_verification_status,
)
from remitpool.units.collateral import load_credential
from remitpool.units.pool import load_pool
from remitpool.units.verifier import (
    calculate_reliability_score, get_verification_request, is_monitored,
    compute_start_monitoring, compute_submit_verification,
)
from remitpool import protocol
from tests.conftest import snapshot


def _history(paid, missed):
    flags = [True] * paid + [False] * missed
    return [PaymentRecord(i + 1, flag) for i, flag in enumerate(flags)]


class TestReliabilityScore:
    """Tests for calculate_reliability_score."""

    def test_no_history(self):
        assert calculate_reliability_score([]) == 100

    def test_share_of_paid_months(self):
        assert calculate_reliability_score(_history(3, 1)) == 75

    def test_truncates(self):
        # 2 of 3 -> 66.67
        assert calculate_reliability_score(_history(2, 1)) == 66


class TestVerificationFlow:
    """request_verification and submit_verification."""

    def test_request_is_pending(self, deployed):
        ledger, d = deployed
        protocol.request_verification(ledger, d.verifier, "borrower", "wise", "acct-1")
        request = get_verification_request(ledger, d.verifier, "borrower")
        assert request.status == VerificationStatus.PENDING
        assert request.provider == "wise"
        assert request.requested_at == ledger.current_time

    def test_submit_mints_scored_credential(self, deployed):
        ledger, d = deployed
        protocol.request_verification(ledger, d.verifier, "borrower", "wise", "acct-1")
        token_id = protocol.submit_verification(
            ledger, d.verifier, "op", "borrower", 5_000, 24, 120_000, _history(9, 1),
        )
        assert token_id == 1
        assert get_verification_status(ledger, d.verifier, "borrower") == VerificationStatus.VERIFIED
        assert get_verification_request(ledger, d.verifier, "borrower").token_id == token_id

        cred = load_credential(ledger, d.registry, token_id)
        assert cred.owner == "borrower"
        assert cred.reliability_score == 90
        assert cred.lifetime_missed_payments == 1
        assert ledger.get_events("verification_complete")[-1].data == {
            "user": "borrower", "score": 90, "token_id": 1,
        }

    def test_submit_twice(self, deployed):
        ledger, d = deployed
        protocol.request_verification(ledger, d.verifier, "borrower", "wise", "acct-1")
        protocol.submit_verification(ledger, d.verifier, "op", "borrower", 5_000, 24, 120_000)
        with pytest.raises(InvalidState):
            protocol.submit_verification(ledger, d.verifier, "op", "borrower", 5_000, 24, 120_000)

    def test_submit_without_request(self, deployed):
        ledger, d = deployed
        with pytest.raises(NotFound):
            compute_submit_verification(ledger, d.verifier, "op", "borrower", 1, 1, 1)

    def test_unknown_operator(self, deployed):
        ledger, d = deployed
        protocol.request_verification(ledger, d.verifier, "borrower", "wise", "acct-1")
        with pytest.raises(Unauthorized):
            compute_submit_verification(ledger, d.verifier, "borrower", "borrower", 1, 1, 1)

    def test_unknown_user_status(self, deployed):
        ledger, d = deployed
        with pytest.raises(NotFound):
            get_verification_status(ledger, d.verifier, "nobody")


class TestMonitoring:
    """Monitoring starts with loan approval."""

    def test_approved_loan_is_monitored(self, active_loan):
        ledger, d, token_id, loan_id = active_loan
        assert is_monitored(ledger, d.verifier, loan_id)
        assert ledger.get_unit_state(d.verifier)["monitored"][loan_id] == token_id

    def test_pending_loan_is_not_monitored(self, credential):
        ledger, d, token_id = credential
        loan_id = protocol.request_loan(ledger, d.loan_manager, "borrower", token_id, 1_000, 6)
        assert not is_monitored(ledger, d.verifier, loan_id)

    def test_only_loan_manager_starts_monitoring(self, deployed):
        ledger, d = deployed
        with pytest.raises(Unauthorized):
            compute_start_monitoring(ledger, d.verifier, "op", 1, 1)

    def test_loan_manager_starts_monitoring_directly(self, credential):
        ledger, d, token_id = credential
        loan_id = protocol.request_loan(ledger, d.loan_manager, "borrower", token_id, 1_000, 6)
        protocol.start_monitoring_loan(ledger, d.verifier, d.loan_manager, loan_id, token_id)
        assert is_monitored(ledger, d.verifier, loan_id)
        assert ledger.transaction_log[-1].events[0].name == "monitoring_started"


class TestReports:
    """report_remittance and report_missed_payment."""

    def test_remittance_pays_installment(self, active_loan):
        ledger, d, token_id, loan_id = active_loan
        leftover = protocol.report_remittance(ledger, d.verifier, "op", token_id, 12_000, loan_id)
        assert leftover == 2_417

        loan = get_loan(ledger, d.loan_manager, loan_id)
        assert loan.total_repaid == 9_583
        assert loan.outstanding_balance == 91_667

        cred = load_credential(ledger, d.registry, token_id)
        assert cred.monthly_amount == 12_000
        assert cred.total_sent == 492_000
        assert cred.history_months == 25
        assert cred.payment_history[-1] == PaymentRecord(25, True)

        names = [e.name for e in ledger.transaction_log[-1].events]
        assert names[0] == "collateral_updated"
        assert names[-1] == "remittance_reported"

    def test_remittance_on_unmonitored_loan(self, credential):
        ledger, d, token_id = credential
        loan_id = protocol.request_loan(ledger, d.loan_manager, "borrower", token_id, 1_000, 6)
        with pytest.raises(InvalidState):
            protocol.report_remittance(ledger, d.verifier, "op", token_id, 500, loan_id)

    def test_remittance_wrong_collateral(self, active_loan):
        ledger, d, token_id, loan_id = active_loan
        other = protocol.mint_credential(ledger, d.registry, "borrower", "borrower", 1, 90, 1, 1)
        with pytest.raises(InvalidState):
            protocol.report_remittance(ledger, d.verifier, "op", other, 500, loan_id)

    def test_remittance_requires_operator(self, active_loan):
        ledger, d, token_id, loan_id = active_loan
        with pytest.raises(Unauthorized):
            protocol.report_remittance(ledger, d.verifier, "borrower", token_id, 500, loan_id)

    def test_remittance_must_be_positive(self, active_loan):
        ledger, d, token_id, loan_id = active_loan
        with pytest.raises(InvalidAmount):
            protocol.report_remittance(ledger, d.verifier, "op", token_id, 0, loan_id)

    def test_two_missed_reports_default(self, active_loan):
        ledger, d, token_id, loan_id = active_loan
        protocol.report_missed_payment(ledger, d.verifier, "op", loan_id, token_id)
        protocol.report_missed_payment(ledger, d.verifier, "op", loan_id, token_id)

        loan = get_loan(ledger, d.loan_manager, loan_id)
        assert loan.status == LoanStatus.DEFAULTED
        cred = load_credential(ledger, d.registry, token_id)
        assert cred.lifetime_missed_payments == 2
        assert cred.reliability_score == 0
        assert cred.staked
        assert load_pool(ledger, d.pool).total_borrowed == 100_000

    def test_missed_report_is_all_or_nothing(self, active_loan):
        """The credential is not marked when the loan cannot take the miss."""
        ledger, d, token_id, loan_id = active_loan
        protocol.report_missed_payment(ledger, d.verifier, "op", loan_id, token_id)
        protocol.report_missed_payment(ledger, d.verifier, "op", loan_id, token_id)
        before = snapshot(ledger)
        with pytest.raises(InvalidState):
            protocol.report_missed_payment(ledger, d.verifier, "op", loan_id, token_id)
        assert snapshot(ledger) == before
        assert load_credential(ledger, d.registry, token_id).lifetime_missed_payments == 2

    def test_missed_report_on_unmonitored_loan(self, credential):
        ledger, d, token_id = credential
        loan_id = protocol.request_loan(ledger, d.loan_manager, "borrower", token_id, 1_000, 6)
        with pytest.raises(InvalidState):
            protocol.report_missed_payment(ledger, d.verifier, "op", loan_id, token_id)

    def test_missed_report_wrong_collateral(self, active_loan):
        """A miss on one loan cannot lower the score of an unrelated credential."""
        ledger, d, token_id, loan_id = active_loan
        other = protocol.mint_credential(ledger, d.registry, "borrower2", "borrower2", 1_000, 90, 12, 12_000)
        before = snapshot(ledger)
        with pytest.raises(InvalidState):
            protocol.report_missed_payment(ledger, d.verifier, "op", loan_id, other)
        assert snapshot(ledger) == before
        assert load_credential(ledger, d.registry, other).reliability_score == 90
