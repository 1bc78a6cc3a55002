"""Tests for the tools module."""

import pytest

from dispute_resolution.collaborators import ConversationLog, LocalLedger
from dispute_resolution.config import settings
from dispute_resolution.data.seed import seed_data
from dispute_resolution.tools.references import get_transaction_reference, list_my_transactions
from dispute_resolution.tools.disputes import (
    accept_dispute,
    cancel_dispute,
    check_dispute_eligibility,
    escalate_dispute,
    file_dispute,
    get_dispute,
    get_dispute_stats,
    list_user_disputes,
    offer_partial_refund,
    resolve_dispute,
    respond_to_partial_refund,
    retry_settlement,
)
from dispute_resolution.utils.resilience import CircuitBreaker, TTLCounterStore
from dispute_resolution.utils.session import reset_current_actor, set_current_actor


@pytest.fixture
def live_storage(temp_data_dir, monkeypatch):
    """Storage seeded relative to the real clock, patched into the tool modules."""
    storage = seed_data(temp_data_dir)
    monkeypatch.setattr("dispute_resolution.tools.disputes.Storage", lambda: storage)
    monkeypatch.setattr("dispute_resolution.tools.references.Storage", lambda: storage)
    monkeypatch.setattr("dispute_resolution.tools.disputes._conversations", ConversationLog())
    monkeypatch.setattr("dispute_resolution.tools.disputes._counters", TTLCounterStore())
    monkeypatch.setattr(
        "dispute_resolution.tools.disputes._circuit_breaker",
        CircuitBreaker(failure_threshold=5, recovery_timeout=3600),
    )
    monkeypatch.setattr(settings, "log_dir", temp_data_dir / "logs")
    monkeypatch.setattr(settings, "pii_use_presidio", False)
    monkeypatch.setattr(settings.resilience, "retry_base_delay", 0)
    return storage


@pytest.fixture
def act_as():
    """Switch the session actor; restored after the test."""
    tokens = []

    def switch(user_id, role="user"):
        tokens.append(set_current_actor(user_id, role))

    yield switch
    for token in reversed(tokens):
        reset_current_actor(token)


@pytest.fixture
def ledger_outage(monkeypatch):
    """Make the local ledger fail its next N calls; returns the counters."""
    state = {"failures": 0, "calls": 0}
    record = LocalLedger._record

    def flaky_record(self, kind, reference_id, amount, idempotency_key):
        state["calls"] += 1
        if state["failures"] > 0:
            state["failures"] -= 1
            raise ConnectionError("ledger unavailable")
        return record(self, kind, reference_id, amount, idempotency_key)

    monkeypatch.setattr(LocalLedger, "_record", flaky_record)
    return state


def file_o1() -> dict:
    return file_dispute.invoke({
        "reference_kind": "order",
        "reference_id": "O1",
        "category": "shipping_damaged",
        "description": "The mug arrived cracked.",
        "evidence_images": [{"url": "https://cdn.example.com/crack.jpg", "name": "crack.jpg"}],
    })


class TestReferenceTools:
    """Tests for transaction lookups."""

    def test_list_my_transactions(self, live_storage, act_as):
        act_as("user_001")
        result = list_my_transactions.invoke({})
        ids = {t["id"] for t in result["transactions"]}
        assert ids == {"O1", "O2", "O3", "C1"}

    def test_list_filtered_and_limited(self, live_storage, act_as):
        act_as("user_001")
        result = list_my_transactions.invoke({"reference_kind": "order", "limit": 2})
        assert result["count"] == 3
        assert result["total_shown"] == 2

    def test_counterparty_sees_transaction(self, live_storage, act_as):
        act_as("shop_001")
        result = get_transaction_reference.invoke({"reference_kind": "order", "reference_id": "O1"})
        assert result["found"] is True
        assert result["customer"]["display_name"] == "Andrea Cruz"
        assert result["open_dispute_id"] is None

    def test_stranger_cannot_see_transaction(self, live_storage, act_as):
        act_as("user_002")
        result = get_transaction_reference.invoke({"reference_kind": "order", "reference_id": "O1"})
        assert result["found"] is False


class TestFilingTools:
    """Tests for eligibility and filing."""

    def test_check_eligibility(self, live_storage, act_as):
        act_as("user_001")
        result = check_dispute_eligibility.invoke({"reference_kind": "order", "reference_id": "O1"})
        assert result == {"can_file": True}

    def test_check_eligibility_closed_window(self, live_storage, act_as):
        act_as("user_001")
        result = check_dispute_eligibility.invoke({"reference_kind": "order", "reference_id": "O3"})
        assert result["can_file"] is False
        assert "deadline" in result["reason"]

    def test_file_dispute(self, live_storage, act_as):
        act_as("user_001")
        result = file_o1()

        assert result["success"] is True
        assert result["dispute"]["stage"] == "negotiation"
        assert result["dispute"]["evidence_images"] == 1
        assert live_storage.get_dispute_by_id(result["dispute_id"]) is not None

    def test_duplicate_filing(self, live_storage, act_as):
        act_as("user_001")
        file_o1()
        result = file_o1()
        assert result["success"] is False
        assert result["error"] == "conflict"

    def test_file_with_bad_evidence(self, live_storage, act_as):
        act_as("user_001")
        result = file_dispute.invoke({
            "reference_kind": "order",
            "reference_id": "O1",
            "category": "shipping_damaged",
            "description": "Cracked",
            "evidence_images": [{"url": "not a url", "name": "crack.jpg"}],
        })
        assert result["success"] is False
        assert result["error"] == "validation_error"


class TestLifecycleTools:
    """Tests driving a dispute through the tools as each party."""

    def test_partial_refund_flow(self, live_storage, act_as):
        act_as("user_001")
        dispute_id = file_o1()["dispute_id"]

        act_as("shop_001")
        offered = offer_partial_refund.invoke({"dispute_id": dispute_id, "amount": 400})
        assert offered["success"] is True
        assert offered["dispute"]["partial_refund_offer"]["amount"] == "400.00"

        act_as("user_001")
        accepted = respond_to_partial_refund.invoke({"dispute_id": dispute_id, "action": "accept"})
        assert accepted["success"] is True
        assert accepted["dispute"]["status"] == "closed"
        assert accepted["dispute"]["resolution_outcome"] == "partial_refund"

        entries = {(e.kind, str(e.amount)) for e in live_storage.get_ledger_entries()}
        assert entries == {("refund", "400.00"), ("release", "600.00")}

    def test_offer_over_total(self, live_storage, act_as):
        act_as("user_001")
        dispute_id = file_o1()["dispute_id"]

        act_as("shop_001")
        result = offer_partial_refund.invoke({"dispute_id": dispute_id, "amount": 1200})
        assert result["success"] is False
        assert result["error"] == "validation_error"

    def test_accept_and_repeat(self, live_storage, act_as):
        act_as("user_001")
        dispute_id = file_o1()["dispute_id"]

        act_as("shop_001")
        assert accept_dispute.invoke({"dispute_id": dispute_id})["success"] is True
        again = accept_dispute.invoke({"dispute_id": dispute_id})
        assert again["error"] == "conflict"
        assert len(live_storage.get_ledger_entries()) == 1

    def test_only_filer_cancels(self, live_storage, act_as):
        act_as("user_001")
        dispute_id = file_o1()["dispute_id"]

        act_as("shop_001")
        result = cancel_dispute.invoke({"dispute_id": dispute_id})
        assert result["error"] == "authorization_error"

        act_as("user_001")
        result = cancel_dispute.invoke({"dispute_id": dispute_id, "reason": "Resolved by chat"})
        assert result["dispute"]["resolution_outcome"] == "dismissed"

    def test_escalate_and_arbiter_resolves(self, live_storage, act_as):
        act_as("user_001")
        dispute_id = file_o1()["dispute_id"]
        escalated = escalate_dispute.invoke({"dispute_id": dispute_id, "reason": "No reply"})
        assert escalated["dispute"]["stage"] == "admin_review"

        act_as("shop_001")
        denied = resolve_dispute.invoke({
            "dispute_id": dispute_id, "outcome": "released", "reason": "Shipped fine",
        })
        assert denied["error"] == "authorization_error"

        act_as("admin_001", role="arbiter")
        resolved = resolve_dispute.invoke({
            "dispute_id": dispute_id, "outcome": "refunded", "reason": "Damage confirmed",
        })
        assert resolved["success"] is True
        assert resolved["dispute"]["resolution_outcome"] == "refunded"

    def test_get_dispute(self, live_storage, act_as):
        act_as("user_001")
        dispute_id = file_o1()["dispute_id"]

        act_as("shop_001")
        result = get_dispute.invoke({"dispute_id": dispute_id})
        assert result["success"] is True
        assert result["filer"]["display_name"] == "Andrea Cruz"
        assert "offer_partial_refund" in result["available_actions"]

        act_as("user_002")
        assert get_dispute.invoke({"dispute_id": dispute_id})["success"] is False

    def test_get_missing_dispute(self, live_storage, act_as):
        act_as("user_001")
        result = get_dispute.invoke({"dispute_id": "nope"})
        assert result["error"] == "not_found"

    def test_list_user_disputes(self, live_storage, act_as):
        act_as("user_001")
        assert list_user_disputes.invoke({})["count"] == 0
        file_o1()

        result = list_user_disputes.invoke({"status": "open"})
        assert result["count"] == 1

        act_as("shop_001")
        assert list_user_disputes.invoke({})["count"] == 1

        act_as("user_002")
        assert list_user_disputes.invoke({})["count"] == 0

    def test_list_with_bad_filter(self, live_storage, act_as):
        act_as("user_001")
        result = list_user_disputes.invoke({"stage": "archived"})
        assert result["success"] is False


class TestSettlementTools:
    """Tests for settlement recovery through the tools."""

    def test_retry_settlement_after_outage(self, live_storage, act_as, ledger_outage):
        act_as("user_001")
        dispute_id = file_o1()["dispute_id"]

        act_as("shop_001")
        ledger_outage["failures"] = settings.resilience.max_retries
        failed = accept_dispute.invoke({"dispute_id": dispute_id})
        assert failed["success"] is False
        assert failed["error"] == "settlement_error"

        pending = get_dispute.invoke({"dispute_id": dispute_id})
        assert pending["dispute"]["status"] == "open"
        assert pending["dispute"]["settlement_pending"]["outcome"] == "refunded"

        retried = retry_settlement.invoke({"dispute_id": dispute_id})
        assert retried["success"] is True
        assert retried["dispute"]["status"] == "closed"
        assert retried["dispute"]["resolution_outcome"] == "refunded"
        assert len(live_storage.get_ledger_entries()) == 1

    def test_retry_without_failure(self, live_storage, act_as):
        act_as("user_001")
        dispute_id = file_o1()["dispute_id"]
        result = retry_settlement.invoke({"dispute_id": dispute_id})
        assert result["error"] == "conflict"

    def test_breaker_opens_across_tool_calls(self, live_storage, act_as, ledger_outage, monkeypatch):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=3600)
        monkeypatch.setattr("dispute_resolution.tools.disputes._circuit_breaker", breaker)

        act_as("user_001")
        dispute_id = file_o1()["dispute_id"]

        act_as("shop_001")
        ledger_outage["failures"] = 99
        assert accept_dispute.invoke({"dispute_id": dispute_id})["error"] == "settlement_error"
        assert retry_settlement.invoke({"dispute_id": dispute_id})["error"] == "settlement_error"
        assert breaker.state == "open"

        calls = ledger_outage["calls"]
        blocked = retry_settlement.invoke({"dispute_id": dispute_id})
        assert blocked["error"] == "settlement_error"
        assert ledger_outage["calls"] == calls


class TestStatsTool:
    """Tests for arbiter statistics."""

    def test_arbiter_sees_stats(self, live_storage, act_as):
        act_as("user_001")
        file_o1()

        act_as("admin_001", role="arbiter")
        result = get_dispute_stats.invoke({})
        assert result["success"] is True
        assert result["stats"]["total"] == 1
        assert result["stats"]["negotiation"] == 1

    def test_party_cannot_see_stats(self, live_storage, act_as):
        act_as("user_001")
        result = get_dispute_stats.invoke({})
        assert result["error"] == "authorization_error"
