"""
Tests for the batch orchestrator.

Full runs of SLAEscalationEngine over the in-memory store and recording
transports:
- Idempotent warnings and monotonic escalation across runs
- Escalation precedence (scenario B)
- Channel failures never block the marker write
- Unresolvable recipients counted
- Per-finding failures isolated
- Run deadline
"""
import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from helpers import NOW, RecordingTransport, finding_row, profile_row, sla_config_row


def _engine(store, dispatcher, now=NOW, **kwargs):
    from sla_escalation.services.orchestrator import SLAEscalationEngine
    return SLAEscalationEngine(store=store, dispatcher=dispatcher, clock=lambda: now, **kwargs)


def _run(store, dispatcher, now=NOW, **kwargs):
    return asyncio.run(_engine(store, dispatcher, now, **kwargs).run())


def _seed_people(mock_data):
    mock_data["profiles"].extend([
        profile_row("owner-1", phone="+96650000001"),
        profile_row("manager-1", role="hsse_manager"),
        profile_row("admin-1", role="admin", preferred_language="ar"),
    ])


class TestWarnings:
    """Warning path through the engine."""

    @pytest.mark.e2e
    def test_scenario_a_warning_sent_once(self, store, mock_data, dispatcher, recording_transport):
        _seed_people(mock_data)
        row = finding_row("AIF-A", due_in_days=2, classification="minor_nc")
        mock_data["area_inspection_findings"].append(row)

        first = _run(store, dispatcher)

        assert first.warnings_sent == 1
        assert row["warning_sent_at"] == NOW.isoformat()
        assert recording_transport.sent("email")[0]["to"] == "owner-1@example.com"
        assert recording_transport.sent("whatsapp")[0]["phone"] == "+96650000001"

        second = _run(store, dispatcher, now=NOW + timedelta(hours=1))

        assert second.warnings_sent == 0
        assert len(recording_transport.sent("email")) == 1

    @pytest.mark.e2e
    def test_tenant_policy_widens_warning_window(self, store, mock_data, dispatcher):
        _seed_people(mock_data)
        mock_data["finding_sla_configs"].append(sla_config_row("major_nc", warning_days_before=5))
        mock_data["area_inspection_findings"].append(finding_row("AIF-T", due_in_days=4))

        summary = _run(store, dispatcher)

        assert summary.warnings_sent == 1

    @pytest.mark.e2e
    def test_default_window_not_reached(self, store, mock_data, dispatcher, recording_transport):
        _seed_people(mock_data)
        row = finding_row("AIF-D", due_in_days=4, classification="major_nc")
        mock_data["area_inspection_findings"].append(row)

        summary = _run(store, dispatcher)

        assert summary.warnings_sent == 0
        assert row["warning_sent_at"] is None
        assert recording_transport.requests == []

    @pytest.mark.e2e
    def test_warning_committed_when_all_channels_fail(self, store, mock_data):
        _seed_people(mock_data)
        row = finding_row("AIF-F", due_in_days=1)
        mock_data["area_inspection_findings"].append(row)
        dispatcher = RecordingTransport(fail_channels={"email", "whatsapp"}).build_dispatcher()

        summary = _run(store, dispatcher)

        assert summary.warnings_sent == 1
        assert row["warning_sent_at"] == NOW.isoformat()

    @pytest.mark.edge
    def test_warning_without_owner_not_committed(self, store, mock_data, dispatcher, recording_transport):
        row = finding_row("AIF-NOOWNER", due_in_days=1, created_by="ghost")
        mock_data["area_inspection_findings"].append(row)

        summary = _run(store, dispatcher)

        assert summary.warnings_sent == 0
        assert summary.unresolvable_recipients == 1
        assert summary.unresolvable_references == ["AIF-NOOWNER"]
        assert row["warning_sent_at"] is None
        assert recording_transport.requests == []


class TestEscalations:
    """Escalation path through the engine."""

    @pytest.mark.e2e
    def test_scenario_b_direct_level_2(self, store, mock_data, dispatcher, recording_transport):
        _seed_people(mock_data)
        row = finding_row("AIF-B", due_in_days=-5, classification="critical_nc")
        mock_data["area_inspection_findings"].append(row)

        summary = _run(store, dispatcher)

        assert summary.escalations_sent == 1
        assert summary.escalations_by_level == {1: 0, 2: 1}
        assert row["escalation_level"] == 2
        assert row["escalation_notes"] == "Auto-escalated to Level 2 - 5 days overdue"

        emails = recording_transport.sent("email")
        assert sorted(e["to"] for e in emails) == ["admin-1@example.com", "manager-1@example.com"]
        subjects = {e["to"]: e["subject"] for e in emails}
        assert "[CRITICAL]" in subjects["manager-1@example.com"]
        assert "[حرج]" in subjects["admin-1@example.com"]

    @pytest.mark.e2e
    def test_level_1_then_level_2_across_runs(self, store, mock_data, dispatcher):
        _seed_people(mock_data)
        # major_nc defaults: first 2 days, second 4 days
        row = finding_row("AIF-M", due_in_days=-2, classification="major_nc")
        mock_data["area_inspection_findings"].append(row)

        first = _run(store, dispatcher)
        assert first.escalations_by_level == {1: 1, 2: 0}
        assert row["escalation_level"] == 1

        repeat = _run(store, dispatcher, now=NOW + timedelta(days=1))
        assert repeat.escalations_sent == 0
        assert row["escalation_level"] == 1

        later = _run(store, dispatcher, now=NOW + timedelta(days=2))
        assert later.escalations_by_level == {1: 0, 2: 1}
        assert row["escalation_level"] == 2
        assert row["escalation_notes"] == "Auto-escalated to Level 2 - 4 days overdue"

        final = _run(store, dispatcher, now=NOW + timedelta(days=30))
        assert final.escalations_sent == 0
        assert row["escalation_level"] == 2

    @pytest.mark.edge
    def test_escalation_without_managers_still_committed(self, store, mock_data, dispatcher, recording_transport):
        row = finding_row("AIF-NOMGR", due_in_days=-3)
        mock_data["area_inspection_findings"].append(row)

        summary = _run(store, dispatcher)

        assert row["escalation_level"] == 1
        assert summary.escalations_sent == 0
        assert summary.unresolvable_recipients == 1
        assert recording_transport.requests == []

    @pytest.mark.e2e
    def test_escalation_committed_when_delivery_fails(self, store, mock_data):
        _seed_people(mock_data)
        row = finding_row("AIF-X", due_in_days=-3)
        mock_data["area_inspection_findings"].append(row)
        dispatcher = RecordingTransport(fail_channels={"email"}).build_dispatcher()

        summary = _run(store, dispatcher)

        assert summary.escalations_sent == 1
        assert row["escalation_level"] == 1


class TestCandidateSet:
    """Which findings a run looks at."""

    @pytest.mark.e2e
    def test_terminal_and_undated_never_evaluated(self, store, mock_data, dispatcher, recording_transport):
        _seed_people(mock_data)
        closed = finding_row("AIF-CLOSED", due_in_days=-10, status="closed")
        undated = finding_row("AIF-C", due_in_days=None)
        mock_data["area_inspection_findings"].extend([closed, undated])

        summary = _run(store, dispatcher)

        assert summary.findings_checked == 0
        assert closed["escalation_level"] == 0
        assert undated["escalation_level"] == 0
        assert recording_transport.requests == []

    @pytest.mark.edge
    def test_malformed_row_counted_as_error(self, store, mock_data, dispatcher):
        _seed_people(mock_data)
        mock_data["area_inspection_findings"].extend([
            finding_row("AIF-OK", due_in_days=1),
            finding_row("AIF-BAD", escalation_level="high"),
        ])

        summary = _run(store, dispatcher)

        assert summary.findings_checked == 2
        assert summary.warnings_sent == 1
        assert summary.errors == [{"finding": "AIF-BAD", "error": "malformed finding row"}]


class TestFailureIsolation:
    """Per-finding failures and run-level failures."""

    @pytest.mark.edge
    def test_item_failure_does_not_stop_run(self, store, mock_data, dispatcher):
        _seed_people(mock_data)
        good = finding_row("AIF-GOOD", due_in_days=1)
        bad = finding_row("AIF-BOOM", due_in_days=1, created_by="boom")
        mock_data["area_inspection_findings"].extend([bad, good])

        original = store.get_profile

        def get_profile(profile_id):
            if profile_id == "boom":
                raise ConnectionError("profiles unavailable")
            return original(profile_id)

        store.get_profile = get_profile

        summary = _run(store, dispatcher)

        assert summary.warnings_sent == 1
        assert good["warning_sent_at"] is not None
        assert bad["warning_sent_at"] is None
        assert summary.errors == [{"finding": "AIF-BOOM", "error": "profiles unavailable"}]
        assert summary.to_response()["errors"] == 1

    @pytest.mark.edge
    def test_policy_load_failure_aborts_run(self, store_factory, mock_data, dispatcher):
        from sla_escalation.core.exceptions import DatabaseError

        row = finding_row("AIF-1", due_in_days=1)
        mock_data["area_inspection_findings"].append(row)

        with pytest.raises(DatabaseError):
            _run(store_factory({"finding_sla_configs"}), dispatcher)

        assert row["warning_sent_at"] is None

    @pytest.mark.edge
    def test_run_deadline(self, store, mock_data):
        _seed_people(mock_data)
        row = finding_row("AIF-SLOW", due_in_days=1)
        mock_data["area_inspection_findings"].append(row)

        async def slow_dispatch(recipient, message):
            await asyncio.sleep(5)

        dispatcher = MagicMock()
        dispatcher.dispatch = AsyncMock(side_effect=slow_dispatch)

        summary = _run(store, dispatcher, run_timeout_seconds=0.05)

        assert summary.timed_out is True
        assert summary.warnings_sent == 0
        assert row["warning_sent_at"] is None
        assert summary.to_response()["timedOut"] is True

    @pytest.mark.unit
    def test_invalid_concurrency_rejected(self, store, dispatcher):
        from sla_escalation.core.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            _engine(store, dispatcher, max_concurrent_items=0)


class TestRunSummary:
    """Aggregate counts and response body."""

    @pytest.mark.unit
    def test_response_body(self, store, mock_data, dispatcher):
        _seed_people(mock_data)
        mock_data["area_inspection_findings"].extend([
            finding_row("AIF-W", due_in_days=1),
            finding_row("AIF-E", due_in_days=-3),
            finding_row("AIF-N", due_in_days=30),
        ])

        response = _run(store, dispatcher).to_response()

        assert response == {
            "success": True,
            "warningsSent": 1,
            "escalationsSent": 1,
            "findingsChecked": 3,
            "escalationsByLevel": {"1": 1, "2": 0},
            "unresolvableRecipients": 0,
            "errors": 0,
            "timedOut": False,
        }

    @pytest.mark.unit
    def test_unresolvable_references_capped(self):
        from sla_escalation.models.enums import TemporalState
        from sla_escalation.services.due_dates import Evaluation
        from sla_escalation.services.orchestrator import (
            MAX_UNRESOLVABLE_REFERENCES,
            FindingOutcome,
            RunSummary,
        )

        summary = RunSummary()
        for i in range(MAX_UNRESOLVABLE_REFERENCES + 10):
            summary.record(FindingOutcome(
                reference_id=f"AIF-{i}",
                evaluation=Evaluation(TemporalState.NEEDS_WARNING, 1),
                unresolvable_recipient=True,
            ))

        assert summary.unresolvable_recipients == MAX_UNRESOLVABLE_REFERENCES + 10
        assert len(summary.unresolvable_references) == MAX_UNRESOLVABLE_REFERENCES
