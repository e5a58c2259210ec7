"""
Tests for the escalation sweeper passes and the sweep scheduler.
"""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from caselink_core.config import REQUIRED_DOCUMENT_KINDS
from caselink_core.core.audit import AuditEmitter
from caselink_core.core.clock import FixedClock
from caselink_core.core.sweeper import EscalationSweeper, SweepScheduler
from caselink_core.errors import CaseConflictError
from caselink_core.models.audit import AuditAction
from caselink_core.models.case import CaseStatus, EscalationLevel, ReviewStatus

from conftest import START, make_case


async def seed(store, *cases):
    stored = []
    for case in cases:
        stored.append(await store.create(case))
    return stored


class TestReminderPass:

    @pytest.mark.asyncio
    async def test_no_reminder_before_24h(self, store, sweeper, clock, sink):
        (case,) = await seed(store, make_case())
        clock.advance(hours=23, minutes=59)

        report = await sweeper.run_reminder_pass()

        assert report.scanned == 1
        assert report.changed == 0
        assert (await store.get(case.id)).escalation_level == EscalationLevel.NONE
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_first_reminder_at_24h(self, store, sweeper, clock, sink):
        (case,) = await seed(store, make_case())
        clock.advance(hours=24)

        report = await sweeper.run_reminder_pass()

        assert report.changed == 1
        stored = await store.get(case.id)
        assert stored.escalation_level == EscalationLevel.FIRST
        assert stored.version == 2
        assert [e.action for e in sink.events_for(case.id)] == [AuditAction.ESCALATION_RAISED]

    @pytest.mark.asyncio
    async def test_pass_is_idempotent(self, store, sweeper, clock, sink):
        await seed(store, make_case(), make_case())
        clock.advance(hours=30)

        first = await sweeper.run_reminder_pass()
        second = await sweeper.run_reminder_pass()

        assert first.changed == 2
        assert second.changed == 0
        assert second.skipped == 2
        assert len(sink.events) == 2

    @pytest.mark.asyncio
    async def test_second_reminder_48h_after_confirmation(self, store, sweeper, clock):
        confirmed_at = START + timedelta(hours=26)
        (case,) = await seed(store, make_case(
            escalation_level=EscalationLevel.FIRST,
            last_escalation_confirmed_at=confirmed_at,
            updated_at=confirmed_at,
        ))

        clock.set(confirmed_at + timedelta(hours=47))
        await sweeper.run_reminder_pass()
        assert (await store.get(case.id)).escalation_level == EscalationLevel.FIRST

        clock.set(confirmed_at + timedelta(hours=48))
        await sweeper.run_reminder_pass()
        assert (await store.get(case.id)).escalation_level == EscalationLevel.SECOND

    @pytest.mark.asyncio
    async def test_terminal_cases_not_escalated(self, store, sweeper, clock):
        await seed(
            store,
            make_case(status=CaseStatus.EXPIRED, expired_at=START + timedelta(hours=1)),
            make_case(kinds=REQUIRED_DOCUMENT_KINDS, status=CaseStatus.COMPLETED, review_status=ReviewStatus.APPROVED),
        )
        clock.advance(hours=100)

        report = await sweeper.run_reminder_pass()

        assert report.scanned == 0
        assert report.changed == 0

    @pytest.mark.asyncio
    async def test_explicit_clock_overrides_default(self, store, sink):
        (case,) = await seed(store, make_case())
        sweeper = EscalationSweeper(store, AuditEmitter(sink), FixedClock(START))

        report = await sweeper.run_reminder_pass(FixedClock(START + timedelta(hours=25)))

        assert report.changed == 1
        assert report.started_at == START + timedelta(hours=25)


class TestExpiryPass:

    @pytest.mark.asyncio
    async def test_sla_boundary(self, store, sweeper, clock):
        (young,) = await seed(store, make_case(created_at=START + timedelta(seconds=1), updated_at=START + timedelta(seconds=1)))
        (old,) = await seed(store, make_case())
        clock.set(START + timedelta(hours=144))

        report = await sweeper.run_expiry_pass()

        assert report.changed == 1
        assert (await store.get(young.id)).status == CaseStatus.OPEN
        expired = await store.get(old.id)
        assert expired.status == CaseStatus.EXPIRED
        assert expired.expired_at == START + timedelta(hours=144)

    @pytest.mark.asyncio
    async def test_completed_case_never_expires(self, store, sweeper, clock):
        (case,) = await seed(store, make_case(
            kinds=REQUIRED_DOCUMENT_KINDS, status=CaseStatus.COMPLETED, review_status=ReviewStatus.APPROVED,
        ))
        clock.advance(days=400)

        report = await sweeper.run_expiry_pass()

        assert report.scanned == 0
        assert (await store.get(case.id)).status == CaseStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_submitted_case_expires_and_keeps_escalation(self, store, sweeper, clock, sink):
        (case,) = await seed(store, make_case(
            kinds=REQUIRED_DOCUMENT_KINDS,
            status=CaseStatus.SUBMITTED,
            escalation_level=EscalationLevel.FIRST,
        ))
        clock.advance(hours=145)

        await sweeper.run_expiry_pass()

        stored = await store.get(case.id)
        assert stored.status == CaseStatus.EXPIRED
        assert stored.escalation_level == EscalationLevel.FIRST
        event = sink.events_for(case.id, AuditAction.CASE_EXPIRED)[0]
        assert event.actor_id == "system"
        assert event.metadata["previous_status"] == "SUBMITTED"

    @pytest.mark.asyncio
    async def test_expiry_is_idempotent(self, store, sweeper, clock, sink):
        await seed(store, make_case())
        clock.advance(hours=150)

        await sweeper.run_expiry_pass()
        second = await sweeper.run_expiry_pass()

        assert second.scanned == 0
        assert len(sink.events) == 1


class TestFailureIsolation:
    """One failing case never stops the pass."""

    @pytest.mark.asyncio
    async def test_conflict_on_one_case_is_reported(self, store, sink, clock):
        first, second = await seed(store, make_case(), make_case())
        original_put = store.put

        async def flaky_put(case_id, expected_version, case):
            if case_id == first.id:
                raise CaseConflictError(case_id, expected_version=expected_version, actual_version=expected_version + 1)
            return await original_put(case_id, expected_version, case)

        store.put = flaky_put
        sweeper = EscalationSweeper(store, AuditEmitter(sink), clock)
        clock.advance(hours=24)

        report = await sweeper.run_reminder_pass()

        assert report.failed == [first.id]
        assert report.changed == 1
        assert not report.ok
        assert (await store.get(second.id)).escalation_level == EscalationLevel.FIRST
        assert sink.events_for(first.id) == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, store, sink, clock):
        first, second = await seed(store, make_case(), make_case())
        original_put = store.put

        async def broken_put(case_id, expected_version, case):
            if case_id == second.id:
                raise ConnectionError("store unreachable")
            return await original_put(case_id, expected_version, case)

        store.put = broken_put
        sweeper = EscalationSweeper(store, AuditEmitter(sink), clock)
        clock.advance(hours=200)

        report = await sweeper.run_expiry_pass()

        assert report.failed == [second.id]
        assert (await store.get(first.id)).status == CaseStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_fail_pass(self, store, clock):
        (case,) = await seed(store, make_case())
        failing_sink = AsyncMock()
        failing_sink.append.side_effect = RuntimeError("audit down")
        sweeper = EscalationSweeper(store, AuditEmitter(failing_sink), clock)
        clock.advance(hours=24)

        report = await sweeper.run_reminder_pass()

        assert report.ok
        assert (await store.get(case.id)).escalation_level == EscalationLevel.FIRST


class TestSweepScheduler:

    @pytest.mark.asyncio
    async def test_run_once_runs_both_passes(self, store, sweeper, clock):
        await seed(store, make_case())
        clock.advance(hours=145)
        scheduler = SweepScheduler(sweeper, interval_seconds=60)

        expiry, reminders = await scheduler.run_once()

        assert expiry.pass_name == "ExpiryPass"
        assert expiry.changed == 1
        # Expired on this tick, so no reminder is raised for it
        assert reminders.scanned == 0
        assert scheduler.ticks == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self, sweeper):
        scheduler = SweepScheduler(sweeper, interval_seconds=3600)

        scheduler.start()
        await asyncio.sleep(0)
        assert scheduler.running
        await scheduler.stop()

        assert not scheduler.running
        assert scheduler.ticks >= 1

    def test_interval_from_environment(self, sweeper, monkeypatch):
        monkeypatch.setenv("CASELINK_SWEEP_INTERVAL_SECONDS", "120")
        assert SweepScheduler(sweeper).interval_seconds == 120.0

        monkeypatch.setenv("CASELINK_SWEEP_INTERVAL_SECONDS", "soon")
        assert SweepScheduler(sweeper).interval_seconds == 3600.0
