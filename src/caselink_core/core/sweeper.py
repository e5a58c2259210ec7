"""
Escalation Sweeper

Two idempotent batch passes driven by an injected clock:

- Reminder pass: raises escalation levels of active cases (24h after creation,
  then 48h after the owner's last acknowledgement)
- Expiry pass: moves every case older than the 144h SLA, except COMPLETED
  ones, to EXPIRED

Each case is read, transitioned and written with a version check on its own.
A failure on one case (version conflict, storage error, corrupt record) is
logged and counted, and the pass continues with the next case; the next tick
retries it implicitly. One active sweeper per store is assumed: concurrent
sweepers never double-apply an effect (the version check stops that) but may
produce duplicate audit attempts.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from caselink_core.auth.identity import SYSTEM_ACTOR
from caselink_core.config import get_sweep_interval_seconds
from caselink_core.core import lifecycle
from caselink_core.core.audit import AuditEmitter
from caselink_core.core.clock import Clock, SystemClock
from caselink_core.core.transition import Transition
from caselink_core.errors import CaseConflictError, CaseEngineError
from caselink_core.infrastructure.store import CaseStore
from caselink_core.models.case import ACTIVE_STATUSES, Case, CaseStatus

logger = logging.getLogger(__name__)

# Statuses the expiry pass looks at (COMPLETED never expires, EXPIRED is done)
EXPIRABLE_STATUSES = frozenset({CaseStatus.OPEN, CaseStatus.IN_PROGRESS, CaseStatus.SUBMITTED})


class SweepReport(BaseModel):
    """Outcome of one sweeper pass."""

    pass_name: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    scanned: int = 0
    changed: int = 0
    skipped: int = 0
    failed: List[str] = Field(default_factory=list, description="Ids of cases that could not be processed")

    @property
    def ok(self) -> bool:
        return not self.failed


class EscalationSweeper:
    """Runs the reminder and expiry passes against a store.

    Usage:
        sweeper = EscalationSweeper(store, AuditEmitter(sink))
        report = await sweeper.run_expiry_pass(FixedClock(start).advance(hours=145))
    """

    def __init__(self, store: CaseStore, emitter: AuditEmitter, clock: Optional[Clock] = None):
        self.store = store
        self.emitter = emitter
        self.clock = clock or SystemClock()

    async def run_reminder_pass(self, clock: Optional[Clock] = None) -> SweepReport:
        """Raise escalation levels that are due at clock.now()."""
        return await self._run(
            "ReminderPass",
            clock or self.clock,
            statuses=ACTIVE_STATUSES,
            apply=lambda case, now: lifecycle.escalate(case, now, SYSTEM_ACTOR),
        )

    async def run_expiry_pass(self, clock: Optional[Clock] = None) -> SweepReport:
        """Expire every non-completed case past the SLA at clock.now()."""

        def apply(case: Case, now: datetime) -> Transition:
            if not lifecycle.is_expiry_due(case, now):
                return Transition(case=case)
            return lifecycle.sweeper_expire(case, now, SYSTEM_ACTOR)

        return await self._run("ExpiryPass", clock or self.clock, statuses=EXPIRABLE_STATUSES, apply=apply)

    async def run_all(self, clock: Optional[Clock] = None) -> List[SweepReport]:
        """Expiry first, so a case expiring on this tick is not also escalated."""
        expiry = await self.run_expiry_pass(clock)
        reminders = await self.run_reminder_pass(clock)
        return [expiry, reminders]

    async def _run(
        self,
        pass_name: str,
        clock: Clock,
        statuses,
        apply: Callable[[Case, datetime], Transition],
    ) -> SweepReport:
        # One instant for the whole pass so boundary cases are judged consistently
        now = clock.now()
        report = SweepReport(pass_name=pass_name, started_at=now)
        logger.info(f"[{pass_name}] Starting sweep at {now.isoformat()}")

        async for case in self.store.scan(statuses=statuses):
            report.scanned += 1
            try:
                transition = apply(case, now)
                if not transition.changed:
                    report.skipped += 1
                    continue
                await self.store.put(case.id, case.version, transition.case)
                await self.emitter.emit(transition.event)
                report.changed += 1
                logger.info(f"[{pass_name}] Case {case.id}: {transition.event.action.value}")
            except CaseConflictError:
                logger.warning(f"[{pass_name}] Case {case.id} changed during sweep, retrying next tick")
                report.failed.append(case.id)
            except CaseEngineError as e:
                logger.warning(f"[{pass_name}] Case {case.id} skipped: {e.message}")
                report.failed.append(case.id)
            except Exception:
                logger.exception(f"[{pass_name}] Unexpected failure on case {case.id}")
                report.failed.append(case.id)

        report.finished_at = clock.now()
        logger.info(
            f"[{pass_name}] Finished: scanned={report.scanned}, changed={report.changed}, "
            f"skipped={report.skipped}, failed={len(report.failed)}"
        )
        return report


class SweepScheduler:
    """Invokes both sweeper passes on a fixed interval.

    For deployments without an external scheduler (cron, K8s CronJob).

    Usage:
        scheduler = SweepScheduler(sweeper)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, sweeper: EscalationSweeper, interval_seconds: Optional[float] = None):
        self.sweeper = sweeper
        self.interval_seconds = interval_seconds or get_sweep_interval_seconds()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> List[SweepReport]:
        self.ticks += 1
        return await self.sweeper.run_all()

    async def run_forever(self) -> None:
        logger.info(f"Sweep scheduler started (interval={self.interval_seconds}s)")
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                # A failing scan (store unreachable) must not end the loop
                logger.exception("Sweep tick failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Sweep scheduler stopped")

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
