"""
Background Job Scheduler for the SLA escalation engine.

Runs the finding SLA escalation batch on a cron cadence using APScheduler
(hourly at minute 0, UTC, by default).

- One instance of the job at a time (max_instances=1), missed runs coalesced
- Job failure monitoring: pauses the job and alerts operations after
  repeated failures
- Health status for the /health endpoint
"""
import html
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from sla_escalation.core.config import settings
from sla_escalation.core.exceptions import SchedulerJobError


# Configure logging
logger = logging.getLogger(__name__)

ESCALATION_JOB_ID = "finding_sla_escalation"


# ==========================================
# Job Failure Monitor
# ==========================================

class JobFailureMonitor:
    """
    Counts recent failures of a job and decides when to pause it.

    Failures older than the window are forgotten. Reaching the threshold
    emails operations (when OPS_ESCALATION_EMAIL is set) and marks the job
    paused until an operator resumes it.
    """

    def __init__(self, failure_threshold: int = 2, window: timedelta = timedelta(hours=24)):
        self.failure_threshold = failure_threshold
        self.window = window
        self.failures: Dict[str, List[datetime]] = defaultdict(list)
        self.last_errors: Dict[str, str] = {}
        self.paused_jobs: set = set()

    def reset(self, job_id: str) -> None:
        """Forget the job's failures and its paused flag."""
        self.failures.pop(job_id, None)
        self.last_errors.pop(job_id, None)
        self.paused_jobs.discard(job_id)

    def record_success(self, job_id: str) -> None:
        self.reset(job_id)

    async def record_failure(self, job_id: str, error: str) -> bool:
        """
        Record a failure.

        Returns True when the job has reached the threshold and should be paused.
        """
        now = datetime.now(timezone.utc)
        cutoff = now - self.window
        recent = [t for t in self.failures[job_id] if t > cutoff]
        recent.append(now)
        self.failures[job_id] = recent
        self.last_errors[job_id] = error

        if len(recent) < self.failure_threshold:
            return False

        self.paused_jobs.add(job_id)
        await self._send_critical_alert(job_id, len(recent), error)
        return True

    async def _send_critical_alert(self, job_id: str, failure_count: int, error: str) -> None:
        logger.critical(
            f"Job {job_id} failed {failure_count} times within {self.window}; paused. "
            f"Last error: {error}"
        )
        if not settings.ops_escalation_email:
            return

        from sla_escalation.services.notifications import build_email_transport

        try:
            await build_email_transport().send(
                to=settings.ops_escalation_email,
                subject=f"[{settings.app_name}] Job '{job_id}' paused after {failure_count} failures",
                html_body=(
                    f"<p>The escalation job <strong>{html.escape(job_id)}</strong> failed "
                    f"{failure_count} times and has been paused. Resume it with "
                    f"<code>POST /api/sla/scheduler/resume</code> once the cause is fixed.</p>"
                    f"<p>Last error: {html.escape(error)}</p>"
                ),
                module_tag="system",
            )
        except Exception as e:
            logger.error(f"Failed to email operations about paused job {job_id}: {e}")

    def get_status(self) -> Dict[str, Any]:
        """Failure count, last failure and paused flag per job."""
        return {
            job_id: {
                "failure_count": len(failures),
                "last_failure": failures[-1].isoformat() if failures else None,
                "last_error": self.last_errors.get(job_id),
                "is_paused": job_id in self.paused_jobs
            }
            for job_id, failures in self.failures.items()
        }


# Global job monitor
job_monitor = JobFailureMonitor(
    failure_threshold=settings.job_failure_alert_threshold
)


class EscalationScheduler:
    """
    Background job scheduler for the escalation engine.

    Only start this on ONE worker (RUN_SCHEDULER=true); the engine relies on
    its markers, not a lock, to avoid duplicate notifications.
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.is_running = False
        self.job_monitor = job_monitor

        self.jobs_config = {
            ESCALATION_JOB_ID: {
                "trigger": CronTrigger(
                    hour=settings.escalation_cron_hour,
                    minute=settings.escalation_cron_minute,
                    timezone=settings.scheduler_timezone,
                ),
                "description": "Warn owners and escalate overdue inspection findings"
            },
        }

    def create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure the scheduler."""
        jobstores = {
            'default': MemoryJobStore()
        }

        executors = {
            'default': AsyncIOExecutor()
        }

        job_defaults = {
            'coalesce': True,  # Combine missed runs into one
            'max_instances': 1,  # Only one instance of each job at a time
            'misfire_grace_time': 300  # 5 minute grace period
        }

        return AsyncIOScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone=settings.scheduler_timezone
        )

    def start(self):
        """Start the scheduler with all jobs."""
        if self.is_running:
            logger.warning("Scheduler is already running")
            return

        self.scheduler = self.create_scheduler()

        self.scheduler.add_job(
            finding_sla_escalation_job,
            self.jobs_config[ESCALATION_JOB_ID]["trigger"],
            id=ESCALATION_JOB_ID,
            name="Finding SLA Escalation",
            replace_existing=True
        )

        self.scheduler.start()
        self.is_running = True
        logger.info("🚀 Escalation scheduler started")

        for job in self.scheduler.get_jobs():
            logger.info(f"  - {job.name}: Next run at {job.next_run_time}")

    def stop(self):
        """Stop the scheduler gracefully."""
        if self.scheduler and self.is_running:
            self.scheduler.shutdown(wait=True)
            self.is_running = False
            logger.info("🛑 Escalation scheduler stopped")

    def _get_job(self, job_id: str):
        if not self.scheduler:
            logger.error("Scheduler not initialized")
            return None
        job = self.scheduler.get_job(job_id)
        if job is None:
            logger.error(f"Job not found: {job_id}")
        return job

    def trigger_job(self, job_id: str = ESCALATION_JOB_ID) -> bool:
        """Run a job as soon as possible. A paused job stays paused."""
        job = self._get_job(job_id)
        if job is None or job.next_run_time is None:
            return False

        job.modify(next_run_time=datetime.now(timezone.utc))
        logger.info(f"Manually triggered job: {job_id}")
        return True

    def get_jobs_status(self) -> list:
        """Get status of all scheduled jobs."""
        if not self.scheduler:
            return []

        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
                "paused": job.next_run_time is None,
                "pending": job.pending
            }
            for job in self.scheduler.get_jobs()
        ]

    def pause_job(self, job_id: str = ESCALATION_JOB_ID) -> bool:
        if self._get_job(job_id) is None:
            return False
        self.scheduler.pause_job(job_id)
        logger.warning(f"Paused job: {job_id}")
        return True

    def resume_job(self, job_id: str = ESCALATION_JOB_ID) -> bool:
        """Resume a paused job and clear its failure history."""
        if self._get_job(job_id) is None:
            return False
        self.scheduler.resume_job(job_id)
        self.job_monitor.reset(job_id)
        logger.info(f"Resumed job: {job_id}")
        return True

    def get_health_status(self) -> Dict[str, Any]:
        """Scheduler status and job failure information for monitoring."""
        failed_jobs = self.job_monitor.get_status()
        has_failures = any(
            info["failure_count"] > 0
            for info in failed_jobs.values()
        )

        return {
            "status": "degraded" if has_failures else "healthy",
            "is_running": self.is_running,
            "jobs": self.get_jobs_status(),
            "failures": failed_jobs,
            "paused_jobs": sorted(self.job_monitor.paused_jobs)
        }


# ==========================================
# JOB IMPLEMENTATIONS
# ==========================================

async def finding_sla_escalation_job() -> Dict[str, Any]:
    """
    Scheduled run of the finding SLA escalation batch.

    Raises:
        SchedulerJobError: When the run failed often enough to pause the job
    """
    job_id = ESCALATION_JOB_ID
    start_time = datetime.now(timezone.utc)

    try:
        from sla_escalation.services.orchestrator import run_finding_sla_escalation

        summary = await run_finding_sla_escalation()

        elapsed = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.info(
            f"✅ Finding SLA escalation completed in {elapsed:.2f}s: "
            f"{summary.findings_checked} checked, {summary.warnings_sent} warnings, "
            f"{summary.escalations_sent} escalations"
        )

        job_monitor.record_success(job_id)
        return summary.to_response()

    except Exception as e:
        logger.error(f"❌ Finding SLA escalation failed: {e}", exc_info=True)

        should_pause = await job_monitor.record_failure(job_id, str(e))
        if should_pause:
            sched = get_scheduler()
            if sched.scheduler:
                sched.pause_job(job_id)
            raise SchedulerJobError(
                f"Job {job_id} paused after repeated failures",
                job_id=job_id,
                failure_count=len(job_monitor.failures[job_id]),
                last_error=str(e),
            ) from e

        raise


# ==========================================
# GLOBAL SCHEDULER INSTANCE
# ==========================================

scheduler = EscalationScheduler()


def get_scheduler() -> EscalationScheduler:
    """Get the global scheduler instance."""
    return scheduler

