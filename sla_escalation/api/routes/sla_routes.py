"""
SLA API Routes.

Provides endpoints for the finding SLA escalation engine:
- Trigger one escalation run (cron or manual)
- Effective policy preview for a tenant and classification
- Scheduler status, manual trigger and resume after a failure pause
"""
import asyncio
import logging

from fastapi import APIRouter, HTTPException, Path
from fastapi.responses import JSONResponse

from sla_escalation.core.database import get_supabase_client
from sla_escalation.models.schemas import EffectivePolicy
from sla_escalation.services.orchestrator import run_finding_sla_escalation
from sla_escalation.services.policy_resolver import PolicyResolver
from sla_escalation.services.scheduler import get_scheduler


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sla", tags=["SLA"])


# ==========================================
# ESCALATION RUN
# ==========================================

@router.post(
    "/findings/escalate",
    summary="Run Finding SLA Escalation",
    description="Warn owners and escalate overdue findings across all tenants"
)
async def escalate_findings():
    """
    Run the escalation batch once.

    Returns the run counts, or {error} with HTTP 500 when the policy or
    finding snapshot could not be loaded.
    """
    try:
        summary = await run_finding_sla_escalation()
    except Exception as e:
        logger.error(f"Finding SLA escalation error: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(e)})

    return summary.to_response()


# ==========================================
# POLICIES
# ==========================================

@router.get(
    "/policies/{tenant_id}/{classification}",
    response_model=EffectivePolicy,
    summary="Get Effective SLA Policy",
    description="Thresholds the engine would apply to a finding of this classification"
)
async def get_effective_policy(
    tenant_id: str = Path(..., description="Tenant ID"),
    classification: str = Path(..., description="Finding classification, e.g. major_nc")
) -> EffectivePolicy:
    db = get_supabase_client()
    policies = await asyncio.to_thread(db.get_active_sla_policies)
    return PolicyResolver(policies).resolve(tenant_id, classification)


# ==========================================
# SCHEDULER
# ==========================================

@router.get(
    "/scheduler",
    summary="Scheduler Status",
    description="Escalation job schedule and failure information"
)
async def get_scheduler_status() -> dict:
    return get_scheduler().get_health_status()


def _running_scheduler():
    sched = get_scheduler()
    if not sched.is_running:
        raise HTTPException(status_code=503, detail="Scheduler is not running on this worker")
    return sched


@router.post(
    "/scheduler/trigger",
    summary="Trigger Scheduled Run",
    description="Move the next scheduled escalation run to now"
)
async def trigger_scheduled_run() -> dict:
    sched = _running_scheduler()
    if not sched.trigger_job():
        raise HTTPException(
            status_code=409,
            detail="Escalation job is paused; resume it before triggering"
        )
    return {"success": True, "jobs": sched.get_jobs_status()}


@router.post(
    "/scheduler/resume",
    summary="Resume Escalation Job",
    description="Resume the escalation job after it was paused for repeated failures"
)
async def resume_scheduled_job() -> dict:
    sched = _running_scheduler()
    if not sched.resume_job():
        raise HTTPException(status_code=404, detail="Escalation job not found")
    return {"success": True, "jobs": sched.get_jobs_status()}
