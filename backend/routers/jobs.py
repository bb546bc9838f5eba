"""Jobs router — configured jobs, their status and manual captures."""

from fastapi import APIRouter, HTTPException, Request

from models import CaptureOutcome, JobStatus

router = APIRouter(tags=["jobs"])


def _scheduler(request: Request):
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(503, "Scheduler is not running")
    return scheduler


@router.get("/jobs", response_model=list[JobStatus])
async def list_jobs(request: Request):
    scheduler = _scheduler(request)
    return [
        JobStatus(job=job, last_outcome=scheduler.last_outcome(job.name))
        for job in scheduler.jobs
    ]


@router.post("/jobs/{name}/capture", response_model=CaptureOutcome)
async def capture_now(name: str, request: Request):
    """Run one capture for a job immediately, outside its timer."""
    scheduler = _scheduler(request)
    job = scheduler.get_job(name)
    if job is None:
        raise HTTPException(404, f'Job "{name}" not found')
    if scheduler.is_shutting_down:
        raise HTTPException(503, "Scheduler is shutting down")

    outcome = await scheduler.run_once(job)
    if not outcome.success:
        raise HTTPException(502, f"Capture failed: {outcome.error}")
    return outcome
