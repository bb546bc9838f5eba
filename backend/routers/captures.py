"""Captures router — history of capture outcomes."""

from fastapi import APIRouter, Query

from database import list_outcomes
from models import CaptureOutcome

router = APIRouter(tags=["captures"])


@router.get("/captures", response_model=list[CaptureOutcome])
async def list_captures(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    job: str = Query(None),
):
    """Most recent outcomes first, optionally for a single job."""
    return await list_outcomes(limit=limit, offset=offset, job_name=job)
