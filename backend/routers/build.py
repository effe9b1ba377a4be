import asyncio
import logging

from fastapi import APIRouter, HTTPException

from backend.jobs import Job, job_manager
from backend.models import BuildRequest, JobResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/build", tags=["build"])

# Strong references so running builds are not garbage-collected
_background_tasks: set = set()


def _job_response(job: Job) -> JobResponse:
    return JobResponse(
        job_id=job.id,
        status=job.status.value,
        progress=job.progress,
        message=job.message,
        result=job.result,
    )


@router.post("", response_model=JobResponse)
async def start_build(request: BuildRequest):
    """Start fetching and merging the buildings around a coordinate.

    Paginated tile downloads can take a while, so the work runs in a
    background task; the caller receives a job ID immediately and can poll
    ``/status/{job_id}`` for progress or ``/cancel/{job_id}`` to stop it.
    """
    job = job_manager.create_job()
    task = asyncio.create_task(job_manager.run_build(
        job, request.latitude, request.longitude,
        half_width=request.half_width, prune=request.prune))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return _job_response(job)


@router.get("/status/{job_id}", response_model=JobResponse)
async def get_build_status(job_id: str):
    """Poll the status of a running or completed build job."""
    job = job_manager.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return _job_response(job)


@router.post("/cancel/{job_id}", response_model=JobResponse)
async def cancel_build(job_id: str):
    """Stop a build before its next page request."""
    job = job_manager.cancel_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return _job_response(job)
