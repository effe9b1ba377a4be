import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from citytiles import CityModelBuilder
from citytiles.errors import FetchCancelled

from backend import config

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


@dataclass
class Job:
    id: str
    status: JobStatus = JobStatus.queued
    progress: float = 0.0
    message: str = "Queued"
    result: Optional[dict] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)


class JobManager:
    def __init__(self, builder_factory=None) -> None:
        self.jobs: dict[str, Job] = {}
        self.builder_factory = builder_factory or (
            lambda: CityModelBuilder(use_cache=config.USE_CACHE))

    def create_job(self) -> Job:
        job = Job(id=str(uuid.uuid4()))
        self.jobs[job.id] = job
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    def cancel_job(self, job_id: str) -> Optional[Job]:
        """Ask a queued or running job to stop before its next page request."""
        job = self.jobs.get(job_id)
        if job is not None and job.status in (JobStatus.queued, JobStatus.running):
            job.cancel_event.set()
            job.message = "Cancelling..."
        return job

    async def run_build(self, job: Job, latitude: float, longitude: float,
                        half_width: float, prune: bool = False) -> None:
        """Execute the fetch/merge pipeline, updating *job* with progress."""
        try:
            job.status = JobStatus.running
            job.progress = 1.0
            job.message = "Preparing workspace..."

            output_filename = f"city-{latitude:.5f}-{longitude:.5f}-{half_width:.0f}m.json"

            def _update_progress(pct: float, msg: str) -> None:
                job.progress = pct
                job.message = msg

            builder = self.builder_factory()
            path = await builder.build(
                latitude, longitude, output_filename,
                half_width=half_width,
                prune=prune,
                cancel_event=job.cancel_event,
                progress_callback=_update_progress,
            )

            stats = builder.last_stats
            job.progress = 100.0
            job.message = "Build complete"
            job.status = JobStatus.completed
            job.result = {
                "path": path,
                "model_url": f"/output/{output_filename}",
                "city_objects": stats.city_objects if stats else None,
                "vertices": stats.vertices if stats else None,
                "duplicates_skipped": stats.duplicates_skipped if stats else None,
            }

        except FetchCancelled:
            logger.info(f"Build cancelled for job {job.id}")
            job.status = JobStatus.cancelled
            job.progress = 0.0
            job.message = "Build cancelled"

        except Exception as exc:
            logger.exception("Build failed for job %s", job.id)
            job.status = JobStatus.failed
            job.progress = 0.0
            job.message = f"Build failed: {exc}"


# Singleton instance used across the application
job_manager = JobManager()
