"""Background ingestion jobs for the grounding service.

Ingestion runs far longer than an HTTP request, so update requests start a
job on the event loop and return its id; the job record keeps status, logs
and the error or result for polling.
"""

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Job status enumeration."""
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class JobRecord:
    """Job record for tracking job state."""
    id: str
    type: str
    status: JobStatus
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    parameters: Dict[str, Any] = None
    logs: List[str] = None
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.parameters is None:
            self.parameters = {}
        if self.logs is None:
            self.logs = []

    def add_log(self, message: str):
        """Add a log message with timestamp."""
        timestamp = datetime.now().isoformat()
        self.logs.append(f"[{timestamp}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data['status'] = self.status.value
        for field in ['created_at', 'started_at', 'completed_at']:
            if data[field]:
                data[field] = data[field].isoformat()
        return data


class JobManager:
    """Runs ingestion jobs as event-loop tasks, one per namespace at a time.

    Finished jobs are kept for polling, up to ``max_finished`` of them;
    older finished jobs are evicted first.
    """

    def __init__(self, max_finished: int = 100):
        self.jobs: Dict[str, JobRecord] = {}
        self.max_finished = max_finished
        self._tasks: Dict[str, asyncio.Task] = {}
        self._active_by_key: Dict[str, str] = {}

    def submit(self, job_type: str, key: str,
               func: Callable[[], Awaitable[Any]],
               parameters: Optional[Dict[str, Any]] = None) -> JobRecord:
        """Start a job unless one with the same key is still running.

        Args:
            job_type: Kind of job, e.g. ``update``
            key: Serialization key; jobs sharing a key never overlap
            func: Coroutine function doing the work
            parameters: Parameters recorded on the job

        Returns:
            The new job, or the already active job for ``key``
        """
        active_id = self._active_by_key.get(key)
        if active_id is not None:
            logger.info(f"Job {active_id} already active for {key}")
            return self.jobs[active_id]

        job = JobRecord(
            id=str(uuid.uuid4()),
            type=job_type,
            status=JobStatus.QUEUED,
            created_at=datetime.now(),
            parameters=parameters or {}
        )
        job.add_log(f"Queued {job_type} for {key}")
        self.jobs[job.id] = job
        self._active_by_key[key] = job.id

        self._tasks[job.id] = asyncio.ensure_future(self._run(job, key, func))
        return job

    async def _run(self, job: JobRecord, key: str, func: Callable[[], Awaitable[Any]]):
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now()
        job.add_log("Started")

        try:
            result = await func()
            job.result = result.to_dict() if hasattr(result, 'to_dict') else result
            job.status = JobStatus.DONE
            job.add_log("Completed")
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error = f"{type(e).__name__}: {e}"
            job.add_log(f"Failed: {job.error}")
            logger.error(f"Job {job.id} ({job.type} {key}) failed: {e}", exc_info=True)
        finally:
            job.completed_at = datetime.now()
            self._active_by_key.pop(key, None)
            self._tasks.pop(job.id, None)
            self._evict_finished()

    def _evict_finished(self):
        finished = [job for job in self.jobs.values() if job.completed_at is not None]
        excess = len(finished) - self.max_finished
        if excess <= 0:
            return
        finished.sort(key=lambda j: j.completed_at)
        for job in finished[:excess]:
            del self.jobs[job.id]
        logger.debug(f"Evicted {excess} finished jobs")

    def get(self, job_id: str) -> Optional[JobRecord]:
        return self.jobs.get(job_id)

    def list_jobs(self) -> List[JobRecord]:
        return sorted(self.jobs.values(), key=lambda j: j.created_at, reverse=True)

    async def wait(self, job_id: str) -> Optional[JobRecord]:
        """Wait for a job to finish and return its record."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task})
        return self.jobs.get(job_id)

    async def shutdown(self):
        """Cancel running jobs."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Job manager shut down ({len(tasks)} jobs cancelled)")


job_manager = JobManager()
