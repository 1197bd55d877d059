import asyncio
import logging
import uuid
from typing import Optional

from .errors import ServiceError
from .models import JobEvent, JobInfo, JobStatus, ServerCreateRequest, ServerInfo
from .services.provisioning_service import ProvisioningService
from .store import ServerRecord

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal error while provisioning the server."
MAX_FINISHED_JOBS = 200


def record_to_info(record: ServerRecord) -> ServerInfo:
    return ServerInfo(
        id=record.id,
        name=record.name,
        version=record.version,
        difficulty=record.difficulty,
        port=record.port,
        started=record.started,
    )


class ProvisionJob:
    """One provisioning request and the notifications it produced so far.

    Follow-up replies are handed to the waiting workflow and then dropped;
    they never appear in ``events``.
    """

    def __init__(self, name: str) -> None:
        self.job_id = uuid.uuid4().hex
        self.name = name
        self.status = JobStatus.running
        self.events: list[JobEvent] = []
        self.server: Optional[ServerRecord] = None
        self.error: Optional[str] = None
        self.task: Optional[asyncio.Task] = None
        self._replies: asyncio.Queue[str] = asyncio.Queue(maxsize=1)

    async def notify(self, kind: str, message: str) -> None:
        self.events.append(JobEvent(kind=kind, message=message))

    async def request_input(self, prompt: str, timeout: float) -> Optional[str]:
        await self.notify("input", prompt)
        self.status = JobStatus.awaiting_input
        try:
            return await asyncio.wait_for(self._replies.get(), timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            if self.status == JobStatus.awaiting_input:
                self.status = JobStatus.running

    def submit_reply(self, content: str) -> None:
        if self.status != JobStatus.awaiting_input:
            raise ServiceError(409, "Job is not waiting for input")
        try:
            self._replies.put_nowait(content)
        except asyncio.QueueFull as exc:
            raise ServiceError(409, "A reply is already pending") from exc

    def fail(self, message: str) -> None:
        self.status = JobStatus.failed
        self.error = message
        self.events.append(JobEvent(kind="error", message=message))

    def info(self) -> JobInfo:
        return JobInfo(
            job_id=self.job_id,
            name=self.name,
            status=self.status,
            events=list(self.events),
            server=record_to_info(self.server) if self.server else None,
            error=self.error,
        )


class JobRegistry:
    def __init__(
        self, service: ProvisioningService, max_finished_jobs: int = MAX_FINISHED_JOBS
    ) -> None:
        self.service = service
        self.max_finished_jobs = max_finished_jobs
        self._jobs: dict[str, ProvisionJob] = {}

    def submit(self, request: ServerCreateRequest) -> ProvisionJob:
        self._prune_finished()
        job = ProvisionJob(request.name)
        self._jobs[job.job_id] = job
        job.task = asyncio.create_task(self._run(job, request), name=f"provision-{job.job_id}")
        return job

    def __len__(self) -> int:
        return len(self._jobs)

    def get(self, job_id: str) -> ProvisionJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise ServiceError(404, "Job not found")
        return job

    def cancel(self, job_id: str) -> ProvisionJob:
        job = self.get(job_id)
        if job.task is not None and not job.task.done():
            job.task.cancel()
        return job

    async def shutdown(self) -> None:
        tasks = [job.task for job in self._jobs.values() if job.task and not job.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _prune_finished(self) -> None:
        # Oldest first; running jobs are never dropped.
        finished = [
            job_id for job_id, job in self._jobs.items() if job.task is None or job.task.done()
        ]
        for job_id in finished[: max(0, len(finished) - self.max_finished_jobs + 1)]:
            del self._jobs[job_id]

    async def _run(self, job: ProvisionJob, request: ServerCreateRequest) -> None:
        try:
            job.server = await self.service.provision(request, job)
            job.status = JobStatus.succeeded
        except asyncio.CancelledError:
            job.status = JobStatus.cancelled
            job.events.append(JobEvent(kind="cancelled", message="Provisioning was cancelled."))
            logger.warning("Provisioning of %s was cancelled", job.name)
            raise
        except ServiceError as exc:
            logger.info("Provisioning of %s failed: %s", job.name, exc.message)
            job.fail(exc.message)
        except Exception:
            logger.exception("Provisioning of %s failed unexpectedly", job.name)
            job.fail(INTERNAL_ERROR_MESSAGE)
