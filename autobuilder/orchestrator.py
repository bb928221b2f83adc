import asyncio
import collections
import logging
import re
import shutil
import tempfile
import time
import uuid
from typing import Awaitable, Callable, Deque, List, Optional, Protocol, Set
from .attachments import materialize_attachments
from .generator import ArtifactGenerator, parse_failure_artifacts
from .models import ArtifactSet, CallbackPayload, JobOutcome, PublishResult, TaskRequest
from .notifier import NotificationError

logger = logging.getLogger(__name__)

REPO_SLUG_MAX = 40
REPO_SUFFIX_LEN = 6
_SLUG_RE = re.compile(r"[^a-z0-9-]")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

def to_base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, r = divmod(n, 36)
        digits.append(_BASE36[r])
    return "".join(reversed(digits))

def derive_repo_name(task: str, now_ms: Optional[int] = None) -> str:
    slug = _SLUG_RE.sub("-", (task or "task").lower())[:REPO_SLUG_MAX]
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{slug}-{to_base36(now_ms)[-REPO_SUFFIX_LEN:]}"

class Publisher(Protocol):
    async def publish(self, repo_name: str, artifacts: ArtifactSet) -> PublishResult: ...

Notify = Callable[[str, CallbackPayload], Awaitable[int]]

class JobOrchestrator:
    """Runs one accepted TaskRequest through materialize, generate, publish and notify."""

    def __init__(self, generator: ArtifactGenerator, publisher: Publisher, notify: Notify):
        self.generator = generator
        self.publisher = publisher
        self.notify = notify

    def _outcome(self, job_id: str, req: TaskRequest, status: str, **extra) -> JobOutcome:
        return JobOutcome(job_id=job_id, task=req.task, round=req.round, nonce=req.nonce, status=status, **extra)

    async def run(self, job_id: str, req: TaskRequest) -> JobOutcome:
        tag = f"[JOB {job_id}]"
        workdir = tempfile.mkdtemp(prefix=f"autobuilder-{job_id}-")
        try:
            try:
                attachments = await materialize_attachments(req.attachments, workdir)
            except Exception as e:
                logger.warning("%s Attachment materialization failed, continuing without attachments: %s", tag, e)
                attachments = []

            try:
                artifacts = await self.generator.generate(req.brief, attachments)
            except Exception:
                logger.exception("%s Generator failed, using fallback artifacts", tag)
                artifacts = parse_failure_artifacts(req.brief)

            repo_name = derive_repo_name(req.task)
            logger.info("%s Publishing %d file(s) as %s", tag, len(artifacts.files), repo_name)
            try:
                result = await self.publisher.publish(repo_name, artifacts)
            except Exception as e:
                logger.exception("%s Publish failed for %s, no callback will be sent", tag, repo_name)
                return self._outcome(job_id, req, "publish_failed", error=str(e))

            payload = CallbackPayload(
                email=req.email,
                task=req.task,
                round=req.round,
                nonce=req.nonce,
                repo_url=result.repo_url,
                commit_sha=result.commit_sha,
                deploy_url=None,
            )
            try:
                attempts = await self.notify(req.evaluation_url, payload)
            except NotificationError as e:
                logger.error("%s %s", tag, e)
                return self._outcome(job_id, req, "notify_failed", repo_url=result.repo_url, error=str(e))

            logger.info("%s Notified %s after %d attempt(s)", tag, req.evaluation_url, attempts)
            return self._outcome(job_id, req, "notified", repo_url=result.repo_url)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

class JobRunner:
    """Spawns one asyncio task per accepted request and keeps a bounded outcome history."""

    def __init__(self, orchestrator: JobOrchestrator, max_concurrent_jobs: int = 4, history_size: int = 100):
        self.orchestrator = orchestrator
        self._semaphore = asyncio.Semaphore(max_concurrent_jobs) if max_concurrent_jobs > 0 else None
        self._tasks: Set[asyncio.Task] = set()
        self.history: Deque[JobOutcome] = collections.deque(maxlen=history_size)

    @property
    def running(self) -> int:
        return len(self._tasks)

    def submit(self, req: TaskRequest) -> str:
        job_id = uuid.uuid4().hex[:12]
        task = asyncio.create_task(self._run(job_id, req), name=f"job-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        logger.info("[JOB %s] Accepted task %r round %s", job_id, req.task, req.round)
        return job_id

    async def _run(self, job_id: str, req: TaskRequest) -> JobOutcome:
        if self._semaphore is None:
            outcome = await self._run_guarded(job_id, req)
        else:
            async with self._semaphore:
                outcome = await self._run_guarded(job_id, req)
        self.history.append(outcome)
        return outcome

    async def _run_guarded(self, job_id: str, req: TaskRequest) -> JobOutcome:
        try:
            return await self.orchestrator.run(job_id, req)
        except Exception as e:
            logger.exception("[JOB %s] Crashed", job_id)
            return JobOutcome(job_id=job_id, task=req.task, round=req.round, nonce=req.nonce, status="failed", error=str(e))

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("[JOB] %s was cancelled", task.get_name())
            return
        outcome = task.result()
        logger.info("[JOB %s] Finished: %s", outcome.job_id, outcome.status)

    def recent(self, limit: Optional[int] = None) -> List[JobOutcome]:
        items = list(reversed(self.history))
        return items[:limit] if limit and limit > 0 else items

    async def drain(self, timeout: Optional[float] = None) -> None:
        if not self._tasks:
            return
        logger.info("[SHUTDOWN] Waiting for %d running job(s)", len(self._tasks))
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("[SHUTDOWN] %d job(s) still running after %ss", len(pending), timeout)
