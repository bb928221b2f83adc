import contextlib
import functools
import logging
from typing import Optional
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError
from .generator import ArtifactGenerator
from .gh_api import RepositoryPublisher
from .llm import build_backend
from .log import configure_logging
from .models import AcceptedResponse, StatusResponse, TaskRequest
from .notifier import notify_with_backoff
from .orchestrator import JobOrchestrator, JobRunner
from .security import SecretStore
from .settings import Settings, log_startup_warnings
from .settings import settings as default_settings

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("email", "task", "round", "nonce", "evaluation_url")

def build_runner(settings: Settings) -> JobRunner:
    notify = functools.partial(
        notify_with_backoff,
        attempts=settings.NOTIFY_ATTEMPTS,
        initial_delay=settings.NOTIFY_INITIAL_DELAY,
        timeout=settings.NOTIFY_TIMEOUT,
    )
    orchestrator = JobOrchestrator(
        generator=ArtifactGenerator(build_backend(settings)),
        publisher=RepositoryPublisher(settings),
        notify=notify,
    )
    return JobRunner(orchestrator, settings.MAX_CONCURRENT_JOBS, settings.JOB_HISTORY_SIZE)

def create_app(
    settings: Optional[Settings] = None,
    runner: Optional[JobRunner] = None,
    secrets: Optional[SecretStore] = None,
) -> FastAPI:
    settings = settings or default_settings

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        log_startup_warnings(settings)
        yield
        await app.state.runner.drain(timeout=settings.SHUTDOWN_GRACE_SECONDS)

    app = FastAPI(title="Auto-Builder (LLM app synthesis + GitHub publish)", lifespan=lifespan)
    app.state.settings = settings
    app.state.secrets = secrets or SecretStore.from_settings(settings)
    app.state.runner = runner or build_runner(settings)

    @app.get("/", include_in_schema=False)
    async def root_redirect():
        return RedirectResponse(url="/docs")

    @app.get("/health")
    async def health():
        return {"status": "ok", "running_jobs": app.state.runner.running}

    @app.get("/status", response_model=StatusResponse)
    async def status(limit: int = Query(20, ge=0)):
        runner: JobRunner = app.state.runner
        return StatusResponse(running_jobs=runner.running, recent_jobs=runner.recent(limit))

    # ---- MAIN ENDPOINT ----
    @app.post("/api-endpoint", response_model=AcceptedResponse)
    async def receive_task(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if not isinstance(body, dict) or any(not body.get(f) for f in REQUIRED_FIELDS):
            return JSONResponse(status_code=400, content={"error": "missing required fields"})

        try:
            req = TaskRequest.model_validate(body)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            return JSONResponse(status_code=400, content={"error": "invalid fields", "fields": fields})

        if not app.state.secrets.verify(req.email, req.secret):
            client = request.client.host if request.client else "unknown"
            logger.warning("Invalid secret for task %r from %s", req.task, client)
            return JSONResponse(status_code=401, content={"error": "invalid secret"})

        # Acknowledge now; the pipeline runs as its own task.
        job_id = app.state.runner.submit(req)
        return JSONResponse(status_code=200, content={"status": "accepted", "job_id": job_id})

    return app

app = create_app()
