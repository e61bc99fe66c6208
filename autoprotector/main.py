"""Branch autoprotector: FastAPI webhook endpoint with signature verification."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import BackgroundTasks, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from autoprotector.clients.github import GitHubClient
from autoprotector.config import AutoprotectorSettings, GithubSettings
from autoprotector.errors import PayloadDecodeError, PayloadError
from autoprotector.models.github import RefCreationEvent
from autoprotector.webhook_handler import handle_ref_creation
from autoprotector.webhook_signature import verify_signature

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT)


def _info(message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"info": message}, status_code=status_code)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def _read_body(request: Request, limit: int) -> bytes | None:
    """Read the raw body, or return None once it grows past ``limit`` bytes."""
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        return None

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            return None
    return bytes(body)


def create_app(
    settings: AutoprotectorSettings | None = None,
    github_settings: GithubSettings | None = None,
    github: GitHubClient | None = None,
) -> FastAPI:
    """Build the webhook service.

    Unless a client is passed in, the lifespan obtains one at startup and a
    failure to get the initial installation token aborts startup.
    """
    settings = settings or AutoprotectorSettings()
    github_settings = github_settings or GithubSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = github
        if client is None:
            log.info("Initializing GitHub API client for organization %r", github_settings.organization)
            client = await GitHubClient.from_settings(github_settings)
        app.state.github = client
        try:
            yield
        finally:
            if github is None:
                await client.close()

    app = FastAPI(title="branch-autoprotector", lifespan=lifespan)

    @app.exception_handler(PayloadError)
    async def payload_error(request: Request, exc: PayloadError) -> JSONResponse:
        return _error(exc.public_message, 400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return _error("not found", 404)
        if exc.status_code == 405:
            return _error("method not allowed", 405)
        return _error(str(exc.detail).lower(), exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        # Users managed to trigger something unanticipated; keep the details in the log
        log.exception("Unhandled error while processing %s %s", request.method, request.url.path)
        return _error("internal server error", 500)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/")
    async def webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_github_event: str | None = Header(None),
        x_hub_signature_256: str | None = Header(None),
    ) -> JSONResponse:
        if x_github_event is None:
            return _error("missing webhook event header", 400)
        # Events we don't react to are not errors
        if x_github_event.lower() != "create":
            return _info("not listening to this webhook event")

        payload = await _read_body(request, settings.max_payload_bytes)
        if payload is None:
            return _error("payload too large", 400)

        verify_signature(x_hub_signature_256, payload, github_settings.webhook_secret)

        try:
            event = RefCreationEvent.model_validate_json(payload)
        except ValidationError as exc:
            raise PayloadDecodeError(str(exc)) from exc

        message = handle_ref_creation(event, request.app.state.github, background_tasks)
        return _info(message)

    return app


def run() -> None:
    """Console entry point: serve webhooks with uvicorn."""
    settings = AutoprotectorSettings()
    configure_logging(settings.log_level)
    app = create_app(settings)
    log.info("Listening for incoming webhook events on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
