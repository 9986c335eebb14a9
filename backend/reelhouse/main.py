"""
Reelhouse backend service: still-image video jobs with live progress.

Run with the `reelhouse` console script, or under any ASGI server:

    uvicorn reelhouse.main:create_app --factory
"""

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .execution.ffmpeg import FFmpegRunner
from .jobs.errors import JobStoreError, JobValidationError, MissingInputsError
from .jobs.service import VideoJobService
from .jobs.store import JobStore
from .logs import configure_logging
from .routes import files, health, jobs, video
from .settings import AppSettings, SettingsError
from .storage.files import FileStore

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8085


def _describe_validation_error(err: dict) -> str:
    location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
    message = err.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


@asynccontextmanager
async def _lifespan(app: FastAPI):
    settings: AppSettings = app.state.settings
    logger.info(
        f"[Startup] Reelhouse {__version__} "
        f"(data_dir={settings.data_dir}, ffmpeg={app.state.runner.ffmpeg_path})"
    )
    try:
        yield
    finally:
        await app.state.video_job_service.shutdown()
        logger.info("[Shutdown] Reelhouse stopped")


def create_app(settings: Optional[AppSettings] = None, runner=None) -> FastAPI:
    """
    Build the application and its collaborators.

    Args:
        settings: Configuration. Read from the environment if not provided.
        runner: Encoder with an async run(invocation) method. An FFmpegRunner
            built from settings is used if not provided.

    Returns:
        FastAPI application; services live on app.state

    Raises:
        SettingsError: If the environment is invalid
    """
    settings = settings or AppSettings.from_env()
    configure_logging(settings.log_level)

    file_store = FileStore(settings.data_dir)
    file_store.ensure_layout()
    job_store = JobStore(settings.jobs_db_path)

    if runner is None:
        runner = FFmpegRunner(
            ffmpeg_path=settings.ffmpeg_path,
            timeout_seconds=settings.ffmpeg_timeout_seconds,
            kill_grace_seconds=settings.ffmpeg_kill_grace_seconds,
            finalizing_progress=settings.finalizing_progress,
            max_progress_updates=settings.max_progress_updates,
            assumed_frame_rate=settings.assumed_frame_rate,
            show_progress_in_terminal=settings.show_progress_in_terminal,
        )

    app = FastAPI(title="Reelhouse Backend", version=__version__, lifespan=_lifespan)

    app.state.settings = settings
    app.state.file_store = file_store
    app.state.job_store = job_store
    app.state.runner = runner
    app.state.video_job_service = VideoJobService(
        store=job_store,
        files=file_store,
        runner=runner,
        retention_seconds=settings.job_retention_seconds,
    )

    # Wildcard origins cannot be combined with credentials
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials="*" not in settings.allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError):
        problems = [_describe_validation_error(err) for err in exc.errors()]
        logger.info(f"[HTTP] Rejected {request.method} {request.url.path}: {problems}")
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "problems": problems},
        )

    @app.exception_handler(JobValidationError)
    async def _job_rejected(request: Request, exc: JobValidationError):
        content = {"error": exc.message, "problems": exc.problems}
        if isinstance(exc, MissingInputsError):
            content["missingFiles"] = exc.missing
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(JobStoreError)
    async def _store_unavailable(request: Request, exc: JobStoreError):
        logger.error(f"[HTTP] Job store error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Job store unavailable"})

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception(f"[HTTP] Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(health.router)
    app.include_router(video.router)
    app.include_router(jobs.router)
    app.include_router(files.router)

    @app.get("/")
    async def root():
        return {"service": "reelhouse-backend", "status": "running"}

    return app


def main(argv=None) -> int:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    parser = argparse.ArgumentParser(prog="reelhouse", description="Reelhouse backend service")
    parser.add_argument("--host", default=DEFAULT_HOST, help=f"Bind address (default: {DEFAULT_HOST})")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Port (default: {DEFAULT_PORT})")
    args = parser.parse_args(argv)

    try:
        app = create_app()
    except SettingsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    uvicorn.run(app, host=args.host, port=args.port, log_level=app.state.settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
