import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from servo_adjust import __version__
from servo_adjust.config import get_config
from servo_adjust.exceptions import ProfileError
from servo_adjust.logger import configure_logging, get_logger
from servo_adjust.middleware import RequestLoggingMiddleware
from servo_adjust.models.api import ErrorBody
from servo_adjust.models.config import AppConfig
from servo_adjust.routers import profiles_api as profiles_router
from servo_adjust.routers import web_ui as ui_router
from servo_adjust.services.profiles import ProfileStore, ProfileUpdater

# Standard logging for uvicorn and other third-party loggers
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

logger = get_logger(__name__)


async def profile_error_handler(request: Request, exc: ProfileError) -> JSONResponse:
    """Render a ProfileError as ``{code, error, message, details}`` with its status code."""
    if exc.status_code >= 500:
        logger.error("request failed", path=request.url.path, error=exc.code, message=str(exc))
    body = ErrorBody(code=exc.status_code, error=exc.code, message=str(exc), details=exc.details() or None)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build the application around one profile store.

    Args:
        config: Application configuration. If None, the global configuration is used.
    """
    config = config or get_config()
    store = ProfileStore(config.storage.store_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application lifespan events."""
        if not config.storage.read_only:
            store.ensure_layout()
        logger.info("profile store ready", root=str(store.root), read_only=config.storage.read_only)
        yield

    app = FastAPI(title="servo-adjust", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.store = store
    app.state.updater = ProfileUpdater(store)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(ProfileError, profile_error_handler)  # type: ignore[arg-type]

    @app.get("/healthz", response_class=PlainTextResponse, operation_id="healthz")
    async def healthz() -> str:
        return "ok"

    app.include_router(profiles_router.router)
    app.include_router(ui_router.router)
    return app


app = create_app()


def run_server(config: AppConfig) -> None:
    """Run the servo-adjust server.

    Args:
        config: Configuration to serve with (CLI overrides already applied)
    """
    configure_logging(config.advanced.log_level)
    logger.info(
        "starting server",
        host=config.server.host,
        port=config.server.port,
        calib_root=str(config.storage.calib_root),
        read_only=config.storage.read_only,
    )
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)


def main(argv: list[str] | None = None) -> None:
    """Main entry point with CLI argument parsing."""
    import argparse

    parser = argparse.ArgumentParser(
        description="servo-adjust - LeRobot calibration profile editor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  servo-adjust                                  # Serve with default/saved settings
  servo-adjust --port 9000                      # Serve on port 9000
  servo-adjust --calib-root ~/calib --read-only # Browse another tree without writing
        """,
    )

    parser.add_argument("--host", metavar="HOST", help="Interface to bind")
    parser.add_argument("--port", type=int, metavar="PORT", help="Port number to run the server on")
    parser.add_argument("--calib-root", type=Path, metavar="DIR", help="Calibration root directory")
    parser.add_argument("--read-only", action="store_true", help="Reject every change to profiles")
    parser.add_argument("--log-level", choices=["INFO", "DEBUG", "TRACE"], help="Log level")
    parser.add_argument("--version", action="version", version=f"servo-adjust {__version__}")

    args = parser.parse_args(argv)

    config = get_config().model_copy(deep=True)
    if args.host:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.calib_root is not None:
        config.storage.calib_root = args.calib_root.expanduser()
    if args.read_only:
        config.storage.read_only = True
    if args.log_level:
        config.advanced.log_level = args.log_level

    run_server(config)


if __name__ == "__main__":
    main()
