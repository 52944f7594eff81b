import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Load env from riven/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

from riven.api import auth, garden, health, streaks  # noqa: E402
from riven.core.config import settings, validate_config  # noqa: E402
from riven.core.database import create_all_tables, get_database_url  # noqa: E402
from riven.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from riven.core.logging import configure_logging  # noqa: E402
from riven.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from riven.features.streaks.scheduler import BreakCheckTimer  # noqa: E402
from riven.features.streaks.service import streak_registry  # noqa: E402

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("riven")
    logger.info("Starting Riven streak service...")
    if get_database_url():
        create_all_tables()
    timer = BreakCheckTimer(
        streak_registry.sweep,
        settings.STREAK_CHECK_INTERVAL_SECONDS,
        name="streak-registry-sweep",
    )
    timer.start()
    app.state.break_check_timer = timer
    try:
        yield
    finally:
        await timer.stop()
        await streak_registry.close()
        logger.info("Stopping Riven streak service...")


app = FastAPI(title="Riven - Streak Service", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# CORS (adjust origins in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:8081"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(streaks.router, tags=["streaks"])
app.include_router(garden.router, tags=["garden"])
app.include_router(health.router)


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "riven.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )
