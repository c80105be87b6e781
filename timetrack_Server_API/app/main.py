# main.py
# Description: This file contains the main FastAPI application, which serves the timetrack sync API.
#
# Imports
import logging
import sys
from contextlib import asynccontextmanager
#
# 3rd-party Libraries
from loguru import logger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
#
# Local Imports
from timetrack_Server_API.app.core.config import ALLOWED_ORIGINS, settings
from timetrack_Server_API.app.api.v1.API_Deps.TimeTracking_DB_Deps import create_timetrack_db
from timetrack_Server_API.app.api.v1.API_Deps.error_handlers import register_error_handlers
#
# Sync Endpoint
from timetrack_Server_API.app.api.v1.endpoints.sync import router as sync_router, limiter as sync_limiter
#
# Projects / Sessions Endpoints
from timetrack_Server_API.app.api.v1.endpoints.time_tracking import projects_router, sessions_router
#
########################################################################################################################
#
# Functions:


# --- Loguru Configuration ---

class InterceptHandler(logging.Handler):
    """Forwards stdlib logging records (uvicorn, the DB module) into loguru."""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real call site
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


LOG_FORMAT = ("<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
              "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>")

INTERCEPTED_LOGGERS = (
    "uvicorn", "uvicorn.error", "uvicorn.access",
    "timetrack_Server_API.app.core.DB_Management.TimeTracking_DB",
)


def setup_logging(level: str):
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT, colorize=True)
    for logger_name in INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(logger_name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.setLevel(logging.DEBUG)  # the loguru sink filters
        std_logger.propagate = False
    logger.info(f"Logging configured at level {level}; stdlib loggers routed to loguru.")


setup_logging(settings["LOG_LEVEL"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The store is built once here and reached by endpoints only through app.state
    if getattr(app.state, "timetrack_db", None) is None:
        app.state.timetrack_db = create_timetrack_db()
    logger.info(f"App Startup: mode={'single' if settings['SINGLE_USER_MODE'] else 'multi'}, "
                f"pull_mode={settings['SYNC_PULL_MODE']}")
    yield
    db = getattr(app.state, "timetrack_db", None)
    if db is not None:
        logger.info("App Shutdown: Closing DB connections")
        db.close_all_connections()
        app.state.timetrack_db = None


app = FastAPI(
    title="timetrack sync API",
    version="0.1.0",
    description="Multi-device sync backend for time tracking: projects, timer sessions, push/pull sync.",
    lifespan=lifespan,
)

# Rate limiting for the sync exchange
app.state.limiter = sync_limiter

# Schema-parse and rate-limit failures get the same categorized body as endpoint errors
register_error_handlers(app)

# Use configured origins
origins = ALLOWED_ORIGINS if ALLOWED_ORIGINS else ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"message": "timetrack sync API is running."}


# Router for the sync exchange
app.include_router(sync_router, prefix="/api/v1/sync", tags=["sync"])

# Routers for single-record project/session management
app.include_router(projects_router, prefix="/api/v1/projects", tags=["projects"])
app.include_router(sessions_router, prefix="/api/v1/sessions", tags=["sessions"])


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings["HOST"], port=settings["PORT"], log_config=None)

#
## End of main.py
########################################################################################################################
