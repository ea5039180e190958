import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from . import models, settings_service
from .database import engine, SessionLocal
from .exceptions import ValidationError, NotFoundError, ConflictError, IllegalTransitionError
from .routers import booking_router, admin_router, data_protection_router
from .outbox_poller import run_outbox_poller
from .booking_scheduler import run_booking_scheduler

import redis.asyncio as redis
from fastapi_limiter import FastAPILimiter
from .config import settings

# Setup logger
logger = logging.getLogger("booking_service")

# Create database tables on startup. Deployed databases are managed by alembic;
# this only fills in what is missing.
models.Base.metadata.create_all(bind=engine)


def seed_defaults():
    db = SessionLocal()
    try:
        created = settings_service.seed_email_templates(db)
        if created:
            logger.info(f"Seeded {created} default email templates.")
    except Exception as e:
        logger.error(f"Failed to seed default email templates: {e}")
        db.rollback()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manages application startup and shutdown events.
    """
    seed_defaults()

    logger.info("Starting background tasks...")

    redis_client = None
    try:
        redis_client = redis.from_url(settings.REDIS_URL, encoding="utf-8")
        await FastAPILimiter.init(redis_client)
        logger.info("FastAPILimiter initialized with Redis.")
    except Exception as e:
        logger.error(f"Failed to initialize FastAPILimiter: {e}")

    # Start the outbox poller as a background task
    poller_task = asyncio.create_task(run_outbox_poller())

    # Start the booking scheduler as a background task
    scheduler_task = asyncio.create_task(run_booking_scheduler())

    yield  # The application is now running

    # --- Code to run on shutdown ---
    logger.info("Shutting down background tasks...")

    if redis_client is not None:
        await redis_client.aclose()

    # Cancel both tasks
    poller_task.cancel()
    scheduler_task.cancel()

    # Await their cancellation to allow for graceful shutdown
    try:
        await poller_task
    except asyncio.CancelledError:
        logger.info("Outbox poller task successfully cancelled.")
    except Exception as e:
        logger.error(f"Error during outbox poller shutdown: {e}")

    try:
        await scheduler_task
    except asyncio.CancelledError:
        logger.info("Booking scheduler task successfully cancelled.")
    except Exception as e:
        logger.error(f"Error during booking scheduler shutdown: {e}")


# Create the FastAPI app instance, passing the lifespan manager
app = FastAPI(
    title="B&B Booking API",
    description="Room availability, pricing and reservation lifecycle for a bed and breakfast.",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_error_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(IllegalTransitionError)
async def illegal_transition_handler(request: Request, exc: IllegalTransitionError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": str(exc),
            "booking_id": exc.booking_id,
            "field": exc.field,
            "current": exc.current,
            "requested": exc.requested,
        },
    )


app.include_router(booking_router.router)
app.include_router(admin_router.router)
app.include_router(data_protection_router.router)


@app.get("/")
def read_root():
    return {"message": "Welcome to the B&B Booking Service"}
