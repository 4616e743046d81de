# cropbid/main.py
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cropbid.api import bid
from cropbid.core import close_db, init_db, redis_client, settings
from cropbid.core.errors import BiddingError

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup and shutdown events for FastAPI application.
    """
    # Redis only caches crop lot summaries; run without it if unreachable
    try:
        await redis_client.connect()
        if not await redis_client.ping():
            raise ConnectionError(f"no PONG from {settings.REDIS_URL}")
        logger.info("Redis connected")
    except Exception as e:
        logger.warning(f"Redis connection failed, subject cache disabled: {e}")
        await redis_client.disconnect()

    if settings.STORE_BACKEND == "sql":
        await init_db()
        logger.info("Database initialized")

    logger.info("Application started")
    yield

    await redis_client.disconnect()
    await close_db()
    logger.info("Application shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    description="Competitive bidding on harvestable crop lots",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(bid.router, prefix="/api", tags=["Bidding"])


@app.exception_handler(BiddingError)
async def bidding_error_handler(request: Request, exc: BiddingError):
    """Render bidding failures as typed error payloads"""
    logger.info(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# Global exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler to log and return detailed errors"""
    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Request: {request.method} {request.url}")
    logger.error(f"Traceback: {traceback.format_exc()}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "traceback": traceback.format_exc().split("\n") if app.debug else None,
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors with detailed info"""
    logger.warning(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may hold the raised ValueError and input may be NaN or Infinity,
    # neither of which JSONResponse can render
    return [
        {key: value for key, value in error.items() if key not in ("ctx", "input")}
        for error in exc.errors()
    ]


@app.get("/")
async def root():
    """Root endpoint - health check"""
    return {
        "message": settings.APP_NAME,
        "status": "running",
        "version": settings.APP_VERSION,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    redis_status = await redis_client.ping()
    return {
        "status": "healthy",
        "store": settings.STORE_BACKEND,
        "redis": "connected" if redis_status else "disconnected",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("cropbid.main:app", host="0.0.0.0", port=8000, reload=True)
