"""FastAPI application entrypoint for the BetaHouse backend.

Sets up the application, middleware, error handlers and routes and provides
a lifespan context manager that initializes the database on startup and
releases the database engine and Redis pool on shutdown.
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from api.routes.auth import router as auth_router
from api.routes.notifications import router as notifications_router
from api.routes.realtime import router as realtime_router
from api.routes.two_factor import router as two_factor_router
from config.config import settings
from core.errors import AppError
from core.logging import logger
from db.cache import close_cache, get_redis
from db.session import engine, initialize_database
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.exceptions import HTTPException as StarletteHTTPException


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context to run startup and shutdown routines.

    On startup this creates missing tables, retrying a few times if the DB
    isn't ready yet, and checks that Redis answers. An unreachable Redis is
    logged but does not stop startup; revocation and notification caching
    degrade until it comes back.
    """

    logger.info("Starting up")

    max_retries = 5
    for attempt in range(max_retries):
        try:
            await initialize_database()
            break
        except Exception as e:
            # NOTE: transient DB connectivity issues are retried to improve
            # startup robustness when services come up concurrently.
            if attempt < max_retries - 1:
                logger.warning(
                    "Database connection attempt {} failed: {}. Retrying..",
                    attempt + 1,
                    e,
                )
                await asyncio.sleep(2)
            else:
                logger.exception("Database initialization failed after retries")
                raise

    try:
        await get_redis().ping()
        logger.info("Redis reachable")
    except RedisError as e:
        logger.warning("Redis not reachable at startup: {}", e)

    yield

    logger.info("Shutting down")
    await close_cache()
    await engine.dispose()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc.message)
    else:
        logger.debug(
            "{} {} rejected {}: {}",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code, content={"message": exc.message}, headers=headers
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": message, "errors": jsonable_errors(errors)},
    )


def jsonable_errors(errors: list) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in errors
    ]


@app.get("/")
async def root():
    """Return a simple health check / landing response."""

    return JSONResponse({"message": f"{settings.APP_NAME} API running"})


app.include_router(auth_router)
app.include_router(two_factor_router)
app.include_router(notifications_router)
app.include_router(realtime_router)


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
