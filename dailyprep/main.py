"""
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dailyprep.api.attempts import router as attempts_router
from dailyprep.api.diagnostics import router as diagnostics_router
from dailyprep.api.leaderboard import router as leaderboard_router
from dailyprep.api.stats import router as stats_router
from dailyprep.core.config import settings
from dailyprep.core.database import init_db
from dailyprep.core.errors import EngineError, UpstreamError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}...")
    if settings.AUTO_CREATE_TABLES:
        init_db()
    yield
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Store failure on {request.url.path}: {exc}", exc_info=True)
    err = UpstreamError("The data store is unavailable")
    return JSONResponse(status_code=err.status_code, content={"error": err.to_dict()})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.detail,
                "type": "http_error",
                "status_code": exc.status_code
            }
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "message": "Validation error",
                "type": "validation_error",
                "status_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
                "details": jsonable_errors(exc),
            }
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    error = EngineError("An internal error occurred" if settings.is_production() else str(exc))
    return JSONResponse(status_code=error.status_code, content={"error": error.to_dict()})


def jsonable_errors(exc: RequestValidationError):
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok", "version": settings.APP_VERSION, "environment": settings.ENVIRONMENT}


app.include_router(attempts_router, prefix=f"{settings.API_V1_PREFIX}/test", tags=["test"])
app.include_router(diagnostics_router, prefix=f"{settings.API_V1_PREFIX}/diagnostic", tags=["diagnostic"])
app.include_router(stats_router, prefix=f"{settings.API_V1_PREFIX}/stats", tags=["stats"])
app.include_router(leaderboard_router, prefix=f"{settings.API_V1_PREFIX}/leaderboard", tags=["leaderboard"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("dailyprep.main:app", host="0.0.0.0", port=8000, log_level=settings.LOG_LEVEL.lower())
