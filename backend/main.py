from fastapi import FastAPI, Request
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from core.auth import fastapi_users, auth_backend
from core.config import settings
from core.errors import (
    InvalidAdjustment,
    LedgerError,
    NegativeResult,
    NotFound,
    PartialFailure,
    StorageError,
    Unauthorized,
    ValidationError,
)
from core.logging import configure_logging, get_logger
from db.database import create_db_and_tables, ping_database
from routers.inventory import router as inventory_router
from routers.users import router as users_router
from schemas.users import UserRead, UserCreate, UserUpdate

configure_logging()
logger = get_logger(__name__)

# Most specific class wins (walks the exception's MRO)
STATUS_BY_ERROR = {
    ValidationError: 422,
    NotFound: 404,
    InvalidAdjustment: 400,
    NegativeResult: 409,
    StorageError: 503,
    PartialFailure: 500,
    Unauthorized: 401,
    LedgerError: 500,
}


def status_for(exc: LedgerError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


async def ledger_error_handler(request: Request, exc: LedgerError):
    code = status_for(exc)
    headers = {"Retry-After": "1"} if exc.retryable else None
    if code >= 500:
        logger.error("request failed", path=request.url.path, kind=exc.kind, message=exc.message)
    return JSONResponse(status_code=code, content={"detail": exc.to_dict()}, headers=headers)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": {"kind": "internal_error", "message": "Internal server error"}},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_db_and_tables()
    yield


app = FastAPI(
    title="Pizza Pantry API",
    description="Restaurant inventory with an audited quantity ledger",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(LedgerError, ledger_error_handler)
app.add_exception_handler(Exception, unhandled_error_handler)


# Authentication routes (fastapi-users)
app.include_router(fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"],)
app.include_router(fastapi_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_reset_password_router(), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_verify_router(UserRead), prefix="/auth", tags=["auth"])
app.include_router(users_router, prefix="/users", tags=["users"])
app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix="/users", tags=["users"])

# Inventory ledger routes
app.include_router(inventory_router, prefix="/inventory", tags=["inventory"])


@app.get("/health")
async def health():
    try:
        await ping_database()
    except Exception as e:
        logger.warning("health check failed", error=repr(e))
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "disconnected"})
    return {"status": "healthy", "database": "connected"}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
