import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import errors
from .config import ALLOWED_ORIGINS, PORT, SECURITY_HEADERS_ENABLED
from .database import ensure_indexes, get_db, ping
from .domain.bookings import router as bookings_router
from .domain.services import router as services_router
from .errors import ApiError, code_for_status, error_body
from .firebase import init_firebase_admin
from .realtime import router as realtime_router
from .routes.categories import router as categories_router
from .routes.favorites import router as favorites_router
from .routes.messages import router as messages_router
from .routes.provider_profiles import router as provider_profiles_router
from .routes.reviews import router as reviews_router
from .routes.users import router as users_router
from .security_headers import SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("pymongo").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        ensure_indexes(get_db())
    except PyMongoError as e:
        logger.error(f"❌ Failed to ensure MongoDB indexes: {e}")

    if init_firebase_admin():
        logger.info("✅ Firebase Admin ready")
    else:
        logger.warning("⚠️ Firebase Admin unavailable - role claims will not be synced")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Hausly API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message),
        headers=exc.headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code_for_status(exc.status_code), str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        message = error.get("msg", "Invalid value").removeprefix("Value error, ")
        field = ".".join(str(part) for part in error.get("loc", ())[1:])
        messages.append(f"{field}: {message}" if field else message)
    return ", ".join(messages) or "Invalid request"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Validation failures are 400s, except a malformed Authorization header
    which is reported as 401
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content=error_body(errors.UNAUTHORIZED, "Not authorized, no token"),
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content=error_body(errors.VALIDATION_ERROR, _validation_message(exc)),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=error_body(errors.SERVER_ERROR, "Server error"),
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(
        SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"]
    )
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Routes
app.include_router(users_router, prefix="/api")
app.include_router(services_router, prefix="/api")
app.include_router(bookings_router, prefix="/api")
app.include_router(reviews_router, prefix="/api")
app.include_router(messages_router, prefix="/api")
app.include_router(favorites_router, prefix="/api")
app.include_router(categories_router, prefix="/api")
app.include_router(provider_profiles_router, prefix="/api")
app.include_router(realtime_router)


@app.get("/")
def root():
    return {"message": "Welcome to the Hausly API"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/api/test-db")
def test_db(db: Database = Depends(get_db)):
    if not ping(db):
        raise ApiError(500, errors.SERVER_ERROR, "Database connection failed")
    return {
        "message": "Database connection successful",
        "database": db.name,
        "collections": sorted(db.list_collection_names()),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("hausly.main:app", host="0.0.0.0", port=PORT)
