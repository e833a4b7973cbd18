"""Main FastAPI application"""
import logging
import logging.config
from pathlib import Path
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
from motor.motor_asyncio import AsyncIOMotorClient
from routes import router as api_router
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config import Settings, get_settings
from services.transaction_store import LocalTransactionStore, MongoTransactionStore, TransactionStore
from services.transactions_service import DashboardView
from utils.heuristic_extractor import ClassificationPolicy
from utils.limiter import limiter
from utils.openai_agent import RemoteExtractor

# --- Unified Logging Configuration with Rich ---
LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            # RichHandler adds its own timestamp and colors
            "format": "%(name)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "default": {
            "class": "rich.logging.RichHandler",
            "formatter": "default",
            "level": "DEBUG",
            "rich_tracebacks": True,
            "show_time": True,
            "show_path": False,
            "log_time_format": "%Y-%m-%d %H:%M:%S",
            "markup": False,
        },
    },
    "loggers": {
        "uvicorn": {
             "handlers": ["default"],
             "level": "INFO",
             "propagate": False,
        },
        "uvicorn.access": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "": { # Root logger for our application
            "handlers": ["default"],
            "level": get_settings().log_level,
            "propagate": False,
        },
    },
}

logging.config.dictConfig(LOGGING_CONFIG)

logger = logging.getLogger(__name__)

EXTRACTION_PATHS = ("/api/extract", "/api/transactions/from-text")
PUBLIC_DIR = Path(__file__).parent / "public"


# --- Middleware for Message Size Limit ---
class LimitMessageSizeMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_size: int):
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith(EXTRACTION_PATHS):
            content_length_header = request.headers.get("content-length")
            if content_length_header:
                try:
                    content_length = int(content_length_header)
                    if content_length > self.max_size:
                        logger.warning(f"Message rejected: body size {content_length} exceeds limit {self.max_size}.")
                        return JSONResponse({"error": f"Message too large (limit {self.max_size} bytes)."}, status_code=413)
                except ValueError:
                    logger.warning("Message rejected: Invalid Content-Length header.")
                    return JSONResponse({"error": "Invalid Content-Length header."}, status_code=400)

        response = await call_next(request)
        return response


async def build_store(settings: Settings) -> Optional[TransactionStore]:
    """Creates the configured store; returns None when MongoDB is unreachable."""
    if settings.storage_backend == "local":
        logger.info(f"Using local transaction store at {settings.local_store_path}")
        return LocalTransactionStore(Path(settings.local_store_path))

    if not settings.mongodb_uri:
        logger.error("MONGODB_URI environment variable not set! Database connection will fail.")
        return None

    logger.info("Connecting to MongoDB...")
    client = None
    try:
        client = AsyncIOMotorClient(settings.mongodb_uri)
        collection = client[settings.db_name].get_collection("transactions")
        await client.admin.command('ping')
        logger.info(f"MongoDB ping successful. Using database: {settings.db_name}")
        return MongoTransactionStore(collection, client=client)
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        if client is not None:
            client.close()
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    store = await build_store(settings)
    app.state.store = store
    app.state.dashboard = DashboardView(store) if store is not None else None
    app.state.remote_extractor = RemoteExtractor(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        default_category=settings.remote_default_category,
        category_fallback=settings.remote_category_fallback,
    )
    app.state.policy = ClassificationPolicy(
        default_type=settings.heuristic_default_type,
        require_direction_keyword=settings.heuristic_require_keyword,
    )
    logger.info(f"Configuration: extractor engine = {settings.extractor_engine}, heuristic default type = {settings.heuristic_default_type}")

    yield # Application runs here

    if app.state.dashboard is not None:
        app.state.dashboard.close()
    if store is not None:
        await store.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title="Finance Tracker API",
        description="API for tracking transactions and extracting them from natural-language text.",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.settings = settings

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"], # Adjust in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LimitMessageSizeMiddleware, max_size=settings.max_message_size)

    app.include_router(api_router, prefix="/api", tags=["api"])

    # Mount static files directory (MUST be after API router)
    if PUBLIC_DIR.is_dir():
        app.mount("/", StaticFiles(directory=PUBLIC_DIR, html=True), name="static")
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
