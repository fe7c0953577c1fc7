import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from database import ensure_indexes, get_database
from errors import CarMedicError
from jobs import cleanup_tokens_hourly
from routes import admin, appointments, customer, emergency, mechanic, reviews
from routes import auth as auth_routes
from routes import services as service_routes
from services.service_cache import ServiceCatalogCache
from services.token_service import TokenService

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("pymongo").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("CarMedic API starting up...")
    try:
        ensure_indexes(app.state.db)
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    cleanup_task = None
    if app.state.run_jobs:
        cleanup_task = asyncio.create_task(cleanup_tokens_hourly(app.state.token_service))
        logger.info("Token cleanup job scheduled hourly")

    yield

    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            logger.info("Token cleanup job cancelled")
    logger.info("CarMedic API shutting down...")


def _field_name(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "body"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CarMedicError)
    async def carmedic_error_handler(request: Request, exc: CarMedicError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
        errors = [{"field": _field_name(e.get("loc", ())), "message": e.get("msg")} for e in exc.errors()]
        return JSONResponse(status_code=400, content={"message": "Validation failed", "errors": errors})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"message": "Internal server error", "error": str(exc)})


def create_app(database=None, run_jobs: bool = config.TOKEN_CLEANUP_ENABLED) -> FastAPI:
    app = FastAPI(title="CarMedic API", version="1.0.0", lifespan=lifespan)

    app.state.db = database if database is not None else get_database()
    app.state.run_jobs = run_jobs
    app.state.token_service = TokenService(app.state.db)
    app.state.service_cache = ServiceCatalogCache()

    app.include_router(auth_routes.router)
    app.include_router(customer.router)
    app.include_router(admin.router)
    app.include_router(mechanic.router)
    app.include_router(appointments.router)
    app.include_router(emergency.router)
    app.include_router(reviews.router)
    app.include_router(service_routes.router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    @app.get("/")
    def home():
        return {"message": "CarMedic API is live"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=config.PORT)
