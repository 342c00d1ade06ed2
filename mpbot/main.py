# mpbot/main.py
# Run with: uvicorn mpbot.main:create_app --factory --host 0.0.0.0 --port 8000
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mpbot import __version__
from mpbot.config import DEFAULT_ADMIN_TOKEN, Settings, get_settings
from mpbot.errors import NotFoundError, StorageError, ValidationError
from mpbot.routes import admin as admin_router
from mpbot.routes import challenge as challenge_router
from mpbot.routes import client as client_router
from mpbot.routes import licenses as license_router
from mpbot.services import LicenseService, TargetService
from mpbot.storage import Store, build_store

log = logging.getLogger("mpbot.api")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Settings | None = None, store: Store | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    store = store or build_store(settings)

    if settings.admin_token == DEFAULT_ADMIN_TOKEN:
        log.warning("admin token is the default placeholder, set MPBOT_ADMIN_TOKEN")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        store.close()

    app = FastAPI(title="MpBot Backend", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.targets = TargetService(
        store,
        default_theta=settings.default_theta_deg,
        default_phi=settings.default_phi_deg,
        default_tolerance=settings.default_tolerance,
        max_observations=settings.max_observations_per_key,
    )
    app.state.licenses = LicenseService(store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def on_validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def on_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(StorageError)
    async def on_storage_error(request: Request, exc: StorageError):
        log.error("storage failure on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Storage error"})

    # public routes are served under /api and at the root for older clients
    for router in (challenge_router.router, client_router.router, license_router.router, admin_router.router):
        app.include_router(router, prefix="/api")
        app.include_router(router, include_in_schema=False)

    return app
