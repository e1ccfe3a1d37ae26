from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from neuronnook import models  # ensure models are registered with SQLAlchemy
from neuronnook.core.config import INSECURE_JWT_SECRET, Settings, get_settings
from neuronnook.core.database import Database
from neuronnook.core.errors import NeuronNookError, ProviderAPIError
from neuronnook.core.security import SessionCodec
from neuronnook.routers import auth, health, oauth
from neuronnook.services.credential_store import CredentialStore
from neuronnook.services.google_auth_service import GoogleAuthService
from neuronnook.services.microsoft_auth_service import MicrosoftAuthService
from neuronnook.utils.logger import configure_logging, get_logger

logger = get_logger("main")


def create_app(
    settings: Optional[Settings] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Composition root. Everything shared between requests (database handle,
    credential store, session codec, provider clients) is built here and hung on
    app.state.
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    if settings.JWT_SECRET == INSECURE_JWT_SECRET:
        logger.warning("JWT_SECRET is not set; sessions are signed with an insecure default key")

    app = FastAPI(
        title="NeuronNook API",
        description="Unified Google and Microsoft dashboard backend",
        version="0.1.0"
    )

    database = Database(settings.DATABASE_URL, echo=settings.LOG_LEVEL == "DEBUG")
    app.state.settings = settings
    app.state.database = database
    app.state.credential_store = CredentialStore(database)
    app.state.session_codec = SessionCodec(settings.JWT_SECRET)
    app.state.oauth_clients = {
        "google": GoogleAuthService.from_settings(settings, transport=http_transport),
        "microsoft": MicrosoftAuthService.from_settings(settings, transport=http_transport),
    }

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path}")
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {e}")
            return JSONResponse(status_code=500, content={"error": "Internal Server Error"})
        logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
        return response

    @app.exception_handler(ProviderAPIError)
    async def provider_api_error_handler(request: Request, exc: ProviderAPIError):
        content = {"error": exc.message}
        if exc.details is not None:
            content["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(NeuronNookError)
    async def neuronnook_error_handler(request: Request, exc: NeuronNookError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    app.include_router(auth.profile_router)
    app.include_router(auth.router)
    app.include_router(oauth.google_router)
    app.include_router(oauth.microsoft_router)
    app.include_router(health.router)

    @app.get("/")
    async def root():
        return {"message": "Welcome to NeuronNook API"}

    return app


def run():
    import uvicorn

    uvicorn.run("neuronnook.main:create_app", factory=True, host="0.0.0.0", port=8000)
