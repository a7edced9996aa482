import logging
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from trudify.config import Settings
from trudify.data import seed_demo_data
from trudify.dependencies import build_services
from trudify.routers import applications, auth, notifications, professionals, tasks

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Trudify API", version="0.1.0")
    app.state.settings = settings
    app.state.services = build_services(settings, transport=transport)
    if settings.seed_demo_data:
        seeded = seed_demo_data(app.state.services.db)
        if seeded:
            logger.info("Seeded %s demo users", seeded)

    allow_any_origin = len(settings.cors_origins) == 1 and settings.cors_origins[0] == "*"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        # Browsers reject wildcard CORS with credentials enabled.
        allow_credentials=not allow_any_origin,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if not (len(settings.trusted_hosts) == 1 and settings.trusted_hosts[0] == "*"):
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts)

    app.include_router(professionals.router)
    app.include_router(applications.router)
    app.include_router(tasks.router)
    app.include_router(notifications.router)
    app.include_router(auth.router)

    @app.get("/health")
    def health():
        return {"status": "ok", "environment": settings.environment}

    return app


app = create_app()
