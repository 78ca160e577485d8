from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from db.database import Database
from auth.routes import router as auth_router
from api.goals import router as goals_router
from api.steps import router as steps_router
from api.metrics import router as metrics_router
from api.planning import router as planning_router
from api.events import router as events_router
from api.automations import router as automations_router
from api.settings import router as settings_router
from api.stats import router as stats_router
from api.values import router as values_router
from api.areas import router as areas_router
from api.notes import router as notes_router
from api.cron import router as cron_router


def create_app(database: Database | None = None) -> FastAPI:
    """Build the API around a store handle (a fresh one from settings when omitted)."""
    settings.validate_security_configuration()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        handle = database or Database(settings.DATABASE_URL)
        handle.create_all()
        app.state.database = handle
        try:
            yield
        finally:
            handle.dispose()

    app = FastAPI(title=settings.APP_NAME, version="1.0.0", lifespan=lifespan)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        response = await call_next(request)
        if not settings.SECURITY_HEADERS_ENABLED:
            return response
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
        response.headers["Content-Security-Policy"] = settings.SECURITY_CSP
        return response

    # Routers
    app.include_router(auth_router, prefix="/api")
    app.include_router(goals_router, prefix="/api")
    app.include_router(steps_router, prefix="/api")
    app.include_router(metrics_router, prefix="/api")
    app.include_router(planning_router, prefix="/api")
    app.include_router(events_router, prefix="/api")
    app.include_router(automations_router, prefix="/api")
    app.include_router(settings_router, prefix="/api")
    app.include_router(stats_router, prefix="/api")
    app.include_router(values_router, prefix="/api")
    app.include_router(areas_router, prefix="/api")
    app.include_router(notes_router, prefix="/api")
    app.include_router(cron_router, prefix="/api")

    @app.get("/api/health")
    def health_check():
        return {"status": "ok", "app": settings.APP_NAME}

    return app


app = create_app()
