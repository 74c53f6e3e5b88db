"""FastAPI application factory."""

from fastapi import FastAPI

from recordkeeper import __version__
from recordkeeper.api.exception_handlers import register_exception_handlers
from recordkeeper.api.routers import admin_albums
from recordkeeper.config import Settings, get_settings
from recordkeeper.infrastructure.lifecycle import lifespan
from recordkeeper.infrastructure.observability.middleware import RequestLoggingMiddleware


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the admin API application.

    Args:
        settings: Settings to use; defaults to the environment-derived ones

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="RecordKeeper",
        description="Album identity reconciliation and list storage deduplication",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)
    app.include_router(admin_albums.router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    return app


def run() -> None:
    """Serve the admin API with uvicorn (console entry point)."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
