"""FastAPI application factory."""
from fastapi import FastAPI

from lifelog.api.routes import sync as sync_routes


def create_app() -> FastAPI:
    """Build and return the FastAPI app. Tables are created on first engine use."""
    app = FastAPI(
        title="Lifelog API",
        description="Personal data sync backend",
        version="0.1.0",
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
