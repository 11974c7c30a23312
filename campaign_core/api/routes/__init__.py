from fastapi import FastAPI

from . import assignments, campaigns, health, templates, unified


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the FastAPI application."""
    app.include_router(health.router)
    app.include_router(campaigns.assessment_router)
    app.include_router(campaigns.engagement_router)
    app.include_router(assignments.router)
    app.include_router(unified.router)
    app.include_router(templates.router)
