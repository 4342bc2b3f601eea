"""
Entry point for the import service.

Builds the FastAPI app, wires CORS from settings and mounts the template
and upload preview routers.
"""
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routers import csv_templates, imports
from .core.config import settings
from .core.logging_config import configure_logging

# Configure logging before any router module logs.
configure_logging(settings.log_level)

app = FastAPI(
    title="Job Tracker Import API",
    version="1.0.0",
    description="CSV import for job application trackers: template detection, column mapping and validation",
)

allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(csv_templates.router)
app.include_router(imports.router)


@app.get("/")
async def root():
    """Service name and version."""
    return {
        "message": "Job Tracker Import API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "job-tracker-import"
    }
