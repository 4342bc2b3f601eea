"""
Shared dependencies for the API routers.

The template catalog is process-wide so custom templates created through the
API are visible to later requests. Import pipelines are created per request.
"""
from fastapi import HTTPException

from tracker.core.config import settings
from tracker.domain.imports.orchestrator import ImportPipeline
from tracker.domain.imports.templates import TemplateCatalog

template_catalog = TemplateCatalog(settings.template_partial_threshold)

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


def get_catalog() -> TemplateCatalog:
    return template_catalog


def get_pipeline() -> ImportPipeline:
    """Fresh import session sharing the process-wide template catalog."""
    return ImportPipeline(config=settings, catalog=template_catalog)


def require_csv_filename(filename: str) -> None:
    """
    Reject uploads that are not CSV files.

    Raises:
    - HTTPException: If the file extension is not .csv
    """
    if not filename or not filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Unsupported file type; upload a .csv file")
