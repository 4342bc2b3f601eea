"""
CSV upload endpoints.
"""
import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from tracker.api.dependencies import MAX_UPLOAD_BYTES, get_pipeline, require_csv_filename
from tracker.api.schemas.shared import ProcessFileResult
from tracker.domain.imports.errors import ParseError
from tracker.domain.imports.orchestrator import ImportPipeline

router = APIRouter(prefix="/api/imports", tags=["imports"])

logger = logging.getLogger(__name__)


@router.post("/preview", response_model=ProcessFileResult)
async def preview_import(
    file: UploadFile = File(...),
    pipeline: ImportPipeline = Depends(get_pipeline),
):
    """
    Parse an uploaded CSV file and detect its column mapping.

    Parameters:
    - file: The CSV file to import

    Returns:
    - Parsed rows, detected mapping with per-field confidence, suggestions,
      the detected encoding and whether the mapping needs review
    """
    require_csv_filename(file.filename)
    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File is too large")

    logger.info("Received preview request for '%s' (%d bytes)", file.filename, len(content))
    try:
        return await pipeline.aprocess_file(content)
    except ParseError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
