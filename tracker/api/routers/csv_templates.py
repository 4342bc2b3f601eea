"""
CSV template endpoints: browse the catalog, download fillable CSV files and
recognize an upload's template from its headers.
"""
import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from tracker.api.dependencies import get_catalog
from tracker.api.schemas.shared import (
    CustomTemplateRequest,
    DetectTemplateRequest,
    Template,
    TemplateMappingResult,
    TemplateMatch,
)
from tracker.domain.imports.errors import TemplateNotFoundError
from tracker.domain.imports.templates import TemplateCatalog

router = APIRouter(prefix="/api/csv/templates", tags=["csv-templates"])

logger = logging.getLogger(__name__)


def _require(catalog: TemplateCatalog, template_id: str) -> Template:
    try:
        return catalog.require_template(template_id)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.get("", response_model=List[Template])
def list_templates(source: Optional[str] = None, catalog: TemplateCatalog = Depends(get_catalog)):
    """Return all templates, optionally restricted to one source."""
    if source:
        return catalog.get_templates_by_source(source)
    return catalog.get_all_templates()


@router.post("", response_model=Template, status_code=201)
def create_template(request: CustomTemplateRequest, catalog: TemplateCatalog = Depends(get_catalog)):
    """Save a confirmed column mapping as a reusable custom template."""
    try:
        return catalog.create_custom_template(request.name, request.description, request.mapping)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/detect", response_model=TemplateMatch)
def detect_template(request: DetectTemplateRequest, catalog: TemplateCatalog = Depends(get_catalog)):
    """Recognize which known export the given headers come from."""
    return catalog.detect_template(request.headers)


@router.get("/sample-data")
def sample_data(
    template_id: str,
    count: int = Query(10, ge=1, le=500),
    format: Literal["json", "csv"] = "json",
    catalog: TemplateCatalog = Depends(get_catalog),
):
    """
    Generate synthetic rows for a template.

    Parameters:
    - template_id: Template to generate rows for
    - count: Number of rows
    - format: ``json`` for a list of row objects, ``csv`` for a CSV document
    """
    _require(catalog, template_id)
    if format == "csv":
        content = catalog.generate_template_csv(template_id, include_examples=True, count=count)
        return Response(content=content, media_type="text/csv")
    return {"template_id": template_id, "rows": catalog.generate_sample_data(template_id, count)}


@router.get("/{template_id}", response_model=Template)
def get_template(template_id: str, catalog: TemplateCatalog = Depends(get_catalog)):
    return _require(catalog, template_id)


@router.get("/{template_id}/download")
def download_template(
    template_id: str,
    examples: bool = True,
    catalog: TemplateCatalog = Depends(get_catalog),
):
    """Download the template as a CSV file, with example rows unless ``examples=false``."""
    _require(catalog, template_id)
    content = catalog.generate_template_csv(template_id, include_examples=examples)
    logger.info("Serving template '%s' (examples=%s)", template_id, examples)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{template_id}-template.csv"'},
    )


@router.get("/{template_id}/mapping", response_model=TemplateMappingResult)
def template_mapping(
    template_id: str,
    headers: List[str] = Query([]),
    catalog: TemplateCatalog = Depends(get_catalog),
):
    """Map the given headers onto a template's fields."""
    _require(catalog, template_id)
    return catalog.generate_mapping_from_template(template_id, headers)
