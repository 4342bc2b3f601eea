"""
Pytest configuration and fixtures for the import pipeline tests.

Everything runs in-process: there is no storage layer, so fixtures only
build pipeline collaborators with deterministic ids and a fixed "today".
"""

import pytest

from tracker.core.config import Settings
from tracker.domain.imports.field_detector import FieldDetector
from tracker.domain.imports.templates import TemplateCatalog
from tests.utils.pipeline import build_pipeline


@pytest.fixture
def catalog():
    return TemplateCatalog()


@pytest.fixture
def detector(catalog):
    return FieldDetector(catalog)


@pytest.fixture
def pipeline():
    return build_pipeline()


@pytest.fixture
def small_batch_pipeline():
    """Pipeline that emits a progress event every 10 rows."""
    return build_pipeline(Settings(batch_size=10))
