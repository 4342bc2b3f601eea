"""Exceptions raised by the CSV import pipeline."""
from typing import Optional


class ImportPipelineError(Exception):
    """Base exception for import pipeline failures."""
    pass


class ParseError(ImportPipelineError):
    """Raised when the CSV structure cannot be tokenized. Nothing is imported."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        self.message = message
        super().__init__(message)


class EncodingError(ImportPipelineError):
    """Raised when a single candidate encoding does not decode cleanly."""

    def __init__(self, encoding: str, reason: str):
        self.encoding = encoding
        self.reason = reason
        super().__init__(f"Could not decode as {encoding}: {reason}")


class TemplateNotFoundError(ImportPipelineError):
    """Raised when a caller asks for a template id the catalog does not have."""

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template not found: {template_id}")


class IdentifierCollisionError(ImportPipelineError):
    """Raised when no unique application id could be generated."""

    def __init__(self, attempts: int, last_candidate: str):
        self.attempts = attempts
        self.last_candidate = last_candidate
        super().__init__(
            f"Could not generate a unique application id after {attempts} attempts "
            f"(last candidate: {last_candidate})"
        )


class ImportCancelledError(ImportPipelineError):
    """Raised at a batch boundary once the caller has cancelled the session."""

    def __init__(self, stage: str, rows_processed: int = 0):
        self.stage = stage
        self.rows_processed = rows_processed
        super().__init__("processing cancelled")
