"""
Import session orchestration.

``ImportPipeline`` ties the stages together for one import session:

    bytes -> encoding detection -> CSV parsing -> column detection
          -> [mapping review] -> validation + duplicate detection
          -> [duplicate resolution] -> import

Each public operation exists as a stage generator (``iter_*``) that yields
progress events between batches, a synchronous driver and, for the long
running ones, an async driver that hands control back to the event loop
between batches. A pipeline holds no state shared with other sessions.
"""

from typing import Dict, List, Mapping, Optional, Sequence
import logging

from tracker.api.schemas.shared import (
    Application,
    ImportOptions,
    ImportProgress,
    ImportResult,
    ImportStage,
    ProcessFileResult,
    ValidationIssue,
    ValidationReport,
)
from tracker.core.config import Settings, settings as default_settings

from .duplicates import detect_duplicates
from .encoding import detect_encoding
from .errors import ParseError
from .executor import IdentifierGenerator, ImportExecutor
from .field_detector import FieldDetector, decide_mapping_review
from .processors.csv_processor import parse_csv_text
from .progress import CancellationToken, ProgressCallback, ProgressSteps, arun_steps, percent, run_steps
from .templates import TemplateCatalog
from .validators import RowValidator, build_validation_summary

logger = logging.getLogger(__name__)

DETECTION_SAMPLE_ROWS = 20


class ImportPipeline:
    """
    One CSV import session.

    Collaborators are passed in (or built from ``config``) rather than looked
    up globally, so independent sessions can run side by side in-process.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        catalog: Optional[TemplateCatalog] = None,
        detector: Optional[FieldDetector] = None,
        validator: Optional[RowValidator] = None,
        id_generator: Optional[IdentifierGenerator] = None,
        executor: Optional[ImportExecutor] = None,
    ):
        self.config = config or default_settings
        self.catalog = catalog or TemplateCatalog(self.config.template_partial_threshold)
        self.detector = detector or FieldDetector(self.catalog, self.config)
        self.validator = validator or RowValidator()
        self.id_generator = id_generator or IdentifierGenerator(max_attempts=self.config.id_max_attempts)
        self.executor = executor or ImportExecutor(self.id_generator, batch_size=self.config.batch_size)
        self.batch_size = self.config.batch_size

    # ------------------------------------------------------------------
    # processFile
    # ------------------------------------------------------------------

    def iter_process_file(self, content: bytes) -> ProgressSteps:
        """Stage generator behind ``process_file``."""
        yield ImportProgress(stage=ImportStage.PARSING, progress=0, message="Detecting file encoding")
        encoding = detect_encoding(content)
        parsed = parse_csv_text(encoding.text)
        if not parsed.rows:
            raise ParseError("No valid data found in CSV file")

        total = len(parsed.rows)
        data: List[Dict[str, str]] = []
        for start in range(0, total, self.batch_size):
            batch = parsed.rows[start:start + self.batch_size]
            data.extend(batch)
            yield ImportProgress(
                stage=ImportStage.PARSING,
                progress=percent(len(data), total, 0, 40),
                message=f"Parsed {len(data)} of {total} rows",
                current_row=len(data),
                total_rows=total,
            )

        detection = self.detector.detect_columns(parsed.headers, data[:DETECTION_SAMPLE_ROWS])
        yield ImportProgress(
            stage=ImportStage.DETECTING,
            progress=50,
            message=f"Mapped {len(detection.detected_mapping)} of {len(parsed.headers)} columns",
            total_rows=total,
        )

        # Preview validation of the detected mapping, streamed batch by batch.
        for start in range(0, total, self.batch_size):
            end = min(start + self.batch_size, total)
            errors: List[ValidationIssue] = []
            warnings: List[ValidationIssue] = []
            for index in range(start, end):
                row_errors, row_warnings = self.validator.validate_row(index, data[index], detection.detected_mapping)
                errors.extend(row_errors)
                warnings.extend(row_warnings)
            yield ImportProgress(
                stage=ImportStage.VALIDATING,
                progress=percent(end, total, 50, 100),
                message=f"Checked {end} of {total} rows",
                current_row=end,
                total_rows=total,
                errors=errors,
                warnings=warnings,
            )

        suggestions = list(detection.suggestions)
        if parsed.truncated_rows:
            suggestions.append(
                f"{len(parsed.truncated_rows)} row(s) had more values than the header; the extra values were dropped"
            )

        result = ProcessFileResult(
            data=data,
            columns=parsed.headers,
            detected_mapping=detection.detected_mapping,
            confidence=detection.confidence,
            suggestions=suggestions,
            encoding=encoding.encoding,
            encoding_warning=encoding.warning,
            has_header_row=parsed.has_header_row,
            template_id=detection.template_id,
            mapping_decision=decide_mapping_review(detection.confidence, self.config),
        )
        yield ImportProgress(stage=ImportStage.COMPLETE, progress=100, message="File processed", total_rows=total)
        return result

    def process_file(
        self,
        content: bytes,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ProcessFileResult:
        """
        Decode, parse and detect columns for an uploaded CSV file.

        Raises:
            ParseError: if the CSV cannot be tokenized or has no data rows
            ImportCancelledError: if ``cancel_token`` is set between batches
        """
        return run_steps(self.iter_process_file(content), on_progress, cancel_token)

    async def aprocess_file(
        self,
        content: bytes,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ProcessFileResult:
        return await arun_steps(self.iter_process_file(content), on_progress, cancel_token)

    # ------------------------------------------------------------------
    # validateData
    # ------------------------------------------------------------------

    def iter_validate_data(
        self,
        rows: Sequence[Mapping[str, str]],
        mapping: Mapping[str, str],
        existing_applications: Optional[Sequence[Application]] = None,
    ) -> ProgressSteps:
        """Stage generator behind ``validate_data``."""
        total = len(rows)
        report = ValidationReport()
        for start in range(0, total, self.batch_size):
            end = min(start + self.batch_size, total)
            errors: List[ValidationIssue] = []
            warnings: List[ValidationIssue] = []
            for index in range(start, end):
                row_errors, row_warnings = self.validator.validate_row(index, rows[index], mapping)
                errors.extend(row_errors)
                warnings.extend(row_warnings)
            report.errors.extend(errors)
            report.warnings.extend(warnings)
            yield ImportProgress(
                stage=ImportStage.VALIDATING,
                progress=percent(end, total, 0, 90),
                message=f"Validated {end} of {total} rows",
                current_row=end,
                total_rows=total,
                errors=errors,
                warnings=warnings,
            )

        report.duplicate_groups = detect_duplicates(rows, mapping, existing_applications)
        report.validation_summary = build_validation_summary(
            total, mapping, report.errors, report.warnings, report.duplicate_groups,
        )
        yield ImportProgress(
            stage=ImportStage.VALIDATING,
            progress=100,
            message=f"Found {len(report.duplicate_groups)} duplicate groups",
            current_row=total,
            total_rows=total,
        )
        return report

    def validate_data(
        self,
        rows: Sequence[Mapping[str, str]],
        mapping: Mapping[str, str],
        existing_applications: Optional[Sequence[Application]] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ValidationReport:
        """Validate mapped rows and cluster duplicates, including against stored applications."""
        return run_steps(self.iter_validate_data(rows, mapping, existing_applications), on_progress, cancel_token)

    # ------------------------------------------------------------------
    # importWithValidation
    # ------------------------------------------------------------------

    def iter_import_with_validation(
        self,
        rows: Sequence[Mapping[str, str]],
        mapping: Mapping[str, str],
        options: Optional[ImportOptions] = None,
    ) -> ProgressSteps:
        """Stage generator behind ``import_with_validation``."""
        options = options or ImportOptions()
        report: Optional[ValidationReport] = None
        duplicate_groups = None
        if options.skip_validation:
            # Rows were validated earlier; regroup so confirmed resolutions still apply.
            duplicate_groups = detect_duplicates(rows, mapping, options.existing_applications)
        else:
            report = yield from self.iter_validate_data(rows, mapping, options.existing_applications)

        result: ImportResult = yield from self.executor.iter_execute(
            rows,
            mapping,
            report=report,
            duplicate_groups=duplicate_groups,
            existing_applications=options.existing_applications,
            resolutions=options.duplicate_resolutions,
            import_valid_rows_only=options.import_valid_rows_only,
        )
        yield ImportProgress(
            stage=ImportStage.COMPLETE,
            progress=100,
            message=f"Imported {result.summary.successful_imports} of {result.summary.total_rows} rows",
            current_row=len(rows),
            total_rows=len(rows),
        )
        return result

    def import_with_validation(
        self,
        rows: Sequence[Mapping[str, str]],
        mapping: Mapping[str, str],
        options: Optional[ImportOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ImportResult:
        """
        Validate (unless skipped) and import rows.

        Raises:
            IdentifierCollisionError: if no unique id could be generated
            ImportCancelledError: if ``cancel_token`` is set between batches
        """
        return run_steps(self.iter_import_with_validation(rows, mapping, options), on_progress, cancel_token)

    async def aimport_with_validation(
        self,
        rows: Sequence[Mapping[str, str]],
        mapping: Mapping[str, str],
        options: Optional[ImportOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ImportResult:
        return await arun_steps(self.iter_import_with_validation(rows, mapping, options), on_progress, cancel_token)
