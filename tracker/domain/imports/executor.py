"""
Turns mapped, validated rows into ``Application`` records.

The executor applies duplicate resolutions, fills defaults, normalizes enum
and date values and assigns identifiers. It is a stage generator: it yields
an ``ImportProgress`` after every batch and returns an ``ImportResult``.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from tracker.api.schemas.shared import (
    DATE_FIELDS,
    FIELD_ATTRIBUTES,
    LIST_FIELDS,
    URL_FIELDS,
    Application,
    ApplicationStatus,
    ApplicationUpdate,
    DuplicateGroup,
    DuplicateResolution,
    ImportProgress,
    ImportResult,
    ImportStage,
    ImportStatus,
    ImportSummary,
    JobType,
    Priority,
    ResolutionAction,
    ValidationIssue,
    ValidationReport,
    ValidationSeverity,
)
from tracker.core.config import settings
from tracker.utils.date import parse_flexible_date

from .duplicates import generate_merge_preview
from .errors import IdentifierCollisionError
from .preprocessor import ENUM_RESOLVERS, clean_email, extract_fields, normalize_url, split_list
from .progress import ProgressSteps, percent

logger = logging.getLogger(__name__)


def _uuid_source() -> str:
    return f"imported-{uuid.uuid4().hex}"


class IdentifierGenerator:
    """
    Hands out application ids that are unique within one import session.

    Ids already present in stored applications are reserved up front. The id
    source is injectable so tests can force collisions.
    """

    def __init__(
        self,
        existing_ids: Iterable[str] = (),
        id_source: Optional[Callable[[], str]] = None,
        max_attempts: Optional[int] = None,
    ):
        self._taken = set(existing_ids)
        self._source = id_source or _uuid_source
        self.max_attempts = max_attempts or settings.id_max_attempts

    def reserve(self, ids: Iterable[str]) -> None:
        self._taken.update(ids)

    def next_id(self) -> str:
        candidate = ""
        for attempt in range(1, self.max_attempts + 1):
            candidate = self._source()
            if candidate not in self._taken:
                self._taken.add(candidate)
                return candidate
            logger.warning("Generated id %s collides (attempt %d/%d)", candidate, attempt, self.max_attempts)
        raise IdentifierCollisionError(self.max_attempts, candidate)


def normalize_fields(fields: Mapping[str, str]) -> Dict[str, Any]:
    """
    Convert cleaned cells into typed application values.

    Only non-empty fields are returned; values that cannot be normalized
    (bad dates, unknown enum labels) are left out so defaults apply later.
    """
    values: Dict[str, Any] = {}
    for field, raw in fields.items():
        if not raw:
            continue
        if field in DATE_FIELDS:
            parsed = parse_flexible_date(raw, log_failures=False)
            if parsed:
                values[field] = parsed
        elif field in ENUM_RESOLVERS:
            resolver, _ = ENUM_RESOLVERS[field]
            resolution = resolver(raw)
            if resolution.known:
                values[field] = resolution.value.value
        elif field in LIST_FIELDS:
            items = split_list(raw)
            if items:
                values[field] = items
        elif field in URL_FIELDS:
            url, looks_valid = normalize_url(raw)
            values[field] = url if looks_valid else raw
        elif field == "contactEmail":
            values[field] = clean_email(raw)
        else:
            values[field] = raw
    return values


def application_to_fields(application: Application) -> Dict[str, Any]:
    """Target-field view of a stored application, comparable with ``normalize_fields`` output."""
    data = application.model_dump(mode="json")
    return {field: data[attribute] for field, attribute in FIELD_ATTRIBUTES.items()}


def build_application(values: Mapping[str, Any], application_id: str, today: date, timestamp: str) -> Application:
    """Create an Application from normalized values, applying defaults for everything missing."""
    data: Dict[str, Any] = {
        FIELD_ATTRIBUTES[field]: value for field, value in values.items() if field in FIELD_ATTRIBUTES
    }
    data.setdefault("status", ApplicationStatus.PENDING)
    data.setdefault("type", JobType.FULL_TIME)
    data.setdefault("priority", Priority.MEDIUM)
    data.setdefault("applied_date", today.isoformat())
    return Application(id=application_id, created_at=timestamp, updated_at=timestamp, **data)


def _has_required(values: Mapping[str, Any]) -> bool:
    return bool(str(values.get("company") or "").strip()) and bool(str(values.get("position") or "").strip())


class ImportExecutor:
    """Applies a confirmed mapping and duplicate resolutions to produce applications."""

    def __init__(
        self,
        id_generator: IdentifierGenerator,
        today: Optional[date] = None,
        clock: Optional[Callable[[], datetime]] = None,
        batch_size: Optional[int] = None,
    ):
        self.id_generator = id_generator
        self.today = today
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.batch_size = batch_size or settings.batch_size

    def iter_execute(
        self,
        rows: Sequence[Mapping[str, str]],
        mapping: Mapping[str, str],
        *,
        report: Optional[ValidationReport] = None,
        duplicate_groups: Optional[Sequence[DuplicateGroup]] = None,
        existing_applications: Sequence[Application] = (),
        resolutions: Sequence[DuplicateResolution] = (),
        import_valid_rows_only: bool = False,
    ) -> ProgressSteps:
        """
        Import ``rows`` batch by batch.

        Without ``import_valid_rows_only`` any blocking error fails the whole
        import; duplicate groups without a resolution make the result
        ``resolution_required``. In both cases nothing is imported.

        ``duplicate_groups`` overrides the groups carried by ``report``; it is
        how resolutions reach the executor when validation was skipped.
        """
        total = len(rows)
        if duplicate_groups is not None:
            groups: List[DuplicateGroup] = list(duplicate_groups)
        else:
            groups = list(report.duplicate_groups) if report else []
        summary = ImportSummary(total_rows=total, duplicates_found=len(groups))
        if report is not None:
            summary.errors = list(report.errors)
            summary.warnings = list(report.warnings)
        blocked = report.blocked_row_indices() if report else set()

        if blocked and not import_valid_rows_only:
            logger.info("Import refused: %d rows have blocking errors", len(blocked))
            summary.skipped_rows = total
            return ImportResult(status=ImportStatus.VALIDATION_FAILED, summary=summary)

        decisions = {resolution.group_id: resolution.action for resolution in resolutions}
        unresolved = [group for group in groups if group.id not in decisions]
        if unresolved:
            logger.info("Import paused: %d duplicate groups need a resolution", len(unresolved))
            summary.skipped_rows = total
            return ImportResult(
                status=ImportStatus.RESOLUTION_REQUIRED, summary=summary, unresolved_groups=unresolved,
            )

        self.id_generator.reserve(application.id for application in existing_applications)
        today = self.today or date.today()
        timestamp = self.clock().isoformat()
        existing_by_id = {application.id: application for application in existing_applications}
        group_by_row = {index: group for group in groups for index in group.member_row_indices}
        merged_groups = set()

        applications: List[Application] = []
        updates: List[ApplicationUpdate] = []

        def row_values(index: int) -> Dict[str, Any]:
            return normalize_fields(extract_fields(rows[index], mapping))

        for start in range(0, total, self.batch_size):
            end = min(start + self.batch_size, total)
            for index in range(start, end):
                if index in blocked:
                    summary.skipped_rows += 1
                    continue

                group = group_by_row.get(index)
                action = decisions[group.id] if group else ResolutionAction.IMPORT_AS_NEW

                if action is ResolutionAction.SKIP:
                    summary.skipped_rows += 1
                    continue

                if action is ResolutionAction.MERGE:
                    if group.id not in merged_groups:
                        merged_groups.add(group.id)
                        members = [member for member in group.member_row_indices if member not in blocked]
                        member_values = [row_values(member) for member in members]
                        target = next(
                            (existing_by_id[i] for i in group.existing_application_ids if i in existing_by_id),
                            None,
                        )
                        if target is not None:
                            updates.append(self._merge_into_existing(target, members, member_values))
                            summary.updated_records += 1
                        else:
                            merged = generate_merge_preview(member_values)
                            applications.append(
                                build_application(merged, self.id_generator.next_id(), today, timestamp)
                            )
                            summary.merged_rows += len(members) - 1
                    summary.successful_imports += 1
                    continue

                values = row_values(index)
                if not _has_required(values):
                    # Only reachable when validation was skipped.
                    summary.skipped_rows += 1
                    summary.errors.append(ValidationIssue(
                        row_index=index,
                        field="company" if not values.get("company") else "position",
                        message="Row is missing company or position and was not imported",
                        severity=ValidationSeverity.ERROR,
                    ))
                    continue

                applications.append(build_application(values, self.id_generator.next_id(), today, timestamp))
                summary.successful_imports += 1

            yield ImportProgress(
                stage=ImportStage.IMPORTING,
                progress=percent(end, total),
                message=f"Imported {end} of {total} rows",
                current_row=end,
                total_rows=total,
            )

        logger.info(
            "Import finished: %d imported, %d skipped, %d updates, %d duplicate groups",
            summary.successful_imports, summary.skipped_rows, len(updates), summary.duplicates_found,
        )
        return ImportResult(applications=applications, updates=updates, summary=summary)

    def _merge_into_existing(
        self,
        target: Application,
        members: List[int],
        member_values: List[Dict[str, Any]],
    ) -> ApplicationUpdate:
        base = application_to_fields(target)
        merged = generate_merge_preview([base] + member_values)
        changes = {
            FIELD_ATTRIBUTES[field]: value
            for field, value in merged.items()
            if field in FIELD_ATTRIBUTES and base.get(field) != value
        }
        return ApplicationUpdate(application_id=target.id, changes=changes, source_row_indices=members)
