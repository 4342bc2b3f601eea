"""
Row validation for mapped CSV data.

Validation never raises for bad data: every finding is returned as a
``ValidationIssue``. Errors (missing company or position) block their row;
warnings describe values that will be normalized or replaced by defaults
when the row is imported.
"""

import re
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from tracker.api.schemas.shared import (
    DATE_FIELDS,
    URL_FIELDS,
    DuplicateGroup,
    ValidationIssue,
    ValidationReport,
    ValidationSeverity,
    ValidationSummary,
)
from tracker.utils.date import parse_flexible_date

from .preprocessor import ENUM_RESOLVERS, clean_email, extract_fields, normalize_url

logger = logging.getLogger(__name__)


# Preset regex patterns for the contact fields an application carries
PRESET_PATTERNS = {
    "email": r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$",
    "phone": r"^\+?[\d\s\-\.\(\)]{7,20}$",
    "url": r"^https?://[^\s/$.?#].[^\s]*$",
}

PRESET_DESCRIPTIONS = {
    "email": "Standard email format (permissive)",
    "phone": "Loose phone number (7-20 digits with any separators)",
    "url": "HTTP/HTTPS URL",
}

FIELD_LABELS = {
    "company": "Company name",
    "position": "Position title",
}


def validate_with_preset(
    value: str,
    preset_name: str,
    allow_null: bool = True
) -> Tuple[bool, Optional[str]]:
    """
    Validate a value against a preset pattern.

    Args:
        value: Value to validate
        preset_name: Name of the preset validator
        allow_null: Whether to allow null/empty values

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_null:
            return True, None
        return False, "Value is required"

    pattern = PRESET_PATTERNS.get(preset_name)
    if pattern is None:
        return False, f"Unknown preset validator: {preset_name}"

    str_val = str(value).strip()
    if not re.match(pattern, str_val):
        description = PRESET_DESCRIPTIONS.get(preset_name)
        return False, f"Value '{str_val}' does not match {description or preset_name} format"
    return True, None


def _issue(row_index: int, field: str, message: str, severity: ValidationSeverity, value: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(row_index=row_index, field=field, message=message, severity=severity, value=value)


class RowValidator:
    """Applies the per-row rules to mapped rows."""

    def validate_row(
        self,
        row_index: int,
        row: Mapping[str, str],
        mapping: Mapping[str, str],
    ) -> Tuple[List[ValidationIssue], List[ValidationIssue]]:
        """
        Validate one raw row under ``mapping``.

        Returns:
            Tuple of (errors, warnings) for the row
        """
        fields = extract_fields(row, mapping)
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        for field in ("company", "position"):
            if not fields.get(field):
                errors.append(_issue(row_index, field, f"Missing {FIELD_LABELS[field]}", ValidationSeverity.ERROR))

        parsed_dates: Dict[str, str] = {}
        for field in DATE_FIELDS:
            value = fields.get(field)
            if not value:
                continue
            parsed = parse_flexible_date(value, log_context=field)
            if parsed is None:
                fallback = "today's date" if field == "appliedDate" else "empty"
                warnings.append(_issue(
                    row_index, field,
                    f"Invalid date format for {field}: '{value}' (will be set to {fallback})",
                    ValidationSeverity.WARNING, value,
                ))
            else:
                parsed_dates[field] = parsed

        for field, (resolver, default) in ENUM_RESOLVERS.items():
            value = fields.get(field)
            if not value:
                continue
            resolution = resolver(value)
            if not resolution.known:
                warnings.append(_issue(
                    row_index, field,
                    f"Unknown {field} '{value}'; defaulting to '{default.value}'",
                    ValidationSeverity.WARNING, value,
                ))
            elif resolution.normalized:
                warnings.append(_issue(
                    row_index, field,
                    f"{field.capitalize()} '{value}' normalized to '{resolution.value.value}'",
                    ValidationSeverity.WARNING, value,
                ))

        email = fields.get("contactEmail")
        if email:
            is_valid, _ = validate_with_preset(clean_email(email), "email")
            if not is_valid:
                warnings.append(_issue(
                    row_index, "contactEmail", f"Invalid email address '{email}'",
                    ValidationSeverity.WARNING, email,
                ))

        phone = fields.get("contactPhone")
        if phone:
            is_valid, _ = validate_with_preset(phone, "phone")
            if not is_valid:
                warnings.append(_issue(
                    row_index, "contactPhone", f"Unusual phone number '{phone}'",
                    ValidationSeverity.WARNING, phone,
                ))

        for field in URL_FIELDS:
            value = fields.get(field)
            if not value:
                continue
            url, looks_valid = normalize_url(value)
            if not looks_valid or not validate_with_preset(url, "url")[0]:
                warnings.append(_issue(
                    row_index, field, f"Invalid URL for {field}: '{value}'",
                    ValidationSeverity.WARNING, value,
                ))

        applied, response = parsed_dates.get("appliedDate"), parsed_dates.get("responseDate")
        if applied and response and response < applied:
            warnings.append(_issue(
                row_index, "responseDate",
                f"Response date {response} is before the applied date {applied}",
                ValidationSeverity.WARNING, fields.get("responseDate"),
            ))

        return errors, warnings

    def validate_rows(
        self,
        rows: Sequence[Mapping[str, str]],
        mapping: Mapping[str, str],
        duplicate_groups: Optional[Sequence[DuplicateGroup]] = None,
        start_index: int = 0,
    ) -> ValidationReport:
        """Validate ``rows`` and build the summary; row indices start at ``start_index``."""
        report = ValidationReport(duplicate_groups=list(duplicate_groups or []))
        for offset, row in enumerate(rows):
            errors, warnings = self.validate_row(start_index + offset, row, mapping)
            report.errors.extend(errors)
            report.warnings.extend(warnings)
        report.validation_summary = build_validation_summary(
            len(rows), mapping, report.errors, report.warnings, report.duplicate_groups,
        )
        return report


def build_validation_summary(
    total_rows: int,
    mapping: Mapping[str, str],
    errors: Sequence[ValidationIssue],
    warnings: Sequence[ValidationIssue],
    duplicate_groups: Sequence[DuplicateGroup],
) -> ValidationSummary:
    """
    Aggregate row findings into a summary with dataset-level checks.

    Zero valid rows, or no company column at all, is a systemic error.
    """
    blocked = {issue.row_index for issue in errors if issue.row_index is not None}
    warned = {issue.row_index for issue in warnings if issue.row_index is not None}
    summary = ValidationSummary(
        total_rows=total_rows,
        blocked_rows=len(blocked),
        valid_rows=total_rows - len(blocked),
        warning_rows=len(warned - blocked),
        duplicate_groups=len(duplicate_groups),
    )

    if "company" not in mapping:
        summary.systemic_errors.append("No column is mapped to company")
    if total_rows == 0:
        summary.systemic_errors.append("No data rows to import")
    elif summary.valid_rows == 0:
        summary.systemic_errors.append("No valid rows to import")
    summary.can_proceed = not summary.systemic_errors

    if summary.blocked_rows and summary.valid_rows:
        summary.recommendations.append(
            f"{summary.blocked_rows} row(s) have errors; fix them or import valid rows only"
        )
    if summary.warning_rows:
        summary.recommendations.append(
            f"{summary.warning_rows} row(s) have warnings; defaults will be applied on import"
        )
    if duplicate_groups:
        summary.recommendations.append(
            f"{len(duplicate_groups)} duplicate group(s) need a resolution before importing"
        )
    if summary.can_proceed and not summary.blocked_rows and not warnings and not duplicate_groups:
        summary.recommendations.append("Data looks good - ready to import")

    logger.info(
        "Validated %d rows: %d blocked, %d with warnings, %d duplicate groups",
        total_rows, summary.blocked_rows, summary.warning_rows, len(duplicate_groups),
    )
    return summary
