"""
Column → target field detection for uploaded CSV files.

Detection runs in two passes:
1. Template recognition: if the headers look like a known export, the
   template's columns are mapped with high confidence.
2. Alias matching: every still-unmapped field is scored against the
   remaining headers using its alias list (exact, containment, fuzzy).

Optionally, sample rows are sniffed for e-mail/URL/date shaped values to
place columns whose names gave nothing away.
"""
import logging
import re
from difflib import SequenceMatcher
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from tracker.api.schemas.shared import (
    ColumnDetectionResult,
    FieldSuggestion,
    MappingDecision,
    TARGET_FIELDS,
)
from tracker.core.config import Settings, settings as default_settings
from tracker.utils.date import parse_flexible_date

from .templates import TemplateCatalog, normalize_header

logger = logging.getLogger(__name__)

# Score multipliers for the three alias match strengths.
EXACT_MATCH_SCORE = 0.95
CONTAINMENT_BASE_SCORE = 0.5
CONTAINMENT_LENGTH_BONUS = 0.35
FUZZY_MATCH_SCORE = 0.6
FUZZY_MIN_RATIO = 0.8
MIN_ALIAS_LENGTH_FOR_PARTIAL = 4

PATTERN_MATCH_CONFIDENCE = 0.5
PATTERN_MIN_SHARE = 0.8
SAMPLE_ROW_LIMIT = 20

# target field -> (weight, aliases)
FIELD_ALIASES: Dict[str, Tuple[float, List[str]]] = {
    "company": (1.0, [
        "company", "company name", "employer", "employer name", "organization", "organisation",
        "firm", "business", "corporation", "corp", "enterprise", "şirket", "şirket adı", "firma",
    ]),
    "position": (1.0, [
        "position", "job title", "title", "role", "job", "position title", "job role",
        "designation", "post", "pozisyon",
    ]),
    "location": (0.9, [
        "location", "city", "country", "place", "address", "region", "office", "where",
        "lokasyon", "şehir", "ülke",
    ]),
    "type": (0.9, [
        "type", "job type", "employment type", "work type", "contract type", "employment",
        "contract",
    ]),
    "salary": (0.9, [
        "salary", "wage", "compensation", "pay", "payment", "remuneration", "income",
        "earnings", "package", "salary range", "maaş",
    ]),
    "status": (0.95, [
        "status", "application status", "state", "current status", "stage", "phase",
        "progress", "durum",
    ]),
    "appliedDate": (0.95, [
        "applied date", "date applied", "application date", "applied", "apply date",
        "applied on", "submit date", "submission date", "date", "başvuru tarihi",
    ]),
    "responseDate": (0.9, [
        "response date", "reply date", "response", "feedback date", "answer date", "cevap tarihi",
    ]),
    "interviewDate": (0.9, [
        "interview date", "interview", "meeting date", "call date", "screening date",
        "mülakat tarihi",
    ]),
    "offerDate": (0.9, ["offer date", "offer received", "date offered"]),
    "rejectionDate": (0.9, ["rejection date", "rejected date", "date rejected", "rejected on"]),
    "followUpDate": (0.9, ["follow up date", "follow up", "followup", "next step date", "reminder date"]),
    "notes": (0.9, [
        "notes", "note", "comments", "comment", "remarks", "memo", "details", "info",
        "description", "notlar",
    ]),
    "jobDescription": (0.9, ["job description", "role description", "jd", "job details"]),
    "requirements": (0.9, ["requirements", "qualifications", "required skills", "skills required"]),
    "contactPerson": (0.9, [
        "contact person", "contact name", "contact", "recruiter", "hiring manager",
        "hr contact", "person", "name",
    ]),
    "contactEmail": (0.9, [
        "contact email", "email", "e-mail", "email address", "mail", "recruiter email", "hr email",
    ]),
    "contactPhone": (0.9, ["contact phone", "phone", "phone number", "telephone", "mobile"]),
    "website": (0.9, ["website", "web site", "url", "link", "site", "homepage", "web"]),
    "jobUrl": (0.9, ["job url", "job link", "posting url", "job posting", "listing url", "application link"]),
    "companyWebsite": (0.9, ["company website", "company url", "company site"]),
    "tags": (0.9, [
        "tags", "tag", "labels", "categories", "category", "keywords", "skills", "sector",
        "technologies", "etiketler",
    ]),
    "priority": (0.9, ["priority", "importance", "urgency", "rank", "preference", "öncelik"]),
}

_EMAIL_VALUE = re.compile(r"^(mailto:)?[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
_URL_VALUE = re.compile(r"^(https?://|www\.)\S+$", re.IGNORECASE)
_DATE_SHAPE = re.compile(r"^\d{1,4}[-/.]\d{1,2}[-/.]\d{1,4}$|^[A-Za-z]{3,}\.? \d{1,2},? \d{4}$")

_NORMALIZED_ALIASES: Dict[str, Tuple[float, List[Tuple[str, str]]]] = {
    field: (weight, [(alias, normalize_header(alias)) for alias in aliases])
    for field, (weight, aliases) in FIELD_ALIASES.items()
}


def calculate_similarity(str1: str, str2: str) -> float:
    """Calculate similarity ratio between two strings (0.0 to 1.0)."""
    return SequenceMatcher(None, str1, str2).ratio()


def score_alias(normalized_header: str, normalized_alias: str) -> float:
    """
    Unweighted score for one header/alias pair.

    Equality scores highest; containment scales with how much of the longer
    string the shorter covers; fuzzy matches only count for near-misses
    such as typos.
    """
    if not normalized_header or not normalized_alias:
        return 0.0
    if normalized_header == normalized_alias:
        return EXACT_MATCH_SCORE

    shorter, longer = sorted((normalized_header, normalized_alias), key=len)
    if len(shorter) >= MIN_ALIAS_LENGTH_FOR_PARTIAL and shorter in longer:
        return CONTAINMENT_BASE_SCORE + CONTAINMENT_LENGTH_BONUS * (len(shorter) / len(longer))

    if len(normalized_alias) >= MIN_ALIAS_LENGTH_FOR_PARTIAL:
        ratio = calculate_similarity(normalized_header, normalized_alias)
        if ratio >= FUZZY_MIN_RATIO:
            return FUZZY_MATCH_SCORE * ratio
    return 0.0


def score_field(field: str, header: str) -> Tuple[float, str]:
    """Best weighted score of ``header`` against ``field``'s aliases, with the alias that produced it."""
    weight, aliases = _NORMALIZED_ALIASES[field]
    normalized = normalize_header(header)
    best_score, best_alias = 0.0, ""
    for alias, normalized_alias in aliases:
        score = score_alias(normalized, normalized_alias) * weight
        if score > best_score:
            best_score, best_alias = score, alias
    return best_score, best_alias


def decide_mapping_review(
    confidence: Mapping[str, float],
    config: Optional[Settings] = None,
) -> MappingDecision:
    """
    Decide whether a detected mapping can be used without manual review.

    Auto-proceed requires ``company`` above the company threshold and at
    least the configured share of mapped fields above the high-confidence
    threshold.
    """
    config = config or default_settings
    if not confidence:
        return MappingDecision.REQUIRE_MAPPING_REVIEW

    if confidence.get("company", 0.0) <= config.auto_proceed_company_confidence:
        return MappingDecision.REQUIRE_MAPPING_REVIEW

    high = sum(1 for value in confidence.values() if value > config.auto_proceed_high_confidence)
    if high / len(confidence) >= config.auto_proceed_min_high_fraction:
        return MappingDecision.AUTO_PROCEED
    return MappingDecision.REQUIRE_MAPPING_REVIEW


class FieldDetector:
    """Maps CSV headers to application fields with per-field confidence."""

    def __init__(self, catalog: Optional[TemplateCatalog] = None, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.catalog = catalog or TemplateCatalog(self.config.template_partial_threshold)

    def detect_columns(
        self,
        headers: Sequence[str],
        sample_rows: Optional[Sequence[Mapping[str, str]]] = None,
    ) -> ColumnDetectionResult:
        """
        Detect a column mapping for ``headers``.

        Args:
            headers: Header row as parsed
            sample_rows: Optional first rows of data, used to place columns by value shape

        Returns:
            ColumnDetectionResult with mapping, confidence and suggestions
        """
        headers = [str(header).strip() for header in headers]
        result = ColumnDetectionResult()
        if not any(headers):
            result.suggestions.append("No columns found; check that the file has a header row")
            return result

        match = self.catalog.detect_template(headers)
        if match.template is not None:
            template = match.template
            result.template_id = template.id
            result.template_confidence = match.confidence
            template_confidence = round(0.8 + 0.2 * match.confidence, 4)
            by_normalized = {normalize_header(header): header for header in reversed(headers)}
            for field_mapping in template.field_mappings:
                header = by_normalized.get(normalize_header(field_mapping.csv_column))
                if header is not None and header not in result.detected_mapping.values():
                    result.detected_mapping[field_mapping.target_field] = header
                    result.confidence[field_mapping.target_field] = template_confidence

            total = len(template.field_mappings)
            if match.confidence >= self.config.template_high_threshold:
                result.suggestions.append(f"Detected {template.name} format ({match.matched_fields}/{total} columns)")
            else:
                result.suggestions.append(
                    f"Partially matched the {template.name} template ({match.matched_fields}/{total} columns); "
                    "review the remaining columns"
                )

        self._match_aliases(headers, result)
        if sample_rows:
            self._match_value_patterns(headers, sample_rows, result)

        self._add_suggestions(headers, result)
        logger.info(
            "Detected %d/%d columns (template=%s)",
            len(result.detected_mapping), len(headers), result.template_id,
        )
        return result

    def detect_columns_with_template(self, headers: Sequence[str], template_id: str) -> ColumnDetectionResult:
        """
        Map ``headers`` using only the given template's columns.

        Raises:
            TemplateNotFoundError: if ``template_id`` is not in the catalog
        """
        template = self.catalog.require_template(template_id)
        headers = [str(header).strip() for header in headers]
        mapped = self.catalog.generate_mapping_from_template(template_id, headers)

        result = ColumnDetectionResult(
            detected_mapping=dict(mapped.mapping),
            confidence=dict(mapped.confidence),
            template_id=template.id,
            template_confidence=len(mapped.mapping) / len(template.field_mappings) if template.field_mappings else 0.0,
        )
        result.suggestions.append(f"Using {template.name} template")
        for field in mapped.missing_fields:
            result.suggestions.append(f"Required field '{field}' not found for the {template.name} template")
        if mapped.unmapped_headers:
            result.suggestions.append(
                f"{len(mapped.unmapped_headers)} column(s) are not part of the template and will be ignored: "
                + ", ".join(mapped.unmapped_headers)
            )
        self._add_suggestions(headers, result, report_unmapped=False)
        return result

    def get_field_suggestions(self, header: str, limit: int = 3) -> List[FieldSuggestion]:
        """Rank the target fields a single column could map to."""
        ranked = []
        for field in TARGET_FIELDS:
            score, alias = score_field(field, header)
            if score > self.config.field_min_confidence:
                ranked.append(FieldSuggestion(target_field=field, confidence=round(score, 4), matched_alias=alias))
        ranked.sort(key=lambda suggestion: -suggestion.confidence)
        return ranked[:limit]

    def _match_aliases(self, headers: List[str], result: ColumnDetectionResult) -> None:
        used = set(result.detected_mapping.values())
        candidates = []
        for field_order, field in enumerate(TARGET_FIELDS):
            if field in result.detected_mapping:
                continue
            for header_order, header in enumerate(headers):
                if not header or header in used:
                    continue
                score, _ = score_field(field, header)
                if score > self.config.field_min_confidence:
                    candidates.append((-score, field_order, header_order, field, header, score))

        # Best pairs first; each field and header is assigned at most once.
        for _, _, _, field, header, score in sorted(candidates):
            if field in result.detected_mapping or header in used:
                continue
            result.detected_mapping[field] = header
            result.confidence[field] = round(score, 4)
            used.add(header)

    def _match_value_patterns(
        self,
        headers: List[str],
        sample_rows: Sequence[Mapping[str, str]],
        result: ColumnDetectionResult,
    ) -> None:
        used = set(result.detected_mapping.values())
        samples = list(sample_rows)[:SAMPLE_ROW_LIMIT]

        for header in headers:
            if not header or header in used:
                continue
            values = [str(row.get(header, "")).strip() for row in samples]
            values = [value for value in values if value]
            if not values:
                continue

            field = None
            if _share(values, _EMAIL_VALUE.match) >= PATTERN_MIN_SHARE:
                field = "contactEmail"
            elif _share(values, _URL_VALUE.match) >= PATTERN_MIN_SHARE:
                field = "website" if "website" not in result.detected_mapping else "jobUrl"
            elif _share(values, _looks_like_date) >= PATTERN_MIN_SHARE:
                field = "appliedDate"

            if field and field not in result.detected_mapping:
                result.detected_mapping[field] = header
                result.confidence[field] = PATTERN_MATCH_CONFIDENCE
                used.add(header)
                logger.debug("Mapped column '%s' to %s from its values", header, field)

    def _add_suggestions(self, headers: List[str], result: ColumnDetectionResult, report_unmapped: bool = True) -> None:
        config = self.config
        company_confidence = result.confidence.get("company")
        if company_confidence is None:
            result.suggestions.append("Company column not detected; map it manually before importing")
        elif company_confidence <= config.auto_proceed_company_confidence:
            result.suggestions.append(
                f"Company mapped to '{result.detected_mapping['company']}' with low confidence; please verify"
            )

        low = [
            field for field, value in result.confidence.items()
            if value < config.low_confidence_threshold and field != "company"
        ]
        if low:
            result.suggestions.append("Low confidence mappings, please review: " + ", ".join(
                f"{field} ← '{result.detected_mapping[field]}'" for field in low
            ))

        if result.confidence and decide_mapping_review(result.confidence, config) is MappingDecision.REQUIRE_MAPPING_REVIEW:
            result.suggestions.append("Mixed confidence across columns; review the mapping before validating")

        if report_unmapped:
            mapped = set(result.detected_mapping.values())
            unmapped = [header for header in headers if header and header not in mapped]
            if unmapped:
                result.suggestions.append(f"{len(unmapped)} column(s) not mapped: " + ", ".join(unmapped))


def _share(values: List[str], predicate) -> float:
    return sum(1 for value in values if predicate(value)) / len(values)


def _looks_like_date(value: str) -> bool:
    return bool(_DATE_SHAPE.match(value)) and parse_flexible_date(value, log_failures=False) is not None
