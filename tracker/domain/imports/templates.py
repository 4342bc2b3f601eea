"""
Catalog of known CSV export shapes (LinkedIn, Indeed, Glassdoor, ...).

Templates drive two things: recognizing an uploaded file by its headers, and
producing downloadable CSV files users can fill in.
"""
import csv
import io
import logging
import random
import re
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from tracker.api.schemas.shared import (
    FIELD_ATTRIBUTES,
    DATE_FIELDS,
    Template,
    TemplateFieldMapping,
    TemplateMappingResult,
    TemplateMatch,
)
from tracker.core.config import settings

from .errors import TemplateNotFoundError

logger = logging.getLogger(__name__)

# Common alternative column names per target field, used when a template
# column is missing from an upload under its exact name.
FIELD_VARIATIONS: Dict[str, List[str]] = {
    "company": ["employer", "organization", "firm", "business", "corp"],
    "position": ["job title", "role", "title", "job", "position title"],
    "location": ["city", "place", "address", "where", "office"],
    "type": ["job type", "employment type", "contract", "work type"],
    "salary": ["pay", "wage", "compensation", "income", "remuneration"],
    "status": ["state", "stage", "progress", "application status"],
    "appliedDate": ["date applied", "application date", "apply date", "submitted"],
    "responseDate": ["response", "reply date", "heard back"],
    "interviewDate": ["interview", "meeting date", "call date"],
    "notes": ["comments", "remarks", "description", "memo"],
    "contactPerson": ["contact", "recruiter", "hr", "person"],
    "contactEmail": ["email", "contact email", "recruiter email"],
    "website": ["url", "link", "site", "web"],
    "tags": ["keywords", "categories", "labels"],
}

_BUILTIN_TEMPLATES: Sequence[Tuple[str, str, str, str, Sequence[Tuple[str, str]]]] = (
    (
        "linkedin", "LinkedIn Export", "Standard format for LinkedIn job application exports", "linkedin",
        (
            ("Company", "company"), ("Position", "position"), ("Location", "location"),
            ("Applied Date", "appliedDate"), ("Status", "status"), ("Notes", "notes"),
        ),
    ),
    (
        "indeed", "Indeed Format", "Format compatible with Indeed job applications", "indeed",
        (
            ("Company Name", "company"), ("Job Title", "position"), ("Location", "location"),
            ("Date Applied", "appliedDate"), ("Application Status", "status"), ("Salary", "salary"),
            ("Job Type", "type"),
        ),
    ),
    (
        "glassdoor", "Glassdoor Format", "Format for Glassdoor job applications", "glassdoor",
        (
            ("Employer", "company"), ("Job Title", "position"), ("Location", "location"),
            ("Date Applied", "appliedDate"), ("Status", "status"), ("Salary Estimate", "salary"),
        ),
    ),
    (
        "custom", "Complete Template", "Comprehensive template with all available fields", "custom",
        (
            ("Company", "company"), ("Position", "position"), ("Location", "location"),
            ("Type", "type"), ("Salary", "salary"), ("Status", "status"),
            ("Applied Date", "appliedDate"), ("Response Date", "responseDate"),
            ("Interview Date", "interviewDate"), ("Offer Date", "offerDate"),
            ("Rejection Date", "rejectionDate"), ("Notes", "notes"),
            ("Job Description", "jobDescription"), ("Requirements", "requirements"),
            ("Contact Person", "contactPerson"), ("Contact Email", "contactEmail"),
            ("Contact Phone", "contactPhone"), ("Website", "website"), ("Job URL", "jobUrl"),
            ("Company Website", "companyWebsite"), ("Tags", "tags"), ("Priority", "priority"),
            ("Follow Up Date", "followUpDate"),
        ),
    ),
    (
        "minimal", "Minimal Template", "Simple template with only essential fields", "custom",
        (
            ("Company", "company"), ("Position", "position"), ("Status", "status"),
            ("Applied Date", "appliedDate"),
        ),
    ),
    (
        "european", "European Format", "Template optimized for European job markets", "custom",
        (
            ("Company", "company"), ("Position", "position"), ("Location", "location"),
            ("Salary (Annual)", "salary"), ("Contract Type", "type"),
            ("Application Status", "status"), ("Application Date", "appliedDate"),
            ("Notes", "notes"),
        ),
    ),
)

SAMPLE_COMPANIES = [
    "Google", "Microsoft", "Apple", "Amazon", "Meta", "Netflix", "Tesla",
    "Spotify", "Airbnb", "Uber", "LinkedIn", "Adobe", "Salesforce", "Klarna",
]
SAMPLE_POSITIONS = [
    "Software Engineer", "Product Manager", "Data Scientist", "UX Designer",
    "DevOps Engineer", "Frontend Developer", "Backend Developer", "Full Stack Developer",
    "Machine Learning Engineer", "Product Designer", "Engineering Manager",
]
SAMPLE_LOCATIONS = [
    "San Francisco, CA", "Seattle, WA", "New York, NY", "Austin, TX",
    "Boston, MA", "Stockholm, Sweden", "London, UK", "Berlin, Germany",
]
SAMPLE_STATUSES = ["Applied", "Pending", "Interviewing", "Offered", "Rejected"]
SAMPLE_TYPES = ["Full-time", "Full-time", "Full-time", "Part-time", "Contract", "Internship"]
SAMPLE_PRIORITIES = ["High", "Medium", "Low"]
SAMPLE_CONTACTS = ["Sarah Johnson", "Marcus Andersson", "Priya Patel", "Tom Becker"]
SAMPLE_TAGS = ["Backend", "Remote", "Fintech", "Data", "Frontend", "Startup"]
SAMPLE_BASE_DATE = date(2024, 1, 1)


def normalize_header(value: str) -> str:
    """Case-fold and drop punctuation/whitespace so "Date-Applied " == "date applied"."""
    return re.sub(r"[\W_]+", "", str(value).casefold())


def _build_template(template_id: str, name: str, description: str, source: str,
                    columns: Sequence[Tuple[str, str]]) -> Template:
    return Template(
        id=template_id,
        name=name,
        description=description,
        source=source,
        field_mappings=[
            TemplateFieldMapping(
                target_field=target,
                csv_column=column,
                aliases=FIELD_VARIATIONS.get(target, []),
                required=target in ("company", "position"),
            )
            for column, target in columns
        ],
    )


class TemplateCatalog:
    """
    Registry of templates in declaration order.

    Built-in templates are created per instance; custom templates added with
    ``create_custom_template`` only live in the instance that created them.
    """

    def __init__(self, partial_threshold: Optional[float] = None):
        self.partial_threshold = (
            settings.template_partial_threshold if partial_threshold is None else partial_threshold
        )
        self._templates: Dict[str, Template] = {}
        for definition in _BUILTIN_TEMPLATES:
            template = _build_template(*definition)
            self._templates[template.id] = template

    def get_all_templates(self) -> List[Template]:
        return list(self._templates.values())

    def get_template(self, template_id: str) -> Optional[Template]:
        return self._templates.get(template_id)

    def require_template(self, template_id: str) -> Template:
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def get_templates_by_source(self, source: str) -> List[Template]:
        return [template for template in self._templates.values() if template.source == source]

    def detect_template(self, headers: Sequence[str]) -> TemplateMatch:
        """
        Pick the template whose columns best cover ``headers``.

        Score is matched columns / template columns. Ties go to the template
        with more matched columns, then to declaration order. Scores below the
        partial-match threshold select nothing.
        """
        normalized = {normalize_header(header) for header in headers if str(header).strip()}
        if not normalized:
            return TemplateMatch()

        best: Optional[Template] = None
        best_score = 0.0
        best_matched = 0
        for template in self._templates.values():
            if not template.field_mappings:
                continue
            matched = sum(1 for column in template.columns if normalize_header(column) in normalized)
            score = matched / len(template.field_mappings)
            if (score, matched) > (best_score, best_matched):
                best, best_score, best_matched = template, score, matched

        if best is None or best_score < self.partial_threshold:
            logger.debug("No template matched headers %s (best score %.2f)", list(headers), best_score)
            return TemplateMatch(confidence=best_score if best else 0.0, matched_fields=best_matched)

        logger.info(
            "Detected template '%s' (%d/%d columns, score %.2f)",
            best.id, best_matched, len(best.field_mappings), best_score,
        )
        return TemplateMatch(template=best, confidence=best_score, matched_fields=best_matched)

    def generate_mapping_from_template(self, template_id: str, headers: Sequence[str]) -> TemplateMappingResult:
        """
        Map ``headers`` onto a template's fields.

        Exact (normalized) column matches score 1.0, containment 0.7 and a
        known variation of the field 0.5. Each header is used at most once.
        """
        template = self.require_template(template_id)
        result = TemplateMappingResult(unmapped_headers=list(headers))
        normalized = [normalize_header(header) for header in headers]
        used = set()

        def find(predicate) -> int:
            for index, candidate in enumerate(normalized):
                if index not in used and candidate and predicate(candidate):
                    return index
            return -1

        for field_mapping in template.field_mappings:
            expected = normalize_header(field_mapping.csv_column)
            index, score = find(lambda h: h == expected), 1.0
            if index == -1:
                index, score = find(lambda h: expected in h or h in expected), 0.7
            if index == -1:
                for variation in field_mapping.aliases:
                    wanted = normalize_header(variation)
                    index, score = find(lambda h: h == wanted or (len(wanted) >= 4 and wanted in h)), 0.5
                    if index != -1:
                        break

            if index == -1:
                if field_mapping.required:
                    result.missing_fields.append(field_mapping.target_field)
                continue

            used.add(index)
            header = headers[index]
            result.mapping[field_mapping.target_field] = header
            result.confidence[field_mapping.target_field] = score
            result.unmapped_headers.remove(header)

        return result

    def generate_sample_data(self, template_id: str, count: Optional[int] = None, seed: int = 0) -> List[Dict[str, str]]:
        """
        Produce ``count`` synthetic rows keyed by the template's columns.

        Values honor the target field's type (ISO dates, enum values, salary
        strings) and are deterministic for a given seed.
        """
        template = self.require_template(template_id)
        count = settings.sample_rows_default if count is None else count
        rng = random.Random(seed)

        rows: List[Dict[str, str]] = []
        for index in range(count):
            company = rng.choice(SAMPLE_COMPANIES)
            applied = SAMPLE_BASE_DATE + timedelta(days=rng.randint(0, 180))
            row = {}
            for field_mapping in template.field_mappings:
                row[field_mapping.csv_column] = _sample_value(
                    field_mapping.target_field, rng, index, company, applied,
                )
            rows.append(row)
        return rows

    def generate_template_csv(self, template_id: str, include_examples: bool = True, count: int = 3) -> str:
        """
        Render a downloadable CSV: the header row in declared column order,
        followed by ``count`` sample rows when ``include_examples`` is set.
        """
        template = self.require_template(template_id)
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(template.columns)
        if include_examples:
            for row in self.generate_sample_data(template_id, count):
                writer.writerow([row[column] for column in template.columns])
        return buffer.getvalue()

    def create_custom_template(self, name: str, description: str, mapping: Mapping[str, str]) -> Template:
        """Build a template from a confirmed column mapping and register it."""
        slug = re.sub(r"[^a-z0-9]+", "-", name.casefold()).strip("-") or "template"
        template_id = f"custom-{slug}"
        suffix = 2
        while template_id in self._templates:
            template_id = f"custom-{slug}-{suffix}"
            suffix += 1

        template = Template(
            id=template_id,
            name=name,
            description=description,
            source="custom",
            field_mappings=[
                TemplateFieldMapping(
                    target_field=field,
                    csv_column=column,
                    aliases=FIELD_VARIATIONS.get(field, []),
                    required=field in ("company", "position"),
                )
                for field, column in mapping.items()
            ],
        )
        is_valid, errors = validate_template(template)
        if not is_valid:
            raise ValueError("; ".join(errors))

        self._templates[template.id] = template
        logger.info("Registered custom template '%s' with %d columns", template.id, len(template.field_mappings))
        return template


def validate_template(template: Union[Template, Dict[str, Any]]) -> Tuple[bool, List[str]]:
    """
    Check a template definition for the fields a usable template needs.

    Args:
        template: Template model or a partial dict (e.g. from a request body)

    Returns:
        Tuple of (is_valid, error messages)
    """
    data = template.model_dump() if isinstance(template, Template) else dict(template)
    errors: List[str] = []

    if not data.get("id"):
        errors.append("Template ID is required")
    if not data.get("name"):
        errors.append("Template name is required")
    if not data.get("source"):
        errors.append("Template source is required")

    mappings = data.get("field_mappings") or []
    if not mappings:
        errors.append("Template must have at least one field mapping")

    targets = [m.get("target_field") for m in mappings]
    if "company" not in targets:
        errors.append("Template must include company field mapping")
    unknown = [t for t in targets if t not in FIELD_ATTRIBUTES]
    if unknown:
        errors.append(f"Unknown target fields: {', '.join(str(t) for t in unknown)}")

    columns = [normalize_header(m.get("csv_column", "")) for m in mappings]
    if len(set(columns)) != len(columns):
        errors.append("Template columns must be unique")

    return len(errors) == 0, errors


def _sample_value(field: str, rng: random.Random, index: int, company: str, applied: date) -> str:
    domain = re.sub(r"[^a-z0-9]", "", company.lower())
    if field == "company":
        return company
    if field == "position":
        return rng.choice(SAMPLE_POSITIONS)
    if field == "location":
        return rng.choice(SAMPLE_LOCATIONS)
    if field == "status":
        return rng.choice(SAMPLE_STATUSES)
    if field == "type":
        return rng.choice(SAMPLE_TYPES)
    if field == "priority":
        return rng.choice(SAMPLE_PRIORITIES)
    if field == "salary":
        return f"${rng.randint(80, 180)},000"
    if field == "appliedDate":
        return applied.isoformat()
    if field in DATE_FIELDS:
        return (applied + timedelta(days=rng.randint(3, 30))).isoformat()
    if field == "tags":
        return ";".join(rng.sample(SAMPLE_TAGS, 2))
    if field == "requirements":
        return "Python;SQL;Communication"
    if field == "contactPerson":
        return rng.choice(SAMPLE_CONTACTS)
    if field == "contactEmail":
        return f"careers@{domain}.com"
    if field == "contactPhone":
        return f"+1-555-01{index % 100:02d}"
    if field in ("website", "companyWebsite"):
        return f"https://{domain}.com"
    if field == "jobUrl":
        return f"https://{domain}.com/careers/{1000 + index}"
    if field == "notes":
        return f"Sample note {index + 1}"
    return f"Sample {field}"
