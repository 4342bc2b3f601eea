from enum import Enum
from typing import Any, Dict, List, Optional, Literal

from pydantic import BaseModel, Field, field_validator


# Target fields an imported column can map to, in declaration order. Keys are
# the names used in column mappings; values are the Application attributes.
FIELD_ATTRIBUTES: Dict[str, str] = {
    "company": "company",
    "position": "position",
    "location": "location",
    "type": "type",
    "salary": "salary",
    "status": "status",
    "appliedDate": "applied_date",
    "responseDate": "response_date",
    "interviewDate": "interview_date",
    "offerDate": "offer_date",
    "rejectionDate": "rejection_date",
    "followUpDate": "follow_up_date",
    "notes": "notes",
    "jobDescription": "job_description",
    "requirements": "requirements",
    "contactPerson": "contact_person",
    "contactEmail": "contact_email",
    "contactPhone": "contact_phone",
    "website": "website",
    "jobUrl": "job_url",
    "companyWebsite": "company_website",
    "tags": "tags",
    "priority": "priority",
}

TARGET_FIELDS: List[str] = list(FIELD_ATTRIBUTES)
REQUIRED_FIELDS = ("company", "position")
DATE_FIELDS = ("appliedDate", "responseDate", "interviewDate", "offerDate", "rejectionDate", "followUpDate")
URL_FIELDS = ("website", "jobUrl", "companyWebsite")
LIST_FIELDS = ("tags", "requirements")


class ApplicationStatus(str, Enum):
    PENDING = "Pending"
    APPLIED = "Applied"
    INTERVIEWING = "Interviewing"
    OFFERED = "Offered"
    REJECTED = "Rejected"
    ACCEPTED = "Accepted"
    WITHDRAWN = "Withdrawn"


class JobType(str, Enum):
    FULL_TIME = "Full-time"
    PART_TIME = "Part-time"
    INTERNSHIP = "Internship"
    CONTRACT = "Contract"
    FREELANCE = "Freelance"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Application(BaseModel):
    """Normalized job application produced by an import."""
    id: str
    company: str
    position: str
    location: str = ""
    type: JobType = JobType.FULL_TIME
    salary: str = ""
    status: ApplicationStatus = ApplicationStatus.PENDING
    applied_date: str
    response_date: Optional[str] = None
    interview_date: Optional[str] = None
    notes: str = ""
    contact_person: str = ""
    contact_email: str = ""
    website: str = ""
    tags: List[str] = Field(default_factory=list)
    priority: Priority = Priority.MEDIUM
    created_at: str
    updated_at: str
    job_description: str = ""
    requirements: List[str] = Field(default_factory=list)
    contact_phone: str = ""
    company_website: str = ""
    job_url: str = ""
    follow_up_date: Optional[str] = None
    offer_date: Optional[str] = None
    rejection_date: Optional[str] = None

    @field_validator("company", "position")
    @classmethod
    def require_text(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value.strip()


class ApplicationUpdate(BaseModel):
    """Update intent for a stored application, produced by a merge resolution."""
    application_id: str
    changes: Dict[str, Any] = Field(default_factory=dict)
    source_row_indices: List[int] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

TemplateSource = Literal["linkedin", "indeed", "glassdoor", "custom"]


class TemplateFieldMapping(BaseModel):
    target_field: str
    csv_column: str
    aliases: List[str] = Field(default_factory=list)
    required: bool = False

    @field_validator("target_field")
    @classmethod
    def validate_target_field(cls, value: str) -> str:
        if value not in FIELD_ATTRIBUTES:
            raise ValueError(f"Unknown target field '{value}'")
        return value


class Template(BaseModel):
    """A known CSV export shape."""
    id: str
    name: str
    description: str = ""
    source: TemplateSource = "custom"
    field_mappings: List[TemplateFieldMapping] = Field(default_factory=list)

    @property
    def columns(self) -> List[str]:
        return [mapping.csv_column for mapping in self.field_mappings]


class TemplateMatch(BaseModel):
    template: Optional[Template] = None
    confidence: float = 0.0
    matched_fields: int = 0


class TemplateMappingResult(BaseModel):
    mapping: Dict[str, str] = Field(default_factory=dict)
    confidence: Dict[str, float] = Field(default_factory=dict)
    unmapped_headers: List[str] = Field(default_factory=list)
    missing_fields: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Column detection
# ---------------------------------------------------------------------------

class MappingDecision(str, Enum):
    AUTO_PROCEED = "auto_proceed"
    REQUIRE_MAPPING_REVIEW = "require_mapping_review"


class ColumnDetectionResult(BaseModel):
    detected_mapping: Dict[str, str] = Field(default_factory=dict)
    confidence: Dict[str, float] = Field(default_factory=dict)
    suggestions: List[str] = Field(default_factory=list)
    template_id: Optional[str] = None
    template_confidence: float = 0.0


class FieldSuggestion(BaseModel):
    target_field: str
    confidence: float
    matched_alias: str


# ---------------------------------------------------------------------------
# Validation and duplicates
# ---------------------------------------------------------------------------

class ValidationSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ValidationIssue(BaseModel):
    """Row-scoped finding; errors block the row, warnings do not."""
    row_index: Optional[int] = None
    field: Optional[str] = None
    message: str
    severity: ValidationSeverity
    value: Optional[str] = None


class ResolutionAction(str, Enum):
    SKIP = "skip"
    MERGE = "merge"
    IMPORT_AS_NEW = "import_as_new"


class DuplicateGroup(BaseModel):
    id: str
    member_row_indices: List[int] = Field(default_factory=list)
    existing_application_ids: List[str] = Field(default_factory=list)
    matched_fields: List[str] = Field(default_factory=list)
    match_reason: str
    suggested_resolution: ResolutionAction

    @property
    def size(self) -> int:
        return len(self.member_row_indices) + len(self.existing_application_ids)

    @property
    def involves_existing(self) -> bool:
        return bool(self.existing_application_ids)


class DuplicateResolution(BaseModel):
    group_id: str
    action: ResolutionAction


class DuplicateSummary(BaseModel):
    total_groups: int = 0
    duplicate_rows: int = 0
    groups_with_existing: int = 0
    recommended_actions: List[str] = Field(default_factory=list)


class ValidationSummary(BaseModel):
    total_rows: int = 0
    valid_rows: int = 0
    blocked_rows: int = 0
    warning_rows: int = 0
    duplicate_groups: int = 0
    can_proceed: bool = True
    systemic_errors: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class ValidationReport(BaseModel):
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    duplicate_groups: List[DuplicateGroup] = Field(default_factory=list)
    validation_summary: ValidationSummary = Field(default_factory=ValidationSummary)

    def blocked_row_indices(self) -> set:
        return {issue.row_index for issue in self.errors if issue.row_index is not None}


# ---------------------------------------------------------------------------
# Import execution and progress
# ---------------------------------------------------------------------------

class ImportStatus(str, Enum):
    COMPLETED = "completed"
    VALIDATION_FAILED = "validation_failed"
    RESOLUTION_REQUIRED = "resolution_required"


class ImportStage(str, Enum):
    PARSING = "parsing"
    DETECTING = "detecting"
    VALIDATING = "validating"
    IMPORTING = "importing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class ImportProgress(BaseModel):
    stage: ImportStage
    progress: float = Field(default=0.0, ge=0, le=100)
    message: str = ""
    current_row: Optional[int] = None
    total_rows: Optional[int] = None
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)


class ImportSummary(BaseModel):
    total_rows: int = 0
    successful_imports: int = 0
    skipped_rows: int = 0
    duplicates_found: int = 0
    merged_rows: int = 0
    updated_records: int = 0
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)


class ImportOptions(BaseModel):
    existing_applications: List[Application] = Field(default_factory=list)
    duplicate_resolutions: List[DuplicateResolution] = Field(default_factory=list)
    skip_validation: bool = False
    import_valid_rows_only: bool = False


class ImportResult(BaseModel):
    status: ImportStatus = ImportStatus.COMPLETED
    applications: List[Application] = Field(default_factory=list)
    updates: List[ApplicationUpdate] = Field(default_factory=list)
    summary: ImportSummary = Field(default_factory=ImportSummary)
    unresolved_groups: List[DuplicateGroup] = Field(default_factory=list)


class ProcessFileResult(BaseModel):
    data: List[Dict[str, str]] = Field(default_factory=list)
    columns: List[str] = Field(default_factory=list)
    detected_mapping: Dict[str, str] = Field(default_factory=dict)
    confidence: Dict[str, float] = Field(default_factory=dict)
    suggestions: List[str] = Field(default_factory=list)
    encoding: str
    encoding_warning: Optional[str] = None
    has_header_row: bool = True
    template_id: Optional[str] = None
    mapping_decision: MappingDecision = MappingDecision.REQUIRE_MAPPING_REVIEW


# ---------------------------------------------------------------------------
# API request bodies
# ---------------------------------------------------------------------------

class DetectTemplateRequest(BaseModel):
    headers: List[str]


class CustomTemplateRequest(BaseModel):
    name: str
    description: str = ""
    mapping: Dict[str, str]

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Template name is required")
        return value.strip()
