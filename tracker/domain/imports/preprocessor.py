from typing import Dict, List, Mapping, Optional, Tuple, Type, TypeVar
from dataclasses import dataclass
from enum import Enum
import logging
import re

from tracker.api.schemas.shared import ApplicationStatus, JobType, Priority

from .encoding import fix_mojibake

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

LIST_DELIMITERS = re.compile(r"[;,|]")
_MAILTO = re.compile(r"^mailto:", re.IGNORECASE)
_HAS_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_BARE_DOMAIN = re.compile(r"^(www\.)?[a-z0-9-]+(\.[a-z0-9-]+)+([/?#]\S*)?$", re.IGNORECASE)

# Substring -> enum value, checked in order. Includes the Turkish labels used
# by a popular internship tracking sheet.
STATUS_SYNONYMS: List[Tuple[str, ApplicationStatus]] = [
    ("withdraw", ApplicationStatus.WITHDRAWN),
    ("geri çektim", ApplicationStatus.WITHDRAWN),
    ("iptal", ApplicationStatus.WITHDRAWN),
    ("reject", ApplicationStatus.REJECTED),
    ("declined", ApplicationStatus.REJECTED),
    ("reddedildi", ApplicationStatus.REJECTED),
    ("accept", ApplicationStatus.ACCEPTED),
    ("kabul ettim", ApplicationStatus.ACCEPTED),
    ("offer", ApplicationStatus.OFFERED),
    ("teklif", ApplicationStatus.OFFERED),
    ("interview", ApplicationStatus.INTERVIEWING),
    ("mülakat", ApplicationStatus.INTERVIEWING),
    ("görüşme", ApplicationStatus.INTERVIEWING),
    ("applied", ApplicationStatus.APPLIED),
    ("submitted", ApplicationStatus.APPLIED),
    ("başvuruldu", ApplicationStatus.APPLIED),
    ("waiting", ApplicationStatus.PENDING),
    ("pending", ApplicationStatus.PENDING),
    ("beklemede", ApplicationStatus.PENDING),
]

JOB_TYPE_SYNONYMS: List[Tuple[str, JobType]] = [
    ("part", JobType.PART_TIME),
    ("intern", JobType.INTERNSHIP),
    ("staj", JobType.INTERNSHIP),
    ("contract", JobType.CONTRACT),
    ("temporary", JobType.CONTRACT),
    ("freelance", JobType.FREELANCE),
    ("full", JobType.FULL_TIME),
    ("permanent", JobType.FULL_TIME),
]

PRIORITY_SYNONYMS: List[Tuple[str, Priority]] = [
    ("high", Priority.HIGH),
    ("urgent", Priority.HIGH),
    ("low", Priority.LOW),
    ("medium", Priority.MEDIUM),
    ("normal", Priority.MEDIUM),
]


@dataclass(frozen=True)
class EnumResolution:
    """Outcome of mapping free text onto an enum."""
    value: Optional[Enum]
    normalized: bool = False  # True when matched through a synonym rather than exactly

    @property
    def known(self) -> bool:
        return self.value is not None


def clean_cell(value: Optional[str]) -> str:
    """Trim a raw cell and repair double-encoded UTF-8."""
    if value is None:
        return ""
    return fix_mojibake(str(value).strip())


def extract_fields(row: Mapping[str, str], mapping: Mapping[str, str]) -> Dict[str, str]:
    """
    Pull the mapped target fields out of a raw row.

    Returns:
        Dict of target field -> cleaned cell ("" when the column is missing)
    """
    return {field: clean_cell(row.get(column)) for field, column in mapping.items() if column}


def _resolve(text: str, enum_cls: Type[E], synonyms: List[Tuple[str, E]]) -> EnumResolution:
    lowered = text.strip().casefold()
    if not lowered:
        return EnumResolution(None)
    for member in enum_cls:
        if member.value.casefold() == lowered:
            return EnumResolution(member)
    for needle, member in synonyms:
        if needle in lowered:
            return EnumResolution(member, normalized=True)
    return EnumResolution(None)


def resolve_status(text: str) -> EnumResolution:
    return _resolve(text, ApplicationStatus, STATUS_SYNONYMS)


def resolve_job_type(text: str) -> EnumResolution:
    return _resolve(text, JobType, JOB_TYPE_SYNONYMS)


def resolve_priority(text: str) -> EnumResolution:
    return _resolve(text, Priority, PRIORITY_SYNONYMS)


ENUM_RESOLVERS = {
    "status": (resolve_status, ApplicationStatus.PENDING),
    "type": (resolve_job_type, JobType.FULL_TIME),
    "priority": (resolve_priority, Priority.MEDIUM),
}


def clean_email(value: str) -> str:
    """Drop a ``mailto:`` prefix and whitespace, and lower-case the address."""
    return re.sub(r"\s+", "", _MAILTO.sub("", value.strip())).lower()


def normalize_url(value: str) -> Tuple[str, bool]:
    """
    Add a missing ``https://`` to bare domains.

    Returns:
        Tuple of (url, looks_valid). Values that are neither URLs nor bare
        domains come back unchanged with looks_valid False.
    """
    text = value.strip()
    if not text:
        return "", True
    if _HAS_SCHEME.match(text):
        return text, text.lower().startswith(("http://", "https://"))
    if _BARE_DOMAIN.match(text):
        return f"https://{text}", True
    return text, False


def split_list(value: str) -> List[str]:
    """Split a ``;``, ``,`` or ``|`` separated cell into unique, trimmed items."""
    items: List[str] = []
    for part in LIST_DELIMITERS.split(value or ""):
        item = part.strip()
        if item and item not in items:
            items.append(item)
    return items
