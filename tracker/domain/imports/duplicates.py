"""
Duplicate clustering for imported rows and stored applications.

Rows are keyed by their normalized (company, position) pair; rows sharing a
key, or sharing a job URL, are joined in a disjoint-set structure so that
clustering is transitive and runs in near-linear time.

Near duplicates ("Google" vs "Google Inc.", "Software Engineer" vs
"Software Engineer II") are found by a second pass that only compares
records whose company names reduce to the same canonical form.
"""
import logging
import re
from datetime import date
from difflib import SequenceMatcher
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Set, Tuple

from tracker.api.schemas.shared import (
    Application,
    DuplicateGroup,
    DuplicateSummary,
    ResolutionAction,
    DATE_FIELDS,
)
from tracker.utils.date import parse_flexible_date

logger = logging.getLogger(__name__)

KEY_FIELDS = ("company", "position")
URL_FIELD = "jobUrl"

# Later stages win when merging conflicting status values.
STATUS_RANK = {
    "pending": 1,
    "applied": 2,
    "withdrawn": 2,
    "interviewing": 3,
    "rejected": 3,
    "offered": 4,
    "accepted": 5,
}

_WHITESPACE = re.compile(r"\s+")
_URL_PREFIX = re.compile(r"^(https?://)?(www\.)?", re.IGNORECASE)
_PUNCTUATION = re.compile(r"[^\w\s]")

# Near-duplicate scoring. Fields blank on either side are left out of the total.
FUZZY_WEIGHTS = (
    ("company", 40),
    ("position", 30),
    ("location", 15),
    ("appliedDate", 10),
    (URL_FIELD, 5),
)
FUZZY_THRESHOLD = 0.7
COMPANY_SIMILARITY = 0.8
POSITION_SIMILARITY = 0.7
LOCATION_SIMILARITY = 0.8
DATE_WINDOW_DAYS = 7
# Larger blocks are not compared pairwise.
FUZZY_BLOCK_LIMIT = 250

FIELD_LABELS = {
    "company": "company",
    "position": "position",
    "location": "location",
    "appliedDate": "applied date",
    URL_FIELD: "job URL",
}

# Trailing legal-form words dropped from company names before blocking.
LEGAL_SUFFIXES = frozenset({
    "inc", "incorporated", "llc", "ltd", "limited", "corp", "corporation", "co",
    "gmbh", "ag", "plc", "sa", "bv", "as", "aş", "şti",
})


class NearDuplicateCandidate(NamedTuple):
    company: str
    position: str
    location: str
    applied_date: Optional[str]
    url: str


class DisjointSet:
    """Union-find with path halving and union by size."""

    def __init__(self, size: int):
        self.parent = list(range(size))
        self.size = [1] * size

    def find(self, node: int) -> int:
        parent = self.parent
        while parent[node] != node:
            parent[node] = parent[parent[node]]
            node = parent[node]
        return node

    def union(self, a: int, b: int) -> int:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return root_a
        if self.size[root_a] < self.size[root_b]:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a
        self.size[root_a] += self.size[root_b]
        return root_a


def normalize_text(value: Any) -> str:
    """Case-fold, trim and collapse internal whitespace."""
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip().casefold()


def normalize_url(value: Any) -> str:
    url = normalize_text(value)
    if not url:
        return ""
    return _URL_PREFIX.sub("", url).rstrip("/")


def duplicate_key(company: Any, position: Any) -> Optional[Tuple[str, str]]:
    """Clustering key for a record, or None when either part is blank."""
    company_key, position_key = normalize_text(company), normalize_text(position)
    if not company_key or not position_key:
        return None
    return company_key, position_key


def canonical_company(value: Any) -> str:
    """Company name without punctuation or trailing legal-form words ("Google Inc." -> "google")."""
    tokens = _PUNCTUATION.sub("", normalize_text(value)).split()
    while len(tokens) > 1 and tokens[-1] in LEGAL_SUFFIXES:
        tokens.pop()
    return " ".join(tokens)


def _plain(value: Any) -> str:
    return " ".join(_PUNCTUATION.sub("", normalize_text(value)).split())


def _ratio(a: str, b: str) -> float:
    if a == b:
        return 1.0
    return SequenceMatcher(None, a, b).ratio()


def build_candidate(company: Any, position: Any, location: Any, applied_date: Any, url: Any) -> NearDuplicateCandidate:
    return NearDuplicateCandidate(
        company=canonical_company(company),
        position=_plain(position),
        location=_plain(location),
        applied_date=parse_flexible_date(applied_date, log_failures=False) if applied_date else None,
        url=normalize_url(url),
    )


def score_near_duplicate(
    first: NearDuplicateCandidate,
    second: NearDuplicateCandidate,
) -> Tuple[float, List[str]]:
    """
    Weighted similarity of two records.

    Company and position must both be similar, otherwise the score is 0.
    Location, applied date and job URL add to the score only when both
    records have them.

    Returns:
        Tuple of (score in [0, 1], fields that matched)
    """
    similarities: Dict[str, Optional[float]] = {
        "company": _ratio(first.company, second.company),
        "position": _ratio(first.position, second.position),
        "location": None,
        "appliedDate": None,
        URL_FIELD: None,
    }
    if similarities["company"] <= COMPANY_SIMILARITY or similarities["position"] <= POSITION_SIMILARITY:
        return 0.0, []

    if first.location and second.location:
        similarity = _ratio(first.location, second.location)
        similarities["location"] = similarity if similarity > LOCATION_SIMILARITY else 0.0
    if first.applied_date and second.applied_date:
        days = abs((date.fromisoformat(first.applied_date) - date.fromisoformat(second.applied_date)).days)
        similarities["appliedDate"] = max(0.0, 1 - days / DATE_WINDOW_DAYS)
    if first.url and second.url:
        similarities[URL_FIELD] = 1.0 if first.url == second.url else 0.0

    total = 0.0
    earned = 0.0
    matched: List[str] = []
    for field, weight in FUZZY_WEIGHTS:
        similarity = similarities[field]
        if similarity is None:
            continue
        total += weight
        if similarity > 0:
            earned += weight * similarity
            matched.append(field)
    return earned / total, matched


def _join_labels(fields: Sequence[str]) -> str:
    labels = [FIELD_LABELS[field] for field in fields]
    if len(labels) == 1:
        return labels[0]
    return ", ".join(labels[:-1]) + " and " + labels[-1]


def _describe(rules: Set[str], fuzzy_fields: Set[str], involves_existing: bool) -> Tuple[List[str], str]:
    matched_fields: List[str] = []
    parts: List[str] = []
    if "key" in rules:
        matched_fields.extend(KEY_FIELDS)
        parts.append("same company and position")
    if "url" in rules:
        matched_fields.append(URL_FIELD)
        parts.append("same job URL")
    if "fuzzy" in rules:
        similar = [field for field, _ in FUZZY_WEIGHTS if field in fuzzy_fields]
        matched_fields.extend(field for field in similar if field not in matched_fields)
        parts.append("similar " + _join_labels(similar))
    reason = " and ".join(parts)
    reason = reason[0].upper() + reason[1:]
    if involves_existing:
        reason += " as an existing application"
    return matched_fields, reason


def detect_duplicates(
    rows: Sequence[Mapping[str, str]],
    mapping: Mapping[str, str],
    existing_applications: Optional[Sequence[Application]] = None,
    within_batch_resolution: ResolutionAction = ResolutionAction.IMPORT_AS_NEW,
) -> List[DuplicateGroup]:
    """
    Cluster rows (and optionally stored applications) that describe the same application.

    Args:
        rows: Raw rows keyed by source column
        mapping: Target field -> source column
        existing_applications: Stored applications to check the new rows against
        within_batch_resolution: Suggested resolution for groups made only of new rows

    Returns:
        Groups ordered by their first member; groups touching a stored
        application suggest ``skip``.
    """
    existing = list(existing_applications or [])
    company_column = mapping.get("company")
    position_column = mapping.get("position")
    url_column = mapping.get(URL_FIELD)
    location_column = mapping.get("location")
    date_column = mapping.get("appliedDate")
    if not company_column or not position_column:
        return []

    row_count = len(rows)
    nodes = DisjointSet(row_count + len(existing))
    key_owner: Dict[Tuple[str, str], int] = {}
    url_owner: Dict[str, int] = {}
    edges: List[Tuple[int, str]] = []
    candidates: Dict[int, NearDuplicateCandidate] = {}

    def add_node(node: int, company: Any, position: Any, url: Any, location: Any, applied_date: Any) -> None:
        key = duplicate_key(company, position)
        if key is None:
            return
        owner = key_owner.setdefault(key, node)
        if owner != node:
            nodes.union(owner, node)
            edges.append((node, "key"))
        else:
            candidates[node] = build_candidate(company, position, location, applied_date, url)

        normalized_url = normalize_url(url)
        if normalized_url:
            owner = url_owner.setdefault(normalized_url, node)
            if owner != node:
                nodes.union(owner, node)
                edges.append((node, "url"))

    for index, row in enumerate(rows):
        add_node(
            index,
            row.get(company_column),
            row.get(position_column),
            row.get(url_column) if url_column else None,
            row.get(location_column) if location_column else None,
            row.get(date_column) if date_column else None,
        )
    for offset, application in enumerate(existing):
        add_node(
            row_count + offset,
            application.company,
            application.position,
            application.job_url,
            application.location,
            application.applied_date,
        )

    fuzzy_edges = _join_near_duplicates(nodes, candidates, row_count)
    edges.extend((node, "fuzzy") for node, _ in fuzzy_edges)
    if not edges:
        return []

    rules_by_root: Dict[int, Set[str]] = {}
    for node, rule in edges:
        rules_by_root.setdefault(nodes.find(node), set()).add(rule)
    fuzzy_fields_by_root: Dict[int, Set[str]] = {}
    for node, fields in fuzzy_edges:
        fuzzy_fields_by_root.setdefault(nodes.find(node), set()).update(fields)

    members_by_root: Dict[int, List[int]] = {}
    for node in range(row_count + len(existing)):
        root = nodes.find(node)
        if root in rules_by_root:
            members_by_root.setdefault(root, []).append(node)

    groups: List[DuplicateGroup] = []
    # Dict preserves insertion order, so groups follow their lowest member.
    for root, members in members_by_root.items():
        row_members = [node for node in members if node < row_count]
        existing_ids = [existing[node - row_count].id for node in members if node >= row_count]
        if not row_members or len(members) < 2:
            continue

        matched_fields, reason = _describe(
            rules_by_root[root], fuzzy_fields_by_root.get(root, set()), bool(existing_ids),
        )
        groups.append(
            DuplicateGroup(
                id=f"group-{len(groups) + 1}",
                member_row_indices=row_members,
                existing_application_ids=existing_ids,
                matched_fields=matched_fields,
                match_reason=reason,
                suggested_resolution=ResolutionAction.SKIP if existing_ids else within_batch_resolution,
            )
        )

    logger.info("Found %d duplicate groups across %d rows", len(groups), row_count)
    return groups


def _join_near_duplicates(
    nodes: DisjointSet,
    candidates: Dict[int, NearDuplicateCandidate],
    row_count: int,
) -> List[Tuple[int, List[str]]]:
    """Union records in the same canonical-company block that score as near duplicates."""
    blocks: Dict[str, List[int]] = {}
    for node, candidate in candidates.items():
        blocks.setdefault(candidate.company, []).append(node)

    joined: List[Tuple[int, List[str]]] = []
    for company, block in blocks.items():
        if len(block) < 2:
            continue
        if len(block) > FUZZY_BLOCK_LIMIT:
            logger.info("Skipped near-duplicate check for %r: %d distinct records", company, len(block))
            continue
        for offset, left in enumerate(block):
            for right in block[offset + 1:]:
                if left >= row_count and right >= row_count:
                    continue
                if nodes.find(left) == nodes.find(right):
                    continue
                score, fields = score_near_duplicate(candidates[left], candidates[right])
                if score >= FUZZY_THRESHOLD:
                    nodes.union(left, right)
                    joined.append((right, fields))
    return joined


def summarize_duplicates(groups: Sequence[DuplicateGroup]) -> DuplicateSummary:
    """Counts and recommended actions for a set of duplicate groups."""
    summary = DuplicateSummary(total_groups=len(groups))
    for group in groups:
        if group.involves_existing:
            summary.groups_with_existing += 1
            summary.duplicate_rows += len(group.member_row_indices)
        else:
            summary.duplicate_rows += len(group.member_row_indices) - 1

    within_batch = summary.total_groups - summary.groups_with_existing
    if summary.groups_with_existing:
        summary.recommended_actions.append(
            f"{summary.groups_with_existing} group(s) match existing applications - recommend skipping or merging"
        )
    if within_batch:
        summary.recommended_actions.append(
            f"{within_batch} group(s) repeat within the file - review before importing"
        )
    if not groups:
        summary.recommended_actions.append("No duplicates detected - safe to proceed with import")
    return summary


def generate_merge_preview(records: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Merge several versions of one application into a single field dict.

    The first record is the base. Later records fill empty fields; on
    conflicts the later date, the more advanced status, or the longer text
    wins.
    """
    if not records:
        return {}

    merged: Dict[str, Any] = dict(records[0])
    for record in records[1:]:
        for field, new_value in record.items():
            current = merged.get(field)
            if _is_empty(new_value):
                continue
            if _is_empty(current):
                merged[field] = new_value
            elif current != new_value:
                merged[field] = _resolve_conflict(field, current, new_value)
    return merged


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return str(value).strip() == ""


def _resolve_conflict(field: str, current: Any, new_value: Any) -> Any:
    if field in DATE_FIELDS:
        current_date = parse_flexible_date(current, log_failures=False)
        new_date = parse_flexible_date(new_value, log_failures=False)
        if new_date and (current_date is None or new_date > current_date):
            return new_value
        return current

    if field == "status":
        current_rank = STATUS_RANK.get(normalize_text(current), 0)
        new_rank = STATUS_RANK.get(normalize_text(new_value), 0)
        return new_value if new_rank > current_rank else current

    if isinstance(current, list) and isinstance(new_value, list):
        return current + [item for item in new_value if item not in current]

    return new_value if len(str(new_value)) > len(str(current)) else current
