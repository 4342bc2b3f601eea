"""
Tests for duplicate clustering, summaries and merge previews.
"""

import pytest

from tracker.api.schemas.shared import Application, ResolutionAction
from tracker.domain.imports.duplicates import (
    DisjointSet,
    build_candidate,
    canonical_company,
    detect_duplicates,
    duplicate_key,
    generate_merge_preview,
    normalize_url,
    score_near_duplicate,
    summarize_duplicates,
)

MAPPING = {"company": "Company", "position": "Position", "jobUrl": "Link"}


def _row(company, position, link=""):
    return {"Company": company, "Position": position, "Link": link}


def _existing(app_id, company, position, job_url=""):
    return Application(
        id=app_id,
        company=company,
        position=position,
        job_url=job_url,
        applied_date="2024-01-01",
        created_at="2024-01-01T00:00:00+00:00",
        updated_at="2024-01-01T00:00:00+00:00",
    )


def test_identical_rows_form_one_group():
    rows = [_row("Google", "Software Engineer"), _row("Google", "Software Engineer")]
    groups = detect_duplicates(rows, MAPPING)
    assert len(groups) == 1
    group = groups[0]
    assert group.id == "group-1"
    assert group.member_row_indices == [0, 1]
    assert group.existing_application_ids == []
    assert group.matched_fields == ["company", "position"]
    assert group.match_reason == "Same company and position"
    assert group.suggested_resolution is ResolutionAction.IMPORT_AS_NEW


def test_key_ignores_case_and_whitespace():
    assert duplicate_key("  Google ", "Software   Engineer") == duplicate_key("google", "software engineer")
    assert duplicate_key("", "Engineer") is None
    assert duplicate_key("Google", None) is None


def test_clustering_is_transitive_through_job_url():
    rows = [
        _row("Google", "SWE", "https://www.google.com/jobs/1"),
        _row("Google LLC", "Software Engineer", "google.com/jobs/1/"),
        _row("google llc", "software engineer"),
        _row("Meta", "Designer"),
    ]
    groups = detect_duplicates(rows, MAPPING)
    assert len(groups) == 1
    assert groups[0].member_row_indices == [0, 1, 2]
    assert groups[0].matched_fields == ["company", "position", "jobUrl"]
    assert groups[0].match_reason == "Same company and position and same job URL"


def test_groups_are_ordered_by_first_member():
    rows = [
        _row("A", "x"), _row("B", "y"), _row("B", "y"), _row("A", "x"), _row("C", "z"),
    ]
    groups = detect_duplicates(rows, MAPPING)
    assert [g.member_row_indices for g in groups] == [[0, 3], [1, 2]]
    assert [g.id for g in groups] == ["group-1", "group-2"]


def test_every_row_is_in_at_most_one_group():
    rows = [_row("A", "x", "u1"), _row("A", "x", "u2"), _row("B", "y", "u2"), _row("B", "y")]
    groups = detect_duplicates(rows, MAPPING)
    members = [index for group in groups for index in group.member_row_indices]
    assert len(members) == len(set(members))
    assert len(groups) == 1


def test_detection_is_idempotent():
    rows = [_row("Google", "SWE"), _row("Meta", "PM"), _row("google", "swe")]
    assert detect_duplicates(rows, MAPPING) == detect_duplicates(rows, MAPPING)


def test_rows_without_key_are_never_grouped():
    rows = [_row("", "Engineer"), _row("", "Engineer")]
    assert detect_duplicates(rows, MAPPING) == []


def test_missing_mapping_detects_nothing():
    rows = [_row("Google", "SWE"), _row("Google", "SWE")]
    assert detect_duplicates(rows, {"company": "Company"}) == []


def test_match_with_existing_application_suggests_skip():
    existing = [_existing("app-1", "Google", "Software Engineer"), _existing("app-2", "Meta", "PM")]
    groups = detect_duplicates([_row("google", "software engineer")], MAPPING, existing)
    assert len(groups) == 1
    assert groups[0].member_row_indices == [0]
    assert groups[0].existing_application_ids == ["app-1"]
    assert groups[0].suggested_resolution is ResolutionAction.SKIP
    assert groups[0].match_reason.endswith("as an existing application")
    assert groups[0].involves_existing
    assert groups[0].size == 2


def test_existing_applications_alone_do_not_form_groups():
    existing = [_existing("app-1", "Google", "SWE"), _existing("app-2", "Google", "SWE")]
    assert detect_duplicates([_row("Meta", "PM")], MAPPING, existing) == []


def test_within_batch_resolution_can_be_overridden():
    rows = [_row("Google", "SWE"), _row("Google", "SWE")]
    groups = detect_duplicates(rows, MAPPING, within_batch_resolution=ResolutionAction.MERGE)
    assert groups[0].suggested_resolution is ResolutionAction.MERGE


def test_summary_counts_groups_and_rows():
    existing = [_existing("app-1", "Google", "SWE")]
    rows = [_row("Google", "SWE"), _row("Meta", "PM"), _row("Meta", "PM"), _row("Meta", "PM")]
    summary = summarize_duplicates(detect_duplicates(rows, MAPPING, existing))
    assert summary.total_groups == 2
    assert summary.groups_with_existing == 1
    assert summary.duplicate_rows == 1 + 2
    assert len(summary.recommended_actions) == 2


def test_summary_without_duplicates():
    summary = summarize_duplicates([])
    assert summary.total_groups == 0
    assert summary.recommended_actions == ["No duplicates detected - safe to proceed with import"]


def test_merge_preview_prefers_richer_values():
    merged = generate_merge_preview([
        {"company": "Google", "status": "Applied", "notes": "short", "appliedDate": "2024-01-05", "tags": ["a"]},
        {"company": "Google", "status": "Interviewing", "notes": "a longer note", "appliedDate": "2024-02-01",
         "salary": "$150,000", "tags": ["b", "a"]},
        {"company": "Google", "status": "Pending", "notes": "", "appliedDate": "2023-12-01"},
    ])
    assert merged["status"] == "Interviewing"
    assert merged["notes"] == "a longer note"
    assert merged["appliedDate"] == "2024-02-01"
    assert merged["salary"] == "$150,000"
    assert merged["tags"] == ["a", "b"]


def test_merge_preview_of_nothing():
    assert generate_merge_preview([]) == {}


def test_url_normalization():
    assert normalize_url("HTTPS://www.Example.com/jobs/1/") == "example.com/jobs/1"
    assert normalize_url(None) == ""


def test_disjoint_set_union_find():
    nodes = DisjointSet(5)
    nodes.union(0, 1)
    nodes.union(3, 4)
    nodes.union(1, 4)
    assert nodes.find(0) == nodes.find(3)
    assert nodes.find(2) != nodes.find(0)


class TestNearDuplicates:
    MAPPING = {"company": "Company", "position": "Position", "location": "Location", "appliedDate": "Applied"}

    def test_legal_suffix_does_not_hide_a_duplicate(self):
        rows = [_row("Google", "Software Engineer"), _row("Google Inc.", "Software Engineer")]
        groups = detect_duplicates(rows, MAPPING)
        assert len(groups) == 1
        assert groups[0].member_row_indices == [0, 1]
        assert groups[0].matched_fields == ["company", "position"]
        assert groups[0].match_reason == "Similar company and position"

    def test_close_dates_and_same_location_are_named(self):
        rows = [
            {"Company": "Google", "Position": "Software Engineer", "Location": "London", "Applied": "2024-01-01"},
            {"Company": "Google, Inc.", "Position": "Software Engineer II", "Location": "London",
             "Applied": "2024-01-03"},
        ]
        groups = detect_duplicates(rows, self.MAPPING)
        assert len(groups) == 1
        assert groups[0].matched_fields == ["company", "position", "location", "appliedDate"]
        assert groups[0].match_reason == "Similar company, position, location and applied date"

    def test_different_roles_at_one_company_stay_apart(self):
        rows = [_row("Google", "Software Engineer"), _row("Google LLC", "Product Manager")]
        assert detect_duplicates(rows, MAPPING) == []

    def test_near_duplicate_of_existing_application(self):
        existing = [_existing("app-1", "Google", "Software Engineer")]
        groups = detect_duplicates([_row("Google LLC", "Software Engineer")], MAPPING, existing)
        assert len(groups) == 1
        assert groups[0].existing_application_ids == ["app-1"]
        assert groups[0].suggested_resolution is ResolutionAction.SKIP
        assert groups[0].match_reason == "Similar company and position as an existing application"

    def test_distant_dates_lower_the_score(self):
        first = build_candidate("Acme Corp.", "Data Analyst", "", "2024-03-01", "")
        second = build_candidate("ACME", "Data Analyst", "", "2024-03-20", "")
        score, fields = score_near_duplicate(first, second)
        assert score == pytest.approx(70 / 80)
        assert fields == ["company", "position"]

    def test_dissimilar_positions_score_zero(self):
        first = build_candidate("Acme", "Data Analyst", "", None, "")
        second = build_candidate("Acme", "Office Manager", "", None, "")
        assert score_near_duplicate(first, second) == (0.0, [])

    def test_canonical_company(self):
        assert canonical_company("Acme, Inc.") == "acme"
        assert canonical_company("Türk Telekom A.Ş.") == "türk telekom"
        assert canonical_company("Co") == "co"
