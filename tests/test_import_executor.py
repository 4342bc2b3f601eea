"""
Tests for turning validated rows into applications.
"""

import itertools

import pytest

from tracker.api.schemas.shared import (
    Application,
    DuplicateResolution,
    ImportOptions,
    ImportStatus,
    ResolutionAction,
)
from tracker.domain.imports.errors import IdentifierCollisionError
from tracker.domain.imports.executor import IdentifierGenerator, build_application, normalize_fields
from tests.utils.pipeline import BASIC_MAPPING, FIXED_TODAY, build_executor, build_pipeline

FULL_MAPPING = {
    "company": "Company",
    "position": "Position",
    "status": "Status",
    "type": "Type",
    "priority": "Priority",
    "appliedDate": "Applied",
    "tags": "Tags",
    "website": "Site",
    "contactEmail": "Email",
}


def _existing(app_id, company, position, status="Applied"):
    return Application(
        id=app_id,
        company=company,
        position=position,
        status=status,
        applied_date="2024-01-01",
        created_at="2024-01-01T00:00:00+00:00",
        updated_at="2024-01-01T00:00:00+00:00",
    )


def _assert_conserved(result):
    summary = result.summary
    assert summary.successful_imports + summary.skipped_rows == summary.total_rows


class TestDefaultsAndNormalization:
    def test_missing_optional_fields_get_defaults(self, pipeline):
        result = pipeline.import_with_validation([{"Company": "Acme", "Position": "Dev"}], BASIC_MAPPING)
        assert result.status is ImportStatus.COMPLETED
        application = result.applications[0]
        assert application.id == "app-1"
        assert application.status.value == "Pending"
        assert application.type.value == "Full-time"
        assert application.priority.value == "Medium"
        assert application.applied_date == FIXED_TODAY.isoformat()
        assert application.created_at == application.updated_at
        assert application.tags == []

    def test_values_are_normalized(self, pipeline):
        row = {
            "Company": "Acme", "Position": "Dev", "Status": "offer received", "Type": "internship",
            "Priority": "urgent", "Applied": "15/03/2024", "Tags": "Remote; Python, remote | Python",
            "Site": "acme.com", "Email": "MAILTO:Jobs@Acme.com",
        }
        application = pipeline.import_with_validation([row], FULL_MAPPING).applications[0]
        assert application.status.value == "Offered"
        assert application.type.value == "Internship"
        assert application.priority.value == "High"
        assert application.applied_date == "2024-03-15"
        assert application.tags == ["Remote", "Python", "remote"]
        assert application.website == "https://acme.com"
        assert application.contact_email == "jobs@acme.com"

    def test_bad_values_fall_back_to_defaults(self, pipeline):
        row = {"Company": "Acme", "Position": "Dev", "Status": "Ghosted", "Applied": "someday"}
        result = pipeline.import_with_validation([row], FULL_MAPPING)
        application = result.applications[0]
        assert application.status.value == "Pending"
        assert application.applied_date == FIXED_TODAY.isoformat()
        assert len(result.summary.warnings) == 2

    def test_normalize_fields_drops_empty_and_invalid(self):
        values = normalize_fields({"company": "Acme", "notes": "", "responseDate": "nope", "status": "Ghosted"})
        assert values == {"company": "Acme"}

    def test_build_application_maps_target_fields(self):
        application = build_application(
            {"company": "Acme", "position": "Dev", "jobUrl": "https://acme.com/1", "followUpDate": "2024-04-01"},
            "id-1", FIXED_TODAY, "2024-06-01T12:00:00+00:00",
        )
        assert application.job_url == "https://acme.com/1"
        assert application.follow_up_date == "2024-04-01"


class TestValidationGate:
    ROWS = [
        {"Company": "Acme", "Position": "Dev"},
        {"Company": "", "Position": "Engineer"},
        {"Company": "Globex", "Position": "QA"},
    ]

    def test_blocking_errors_fail_the_import(self, pipeline):
        result = pipeline.import_with_validation(self.ROWS, BASIC_MAPPING)
        assert result.status is ImportStatus.VALIDATION_FAILED
        assert result.applications == []
        assert result.summary.skipped_rows == 3
        assert [e.message for e in result.summary.errors] == ["Missing Company name"]
        _assert_conserved(result)

    def test_valid_rows_only_skips_blocked_rows(self, pipeline):
        options = ImportOptions(import_valid_rows_only=True)
        result = pipeline.import_with_validation(self.ROWS, BASIC_MAPPING, options)
        assert result.status is ImportStatus.COMPLETED
        assert [a.company for a in result.applications] == ["Acme", "Globex"]
        assert result.summary.successful_imports == 2
        assert result.summary.skipped_rows == 1
        _assert_conserved(result)

    def test_skip_validation_still_refuses_rows_without_company(self, pipeline):
        options = ImportOptions(skip_validation=True)
        result = pipeline.import_with_validation(self.ROWS, BASIC_MAPPING, options)
        assert result.status is ImportStatus.COMPLETED
        assert result.summary.successful_imports == 2
        assert result.summary.skipped_rows == 1
        assert result.summary.errors[0].row_index == 1
        assert all(a.company.strip() for a in result.applications)
        _assert_conserved(result)


class TestDuplicateResolution:
    ROWS = [
        {"Company": "Google", "Position": "Software Engineer"},
        {"Company": "Google", "Position": "Software Engineer"},
    ]

    def test_unresolved_groups_pause_the_import(self, pipeline):
        result = pipeline.import_with_validation(self.ROWS, BASIC_MAPPING)
        assert result.status is ImportStatus.RESOLUTION_REQUIRED
        assert [g.id for g in result.unresolved_groups] == ["group-1"]
        assert result.applications == []

    def test_skip_resolution_imports_nothing_from_the_group(self, pipeline):
        options = ImportOptions(duplicate_resolutions=[DuplicateResolution(group_id="group-1", action="skip")])
        result = pipeline.import_with_validation(self.ROWS, BASIC_MAPPING, options)
        assert result.summary.successful_imports == 0
        assert result.summary.skipped_rows == 2
        assert result.summary.duplicates_found == 1
        _assert_conserved(result)

    def test_confirmed_skip_applies_when_validation_is_skipped(self, pipeline):
        report = pipeline.validate_data(self.ROWS, BASIC_MAPPING)
        options = ImportOptions(
            skip_validation=True,
            duplicate_resolutions=[DuplicateResolution(group_id=report.duplicate_groups[0].id, action="skip")],
        )
        result = pipeline.import_with_validation(self.ROWS, BASIC_MAPPING, options)
        assert result.status is ImportStatus.COMPLETED
        assert result.applications == []
        assert result.summary.successful_imports == 0
        assert result.summary.duplicates_found == 1
        _assert_conserved(result)

    def test_confirmed_merge_applies_when_validation_is_skipped(self, pipeline):
        options = ImportOptions(
            skip_validation=True,
            duplicate_resolutions=[DuplicateResolution(group_id="group-1", action="merge")],
        )
        result = pipeline.import_with_validation(self.ROWS, BASIC_MAPPING, options)
        assert len(result.applications) == 1
        assert result.summary.merged_rows == 1

    def test_skipped_validation_still_pauses_on_unresolved_groups(self, pipeline):
        result = pipeline.import_with_validation(self.ROWS, BASIC_MAPPING, ImportOptions(skip_validation=True))
        assert result.status is ImportStatus.RESOLUTION_REQUIRED
        assert result.applications == []

    def test_import_as_new_keeps_every_row(self, pipeline):
        options = ImportOptions(duplicate_resolutions=[
            DuplicateResolution(group_id="group-1", action=ResolutionAction.IMPORT_AS_NEW),
        ])
        result = pipeline.import_with_validation(self.ROWS, BASIC_MAPPING, options)
        assert len(result.applications) == 2
        assert len({a.id for a in result.applications}) == 2

    def test_merge_within_file_folds_rows(self, pipeline):
        rows = [
            {"Company": "Google", "Position": "SWE", "Status": "Applied", "Notes": ""},
            {"Company": "google", "Position": "swe", "Status": "Interviewing", "Notes": "Onsite next week"},
        ]
        mapping = {"company": "Company", "position": "Position", "status": "Status", "notes": "Notes"}
        options = ImportOptions(duplicate_resolutions=[DuplicateResolution(group_id="group-1", action="merge")])
        result = pipeline.import_with_validation(rows, mapping, options)

        assert len(result.applications) == 1
        merged = result.applications[0]
        assert merged.company == "Google"
        assert merged.status.value == "Interviewing"
        assert merged.notes == "Onsite next week"
        assert result.summary.merged_rows == 1
        assert result.summary.successful_imports == 2
        _assert_conserved(result)

    def test_merge_with_existing_produces_update(self, pipeline):
        existing = [_existing("stored-1", "Google", "SWE", status="Applied")]
        rows = [{"Company": "Google", "Position": "SWE", "Status": "Offered"}]
        mapping = {"company": "Company", "position": "Position", "status": "Status"}
        options = ImportOptions(
            existing_applications=existing,
            duplicate_resolutions=[DuplicateResolution(group_id="group-1", action="merge")],
        )
        result = pipeline.import_with_validation(rows, mapping, options)

        assert result.applications == []
        assert len(result.updates) == 1
        update = result.updates[0]
        assert update.application_id == "stored-1"
        assert update.changes == {"status": "Offered"}
        assert update.source_row_indices == [0]
        assert result.summary.updated_records == 1
        _assert_conserved(result)

    def test_existing_match_suggests_skip(self, pipeline):
        existing = [_existing("stored-1", "Google", "SWE")]
        report = pipeline.validate_data([{"Company": "Google", "Position": "SWE"}], BASIC_MAPPING, existing)
        assert report.duplicate_groups[0].suggested_resolution is ResolutionAction.SKIP


class TestIdentifiers:
    def test_ids_are_unique_and_avoid_existing(self):
        pipeline = build_pipeline(id_source=itertools.cycle(["stored-1", "a", "a", "b"]).__next__)
        existing = [_existing("stored-1", "Initech", "PM")]
        rows = [{"Company": "Acme", "Position": "Dev"}, {"Company": "Globex", "Position": "QA"}]
        result = pipeline.import_with_validation(rows, BASIC_MAPPING, ImportOptions(existing_applications=existing))
        assert [a.id for a in result.applications] == ["a", "b"]

    def test_exhausted_attempts_raise(self):
        generator = IdentifierGenerator(["same"], id_source=lambda: "same", max_attempts=3)
        with pytest.raises(IdentifierCollisionError) as exc_info:
            generator.next_id()
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_candidate == "same"

    def test_default_ids_are_prefixed(self):
        generator = IdentifierGenerator()
        first, second = generator.next_id(), generator.next_id()
        assert first.startswith("imported-")
        assert first != second

    def test_executor_reports_progress_per_batch(self):
        executor = build_executor(batch_size=2)
        rows = [{"Company": f"C{i}", "Position": "Dev"} for i in range(5)]
        steps = executor.iter_execute(rows, BASIC_MAPPING)
        events = []
        while True:
            try:
                events.append(next(steps))
            except StopIteration as stop:
                result = stop.value
                break
        assert [e.current_row for e in events] == [2, 4, 5]
        assert events[-1].progress == 100
        assert result.summary.successful_imports == 5
