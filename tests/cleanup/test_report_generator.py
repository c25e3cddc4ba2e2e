"""Tests for the cleanup report generator adapter."""

import csv
import io
import json
from datetime import datetime, timezone

import pytest
from openpyxl import load_workbook

from src.intune.cleanup.adapters.report_generator import CleanupReportGenerator
from src.intune.cleanup.domain.entities import (
    CandidateSource,
    ClassifiedCandidate,
    CleanupPlan,
    DeviceRecord,
    DirectoryDeviceRecord,
    ReasonCode,
    RecommendedAction,
    RequestedAction,
    SkippedEntry,
    SkipReason,
)


@pytest.fixture
def plan():
    stale = ClassifiedCandidate(
        record=DeviceRecord(
            id="md-1",
            display_name="PC-1",
            user_principal_name="u@x.com",
            operating_system="Windows",
            last_sync_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
            raw_data={"id": "md-1", "deviceName": "PC-1"},
        ),
        source=CandidateSource.MANAGED_DEVICE,
        recommended_action=RecommendedAction.RETIRE_OR_DELETE,
        reason_codes=[ReasonCode.LAST_SYNC_STALE, ReasonCode.DUPLICATE_REGISTRATION],
    )
    orphan = ClassifiedCandidate(
        record=DeviceRecord(id="md-2", display_name="KIOSK", serial_number="SN2"),
        source=CandidateSource.MANAGED_DEVICE,
        recommended_action=RecommendedAction.DELETE,
        reason_codes=[ReasonCode.NO_USER],
    )
    ghost = ClassifiedCandidate(
        record=DirectoryDeviceRecord(id="dev-3", display_name="GHOST", raw_data={"id": "obj-3"}),
        source=CandidateSource.DIRECTORY_DEVICE,
        recommended_action=RecommendedAction.DELETE,
        reason_codes=[ReasonCode.DIRECTORY_STALE],
    )
    return CleanupPlan(
        candidates=[stale, orphan, ghost],
        planned=[stale, ghost],
        skipped=[SkippedEntry(orphan, SkipReason.EXCLUDED)],
    )


@pytest.fixture
def generator(tmp_path):
    return CleanupReportGenerator(tmp_path / "reports")


class TestCleanupReportGenerator:
    """Tests for CleanupReportGenerator."""

    def test_generate_summary(self, generator, plan):
        report = generator.generate(plan, RequestedAction.DELETE, dry_run=True, settings={"stale_days": 90})

        assert report["requested_action"] == "Delete"
        assert report["dry_run"] is True
        assert report["settings"] == {"stale_days": 90}
        summary = report["summary"]
        assert summary["candidates"] == 3
        assert summary["planned"] == 2
        assert summary["skipped"] == 1
        assert summary["by_reason_code"] == {
            "LastSyncStale": 1,
            "DuplicateRegistration": 1,
            "NoUser": 1,
            "DirectoryStale": 1,
        }
        assert summary["by_source"] == {"ManagedDevice": 2, "DirectoryDevice": 1}
        assert summary["by_skip_reason"] == {"Excluded": 1}
        assert report["skipped"][0]["skip_reason"] == "Excluded"

    def test_generate_csv(self, generator, plan):
        rows = list(csv.DictReader(io.StringIO(generator.generate_csv(plan))))

        assert [r["id"] for r in rows] == ["md-1", "md-2", "dev-3"]
        assert rows[0]["reason_codes"] == "LastSyncStale;DuplicateRegistration"
        assert rows[0]["planned"] == "Yes"
        assert rows[1]["planned"] == "No"
        assert rows[1]["skip_reason"] == "Excluded"
        assert rows[2]["source"] == "DirectoryDevice"

    def test_generate_excel_sheets(self, generator, plan):
        content = generator.generate_excel(plan, RequestedAction.RETIRE, dry_run=False)

        wb = load_workbook(io.BytesIO(content))
        assert wb.sheetnames == ["Summary", "Candidates", "Planned", "Skipped"]
        assert wb["Summary"]["B4"].value == "Retire"
        assert wb["Summary"]["B5"].value == "Execute"
        assert wb["Candidates"].max_row == 4
        assert wb["Planned"].max_row == 3
        assert wb["Skipped"].cell(row=2, column=10).value == "Excluded"
        assert wb["Candidates"].cell(row=3, column=7).value == "Never"

    def test_backup_contains_planned_raw_records(self, generator, plan):
        backup = generator.generate_backup(plan)

        assert [b["id"] for b in backup] == ["md-1", "dev-3"]
        assert backup[0]["raw"] == {"id": "md-1", "deviceName": "PC-1"}

    def test_write_all(self, generator, plan, tmp_path):
        paths = generator.write_all(plan, RequestedAction.EXPORT, dry_run=True)

        assert set(paths) == {"json", "csv", "excel", "backup"}
        for path in paths.values():
            assert path.startswith(str(tmp_path / "reports" / "device-cleanup-"))
        report = json.loads(open(paths["json"], encoding="utf-8").read())
        assert report["summary"]["candidates"] == 3
        backup = json.loads(open(paths["backup"], encoding="utf-8").read())
        assert len(backup) == 2

    def test_write_all_empty_plan(self, generator):
        paths = generator.write_all(CleanupPlan(), RequestedAction.EXPORT, dry_run=True)

        report = json.loads(open(paths["json"], encoding="utf-8").read())
        assert report["summary"]["candidates"] == 0


class TestFormulaSanitization:
    """User-controlled device fields must never become live formulas."""

    @pytest.fixture
    def hostile_plan(self):
        candidate = ClassifiedCandidate(
            record=DeviceRecord(
                id="md-9",
                display_name='=HYPERLINK("http://evil","x")',
                user_principal_name="@SUM(A1)",
                serial_number="+1-555",
            ),
            source=CandidateSource.MANAGED_DEVICE,
            recommended_action=RecommendedAction.DELETE,
            reason_codes=[ReasonCode.LAST_SYNC_STALE],
        )
        return CleanupPlan(candidates=[candidate], planned=[candidate])

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("=1+1", "'=1+1"),
            ("+cmd", "'+cmd"),
            ("-2", "'-2"),
            ("@SUM(A1)", "'@SUM(A1)"),
            ("x =HYPERLINK(1)", "'x =HYPERLINK(1)"),
            ("LAPTOP-01", "LAPTOP-01"),
            (None, ""),
            (7, 7),
        ],
    )
    def test_sanitize_cell_value(self, value, expected):
        assert CleanupReportGenerator.sanitize_cell_value(value) == expected

    def test_excel_cells_are_text(self, generator, hostile_plan):
        content = generator.generate_excel(hostile_plan, RequestedAction.DELETE, dry_run=True)

        ws = load_workbook(io.BytesIO(content))["Candidates"]
        name_cell = ws.cell(row=2, column=3)
        assert name_cell.data_type == "s"
        assert name_cell.value == '\'=HYPERLINK("http://evil","x")'
        assert ws.cell(row=2, column=4).value == "'@SUM(A1)"
        assert ws.cell(row=2, column=5).value == "'+1-555"

    def test_csv_fields_are_escaped(self, generator, hostile_plan):
        rows = list(csv.DictReader(io.StringIO(generator.generate_csv(hostile_plan))))

        assert rows[0]["display_name"] == '\'=HYPERLINK("http://evil","x")'
        assert rows[0]["user_principal_name"] == "'@SUM(A1)"
        assert rows[0]["id"] == "md-9"
