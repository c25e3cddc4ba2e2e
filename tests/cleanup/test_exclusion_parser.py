"""Tests for the exclusion file parser adapter."""

import io

import pytest
from openpyxl import Workbook

from src.intune.cleanup.adapters.exclusion_parser import ExclusionFileParser


@pytest.fixture
def parser():
    return ExclusionFileParser()


@pytest.fixture
def exclusions_xlsx(tmp_path):
    """Create an exclusion workbook on disk."""
    wb = Workbook()
    ws = wb.active
    ws["A1"] = "Serial Number"
    ws["B1"] = "Device Name"
    ws["A2"] = "SN12345"
    ws["B3"] = "CEO-LAPTOP"
    # Row 4 left blank on purpose
    ws["A5"] = 98765

    output = io.BytesIO()
    wb.save(output)
    path = tmp_path / "exclusions.xlsx"
    path.write_bytes(output.getvalue())
    return path


class TestExclusionFileParser:
    """Tests for ExclusionFileParser."""

    def test_parse_csv(self, parser, tmp_path):
        path = tmp_path / "keep.csv"
        path.write_text(
            "DeviceId,DirectoryId,SerialNumber,DeviceName\n"
            "md-1,,,\n"
            ",aad-2,,\n"
            ",,SN3,\n"
            ",,,Kiosk-4\n",
            encoding="utf-8",
        )

        entries = parser.load(path)

        assert len(entries) == 4
        assert entries[0].device_id == "md-1"
        assert entries[1].directory_id == "aad-2"
        assert entries[2].serial_number == "SN3"
        assert entries[3].display_name == "Kiosk-4"

    def test_drops_empty_rows(self, parser, tmp_path):
        path = tmp_path / "keep.csv"
        path.write_text("SerialNumber,DeviceName\n,\n  ,  \nSN1,\n", encoding="utf-8")

        entries = parser.load(path)

        assert [e.serial_number for e in entries] == ["SN1"]

    def test_bom_and_semicolons(self, parser, tmp_path):
        path = tmp_path / "keep.csv"
        path.write_bytes("\ufeffDeviceName;SerialNumber\nPC-1;SN1\nPC-2;SN2\n".encode("utf-8"))

        entries = parser.load(path)

        assert [(e.display_name, e.serial_number) for e in entries] == [
            ("PC-1", "SN1"),
            ("PC-2", "SN2"),
        ]

    def test_single_column(self, parser, tmp_path):
        path = tmp_path / "keep.csv"
        path.write_text("serial\nSN1\nSN2\n", encoding="utf-8")

        entries = parser.load(path)

        assert [e.serial_number for e in entries] == ["SN1", "SN2"]
        assert entries[0].device_id == ""

    def test_alias_columns(self, parser, tmp_path):
        path = tmp_path / "keep.csv"
        path.write_text("AzureADDeviceId,Name\naad-1,PC-1\n", encoding="utf-8")

        entries = parser.load(path)

        assert entries[0].directory_id == "aad-1"
        assert entries[0].display_name == "PC-1"

    def test_unknown_columns_raise(self, parser, tmp_path):
        path = tmp_path / "keep.csv"
        path.write_text("Owner,Notes\nalice,keep\n", encoding="utf-8")

        with pytest.raises(ValueError, match="No exclusion columns"):
            parser.load(path)

    def test_empty_file(self, parser, tmp_path):
        path = tmp_path / "keep.csv"
        path.write_text("", encoding="utf-8")

        assert parser.load(path) == []

    def test_missing_file(self, parser, tmp_path):
        with pytest.raises(ValueError, match="not found"):
            parser.load(tmp_path / "missing.csv")

    def test_parse_excel(self, parser, exclusions_xlsx):
        entries = parser.load(exclusions_xlsx)

        assert len(entries) == 3
        assert entries[0].serial_number == "SN12345"
        assert entries[1].display_name == "CEO-LAPTOP"
        assert entries[2].serial_number == "98765"

    def test_corrupt_excel(self, parser, tmp_path):
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"not a workbook")

        with pytest.raises(ValueError, match="Failed to open"):
            parser.load(path)

    def test_cells_are_trimmed(self, parser, tmp_path):
        path = tmp_path / "keep.csv"
        path.write_text("SerialNumber,DeviceName\n  SN1 , Kiosk-4  \n", encoding="utf-8")

        entries = parser.load(path)

        assert entries[0].serial_number == "SN1"
        assert entries[0].display_name == "Kiosk-4"
