"""Exclusion list parser adapter.

This adapter implements IExclusionSource to read the operator's list of
devices that must never be touched, from CSV or Excel.

Expected format (all columns optional, at least one required):
| DeviceId | DirectoryId | SerialNumber | DeviceName |
|----------|-------------|--------------|------------|
| 0f1e...  |             |              |            |
|          |             | 5CG1234XYZ   |            |
"""

import csv
import io
import logging
from pathlib import Path
from typing import Optional

from openpyxl import load_workbook

from ..domain.entities import ExclusionEntry
from ..domain.ports import IExclusionSource

logger = logging.getLogger(__name__)


class ExclusionFileParser(IExclusionSource):
    """Parses exclusion lists from CSV or .xlsx files."""

    # Column name variations we accept, compared lowercase without spaces
    COLUMN_ALIASES = {
        "device_id": ["deviceid", "device_id", "manageddeviceid", "intunedeviceid"],
        "directory_id": ["directoryid", "directory_id", "azureaddeviceid", "entradeviceid"],
        "serial_number": ["serialnumber", "serial_number", "serial", "sn"],
        "display_name": ["devicename", "device_name", "displayname", "name"],
    }

    EXCEL_SUFFIXES = {".xlsx", ".xlsm"}

    def load(self, path: Path) -> list[ExclusionEntry]:
        """Load exclusions from a CSV or Excel file.

        Raises:
            ValueError: If the file is missing or has no recognised columns
        """
        path = Path(path)
        if not path.is_file():
            raise ValueError(f"Exclusion file not found: {path}")

        content = path.read_bytes()
        if path.suffix.lower() in self.EXCEL_SUFFIXES:
            entries = self._parse_excel(content)
        else:
            entries = self._parse_csv(content)

        logger.info(f"Loaded {len(entries)} exclusion(s) from {path.name}")
        return entries

    def _find_columns(self, header_row: list) -> dict[str, int]:
        """Map entry field name to column index for recognised headers."""
        columns: dict[str, int] = {}
        for idx, cell in enumerate(header_row):
            if cell is None:
                continue
            header = str(cell).strip().lower().replace(" ", "")
            for field_name, aliases in self.COLUMN_ALIASES.items():
                if header in aliases and field_name not in columns:
                    columns[field_name] = idx
        if not columns:
            expected = ", ".join(["DeviceId", "DirectoryId", "SerialNumber", "DeviceName"])
            raise ValueError(f"No exclusion columns found. Expected any of: {expected}")
        return columns

    @staticmethod
    def _build_entry(values: list, columns: dict[str, int]) -> Optional[ExclusionEntry]:
        """Build an entry from one row; None when every field is blank."""
        fields = {}
        for field_name, idx in columns.items():
            value = values[idx] if idx < len(values) else None
            fields[field_name] = "" if value is None else str(value).strip()
        entry = ExclusionEntry(**fields)
        return None if entry.is_empty else entry

    def _parse_csv(self, content: bytes) -> list[ExclusionEntry]:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ValueError(f"Exclusion CSV is not valid UTF-8: {e}")

        if not text.strip():
            return []

        try:
            dialect = csv.Sniffer().sniff(text[:1024], delimiters=",;\t")
        except csv.Error:
            dialect = csv.excel

        reader = csv.reader(io.StringIO(text), dialect)
        header_row = next(reader, None)
        if header_row is None:
            return []
        columns = self._find_columns(header_row)

        entries = []
        for row in reader:
            entry = self._build_entry(row, columns)
            if entry is not None:
                entries.append(entry)
        return entries

    def _parse_excel(self, content: bytes) -> list[ExclusionEntry]:
        try:
            wb = load_workbook(filename=io.BytesIO(content), read_only=True)
        except Exception as e:
            raise ValueError(f"Failed to open exclusion workbook: {e}")

        try:
            ws = wb.active
            if ws is None:
                raise ValueError("Exclusion workbook has no active worksheet")

            rows = ws.iter_rows(values_only=True)
            header_row = next(rows, None)
            if header_row is None:
                return []
            columns = self._find_columns(list(header_row))

            entries = []
            for row in rows:
                entry = self._build_entry(list(row), columns)
                if entry is not None:
                    entries.append(entry)
            return entries
        finally:
            wb.close()
