"""Report generator adapter.

This adapter implements IReportSink to persist everything a cleanup run
decided: a JSON summary, a flat CSV of candidates, an Excel workbook and
a JSON backup of the raw Graph records for planned devices.
"""

import csv
import io
import json
import logging
import re
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from ..domain.entities import CleanupPlan, RequestedAction
from ..domain.ports import IReportSink

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "id",
    "source",
    "display_name",
    "directory_id",
    "user_principal_name",
    "serial_number",
    "operating_system",
    "last_seen",
    "reason_codes",
    "recommended_action",
    "duplicate_group_key",
    "planned",
    "skip_reason",
]


class CleanupReportGenerator(IReportSink):
    """Writes run reports into an output directory.

    File names share a UTC timestamp prefix so successive runs never
    overwrite each other: ``device-cleanup-20250101-120000.json`` etc.
    """

    # Characters that could trigger Excel formula interpretation
    FORMULA_CHARS = ("=", "+", "-", "@", "\t", "\r", "\n")

    def __init__(self, output_dir: Path, prefix: str = "device-cleanup"):
        self.output_dir = Path(output_dir)
        self.prefix = prefix

    @classmethod
    def sanitize_cell_value(cls, value: Any) -> Any:
        """Sanitize a cell value to prevent spreadsheet formula injection.

        Device names, UPNs and serials are set on the endpoint, so any of
        them can start with a formula trigger.
        """
        if value is None:
            return ""

        if isinstance(value, str):
            if value and value[0] in cls.FORMULA_CHARS:
                # Apostrophe forces text interpretation
                return f"'{value}"
            if "=" in value and re.match(r".*=\s*[A-Za-z]+\(", value):
                return f"'{value}"
            return value

        return value

    def generate(
        self,
        plan: CleanupPlan,
        requested_action: RequestedAction,
        dry_run: bool,
        settings: Optional[dict[str, Any]] = None,
    ) -> dict:
        """Build the JSON summary of a plan.

        Args:
            plan: Classification and planning output
            requested_action: Action the run was asked to perform
            dry_run: Whether execution is suppressed
            settings: Thresholds used for the run, echoed for auditing

        Returns:
            Report data structure
        """
        by_reason = Counter(
            code.value for candidate in plan.candidates for code in candidate.reason_codes
        )
        by_source = Counter(candidate.source.value for candidate in plan.candidates)
        by_skip_reason = Counter(entry.skip_reason.value for entry in plan.skipped)

        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "requested_action": requested_action.value,
            "dry_run": dry_run,
            "settings": settings or {},
            "summary": {
                "candidates": len(plan.candidates),
                "planned": len(plan.planned),
                "skipped": len(plan.skipped),
                "by_reason_code": dict(by_reason),
                "by_source": dict(by_source),
                "by_skip_reason": dict(by_skip_reason),
            },
            "candidates": [c.to_dict() for c in plan.candidates],
            "planned": [c.to_dict() for c in plan.planned],
            "skipped": [s.to_dict() for s in plan.skipped],
        }

    def generate_csv(self, plan: CleanupPlan) -> str:
        """Render one row per candidate with its planning outcome."""
        planned_ids = {c.id for c in plan.planned}
        skip_reasons = {s.candidate.id: s.skip_reason.value for s in plan.skipped}

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
        writer.writeheader()
        for candidate in plan.candidates:
            row = candidate.to_dict()
            row["reason_codes"] = ";".join(row["reason_codes"])
            row["planned"] = "Yes" if candidate.id in planned_ids else "No"
            row["skip_reason"] = skip_reasons.get(candidate.id, "")
            writer.writerow({k: self.sanitize_cell_value(v) for k, v in row.items()})
        return buffer.getvalue()

    def generate_excel(
        self,
        plan: CleanupPlan,
        requested_action: RequestedAction,
        dry_run: bool,
    ) -> bytes:
        """Generate an Excel workbook with Summary, Candidates, Planned and Skipped sheets.

        Returns:
            Excel file bytes
        """
        wb = Workbook()

        # Styling
        header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
        header_font = Font(bold=True, color="FFFFFF")
        planned_fill = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
        skipped_fill = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
        thin_border = Border(
            left=Side(style="thin"),
            right=Side(style="thin"),
            top=Side(style="thin"),
            bottom=Side(style="thin"),
        )

        # ========== Summary Sheet ==========
        ws_summary = wb.active
        ws_summary.title = "Summary"

        ws_summary["A1"] = "Device Cleanup Report"
        ws_summary["A1"].font = Font(bold=True, size=16)
        ws_summary.merge_cells("A1:D1")

        ws_summary["A3"] = "Generated At:"
        ws_summary["B3"] = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        ws_summary["A4"] = "Requested Action:"
        ws_summary["B4"] = requested_action.value
        ws_summary["A5"] = "Mode:"
        ws_summary["B5"] = "WhatIf (no changes)" if dry_run else "Execute"

        stats_data = [
            ("Candidates:", len(plan.candidates)),
            ("Planned:", len(plan.planned)),
            ("Skipped:", len(plan.skipped)),
        ]
        for i, (label, value) in enumerate(stats_data, start=7):
            ws_summary[f"A{i}"] = label
            ws_summary[f"B{i}"] = value

        ws_summary["A11"] = "Breakdown by Reason Code"
        ws_summary["A11"].font = Font(bold=True, size=12)
        for col, header in enumerate(["Reason Code", "Devices"], 1):
            cell = ws_summary.cell(row=12, column=col, value=header)
            cell.fill = header_fill
            cell.font = header_font
            cell.border = thin_border

        by_reason = Counter(
            code.value for candidate in plan.candidates for code in candidate.reason_codes
        )
        row = 13
        for reason, count in by_reason.items():
            ws_summary.cell(row=row, column=1, value=reason).border = thin_border
            ws_summary.cell(row=row, column=2, value=count).border = thin_border
            row += 1

        ws_summary.column_dimensions["A"].width = 25
        ws_summary.column_dimensions["B"].width = 25

        # ========== Candidate Sheets ==========
        headers = [
            "Device ID",
            "Source",
            "Device Name",
            "User",
            "Serial Number",
            "OS",
            "Last Seen",
            "Reason Codes",
            "Recommended Action",
        ]

        def candidate_row(candidate) -> list:
            last_seen = candidate.last_seen
            return [
                candidate.id,
                candidate.source.value,
                candidate.display_name,
                candidate.user_principal_name,
                candidate.serial_number,
                candidate.operating_system,
                last_seen.strftime("%Y-%m-%d %H:%M") if last_seen else "Never",
                ", ".join(code.value for code in candidate.reason_codes),
                candidate.recommended_action.value,
            ]

        def write_sheet(title: str, sheet_headers: list[str], rows: list[list], fill=None):
            ws = wb.create_sheet(title)
            for col, header in enumerate(sheet_headers, 1):
                cell = ws.cell(row=1, column=col, value=header)
                cell.fill = header_fill
                cell.font = header_font
                cell.alignment = Alignment(horizontal="center")
                cell.border = thin_border
            for row_num, values in enumerate(rows, 2):
                for col, value in enumerate(values, 1):
                    cell = ws.cell(row=row_num, column=col, value=self.sanitize_cell_value(value))
                    cell.border = thin_border
                    if fill is not None:
                        cell.fill = fill
            for col in range(1, len(sheet_headers) + 1):
                ws.column_dimensions[ws.cell(row=1, column=col).column_letter].width = 22
            return ws

        write_sheet("Candidates", headers, [candidate_row(c) for c in plan.candidates])
        write_sheet("Planned", headers, [candidate_row(c) for c in plan.planned], planned_fill)
        write_sheet(
            "Skipped",
            headers + ["Skip Reason"],
            [candidate_row(s.candidate) + [s.skip_reason.value] for s in plan.skipped],
            skipped_fill,
        )

        output = io.BytesIO()
        wb.save(output)
        return output.getvalue()

    def generate_backup(self, plan: CleanupPlan) -> list[dict[str, Any]]:
        """Raw Graph records of every planned device, for restore/audit."""
        return [
            {
                "id": candidate.id,
                "source": candidate.source.value,
                "raw": candidate.record.raw_data,
            }
            for candidate in plan.planned
        ]

    def write_all(
        self,
        plan: CleanupPlan,
        requested_action: RequestedAction,
        dry_run: bool,
        settings: Optional[dict[str, Any]] = None,
    ) -> dict[str, str]:
        """Write JSON, CSV, Excel and backup files.

        Returns:
            Mapping of artifact kind to written file path
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        base = self.output_dir / f"{self.prefix}-{stamp}"

        paths = {
            "json": Path(f"{base}.json"),
            "csv": Path(f"{base}.csv"),
            "excel": Path(f"{base}.xlsx"),
            "backup": Path(f"{base}-backup.json"),
        }

        report = self.generate(plan, requested_action, dry_run, settings)
        paths["json"].write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")
        paths["csv"].write_text(self.generate_csv(plan), encoding="utf-8")
        paths["excel"].write_bytes(self.generate_excel(plan, requested_action, dry_run))
        paths["backup"].write_text(
            json.dumps(self.generate_backup(plan), indent=2, default=str),
            encoding="utf-8",
        )

        logger.info(f"Reports written to {self.output_dir} ({base.name}.*)")
        return {kind: str(path) for kind, path in paths.items()}
