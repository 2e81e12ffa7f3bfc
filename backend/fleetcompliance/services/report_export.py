"""Excel export of a period report."""

from dataclasses import dataclass
from decimal import Decimal
from io import BytesIO
from typing import Any, Iterable, List

from openpyxl import Workbook
from openpyxl.styles import Font

from fleetcompliance.models.report import PeriodReport
from fleetcompliance.services.file_storage import AttachmentManager

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(frozen=True)
class ExportFilePayload:
    media_type: str
    filename: str
    content: bytes


def export_filename(report: PeriodReport) -> str:
    return (
        f"{report.template}_Report_{report.vessel_id}_"
        f"{report.from_date.isoformat()}_{report.to_date.isoformat()}.xlsx"
    )


def _write_table(sheet, header: List[str], rows: Iterable[List[Any]], empty_message: str, width: int = 24):
    rows = list(rows)
    if not rows:
        sheet.append([empty_message])
        return
    sheet.append(header)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        sheet.append(row)
    for index in range(len(header)):
        sheet.column_dimensions[chr(ord("A") + index)].width = width


def export_report(report: PeriodReport, attachments: AttachmentManager) -> ExportFilePayload:
    workbook = Workbook()
    workbook.properties.creator = "MEMP Shore"

    summary = workbook.active
    summary.title = "Summary"
    _write_table(
        summary,
        ["Field", "Value"],
        [
            ["Vessel", report.vessel_id],
            ["Template", report.template],
            ["From", report.from_date.isoformat()],
            ["To", report.to_date.isoformat()],
            ["Status", report.status.value],
            ["Created", report.created_at.isoformat() if report.created_at else ""],
        ],
        "",
    )

    buckets = report.buckets or {}
    _write_table(
        workbook.create_sheet("Fuel Consumption"),
        ["Fuel Type", "Consumed (MT)"],
        ([entry["key"], Decimal(entry["total"])] for entry in buckets.get("fuel", [])),
        "No fuel consumption recorded for this period.",
    )
    _write_table(
        workbook.create_sheet("Machinery Running Hours"),
        ["Machinery", "Running Hours"],
        ([entry["name"], Decimal(entry["total"])] for entry in buckets.get("machinery", [])),
        "No machinery running hours recorded for this period.",
    )
    _write_table(
        workbook.create_sheet("Attachments"),
        ["File", "Size (bytes)", "Content Type", "Link"],
        (
            [a.original_filename, a.file_size, a.mime_type, attachments.public_path(a.file_path)]
            for a in report.attachments
        ),
        "No attachments.",
        width=32,
    )

    output = BytesIO()
    workbook.save(output)
    return ExportFilePayload(
        media_type=XLSX_MEDIA_TYPE,
        filename=export_filename(report),
        content=output.getvalue(),
    )
