from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import FileResponse
from starlette.datastructures import UploadFile as StarletteUploadFile
from typing import Any, Dict, List, Optional

from fleetcompliance.core.errors import PayloadTooLargeError, ValidationError
from fleetcompliance.dependencies.services import get_report_controller
from fleetcompliance.schemas.report import (
    AttachmentDeleteOut,
    AttachmentOut,
    PeriodReportOut,
    ReportGenerateRequest,
)
from fleetcompliance.services.report_assembler import supported_templates
from fleetcompliance.services.report_export import export_report
from fleetcompliance.services.report_lifecycle import ReportLifecycleController

router = APIRouter()


# ─────────────────────────────────────────────
# 📋 Available templates
# ─────────────────────────────────────────────
@router.get("/templates", response_model=List[str])
async def list_templates():
    return supported_templates()


# ─────────────────────────────────────────────
# 🆕 Generate a period report
# ─────────────────────────────────────────────
@router.post("/", response_model=PeriodReportOut, status_code=201)
async def generate_report(
    data: ReportGenerateRequest,
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    report = await controller.generate(data.vessel_id, data.from_date, data.to_date, data.template)
    return controller.to_envelope(report)


# ─────────────────────────────────────────────
# 📊 List reports
# ─────────────────────────────────────────────
@router.get("/", response_model=List[PeriodReportOut])
async def list_reports(
    vessel_id: Optional[str] = Query(None, alias="vesselId"),
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    reports = await controller.list_reports(vessel_id=vessel_id)
    return [controller.to_envelope(report) for report in reports]


# ─────────────────────────────────────────────
# 📎 Attachments by id
# ─────────────────────────────────────────────
@router.get("/attachments/{attachment_id}")
async def download_attachment(
    attachment_id: int,
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    file_path, attachment = await controller.attachment_file(attachment_id)
    return FileResponse(
        path=file_path,
        filename=attachment.original_filename,
        media_type=attachment.mime_type,
    )


@router.delete("/attachments/{attachment_id}", response_model=AttachmentDeleteOut)
async def delete_attachment(
    attachment_id: int,
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    return {"success": await controller.remove_attachment(attachment_id)}


# ─────────────────────────────────────────────
# 🔍 Single report
# ─────────────────────────────────────────────
@router.get("/{report_id}", response_model=PeriodReportOut)
async def get_report(
    report_id: int,
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    report = await controller.get(report_id)
    return controller.to_envelope(report)


@router.get("/{report_id}/view", response_model=Dict[str, Any])
async def get_report_view(
    report_id: int,
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    """Template-specific shaping of the report buckets."""
    report = await controller.get(report_id)
    return controller.view(report)


@router.post("/{report_id}/regenerate", response_model=PeriodReportOut)
async def regenerate_report(
    report_id: int,
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    report = await controller.regenerate(report_id)
    return controller.to_envelope(report)


@router.post("/{report_id}/finalize", response_model=PeriodReportOut)
async def finalize_report(
    report_id: int,
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    report = await controller.finalize(report_id)
    return controller.to_envelope(report)


@router.delete("/{report_id}", status_code=204)
async def delete_report(
    report_id: int,
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    await controller.delete(report_id)
    return Response(status_code=204)


# Multipart framing around the file part
MULTIPART_OVERHEAD_BYTES = 64 * 1024

_UPLOAD_BODY = {
    "requestBody": {
        "required": True,
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "properties": {"file": {"type": "string", "format": "binary"}},
                    "required": ["file"],
                }
            }
        },
    }
}


@router.post("/{report_id}/attachments", response_model=AttachmentOut, status_code=201, openapi_extra=_UPLOAD_BODY)
async def upload_attachment(
    report_id: int,
    request: Request,
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    """
    Single ``file`` part. Requests announcing a body larger than the
    attachment limit are refused before the body is read.
    """
    limit = controller.attachments.max_bytes
    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > limit + MULTIPART_OVERHEAD_BYTES:
        raise PayloadTooLargeError(
            f"Request body of {content_length} bytes exceeds maximum allowed ({limit // (1024 * 1024)}MB)"
        )

    form = await request.form(max_files=1)
    try:
        file = form.get("file")
        if not isinstance(file, StarletteUploadFile):
            raise ValidationError("Multipart field 'file' is required")
        attachment = await controller.add_attachment(report_id, file.file, file.filename, file.content_type)
    finally:
        await form.close()
    return controller.attachment_envelope(attachment)


# ─────────────────────────────────────────────
# 📤 Excel export
# ─────────────────────────────────────────────
@router.get("/{report_id}/export")
async def export_report_xlsx(
    report_id: int,
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    report = await controller.get(report_id)
    exported = export_report(report, controller.attachments)
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )
