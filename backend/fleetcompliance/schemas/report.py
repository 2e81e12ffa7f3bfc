from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import date


# ─────────────────────────────────────────────
# 📥 Generation request
# ─────────────────────────────────────────────
class ReportGenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vessel_id: str = Field(..., alias="vesselId", examples=["V1"])
    from_date: date = Field(..., alias="fromDate", examples=["2024-01-01"])
    to_date: date = Field(..., alias="toDate", examples=["2024-01-31"])
    # Checked against the template registry, so an unknown name surfaces as UnsupportedTemplateError
    template: str = Field(..., examples=["EU_MRV"])


# ─────────────────────────────────────────────
# 📤 Report envelope
# ─────────────────────────────────────────────
class PeriodOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: date = Field(..., alias="from")
    to: date


class FuelBucketOut(BaseModel):
    key: str
    total: float


class MachineryBucketOut(BaseModel):
    name: str
    total: float


class BucketsOut(BaseModel):
    fuel: List[FuelBucketOut] = []
    machinery: List[MachineryBucketOut] = []


class AttachmentOut(BaseModel):
    id: int
    originalFilename: str
    publicPath: str
    size: int
    contentType: str
    uploadedAt: Optional[str] = None


class PeriodReportOut(BaseModel):
    id: int
    vesselId: str
    period: PeriodOut
    template: str
    buckets: BucketsOut
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    finalizedAt: Optional[str] = None
    status: str
    attachments: List[AttachmentOut] = []


class AttachmentDeleteOut(BaseModel):
    success: bool


class PeriodSummaryOut(BaseModel):
    vesselId: str
    period: PeriodOut
    buckets: BucketsOut
