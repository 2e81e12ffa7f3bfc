from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Date, DateTime, Enum, ForeignKey, JSON
from sqlalchemy.orm import relationship
from fleetcompliance.core.database import Base
import enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportStatus(str, enum.Enum):
    draft = "draft"
    finalized = "finalized"


class PeriodReport(Base):
    __tablename__ = "period_reports"

    id = Column(Integer, primary_key=True, index=True)
    vessel_id = Column(String(64), ForeignKey("vessels.id"), nullable=False, index=True)

    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=False)
    template = Column(String(20), nullable=False)

    status = Column(Enum(ReportStatus), nullable=False, default=ReportStatus.draft)

    # {"fuel": [{"key", "total"}], "machinery": [{"name", "total"}]}, totals as decimal strings
    buckets = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    finalized_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    attachments = relationship(
        "ReportAttachment",
        back_populates="report",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReportAttachment.id",
    )

    def __repr__(self):
        return f"<PeriodReport id={self.id} vessel={self.vessel_id} {self.template} {self.from_date}..{self.to_date}>"


class ReportAttachment(Base):
    __tablename__ = "report_attachments"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("period_reports.id", ondelete="CASCADE"), nullable=False, index=True)

    original_filename = Column(String(255), nullable=False)
    file_path = Column(String(512), nullable=False)  # relative to SERVICE_ROOT
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # Relationship
    report = relationship("PeriodReport", back_populates="attachments")

    def __repr__(self):
        return f"<ReportAttachment id={self.id} file={self.original_filename}>"
