"""Report Lifecycle Controller.

Drives a period report through

    requested -> aggregating -> assembled -> (attachments updated)* -> finalized

with ``failed`` reachable from aggregating/assembled. Only ``assembled``
(persisted as ``draft``) and ``finalized`` ever reach the database: a failed
generation rolls back and leaves nothing behind.
"""

import asyncio
import enum
import logging
import weakref
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetcompliance.core.errors import (
    InvalidStateError,
    NotFoundError,
    ReportServiceError,
    StorageUnavailableError,
    ValidationError,
)
from fleetcompliance.core.logging import log_report_event, report_logger
from fleetcompliance.models.report import PeriodReport, ReportAttachment, ReportStatus
from fleetcompliance.services.aggregator import aggregate
from fleetcompliance.services.file_storage import AttachmentManager
from fleetcompliance.services.operational_store import OperationalDataStore
from fleetcompliance.services.report_assembler import AssembledReport, assemble, build_buckets, resolve_template, shape


class ReportState(str, enum.Enum):
    requested = "requested"
    aggregating = "aggregating"
    assembled = "assembled"
    attachments_updated = "attachments_updated"
    finalized = "finalized"
    failed = "failed"


class KeyedLocks:
    """One ``asyncio.Lock`` per key, dropped once nobody holds a reference."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[Any, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: Any) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


# Attachment uploads are serialized per report id within the process
attachment_locks = KeyedLocks()


async def gather_all_or_nothing(*coros):
    """Run coroutines concurrently; on the first failure cancel the rest and re-raise."""
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ReportLifecycleController:
    def __init__(
        self,
        db: AsyncSession,
        store: OperationalDataStore,
        attachments: AttachmentManager,
        logger: Optional[logging.Logger] = None,
        locks: KeyedLocks = attachment_locks,
    ):
        self.db = db
        self.store = store
        self.attachments = attachments
        self.logger = logger or report_logger
        self.locks = locks

    # ---------- Validation ----------
    @staticmethod
    def _validate_period(vessel_id: Optional[str], from_date: Optional[date], to_date: Optional[date]) -> str:
        if vessel_id is None or not str(vessel_id).strip():
            raise ValidationError("vesselId is required")
        if from_date is None or to_date is None:
            raise ValidationError("fromDate and toDate are required")
        if from_date > to_date:
            raise ValidationError("fromDate must be earlier than or equal to toDate")
        return str(vessel_id).strip()

    # ---------- Aggregation ----------
    async def _collect(self, vessel_id: str, from_date: date, to_date: date) -> Tuple[Dict[str, Decimal], Dict[str, Decimal]]:
        if not await self.store.vessel_exists(vessel_id):
            raise NotFoundError(f"Vessel {vessel_id} not found")

        fuel_rows, machinery_rows = await gather_all_or_nothing(
            self.store.fetch_fuel_consumption(vessel_id, from_date, to_date),
            self.store.fetch_machinery_running_hours(vessel_id, from_date, to_date),
        )
        return aggregate(fuel_rows, logger=self.logger), aggregate(machinery_rows, logger=self.logger)

    async def _aggregate(self, vessel_id: str, from_date: date, to_date: date, template: str) -> AssembledReport:
        fuel_totals, machinery_totals = await self._collect(vessel_id, from_date, to_date)
        return assemble(vessel_id, from_date, to_date, template, fuel_totals, machinery_totals)

    def _transition(self, state: ReportState, report_id: Optional[int] = None, **details):
        log_report_event(state.value, report_id=report_id, logger=self.logger, **details)

    async def _fail(self, error: Exception, report_id: Optional[int] = None, **details):
        await self.db.rollback()
        code = error.code if isinstance(error, ReportServiceError) else type(error).__name__
        log_report_event(ReportState.failed.value, report_id=report_id, error_code=code, logger=self.logger, **details)

    # ---------- Queries ----------
    async def _load(self, report_id: int) -> Optional[PeriodReport]:
        result = await self.db.execute(
            select(PeriodReport)
            .where(PeriodReport.id == report_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, report_id: int) -> PeriodReport:
        report = await self._load(report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} not found")
        return report

    async def list_reports(self, vessel_id: Optional[str] = None) -> List[PeriodReport]:
        query = select(PeriodReport).order_by(PeriodReport.created_at.desc(), PeriodReport.id.desc())
        if vessel_id:
            query = query.where(PeriodReport.vessel_id == vessel_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ---------- Generation ----------
    async def generate(self, vessel_id: str, from_date: date, to_date: date, template: str) -> PeriodReport:
        vessel_id = self._validate_period(vessel_id, from_date, to_date)
        template = resolve_template(template)
        details = {"vessel_id": vessel_id, "template": template, "period": f"{from_date}..{to_date}"}
        self._transition(ReportState.requested, **details)

        try:
            self._transition(ReportState.aggregating, **details)
            assembled = await self._aggregate(vessel_id, from_date, to_date, template)

            report = PeriodReport(
                vessel_id=assembled.vessel_id,
                from_date=assembled.from_date,
                to_date=assembled.to_date,
                template=assembled.template,
                status=ReportStatus.draft,
                buckets=assembled.buckets,
            )
            self.db.add(report)
            await self.db.commit()
        except ReportServiceError as e:
            await self._fail(e, **details)
            raise
        except SQLAlchemyError as e:
            await self._fail(e, **details)
            raise StorageUnavailableError("Could not persist the period report") from e

        self._transition(ReportState.assembled, report_id=report.id, **details)
        return await self.get(report.id)

    async def regenerate(self, report_id: int) -> PeriodReport:
        """Re-run aggregation for a draft report. Attachments are left untouched."""
        report = await self.get(report_id)
        if report.status == ReportStatus.finalized:
            raise InvalidStateError(f"Report {report_id} is finalized and can no longer be regenerated")

        details = {"vessel_id": report.vessel_id, "template": report.template}
        try:
            self._transition(ReportState.aggregating, report_id=report_id, **details)
            assembled = await self._aggregate(report.vessel_id, report.from_date, report.to_date, report.template)
            report.buckets = assembled.buckets
            report.updated_at = _utcnow()
            await self.db.commit()
        except ReportServiceError as e:
            await self._fail(e, report_id=report_id, **details)
            raise
        except SQLAlchemyError as e:
            await self._fail(e, report_id=report_id, **details)
            raise StorageUnavailableError("Could not persist the regenerated report") from e

        self._transition(ReportState.assembled, report_id=report_id, **details)
        return await self.get(report_id)

    async def finalize(self, report_id: int) -> PeriodReport:
        report = await self.get(report_id)
        if report.status == ReportStatus.finalized:
            return report

        report.status = ReportStatus.finalized
        report.finalized_at = _utcnow()
        report.updated_at = report.finalized_at
        await self._commit("finalize")
        self._transition(ReportState.finalized, report_id=report_id, vessel_id=report.vessel_id, template=report.template)
        return await self.get(report_id)

    async def delete(self, report_id: int):
        """Delete a report together with every attachment file it owns."""
        async with self.locks.get(report_id):
            # loaded under the lock so uploads committed meanwhile are included
            report = await self.get(report_id)
            failed = []
            for attachment in list(report.attachments):
                if not await self.attachments.delete(attachment.file_path):
                    failed.append(attachment.id)
            if failed:
                raise StorageUnavailableError(
                    f"Could not release attachment file(s) {failed} of report {report_id}; report kept"
                )

            await self.db.delete(report)
            await self._commit("delete")

        log_report_event("deleted", report_id=report_id, vessel_id=report.vessel_id, logger=self.logger)

    async def _commit(self, action: str):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageUnavailableError(f"Could not {action} the report") from e

    # ---------- Attachments ----------
    async def add_attachment(
        self,
        report_id: int,
        file_stream: BinaryIO,
        original_filename: str,
        content_type: Optional[str] = None,
    ) -> ReportAttachment:
        async with self.locks.get(report_id):
            report = await self.get(report_id)
            if report.status == ReportStatus.finalized:
                raise InvalidStateError(f"Report {report_id} is finalized; attachments are frozen")

            stored = await self.attachments.store(report_id, file_stream, original_filename, content_type)
            attachment = ReportAttachment(
                report_id=report.id,
                original_filename=stored.original_filename,
                file_path=stored.file_path,
                file_size=stored.file_size,
                mime_type=stored.mime_type,
                uploaded_at=stored.uploaded_at,
            )
            self.db.add(attachment)
            try:
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                await self.attachments.delete(stored.file_path)
                raise StorageUnavailableError("Could not record the attachment") from e

        self._transition(ReportState.attachments_updated, report_id=report_id, attachment_id=attachment.id, action="added")
        return attachment

    async def remove_attachment(self, attachment_id: int) -> bool:
        """
        Remove one attachment, row first and file second.

        Returns False only when the file could not be deleted; the row is then
        put back. An unknown id counts as already gone.
        """
        attachment = await self._load_attachment(attachment_id)
        if attachment is None:
            return True

        report_id = attachment.report_id
        async with self.locks.get(report_id):
            attachment = await self._load_attachment(attachment_id)
            if attachment is None:
                return True
            report = await self.get(report_id)
            if report.status == ReportStatus.finalized:
                raise InvalidStateError(f"Report {report_id} is finalized; attachments are frozen")

            restore = ReportAttachment(
                id=attachment.id,
                report_id=attachment.report_id,
                original_filename=attachment.original_filename,
                file_path=attachment.file_path,
                file_size=attachment.file_size,
                mime_type=attachment.mime_type,
                uploaded_at=attachment.uploaded_at,
            )
            await self.db.delete(attachment)
            await self._commit("update attachments of")

            if not await self.attachments.delete(restore.file_path):
                self.db.add(restore)
                await self._commit("restore the attachment of")
                return False

        self._transition(ReportState.attachments_updated, report_id=report_id, attachment_id=attachment_id, action="removed")
        return True

    async def _load_attachment(self, attachment_id: int) -> Optional[ReportAttachment]:
        result = await self.db.execute(
            select(ReportAttachment)
            .where(ReportAttachment.id == attachment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def attachment_file(self, attachment_id: int) -> Tuple[Path, ReportAttachment]:
        attachment = await self.db.get(ReportAttachment, attachment_id)
        if attachment is None:
            raise NotFoundError(f"Attachment {attachment_id} not found")
        full_path = self.attachments.resolve(attachment.file_path)
        if not full_path.is_file():
            raise NotFoundError(f"Attachment {attachment_id} is missing on disk")
        return full_path, attachment

    # ---------- Period summary ----------
    async def period_summary(self, vessel_id: str, from_date: date, to_date: date) -> Dict[str, Any]:
        """Aggregated totals for a period without creating a report."""
        vessel_id = self._validate_period(vessel_id, from_date, to_date)
        fuel_totals, machinery_totals = await self._collect(vessel_id, from_date, to_date)
        return {
            "vesselId": vessel_id,
            "period": {"from": from_date.isoformat(), "to": to_date.isoformat()},
            "buckets": _numeric_buckets(build_buckets(fuel_totals, machinery_totals)),
        }

    # ---------- Serialization ----------
    def attachment_envelope(self, attachment: ReportAttachment) -> Dict[str, Any]:
        return {
            "id": attachment.id,
            "originalFilename": attachment.original_filename,
            "publicPath": self.attachments.public_path(attachment.file_path),
            "size": attachment.file_size,
            "contentType": attachment.mime_type,
            "uploadedAt": _iso(attachment.uploaded_at),
        }

    def to_envelope(self, report: PeriodReport) -> Dict[str, Any]:
        return {
            "id": report.id,
            "vesselId": report.vessel_id,
            "period": {"from": report.from_date.isoformat(), "to": report.to_date.isoformat()},
            "template": report.template,
            "buckets": _numeric_buckets(report.buckets),
            "createdAt": _iso(report.created_at),
            "updatedAt": _iso(report.updated_at),
            "finalizedAt": _iso(report.finalized_at),
            "status": report.status.value,
            "attachments": [self.attachment_envelope(a) for a in report.attachments],
        }

    @staticmethod
    def view(report: PeriodReport) -> Dict[str, Any]:
        return shape(report.template, report.buckets)


def _numeric_buckets(buckets: Dict[str, List[Dict[str, str]]]) -> Dict[str, List[Dict[str, Any]]]:
    return {
        "fuel": [{"key": entry["key"], "total": float(entry["total"])} for entry in buckets.get("fuel", [])],
        "machinery": [{"name": entry["name"], "total": float(entry["total"])} for entry in buckets.get("machinery", [])],
    }
