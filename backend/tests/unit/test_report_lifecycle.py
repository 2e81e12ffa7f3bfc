import asyncio
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from fleetcompliance.core.errors import (
    InvalidStateError,
    NotFoundError,
    StorageUnavailableError,
    UnsupportedTemplateError,
    ValidationError,
)
from fleetcompliance.models import FuelConsumptionEvent, PeriodReport, ReportStatus
from fleetcompliance.services.report_lifecycle import (
    KeyedLocks,
    ReportLifecycleController,
    gather_all_or_nothing,
)

JAN_1 = date(2024, 1, 1)
JAN_31 = date(2024, 1, 31)


async def _report_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(PeriodReport))


@pytest.mark.asyncio
async def test_reversed_period_rejected_before_any_io():
    store = AsyncMock()
    db = AsyncMock()
    controller = ReportLifecycleController(db, store, MagicMock(), locks=KeyedLocks())

    with pytest.raises(ValidationError):
        await controller.generate("V1", JAN_31, JAN_1, "EU_MRV")

    assert store.mock_calls == []
    assert db.mock_calls == []


@pytest.mark.asyncio
async def test_missing_vessel_id_rejected():
    store = AsyncMock()
    controller = ReportLifecycleController(AsyncMock(), store, MagicMock(), locks=KeyedLocks())

    with pytest.raises(ValidationError):
        await controller.generate("  ", JAN_1, JAN_31, "EU_MRV")
    assert store.mock_calls == []


@pytest.mark.asyncio
async def test_unknown_template_rejected_before_any_io():
    store = AsyncMock()
    controller = ReportLifecycleController(AsyncMock(), store, MagicMock(), locks=KeyedLocks())

    with pytest.raises(UnsupportedTemplateError):
        await controller.generate("V1", JAN_1, JAN_31, "NOT_A_TEMPLATE")
    assert store.mock_calls == []


@pytest.mark.asyncio
async def test_generate_persists_draft_with_buckets(controller, seeded):
    report = await controller.generate("V1", JAN_1, JAN_31, "eu_mrv")

    assert report.id is not None
    assert report.status == ReportStatus.draft
    assert report.template == "EU_MRV"
    assert report.buckets["fuel"] == [{"key": "HFO", "total": "21.000"}, {"key": "MDO", "total": "3.000"}]
    assert report.buckets["machinery"] == [{"name": "DG1", "total": "8.00"}, {"name": "Main Engine", "total": "36.50"}]

    envelope = controller.to_envelope(report)
    assert envelope["buckets"]["fuel"] == [{"key": "HFO", "total": 21.0}, {"key": "MDO", "total": 3.0}]
    assert envelope["period"] == {"from": "2024-01-01", "to": "2024-01-31"}
    assert envelope["attachments"] == []


@pytest.mark.asyncio
async def test_generate_for_unknown_vessel(controller, seeded, session_factory):
    with pytest.raises(NotFoundError):
        await controller.generate("GHOST", JAN_1, JAN_31, "EU_MRV")
    assert await _report_count(session_factory) == 0


@pytest.mark.asyncio
async def test_failed_fetch_leaves_no_report(controller, seeded, session_factory):
    with patch.object(controller.store, "fetch_machinery_running_hours", side_effect=StorageUnavailableError("db down")):
        with pytest.raises(StorageUnavailableError):
            await controller.generate("V1", JAN_1, JAN_31, "EU_MRV")

    assert await _report_count(session_factory) == 0


@pytest.mark.asyncio
async def test_gather_cancels_siblings_on_failure():
    cancelled = asyncio.Event()

    async def slow_fetch():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    async def failing_fetch():
        raise StorageUnavailableError("db down")

    with pytest.raises(StorageUnavailableError):
        await gather_all_or_nothing(slow_fetch(), failing_fetch())
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_regenerate_refreshes_buckets_and_keeps_attachments(controller, seeded, session_factory):
    report = await controller.generate("V1", JAN_1, JAN_31, "EU_MRV")
    attachment = await controller.add_attachment(report.id, BytesIO(b"bunker note"), "bdn.pdf", "application/pdf")

    async with session_factory() as session:
        session.add(FuelConsumptionEvent(
            vessel_id="V1", fuel_type_key="LNG", consumed_mt=Decimal("4.2"), entry_date=datetime(2024, 1, 20, 6, 0),
        ))
        await session.commit()

    refreshed = await controller.regenerate(report.id)

    assert [entry["key"] for entry in refreshed.buckets["fuel"]] == ["HFO", "LNG", "MDO"]
    assert [a.id for a in refreshed.attachments] == [attachment.id]
    assert refreshed.status == ReportStatus.draft


@pytest.mark.asyncio
async def test_finalize_is_idempotent_and_freezes_report(controller, seeded):
    report = await controller.generate("V1", JAN_1, JAN_31, "DNV")

    finalized = await controller.finalize(report.id)
    finalized_at = finalized.finalized_at
    again = await controller.finalize(report.id)

    assert again.status == ReportStatus.finalized
    assert again.finalized_at == finalized_at

    with pytest.raises(InvalidStateError):
        await controller.regenerate(report.id)
    with pytest.raises(InvalidStateError):
        await controller.add_attachment(report.id, BytesIO(b"late"), "late.txt")


@pytest.mark.asyncio
async def test_remove_unknown_attachment_succeeds(controller, seeded):
    assert await controller.remove_attachment(424242) is True


@pytest.mark.asyncio
async def test_remove_attachment_deletes_file_and_row(controller, seeded, test_settings):
    report = await controller.generate("V1", JAN_1, JAN_31, "ABS")
    attachment = await controller.add_attachment(report.id, BytesIO(b"log"), "log.txt", "text/plain")
    file_path = test_settings.SERVICE_ROOT / attachment.file_path
    assert file_path.exists()

    assert await controller.remove_attachment(attachment.id) is True

    assert not file_path.exists()
    assert (await controller.get(report.id)).attachments == []


@pytest.mark.asyncio
async def test_delete_keeps_report_when_a_file_cannot_be_released(controller, seeded):
    report = await controller.generate("V1", JAN_1, JAN_31, "ClassNK")
    await controller.add_attachment(report.id, BytesIO(b"a"), "a.txt")

    with patch.object(controller.attachments, "delete", AsyncMock(return_value=False)):
        with pytest.raises(StorageUnavailableError):
            await controller.delete(report.id)

    assert (await controller.get(report.id)).id == report.id


@pytest.mark.asyncio
async def test_delete_removes_report_and_files(controller, seeded, test_settings):
    report = await controller.generate("V1", JAN_1, JAN_31, "IMO_DCS")
    attachment = await controller.add_attachment(report.id, BytesIO(b"a"), "a.txt")

    await controller.delete(report.id)

    assert not (test_settings.SERVICE_ROOT / attachment.file_path).exists()
    with pytest.raises(NotFoundError):
        await controller.get(report.id)


@pytest.mark.asyncio
async def test_period_summary_does_not_create_report(controller, seeded, session_factory):
    summary = await controller.period_summary("V1", JAN_1, JAN_31)

    assert summary["buckets"]["fuel"] == [{"key": "HFO", "total": 21.0}, {"key": "MDO", "total": 3.0}]
    assert await _report_count(session_factory) == 0


@pytest.mark.asyncio
async def test_successive_uploads_get_distinct_files(controller, seeded):
    report = await controller.generate("V1", JAN_1, JAN_31, "EU_MRV")

    for index in range(3):
        await controller.add_attachment(report.id, BytesIO(b"%d" % index), f"file{index}.txt")

    reloaded = await controller.get(report.id)
    assert len(reloaded.attachments) == 3
    assert len({a.file_path for a in reloaded.attachments}) == 3


def _peer(session, store, attachment_manager, locks):
    return ReportLifecycleController(session, store, attachment_manager, locks=locks)


@pytest.mark.asyncio
async def test_parallel_uploads_to_one_report_run_one_at_a_time(seeded, session_factory, store, attachment_manager, test_settings):
    locks = KeyedLocks()
    async with session_factory() as session:
        report = await _peer(session, store, attachment_manager, locks).generate("V1", JAN_1, JAN_31, "EU_MRV")

    in_flight = 0
    peak = 0
    real_store = attachment_manager.store

    async def tracked_store(*args, **kwargs):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        try:
            await asyncio.sleep(0.01)
            return await real_store(*args, **kwargs)
        finally:
            in_flight -= 1

    sessions = [session_factory() for _ in range(4)]
    try:
        with patch.object(attachment_manager, "store", side_effect=tracked_store):
            attachments = await asyncio.gather(*(
                _peer(session, store, attachment_manager, locks).add_attachment(
                    report.id, BytesIO(b"part %d" % index), f"noon_{index}.txt"
                )
                for index, session in enumerate(sessions)
            ))
    finally:
        for session in sessions:
            await session.close()

    assert peak == 1
    assert len({a.id for a in attachments}) == 4
    for attachment in attachments:
        assert (test_settings.SERVICE_ROOT / attachment.file_path).exists()

    async with session_factory() as session:
        reloaded = await _peer(session, store, attachment_manager, locks).get(report.id)
        assert sorted(a.id for a in reloaded.attachments) == sorted(a.id for a in attachments)


@pytest.mark.asyncio
async def test_delete_waiting_on_upload_releases_the_new_file(seeded, session_factory, store, attachment_manager, test_settings):
    locks = KeyedLocks()
    async with session_factory() as session:
        report = await _peer(session, store, attachment_manager, locks).generate("V1", JAN_1, JAN_31, "EU_MRV")

    storing = asyncio.Event()
    release = asyncio.Event()
    real_store = attachment_manager.store

    async def held_store(*args, **kwargs):
        storing.set()
        await release.wait()
        return await real_store(*args, **kwargs)

    async with session_factory() as upload_session, session_factory() as delete_session:
        uploader = _peer(upload_session, store, attachment_manager, locks)
        deleter = _peer(delete_session, store, attachment_manager, locks)

        with patch.object(attachment_manager, "store", side_effect=held_store):
            upload = asyncio.ensure_future(uploader.add_attachment(report.id, BytesIO(b"late note"), "late.pdf"))
            await storing.wait()
            delete = asyncio.ensure_future(deleter.delete(report.id))
            await asyncio.sleep(0.01)
            release.set()
            attachment, _ = await asyncio.gather(upload, delete)

        assert not (test_settings.SERVICE_ROOT / attachment.file_path).exists()
        with pytest.raises(NotFoundError):
            await deleter.get(report.id)

    assert not any(test_settings.UPLOAD_ROOT.iterdir())


@pytest.mark.asyncio
async def test_remove_attachment_keeps_file_when_row_delete_fails(controller, seeded, test_settings):
    report = await controller.generate("V1", JAN_1, JAN_31, "EU_MRV")
    attachment = await controller.add_attachment(report.id, BytesIO(b"log"), "log.txt")
    attachment_id, file_path = attachment.id, attachment.file_path
    error = OperationalError("DELETE FROM report_attachments", {}, Exception("database is locked"))

    with patch.object(controller.db, "commit", AsyncMock(side_effect=error)):
        with pytest.raises(StorageUnavailableError):
            await controller.remove_attachment(attachment_id)

    assert (test_settings.SERVICE_ROOT / file_path).exists()
    path, kept = await controller.attachment_file(attachment_id)
    assert kept.id == attachment_id
    assert path.exists()


@pytest.mark.asyncio
async def test_remove_attachment_restores_row_when_file_cannot_be_deleted(controller, seeded):
    report = await controller.generate("V1", JAN_1, JAN_31, "EU_MRV")
    attachment = await controller.add_attachment(report.id, BytesIO(b"log"), "log.txt", "text/plain")

    with patch.object(controller.attachments, "delete", AsyncMock(return_value=False)):
        assert await controller.remove_attachment(attachment.id) is False

    reloaded = await controller.get(report.id)
    assert [(a.id, a.file_path, a.mime_type) for a in reloaded.attachments] == [
        (attachment.id, attachment.file_path, "text/plain")
    ]
