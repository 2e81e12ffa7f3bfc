from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleetcompliance.core.config import Settings, get_settings
from fleetcompliance.core.database import get_db, get_session_factory
from fleetcompliance.core.logging import db_logger, report_logger, storage_logger
from fleetcompliance.services.file_storage import AttachmentManager
from fleetcompliance.services.operational_store import OperationalDataStore
from fleetcompliance.services.report_lifecycle import ReportLifecycleController


def get_operational_store(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    config: Settings = Depends(get_settings),
) -> OperationalDataStore:
    return OperationalDataStore(session_factory, config=config, logger=db_logger)


def get_attachment_manager(config: Settings = Depends(get_settings)) -> AttachmentManager:
    return AttachmentManager(config=config, logger=storage_logger)


def get_report_controller(
    db: AsyncSession = Depends(get_db),
    store: OperationalDataStore = Depends(get_operational_store),
    attachments: AttachmentManager = Depends(get_attachment_manager),
) -> ReportLifecycleController:
    return ReportLifecycleController(db, store, attachments, logger=report_logger)
