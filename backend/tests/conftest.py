from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fleetcompliance.core.config import Settings, get_settings
from fleetcompliance.core.database import Base, build_engine, build_session_factory, get_db, get_session_factory
from fleetcompliance.main import create_app
from fleetcompliance.models import FuelConsumptionEvent, MachineryRunningEvent, Vessel
from fleetcompliance.services.file_storage import AttachmentManager
from fleetcompliance.services.operational_store import OperationalDataStore
from fleetcompliance.services.report_lifecycle import KeyedLocks, ReportLifecycleController


@pytest.fixture()
def test_settings(tmp_path) -> Settings:
    return Settings(
        SERVICE_ROOT=tmp_path,
        DATABASE_URL_OVERRIDE=f"sqlite+aiosqlite:///{tmp_path / 'fleetcompliance.db'}",
        CREATE_TABLES_ON_STARTUP=False,
        STORAGE_QUERY_TIMEOUT_SECONDS=5.0,
    )


@pytest_asyncio.fixture()
async def engine(test_settings):
    import fleetcompliance.models  # noqa: F401

    engine = build_engine(test_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def seeded(session_factory):
    """
    Vessel V1 with January 2024 entries:
    HFO 10.5 + 10.5, MDO 3.0, main engine 24 + 12.5 h, DG1 8 h.
    One HFO entry on 2024-02-01 00:00 lies outside January.
    Vessel V2 has no operational data.
    """
    async with session_factory() as session:
        session.add_all([
            Vessel(id="V1", name="MV Ocean Spirit", imo_number="9876543"),
            Vessel(id="V2", name="MV Quiet Harbour", imo_number="9876544"),
        ])
        await session.flush()
        session.add_all([
            FuelConsumptionEvent(vessel_id="V1", fuel_type_key="HFO", consumed_mt=Decimal("10.5"), entry_date=datetime(2024, 1, 5, 12, 0)),
            FuelConsumptionEvent(vessel_id="V1", fuel_type_key="HFO", consumed_mt=Decimal("10.5"), entry_date=datetime(2024, 1, 31, 23, 30)),
            FuelConsumptionEvent(vessel_id="V1", fuel_type_key="MDO", consumed_mt=Decimal("3.0"), entry_date=datetime(2024, 1, 15, 8, 0)),
            FuelConsumptionEvent(vessel_id="V1", fuel_type_key="HFO", consumed_mt=Decimal("99.0"), entry_date=datetime(2024, 2, 1, 0, 0)),
            MachineryRunningEvent(vessel_id="V1", machinery_name="Main Engine", running_hours=Decimal("24.00"), entry_date=datetime(2024, 1, 5, 12, 0)),
            MachineryRunningEvent(vessel_id="V1", machinery_name="Main Engine", running_hours=Decimal("12.50"), entry_date=datetime(2024, 1, 6, 12, 0)),
            MachineryRunningEvent(vessel_id="V1", machinery_name="DG1", running_hours=Decimal("8.00"), entry_date=datetime(2024, 1, 1, 0, 0)),
        ])
        await session.commit()


@pytest.fixture()
def store(session_factory, test_settings):
    return OperationalDataStore(session_factory, config=test_settings)


@pytest.fixture()
def attachment_manager(test_settings):
    return AttachmentManager(config=test_settings)


@pytest.fixture()
def controller(db, store, attachment_manager):
    return ReportLifecycleController(db, store, attachment_manager, locks=KeyedLocks())


@pytest.fixture()
def app(test_settings, session_factory):
    app = create_app(test_settings)

    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: test_settings
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
