"""Range-filtered retrieval of operational records.

Each public call checks out its own session from the pool and gives it back
through ``async with`` on every exit path (success, driver error, timeout,
cancellation), so the fuel and machinery fetches of one report can run side
by side without sharing a connection.
"""

import asyncio
import logging
import time
from datetime import date, datetime, time as dt_time, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from fleetcompliance.core.config import Settings, settings as default_settings
from fleetcompliance.core.errors import StorageTimeoutError, StorageUnavailableError
from fleetcompliance.core.logging import db_logger, log_storage_query
from fleetcompliance.models.operational import FuelConsumptionEvent, MachineryRunningEvent
from fleetcompliance.models.vessel import Vessel


def period_bounds(from_date: date, to_date: date) -> Tuple[datetime, datetime]:
    """Half-open ``[from 00:00, to+1 00:00)`` window; time-of-day is irrelevant."""
    start = datetime.combine(from_date, dt_time.min)
    end = datetime.combine(to_date + timedelta(days=1), dt_time.min)
    return start, end


class OperationalDataStore:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: Settings = default_settings,
        logger: Optional[logging.Logger] = None,
    ):
        self.session_factory = session_factory
        self.timeout = config.STORAGE_QUERY_TIMEOUT_SECONDS
        self.logger = logger or db_logger

    async def fetch_fuel_consumption(self, vessel_id: str, from_date: date, to_date: date) -> List[Dict[str, Any]]:
        start, end = period_bounds(from_date, to_date)
        stmt = (
            select(FuelConsumptionEvent.fuel_type_key, func.sum(FuelConsumptionEvent.consumed_mt))
            .where(
                FuelConsumptionEvent.vessel_id == vessel_id,
                FuelConsumptionEvent.entry_date >= start,
                FuelConsumptionEvent.entry_date < end,
            )
            .group_by(FuelConsumptionEvent.fuel_type_key)
        )
        return await self._fetch_grouped("fuel_consumption", vessel_id, from_date, to_date, stmt)

    async def fetch_machinery_running_hours(self, vessel_id: str, from_date: date, to_date: date) -> List[Dict[str, Any]]:
        start, end = period_bounds(from_date, to_date)
        stmt = (
            select(MachineryRunningEvent.machinery_name, func.sum(MachineryRunningEvent.running_hours))
            .where(
                MachineryRunningEvent.vessel_id == vessel_id,
                MachineryRunningEvent.entry_date >= start,
                MachineryRunningEvent.entry_date < end,
            )
            .group_by(MachineryRunningEvent.machinery_name)
        )
        return await self._fetch_grouped("machinery_running_hours", vessel_id, from_date, to_date, stmt)

    async def vessel_exists(self, vessel_id: str) -> bool:
        stmt = select(Vessel.id).where(Vessel.id == vessel_id)
        rows = await self._run("vessel_exists", vessel_id, "-", stmt)
        return bool(rows)

    async def _fetch_grouped(self, query_name, vessel_id, from_date, to_date, stmt) -> List[Dict[str, Any]]:
        period = f"{from_date.isoformat()}..{to_date.isoformat()}"
        rows = await self._run(query_name, vessel_id, period, stmt)
        return [{"key": key, "value": value} for key, value in rows]

    async def _execute(self, stmt) -> List[Any]:
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.all()

    async def _run(self, query_name: str, vessel_id: str, period: str, stmt) -> List[Any]:
        start_time = time.perf_counter()
        try:
            rows = await asyncio.wait_for(self._execute(stmt), timeout=self.timeout)
        except asyncio.TimeoutError:
            log_storage_query(
                query_name, vessel_id, period, 0, time.perf_counter() - start_time,
                error=f"timed out after {self.timeout}s", logger=self.logger,
            )
            raise StorageTimeoutError(
                f"Operational store did not answer {query_name} within {self.timeout} seconds"
            ) from None
        except SQLAlchemyError as e:
            log_storage_query(
                query_name, vessel_id, period, 0, time.perf_counter() - start_time,
                error=str(e), logger=self.logger,
            )
            raise StorageUnavailableError(f"Operational store query {query_name} failed") from e

        log_storage_query(query_name, vessel_id, period, len(rows), time.perf_counter() - start_time, logger=self.logger)
        return rows
