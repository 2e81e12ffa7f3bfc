from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from fleetcompliance.core.database import get_db
from fleetcompliance.core.errors import NotFoundError
from fleetcompliance.dependencies.services import get_report_controller
from fleetcompliance.models.vessel import Vessel
from fleetcompliance.schemas.report import PeriodSummaryOut
from fleetcompliance.schemas.vessel import VesselOut
from fleetcompliance.services.report_lifecycle import ReportLifecycleController

router = APIRouter()


# ─────────────────────────────────────────────
# 🔍 Get vessel by ID
# ─────────────────────────────────────────────
@router.get("/{vessel_id}", response_model=VesselOut)
async def get_vessel(
    vessel_id: str,
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Vessel).where(Vessel.id == vessel_id))
    vessel = result.scalar_one_or_none()

    if not vessel:
        raise NotFoundError(f"Vessel {vessel_id} not found")
    return vessel


# ─────────────────────────────────────────────
# ⛽ Fuel / machinery totals for a period
# ─────────────────────────────────────────────
@router.get("/{vessel_id}/period-summary", response_model=PeriodSummaryOut)
async def get_period_summary(
    vessel_id: str,
    from_date: date = Query(..., alias="fromDate"),
    to_date: date = Query(..., alias="toDate"),
    controller: ReportLifecycleController = Depends(get_report_controller),
):
    """
    Returns fuel consumption per fuel type and running hours per machinery
    for the period, without creating a report.
    """
    return await controller.period_summary(vessel_id, from_date, to_date)
