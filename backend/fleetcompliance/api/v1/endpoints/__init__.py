from fastapi import APIRouter
from fleetcompliance.api.v1.endpoints import health, reports, vessels

router = APIRouter()

router.include_router(health.router, tags=["Health"])
router.include_router(reports.router, prefix="/reports", tags=["Reports"])
router.include_router(vessels.router, prefix="/vessels", tags=["Vessels"])
