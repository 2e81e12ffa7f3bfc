from fleetcompliance.models.vessel import Vessel, VesselType
from fleetcompliance.models.operational import FuelConsumptionEvent, MachineryRunningEvent
from fleetcompliance.models.report import PeriodReport, ReportAttachment, ReportStatus

__all__ = [
    "Vessel",
    "VesselType",
    "FuelConsumptionEvent",
    "MachineryRunningEvent",
    "PeriodReport",
    "ReportAttachment",
    "ReportStatus",
]
