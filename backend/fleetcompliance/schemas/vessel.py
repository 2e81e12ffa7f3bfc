from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
from typing import Optional
from datetime import datetime


class VesselType(str, Enum):
    tanker = "Tanker"
    bulker = "Bulker"
    container = "Container"
    lng = "LNG"
    lpg = "LPG"
    ro_ro = "Ro-Ro"
    general_cargo = "General Cargo"


# ───────────────────────────────
# Output schema (registry data is read-only here)
# ───────────────────────────────
class VesselOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., examples=["V1"])
    name: str = Field(..., examples=["MV Ocean Spirit"])
    imo_number: Optional[str] = Field(None, examples=["9876543"])
    vessel_type: VesselType
    gross_tonnage: Optional[float] = None
    deadweight: Optional[float] = None
    main_engine_power_kw: Optional[float] = None
    is_active: Optional[bool] = True
    created_at: Optional[datetime] = None
