from sqlalchemy import Column, String, Float, DateTime, Boolean, Enum, func
from fleetcompliance.core.database import Base
import enum


class VesselType(str, enum.Enum):
    tanker = "Tanker"
    bulker = "Bulker"
    container = "Container"
    lng = "LNG"
    lpg = "LPG"
    ro_ro = "Ro-Ro"
    general_cargo = "General Cargo"


class Vessel(Base):
    """Vessel registry row. Owned by the registry service; read-only here."""

    __tablename__ = "vessels"

    id = Column(String(64), primary_key=True)  # ship id
    name = Column(String(100), nullable=False)
    imo_number = Column(String(20), unique=True, nullable=True)

    vessel_type = Column(Enum(VesselType), nullable=False, default=VesselType.bulker)
    gross_tonnage = Column(Float, nullable=True)
    deadweight = Column(Float, nullable=True)
    main_engine_power_kw = Column(Float, nullable=True)

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Vessel id={self.id} name={self.name} imo={self.imo_number}>"
