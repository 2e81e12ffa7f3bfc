from sqlalchemy import Column, Index, Integer, Numeric, String, DateTime, ForeignKey
from fleetcompliance.core.database import Base


class FuelConsumptionEvent(Base):
    """Fuel burned on one daily report. Written by data entry, immutable."""

    __tablename__ = "fuel_consumption_events"
    __table_args__ = (
        Index("ix_fuel_consumption_vessel_date", "vessel_id", "entry_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    vessel_id = Column(String(64), ForeignKey("vessels.id"), nullable=False)

    fuel_type_key = Column(String(50), nullable=False)  # e.g. "HFO", "MDO", "LNG"
    consumed_mt = Column(Numeric(14, 4), nullable=False)

    # Local date-time of the daily report the entry belongs to
    entry_date = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<FuelConsumptionEvent vessel={self.vessel_id} {self.fuel_type_key}={self.consumed_mt} MT>"


class MachineryRunningEvent(Base):
    """Running hours of one machinery item on one daily report."""

    __tablename__ = "machinery_running_events"
    __table_args__ = (
        Index("ix_machinery_running_vessel_date", "vessel_id", "entry_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    vessel_id = Column(String(64), ForeignKey("vessels.id"), nullable=False)

    machinery_name = Column(String(100), nullable=False)
    running_hours = Column(Numeric(10, 2), nullable=False)

    entry_date = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<MachineryRunningEvent vessel={self.vessel_id} {self.machinery_name}={self.running_hours}h>"
