"""
Yard Models
SQLAlchemy models for yard areas and storage racks
"""
from enum import Enum

from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, ForeignKey, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pipeyard.core.database import Base


class AllocationMode(str, Enum):
    LINEAR_CAPACITY = "LINEAR_CAPACITY"  # running total of joints
    SLOT = "SLOT"  # binary occupied/free


class YardArea(Base):
    """Yard Area - a row or zone of racks inside a yard"""
    __tablename__ = "yard_areas"

    id = Column(String(20), primary_key=True, doc="Area ID, e.g. B-N")
    yard_id = Column(String(10), nullable=False, index=True, doc="Yard ID, e.g. B")
    yard_name = Column(String(50), doc="Yard display name")
    name = Column(String(50), nullable=False, doc="Area display name")
    allocation_mode = Column(String(20), nullable=False, default=AllocationMode.LINEAR_CAPACITY.value,
                             doc="Default allocation mode for racks in this area")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())

    racks = relationship("Rack", back_populates="area", order_by="Rack.id")


class Rack(Base):
    """
    Rack - a storage location with capacity in joints and in metres

    Occupancy is written only by the allocation guard and by the audited
    manual adjustment; the CHECK constraints refuse any row that breaks the
    capacity invariant whatever path wrote it.
    """
    __tablename__ = "racks"
    __table_args__ = (
        CheckConstraint("capacity >= 0", name="capacity_non_negative"),
        CheckConstraint("capacity_length >= 0", name="capacity_length_non_negative"),
        CheckConstraint("occupied >= 0", name="occupied_non_negative"),
        CheckConstraint("occupied <= capacity", name="occupied_within_capacity"),
        CheckConstraint("occupied_length >= 0", name="occupied_length_non_negative"),
        CheckConstraint("occupied_length <= capacity_length", name="occupied_length_within_capacity"),
        CheckConstraint(
            "allocation_mode IN ('LINEAR_CAPACITY', 'SLOT')", name="allocation_mode_valid"
        ),
    )

    id = Column(String(30), primary_key=True, doc="Rack ID, e.g. A-A1-3")
    area_id = Column(String(20), ForeignKey("yard_areas.id", ondelete="RESTRICT"), nullable=False,
                     index=True, doc="Owning yard area")
    name = Column(String(50), nullable=False, doc="Rack label")

    # Capacity Information
    capacity = Column(Integer, nullable=False, default=200, doc="Capacity in joints")
    capacity_length = Column(Numeric(12, 2), nullable=False, default=2400, doc="Capacity in metres")
    occupied = Column(Integer, nullable=False, default=0, doc="Occupied joints")
    occupied_length = Column(Numeric(12, 2), nullable=False, default=0, doc="Occupied metres")
    allocation_mode = Column(String(20), nullable=False, default=AllocationMode.LINEAR_CAPACITY.value)

    # Physical footprint (slot racks)
    length_meters = Column(Numeric(8, 2), doc="Physical length")
    width_meters = Column(Numeric(8, 2), doc="Physical width")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(),
                        onupdate=func.current_timestamp())

    area = relationship("YardArea", back_populates="racks")
    adjustments = relationship("RackOccupancyAdjustment", back_populates="rack",
                               order_by="RackOccupancyAdjustment.adjusted_at")

    @property
    def available(self) -> int:
        return self.capacity - self.occupied

    @property
    def available_length(self):
        return self.capacity_length - self.occupied_length

    @property
    def is_slot(self) -> bool:
        return self.allocation_mode == AllocationMode.SLOT.value
