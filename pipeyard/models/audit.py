"""
Audit Trail Models
Rack adjustment history and admin action log
"""
from enum import Enum

from sqlalchemy import (
    Column, String, Integer, Numeric, Text, JSON, ForeignKey, CheckConstraint, TIMESTAMP, Index
)
from sqlalchemy.orm import relationship

from pipeyard.core.database import Base
from pipeyard.models.auth import utcnow


class AdjustmentType(str, Enum):
    MANUAL_CORRECTION = "MANUAL_CORRECTION"
    SYSTEM = "SYSTEM"


class RackOccupancyAdjustment(Base):
    """Append-only record of a direct change to a rack's occupancy"""
    __tablename__ = "rack_occupancy_adjustments"
    __table_args__ = (
        CheckConstraint("length(reason) >= 10", name="reason_min_length"),
        CheckConstraint("new_joints_occupied >= 0 AND new_length_occupied >= 0", name="new_values_non_negative"),
        CheckConstraint(
            "operation_type IN ('MANUAL_CORRECTION', 'SYSTEM')", name="operation_type_valid"
        ),
        Index("ix_rack_occupancy_adjustments_rack_time", "rack_id", "adjusted_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    rack_id = Column(String(30), ForeignKey("racks.id", ondelete="RESTRICT"), nullable=False)
    adjusted_by = Column(String(100), nullable=False, index=True, doc="Actor who made the change")
    adjusted_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    reason = Column(Text, nullable=False)
    operation_type = Column(String(20), nullable=False, default=AdjustmentType.MANUAL_CORRECTION.value)

    old_joints_occupied = Column(Integer, nullable=False)
    new_joints_occupied = Column(Integer, nullable=False)
    old_length_occupied = Column(Numeric(12, 2), nullable=False)
    new_length_occupied = Column(Numeric(12, 2), nullable=False)

    rack = relationship("Rack", back_populates="adjustments")


class AdminAuditLog(Base):
    """Audit trail for admin workflow actions"""
    __tablename__ = "admin_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow, index=True)
    actor = Column(String(100), nullable=False, index=True)
    action = Column(String(40), nullable=False, index=True)  # APPROVE_REQUEST, COMPLETE_INBOUND_LOAD, ...
    entity_type = Column(String(40), index=True)
    entity_id = Column(String(100))
    details = Column(JSON)
    ip_address = Column(String(45))
