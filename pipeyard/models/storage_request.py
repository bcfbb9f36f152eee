"""
Storage Request Model
A customer's request to store pipe in the yard
"""
from enum import Enum

from sqlalchemy import (
    Column, String, Integer, Numeric, Date, Text, JSON, ForeignKey, CheckConstraint, TIMESTAMP
)
from sqlalchemy.orm import relationship

from pipeyard.core.database import Base
from pipeyard.models.auth import utcnow


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class StorageRequest(Base):
    """Storage Request - PENDING -> APPROVED/REJECTED, APPROVED -> COMPLETED"""
    __tablename__ = "storage_requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', 'COMPLETED')", name="status_valid"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False, index=True)
    reference_id = Column(String(30), unique=True, nullable=False, index=True, doc="Human reference code")
    status = Column(String(20), nullable=False, default=RequestStatus.PENDING.value, index=True)
    requester_email = Column(String(100), doc="Submitting user's email")

    # Pipe specification
    item_type = Column(String(50), default="Drill Pipe")
    grade = Column(String(30))
    outer_diameter = Column(Numeric(8, 3), doc="Outer diameter (in)")
    weight_per_ft = Column(Numeric(8, 2), doc="Nominal weight (lbs/ft)")
    connection = Column(String(50))
    total_joints = Column(Integer, doc="Joints the customer expects to store")
    avg_joint_length_ft = Column(Numeric(8, 2))

    # Requested storage window
    storage_start_date = Column(Date)
    storage_end_date = Column(Date)

    # Assignment and approval
    assigned_rack_ids = Column(JSON, default=list)
    approved_by = Column(String(100))
    approved_at = Column(TIMESTAMP(timezone=True))
    admin_notes = Column(Text)
    rejection_reason = Column(Text)
    rejected_by = Column(String(100))
    rejected_at = Column(TIMESTAMP(timezone=True))
    completed_at = Column(TIMESTAMP(timezone=True))
    archived_at = Column(TIMESTAMP(timezone=True))

    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="storage_requests")
    loads = relationship("TruckingLoad", back_populates="storage_request",
                         order_by="TruckingLoad.sequence_number")
    inventory_items = relationship("InventoryItem", back_populates="request")

    @property
    def is_terminal(self) -> bool:
        return self.status in (RequestStatus.REJECTED.value, RequestStatus.COMPLETED.value)
