"""
Trucking Models
Trucking loads, their documents and manifest lines
"""
from enum import Enum

from sqlalchemy import (
    Column, String, Integer, Numeric, Text, JSON, ForeignKey, CheckConstraint,
    UniqueConstraint, TIMESTAMP
)
from sqlalchemy.orm import relationship

from pipeyard.core.database import Base
from pipeyard.models.auth import utcnow


class LoadDirection(str, Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class LoadStatus(str, Enum):
    NEW = "NEW"
    APPROVED = "APPROVED"
    IN_TRANSIT = "IN_TRANSIT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_LOAD_STATUSES = frozenset({LoadStatus.COMPLETED.value, LoadStatus.CANCELLED.value})

# Allowed load transitions; anything not listed is refused
LOAD_TRANSITIONS = {
    LoadStatus.NEW.value: {LoadStatus.APPROVED.value, LoadStatus.CANCELLED.value},
    LoadStatus.APPROVED.value: {
        LoadStatus.IN_TRANSIT.value, LoadStatus.COMPLETED.value, LoadStatus.CANCELLED.value
    },
    LoadStatus.IN_TRANSIT.value: {LoadStatus.COMPLETED.value, LoadStatus.CANCELLED.value},
    LoadStatus.COMPLETED.value: set(),
    LoadStatus.CANCELLED.value: set(),
}


class DocumentType(str, Enum):
    MANIFEST = "MANIFEST"
    BILL_OF_LADING = "BILL_OF_LADING"
    TALLY_SHEET = "TALLY_SHEET"
    OTHER = "OTHER"


# Document kinds whose lines count towards the declared joint total
MANIFEST_DOCUMENT_TYPES = frozenset({DocumentType.MANIFEST.value, DocumentType.TALLY_SHEET.value})


class TruckingLoad(Base):
    """Trucking Load - one truck movement into or out of the yard"""
    __tablename__ = "trucking_loads"
    __table_args__ = (
        UniqueConstraint("storage_request_id", "direction", "sequence_number",
                         name="uq_trucking_loads_request_direction_sequence"),
        CheckConstraint("direction IN ('INBOUND', 'OUTBOUND')", name="direction_valid"),
        CheckConstraint(
            "status IN ('NEW', 'APPROVED', 'IN_TRANSIT', 'COMPLETED', 'CANCELLED')",
            name="status_valid"
        ),
        CheckConstraint("sequence_number >= 1", name="sequence_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    storage_request_id = Column(Integer, ForeignKey("storage_requests.id", ondelete="RESTRICT"),
                                nullable=False, index=True)
    direction = Column(String(10), nullable=False)
    sequence_number = Column(Integer, nullable=False, doc="Dense per request and direction")
    status = Column(String(20), nullable=False, default=LoadStatus.NEW.value, index=True)

    # Schedule
    scheduled_slot_start = Column(TIMESTAMP(timezone=True))
    scheduled_slot_end = Column(TIMESTAMP(timezone=True))
    trucking_company = Column(String(100))
    driver_name = Column(String(100))
    driver_phone = Column(String(30))

    # Planned vs actual
    total_joints_planned = Column(Integer)
    total_length_ft_planned = Column(Numeric(12, 2))
    total_weight_lbs_planned = Column(Numeric(14, 2))
    total_joints_completed = Column(Integer)

    assigned_rack_ids = Column(JSON, default=list)
    notes = Column(Text)
    cancellation_reason = Column(Text)

    approved_at = Column(TIMESTAMP(timezone=True))
    in_transit_at = Column(TIMESTAMP(timezone=True))
    completed_at = Column(TIMESTAMP(timezone=True))
    cancelled_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    storage_request = relationship("StorageRequest", back_populates="loads")
    documents = relationship("TruckingDocument", back_populates="trucking_load",
                             order_by="TruckingDocument.id")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_LOAD_STATUSES

    @property
    def avg_joint_length_ft(self):
        """Planned average joint length, None when the plan is incomplete"""
        if self.total_joints_planned and self.total_length_ft_planned:
            return self.total_length_ft_planned / self.total_joints_planned
        return None


class TruckingDocument(Base):
    """Document attached to a load; manifests carry structured lines"""
    __tablename__ = "trucking_documents"
    __table_args__ = (
        CheckConstraint(
            "document_type IN ('MANIFEST', 'BILL_OF_LADING', 'TALLY_SHEET', 'OTHER')",
            name="document_type_valid"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    trucking_load_id = Column(Integer, ForeignKey("trucking_loads.id", ondelete="CASCADE"),
                              nullable=False, index=True)
    document_type = Column(String(20), nullable=False, default=DocumentType.MANIFEST.value)
    file_name = Column(String(255))
    declared_total_joints = Column(Integer, doc="Total joints printed on the document")
    uploaded_by = Column(String(100))
    uploaded_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    trucking_load = relationship("TruckingLoad", back_populates="documents")
    lines = relationship("ManifestLine", back_populates="document",
                         order_by="ManifestLine.line_number", cascade="all, delete-orphan")


class ManifestLine(Base):
    """One itemised line of a manifest"""
    __tablename__ = "manifest_lines"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="quantity_positive"),
        UniqueConstraint("document_id", "line_number", name="uq_manifest_lines_document_line"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("trucking_documents.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    line_number = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    serial_number = Column(String(50))
    heat_number = Column(String(50))
    item_type = Column(String(50))
    grade = Column(String(30))
    outer_diameter_in = Column(Numeric(8, 3))
    weight_lbs_ft = Column(Numeric(8, 2))
    tally_length_ft = Column(Numeric(8, 2), doc="Length per joint; NULL when not printed")

    document = relationship("TruckingDocument", back_populates="lines")
