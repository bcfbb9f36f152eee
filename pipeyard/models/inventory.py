"""
Inventory Model
Pipe groups held in the yard; append-only history, never deleted
"""
from enum import Enum

from sqlalchemy import (
    Column, String, Integer, Numeric, ForeignKey, CheckConstraint, TIMESTAMP
)
from sqlalchemy.orm import relationship

from pipeyard.core.database import Base
from pipeyard.models.auth import utcnow


class InventoryStatus(str, Enum):
    PENDING_DELIVERY = "PENDING_DELIVERY"
    IN_STORAGE = "IN_STORAGE"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"


class InventoryItem(Base):
    """Inventory Item - one manifest line's worth of pipe on one rack"""
    __tablename__ = "inventory"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="quantity_positive"),
        CheckConstraint("total_length_m >= 0", name="total_length_non_negative"),
        CheckConstraint(
            "status IN ('PENDING_DELIVERY', 'IN_STORAGE', 'PICKED_UP', 'IN_TRANSIT')",
            name="status_valid"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False, index=True)
    request_id = Column(Integer, ForeignKey("storage_requests.id", ondelete="RESTRICT"),
                        nullable=False, index=True)
    reference_id = Column(String(50), doc="Serial or heat number from the manifest")

    # Physical attributes
    item_type = Column(String(50), default="Drill Pipe")
    grade = Column(String(30))
    outer_diameter = Column(Numeric(8, 3), doc="Outer diameter (in)")
    weight = Column(Numeric(8, 2), doc="Unit weight (lbs/ft)")
    length_ft = Column(Numeric(8, 2), doc="Length per joint (ft)")
    total_length_m = Column(Numeric(12, 2), nullable=False, default=0,
                            doc="Metres charged to the rack for this item")
    quantity = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default=InventoryStatus.IN_STORAGE.value, index=True)
    rack_id = Column(String(30), ForeignKey("racks.id", ondelete="RESTRICT"), index=True)
    delivery_load_id = Column(Integer, ForeignKey("trucking_loads.id"), index=True)
    pickup_load_id = Column(Integer, ForeignKey("trucking_loads.id"), index=True)

    drop_off_at = Column(TIMESTAMP(timezone=True))
    picked_up_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    request = relationship("StorageRequest", back_populates="inventory_items")
    rack = relationship("Rack")
