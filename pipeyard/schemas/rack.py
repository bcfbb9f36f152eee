"""
Rack Schemas
Pydantic models for racks, yard areas and manual occupancy adjustments
"""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Optional
from decimal import Decimal
from datetime import datetime


class RackResponse(BaseModel):
    """Rack with current occupancy"""
    id: str
    area_id: str
    name: str
    capacity: int
    capacity_length: Decimal
    occupied: int
    occupied_length: Decimal
    available: int
    available_length: Decimal
    allocation_mode: str

    model_config = ConfigDict(from_attributes=True)


class AreaSummary(BaseModel):
    """Yard area listing entry"""
    id: str
    yard_id: str
    yard_name: Optional[str] = None
    name: str
    allocation_mode: str

    model_config = ConfigDict(from_attributes=True)


class AreaUtilisation(BaseModel):
    """Read-only occupancy totals for one yard area"""
    area_id: str
    rack_count: int
    total_capacity: int
    total_occupied: int
    total_capacity_length: Decimal
    total_occupied_length: Decimal
    utilisation_percent: Decimal
    racks: List[RackResponse] = []


class RackAdjustmentRequest(BaseModel):
    """Manual occupancy correction"""
    new_occupied_units: int = Field(..., description="Corrected joint count")
    new_occupied_length: Decimal = Field(..., description="Corrected length in metres")
    justification: str = Field(..., description="Why the correction is needed")

    @field_validator("justification")
    @classmethod
    def strip_justification(cls, v: str) -> str:
        return v.strip()


class RackAdjustmentSummary(BaseModel):
    """Result of a manual adjustment"""
    rack_id: str
    adjustment_id: int
    old_occupied: int
    new_occupied: int
    old_occupied_length: Decimal
    new_occupied_length: Decimal
    adjusted_by: str
    adjusted_at: datetime


class RackAdjustmentResponse(BaseModel):
    """Stored adjustment audit entry"""
    id: int
    rack_id: str
    adjusted_by: str
    adjusted_at: datetime
    reason: str
    operation_type: str
    old_joints_occupied: int
    new_joints_occupied: int
    old_length_occupied: Decimal
    new_length_occupied: Decimal

    model_config = ConfigDict(from_attributes=True)
