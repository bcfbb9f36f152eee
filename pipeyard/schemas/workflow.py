"""
Workflow Schemas
Storage requests, trucking loads and load completion payloads
"""
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import List, Literal, Optional
from decimal import Decimal
from datetime import date, datetime


# Storage Requests

class StorageRequestCreate(BaseModel):
    """Customer storage request submission"""
    item_type: str = Field("Drill Pipe", max_length=50)
    grade: Optional[str] = Field(None, max_length=30)
    outer_diameter: Optional[Decimal] = Field(None, gt=0, description="Outer diameter (in)")
    weight_per_ft: Optional[Decimal] = Field(None, gt=0, description="Nominal weight (lbs/ft)")
    connection: Optional[str] = Field(None, max_length=50)
    total_joints: int = Field(..., ge=1)
    avg_joint_length_ft: Optional[Decimal] = Field(None, gt=0)
    storage_start_date: Optional[date] = None
    storage_end_date: Optional[date] = None

    @model_validator(mode="after")
    def check_date_range(self):
        if (self.storage_start_date and self.storage_end_date
                and self.storage_end_date < self.storage_start_date):
            raise ValueError("storage_end_date must not be before storage_start_date")
        return self


class StorageRequestResponse(BaseModel):
    id: int
    company_id: int
    reference_id: str
    status: str
    requester_email: Optional[str] = None
    item_type: Optional[str] = None
    grade: Optional[str] = None
    outer_diameter: Optional[Decimal] = None
    weight_per_ft: Optional[Decimal] = None
    connection: Optional[str] = None
    total_joints: Optional[int] = None
    avg_joint_length_ft: Optional[Decimal] = None
    storage_start_date: Optional[date] = None
    storage_end_date: Optional[date] = None
    assigned_rack_ids: List[str] = []
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ApproveRequestIn(BaseModel):
    rack_ids: List[str] = Field(..., min_length=1)
    required_joints: Optional[int] = Field(None, ge=0, description="Defaults to the request's total joints")
    notes: Optional[str] = None


class RejectRequestIn(BaseModel):
    reason: str = Field(..., min_length=1)


class WorkflowStateResponse(BaseModel):
    """Customer-facing lifecycle state derived from the request's loads and inventory"""
    request_id: int
    reference_id: str
    state: str
    label: str
    badge_tone: str
    next_action: Optional[str] = None


# Trucking Loads

class LoadBookingCreate(BaseModel):
    """Delivery or pickup slot booking"""
    direction: Literal["INBOUND", "OUTBOUND"]
    scheduled_slot_start: Optional[datetime] = None
    scheduled_slot_end: Optional[datetime] = None
    trucking_company: Optional[str] = Field(None, max_length=100)
    driver_name: Optional[str] = Field(None, max_length=100)
    driver_phone: Optional[str] = Field(None, max_length=30)
    total_joints_planned: Optional[int] = Field(None, ge=0)
    total_length_ft_planned: Optional[Decimal] = Field(None, ge=0)
    total_weight_lbs_planned: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_slot(self):
        if (self.scheduled_slot_start and self.scheduled_slot_end
                and self.scheduled_slot_end <= self.scheduled_slot_start):
            raise ValueError("scheduled_slot_end must be after scheduled_slot_start")
        return self


class LoadResponse(BaseModel):
    id: int
    storage_request_id: int
    direction: str
    sequence_number: int
    status: str
    scheduled_slot_start: Optional[datetime] = None
    scheduled_slot_end: Optional[datetime] = None
    trucking_company: Optional[str] = None
    driver_name: Optional[str] = None
    total_joints_planned: Optional[int] = None
    total_length_ft_planned: Optional[Decimal] = None
    total_weight_lbs_planned: Optional[Decimal] = None
    total_joints_completed: Optional[int] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    approved_at: Optional[datetime] = None
    in_transit_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CancelLoadIn(BaseModel):
    reason: str = Field(..., min_length=1)


class ManifestCorrectionIn(BaseModel):
    """Manifest problems the customer has to fix before the load is received"""
    issues: List[str] = Field(..., min_length=1)


# Load completion

class InboundCompletionIn(BaseModel):
    """Admin confirmation that an inbound truck has been unloaded"""
    company_id: int
    request_id: int
    rack_id: str
    actual_units_received: int = Field(..., ge=0)
    notes: Optional[str] = None


class OutboundCompletionIn(BaseModel):
    """Admin confirmation that pipe has been loaded onto an outbound truck"""
    company_id: int
    request_id: int
    inventory_item_ids: List[int]
    actual_units_loaded: int = Field(..., ge=0)
    notes: Optional[str] = None
    final_status: Literal["IN_TRANSIT", "COMPLETED"] = "IN_TRANSIT"


class InboundCompletionSummary(BaseModel):
    load_id: int
    rack_id: str
    inventory_items_created: int
    rack_new_occupancy: int
    rack_new_occupied_length: Decimal
    completed_at: datetime
    request_status: str


class OutboundCompletionSummary(BaseModel):
    load_id: int
    inventory_items_updated: int
    total_joints_picked_up: int
    total_length_m: Decimal
    racks_updated: List[str]
    picked_up_at: datetime
    load_status: str
    request_status: str
