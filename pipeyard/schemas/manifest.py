"""
Manifest Schemas
Structured manifest records validated where the manifest enters the system
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Literal, Optional
from decimal import Decimal
from datetime import datetime


class ManifestLineIn(BaseModel):
    """One itemised manifest line as extracted from the document"""
    quantity: int = Field(..., ge=1, description="Joints on this line")
    serial_number: Optional[str] = Field(None, max_length=50)
    heat_number: Optional[str] = Field(None, max_length=50)
    item_type: Optional[str] = Field(None, max_length=50)
    grade: Optional[str] = Field(None, max_length=30)
    outer_diameter_in: Optional[Decimal] = Field(None, gt=0)
    weight_lbs_ft: Optional[Decimal] = Field(None, gt=0)
    tally_length_ft: Optional[Decimal] = Field(None, gt=0, description="Length per joint (ft)")

    model_config = ConfigDict(extra="forbid")


class ManifestPayload(BaseModel):
    """
    Manifest or tally sheet for one load

    ``declared_total_joints`` is the total printed on the document; when
    given it must agree with the sum of the line quantities.
    """
    document_type: Literal["MANIFEST", "TALLY_SHEET"] = "MANIFEST"
    file_name: Optional[str] = Field(None, max_length=255)
    declared_total_joints: Optional[int] = Field(None, ge=0)
    lines: List[ManifestLineIn] = Field(..., min_length=1)

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "document_type": "MANIFEST",
                "file_name": "load-1-manifest.pdf",
                "declared_total_joints": 60,
                "lines": [
                    {"quantity": 40, "heat_number": "H-1182", "grade": "L80",
                     "outer_diameter_in": "5.5", "weight_lbs_ft": "17", "tally_length_ft": "31.2"},
                    {"quantity": 20, "heat_number": "H-1183", "grade": "L80"}
                ]
            }
        }
    )

    @property
    def line_total(self) -> int:
        return sum(line.quantity for line in self.lines)


class ManifestLineResponse(BaseModel):
    line_number: int
    quantity: int
    serial_number: Optional[str] = None
    heat_number: Optional[str] = None
    item_type: Optional[str] = None
    grade: Optional[str] = None
    outer_diameter_in: Optional[Decimal] = None
    weight_lbs_ft: Optional[Decimal] = None
    tally_length_ft: Optional[Decimal] = None

    model_config = ConfigDict(from_attributes=True)


class ManifestDocumentResponse(BaseModel):
    """Stored manifest document with its lines"""
    id: int
    trucking_load_id: int
    document_type: str
    file_name: Optional[str] = None
    declared_total_joints: Optional[int] = None
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    lines: List[ManifestLineResponse] = []

    model_config = ConfigDict(from_attributes=True)
