"""
Pipe Yard Common Schemas
Shared Pydantic models for common API structures
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class ErrorResponse(BaseModel):
    """
    Standard error response model

    Typed business errors render their structured numbers under ``details``
    """
    error: str = Field(..., description="Error type, e.g. capacity_exceeded")
    message: str = Field(..., description="Human-readable error message")
    details: Dict[str, Any] = Field(default_factory=dict, description="Structured error data")

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": "capacity_exceeded",
                "message": "Requested 5 joints on rack B-N-1 but only 2 available",
                "details": {"requested": 5, "available": 2, "rack_id": "B-N-1"}
            }
        }
    }


class SuccessResponse(BaseModel):
    """Standard success response for operations without a specific payload"""
    success: bool = Field(True, description="Operation success flag")
    message: str = Field(..., description="Success message")
    data: Optional[Dict[str, Any]] = Field(None, description="Additional response data")


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    database: str
    debug: bool
