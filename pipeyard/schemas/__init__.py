"""
Pipe Yard Pydantic Schemas
Request/Response models for the yard API
"""

from .common import ErrorResponse, SuccessResponse, HealthResponse
from .auth import Token, UserResponse
from .rack import (
    RackResponse, AreaSummary, AreaUtilisation,
    RackAdjustmentRequest, RackAdjustmentSummary, RackAdjustmentResponse
)
from .manifest import (
    ManifestLineIn, ManifestPayload, ManifestLineResponse, ManifestDocumentResponse
)
from .workflow import (
    StorageRequestCreate, StorageRequestResponse, ApproveRequestIn, RejectRequestIn,
    WorkflowStateResponse, LoadBookingCreate, LoadResponse, CancelLoadIn,
    InboundCompletionIn, OutboundCompletionIn,
    InboundCompletionSummary, OutboundCompletionSummary
)
