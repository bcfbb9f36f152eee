"""
Pipe Yard SQLAlchemy Models
"""

# Import all models to ensure they are registered with SQLAlchemy
from .auth import Company, User
from .yard import YardArea, Rack, AllocationMode
from .storage_request import StorageRequest, RequestStatus
from .trucking import (
    TruckingLoad, TruckingDocument, ManifestLine,
    LoadDirection, LoadStatus, DocumentType
)
from .inventory import InventoryItem, InventoryStatus
from .audit import RackOccupancyAdjustment, AdminAuditLog, AdjustmentType
from .notification import NotificationQueue

__all__ = [
    "Company",
    "User",
    "YardArea",
    "Rack",
    "AllocationMode",
    "StorageRequest",
    "RequestStatus",
    "TruckingLoad",
    "TruckingDocument",
    "ManifestLine",
    "LoadDirection",
    "LoadStatus",
    "DocumentType",
    "InventoryItem",
    "InventoryStatus",
    "RackOccupancyAdjustment",
    "AdminAuditLog",
    "AdjustmentType",
    "NotificationQueue",
]
