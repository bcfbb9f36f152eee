"""
Pipe Yard Business Services
Allocation, workflow, reconciliation and audit services
"""

from .rack_ledger import RackLedgerService
from .allocation_guard import AllocationGuard, Accepted, Rejected
from .manifest_reconciliation import ManifestIngestionService
from .rack_adjustment import RackAdjustmentService
from .notification_service import NotificationService, NotificationDispatcher
from .request_workflow import RequestWorkflowService
from .load_workflow import LoadWorkflowService
from .auth_service import AuthService
