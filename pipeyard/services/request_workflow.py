"""
Storage Request Workflow
Request lifecycle: PENDING -> APPROVED/REJECTED, APPROVED -> COMPLETED
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pipeyard.core.config import settings
from pipeyard.core.database import unit_of_work
from pipeyard.core.exceptions import (
    CapacityExceededError, CrossTenantViolationError, InvalidStateTransitionError, NotFoundError,
    ValidationError
)
from pipeyard.core.logging import get_logger
from pipeyard.core.security import log_admin_action
from pipeyard.models.auth import Company
from pipeyard.models.inventory import InventoryItem, InventoryStatus
from pipeyard.models.storage_request import RequestStatus, StorageRequest
from pipeyard.models.trucking import LoadDirection, LoadStatus, TruckingLoad
from pipeyard.models.yard import Rack
from pipeyard.schemas.workflow import StorageRequestCreate, WorkflowStateResponse
from pipeyard.services import notification_service as notify
from pipeyard.services.notification_service import NotificationService

logger = get_logger("business.requests")
security_logger = get_logger("security")

ACTIVE_INVENTORY_STATUSES = (InventoryStatus.IN_STORAGE.value, InventoryStatus.PENDING_DELIVERY.value)
WAITING_LOAD_STATUSES = (LoadStatus.NEW.value, LoadStatus.APPROVED.value, LoadStatus.IN_TRANSIT.value)
REFERENCE_ATTEMPTS = 5


def tenant_violation(message: str, **details) -> CrossTenantViolationError:
    """Build a cross-tenant error and record it on the security log"""
    security_logger.warning(f"Cross-tenant violation: {message} {details}")
    return CrossTenantViolationError(message, **details)


def ensure_request_owner(request: StorageRequest, company_id: int):
    if request.company_id != company_id:
        raise tenant_violation(
            f"Storage request {request.id} does not belong to company {company_id}",
            request_id=request.id,
            company_id=company_id,
        )


class RequestWorkflowService:
    """Storage request submission, approval, rejection, archival and completion"""

    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)

    def get_request(self, request_id: int, company_id: Optional[int] = None) -> StorageRequest:
        """Fetch a request; when ``company_id`` is given it must own the request"""
        request = self.db.query(StorageRequest).filter(StorageRequest.id == request_id).first()
        if request is None:
            raise NotFoundError("Storage request", request_id)
        if company_id is not None:
            ensure_request_owner(request, company_id)
        return request

    def list_requests(self, company_id: Optional[int] = None,
                      include_archived: bool = False) -> List[StorageRequest]:
        query = self.db.query(StorageRequest)
        if company_id is not None:
            query = query.filter(StorageRequest.company_id == company_id)
        if not include_archived:
            query = query.filter(StorageRequest.archived_at.is_(None))
        return query.order_by(StorageRequest.id.desc()).all()

    def submit_request(self, company_id: int, requester_email: Optional[str],
                       data: Union[StorageRequestCreate, Dict]) -> StorageRequest:
        if isinstance(data, dict):
            data = StorageRequestCreate.model_validate(data)

        # Two concurrent submissions can draw the same daily number
        for attempt in range(1, REFERENCE_ATTEMPTS + 1):
            try:
                return self._insert_request(company_id, requester_email, data)
            except IntegrityError:
                if attempt == REFERENCE_ATTEMPTS:
                    raise
                logger.info(f"Reference number taken for company {company_id}; retrying (attempt {attempt})")

    def _insert_request(self, company_id: int, requester_email: Optional[str],
                        data: StorageRequestCreate) -> StorageRequest:
        with unit_of_work(self.db):
            company = self.db.query(Company).filter(Company.id == company_id).first()
            if company is None:
                raise NotFoundError("Company", company_id)

            request = StorageRequest(
                company_id=company_id,
                reference_id=self._next_reference_id(),
                status=RequestStatus.PENDING.value,
                requester_email=requester_email,
                assigned_rack_ids=[],
                **data.model_dump(),
            )
            self.db.add(request)
            self.db.flush()

            self.notifications.enqueue(notify.REQUEST_SUBMITTED, {
                "request_id": request.id,
                "reference_id": request.reference_id,
                "company": company.name,
                "requester_email": requester_email,
                "total_joints": request.total_joints,
            })

        logger.info(f"Storage request {request.reference_id} submitted by company {company_id}")
        return request

    def _next_reference_id(self) -> str:
        """PY-YYYYMMDD-NNNN, one past the highest number issued today"""
        prefix = f"{settings.REFERENCE_PREFIX}-{datetime.now(timezone.utc):%Y%m%d}-"
        last = (
            self.db.query(func.max(StorageRequest.reference_id))
            .filter(StorageRequest.reference_id.like(f"{prefix}%"))
            .scalar()
        )
        number = int(last[len(prefix):]) if last else 0
        return f"{prefix}{number + 1:04d}"

    def approve_request(self, request_id: int, rack_ids: List[str], actor_id: str,
                        required_joints: Optional[int] = None,
                        notes: Optional[str] = None) -> StorageRequest:
        """
        Approve a PENDING request and assign racks to it

        The assigned racks must have enough free joints between them for the
        request. Occupancy itself is untouched until pipe arrives.
        """
        rack_ids = list(dict.fromkeys(rack_ids or []))

        with unit_of_work(self.db):
            request = self.get_request(request_id)
            if request.status != RequestStatus.PENDING.value:
                raise InvalidStateTransitionError(
                    "Storage request", request_id, request.status, RequestStatus.APPROVED.value
                )
            if not rack_ids:
                raise ValidationError("At least one rack must be assigned to approve a request")

            racks = self.db.query(Rack).filter(Rack.id.in_(rack_ids)).all()
            missing = sorted(set(rack_ids) - {r.id for r in racks})
            if missing:
                raise NotFoundError("Rack", missing, message=f"Racks not found: {', '.join(missing)}")

            required = required_joints if required_joints is not None else (request.total_joints or 0)
            available = sum(r.available for r in racks)
            if available < required:
                raise CapacityExceededError(
                    requested=required,
                    available=available,
                    message=(
                        f"Assigned racks have {available} joints free "
                        f"but the request needs {required}"
                    ),
                )

            request.status = RequestStatus.APPROVED.value
            request.assigned_rack_ids = rack_ids
            request.approved_by = actor_id
            request.approved_at = datetime.now(timezone.utc)
            request.admin_notes = notes

            log_admin_action(
                self.db, actor_id, "APPROVE_REQUEST", "storage_request", request.id,
                {"rack_ids": rack_ids, "required_joints": required, "available_joints": available},
            )
            self.notifications.enqueue(notify.REQUEST_APPROVED, {
                "request_id": request.id,
                "reference_id": request.reference_id,
                "recipient_email": request.requester_email,
                "assigned_racks": ", ".join(rack_ids),
                "approved_by": actor_id,
            })

        logger.info(f"Storage request {request_id} approved by {actor_id} on racks {rack_ids}")
        return request

    def reject_request(self, request_id: int, reason: str, actor_id: str) -> StorageRequest:
        with unit_of_work(self.db):
            request = self.get_request(request_id)
            if request.status != RequestStatus.PENDING.value:
                raise InvalidStateTransitionError(
                    "Storage request", request_id, request.status, RequestStatus.REJECTED.value
                )

            request.status = RequestStatus.REJECTED.value
            request.rejection_reason = reason
            request.rejected_by = actor_id
            request.rejected_at = datetime.now(timezone.utc)

            log_admin_action(
                self.db, actor_id, "REJECT_REQUEST", "storage_request", request.id, {"reason": reason}
            )
            self.notifications.enqueue(notify.REQUEST_REJECTED, {
                "request_id": request.id,
                "reference_id": request.reference_id,
                "recipient_email": request.requester_email,
                "reason": reason,
            })

        logger.info(f"Storage request {request_id} rejected by {actor_id}")
        return request

    def archive_request(self, request_id: int, company_id: int) -> StorageRequest:
        """Soft-archive; allowed in any state, repeat calls keep the first timestamp"""
        with unit_of_work(self.db):
            request = self.get_request(request_id, company_id=company_id)
            if request.archived_at is None:
                request.archived_at = datetime.now(timezone.utc)
        return request

    def refresh_request_completion(self, request: StorageRequest) -> bool:
        """
        Move an APPROVED request to COMPLETED once its work is done

        Runs inside the caller's unit of work. Done means: at least one load,
        every load terminal, at least one inbound load completed, and none of
        the request's pipe still in the yard or due to arrive.
        """
        if request.status != RequestStatus.APPROVED.value:
            return False

        self.db.flush()
        loads = self.db.query(TruckingLoad).filter(TruckingLoad.storage_request_id == request.id).all()
        if not loads or not all(load.is_terminal for load in loads):
            return False
        if not any(load.direction == LoadDirection.INBOUND.value and load.status == LoadStatus.COMPLETED.value
                   for load in loads):
            return False

        remaining = (
            self.db.query(func.count(InventoryItem.id))
            .filter(
                InventoryItem.request_id == request.id,
                InventoryItem.status.in_(ACTIVE_INVENTORY_STATUSES),
            )
            .scalar()
        )
        if remaining:
            return False

        request.status = RequestStatus.COMPLETED.value
        request.completed_at = datetime.now(timezone.utc)
        self.notifications.enqueue(notify.REQUEST_COMPLETED, {
            "request_id": request.id,
            "reference_id": request.reference_id,
            "recipient_email": request.requester_email,
        })
        logger.info(f"Storage request {request.id} completed")
        return True

    def compute_workflow_state(self, request_id: int, company_id: Optional[int] = None) -> WorkflowStateResponse:
        """Customer-facing state derived from the request, its loads and its inventory"""
        request = self.get_request(request_id, company_id=company_id)
        loads = (
            self.db.query(TruckingLoad)
            .filter(TruckingLoad.storage_request_id == request.id)
            .order_by(TruckingLoad.sequence_number)
            .all()
        )
        in_storage = (
            self.db.query(func.coalesce(func.sum(InventoryItem.quantity), 0))
            .filter(
                InventoryItem.request_id == request.id,
                InventoryItem.status == InventoryStatus.IN_STORAGE.value,
            )
            .scalar()
        )
        state, label, tone, next_action = derive_workflow_state(request, loads, int(in_storage or 0))
        return WorkflowStateResponse(
            request_id=request.id,
            reference_id=request.reference_id,
            state=state,
            label=label,
            badge_tone=tone,
            next_action=next_action,
        )


def _slot_date(load: TruckingLoad) -> str:
    return load.scheduled_slot_start.strftime("%Y-%m-%d") if load.scheduled_slot_start else "TBD"


def derive_workflow_state(request: StorageRequest, loads: List[TruckingLoad], joints_in_storage: int):
    """Returns (state, label, badge tone, next action); pure"""
    if request.status == RequestStatus.PENDING.value:
        return "Pending Approval", "Pending Admin Approval", "pending", "Admin must approve or reject this request"
    if request.status == RequestStatus.REJECTED.value:
        return "Rejected", "Rejected", "danger", None
    if request.status == RequestStatus.COMPLETED.value:
        return "Complete", "All Pipe Returned", "success", None

    inbound = [load for load in loads if load.direction == LoadDirection.INBOUND.value]
    outbound = [load for load in loads if load.direction == LoadDirection.OUTBOUND.value]
    live_inbound = [load for load in inbound if load.status != LoadStatus.CANCELLED.value]

    if not live_inbound:
        number = max((load.sequence_number for load in inbound), default=0) + 1
        return (
            "Waiting on Load #N", f"Waiting on Load #{number}", "info",
            "Customer must schedule first delivery" if number == 1 else "Customer must schedule a delivery",
        )

    waiting_inbound = next((load for load in inbound if load.status in WAITING_LOAD_STATUSES), None)
    if waiting_inbound:
        n = waiting_inbound.sequence_number
        return (
            "Waiting on Load #N", f"Waiting on Load #{n}", "info",
            f"Load #{n} scheduled for {_slot_date(waiting_inbound)}",
        )

    live_outbound = [load for load in outbound if load.status != LoadStatus.CANCELLED.value]
    if not live_outbound:
        if joints_in_storage > 0:
            return "In Storage", "In Storage", "success", "Inventory stored. Awaiting customer pickup request."
        return (
            "All Loads Received", "All Loads Received", "info",
            "Admin must reconcile received inventory",
        )

    waiting_pickup = next(
        (load for load in outbound if load.status in (LoadStatus.NEW.value, LoadStatus.APPROVED.value)), None
    )
    if waiting_pickup:
        n = waiting_pickup.sequence_number
        return (
            "Waiting on Pickup #N", f"Waiting on Load #{n} Pickup", "info",
            f"Pickup scheduled for {_slot_date(waiting_pickup)}",
        )

    if any(load.status == LoadStatus.IN_TRANSIT.value for load in outbound):
        return "Pickup in Progress", "Pickup in Progress", "info", "Outbound loads being delivered"

    if joints_in_storage > 0:
        return "In Storage", "In Storage", "success", "Remaining inventory awaiting pickup request."
    return "Complete", "All Pipe Returned", "success", None
