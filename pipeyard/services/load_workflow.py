"""
Trucking Load Workflow
Load booking, state transitions and the inbound/outbound completion units of work
"""
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from pipeyard.core.database import unit_of_work
from pipeyard.core.exceptions import (
    AlreadyCompletedError, CapacityExceededError, InvalidAllocationError,
    InvalidStateTransitionError, ManifestMismatchError, NotFoundError, ValidationError
)
from pipeyard.core.logging import get_logger
from pipeyard.core.security import log_admin_action
from pipeyard.models.inventory import InventoryItem, InventoryStatus
from pipeyard.models.storage_request import RequestStatus, StorageRequest
from pipeyard.models.trucking import LOAD_TRANSITIONS, LoadDirection, LoadStatus, TruckingLoad
from pipeyard.schemas.workflow import (
    InboundCompletionSummary, LoadBookingCreate, OutboundCompletionSummary
)
from pipeyard.services import notification_service as notify
from pipeyard.services.allocation_guard import AllocationGuard, Rejected, quantize_length
from pipeyard.services.manifest_reconciliation import (
    ManifestIngestionService, build_inventory_items, reconcile, reconcile_unmanifested
)
from pipeyard.services.notification_service import NotificationService
from pipeyard.services.rack_ledger import RackLedgerService
from pipeyard.services.request_workflow import (
    RequestWorkflowService, ensure_request_owner, tenant_violation
)

logger = get_logger("business.loads")

SYSTEM_ACTOR = "system"
OUTBOUND_FINAL_STATUSES = (LoadStatus.IN_TRANSIT.value, LoadStatus.COMPLETED.value)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def capacity_error(rejected: Rejected) -> CapacityExceededError:
    """Report the binding dimension with the numbers the operator can act on"""
    if rejected.dimension == "length":
        requested, available = rejected.requested_length, rejected.available_length
    else:
        requested, available = rejected.requested, rejected.available
    return CapacityExceededError(
        requested=requested,
        available=available,
        rack_id=rejected.rack_id,
        dimension=rejected.dimension,
        message=rejected.reason,
    )


class LoadWorkflowService:
    """
    Trucking load lifecycle: NEW -> APPROVED -> IN_TRANSIT -> COMPLETED,
    any non-terminal state -> CANCELLED

    Completion operations run with yard-admin privilege on behalf of a
    claimed company, so every one re-verifies the company -> request -> load
    chain itself before touching anything.
    """

    def __init__(self, db: Session):
        self.db = db
        self.guard = AllocationGuard(db)
        self.ledger = RackLedgerService(db)
        self.manifests = ManifestIngestionService(db)
        self.requests = RequestWorkflowService(db)
        self.notifications = NotificationService(db)

    # Lookups

    def get_load(self, load_id: int, company_id: Optional[int] = None) -> TruckingLoad:
        load = self.db.query(TruckingLoad).filter(TruckingLoad.id == load_id).first()
        if load is None:
            raise NotFoundError("Load", load_id)
        if company_id is not None:
            ensure_request_owner(load.storage_request, company_id)
        return load

    def list_loads(self, request_id: int, company_id: Optional[int] = None) -> List[TruckingLoad]:
        request = self.requests.get_request(request_id, company_id=company_id)
        return (
            self.db.query(TruckingLoad)
            .filter(TruckingLoad.storage_request_id == request.id)
            .order_by(TruckingLoad.direction, TruckingLoad.sequence_number)
            .all()
        )

    def _verify_chain(self, load: TruckingLoad, request_id: int, company_id: int) -> StorageRequest:
        """The load must belong to the claimed request and the request to the claimed company"""
        if load.storage_request_id != request_id:
            raise tenant_violation(
                f"Load {load.id} does not belong to storage request {request_id}",
                load_id=load.id,
                request_id=request_id,
                company_id=company_id,
            )
        request = self.db.query(StorageRequest).filter(StorageRequest.id == request_id).first()
        if request is None:
            raise NotFoundError("Storage request", request_id)
        ensure_request_owner(request, company_id)
        return request

    def _transition(self, load: TruckingLoad, target: str):
        if target not in LOAD_TRANSITIONS.get(load.status, set()):
            raise InvalidStateTransitionError("Load", load.id, load.status, target)
        load.status = target

    def _load_payload(self, load: TruckingLoad, **extra) -> Dict:
        request = load.storage_request
        payload = {
            "load_id": load.id,
            "request_id": request.id,
            "reference_id": request.reference_id,
            "recipient_email": request.requester_email,
            "direction": load.direction,
            "sequence_number": load.sequence_number,
            "status": load.status,
        }
        payload.update(extra)
        return payload

    # Booking and plain transitions

    def book_load(self, request_id: int, company_id: int,
                  booking: Union[LoadBookingCreate, Dict]) -> TruckingLoad:
        """Book a delivery or pickup slot; sequence numbers are dense per request and direction"""
        if isinstance(booking, dict):
            booking = LoadBookingCreate.model_validate(booking)

        with unit_of_work(self.db):
            request = self.requests.get_request(request_id, company_id=company_id)
            if request.status != RequestStatus.APPROVED.value:
                raise InvalidStateTransitionError(
                    "Storage request", request_id, request.status, "LOAD_BOOKED",
                    message=f"Loads can only be booked on an approved request (request is {request.status})",
                )

            last_sequence = (
                self.db.query(func.max(TruckingLoad.sequence_number))
                .filter(
                    TruckingLoad.storage_request_id == request_id,
                    TruckingLoad.direction == booking.direction,
                )
                .scalar()
            )
            load = TruckingLoad(
                storage_request_id=request_id,
                sequence_number=(last_sequence or 0) + 1,
                status=LoadStatus.NEW.value,
                assigned_rack_ids=list(request.assigned_rack_ids or [])
                if booking.direction == LoadDirection.INBOUND.value else [],
                **booking.model_dump(),
            )
            self.db.add(load)
            self.db.flush()
            self.notifications.enqueue(notify.LOAD_BOOKED, self._load_payload(
                load,
                slot_start=load.scheduled_slot_start.isoformat() if load.scheduled_slot_start else None,
                trucking_company=load.trucking_company,
            ))

        logger.info(f"{load.direction} load #{load.sequence_number} booked on request {request_id}")
        return load

    def approve_load(self, load_id: int, actor_id: str) -> TruckingLoad:
        with unit_of_work(self.db):
            load = self.get_load(load_id)
            self._transition(load, LoadStatus.APPROVED.value)
            load.approved_at = _now()
            log_admin_action(self.db, actor_id, "APPROVE_LOAD", "trucking_load", load.id)
            self.notifications.enqueue(notify.LOAD_APPROVED, self._load_payload(load))
        logger.info(f"Load {load_id} approved by {actor_id}")
        return load

    def mark_in_transit(self, load_id: int, actor_id: str) -> TruckingLoad:
        """Inbound truck has left for the yard; outbound loads go in transit when loaded"""
        with unit_of_work(self.db):
            load = self.get_load(load_id)
            if load.direction != LoadDirection.INBOUND.value:
                raise InvalidStateTransitionError(
                    "Load", load_id, load.status, LoadStatus.IN_TRANSIT.value,
                    message=f"Outbound load {load_id} goes in transit through outbound completion",
                )
            self._transition(load, LoadStatus.IN_TRANSIT.value)
            load.in_transit_at = _now()
            log_admin_action(self.db, actor_id, "MARK_LOAD_IN_TRANSIT", "trucking_load", load.id)
        return load

    def cancel_load(self, load_id: int, reason: str, actor_id: str,
                    company_id: Optional[int] = None) -> TruckingLoad:
        """Cancel a non-terminal load; customers pass their company id"""
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required", field="reason")

        with unit_of_work(self.db):
            load = self.get_load(load_id, company_id=company_id)
            self._transition(load, LoadStatus.CANCELLED.value)
            load.cancelled_at = _now()
            load.cancellation_reason = reason.strip()
            log_admin_action(
                self.db, actor_id, "CANCEL_LOAD", "trucking_load", load.id, {"reason": load.cancellation_reason}
            )
            self.notifications.enqueue(notify.LOAD_CANCELLED, self._load_payload(
                load, reason=load.cancellation_reason
            ))
            self.requests.refresh_request_completion(load.storage_request)

        logger.info(f"Load {load_id} cancelled by {actor_id}")
        return load

    def request_manifest_correction(self, load_id: int, issues: List[str], actor_id: str) -> TruckingLoad:
        """
        Send the customer the problems found on a load's manifest

        The load keeps its status; the customer attaches a corrected
        manifest, which replaces the old one at completion.
        """
        issues = [issue.strip() for issue in issues or [] if issue and issue.strip()]
        if not issues:
            raise ValidationError("List at least one manifest issue", field="issues")

        with unit_of_work(self.db):
            load = self.get_load(load_id)
            if load.status not in (LoadStatus.NEW.value, LoadStatus.APPROVED.value):
                raise InvalidStateTransitionError(
                    "Load", load_id, load.status, "CORRECTION_REQUESTED",
                    message=f"Load {load_id} is {load.status}; manifest corrections are for NEW or APPROVED loads",
                )
            log_admin_action(
                self.db, actor_id, "REQUEST_MANIFEST_CORRECTION", "trucking_load", load.id, {"issues": issues}
            )
            self.notifications.enqueue(notify.MANIFEST_CORRECTION_REQUESTED, self._load_payload(
                load, issues=issues,
            ))

        logger.info(f"Manifest correction requested on load {load_id} by {actor_id}: {len(issues)} issues")
        return load

    def mark_outbound_delivered(self, load_id: int, actor_id: str) -> TruckingLoad:
        """Outbound truck has delivered the pipe to the customer"""
        with unit_of_work(self.db):
            load = self.get_load(load_id)
            if load.direction != LoadDirection.OUTBOUND.value:
                raise InvalidStateTransitionError(
                    "Load", load_id, load.status, LoadStatus.COMPLETED.value,
                    message=f"Inbound load {load_id} is completed through inbound completion",
                )
            if load.status == LoadStatus.COMPLETED.value:
                raise AlreadyCompletedError(load.id, load.status)
            if load.status != LoadStatus.IN_TRANSIT.value:
                raise InvalidStateTransitionError("Load", load_id, load.status, LoadStatus.COMPLETED.value)
            self._transition(load, LoadStatus.COMPLETED.value)
            load.completed_at = _now()
            log_admin_action(self.db, actor_id, "MARK_OUTBOUND_DELIVERED", "trucking_load", load.id)
            self.requests.refresh_request_completion(load.storage_request)
        return load

    # Completion

    def complete_inbound_load(self, load_id: int, company_id: int, request_id: int, rack_id: str,
                              actual_units_received: int, notes: Optional[str] = None,
                              actor_id: str = SYSTEM_ACTOR) -> InboundCompletionSummary:
        """
        Receive an inbound load onto a rack as one all-or-nothing unit of work

        Order: integrity checks, manifest reconciliation, rack allocation,
        inventory rows, load status, audit and outbox. The manifest's
        declared total is what is committed; the entered count only has to
        agree with it. A load that arrived without a manifest is received as
        one aggregated LEGACY row of the entered count.

        Raises:
            NotFoundError, AlreadyCompletedError, InvalidStateTransitionError,
            CrossTenantViolationError, ManifestMismatchError, CapacityExceededError
        """
        with unit_of_work(self.db):
            load = self.get_load(load_id)
            if load.status == LoadStatus.COMPLETED.value:
                raise AlreadyCompletedError(load.id, load.status)
            if load.direction != LoadDirection.INBOUND.value:
                raise InvalidStateTransitionError(
                    "Load", load_id, load.status, LoadStatus.COMPLETED.value,
                    message=f"Load {load_id} is {load.direction}; use outbound completion",
                )
            if load.status not in (LoadStatus.APPROVED.value, LoadStatus.IN_TRANSIT.value):
                raise InvalidStateTransitionError("Load", load_id, load.status, LoadStatus.COMPLETED.value)

            request = self._verify_chain(load, request_id, company_id)
            if request.status != RequestStatus.APPROVED.value:
                raise InvalidStateTransitionError(
                    "Storage request", request_id, request.status, "RECEIVING",
                    message=f"Storage request {request_id} is {request.status}, not APPROVED",
                )
            rack = self.ledger.get_rack(rack_id)

            fallback = self.manifests.fallback_length_ft(load)
            if fallback is None and request.avg_joint_length_ft:
                fallback = Decimal(str(request.avg_joint_length_ft))
            manifest = self.manifests.latest_manifest(load.id)
            if manifest is None:
                logger.warning(f"Load {load.id} has no manifest; receiving {actual_units_received} joints as one row")
                reconciled = reconcile_unmanifested(load.id, actual_units_received, fallback_length_ft=fallback)
            else:
                reconciled = reconcile(manifest, actual_units_received, fallback_length_ft=fallback)

            result = self.guard.try_allocate(rack.id, reconciled.declared_total, reconciled.total_length_m)
            if not result.accepted:
                raise capacity_error(result)

            completed_at = _now()
            items = build_inventory_items(
                reconciled,
                company_id=company_id,
                request_id=request.id,
                load_id=load.id,
                rack_id=rack.id,
                received_at=completed_at,
                item_type=request.item_type,
            )
            self.db.add_all(items)

            self._transition(load, LoadStatus.COMPLETED.value)
            load.completed_at = completed_at
            load.total_joints_completed = reconciled.declared_total
            if notes:
                load.notes = notes
            if rack.id not in (load.assigned_rack_ids or []):
                load.assigned_rack_ids = list(load.assigned_rack_ids or []) + [rack.id]

            log_admin_action(
                self.db, actor_id, "COMPLETE_INBOUND_LOAD", "trucking_load", load.id,
                {
                    "request_id": request.id,
                    "company_id": company_id,
                    "rack_id": rack.id,
                    "joints": reconciled.declared_total,
                    "length_m": str(reconciled.total_length_m),
                    "manifest_id": reconciled.document_id,
                    "inventory_items": len(items),
                },
            )
            self.requests.refresh_request_completion(request)
            self.notifications.enqueue(notify.INBOUND_LOAD_COMPLETED, self._load_payload(
                load, rack_id=rack.id, joints=reconciled.declared_total,
                length_m=str(reconciled.total_length_m),
            ))

            summary = InboundCompletionSummary(
                load_id=load.id,
                rack_id=rack.id,
                inventory_items_created=len(items),
                rack_new_occupancy=result.occupied,
                rack_new_occupied_length=result.occupied_length,
                completed_at=completed_at,
                request_status=request.status,
            )

        logger.info(
            f"Inbound load {load_id} completed on rack {rack_id}: "
            f"{summary.inventory_items_created} items, rack now {summary.rack_new_occupancy} joints"
        )
        return summary

    def complete_outbound_load(self, load_id: int, company_id: int, request_id: int,
                               inventory_item_ids: List[int], actual_units_loaded: int,
                               notes: Optional[str] = None, actor_id: str = SYSTEM_ACTOR,
                               final_status: str = LoadStatus.IN_TRANSIT.value) -> OutboundCompletionSummary:
        """
        Load selected inventory onto an outbound truck as one unit of work

        Selected items must all be IN_STORAGE, owned by the claimed company
        and add up exactly to ``actual_units_loaded``. Rack occupancy is
        released once per affected rack; SLOT racks are freed only when
        nothing of theirs remains in storage.
        """
        if final_status not in OUTBOUND_FINAL_STATUSES:
            raise ValidationError(
                f"Outbound loads finish as IN_TRANSIT or COMPLETED, not {final_status}",
                field="final_status",
            )

        with unit_of_work(self.db):
            load = self.get_load(load_id)
            if load.status in OUTBOUND_FINAL_STATUSES:
                raise AlreadyCompletedError(load.id, load.status)
            if load.direction != LoadDirection.OUTBOUND.value:
                raise InvalidStateTransitionError(
                    "Load", load_id, load.status, final_status,
                    message=f"Load {load_id} is {load.direction}; use inbound completion",
                )
            if load.status != LoadStatus.APPROVED.value:
                raise InvalidStateTransitionError("Load", load_id, load.status, final_status)

            request = self._verify_chain(load, request_id, company_id)

            item_ids = list(dict.fromkeys(inventory_item_ids or []))
            if not item_ids:
                raise ValidationError("Select at least one inventory item", field="inventory_item_ids")

            items = (
                self.db.query(InventoryItem)
                .filter(InventoryItem.id.in_(item_ids))
                .order_by(InventoryItem.id)
                .all()
            )
            missing = sorted(set(item_ids) - {item.id for item in items})
            if missing:
                raise NotFoundError(
                    "Inventory item", missing,
                    message=f"Inventory items not found: {', '.join(str(i) for i in missing)}",
                )

            for item in items:
                if item.company_id != company_id:
                    raise tenant_violation(
                        f"Inventory item {item.id} does not belong to company {company_id}",
                        inventory_item_id=item.id,
                        company_id=company_id,
                    )
                if item.request_id != request.id:
                    raise ValidationError(
                        f"Inventory item {item.id} belongs to another storage request",
                        inventory_item_id=item.id,
                        request_id=request.id,
                    )
                if item.status != InventoryStatus.IN_STORAGE.value:
                    raise InvalidStateTransitionError(
                        "Inventory item", item.id, item.status, InventoryStatus.PICKED_UP.value
                    )

            total_joints = sum(item.quantity for item in items)
            if total_joints != actual_units_loaded:
                raise ManifestMismatchError(
                    declared=total_joints,
                    actual=actual_units_loaded,
                    message=(
                        f"Selected items total {total_joints} joints "
                        f"but {actual_units_loaded} were loaded"
                    ),
                )

            picked_up_at = _now()
            by_rack = OrderedDict()
            for item in items:
                item.status = InventoryStatus.PICKED_UP.value
                item.pickup_load_id = load.id
                item.picked_up_at = picked_up_at
                if item.rack_id:
                    units, length = by_rack.get(item.rack_id, (0, Decimal("0.00")))
                    by_rack[item.rack_id] = (units + item.quantity, length + quantize_length(item.total_length_m))
            self.db.flush()

            racks_updated = []
            for rack_id in sorted(by_rack):
                units, length = by_rack[rack_id]
                if self._release(rack_id, units, length):
                    racks_updated.append(rack_id)

            self._transition(load, final_status)
            if final_status == LoadStatus.IN_TRANSIT.value:
                load.in_transit_at = picked_up_at
            else:
                load.completed_at = picked_up_at
            load.total_joints_completed = total_joints
            if notes:
                load.notes = notes

            total_length = sum((length for _, length in by_rack.values()), Decimal("0.00"))
            log_admin_action(
                self.db, actor_id, "COMPLETE_OUTBOUND_LOAD", "trucking_load", load.id,
                {
                    "request_id": request.id,
                    "company_id": company_id,
                    "inventory_item_ids": [item.id for item in items],
                    "joints": total_joints,
                    "length_m": str(total_length),
                    "racks": racks_updated,
                    "load_status": final_status,
                },
            )
            self.requests.refresh_request_completion(request)
            self.notifications.enqueue(notify.OUTBOUND_LOAD_COMPLETED, self._load_payload(
                load, joints=total_joints, length_m=str(total_length),
            ))

            summary = OutboundCompletionSummary(
                load_id=load.id,
                inventory_items_updated=len(items),
                total_joints_picked_up=total_joints,
                total_length_m=total_length,
                racks_updated=racks_updated,
                picked_up_at=picked_up_at,
                load_status=load.status,
                request_status=request.status,
            )

        logger.info(
            f"Outbound load {load_id} loaded: {summary.total_joints_picked_up} joints "
            f"from racks {summary.racks_updated}"
        )
        return summary

    def _release(self, rack_id: str, units: int, length: Decimal) -> bool:
        """Give back rack space for picked-up pipe; False when a slot rack stays occupied"""
        rack = self.ledger.get_rack(rack_id)
        if rack.is_slot:
            still_stored = (
                self.db.query(func.count(InventoryItem.id))
                .filter(
                    InventoryItem.rack_id == rack_id,
                    InventoryItem.status == InventoryStatus.IN_STORAGE.value,
                )
                .scalar()
            )
            if still_stored:
                return False

        result = self.guard.try_allocate(rack_id, -units, -length)
        if not result.accepted:
            raise InvalidAllocationError(
                result.reason,
                rack_id=rack_id,
                requested=result.requested,
                available=result.available,
            )
        return True
