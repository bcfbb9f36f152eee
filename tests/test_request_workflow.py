"""
Tests for the Storage Request Workflow
Submission, approval, rejection, archival and the derived workflow state
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from pipeyard.core.exceptions import (
    CapacityExceededError, CrossTenantViolationError, InvalidStateTransitionError,
    NotFoundError, ValidationError
)
from pipeyard.models.audit import AdminAuditLog
from pipeyard.models.auth import Company, User
from pipeyard.models.notification import NotificationQueue
from pipeyard.models.storage_request import RequestStatus, StorageRequest
from pipeyard.models.trucking import TruckingLoad
from pipeyard.models.yard import Rack
from pipeyard.services import notification_service as notify
from pipeyard.services.load_workflow import LoadWorkflowService
from pipeyard.services.request_workflow import RequestWorkflowService, derive_workflow_state


def _submit(db_session, company, joints=60):
    return RequestWorkflowService(db_session).submit_request(
        company.id, "ops@permian.example.com", {"total_joints": joints, "grade": "L80"}
    )


class TestSubmitRequest:

    def test_submit_creates_pending_request_with_reference(self, db_session: Session, company: Company):
        request = _submit(db_session, company)

        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        assert request.status == RequestStatus.PENDING.value
        assert request.reference_id == f"PY-{today}-0001"
        assert request.assigned_rack_ids == []
        assert db_session.query(NotificationQueue).filter(
            NotificationQueue.notification_type == notify.REQUEST_SUBMITTED
        ).count() == 1

    def test_references_are_numbered_per_day(self, db_session: Session, company: Company):
        first = _submit(db_session, company)
        second = _submit(db_session, company)

        assert first.reference_id.endswith("-0001")
        assert second.reference_id.endswith("-0002")

    def test_numbering_continues_after_highest_reference(self, db_session: Session, company: Company):
        first = _submit(db_session, company)
        prefix = first.reference_id[:-4]
        db_session.add(StorageRequest(company_id=company.id, reference_id=f"{prefix}0007",
                                      status=RequestStatus.PENDING.value, total_joints=5))
        db_session.commit()

        assert _submit(db_session, company).reference_id == f"{prefix}0008"

    def test_taken_reference_is_retried(self, db_session: Session, company: Company, monkeypatch):
        first = _submit(db_session, company)
        original = RequestWorkflowService._next_reference_id
        drawn = []

        def draw_taken_number_once(self):
            drawn.append(True)
            return first.reference_id if len(drawn) == 1 else original(self)

        monkeypatch.setattr(RequestWorkflowService, "_next_reference_id", draw_taken_number_once)

        second = _submit(db_session, company)

        assert len(drawn) == 2
        assert second.reference_id.endswith("-0002")
        assert db_session.query(StorageRequest).count() == 2

    def test_unknown_company(self, db_session: Session):
        with pytest.raises(NotFoundError):
            RequestWorkflowService(db_session).submit_request(999, None, {"total_joints": 5})

    def test_joints_must_be_positive(self, db_session: Session, company: Company):
        with pytest.raises(PydanticValidationError):
            _submit(db_session, company, joints=0)
        assert db_session.query(StorageRequest).count() == 0


class TestApproveRequest:

    def test_approve_assigns_racks_without_touching_occupancy(self, db_session: Session, company: Company,
                                                               admin_user: User, rack: Rack):
        request = _submit(db_session, company)

        approved = RequestWorkflowService(db_session).approve_request(
            request.id, [rack.id], actor_id=admin_user.username, notes="Rack B-N-1"
        )

        assert approved.status == RequestStatus.APPROVED.value
        assert approved.assigned_rack_ids == ["B-N-1"]
        assert approved.approved_by == "yardadmin"
        assert approved.admin_notes == "Rack B-N-1"
        assert db_session.get(Rack, "B-N-1").occupied == 0
        assert db_session.query(AdminAuditLog).filter(AdminAuditLog.action == "APPROVE_REQUEST").count() == 1

    def test_free_space_is_summed_across_racks(self, db_session: Session, company: Company,
                                               admin_user: User, rack_factory):
        rack_factory("B-N-1", capacity=200, occupied=160, occupied_length="1800")
        rack_factory("B-N-2", capacity=200, occupied=170, occupied_length="1900")
        request = _submit(db_session, company, joints=60)

        approved = RequestWorkflowService(db_session).approve_request(
            request.id, ["B-N-1", "B-N-2", "B-N-1"], actor_id=admin_user.username
        )

        assert approved.assigned_rack_ids == ["B-N-1", "B-N-2"]

    def test_not_enough_free_space(self, db_session: Session, company: Company,
                                   admin_user: User, rack_factory):
        rack_factory("B-N-1", capacity=200, occupied=190, occupied_length="2200")
        request = _submit(db_session, company, joints=60)

        with pytest.raises(CapacityExceededError) as exc_info:
            RequestWorkflowService(db_session).approve_request(request.id, ["B-N-1"], actor_id=admin_user.username)

        assert exc_info.value.requested == 60
        assert exc_info.value.available == 10
        assert db_session.get(StorageRequest, request.id).status == RequestStatus.PENDING.value

    def test_required_joints_overrides_request_total(self, db_session: Session, company: Company,
                                                     admin_user: User, rack_factory):
        rack_factory("B-N-1", capacity=200, occupied=190, occupied_length="2200")
        request = _submit(db_session, company, joints=60)

        approved = RequestWorkflowService(db_session).approve_request(
            request.id, ["B-N-1"], actor_id=admin_user.username, required_joints=10
        )

        assert approved.status == RequestStatus.APPROVED.value

    def test_racks_are_required(self, db_session: Session, company: Company, admin_user: User):
        request = _submit(db_session, company)

        with pytest.raises(ValidationError):
            RequestWorkflowService(db_session).approve_request(request.id, [], actor_id=admin_user.username)

    def test_unknown_rack(self, db_session: Session, company: Company, admin_user: User, rack: Rack):
        request = _submit(db_session, company)

        with pytest.raises(NotFoundError) as exc_info:
            RequestWorkflowService(db_session).approve_request(
                request.id, [rack.id, "C-W-9"], actor_id=admin_user.username
            )
        assert "C-W-9" in exc_info.value.message

    def test_only_pending_requests_can_be_approved(self, db_session: Session, admin_user: User,
                                                   approved_request: StorageRequest):
        with pytest.raises(InvalidStateTransitionError):
            RequestWorkflowService(db_session).approve_request(
                approved_request.id, ["B-N-1"], actor_id=admin_user.username
            )


class TestRejectAndArchive:

    def test_reject_pending_request(self, db_session: Session, company: Company, admin_user: User):
        request = _submit(db_session, company)

        rejected = RequestWorkflowService(db_session).reject_request(
            request.id, "No capacity this quarter", actor_id=admin_user.username
        )

        assert rejected.status == RequestStatus.REJECTED.value
        assert rejected.rejection_reason == "No capacity this quarter"
        assert rejected.rejected_by == "yardadmin"

    def test_approved_request_cannot_be_rejected(self, db_session: Session, admin_user: User,
                                                 approved_request: StorageRequest):
        with pytest.raises(InvalidStateTransitionError):
            RequestWorkflowService(db_session).reject_request(
                approved_request.id, "Changed our mind", actor_id=admin_user.username
            )

    def test_archive_is_idempotent(self, db_session: Session, company: Company):
        service = RequestWorkflowService(db_session)
        request = _submit(db_session, company)

        first = service.archive_request(request.id, company.id).archived_at
        second = service.archive_request(request.id, company.id).archived_at

        assert first is not None
        assert first == second
        assert service.list_requests(company_id=company.id) == []
        assert len(service.list_requests(company_id=company.id, include_archived=True)) == 1

    def test_archive_other_company_request(self, db_session: Session, company: Company,
                                           other_company: Company):
        request = _submit(db_session, company)

        with pytest.raises(CrossTenantViolationError):
            RequestWorkflowService(db_session).archive_request(request.id, other_company.id)

    def test_list_is_scoped_to_company(self, db_session: Session, company: Company,
                                       other_company: Company):
        _submit(db_session, company)
        _submit(db_session, other_company)
        service = RequestWorkflowService(db_session)

        assert len(service.list_requests(company_id=company.id)) == 1
        assert len(service.list_requests()) == 2


def _request(status: str) -> StorageRequest:
    return StorageRequest(id=1, reference_id="PY-20260301-0001", status=status)


def _load(direction: str, sequence: int, status: str, slot=None) -> TruckingLoad:
    return TruckingLoad(direction=direction, sequence_number=sequence, status=status,
                        scheduled_slot_start=slot)


class TestDeriveWorkflowState:
    """Customer-facing state labels"""

    def test_pending(self):
        state, label, tone, action = derive_workflow_state(_request("PENDING"), [], 0)
        assert (state, label, tone) == ("Pending Approval", "Pending Admin Approval", "pending")

    def test_rejected(self):
        assert derive_workflow_state(_request("REJECTED"), [], 0)[:3] == ("Rejected", "Rejected", "danger")

    def test_completed(self):
        state, label, _, action = derive_workflow_state(_request("COMPLETED"), [], 0)
        assert (state, label, action) == ("Complete", "All Pipe Returned", None)

    def test_approved_without_loads(self):
        state, label, _, action = derive_workflow_state(_request("APPROVED"), [], 0)
        assert state == "Waiting on Load #N"
        assert label == "Waiting on Load #1"
        assert action == "Customer must schedule first delivery"

    def test_only_cancelled_deliveries(self):
        loads = [_load("INBOUND", 1, "CANCELLED")]
        _, label, _, action = derive_workflow_state(_request("APPROVED"), loads, 0)
        assert label == "Waiting on Load #2"
        assert action == "Customer must schedule a delivery"

    def test_waiting_on_scheduled_delivery(self):
        slot = datetime(2026, 5, 2, 8, 0, tzinfo=timezone.utc)
        loads = [_load("INBOUND", 1, "COMPLETED"), _load("INBOUND", 2, "APPROVED", slot)]
        _, label, _, action = derive_workflow_state(_request("APPROVED"), loads, 60)
        assert label == "Waiting on Load #2"
        assert action == "Load #2 scheduled for 2026-05-02"

    def test_in_storage(self):
        loads = [_load("INBOUND", 1, "COMPLETED")]
        state, _, tone, _ = derive_workflow_state(_request("APPROVED"), loads, 60)
        assert (state, tone) == ("In Storage", "success")

    def test_all_loads_received_with_nothing_stored(self):
        loads = [_load("INBOUND", 1, "COMPLETED")]
        state, _, _, action = derive_workflow_state(_request("APPROVED"), loads, 0)
        assert state == "All Loads Received"
        assert action == "Admin must reconcile received inventory"

    def test_waiting_on_pickup(self):
        loads = [_load("INBOUND", 1, "COMPLETED"), _load("OUTBOUND", 1, "NEW")]
        state, label, _, _ = derive_workflow_state(_request("APPROVED"), loads, 60)
        assert state == "Waiting on Pickup #N"
        assert label == "Waiting on Load #1 Pickup"

    def test_pickup_in_progress(self):
        loads = [_load("INBOUND", 1, "COMPLETED"), _load("OUTBOUND", 1, "IN_TRANSIT")]
        assert derive_workflow_state(_request("APPROVED"), loads, 0)[0] == "Pickup in Progress"

    def test_partial_pickup_delivered_leaves_in_storage(self):
        loads = [_load("INBOUND", 1, "COMPLETED"), _load("OUTBOUND", 1, "COMPLETED")]
        assert derive_workflow_state(_request("APPROVED"), loads, 20)[0] == "In Storage"


class TestComputeWorkflowState:

    def test_state_after_inbound_completion(self, db_session: Session, company: Company,
                                            approved_request: StorageRequest, inbound_load: TruckingLoad):
        service = RequestWorkflowService(db_session)
        assert service.compute_workflow_state(approved_request.id).label == "Waiting on Load #1"

        LoadWorkflowService(db_session).complete_inbound_load(
            inbound_load.id, company_id=company.id, request_id=approved_request.id,
            rack_id="B-N-1", actual_units_received=60,
        )

        state = service.compute_workflow_state(approved_request.id, company_id=company.id)
        assert state.state == "In Storage"
        assert state.reference_id == approved_request.reference_id

    def test_other_company_cannot_read_state(self, db_session: Session, other_company: Company,
                                             approved_request: StorageRequest):
        with pytest.raises(CrossTenantViolationError):
            RequestWorkflowService(db_session).compute_workflow_state(
                approved_request.id, company_id=other_company.id
            )
