"""Storage Request API endpoints"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Any, Callable, List, Optional

from pipeyard.api import deps
from pipeyard.models.auth import User
from pipeyard.schemas.workflow import (
    ApproveRequestIn, LoadBookingCreate, LoadResponse, RejectRequestIn,
    StorageRequestCreate, StorageRequestResponse, WorkflowStateResponse
)
from pipeyard.services.load_workflow import LoadWorkflowService
from pipeyard.services.request_workflow import RequestWorkflowService

router = APIRouter()


@router.get("", response_model=List[StorageRequestResponse])
def list_requests(
    include_archived: bool = Query(False, description="Include archived requests"),
    db: Session = Depends(deps.get_db),
    company_id: Optional[int] = Depends(deps.get_company_scope),
):
    """List storage requests; customers only see their own company's."""
    return RequestWorkflowService(db).list_requests(company_id=company_id, include_archived=include_archived)


@router.post("", response_model=StorageRequestResponse, status_code=status.HTTP_201_CREATED)
def submit_request(
    request_in: StorageRequestCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_customer),
    dispatch: Callable[[], None] = Depends(deps.get_notification_dispatch),
):
    """
    Submit a storage request for the caller's company.

    The request starts PENDING and gets a PY-YYYYMMDD-NNNN reference.
    """
    request = RequestWorkflowService(db).submit_request(
        current_user.company_id, current_user.email, request_in
    )
    background_tasks.add_task(dispatch)
    return request


@router.get("/{request_id}", response_model=StorageRequestResponse)
def get_request(
    request_id: int,
    db: Session = Depends(deps.get_db),
    company_id: Optional[int] = Depends(deps.get_company_scope),
):
    return RequestWorkflowService(db).get_request(request_id, company_id=company_id)


@router.get("/{request_id}/workflow-state", response_model=WorkflowStateResponse)
def get_workflow_state(
    request_id: int,
    db: Session = Depends(deps.get_db),
    company_id: Optional[int] = Depends(deps.get_company_scope),
):
    """Customer-facing lifecycle state of a request."""
    return RequestWorkflowService(db).compute_workflow_state(request_id, company_id=company_id)


@router.post("/{request_id}/approve", response_model=StorageRequestResponse)
def approve_request(
    request_id: int,
    approval: ApproveRequestIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin),
    dispatch: Callable[[], None] = Depends(deps.get_notification_dispatch),
):
    """Approve a pending request onto racks with enough free capacity."""
    request = RequestWorkflowService(db).approve_request(
        request_id,
        rack_ids=approval.rack_ids,
        actor_id=current_user.username,
        required_joints=approval.required_joints,
        notes=approval.notes,
    )
    background_tasks.add_task(dispatch)
    return request


@router.post("/{request_id}/reject", response_model=StorageRequestResponse)
def reject_request(
    request_id: int,
    rejection: RejectRequestIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin),
    dispatch: Callable[[], None] = Depends(deps.get_notification_dispatch),
):
    request = RequestWorkflowService(db).reject_request(
        request_id, reason=rejection.reason, actor_id=current_user.username
    )
    background_tasks.add_task(dispatch)
    return request


@router.post("/{request_id}/archive", response_model=StorageRequestResponse)
def archive_request(
    request_id: int,
    db: Session = Depends(deps.get_db),
    company_id: Optional[int] = Depends(deps.get_company_scope),
):
    """Hide a request from the default listing. Repeat calls are no-ops."""
    service = RequestWorkflowService(db)
    if company_id is None:
        company_id = service.get_request(request_id).company_id
    return service.archive_request(request_id, company_id=company_id)


@router.get("/{request_id}/loads", response_model=List[LoadResponse])
def list_loads(
    request_id: int,
    db: Session = Depends(deps.get_db),
    company_id: Optional[int] = Depends(deps.get_company_scope),
):
    return LoadWorkflowService(db).list_loads(request_id, company_id=company_id)


@router.post("/{request_id}/loads", response_model=LoadResponse, status_code=status.HTTP_201_CREATED)
def book_load(
    request_id: int,
    booking: LoadBookingCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    company_id: Optional[int] = Depends(deps.get_company_scope),
    dispatch: Callable[[], None] = Depends(deps.get_notification_dispatch),
) -> Any:
    """
    Book an inbound delivery or outbound pickup slot on an approved request.

    Admins book on behalf of the request's company.
    """
    service = LoadWorkflowService(db)
    if company_id is None:
        company_id = service.requests.get_request(request_id).company_id
    load = service.book_load(request_id, company_id, booking)
    background_tasks.add_task(dispatch)
    return load
