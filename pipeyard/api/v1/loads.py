"""Trucking Load API endpoints"""

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session
from typing import Callable, Optional

from pipeyard.api import deps
from pipeyard.models.auth import User
from pipeyard.schemas.manifest import ManifestDocumentResponse, ManifestPayload
from pipeyard.schemas.workflow import (
    CancelLoadIn, InboundCompletionIn, InboundCompletionSummary, LoadResponse,
    ManifestCorrectionIn, OutboundCompletionIn, OutboundCompletionSummary
)
from pipeyard.services.load_workflow import LoadWorkflowService

router = APIRouter()


@router.get("/{load_id}", response_model=LoadResponse)
def get_load(
    load_id: int,
    db: Session = Depends(deps.get_db),
    company_id: Optional[int] = Depends(deps.get_company_scope),
):
    return LoadWorkflowService(db).get_load(load_id, company_id=company_id)


@router.post("/{load_id}/approve", response_model=LoadResponse)
def approve_load(
    load_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin),
    dispatch: Callable[[], None] = Depends(deps.get_notification_dispatch),
):
    load = LoadWorkflowService(db).approve_load(load_id, actor_id=current_user.username)
    background_tasks.add_task(dispatch)
    return load


@router.post("/{load_id}/in-transit", response_model=LoadResponse)
def mark_in_transit(
    load_id: int,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin),
):
    """Inbound truck has left for the yard."""
    return LoadWorkflowService(db).mark_in_transit(load_id, actor_id=current_user.username)


@router.post("/{load_id}/cancel", response_model=LoadResponse)
def cancel_load(
    load_id: int,
    cancellation: CancelLoadIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    company_id: Optional[int] = Depends(deps.get_company_scope),
    dispatch: Callable[[], None] = Depends(deps.get_notification_dispatch),
):
    """Cancel a load that has not finished. Customers may cancel their own loads."""
    load = LoadWorkflowService(db).cancel_load(
        load_id, cancellation.reason, actor_id=current_user.username, company_id=company_id
    )
    background_tasks.add_task(dispatch)
    return load


@router.post("/{load_id}/delivered", response_model=LoadResponse)
def mark_outbound_delivered(
    load_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin),
    dispatch: Callable[[], None] = Depends(deps.get_notification_dispatch),
):
    """Outbound truck has delivered to the customer."""
    load = LoadWorkflowService(db).mark_outbound_delivered(load_id, actor_id=current_user.username)
    background_tasks.add_task(dispatch)
    return load


@router.post("/{load_id}/manifest", response_model=ManifestDocumentResponse,
             status_code=status.HTTP_201_CREATED)
def attach_manifest(
    load_id: int,
    manifest: ManifestPayload,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    company_id: Optional[int] = Depends(deps.get_company_scope),
):
    """
    Attach the manifest or tally sheet for a load.

    The latest manifest on a load is the one reconciled at completion.
    """
    service = LoadWorkflowService(db)
    service.get_load(load_id, company_id=company_id)
    return service.manifests.attach_manifest(load_id, manifest, uploaded_by=current_user.username)


@router.post("/{load_id}/request-correction", response_model=LoadResponse)
def request_manifest_correction(
    load_id: int,
    correction: ManifestCorrectionIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin),
    dispatch: Callable[[], None] = Depends(deps.get_notification_dispatch),
):
    """Ask the customer to correct the manifest; the load keeps its status."""
    load = LoadWorkflowService(db).request_manifest_correction(
        load_id, correction.issues, actor_id=current_user.username
    )
    background_tasks.add_task(dispatch)
    return load


@router.post("/{load_id}/complete-inbound", response_model=InboundCompletionSummary)
def complete_inbound_load(
    load_id: int,
    completion: InboundCompletionIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin),
    dispatch: Callable[[], None] = Depends(deps.get_notification_dispatch),
):
    """
    Receive an inbound load onto a rack.

    Reconciles the manifest, claims rack capacity and creates inventory in
    one transaction; nothing is written when any step fails.
    """
    summary = LoadWorkflowService(db).complete_inbound_load(
        load_id,
        company_id=completion.company_id,
        request_id=completion.request_id,
        rack_id=completion.rack_id,
        actual_units_received=completion.actual_units_received,
        notes=completion.notes,
        actor_id=current_user.username,
    )
    background_tasks.add_task(dispatch)
    return summary


@router.post("/{load_id}/complete-outbound", response_model=OutboundCompletionSummary)
def complete_outbound_load(
    load_id: int,
    completion: OutboundCompletionIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin),
    dispatch: Callable[[], None] = Depends(deps.get_notification_dispatch),
):
    """Load selected inventory onto an outbound truck and release rack space."""
    summary = LoadWorkflowService(db).complete_outbound_load(
        load_id,
        company_id=completion.company_id,
        request_id=completion.request_id,
        inventory_item_ids=completion.inventory_item_ids,
        actual_units_loaded=completion.actual_units_loaded,
        notes=completion.notes,
        actor_id=current_user.username,
        final_status=completion.final_status,
    )
    background_tasks.add_task(dispatch)
    return summary
