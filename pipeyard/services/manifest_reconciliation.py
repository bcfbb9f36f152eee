"""
Manifest Reconciliation
Manifest ingestion, declared-vs-actual reconciliation and inventory derivation
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from pipeyard.core.config import settings
from pipeyard.core.database import unit_of_work
from pipeyard.core.exceptions import (
    InvalidStateTransitionError, ManifestMismatchError, NotFoundError, ValidationError
)
from pipeyard.core.logging import get_logger
from pipeyard.models.inventory import InventoryItem, InventoryStatus
from pipeyard.models.trucking import (
    MANIFEST_DOCUMENT_TYPES, LoadDirection, ManifestLine, TruckingDocument, TruckingLoad
)
from pipeyard.schemas.manifest import ManifestPayload
from pipeyard.services.allocation_guard import quantize_length

logger = get_logger("business.manifest")


@dataclass
class ReconciledLine:
    line: ManifestLine
    length_ft: Decimal
    total_length_m: Decimal


@dataclass
class ReconciledManifest:
    """A manifest whose declared total matched the operator's count"""
    document_id: Optional[int]
    declared_total: int
    total_length_m: Decimal
    lines: List[ReconciledLine] = field(default_factory=list)
    # Inventory reference for lines carrying no serial or heat number
    reference_id: Optional[str] = None


def line_length_m(quantity: int, length_ft) -> Decimal:
    """Rack metres charged for ``quantity`` joints of ``length_ft`` each"""
    feet_to_meters = Decimal(str(settings.FEET_TO_METERS))
    return quantize_length(Decimal(quantity) * Decimal(str(length_ft)) * feet_to_meters)


def reconcile(manifest: TruckingDocument, actual_units: int,
              fallback_length_ft: Optional[Decimal] = None) -> ReconciledManifest:
    """
    Check a manifest's declared total against the operator-entered count

    The declared total is the sum of the manifest's line quantities and is
    the quantity committed to the rack; ``actual_units`` only corroborates it.
    Lines without a tally length use ``fallback_length_ft`` (the load's
    planned average joint), then DEFAULT_JOINT_LENGTH_FT.

    Raises:
        ManifestMismatchError: declared total and actual count differ
    """
    declared_total = sum(line.quantity for line in manifest.lines)
    if declared_total != actual_units:
        raise ManifestMismatchError(declared=declared_total, actual=actual_units)

    default_length = Decimal(str(fallback_length_ft or settings.DEFAULT_JOINT_LENGTH_FT))
    reconciled = []
    for line in manifest.lines:
        length_ft = Decimal(str(line.tally_length_ft)) if line.tally_length_ft else default_length
        reconciled.append(ReconciledLine(
            line=line,
            length_ft=length_ft,
            total_length_m=line_length_m(line.quantity, length_ft),
        ))

    return ReconciledManifest(
        document_id=manifest.id,
        declared_total=declared_total,
        total_length_m=sum((r.total_length_m for r in reconciled), Decimal("0.00")),
        lines=reconciled,
    )


def reconcile_unmanifested(load_id: int, actual_units: int,
                           fallback_length_ft: Optional[Decimal] = None) -> ReconciledManifest:
    """
    Treat a delivery that arrived without a manifest as one aggregated line

    The operator's count is all there is to commit. Length comes from the
    planned average joint, then DEFAULT_JOINT_LENGTH_FT, and the single
    inventory row is referenced LEGACY-<load id>.
    """
    if actual_units < 1:
        raise ValidationError(
            "A load without a manifest needs a positive received count",
            field="actual_units_received",
            value=actual_units,
        )

    length_ft = Decimal(str(fallback_length_ft or settings.DEFAULT_JOINT_LENGTH_FT))
    total_length_m = line_length_m(actual_units, length_ft)
    line = ManifestLine(line_number=1, quantity=actual_units)
    return ReconciledManifest(
        document_id=None,
        declared_total=actual_units,
        total_length_m=total_length_m,
        lines=[ReconciledLine(line=line, length_ft=length_ft, total_length_m=total_length_m)],
        reference_id=f"LEGACY-{load_id}",
    )


def build_inventory_items(reconciled: ReconciledManifest, company_id: int, request_id: int,
                          load_id: int, rack_id: str, received_at: datetime,
                          item_type: Optional[str] = None) -> List[InventoryItem]:
    """One unsaved IN_STORAGE inventory row per reconciled manifest line"""
    items = []
    for entry in reconciled.lines:
        line = entry.line
        items.append(InventoryItem(
            company_id=company_id,
            request_id=request_id,
            reference_id=line.serial_number or line.heat_number or reconciled.reference_id,
            item_type=line.item_type or item_type,
            grade=line.grade,
            outer_diameter=line.outer_diameter_in,
            weight=line.weight_lbs_ft,
            length_ft=entry.length_ft,
            total_length_m=entry.total_length_m,
            quantity=line.quantity,
            status=InventoryStatus.IN_STORAGE.value,
            rack_id=rack_id,
            delivery_load_id=load_id,
            drop_off_at=received_at,
        ))
    return items


class ManifestIngestionService:
    """
    Stores manifests as structured, validated lines

    Whatever produced the manifest (upload form, extraction pipeline) hands
    over a ManifestPayload; malformed input is refused here so reconciliation
    only ever sees well-typed lines.
    """

    def __init__(self, db: Session):
        self.db = db

    def attach_manifest(self, load_id: int, payload: Union[ManifestPayload, dict],
                        uploaded_by: str) -> TruckingDocument:
        if not isinstance(payload, ManifestPayload):
            try:
                payload = ManifestPayload.model_validate(payload)
            except PydanticValidationError as e:
                raise ValidationError(
                    "Manifest payload is invalid",
                    errors=e.errors(include_url=False, include_context=False, include_input=False),
                )

        with unit_of_work(self.db):
            load = self.db.query(TruckingLoad).filter(TruckingLoad.id == load_id).first()
            if load is None:
                raise NotFoundError("Load", load_id)
            if load.is_terminal:
                raise InvalidStateTransitionError("Load", load_id, load.status, "MANIFEST_ATTACHED")

            line_total = payload.line_total
            if payload.declared_total_joints is not None and payload.declared_total_joints != line_total:
                raise ManifestMismatchError(
                    declared=payload.declared_total_joints,
                    actual=line_total,
                    message=(
                        f"Manifest declares {payload.declared_total_joints} joints "
                        f"but its lines sum to {line_total}"
                    ),
                )

            document = TruckingDocument(
                trucking_load_id=load.id,
                document_type=payload.document_type,
                file_name=payload.file_name,
                declared_total_joints=line_total,
                uploaded_by=uploaded_by,
            )
            for number, line in enumerate(payload.lines, start=1):
                document.lines.append(ManifestLine(line_number=number, **line.model_dump()))
            self.db.add(document)
            self.db.flush()

        logger.info(
            f"Manifest {document.id} attached to load {load_id}: "
            f"{len(payload.lines)} lines, {line_total} joints"
        )
        return document

    def latest_manifest(self, load_id: int) -> Optional[TruckingDocument]:
        """Most recently attached manifest or tally sheet for the load"""
        return (
            self.db.query(TruckingDocument)
            .filter(
                TruckingDocument.trucking_load_id == load_id,
                TruckingDocument.document_type.in_(sorted(MANIFEST_DOCUMENT_TYPES)),
            )
            .order_by(TruckingDocument.uploaded_at.desc(), TruckingDocument.id.desc())
            .first()
        )

    def fallback_length_ft(self, load: TruckingLoad) -> Optional[Decimal]:
        """Planned average joint length for an inbound load, if planned"""
        if load.direction != LoadDirection.INBOUND.value:
            return None
        avg = load.avg_joint_length_ft
        return Decimal(str(avg)) if avg else None
