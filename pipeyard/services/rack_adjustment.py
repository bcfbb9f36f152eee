"""
Rack Adjustment Service
Audited manual correction of rack occupancy (physical recounts, entry errors)
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, List

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from pipeyard.core.config import settings
from pipeyard.core.database import unit_of_work
from pipeyard.core.exceptions import InsufficientPermissionsError, InvalidAdjustmentError
from pipeyard.core.logging import get_logger
from pipeyard.models.audit import AdjustmentType, RackOccupancyAdjustment
from pipeyard.models.auth import User
from pipeyard.models.yard import Rack
from pipeyard.schemas.rack import RackAdjustmentSummary
from pipeyard.services.allocation_guard import quantize_length
from pipeyard.services.rack_ledger import RackLedgerService

logger = get_logger("business.adjustment")
security_logger = get_logger("security")

Authorizer = Callable[[Session, str], bool]


def admin_authorizer(db: Session, actor_id: str) -> bool:
    """Active yard admins may adjust racks"""
    user = db.query(User).filter(User.username == actor_id).first()
    return bool(user and user.is_active and user.is_admin)


class RackAdjustmentService:
    """
    Manual occupancy corrections

    The rack write and its audit row are one unit of work. The write is
    conditional on the occupancy read for validation, so the audit row's
    before values are exactly what the write replaced.
    """

    def __init__(self, db: Session, authorizer: Authorizer = admin_authorizer):
        self.db = db
        self.authorizer = authorizer
        self.ledger = RackLedgerService(db)

    def adjust_rack_occupancy(self, rack_id: str, new_occupied_units: int, new_occupied_length,
                              actor_id: str, justification: str) -> RackAdjustmentSummary:
        if not actor_id or not self.authorizer(self.db, actor_id):
            security_logger.warning(f"Rack adjustment on {rack_id} refused for actor {actor_id!r}")
            raise InsufficientPermissionsError(
                f"{actor_id} is not authorized to adjust rack occupancy",
                actor_id=actor_id,
                rack_id=rack_id,
            )

        reason = (justification or "").strip()
        min_length = settings.MIN_ADJUSTMENT_REASON_LENGTH
        if len(reason) < min_length:
            raise InvalidAdjustmentError(
                f"Justification must be at least {min_length} characters",
                field="justification",
                minimum=min_length,
                actual=len(reason),
            )

        if isinstance(new_occupied_units, bool) or not isinstance(new_occupied_units, int):
            raise InvalidAdjustmentError("Occupied joints must be a whole number", field="new_occupied_units")
        try:
            new_length = quantize_length(new_occupied_length)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAdjustmentError("Occupied length must be a number", field="new_occupied_length")

        if new_occupied_units < 0:
            raise InvalidAdjustmentError(
                "Occupied joints cannot be negative", field="new_occupied_units", value=new_occupied_units
            )
        if new_length < 0:
            raise InvalidAdjustmentError(
                "Occupied length cannot be negative", field="new_occupied_length", value=str(new_length)
            )

        with unit_of_work(self.db):
            rack = self.ledger.get_rack(rack_id)
            capacity_length = quantize_length(rack.capacity_length)
            if new_occupied_units > rack.capacity:
                raise InvalidAdjustmentError(
                    f"Rack {rack_id} holds at most {rack.capacity} joints",
                    field="new_occupied_units",
                    value=new_occupied_units,
                    capacity=rack.capacity,
                )
            if new_length > capacity_length:
                raise InvalidAdjustmentError(
                    f"Rack {rack_id} holds at most {capacity_length} m",
                    field="new_occupied_length",
                    value=str(new_length),
                    capacity_length=str(capacity_length),
                )
            if rack.is_slot and (new_occupied_units, new_length) not in ((0, 0), (rack.capacity, capacity_length)):
                raise InvalidAdjustmentError(
                    f"Slot rack {rack_id} is either empty (0 joints, 0 m) or full "
                    f"({rack.capacity} joints, {capacity_length} m)",
                    field="new_occupied_units",
                    value=new_occupied_units,
                    capacity=rack.capacity,
                    capacity_length=str(capacity_length),
                )

            old_units = rack.occupied
            old_length = quantize_length(rack.occupied_length)

            result = self.db.execute(
                update(Rack)
                .where(
                    Rack.id == rack_id,
                    Rack.occupied == old_units,
                    func.round(Rack.occupied_length, 2) == old_length,
                )
                .values(
                    occupied=new_occupied_units,
                    occupied_length=new_length,
                    updated_at=func.current_timestamp(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidAdjustmentError(
                    f"Rack {rack_id} occupancy changed during the adjustment; reload and retry",
                    rack_id=rack_id,
                )

            adjusted_at = datetime.now(timezone.utc)
            entry = RackOccupancyAdjustment(
                rack_id=rack_id,
                adjusted_by=actor_id,
                adjusted_at=adjusted_at,
                reason=reason,
                operation_type=AdjustmentType.MANUAL_CORRECTION.value,
                old_joints_occupied=old_units,
                new_joints_occupied=new_occupied_units,
                old_length_occupied=old_length,
                new_length_occupied=new_length,
            )
            self.db.add(entry)
            self.db.flush()
            entry_id = entry.id

        self.db.expire(rack)
        security_logger.info(
            f"Rack {rack_id} adjusted by {actor_id}: {old_units} -> {new_occupied_units} joints, "
            f"{old_length} -> {new_length} m"
        )
        logger.info(f"Manual adjustment {entry_id} recorded for rack {rack_id}")

        return RackAdjustmentSummary(
            rack_id=rack_id,
            adjustment_id=entry_id,
            old_occupied=old_units,
            new_occupied=new_occupied_units,
            old_occupied_length=old_length,
            new_occupied_length=new_length,
            adjusted_by=actor_id,
            adjusted_at=adjusted_at,
        )

    def list_adjustments(self, rack_id: str) -> List[RackOccupancyAdjustment]:
        """Adjustment history for a rack, newest first"""
        self.ledger.get_rack(rack_id)
        return (
            self.db.query(RackOccupancyAdjustment)
            .filter(RackOccupancyAdjustment.rack_id == rack_id)
            .order_by(RackOccupancyAdjustment.adjusted_at.desc(), RackOccupancyAdjustment.id.desc())
            .all()
        )
