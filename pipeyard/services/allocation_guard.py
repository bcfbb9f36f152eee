"""
Allocation Guard
The single code path that moves rack occupancy during normal operation
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from sqlalchemy import and_, case, func, or_, update
from sqlalchemy.orm import Session

from pipeyard.core.exceptions import InvalidAllocationError, NotFoundError
from pipeyard.core.logging import get_logger
from pipeyard.models.yard import AllocationMode, Rack

logger = get_logger("business.allocation")

LENGTH_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class Accepted:
    """Occupancy was changed; values are the rack's state after the write"""
    rack_id: str
    occupied: int
    occupied_length: Decimal

    accepted = True


@dataclass(frozen=True)
class Rejected:
    """Occupancy was left untouched; values are re-read after the failed write"""
    rack_id: str
    reason: str
    requested: int
    available: int
    current_occupied: int
    current_capacity: int
    requested_length: Decimal = Decimal("0")
    available_length: Decimal = Decimal("0")
    dimension: str = "joints"

    accepted = False


AllocationResult = Union[Accepted, Rejected]


def quantize_length(value) -> Decimal:
    return Decimal(str(value)).quantize(LENGTH_QUANTUM, rounding=ROUND_HALF_UP)


class AllocationGuard:
    """
    Atomic check-and-update of rack occupancy

    Each call issues one conditional UPDATE whose WHERE clause carries the
    capacity predicate, so two callers racing for the last joints on a rack
    are serialized by the database on the row write: one matches the
    predicate, the other updates zero rows and is rejected with the numbers
    it lost against. The guard neither commits nor locks; it joins the
    caller's unit of work.
    """

    def __init__(self, db: Session):
        self.db = db

    def try_allocate(self, rack_id: str, delta_units: int, delta_length=Decimal("0")) -> AllocationResult:
        """
        Add (positive) or release (negative) occupancy on a rack

        LINEAR_CAPACITY racks keep a running total bounded by capacity in
        both joints and metres. SLOT racks are binary: a positive delta
        claims the whole rack if it is empty, a negative delta frees it.

        Raises:
            InvalidAllocationError: zero delta, or units and length moving in
                opposite directions
            NotFoundError: no rack with this id
        """
        delta_length = quantize_length(delta_length)
        if delta_units == 0:
            raise InvalidAllocationError("Allocation delta must be non-zero", rack_id=rack_id)
        if (delta_units > 0 and delta_length < 0) or (delta_units < 0 and delta_length > 0):
            raise InvalidAllocationError(
                "Joint and length deltas must move in the same direction",
                rack_id=rack_id,
                delta_units=delta_units,
                delta_length=str(delta_length),
            )

        is_slot = Rack.allocation_mode == AllocationMode.SLOT.value
        is_linear = Rack.allocation_mode == AllocationMode.LINEAR_CAPACITY.value
        new_occupied = Rack.occupied + delta_units
        new_length = func.round(Rack.occupied_length + delta_length, 2)

        if delta_units > 0:
            slot_values = (Rack.capacity, Rack.capacity_length)
            slot_predicate = Rack.occupied == 0
        else:
            slot_values = (0, 0)
            slot_predicate = Rack.occupied > 0

        stmt = (
            update(Rack)
            .where(
                Rack.id == rack_id,
                or_(
                    and_(
                        is_linear,
                        new_occupied.between(0, Rack.capacity),
                        new_length.between(0, Rack.capacity_length),
                    ),
                    and_(is_slot, slot_predicate),
                ),
            )
            .values(
                occupied=case((is_slot, slot_values[0]), else_=new_occupied),
                occupied_length=case((is_slot, slot_values[1]), else_=new_length),
                updated_at=func.current_timestamp(),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)

        # Read back through the identity map so callers holding the Rack see
        # the new numbers
        rack = self.db.query(Rack).populate_existing().filter(Rack.id == rack_id).first()
        if rack is None:
            raise NotFoundError("Rack", rack_id)

        if result.rowcount == 1:
            logger.info(
                f"Rack {rack_id}: {delta_units:+d} joints, {delta_length:+} m accepted "
                f"-> {rack.occupied}/{rack.capacity} joints"
            )
            return Accepted(
                rack_id=rack_id,
                occupied=rack.occupied,
                occupied_length=quantize_length(rack.occupied_length),
            )

        rejected = self._rejection(rack, delta_units, delta_length)
        logger.info(f"Rack {rack_id}: allocation rejected - {rejected.reason}")
        return rejected

    def _rejection(self, rack: Rack, delta_units: int, delta_length: Decimal) -> Rejected:
        """Describe why the conditional write matched no row, from a fresh read"""
        occupied_length = quantize_length(rack.occupied_length)
        capacity_length = quantize_length(rack.capacity_length)
        dimension = "joints"

        if delta_units > 0:
            available = rack.capacity - rack.occupied
            available_length = capacity_length - occupied_length
            if rack.is_slot:
                reason = f"Slot rack {rack.id} is already occupied"
                available = 0 if rack.occupied else rack.capacity
            elif delta_units > available:
                reason = (
                    f"Requested {delta_units} joints on rack {rack.id} "
                    f"but only {available} available"
                )
            else:
                dimension = "length"
                reason = (
                    f"Requested {delta_length} m on rack {rack.id} "
                    f"but only {available_length} m available"
                )
        else:
            # Releasing: what can be released is what is there
            available = rack.occupied
            available_length = occupied_length
            if rack.is_slot:
                reason = f"Slot rack {rack.id} is already empty"
            else:
                dimension = "joints" if -delta_units > rack.occupied else "length"
                reason = (
                    f"Cannot release {-delta_units} joints ({-delta_length} m) from rack "
                    f"{rack.id} holding {rack.occupied} joints ({occupied_length} m)"
                )

        return Rejected(
            rack_id=rack.id,
            reason=reason,
            requested=abs(delta_units),
            available=available,
            current_occupied=rack.occupied,
            current_capacity=rack.capacity,
            requested_length=abs(delta_length),
            available_length=available_length,
            dimension=dimension,
        )
