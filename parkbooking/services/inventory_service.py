"""Guarded mutation of ``time_slot_instances.available_tickets``.

Every change to the counter goes through this module. Callers own the transaction; the
functions lock the instance row with ``SELECT ... FOR UPDATE`` and re-check the bounds before
writing, so concurrent checkouts on the same slot serialize on the row.
"""
import logging
from collections import defaultdict

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from parkbooking.core.errors import Conflict, InsufficientInventory, NotFound, InvariantViolation
from parkbooking.models.booking import Booking
from parkbooking.models.time_slot_instance import TimeSlotInstance

logger = logging.getLogger(__name__)


def lock_instance(db: Session, instance_id: str) -> TimeSlotInstance:
    inst = db.execute(
        select(TimeSlotInstance).where(TimeSlotInstance.id == instance_id).with_for_update()
    ).scalar_one_or_none()
    if not inst:
        raise NotFound("Time slot instance not found")
    return inst


def lock_instances(db: Session, instance_ids) -> dict[str, TimeSlotInstance]:
    """Lock several instances in id order so two transactions never wait on each other."""
    ids = sorted(set(instance_ids))
    if not ids:
        return {}
    rows = db.execute(
        select(TimeSlotInstance).where(TimeSlotInstance.id.in_(ids)).order_by(TimeSlotInstance.id).with_for_update()
    ).scalars().all()
    found = {r.id: r for r in rows}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFound(f"Time slot instance not found: {missing[0]}")
    return found


def _describe(inst: TimeSlotInstance) -> str:
    return f"{inst.date.isoformat()}"


def check_demand(instances: dict[str, TimeSlotInstance], demand: dict[str, int], labels: dict[str, str] | None = None):
    """Raise on the first instance whose locked counter cannot cover the cumulative demand."""
    for instance_id in sorted(demand):
        inst = instances[instance_id]
        qty = demand[instance_id]
        if qty > inst.available_tickets:
            label = (labels or {}).get(instance_id) or _describe(inst)
            raise InsufficientInventory(
                f"Not enough tickets for {label}: requested {qty}, available {inst.available_tickets}",
                instance_id=instance_id,
            )


def reserve(db: Session, booking: Booking, inst: TimeSlotInstance | None = None) -> TimeSlotInstance:
    """Deduct a booking's quantity from its instance. No-op if already committed."""
    if inst is None:
        inst = lock_instance(db, booking.time_slot_instance_id)
    if booking.inventory_committed:
        return inst
    if booking.quantity > inst.available_tickets:
        raise InsufficientInventory(
            f"Not enough tickets for {booking.date.isoformat()} {booking.start_time}-{booking.end_time}: "
            f"requested {booking.quantity}, available {inst.available_tickets}",
            instance_id=inst.id,
        )
    inst.available_tickets -= booking.quantity
    booking.inventory_committed = True
    return inst


def release(db: Session, booking: Booking, inst: TimeSlotInstance | None = None) -> TimeSlotInstance | None:
    """Give a booking's quantity back to its instance, once. No-op if never committed."""
    if not booking.inventory_committed:
        return None
    if inst is None:
        inst = db.execute(
            select(TimeSlotInstance).where(TimeSlotInstance.id == booking.time_slot_instance_id).with_for_update()
        ).scalar_one_or_none()
    booking.inventory_committed = False
    if inst is None:
        logger.warning("Booking %s released against a missing instance %s", booking.id, booking.time_slot_instance_id)
        return None
    restored = inst.available_tickets + booking.quantity
    if restored > inst.ticket_limit:
        logger.warning("Release for booking %s would exceed limit on instance %s (%s > %s); clamped",
                       booking.id, inst.id, restored, inst.ticket_limit)
        restored = inst.ticket_limit
    inst.available_tickets = restored
    return inst


def reserve_group(db: Session, bookings: list[Booking]) -> None:
    """All-or-nothing commit for a set of bookings. Raises before touching any counter."""
    pending = [b for b in bookings if not b.inventory_committed]
    if not pending:
        return
    demand: dict[str, int] = defaultdict(int)
    for b in pending:
        demand[b.time_slot_instance_id] += b.quantity
    instances = lock_instances(db, demand.keys())
    check_demand(instances, demand)
    for b in pending:
        reserve(db, b, instances[b.time_slot_instance_id])


def committed_quantity(db: Session, instance_id: str) -> int:
    return int(db.execute(
        select(func.coalesce(func.sum(Booking.quantity), 0)).where(
            Booking.time_slot_instance_id == instance_id,
            Booking.inventory_committed == True,  # noqa: E712
        )
    ).scalar_one())


def set_available(db: Session, instance_id: str, available: int) -> TimeSlotInstance:
    """Manual staff adjustment; never below zero nor above what the limit leaves free."""
    inst = lock_instance(db, instance_id)
    ceiling = inst.ticket_limit - committed_quantity(db, instance_id)
    if available < 0 or available > ceiling:
        raise InvariantViolation(f"available_tickets must be between 0 and {ceiling}")
    inst.available_tickets = available
    return inst


def set_limit(db: Session, inst: TimeSlotInstance, new_limit: int) -> None:
    """Resize a locked instance, keeping every committed ticket and any tickets staff withheld."""
    committed = committed_quantity(db, inst.id)
    if new_limit < committed:
        raise Conflict(
            f"Ticket limit {new_limit} is below {committed} tickets already sold on {inst.date.isoformat()}"
        )
    withheld = max(inst.ticket_limit - committed - inst.available_tickets, 0)
    inst.ticket_limit = new_limit
    inst.available_tickets = max(new_limit - committed - withheld, 0)
