"""Recurring time-slot templates and their date-specific instances."""
import logging
import re
import uuid
from datetime import date, timedelta

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from parkbooking.core.config import settings
from parkbooking.core.errors import ValidationError, NotFound, Conflict, Forbidden
from parkbooking.core.security import Principal
from parkbooking.models.booking import Booking
from parkbooking.models.park import Park, DAY_NAMES
from parkbooking.models.pricing import Pricing
from parkbooking.models.time_slot_instance import TimeSlotInstance
from parkbooking.models.time_slot_template import TimeSlotTemplate
from parkbooking.services import inventory_service
from parkbooking.services.audit_service import log_audit

logger = logging.getLogger(__name__)

HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
ACTIVE_BOOKING_STATUSES = ("pending", "confirmed")
STRUCTURAL_FIELDS = ("start_time", "end_time", "days_of_week", "valid_from", "valid_until", "pricing_ids")


def day_of_week(d: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (d.weekday() + 1) % 7


def time_to_minutes(hhmm: str, is_end: bool = False) -> int:
    hh, mm = map(int, hhmm.split(":"))
    total = hh * 60 + mm
    # "00:00" closes at midnight
    if is_end and total == 0:
        return 24 * 60
    return total


def unit_price(pricing: Pricing, template: TimeSlotTemplate) -> int:
    return int(pricing.price) + int(pricing.additional_charge or 0) + int(template.price_adjustment or 0)


def _csv(values) -> str:
    return ",".join(str(v) for v in values)


def _ensure_park_access(principal: Principal, park_id: str):
    if not principal.can_manage_park(park_id):
        raise Forbidden("Not allowed to manage this park")


def _get_park(db: Session, park_id: str) -> Park:
    park = db.get(Park, park_id)
    if not park:
        raise NotFound("Park not found")
    return park


def _normalize_rule(db: Session, park: Park, rule: dict) -> dict:
    days = rule.get("days_of_week") or []
    try:
        days = sorted({int(d) for d in days})
    except (TypeError, ValueError):
        raise ValidationError("days_of_week must be integers 0-6")
    if not days or any(d < 0 or d > 6 for d in days):
        raise ValidationError("days_of_week must be a non-empty subset of 0-6 (0=Sunday)")

    start, end = rule.get("start_time") or "", rule.get("end_time") or ""
    if not HHMM.match(start) or not HHMM.match(end):
        raise ValidationError("start_time and end_time must be HH:MM")
    if time_to_minutes(start) >= time_to_minutes(end, is_end=True):
        raise ValidationError("start_time must be before end_time")

    valid_from, valid_until = rule.get("valid_from"), rule.get("valid_until")
    if not valid_from:
        raise ValidationError("valid_from is required")
    if valid_until and valid_until < valid_from:
        raise ValidationError("valid_until must be on or after valid_from")

    ticket_limit = rule.get("ticket_limit")
    if ticket_limit is None or int(ticket_limit) < 1:
        raise ValidationError("ticket_limit must be at least 1")

    pricing_ids = sorted({p for p in (rule.get("pricing_ids") or []) if p})
    if not pricing_ids:
        raise ValidationError("At least one pricing is required")
    found = db.execute(
        select(Pricing.id).where(Pricing.id.in_(pricing_ids), Pricing.park_id == park.id)
    ).scalars().all()
    unknown = set(pricing_ids) - set(found)
    if unknown:
        raise ValidationError(f"Unknown pricing for this park: {sorted(unknown)[0]}")

    _check_working_hours(park, days, start, end)

    return {
        "days_of_week": days,
        "start_time": start,
        "end_time": end,
        "valid_from": valid_from,
        "valid_until": valid_until,
        "ticket_limit": int(ticket_limit),
        "pricing_ids": pricing_ids,
        "price_adjustment": int(rule.get("price_adjustment") or 0),
    }


def _check_working_hours(park: Park, days: list[int], start: str, end: str):
    if not park.working_hours:
        return
    for d in days:
        hours = park.hours_for_day(d)
        if not hours:
            continue
        name = DAY_NAMES[d]
        if hours.get("closed"):
            raise ValidationError(f"Park is closed on {name}")
        opens, closes = hours.get("from"), hours.get("to")
        if not opens or not closes:
            continue
        if time_to_minutes(start) < time_to_minutes(opens) or \
                time_to_minutes(end, is_end=True) > time_to_minutes(closes, is_end=True):
            raise ValidationError(f"Slot {start}-{end} is outside working hours on {name} ({opens}-{closes})")


def check_overlap(db: Session, park_id: str, valid_from: date, valid_until: date | None, start_time: str,
                  end_time: str, days_of_week, pricing_ids, exclude_template_id: str | None = None) -> list[TimeSlotTemplate]:
    """Active templates of the park that would sell the same pricing at the same moment."""
    q = select(TimeSlotTemplate).where(TimeSlotTemplate.park_id == park_id, TimeSlotTemplate.active == True)  # noqa: E712
    if exclude_template_id:
        q = q.where(TimeSlotTemplate.id != exclude_template_id)
    days, pricings = set(days_of_week), set(pricing_ids)
    start, end = time_to_minutes(start_time), time_to_minutes(end_time, is_end=True)
    conflicts = []
    for t in db.execute(q).scalars().all():
        if not days & set(t.days):
            continue
        if valid_until and valid_until < t.valid_from:
            continue
        if t.valid_until and t.valid_until < valid_from:
            continue
        if not (start < time_to_minutes(t.end_time, is_end=True) and time_to_minutes(t.start_time) < end):
            continue
        if not pricings & set(t.pricing_id_list):
            continue
        conflicts.append(t)
    return conflicts


def _reject_duplicate_or_overlap(db: Session, park_id: str, rule: dict, exclude_template_id: str | None = None):
    q = select(TimeSlotTemplate).where(
        TimeSlotTemplate.park_id == park_id,
        TimeSlotTemplate.days_of_week == _csv(rule["days_of_week"]),
        TimeSlotTemplate.start_time == rule["start_time"],
        TimeSlotTemplate.end_time == rule["end_time"],
    )
    if exclude_template_id:
        q = q.where(TimeSlotTemplate.id != exclude_template_id)
    if db.execute(q).scalars().first():
        raise Conflict("A time slot with the same days and times already exists for this park")
    conflicts = check_overlap(db, park_id, rule["valid_from"], rule["valid_until"], rule["start_time"],
                              rule["end_time"], rule["days_of_week"], rule["pricing_ids"], exclude_template_id)
    if conflicts:
        c = conflicts[0]
        raise Conflict(f"Time slot overlaps existing slot {c.start_time}-{c.end_time} ({c.id})")


def _horizon_end(template: TimeSlotTemplate, today: date) -> date:
    if template.valid_until:
        return template.valid_until
    return max(template.valid_from, today) + timedelta(days=settings.INSTANCE_HORIZON_DAYS)


def materialize_instances(db: Session, template: TimeSlotTemplate, until: date | None = None,
                          today: date | None = None) -> int:
    """Create the missing instances of a template from today on. Existing ones are left untouched."""
    today = today or date.today()
    end = until or _horizon_end(template, today)
    if template.valid_until and end > template.valid_until:
        end = template.valid_until
    existing = set(db.execute(
        select(TimeSlotInstance.date).where(TimeSlotInstance.template_id == template.id)
    ).scalars().all())
    days = set(template.days)
    created = 0
    d = max(template.valid_from, today)
    while d <= end:
        if day_of_week(d) in days and d not in existing:
            db.add(TimeSlotInstance(
                id=str(uuid.uuid4()),
                template_id=template.id,
                date=d,
                ticket_limit=template.ticket_limit,
                available_tickets=template.ticket_limit,
            ))
            created += 1
        d += timedelta(days=1)
    if created:
        db.flush()
    return created


def create_template(db: Session, park_id: str, rule: dict, principal: Principal) -> TimeSlotTemplate:
    _ensure_park_access(principal, park_id)
    park = _get_park(db, park_id)
    norm = _normalize_rule(db, park, rule)
    try:
        _reject_duplicate_or_overlap(db, park_id, norm)
        t = TimeSlotTemplate(
            id=str(uuid.uuid4()),
            park_id=park_id,
            pricing_ids=_csv(norm["pricing_ids"]),
            days_of_week=_csv(norm["days_of_week"]),
            start_time=norm["start_time"],
            end_time=norm["end_time"],
            ticket_limit=norm["ticket_limit"],
            price_adjustment=norm["price_adjustment"],
            valid_from=norm["valid_from"],
            valid_until=norm["valid_until"],
            active=True,
        )
        db.add(t)
        db.flush()
        created = materialize_instances(db, t)
        log_audit(db, principal.id, "template.create", "template", t.id,
                  {"park_id": park_id, "instances": created})
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(t)
    logger.info("Template %s created for park %s with %s instances", t.id, park_id, created)
    return t


def get_template(db: Session, template_id: str) -> TimeSlotTemplate:
    t = db.get(TimeSlotTemplate, template_id)
    if not t:
        raise NotFound("Time slot template not found")
    return t


def _active_booking_count(db: Session, instance_id: str) -> int:
    return int(db.execute(
        select(func.count(Booking.id)).where(
            Booking.time_slot_instance_id == instance_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
    ).scalar_one())


def _any_booking_count(db: Session, instance_id: str) -> int:
    return int(db.execute(
        select(func.count(Booking.id)).where(Booking.time_slot_instance_id == instance_id)
    ).scalar_one())


def _future_instances(db: Session, template_id: str, today: date) -> list[TimeSlotInstance]:
    return db.execute(
        select(TimeSlotInstance)
        .where(TimeSlotInstance.template_id == template_id, TimeSlotInstance.date >= today)
        .order_by(TimeSlotInstance.id)
        .with_for_update()
    ).scalars().all()


def update_template(db: Session, template_id: str, patch: dict, principal: Principal,
                    today: date | None = None) -> TimeSlotTemplate:
    """Edit a template and reconcile its future instances.

    Instances that would be dropped or retimed while holding active bookings block the edit.
    A new ticket limit is applied to every future instance, keeping committed tickets.
    """
    today = today or date.today()
    t = get_template(db, template_id)
    _ensure_park_access(principal, t.park_id)
    park = _get_park(db, t.park_id)

    merged = {
        "days_of_week": t.days,
        "start_time": t.start_time,
        "end_time": t.end_time,
        "valid_from": t.valid_from,
        "valid_until": t.valid_until,
        "ticket_limit": t.ticket_limit,
        "pricing_ids": t.pricing_id_list,
        "price_adjustment": t.price_adjustment,
    }
    merged.update({k: v for k, v in patch.items() if k in merged and (v is not None or k == "valid_until")})
    norm = _normalize_rule(db, park, merged)

    structural = (
        norm["days_of_week"] != t.days
        or norm["start_time"] != t.start_time
        or norm["end_time"] != t.end_time
        or norm["valid_from"] != t.valid_from
        or norm["valid_until"] != t.valid_until
        or norm["pricing_ids"] != t.pricing_id_list
    )
    retimed = norm["start_time"] != t.start_time or norm["end_time"] != t.end_time

    try:
        if structural:
            _reject_duplicate_or_overlap(db, t.park_id, norm, exclude_template_id=t.id)

        days = set(norm["days_of_week"])
        dropped = 0
        kept: list[TimeSlotInstance] = []
        for inst in _future_instances(db, t.id, today):
            still_matches = (
                day_of_week(inst.date) in days
                and inst.date >= norm["valid_from"]
                and (norm["valid_until"] is None or inst.date <= norm["valid_until"])
            )
            active = _active_booking_count(db, inst.id)
            if not still_matches:
                if active:
                    raise Conflict(f"Cannot remove {inst.date.isoformat()}: it has active bookings")
                if _any_booking_count(db, inst.id):
                    kept.append(inst)
                    continue
                db.delete(inst)
                dropped += 1
                continue
            if retimed and active:
                raise Conflict(f"Cannot change times on {inst.date.isoformat()}: it has active bookings")
            kept.append(inst)

        if norm["ticket_limit"] != t.ticket_limit:
            for inst in kept:
                inventory_service.set_limit(db, inst, norm["ticket_limit"])

        t.days_of_week = _csv(norm["days_of_week"])
        t.start_time = norm["start_time"]
        t.end_time = norm["end_time"]
        t.valid_from = norm["valid_from"]
        t.valid_until = norm["valid_until"]
        t.ticket_limit = norm["ticket_limit"]
        t.pricing_ids = _csv(norm["pricing_ids"])
        t.price_adjustment = norm["price_adjustment"]
        db.flush()
        created = materialize_instances(db, t, today=today)

        log_audit(db, principal.id, "template.update", "template", t.id,
                  {"patch": {k: v for k, v in patch.items() if v is not None}, "dropped": dropped, "created": created})
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(t)
    return t


def delete_template(db: Session, template_id: str, principal: Principal, today: date | None = None) -> dict:
    """Delete a template, or archive it when past bookings still reference its instances."""
    today = today or date.today()
    t = get_template(db, template_id)
    _ensure_park_access(principal, t.park_id)
    try:
        for inst in _future_instances(db, t.id, today):
            if _active_booking_count(db, inst.id):
                raise Conflict(f"Time slot has active bookings on {inst.date.isoformat()}")

        instances = db.execute(
            select(TimeSlotInstance).where(TimeSlotInstance.template_id == t.id)
        ).scalars().all()
        removed, referenced = 0, 0
        for inst in instances:
            if _any_booking_count(db, inst.id):
                referenced += 1
            else:
                db.delete(inst)
                removed += 1

        if referenced:
            t.active = False
            outcome = "archived"
        else:
            db.delete(t)
            outcome = "deleted"
        log_audit(db, principal.id, f"template.{outcome}", "template", template_id,
                  {"instances_removed": removed, "instances_kept": referenced})
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Template %s %s (%s instances removed)", template_id, outcome, removed)
    return {"id": template_id, "result": outcome, "instancesRemoved": removed}


def get_templates(db: Session, park_id: str, on_date: date | None = None, pricing_id: str | None = None,
                  weekday: int | None = None) -> list[TimeSlotTemplate]:
    q = select(TimeSlotTemplate).where(TimeSlotTemplate.park_id == park_id, TimeSlotTemplate.active == True)  # noqa: E712
    if on_date:
        q = q.where(TimeSlotTemplate.valid_from <= on_date)
        q = q.where((TimeSlotTemplate.valid_until == None) | (TimeSlotTemplate.valid_until >= on_date))  # noqa: E711
        weekday = day_of_week(on_date) if weekday is None else weekday
    rows = db.execute(q.order_by(TimeSlotTemplate.start_time)).scalars().all()
    if weekday is not None:
        rows = [t for t in rows if weekday in t.days]
    if pricing_id:
        rows = [t for t in rows if pricing_id in t.pricing_id_list]
    return rows


def get_instance(db: Session, instance_id: str) -> TimeSlotInstance:
    inst = db.get(TimeSlotInstance, instance_id)
    if not inst:
        raise NotFound("Time slot instance not found")
    return inst


def list_instances(db: Session, park_id: str | None = None, on_date: date | None = None,
                   pricing_id: str | None = None) -> list[tuple[TimeSlotInstance, TimeSlotTemplate]]:
    q = select(TimeSlotInstance, TimeSlotTemplate).join(
        TimeSlotTemplate, TimeSlotTemplate.id == TimeSlotInstance.template_id
    )
    if park_id:
        q = q.where(TimeSlotTemplate.park_id == park_id)
    if on_date:
        q = q.where(TimeSlotInstance.date == on_date)
    rows = db.execute(q.order_by(TimeSlotInstance.date, TimeSlotTemplate.start_time)).all()
    if pricing_id:
        rows = [r for r in rows if pricing_id in r[1].pricing_id_list]
    return [(r[0], r[1]) for r in rows]


def get_availability(db: Session, park_id: str, on_date: date) -> list[dict]:
    _get_park(db, park_id)
    rows = [(i, t) for i, t in list_instances(db, park_id=park_id, on_date=on_date) if t.active]
    pricing_ids = {p for _, t in rows for p in t.pricing_id_list}
    pricings = {
        p.id: p for p in db.execute(select(Pricing).where(Pricing.id.in_(pricing_ids))).scalars().all()
    } if pricing_ids else {}
    out = []
    for inst, t in rows:
        out.append({
            "instanceId": inst.id,
            "templateId": t.id,
            "date": inst.date,
            "startTime": t.start_time,
            "endTime": t.end_time,
            "ticketLimit": inst.ticket_limit,
            "availableTickets": inst.available_tickets,
            "priceAdjustment": t.price_adjustment,
            "pricings": [
                {"id": p.id, "name": p.name, "unitPrice": unit_price(p, t)}
                for pid in t.pricing_id_list if (p := pricings.get(pid))
            ],
        })
    return out


def update_instance(db: Session, instance_id: str, available_tickets: int, principal: Principal) -> TimeSlotInstance:
    inst = get_instance(db, instance_id)
    t = get_template(db, inst.template_id)
    _ensure_park_access(principal, t.park_id)
    before = inst.available_tickets
    try:
        inst = inventory_service.set_available(db, instance_id, available_tickets)
        log_audit(db, principal.id, "instance.adjust", "instance", instance_id,
                  {"from": before, "to": available_tickets})
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(inst)
    return inst


def extend_instance_horizon(db: Session, today: date | None = None) -> dict:
    """Keep a rolling window of instances for active open-ended templates."""
    today = today or date.today()
    templates = db.execute(
        select(TimeSlotTemplate).where(
            TimeSlotTemplate.active == True,  # noqa: E712
            TimeSlotTemplate.valid_until == None,  # noqa: E711
        )
    ).scalars().all()
    created = 0
    for t in templates:
        created += materialize_instances(db, t, today=today)
    db.commit()
    if created:
        logger.info("Extended instance horizon: %s new instances over %s templates", created, len(templates))
    return {"templates": len(templates), "created": created}
