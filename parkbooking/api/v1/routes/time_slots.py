from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from parkbooking.db.session import get_db
from parkbooking.api.deps import require_roles
from parkbooking.core.security import Principal
from parkbooking.models.time_slot_instance import TimeSlotInstance
from parkbooking.models.time_slot_template import TimeSlotTemplate
from parkbooking.schemas.time_slots import (
    TemplateCreate, TemplateUpdate, TemplateOut, TemplateDeleteOut, OverlapCheck, OverlapOut,
    InstanceOut, InstanceUpdate, AvailabilityOut,
)
from parkbooking.services import time_slot_service

router = APIRouter(tags=["time-slots"])

staff = require_roles("admin", "sous_admin")


def _template_out(t: TimeSlotTemplate) -> TemplateOut:
    return TemplateOut(
        id=t.id,
        parkId=t.park_id,
        pricingIds=t.pricing_id_list,
        daysOfWeek=t.days,
        startTime=t.start_time,
        endTime=t.end_time,
        ticketLimit=t.ticket_limit,
        priceAdjustment=t.price_adjustment or 0,
        validFrom=t.valid_from,
        validUntil=t.valid_until,
        active=t.active,
    )


def _instance_out(inst: TimeSlotInstance, t: TimeSlotTemplate | None = None) -> InstanceOut:
    return InstanceOut(
        id=inst.id,
        templateId=inst.template_id,
        parkId=t.park_id if t else None,
        date=inst.date,
        startTime=t.start_time if t else None,
        endTime=t.end_time if t else None,
        ticketLimit=inst.ticket_limit,
        availableTickets=inst.available_tickets,
    )


@router.post("/parks/{park_id}/templates", response_model=TemplateOut, status_code=201)
def create_template(park_id: str, body: TemplateCreate, db: Session = Depends(get_db),
                    principal: Principal = Depends(staff)):
    t = time_slot_service.create_template(db, park_id, body.to_rule(), principal)
    return _template_out(t)


@router.get("/templates/{park_id}", response_model=list[TemplateOut])
def list_templates(park_id: str, date: Optional[date] = None, pricingId: Optional[str] = None,
                   dayOfWeek: Optional[int] = None, db: Session = Depends(get_db)):
    rows = time_slot_service.get_templates(db, park_id, on_date=date, pricing_id=pricingId, weekday=dayOfWeek)
    return [_template_out(t) for t in rows]


@router.put("/templates/{template_id}", response_model=TemplateOut)
def update_template(template_id: str, body: TemplateUpdate, db: Session = Depends(get_db),
                    principal: Principal = Depends(staff)):
    t = time_slot_service.update_template(db, template_id, body.to_patch(), principal)
    return _template_out(t)


@router.delete("/templates/{template_id}", response_model=TemplateDeleteOut)
def delete_template(template_id: str, db: Session = Depends(get_db), principal: Principal = Depends(staff)):
    return time_slot_service.delete_template(db, template_id, principal)


@router.post("/templates/check-overlap", response_model=OverlapOut)
def check_overlap(body: OverlapCheck, db: Session = Depends(get_db), principal: Principal = Depends(staff)):
    conflicts = time_slot_service.check_overlap(
        db, body.parkId, body.validFrom, body.validUntil, body.startTime, body.endTime,
        body.daysOfWeek, body.pricingIds, exclude_template_id=body.excludeTemplateId,
    )
    return OverlapOut(
        hasOverlap=bool(conflicts),
        conflicts=[_template_out(t) for t in conflicts],
        newSlot=body.model_dump(mode="json", exclude={"excludeTemplateId"}),
    )


@router.get("/parks/{park_id}/availability", response_model=list[AvailabilityOut])
def availability(park_id: str, date: date, db: Session = Depends(get_db)):
    return time_slot_service.get_availability(db, park_id, date)


@router.get("/instances", response_model=list[InstanceOut])
def list_instances(parkId: Optional[str] = None, date: Optional[date] = None, pricingId: Optional[str] = None,
                   db: Session = Depends(get_db)):
    rows = time_slot_service.list_instances(db, park_id=parkId, on_date=date, pricing_id=pricingId)
    return [_instance_out(i, t) for i, t in rows]


@router.get("/instances/{instance_id}", response_model=InstanceOut)
def get_instance(instance_id: str, db: Session = Depends(get_db)):
    inst = time_slot_service.get_instance(db, instance_id)
    return _instance_out(inst, db.get(TimeSlotTemplate, inst.template_id))


@router.put("/instances/{instance_id}", response_model=InstanceOut)
def update_instance(instance_id: str, body: InstanceUpdate, db: Session = Depends(get_db),
                    principal: Principal = Depends(staff)):
    inst = time_slot_service.update_instance(db, instance_id, body.availableTickets, principal)
    return _instance_out(inst, db.get(TimeSlotTemplate, inst.template_id))

