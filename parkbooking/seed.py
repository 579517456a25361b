import json
import logging
import uuid
from datetime import date

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError

from parkbooking.db.session import SessionLocal
from parkbooking.models.park import Park
from parkbooking.models.pricing import Pricing
from parkbooking.models.time_slot_template import TimeSlotTemplate
from parkbooking.services.time_slot_service import materialize_instances

logger = logging.getLogger(__name__)

DEMO_HOURS = {
    day: {"from": "09:00", "to": "19:00", "closed": False}
    for day in ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Saturday"]
}
DEMO_HOURS["Friday"] = {"from": "14:00", "to": "19:00", "closed": False}


def ensure_park(db: Session, name: str, location: str) -> Park:
    p = db.query(Park).filter(Park.name == name).first()
    if p:
        return p
    p = Park(
        id=str(uuid.uuid4()),
        name=name,
        location=location,
        working_hours_json=json.dumps(DEMO_HOURS),
        max_booking_days=30,
    )
    db.add(p)
    db.commit()
    return p


def ensure_pricing(db: Session, park: Park, name: str, price: int, additional_charge: int = 0) -> Pricing:
    pr = db.query(Pricing).filter(Pricing.park_id == park.id, Pricing.name == name).first()
    if pr:
        return pr
    pr = Pricing(id=str(uuid.uuid4()), park_id=park.id, name=name, price=price, additional_charge=additional_charge)
    db.add(pr)
    db.commit()
    return pr


def run(db=None):
    own_session = db is None
    if own_session:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM parks LIMIT 1"))
        except ProgrammingError:
            db.rollback()
            logger.warning("[seed] parks table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        park = ensure_park(db, "Forest Adventure Algiers", "Ben Aknoun, Algiers")
        adult = ensure_pricing(db, park, "Adult circuit", 2500)
        kids = ensure_pricing(db, park, "Kids circuit", 1500)

        if not db.query(TimeSlotTemplate).filter(TimeSlotTemplate.park_id == park.id).first():
            for start, end in [("10:00", "12:00"), ("14:00", "16:00")]:
                t = TimeSlotTemplate(
                    id=str(uuid.uuid4()),
                    park_id=park.id,
                    pricing_ids=",".join(sorted([adult.id, kids.id])),
                    days_of_week="0,1,2,3,4,6",  # closed Friday mornings
                    start_time=start,
                    end_time=end,
                    ticket_limit=40,
                    price_adjustment=0,
                    valid_from=date.today(),
                    valid_until=None,
                    active=True,
                )
                db.add(t)
                db.flush()
                materialize_instances(db, t)
            db.commit()
        logger.info("[seed] demo park %s ready", park.id)
    finally:
        if own_session:
            db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run()
