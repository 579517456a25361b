import logging
from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError
from parkbooking.db import session as db_session
from parkbooking.services import checkout_service, time_slot_service
from parkbooking.services.email_service import process_pending_emails

logger = logging.getLogger(__name__)


def _run(job, *args, **kwargs) -> dict:
    db: Session = db_session.SessionLocal()
    try:
        try:
            return job(db, *args, **kwargs)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            logger.warning("%s skipped: tables missing", job.__name__)
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def expire_pending_checkouts() -> dict:
    """Cancel unpaid checkouts older than CHECKOUT_EXPIRY_MINUTES."""
    return _run(checkout_service.expire_pending_checkouts)


def extend_instance_horizon() -> dict:
    return _run(time_slot_service.extend_instance_horizon)


def process_email_queue(limit: int = 50) -> dict:
    """Process queued/failed emails (retry send). Run periodically via Celery beat."""
    return _run(process_pending_emails, limit=limit)
