from parkbooking.tasks.celery_app import celery
from parkbooking.tasks import worker_jobs

@celery.task(name="parkbooking.tasks.jobs.expire_pending_checkouts")
def expire_pending_checkouts():
    return worker_jobs.expire_pending_checkouts()

@celery.task(name="parkbooking.tasks.jobs.extend_instance_horizon")
def extend_instance_horizon():
    return worker_jobs.extend_instance_horizon()


@celery.task(name="parkbooking.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(limit=limit)
