from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from celery.signals import worker_ready
from parkbooking.core.config import settings


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        new_query = urlencode(qs, doseq=True)
        return urlunparse(parsed._replace(query=new_query))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "parkbooking",
    broker=_redis_url,
    backend=_redis_url,
    include=["parkbooking.tasks.jobs"],
)

celery.conf.timezone = "Africa/Algiers"

# Fill the instance horizon as soon as a worker comes up
@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    from parkbooking.tasks.jobs import extend_instance_horizon
    extend_instance_horizon.delay()

celery.conf.beat_schedule = {
    "expire-checkouts-every-minute": {
        "task": "parkbooking.tasks.jobs.expire_pending_checkouts",
        "schedule": 60.0,
    },
    "extend-instance-horizon-every-6-hours": {
        "task": "parkbooking.tasks.jobs.extend_instance_horizon",
        "schedule": 21600.0,
    },
    "process-email-queue-every-2-minutes": {
        "task": "parkbooking.tasks.jobs.process_email_queue",
        "schedule": 120.0,
        "kwargs": {"limit": 50},
    },
}
