from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from celery.signals import setup_logging

from app.core.config import settings
from app.core.logging import configure_logging


def broker_url(url: str) -> str:
    """rediss:// brokers (managed Redis over TLS) need ssl_cert_reqs in the URL for Celery."""
    parsed = urlparse(url or "")
    if parsed.scheme.lower() != "rediss":
        return url
    query = parse_qs(parsed.query)
    query.setdefault("ssl_cert_reqs", ["CERT_NONE"])
    return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))


@setup_logging.connect
def _use_app_logging(**kwargs):
    # keeps Celery from installing its own root handler
    configure_logging()


celery = Celery(
    "zimtravel",
    broker=broker_url(settings.REDIS_URL),
    backend=broker_url(settings.REDIS_URL),
    include=["app.tasks.jobs"],
)

celery.conf.update(
    timezone="Africa/Harare",
    task_acks_late=True,
    # one poll sweep at a time; an overlapping sweep would just re-poll the same rows
    worker_prefetch_multiplier=1,
    beat_schedule={
        "poll-pending-paynow-payments": {
            "task": "app.tasks.jobs.poll_pending_payments",
            "schedule": 60.0,
            "kwargs": {"limit": 50},
        },
    },
)
