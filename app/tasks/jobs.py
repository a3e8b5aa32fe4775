from app.tasks.celery_app import celery
from app.tasks import worker_jobs
from app.api.deps import get_paynow_adapter
from app.core.config import settings

@celery.task(name="app.tasks.jobs.poll_pending_payments")
def poll_pending_payments(limit: int = 50):
    if not (settings.PAYNOW_INTEGRATION_ID and settings.PAYNOW_INTEGRATION_KEY):
        return {"skipped": True, "reason": "paynow_not_configured"}
    return worker_jobs.poll_pending_payments(get_paynow_adapter(), limit=limit)
