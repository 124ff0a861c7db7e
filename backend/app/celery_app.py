"""
Celery worker for operator-initiated marketplace re-sends.

Failed syncs are never retried automatically; an operator enqueues them
through the bulk re-send endpoint.
"""
from celery import Celery
import logging
from .config import settings
from .database import SessionLocal
from .services.side_effects import get_side_effect_channels
from .use_cases.feedback_lifecycle import send_marketplace_update_use_case

logger = logging.getLogger(__name__)

celery_app = Celery(
    "production_feedback",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
)


@celery_app.task(name="resend_marketplace_update")
def resend_marketplace_update(feedback_id: int) -> dict:
    """Re-push one feedback to the marketplace in a worker session."""
    db = SessionLocal()
    try:
        result = send_marketplace_update_use_case(
            db=db,
            feedback_pk=feedback_id,
            channels=get_side_effect_channels(),
        )
        logger.info("Re-send for feedback %s finished: %s", feedback_id, result.message)
        return result.to_dict()
    except Exception:
        db.rollback()
        logger.error("Re-send for feedback %s crashed", feedback_id, exc_info=True)
        raise
    finally:
        db.close()
