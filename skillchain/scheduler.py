import logging
from apscheduler.schedulers.background import BackgroundScheduler
from .config import get_settings
from .database import SessionLocal
from .services.minting import build_mint_policy
from .services.reconcile import reconcile_all

logger = logging.getLogger(__name__)


def reconcile_job() -> None:
    """Periodic repair of degraded settlements."""
    db = SessionLocal()
    try:
        settings = get_settings()
        summary = reconcile_all(db, build_mint_policy(settings), settings.reconcile_grace_minutes)
        if any(summary.values()):
            logger.info("Reconcile summary: %s", summary)
    except Exception:
        logger.exception("Reconcile job failed")
        db.rollback()
    finally:
        db.close()


def create_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        reconcile_job, "interval", minutes=get_settings().reconcile_interval_minutes,
        id="reconcile", max_instances=1, coalesce=True,
    )
    return scheduler
