import logging

from apscheduler.schedulers.background import BackgroundScheduler

from database import SessionLocal
from modules.auth.services.auth_service import AuthService

logger = logging.getLogger(__name__)


def start_nonce_cleanup_job(interval_minutes: int, session_factory=SessionLocal) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()

    def job():
        with session_factory() as session:
            AuthService.purge_expired_nonces(session)

    scheduler.add_job(job, 'interval', minutes=interval_minutes, max_instances=1, coalesce=True)
    scheduler.start()
    logger.info("Nonce cleanup job running every %d minutes", interval_minutes)
    return scheduler
