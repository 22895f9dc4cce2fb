import logging
from apscheduler.schedulers.background import BackgroundScheduler
from database import SessionLocal
from modules.documents.services.signature_service import SignatureService

logger = logging.getLogger(__name__)

def run_expiry(session_factory=SessionLocal):
    with session_factory() as session:
        return SignatureService.expire_stale_requests(session)

def start_expiry_job() -> BackgroundScheduler:
    scheduler = BackgroundScheduler()

    def job():
        try:
            run_expiry()
        except Exception:
            logger.exception("Signature request expiry job failed")

    scheduler.add_job(job, 'interval', hours=1, id='expire_signature_requests')  # cada hora
    scheduler.start()
    return scheduler
