from datetime import date, datetime, time
from typing import List, Optional, Tuple
from sqlalchemy import or_
from sqlalchemy.orm import Session

from modules.audit.models.audit_log import AuditLog

class AuditRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def save(self, entry: AuditLog) -> AuditLog:
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def search(
        self,
        user_id: Optional[int] = None,
        event_type: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> Tuple[List[AuditLog], int]:
        query = self.db.query(AuditLog)

        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        if event_type:
            query = query.filter(AuditLog.event_type == event_type)
        if search:
            # Solo columnas de texto indexables; details no participa
            pattern = f"%{search}%"
            query = query.filter(or_(AuditLog.event_type.ilike(pattern), AuditLog.user_email.ilike(pattern)))
        if start_date:
            query = query.filter(AuditLog.timestamp >= datetime.combine(start_date, time.min))
        if end_date:
            query = query.filter(AuditLog.timestamp <= datetime.combine(end_date, time.max))

        total = query.count()
        items = (
            query
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    def find_by_signature_request(self, signature_request_id: str) -> List[AuditLog]:
        return (
            self.db
            .query(AuditLog)
            .filter(AuditLog.signature_request_id == signature_request_id)
            .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
            .all()
        )

    def recent(self, limit: int = 10, start: Optional[datetime] = None,
               end: Optional[datetime] = None) -> List[AuditLog]:
        query = self.db.query(AuditLog)
        if start:
            query = query.filter(AuditLog.timestamp >= start)
        if end:
            query = query.filter(AuditLog.timestamp <= end)
        return query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()

    def distinct_actors(self) -> List[Tuple[int, Optional[str]]]:
        return (
            self.db
            .query(AuditLog.user_id, AuditLog.user_email)
            .filter(AuditLog.user_id.isnot(None))
            .distinct()
            .order_by(AuditLog.user_email)
            .all()
        )

    def distinct_event_types(self) -> List[str]:
        rows = self.db.query(AuditLog.event_type).distinct().order_by(AuditLog.event_type).all()
        return [row[0] for row in rows]
