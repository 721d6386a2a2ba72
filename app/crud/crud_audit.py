# crud_audit.py
from typing import List, Optional, Type
from sqlalchemy.orm import Session
from sqlalchemy.sql import desc

from app.models import ActivityLog
from app.models_forms import FormAuditLog

# =====================================================================================
# Form Audit Trail (append-only)
# =====================================================================================
class CRUDFormAuditLog:
    def __init__(self, model: Type[FormAuditLog]):
        self.model = model

    def record(
        self,
        db: Session,
        client_form_id: int,
        user_id: Optional[int],
        action: str,
        field_name: Optional[str] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> FormAuditLog:
        """
        Appends one audit row inside the caller's transaction.
        Flushes but never commits; errors propagate so the triggering mutation is rolled back.
        """
        db_log = self.model(
            client_form_id=client_form_id,
            user_id=user_id,
            action=action,
            field_name=field_name,
            old_value=old_value,
            new_value=new_value,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(db_log)
        db.flush()
        return db_log

    def get_for_client_form(
        self,
        db: Session,
        client_form_id: int,
        action: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[FormAuditLog]:
        query = db.query(self.model).filter(self.model.client_form_id == client_form_id)
        if action:
            query = query.filter(self.model.action == action)

        return (
            query.order_by(desc(self.model.created_at), desc(self.model.id))
            .offset(skip)
            .limit(limit)
            .all()
        )

# =====================================================================================
# Firm Activity Log
# =====================================================================================
class CRUDActivityLog:
    def __init__(self, model: Type[ActivityLog]):
        self.model = model

    def get_for_law_firm(
        self,
        db: Session,
        law_firm_id: int,
        client_id: Optional[int] = None,
        action_type: Optional[str] = None,
        limit: int = 10,
    ) -> List[ActivityLog]:
        """
        Retrieves the most recent activity entries of a law firm, newest first.
        """
        query = db.query(self.model).filter(self.model.law_firm_id == law_firm_id)
        if client_id:
            query = query.filter(self.model.client_id == client_id)
        if action_type:
            query = query.filter(self.model.action_type == action_type)

        return query.order_by(desc(self.model.timestamp), desc(self.model.id)).limit(limit).all()
