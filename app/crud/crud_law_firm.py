# app/crud/crud_law_firm.py
from typing import Optional
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models import Client, LawFirm


class CRUDLawFirm(CRUDBase):
    def get_active(self, db: Session, law_firm_id: int) -> Optional[LawFirm]:
        return db.query(self.model).filter(
            self.model.id == law_firm_id,
            self.model.is_active == True,
            self.model.is_deleted == False,
        ).first()


class CRUDClient(CRUDBase):
    def get_for_law_firm(self, db: Session, law_firm_id: int, client_id: int) -> Optional[Client]:
        """Client lookup scoped to a law firm; clients of other firms are invisible."""
        return db.query(self.model).filter(
            self.model.id == client_id,
            self.model.law_firm_id == law_firm_id,
            self.model.is_deleted == False,
        ).first()
