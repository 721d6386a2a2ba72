# app/crud/crud_user.py
from typing import List
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models import LawFirm, UserLawFirm


# =====================================================================================
# User Management
# =====================================================================================
class CRUDUser(CRUDBase):
    def get_law_firm_ids(self, db: Session, user_id: int) -> List[int]:
        """
        Returns the ids of the active law firms the user belongs to, oldest membership first.
        """
        rows = (
            db.query(UserLawFirm.law_firm_id)
            .join(LawFirm, LawFirm.id == UserLawFirm.law_firm_id)
            .filter(
                UserLawFirm.user_id == user_id,
                LawFirm.is_active == True,
                LawFirm.is_deleted == False,
            )
            .order_by(UserLawFirm.created_at, UserLawFirm.law_firm_id)
            .all()
        )
        return [row.law_firm_id for row in rows]
