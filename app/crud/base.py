# app/crud/base.py
from typing import Any, Dict, Optional, Type, TypeVar
from sqlalchemy.orm import Session
from app.models import BaseModel as SQLBaseModel, ActivityLog

# Define ModelType for generic CRUDBase typing
ModelType = TypeVar("ModelType", bound=SQLBaseModel)

# =====================================================================================
# Base CRUD Class Definition (CRUDBase)
# =====================================================================================
class CRUDBase:
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: Any) -> Optional[ModelType]:

        return db.query(self.model).filter(self.model.id == id, self.model.is_deleted == False).first()

    def create(self, db: Session, obj_in: Any, **kwargs: Any) -> ModelType:

        obj_data = obj_in.model_dump(exclude_unset=True) if obj_in is not None else {}
        create_data = {**obj_data, **kwargs}
        db_obj = self.model(**create_data)
        db.add(db_obj)
        db.flush()
        db.refresh(db_obj)
        return db_obj


# =====================================================================================
# Log Action Utility
# =====================================================================================

def sanitize_log_details(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Recursively sanitizes a dictionary of log details to remove or mask sensitive information.

    This function checks for a predefined list of sensitive keywords in dictionary keys
    and replaces their corresponding values with '********'. It also handles nested
    dictionaries and lists of dictionaries to ensure deep sanitization.
    """
    if not data:
        return None

    sensitive_keys = [
        "password",
        "token",
        "access_token",
        "key",
        "secret",
        "api_key",
        "credentials"
    ]

    sanitized_data = data.copy()

    for key, value in data.items():
        # Mask direct sensitive key-value pairs
        if any(sk in key.lower() for sk in sensitive_keys):
            sanitized_data[key] = "********"

        # Recursively sanitize nested dictionaries
        elif isinstance(value, dict):
            sanitized_data[key] = sanitize_log_details(value)

        # Recursively sanitize lists of dictionaries
        elif isinstance(value, list):
            sanitized_data[key] = [
                sanitize_log_details(item) if isinstance(item, dict) else item
                for item in value
            ]

    return sanitized_data


def log_action(
    db: Session,
    user_id: Optional[int],
    action_type: str,
    entity_type: str,
    entity_id: Optional[int],
    law_firm_id: int,
    details: Optional[Dict[str, Any]] = None,
    client_id: Optional[int] = None,
    ip_address: Optional[str] = None,
) -> ActivityLog:
    """
    Appends an entry to the firm activity log after sanitizing the details.
    The entry joins the caller's transaction; a failure here aborts it.
    """
    activity_entry = ActivityLog(
        user_id=user_id,
        law_firm_id=law_firm_id,
        client_id=client_id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        details=sanitize_log_details(details),
        ip_address=ip_address,
    )
    db.add(activity_entry)
    db.flush()
    return activity_entry
