# app/schemas/all_schemas.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict, Any


class ActivityLogOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    law_firm_id: int
    client_id: Optional[int] = None
    action_type: str = Field(..., description="Type of action (e.g., FORM_SENT, FORM_COMPLETED)")
    entity_type: str = Field(..., description="Type of entity affected (e.g., ClientForm)")
    entity_id: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    timestamp: Optional[datetime] = None

    class Config:
        from_attributes = True
