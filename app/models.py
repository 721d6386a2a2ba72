# app/models.py
from __future__ import annotations
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum as SQLEnum, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.constants import UserRole

class BaseModel(Base):
    __abstract__ = True

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    is_deleted = Column(Boolean, default=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def soft_delete(self):
        self.is_deleted = True
        self.deleted_at = func.now()

    def restore(self):
        self.is_deleted = False
        self.deleted_at = None

# --- ASSOCIATION TABLES ---
class UserLawFirm(Base):
    __tablename__ = 'user_law_firms'
    user_id = Column(Integer, ForeignKey('users.id'), primary_key=True)
    law_firm_id = Column(Integer, ForeignKey('law_firms.id'), primary_key=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="law_firm_memberships")
    law_firm = relationship("LawFirm", back_populates="user_memberships")


# --- CORE MODELS ---

class LawFirm(BaseModel):
    __tablename__ = "law_firms"
    name = Column(String, unique=True, index=True, nullable=False, comment="Law firm name")
    contact_email = Column(String, nullable=True, comment="Recipient of firm-facing form notifications")
    phone = Column(String, nullable=True)
    address = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    user_memberships = relationship("UserLawFirm", back_populates="law_firm", cascade="all, delete-orphan")
    clients = relationship("Client", back_populates="law_firm", cascade="all, delete-orphan")
    form_templates = relationship("FormTemplate", back_populates="law_firm")

    def __repr__(self: LawFirm):
        return f"<LawFirm(id={self.id}, name='{self.name}')>"


class User(BaseModel):
    __tablename__ = "users"
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.LAWYER)

    law_firm_memberships = relationship("UserLawFirm", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self: User):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class Client(BaseModel):
    __tablename__ = "clients"
    law_firm_id = Column(Integer, ForeignKey("law_firms.id"), nullable=False, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=True, comment="Recipient of client-facing form notifications; optional")
    phone = Column(String, nullable=True)
    address = Column(String, nullable=True)

    law_firm = relationship("LawFirm", back_populates="clients")
    client_forms = relationship("ClientForm", back_populates="client")

    def __repr__(self: Client):
        return f"<Client(id={self.id}, full_name='{self.full_name}', law_firm_id={self.law_firm_id})>"


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, comment="ID of the user who performed the action (null for anonymous clients)")
    law_firm_id = Column(Integer, ForeignKey("law_firms.id"), nullable=False, index=True, comment="Law firm this activity belongs to (for filtering)")
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, comment="Client the activity concerns, when any")
    action_type = Column(String, nullable=False, comment="Type of action (e.g., FORM_SENT, FORM_COMPLETED)")
    entity_type = Column(String, nullable=False, comment="Type of entity affected (e.g., ClientForm, FormTemplate)")
    entity_id = Column(Integer, nullable=True)
    details = Column(JSON, nullable=True, comment="Sanitized JSON context of the action")
    ip_address = Column(String, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
    law_firm = relationship("LawFirm")
    client = relationship("Client")

    def __repr__(self: ActivityLog):
        return f"<ActivityLog(id={self.id}, action='{self.action_type}', entity='{self.entity_type}:{self.entity_id}', user_id={self.user_id})>"


# Do not remove this line! It registers the form models once BaseModel exists.
import app.models_forms
