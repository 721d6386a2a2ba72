# app/models_forms.py

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Numeric, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models import BaseModel # Inherit from your base model
from app.constants import ClientFormStatus, NotificationStatus, DEFAULT_ACCEPTED_FORMATS, DEFAULT_MAX_FILE_SIZE

# ==============================================================================
# 1. TEMPLATE DEFINITIONS (Template -> Sections -> Fields, Required Documents)
# ==============================================================================

class FormTemplate(BaseModel):
    __tablename__ = 'form_templates'

    law_firm_id = Column(Integer, ForeignKey("law_firms.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    form_type = Column(String(50), nullable=False, comment="e.g. DS-160, I-485, N-400, CUSTOM")
    process_type = Column(String(100), nullable=False, comment="e.g. Tourist Visa, Green Card")
    version = Column(Integer, default=1, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    law_firm = relationship("LawFirm", back_populates="form_templates")
    creator = relationship("User")
    sections = relationship(
        "FormSection",
        back_populates="template",
        order_by="FormSection.section_order",
        cascade="all, delete-orphan",
    )
    required_documents = relationship(
        "FormRequiredDocument",
        back_populates="template",
        order_by="FormRequiredDocument.document_order",
        cascade="all, delete-orphan",
    )
    client_forms = relationship("ClientForm", back_populates="template")


class FormSection(BaseModel):
    __tablename__ = 'form_sections'

    form_template_id = Column(Integer, ForeignKey("form_templates.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    section_order = Column(Integer, default=0, nullable=False)
    is_required = Column(Boolean, default=True, nullable=False)

    # Informational only; the ordering it implies is not enforced.
    depends_on_section_id = Column(Integer, ForeignKey("form_sections.id"), nullable=True)
    conditional_logic = Column(JSON, nullable=True, comment="Opaque, interpreted by the presentation layer")

    template = relationship("FormTemplate", back_populates="sections")
    depends_on_section = relationship("FormSection", remote_side="FormSection.id")
    fields = relationship(
        "FormField",
        back_populates="section",
        order_by="FormField.field_order",
        cascade="all, delete-orphan",
    )


class FormField(BaseModel):
    __tablename__ = 'form_fields'

    section_id = Column(Integer, ForeignKey("form_sections.id"), nullable=False, index=True)
    field_name = Column(String(100), nullable=False, comment="Business key of the answer within a client form")
    field_label = Column(String(200), nullable=False)
    field_type = Column(String(50), nullable=False, comment="text, email, date, select, checkbox, file, ...")
    field_order = Column(Integer, default=0, nullable=False)
    is_required = Column(Boolean, default=False, nullable=False)

    validation_rules = Column(JSON, nullable=True)
    options = Column(JSON, nullable=True)
    placeholder = Column(String(200), nullable=True)
    help_text = Column(Text, nullable=True)
    conditional_logic = Column(JSON, nullable=True)

    section = relationship("FormSection", back_populates="fields")


class FormRequiredDocument(BaseModel):
    __tablename__ = 'form_required_documents'

    form_template_id = Column(Integer, ForeignKey("form_templates.id"), nullable=False, index=True)
    document_type = Column(String(100), nullable=False)
    document_name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    is_required = Column(Boolean, default=True, nullable=False)
    accepted_formats = Column(String(200), default=DEFAULT_ACCEPTED_FORMATS, nullable=False, comment="Comma separated extensions")
    max_file_size = Column(Integer, default=DEFAULT_MAX_FILE_SIZE, nullable=False, comment="Bytes")
    document_order = Column(Integer, default=0, nullable=False)
    conditional_logic = Column(JSON, nullable=True)

    template = relationship("FormTemplate", back_populates="required_documents")

# ==============================================================================
# 2. LIVE INSTANCES (Client Forms, Responses, Documents)
# ==============================================================================

class ClientForm(BaseModel):
    """
    One template sent to one client.
    The access token is the only credential of the client-facing endpoints.
    """
    __tablename__ = 'client_forms'

    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    form_template_id = Column(Integer, ForeignKey("form_templates.id"), nullable=False, index=True)

    form_title = Column(String(200), nullable=False)
    status = Column(String(50), default=ClientFormStatus.PENDING, nullable=False, index=True,
                    comment="PENDING, IN_PROGRESS, COMPLETED, REVIEWED, APPROVED, REJECTED")
    access_token = Column(String(255), unique=True, index=True, nullable=False)

    expires_at = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    review_notes = Column(Text, nullable=True)

    completion_percentage = Column(Numeric(precision=5, scale=2), default=0, nullable=False)
    instructions = Column(Text, nullable=True)

    # Relationships
    client = relationship("Client", back_populates="client_forms")
    template = relationship("FormTemplate", back_populates="client_forms")
    reviewer = relationship("User")
    responses = relationship("FormResponse", back_populates="client_form", cascade="all, delete-orphan")
    documents = relationship("ClientFormDocument", back_populates="client_form", cascade="all, delete-orphan")
    notifications = relationship("FormNotification", back_populates="client_form", cascade="all, delete-orphan")
    audit_logs = relationship("FormAuditLog", back_populates="client_form")


class FormResponse(BaseModel):
    __tablename__ = 'form_responses'

    client_form_id = Column(Integer, ForeignKey("client_forms.id"), nullable=False, index=True)
    field_id = Column(Integer, ForeignKey("form_fields.id"), nullable=False)
    field_name = Column(String(100), nullable=False)

    response_value = Column(Text, nullable=True)
    response_data = Column(JSON, nullable=True, comment="Structured answer for complex field types")

    is_verified = Column(Boolean, default=False, nullable=False)
    verified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    client_form = relationship("ClientForm", back_populates="responses")
    field = relationship("FormField")
    verifier = relationship("User")

    __table_args__ = (
        UniqueConstraint('client_form_id', 'field_id', name='_client_form_field_uc'),
    )


class ClientFormDocument(BaseModel):
    __tablename__ = 'client_form_documents'

    client_form_id = Column(Integer, ForeignKey("client_forms.id"), nullable=False, index=True)
    required_document_id = Column(Integer, ForeignKey("form_required_documents.id"), nullable=True)

    document_type = Column(String(100), nullable=False)
    original_filename = Column(String(255), nullable=False)
    stored_filename = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)

    is_verified = Column(Boolean, default=False, nullable=False)
    verified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    upload_notes = Column(Text, nullable=True)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now())

    client_form = relationship("ClientForm", back_populates="documents")
    required_document = relationship("FormRequiredDocument")
    verifier = relationship("User")

# ==============================================================================
# 3. SIDE RECORDS (Notifications, Audit Trail)
# ==============================================================================

class FormNotification(BaseModel):
    """
    Record of an outbound message. Creating one does not deliver it.
    """
    __tablename__ = 'form_notifications'

    client_form_id = Column(Integer, ForeignKey("client_forms.id"), nullable=False, index=True)
    notification_type = Column(String(50), nullable=False)
    recipient_email = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    sent_at = Column(DateTime(timezone=True), nullable=True)
    opened_at = Column(DateTime(timezone=True), nullable=True)
    clicked_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(50), default=NotificationStatus.PENDING, nullable=False)

    client_form = relationship("ClientForm", back_populates="notifications")


class FormAuditLog(Base):
    __tablename__ = 'form_audit_logs'

    id = Column(Integer, primary_key=True, index=True)
    client_form_id = Column(Integer, ForeignKey("client_forms.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, comment="NULL when the action was performed by the client")
    action = Column(String(100), nullable=False)
    field_name = Column(String(100), nullable=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    client_form = relationship("ClientForm", back_populates="audit_logs")
    user = relationship("User")

    def __repr__(self):
        return f"<FormAuditLog(id={self.id}, client_form_id={self.client_form_id}, action='{self.action}', field='{self.field_name}')>"
