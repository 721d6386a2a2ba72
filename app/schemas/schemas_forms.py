from typing import List, Optional, Any
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from app.constants import DEFAULT_ACCEPTED_FORMATS, DEFAULT_MAX_FILE_SIZE

# Conditional logic, validation rules, options and response data are opaque
# JSON values: accepted and returned as-is, never inspected.

# --- 1. TEMPLATE STRUCTURE (create) ---
class FormFieldCreate(BaseModel):
    field_name: str = Field(..., min_length=1, max_length=100)
    field_label: str = Field(..., min_length=1, max_length=200)
    field_type: str = Field(..., min_length=1, max_length=50)
    field_order: int = 0
    is_required: bool = False
    validation_rules: Optional[Any] = None
    options: Optional[Any] = None
    placeholder: Optional[str] = Field(None, max_length=200)
    help_text: Optional[str] = None
    conditional_logic: Optional[Any] = None

class FormSectionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    section_order: int = 0
    is_required: bool = True
    depends_on_section_id: Optional[int] = None
    conditional_logic: Optional[Any] = None
    fields: List[FormFieldCreate] = []

class FormRequiredDocumentCreate(BaseModel):
    document_type: str = Field(..., min_length=1, max_length=100)
    document_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    is_required: bool = True
    accepted_formats: str = Field(DEFAULT_ACCEPTED_FORMATS, max_length=200)
    max_file_size: int = Field(DEFAULT_MAX_FILE_SIZE, gt=0)
    document_order: int = 0
    conditional_logic: Optional[Any] = None

class FormTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    form_type: str = Field(..., min_length=1, max_length=50, description="e.g. DS-160, I-485, CUSTOM")
    process_type: str = Field(..., min_length=1, max_length=100, description="e.g. Tourist Visa, Green Card")
    sections: List[FormSectionCreate] = []
    required_documents: List[FormRequiredDocumentCreate] = []

# --- 2. TEMPLATE STRUCTURE (out) ---
class FormFieldOut(FormFieldCreate):
    id: int

    class Config:
        from_attributes = True

class FormSectionOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    section_order: int
    is_required: bool
    depends_on_section_id: Optional[int] = None
    conditional_logic: Optional[Any] = None
    fields: List[FormFieldOut] = []

    class Config:
        from_attributes = True

class FormRequiredDocumentOut(FormRequiredDocumentCreate):
    id: int

    class Config:
        from_attributes = True

class FormTemplateOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    form_type: str
    process_type: str
    version: int
    is_active: bool
    created_at: Optional[datetime] = None
    sections: List[FormSectionOut] = []
    required_documents: List[FormRequiredDocumentOut] = []

    class Config:
        from_attributes = True

# --- 3. CLIENT FORMS ---
class SendFormToClientRequest(BaseModel):
    client_id: int
    form_template_id: int
    form_title: str = Field(..., min_length=1, max_length=200)
    expires_at: Optional[datetime] = None
    instructions: Optional[str] = None
    send_email: bool = True
    custom_email_subject: Optional[str] = Field(None, max_length=255)
    custom_email_message: Optional[str] = None

class ClientFormOut(BaseModel):
    id: int
    client_id: int
    client_name: str
    client_email: Optional[EmailStr] = None
    form_template_id: int
    form_title: str
    form_type: str
    status: str
    access_token: str
    expires_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by_name: Optional[str] = None
    completion_percentage: float
    instructions: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_client_form(cls, client_form) -> "ClientFormOut":
        reviewer = client_form.reviewer
        return cls(
            id=client_form.id,
            client_id=client_form.client_id,
            client_name=client_form.client.full_name,
            client_email=client_form.client.email,
            form_template_id=client_form.form_template_id,
            form_title=client_form.form_title,
            form_type=client_form.template.form_type,
            status=client_form.status,
            access_token=client_form.access_token,
            expires_at=client_form.expires_at,
            submitted_at=client_form.submitted_at,
            reviewed_at=client_form.reviewed_at,
            reviewed_by_name=(reviewer.full_name or reviewer.email) if reviewer else None,
            completion_percentage=client_form.completion_percentage or 0,
            instructions=client_form.instructions,
            created_at=client_form.created_at,
            updated_at=client_form.updated_at,
        )

class FormResponseOut(BaseModel):
    id: int
    field_id: int
    field_name: str
    response_value: Optional[str] = None
    response_data: Optional[Any] = None
    is_verified: bool
    verified_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ClientFormDocumentOut(BaseModel):
    id: int
    required_document_id: Optional[int] = None
    document_type: str
    original_filename: str
    file_size: int
    mime_type: str
    is_verified: bool
    verified_at: Optional[datetime] = None
    upload_notes: Optional[str] = None
    uploaded_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PublicClientFormOut(BaseModel):
    id: int
    form_title: str
    form_type: str
    status: str
    expires_at: Optional[datetime] = None
    completion_percentage: float
    instructions: Optional[str] = None
    is_expired: bool = False
    form_template: FormTemplateOut
    existing_responses: List[FormResponseOut] = []
    uploaded_documents: List[ClientFormDocumentOut] = []

# --- 4. SUBMISSION & VALIDATION ---
class SubmitFormResponseIn(BaseModel):
    field_id: int
    field_name: Optional[str] = Field(None, max_length=100, description="Informational; the template's field name is authoritative")
    response_value: Optional[str] = None
    response_data: Optional[Any] = None

class SubmitClientFormRequest(BaseModel):
    responses: List[SubmitFormResponseIn] = []
    is_partial_submission: bool = False

class FormValidationResult(BaseModel):
    is_valid: bool = False
    errors: List[str] = []
    warnings: List[str] = []
    completion_percentage: float = 0.0
    missing_required_fields: List[str] = []
    missing_required_documents: List[str] = []

# --- 5. REVIEW ---
class VerifyFieldIn(BaseModel):
    response_id: int
    is_verified: bool

class VerifyDocumentIn(BaseModel):
    document_id: int
    is_verified: bool

class ReviewFormRequest(BaseModel):
    status: str = Field(..., description="REVIEWED, APPROVED or REJECTED")
    review_notes: Optional[str] = None
    field_verifications: List[VerifyFieldIn] = []
    document_verifications: List[VerifyDocumentIn] = []

# --- 6. AUDIT & STATISTICS ---
class FormAuditLogOut(BaseModel):
    id: int
    client_form_id: int
    user_id: Optional[int] = None
    action: str
    field_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class FormStatisticsOut(BaseModel):
    total_forms: int = 0
    pending_forms: int = 0
    in_progress_forms: int = 0
    completed_forms: int = 0
    reviewed_forms: int = 0
    approved_forms: int = 0
    rejected_forms: int = 0
    average_completion_time_days: float = 0.0
    average_completion_percentage: float = 0.0
    last_updated: datetime
