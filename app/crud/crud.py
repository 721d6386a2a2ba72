# app/crud/crud.py
import app.models as models
import app.models_forms as models_forms

from .base import CRUDBase, log_action

# =====================================================================================
# Specific CRUD Class Imports (These files define the classes, not instances)
# =====================================================================================
from .crud_audit import CRUDFormAuditLog, CRUDActivityLog
from .crud_law_firm import CRUDLawFirm, CRUDClient
from .crud_user import CRUDUser
from .crud_forms import (
    CRUDFormTemplate,
    CRUDClientForm,
    CRUDFormResponse,
    CRUDClientFormDocument,
    CRUDFormNotification,
)

# =====================================================================================
# Centralized CRUD Instances Instantiation and Re-export
# =====================================================================================

crud_law_firm = CRUDLawFirm(models.LawFirm)
crud_user = CRUDUser(models.User)
crud_client = CRUDClient(models.Client)

crud_form_template = CRUDFormTemplate(models_forms.FormTemplate)
crud_client_form = CRUDClientForm(models_forms.ClientForm)
crud_form_response = CRUDFormResponse(models_forms.FormResponse)
crud_client_form_document = CRUDClientFormDocument(models_forms.ClientFormDocument)
crud_form_notification = CRUDFormNotification(models_forms.FormNotification)

crud_form_audit_log = CRUDFormAuditLog(models_forms.FormAuditLog)
crud_activity_log = CRUDActivityLog(models.ActivityLog)


__all__ = [
    "CRUDBase",
    "log_action",
    "crud_law_firm",
    "crud_user",
    "crud_client",
    "crud_form_template",
    "crud_client_form",
    "crud_form_response",
    "crud_client_form_document",
    "crud_form_notification",
    "crud_form_audit_log",
    "crud_activity_log",
]
