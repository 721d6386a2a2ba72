# app/api/v1/endpoints/forms.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.constants import UserRole
from app.core.exceptions import UnexpectedError
from app.core.security import TokenData, HasRole, get_current_law_firm_context
from app.database import get_db
from app.schemas.all_schemas import ActivityLogOut
from app.schemas.schemas_forms import (
    ClientFormOut,
    FormAuditLogOut,
    FormStatisticsOut,
    FormTemplateCreate,
    FormTemplateOut,
    FormValidationResult,
    ReviewFormRequest,
    SendFormToClientRequest,
)
from app.services.form_service import form_service

router = APIRouter()
logger = logging.getLogger(__name__)


# --- TEMPLATES ---

@router.get("/templates", response_model=List[FormTemplateOut])
def list_form_templates(
    db: Session = Depends(get_db),
    current_user: TokenData = Depends(get_current_law_firm_context),
):
    """Active templates of the caller's law firm, ordered by form type and name."""
    try:
        return form_service.list_templates(db, current_user.law_firm_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list form templates for law firm {current_user.law_firm_id}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while listing form templates.")


@router.post("/templates", response_model=FormTemplateOut, status_code=status.HTTP_201_CREATED)
def create_form_template(
    template_in: FormTemplateCreate,
    db: Session = Depends(get_db),
    current_user: TokenData = Depends(get_current_law_firm_context),
):
    try:
        return form_service.create_template(db, current_user.law_firm_id, current_user.user_id, template_in)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to create form template '{template_in.name}': {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while creating the form template.")


@router.get("/templates/{template_id}", response_model=FormTemplateOut)
def read_form_template(
    template_id: int,
    db: Session = Depends(get_db),
    current_user: TokenData = Depends(get_current_law_firm_context),
):
    try:
        return form_service.get_template(db, current_user.law_firm_id, template_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to read form template {template_id}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while reading the form template.")


# --- CLIENT FORMS ---

@router.post("/send-to-client", response_model=ClientFormOut, status_code=status.HTTP_201_CREATED)
def send_form_to_client(
    request_in: SendFormToClientRequest,
    db: Session = Depends(get_db),
    current_user: TokenData = Depends(get_current_law_firm_context),
):
    """
    Creates a client form from a template and returns it with its access token.
    When `send_email` is set, a "new form available" notification is recorded for the client.
    """
    try:
        client_form = form_service.send_form_to_client(db, current_user.law_firm_id, current_user.user_id, request_in)
        return ClientFormOut.from_client_form(client_form)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to send form template {request_in.form_template_id} to client {request_in.client_id}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while sending the form to the client.")


@router.get("/client-forms", response_model=List[ClientFormOut])
def list_client_forms(
    status_filter: Optional[str] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: TokenData = Depends(get_current_law_firm_context),
):
    try:
        client_forms = form_service.list_client_forms(db, current_user.law_firm_id, status=status_filter, skip=skip, limit=limit)
        return [ClientFormOut.from_client_form(cf) for cf in client_forms]
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list client forms for law firm {current_user.law_firm_id}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while listing client forms.")


@router.get("/client-forms/{client_form_id}/validation", response_model=FormValidationResult)
def validate_client_form(
    client_form_id: int,
    db: Session = Depends(get_db),
    current_user: TokenData = Depends(get_current_law_firm_context),
):
    try:
        return form_service.validate_client_form(db, current_user.law_firm_id, client_form_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to validate client form {client_form_id}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while validating the form.")


@router.get("/client-forms/{client_form_id}/audit-logs", response_model=List[FormAuditLogOut])
def read_client_form_audit_logs(
    client_form_id: int,
    action: Optional[str] = Query(None, description="Filter by audit action, e.g. FIELD_UPDATED"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: TokenData = Depends(get_current_law_firm_context),
):
    try:
        return form_service.get_audit_trail(db, current_user.law_firm_id, client_form_id, action=action, skip=skip, limit=limit)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to read audit logs of client form {client_form_id}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while reading the audit trail.")


@router.post("/client-forms/{client_form_id}/send-reminder")
def send_client_form_reminder(
    client_form_id: int,
    db: Session = Depends(get_db),
    current_user: TokenData = Depends(get_current_law_firm_context),
):
    try:
        notification = form_service.send_reminder(db, current_user.law_firm_id, current_user.user_id, client_form_id)
        return {
            "message": "Reminder sent successfully.",
            "notification_id": notification.id if notification else None,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to send reminder for client form {client_form_id}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while sending the reminder.")


@router.post("/client-forms/{client_form_id}/review", response_model=ClientFormOut)
def review_client_form(
    client_form_id: int,
    review_in: ReviewFormRequest,
    db: Session = Depends(get_db),
    current_user: TokenData = Depends(HasRole([UserRole.ADMIN, UserRole.LAWYER])),
):
    """
    Records the outcome of a staff review (REVIEWED, APPROVED or REJECTED) and field/document verifications.
    """
    try:
        client_form = form_service.review_client_form(
            db, current_user.law_firm_id, current_user.user_id, client_form_id, review_in
        )
        return ClientFormOut.from_client_form(client_form)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to review client form {client_form_id}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while reviewing the form.")


@router.get("/activity", response_model=List[ActivityLogOut])
def read_recent_form_activity(
    client_id: Optional[int] = Query(None),
    action_type: Optional[str] = Query(None, description="e.g. FORM_SENT, FORM_COMPLETED"),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: TokenData = Depends(get_current_law_firm_context),
):
    """Latest form activity of the law firm, newest first."""
    try:
        return form_service.get_recent_activity(
            db, current_user.law_firm_id, client_id=client_id, action_type=action_type, limit=limit
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to read form activity for law firm {current_user.law_firm_id}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while reading form activity.")


@router.get("/statistics", response_model=FormStatisticsOut)
def read_form_statistics(
    db: Session = Depends(get_db),
    current_user: TokenData = Depends(get_current_law_firm_context),
):
    try:
        return form_service.get_form_statistics(db, current_user.law_firm_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to compute form statistics for law firm {current_user.law_firm_id}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while computing statistics.")
