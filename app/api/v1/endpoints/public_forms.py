# app/api/v1/endpoints/public_forms.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from sqlalchemy.orm import Session

from app.core.access_tokens import mask_access_token
from app.core.exceptions import UnexpectedError
from app.database import get_db
from app.schemas.schemas_forms import (
    ClientFormDocumentOut,
    FormValidationResult,
    PublicClientFormOut,
    SubmitClientFormRequest,
)
from app.services.form_service import form_service

# No login on these routes: the access token in the path is the only credential.
router = APIRouter()
logger = logging.getLogger(__name__)


def _client_info(request: Request):
    ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


@router.get("/{access_token}", response_model=PublicClientFormOut)
def read_public_form(access_token: str, db: Session = Depends(get_db)):
    try:
        return form_service.get_public_form(db, access_token)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to load public form {mask_access_token(access_token)}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while loading the form.")


@router.post("/{access_token}/submit", response_model=FormValidationResult)
def submit_public_form(
    access_token: str,
    submit_in: SubmitClientFormRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Saves the client's answers. A non-partial submission with every required field answered completes the form.
    """
    ip_address, user_agent = _client_info(request)
    try:
        return form_service.submit_public_form(db, access_token, submit_in, ip_address=ip_address, user_agent=user_agent)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to submit public form {mask_access_token(access_token)}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while submitting the form.")


@router.post("/{access_token}/documents", response_model=ClientFormDocumentOut, status_code=status.HTTP_201_CREATED)
async def upload_public_form_document(
    access_token: str,
    request: Request,
    file: UploadFile = File(...),
    required_document_id: Optional[int] = Form(None),
    document_type: Optional[str] = Form(None),
    upload_notes: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    ip_address, user_agent = _client_info(request)
    try:
        content = await file.read()
        return form_service.upload_public_document(
            db,
            access_token,
            filename=file.filename,
            content_type=file.content_type,
            content=content,
            required_document_id=required_document_id,
            document_type=document_type,
            upload_notes=upload_notes,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to upload document for public form {mask_access_token(access_token)}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while uploading the document.")


@router.delete("/{access_token}/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_public_form_document(
    access_token: str,
    document_id: int,
    request: Request,
    db: Session = Depends(get_db),
):
    ip_address, user_agent = _client_info(request)
    try:
        form_service.delete_public_document(db, access_token, document_id, ip_address=ip_address, user_agent=user_agent)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to delete document {document_id} of public form {mask_access_token(access_token)}: {e}", exc_info=True)
        raise UnexpectedError("An unexpected error occurred while deleting the document.")
