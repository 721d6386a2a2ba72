# app/services/form_service.py

import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_EVEN
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.constants import (
    ActivityType,
    ClientFormStatus,
    DEFAULT_ACCEPTED_FORMATS,
    DEFAULT_MAX_FILE_SIZE,
    FormAuditAction,
    NotificationType,
)
from app.core.access_tokens import generate_access_token, mask_access_token
from app.core.exceptions import (
    ConflictError,
    FormAlreadyCompletedError,
    FormExpiredError,
    FormValidationError,
    NotFoundError,
)
from app.core.file_storage import delete_stored_file, is_accepted_format, save_client_form_file
from app.crud.crud import (
    crud_activity_log,
    crud_client,
    crud_client_form,
    crud_client_form_document,
    crud_form_audit_log,
    crud_form_response,
    crud_form_template,
    log_action,
)
from app.models import ActivityLog
from app.models_forms import (
    ClientForm,
    ClientFormDocument,
    FormAuditLog,
    FormField,
    FormNotification,
    FormSection,
    FormTemplate,
)
from app.schemas.schemas_forms import (
    ClientFormDocumentOut,
    FormResponseOut,
    FormStatisticsOut,
    FormTemplateCreate,
    FormTemplateOut,
    FormValidationResult,
    PublicClientFormOut,
    ReviewFormRequest,
    SendFormToClientRequest,
    SubmitClientFormRequest,
)
from app.services.notification_service import notification_service

logger = logging.getLogger(__name__)

PERCENT_QUANTUM = Decimal("0.01")
HUNDRED = Decimal("100")

REVIEW_AUDIT_ACTIONS = {
    ClientFormStatus.REVIEWED: FormAuditAction.REVIEWED,
    ClientFormStatus.APPROVED: FormAuditAction.APPROVED,
    ClientFormStatus.REJECTED: FormAuditAction.REJECTED,
}
REVIEW_NOTIFICATIONS = {
    ClientFormStatus.APPROVED: NotificationType.APPROVED,
    ClientFormStatus.REJECTED: NotificationType.REJECTED,
}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class FormService:

    # ==========================================================================
    # 1. TEMPLATE STORE
    # ==========================================================================

    def list_templates(self, db: Session, law_firm_id: int) -> List[FormTemplate]:
        return crud_form_template.get_active_for_law_firm(db, law_firm_id)

    def get_template(self, db: Session, law_firm_id: int, template_id: int) -> FormTemplate:
        template = crud_form_template.get_for_law_firm(db, law_firm_id, template_id, active_only=False)
        if not template:
            raise NotFoundError("Form template not found.")
        return template

    def create_template(self, db: Session, law_firm_id: int, user_id: int, template_in: FormTemplateCreate) -> FormTemplate:
        """
        Creates a template with all its sections, fields and required documents in one transaction.
        """
        try:
            template = crud_form_template.create_with_structure(db, template_in, law_firm_id=law_firm_id, created_by=user_id)
            log_action(
                db,
                user_id=user_id,
                action_type=ActivityType.FORM_TEMPLATE_CREATED.value,
                entity_type="FormTemplate",
                entity_id=template.id,
                law_firm_id=law_firm_id,
                details={"name": template.name, "form_type": template.form_type, "sections": len(template_in.sections)},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Form template {template.id} '{template_in.name}' created for law firm {law_firm_id} by user {user_id}.")
        return self.get_template(db, law_firm_id, template.id)

    # ==========================================================================
    # 2. SEND TO CLIENT & REMINDERS
    # ==========================================================================

    def send_form_to_client(self, db: Session, law_firm_id: int, user_id: int, request_in: SendFormToClientRequest) -> ClientForm:
        client = crud_client.get_for_law_firm(db, law_firm_id, request_in.client_id)
        if not client:
            raise NotFoundError("Client not found.")

        template = crud_form_template.get_for_law_firm(db, law_firm_id, request_in.form_template_id, active_only=True)
        if not template:
            raise NotFoundError("Form template not found.")

        try:
            client_form = crud_client_form.create_for_client(
                db,
                client_id=client.id,
                form_template_id=template.id,
                form_title=request_in.form_title,
                access_token=generate_access_token(),
                expires_at=request_in.expires_at,
                instructions=request_in.instructions,
            )
            crud_form_audit_log.record(
                db,
                client_form_id=client_form.id,
                user_id=user_id,
                action=FormAuditAction.CREATED,
                new_value=ClientFormStatus.PENDING,
            )
            if request_in.send_email:
                notification_service.notify(
                    db,
                    client_form.id,
                    NotificationType.FORM_AVAILABLE,
                    custom_subject=request_in.custom_email_subject,
                    custom_message=request_in.custom_email_message,
                )
            log_action(
                db,
                user_id=user_id,
                action_type=ActivityType.FORM_SENT.value,
                entity_type="ClientForm",
                entity_id=client_form.id,
                law_firm_id=law_firm_id,
                details={"form_title": request_in.form_title, "form_template_id": template.id, "client_name": client.full_name},
                client_id=client.id,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Client form {client_form.id} (token {mask_access_token(client_form.access_token)}) "
            f"sent to client {client.id} by user {user_id}."
        )
        return crud_client_form.get_for_law_firm(db, law_firm_id, client_form.id)

    def send_reminder(self, db: Session, law_firm_id: int, user_id: int, client_form_id: int) -> Optional[FormNotification]:
        client_form = crud_client_form.get_for_law_firm(db, law_firm_id, client_form_id)
        if not client_form:
            raise NotFoundError("Client form not found.")
        if client_form.status == ClientFormStatus.COMPLETED:
            raise FormAlreadyCompletedError()
        self._ensure_not_expired(client_form)

        try:
            notification = notification_service.notify(db, client_form.id, NotificationType.REMINDER)
            crud_form_audit_log.record(
                db,
                client_form_id=client_form.id,
                user_id=user_id,
                action=FormAuditAction.REMINDER_SENT,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Reminder for client form {client_form_id} sent by user {user_id}.")
        return notification

    def list_client_forms(
        self, db: Session, law_firm_id: int, status: Optional[str] = None, skip: int = 0, limit: int = 100
    ) -> List[ClientForm]:
        return crud_client_form.get_multi_for_law_firm(db, law_firm_id, status=status, skip=skip, limit=limit)

    # ==========================================================================
    # 3. PUBLIC ACCESS (token authenticated)
    # ==========================================================================

    def _get_form_by_token(self, db: Session, access_token: str, with_structure: bool = False) -> ClientForm:
        client_form = crud_client_form.get_by_access_token(db, access_token, with_structure=with_structure)
        if not client_form:
            raise NotFoundError("Form not found or invalid access token.")
        return client_form

    def is_expired(self, client_form: ClientForm, now: Optional[datetime] = None) -> bool:
        expires_at = _as_utc(client_form.expires_at)
        if expires_at is None:
            return False
        return expires_at < (now or datetime.now(timezone.utc))

    def _ensure_not_expired(self, client_form: ClientForm) -> None:
        if self.is_expired(client_form):
            raise FormExpiredError()

    def _get_writable_form(self, db: Session, access_token: str) -> ClientForm:
        client_form = self._get_form_by_token(db, access_token, with_structure=True)
        self._ensure_not_expired(client_form)
        if client_form.status == ClientFormStatus.COMPLETED:
            raise FormAlreadyCompletedError()
        return client_form

    def get_public_form(self, db: Session, access_token: str) -> PublicClientFormOut:
        client_form = self._get_form_by_token(db, access_token, with_structure=True)
        self._ensure_not_expired(client_form)

        return PublicClientFormOut(
            id=client_form.id,
            form_title=client_form.form_title,
            form_type=client_form.template.form_type,
            status=client_form.status,
            expires_at=client_form.expires_at,
            completion_percentage=client_form.completion_percentage or 0,
            instructions=client_form.instructions,
            is_expired=False,
            form_template=FormTemplateOut.model_validate(client_form.template),
            existing_responses=[FormResponseOut.model_validate(r) for r in client_form.responses],
            uploaded_documents=[
                ClientFormDocumentOut.model_validate(d) for d in client_form.documents if not d.is_deleted
            ],
        )

    def submit_public_form(
        self,
        db: Session,
        access_token: str,
        submit_in: SubmitClientFormRequest,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> FormValidationResult:
        try:
            client_form_id = self._apply_submission(db, access_token, submit_in, ip_address, user_agent)
        except IntegrityError:
            logger.warning(
                f"Submission for token {mask_access_token(access_token)} kept conflicting with concurrent writes."
            )
            raise ConflictError()
        return self.validate_form(db, client_form_id)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        retry=retry_if_exception_type(IntegrityError),
        reraise=True,
    )
    def _apply_submission(
        self,
        db: Session,
        access_token: str,
        submit_in: SubmitClientFormRequest,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> int:
        """
        Upserts the submitted answers, recomputes completion and moves the status, as one unit of work.
        An IntegrityError rolls everything back and is retried by the decorator.
        """
        client_form = self._get_writable_form(db, access_token)

        fields_by_id = {
            field.id: field
            for section in client_form.template.sections
            for field in section.fields
            if not section.is_deleted and not field.is_deleted
        }
        unknown_ids = sorted({r.field_id for r in submit_in.responses if r.field_id not in fields_by_id})
        if unknown_ids:
            raise FormValidationError(f"Fields {unknown_ids} do not belong to this form.")

        try:
            for response_in in submit_in.responses:
                field = fields_by_id[response_in.field_id]
                _, old_value = crud_form_response.upsert(
                    db,
                    client_form_id=client_form.id,
                    field=field,
                    response_value=response_in.response_value,
                    response_data=response_in.response_data,
                )
                crud_form_audit_log.record(
                    db,
                    client_form_id=client_form.id,
                    user_id=None,
                    action=FormAuditAction.FIELD_UPDATED,
                    field_name=field.field_name,
                    old_value=old_value,
                    new_value=response_in.response_value,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )

            percentage = self.calculate_completion_percentage(db, client_form)
            client_form.completion_percentage = percentage
            previous_status = client_form.status

            if not submit_in.is_partial_submission and percentage >= HUNDRED:
                client_form.status = ClientFormStatus.COMPLETED
                client_form.submitted_at = datetime.now(timezone.utc)
                db.add(client_form)
                db.flush()

                crud_form_audit_log.record(
                    db,
                    client_form_id=client_form.id,
                    user_id=None,
                    action=FormAuditAction.SUBMITTED,
                    old_value=previous_status,
                    new_value=ClientFormStatus.COMPLETED,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
                notification_service.notify(db, client_form.id, NotificationType.COMPLETION)
                log_action(
                    db,
                    user_id=None,
                    action_type=ActivityType.FORM_COMPLETED.value,
                    entity_type="ClientForm",
                    entity_id=client_form.id,
                    law_firm_id=client_form.template.law_firm_id,
                    details={"form_title": client_form.form_title},
                    client_id=client_form.client_id,
                    ip_address=ip_address,
                )
            else:
                client_form.status = ClientFormStatus.IN_PROGRESS
                db.add(client_form)

            db.commit()
        except Exception:
            db.rollback()
            raise

        if client_form.status == ClientFormStatus.COMPLETED:
            logger.info(f"Client form {client_form.id} completed by client.")
        return client_form.id

    def upload_public_document(
        self,
        db: Session,
        access_token: str,
        filename: str,
        content_type: Optional[str],
        content: bytes,
        required_document_id: Optional[int] = None,
        document_type: Optional[str] = None,
        upload_notes: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ClientFormDocument:
        client_form = self._get_writable_form(db, access_token)

        slot = None
        if required_document_id is not None:
            slots = {d.id: d for d in client_form.template.required_documents if not d.is_deleted}
            slot = slots.get(required_document_id)
            if slot is None:
                raise FormValidationError(f"Required document {required_document_id} does not belong to this form.")

        if not filename:
            raise FormValidationError("A file is required.")
        if not content:
            raise FormValidationError("The uploaded file is empty.")

        accepted_formats = slot.accepted_formats if slot else DEFAULT_ACCEPTED_FORMATS
        max_file_size = slot.max_file_size if slot else DEFAULT_MAX_FILE_SIZE
        if not is_accepted_format(filename, accepted_formats):
            raise FormValidationError(f"File type not accepted. Accepted formats: {accepted_formats}.")
        if len(content) > max_file_size:
            raise FormValidationError(f"File exceeds the maximum size of {max_file_size} bytes.")

        resolved_type = document_type or (slot.document_type if slot else None) or "OTHER"
        stored_filename, file_path = save_client_form_file(client_form.id, filename, content)

        try:
            document = crud_client_form_document.create(
                db,
                obj_in=None,
                client_form_id=client_form.id,
                required_document_id=slot.id if slot else None,
                document_type=resolved_type,
                original_filename=filename,
                stored_filename=stored_filename,
                file_path=file_path,
                file_size=len(content),
                mime_type=content_type or "application/octet-stream",
                upload_notes=upload_notes,
            )
            crud_form_audit_log.record(
                db,
                client_form_id=client_form.id,
                user_id=None,
                action=FormAuditAction.DOCUMENT_UPLOADED,
                field_name=resolved_type,
                new_value=filename,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            db.commit()
        except Exception:
            db.rollback()
            delete_stored_file(file_path)
            raise

        db.refresh(document)
        return document

    def delete_public_document(
        self,
        db: Session,
        access_token: str,
        document_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        client_form = self._get_writable_form(db, access_token)

        document = crud_client_form_document.get_for_client_form(db, client_form.id, document_id)
        if not document:
            raise NotFoundError("Document not found.")

        file_path = document.file_path
        try:
            crud_form_audit_log.record(
                db,
                client_form_id=client_form.id,
                user_id=None,
                action=FormAuditAction.DOCUMENT_DELETED,
                field_name=document.document_type,
                old_value=document.original_filename,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            crud_client_form_document.remove(db, document)
            db.commit()
        except Exception:
            db.rollback()
            raise

        delete_stored_file(file_path)

    # ==========================================================================
    # 4. COMPLETION EVALUATOR
    # ==========================================================================

    def calculate_completion_percentage(self, db: Session, client_form: ClientForm) -> Decimal:
        """
        Share of required fields with a non-blank answer, in percent with two decimals.
        A template without required fields is 100% complete.
        """
        required_field_ids = [
            row.id
            for row in db.query(FormField.id)
            .join(FormSection, FormSection.id == FormField.section_id)
            .filter(
                FormSection.form_template_id == client_form.form_template_id,
                FormSection.is_deleted == False,
                FormField.is_deleted == False,
                FormField.is_required == True,
            )
            .all()
        ]
        if not required_field_ids:
            return HUNDRED.quantize(PERCENT_QUANTUM)

        answers = {r.field_id: r.response_value for r in crud_form_response.get_for_client_form(db, client_form.id)}
        completed = sum(1 for field_id in required_field_ids if not _is_blank(answers.get(field_id)))

        percentage = Decimal(completed) / Decimal(len(required_field_ids)) * HUNDRED
        return percentage.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_EVEN)

    def validate_form(self, db: Session, client_form_id: int) -> FormValidationResult:
        client_form = crud_client_form.get_with_structure(db, client_form_id)
        if not client_form:
            raise NotFoundError("Client form not found.")

        answers = {r.field_id: r.response_value for r in client_form.responses}
        uploaded_slots = {d.required_document_id for d in client_form.documents if not d.is_deleted}

        missing_fields = [
            field.field_label
            for section in client_form.template.sections
            if not section.is_deleted
            for field in section.fields
            if field.is_required and not field.is_deleted and _is_blank(answers.get(field.id))
        ]
        missing_documents = [
            document.document_name
            for document in client_form.template.required_documents
            if document.is_required and not document.is_deleted and document.id not in uploaded_slots
        ]

        return FormValidationResult(
            is_valid=not missing_fields and not missing_documents,
            completion_percentage=float(client_form.completion_percentage or 0),
            missing_required_fields=missing_fields,
            missing_required_documents=missing_documents,
        )

    def validate_client_form(self, db: Session, law_firm_id: int, client_form_id: int) -> FormValidationResult:
        if not crud_client_form.get_for_law_firm(db, law_firm_id, client_form_id):
            raise NotFoundError("Client form not found.")
        return self.validate_form(db, client_form_id)

    # ==========================================================================
    # 5. REVIEW, AUDIT & STATISTICS
    # ==========================================================================

    def review_client_form(
        self, db: Session, law_firm_id: int, reviewer_id: int, client_form_id: int, review_in: ReviewFormRequest
    ) -> ClientForm:
        client_form = crud_client_form.get_for_law_firm(db, law_firm_id, client_form_id)
        if not client_form:
            raise NotFoundError("Client form not found.")

        new_status = review_in.status.upper()
        if new_status not in ClientFormStatus.REVIEW_OUTCOMES:
            raise FormValidationError(
                f"Invalid review status '{review_in.status}'. Allowed: {', '.join(ClientFormStatus.REVIEW_OUTCOMES)}."
            )
        if client_form.status not in ClientFormStatus.REVIEWABLE:
            raise FormValidationError(f"A form in status {client_form.status} cannot be reviewed.")

        now = datetime.now(timezone.utc)
        responses = {r.id: r for r in client_form.responses}
        documents = {d.id: d for d in client_form.documents if not d.is_deleted}

        try:
            for verification in review_in.field_verifications:
                response = responses.get(verification.response_id)
                if response is None:
                    raise NotFoundError(f"Response {verification.response_id} not found on this form.")
                response.is_verified = verification.is_verified
                response.verified_by = reviewer_id if verification.is_verified else None
                response.verified_at = now if verification.is_verified else None
                db.add(response)

            for verification in review_in.document_verifications:
                document = documents.get(verification.document_id)
                if document is None:
                    raise NotFoundError(f"Document {verification.document_id} not found on this form.")
                document.is_verified = verification.is_verified
                document.verified_by = reviewer_id if verification.is_verified else None
                document.verified_at = now if verification.is_verified else None
                db.add(document)

            previous_status = client_form.status
            client_form.status = new_status
            client_form.reviewed_at = now
            client_form.reviewed_by = reviewer_id
            client_form.review_notes = review_in.review_notes
            db.add(client_form)
            db.flush()

            crud_form_audit_log.record(
                db,
                client_form_id=client_form.id,
                user_id=reviewer_id,
                action=REVIEW_AUDIT_ACTIONS[new_status],
                old_value=previous_status,
                new_value=new_status,
            )
            if new_status in REVIEW_NOTIFICATIONS:
                notification_service.notify(db, client_form.id, REVIEW_NOTIFICATIONS[new_status])
            log_action(
                db,
                user_id=reviewer_id,
                action_type=ActivityType.FORM_REVIEWED.value,
                entity_type="ClientForm",
                entity_id=client_form.id,
                law_firm_id=law_firm_id,
                details={"previous_status": previous_status, "status": new_status},
                client_id=client_form.client_id,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Client form {client_form_id} reviewed by user {reviewer_id}: {previous_status} -> {new_status}.")
        return crud_client_form.get_for_law_firm(db, law_firm_id, client_form_id)

    def get_audit_trail(
        self,
        db: Session,
        law_firm_id: int,
        client_form_id: int,
        action: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[FormAuditLog]:
        if not crud_client_form.get_for_law_firm(db, law_firm_id, client_form_id):
            raise NotFoundError("Client form not found.")
        return crud_form_audit_log.get_for_client_form(db, client_form_id, action=action, skip=skip, limit=limit)

    def get_recent_activity(
        self,
        db: Session,
        law_firm_id: int,
        client_id: Optional[int] = None,
        action_type: Optional[str] = None,
        limit: int = 10,
    ) -> List[ActivityLog]:
        return crud_activity_log.get_for_law_firm(db, law_firm_id, client_id=client_id, action_type=action_type, limit=limit)

    def get_form_statistics(self, db: Session, law_firm_id: int) -> FormStatisticsOut:
        firm_forms = (
            db.query(ClientForm)
            .join(FormTemplate, FormTemplate.id == ClientForm.form_template_id)
            .filter(ClientForm.is_deleted == False, FormTemplate.law_firm_id == law_firm_id)
        )

        counts = dict(
            firm_forms.with_entities(ClientForm.status, func.count(ClientForm.id))
            .group_by(ClientForm.status)
            .all()
        )
        average_percentage = firm_forms.with_entities(func.avg(ClientForm.completion_percentage)).scalar()

        durations = []
        for created_at, submitted_at in firm_forms.with_entities(ClientForm.created_at, ClientForm.submitted_at).filter(
            ClientForm.submitted_at.isnot(None)
        ):
            if created_at is None:
                continue
            durations.append((_as_utc(submitted_at) - _as_utc(created_at)).total_seconds() / 86400)

        return FormStatisticsOut(
            total_forms=sum(counts.values()),
            pending_forms=counts.get(ClientFormStatus.PENDING, 0),
            in_progress_forms=counts.get(ClientFormStatus.IN_PROGRESS, 0),
            completed_forms=counts.get(ClientFormStatus.COMPLETED, 0),
            reviewed_forms=counts.get(ClientFormStatus.REVIEWED, 0),
            approved_forms=counts.get(ClientFormStatus.APPROVED, 0),
            rejected_forms=counts.get(ClientFormStatus.REJECTED, 0),
            average_completion_time_days=round(sum(durations) / len(durations), 2) if durations else 0.0,
            average_completion_percentage=round(float(average_percentage or 0), 2),
            last_updated=datetime.now(timezone.utc),
        )


form_service = FormService()
