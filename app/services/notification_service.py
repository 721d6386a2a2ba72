# app/services/notification_service.py
import os
import logging
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from app.constants import NotificationStatus, NotificationType
from app.crud.crud import crud_form_notification, crud_law_firm
from app.models_forms import ClientForm, FormNotification

logger = logging.getLogger(__name__)

CLIENT_PORTAL_BASE_URL = os.getenv("CLIENT_PORTAL_BASE_URL", "http://localhost:3000")


def get_client_form_url(access_token: str) -> str:
    return f"{CLIENT_PORTAL_BASE_URL.rstrip('/')}/forms/fill/{access_token}"


# Default subject/message per notification type. Placeholders: {title}, {url}.
DEFAULT_SUBJECTS = {
    NotificationType.FORM_AVAILABLE: "New form available: {title}",
    NotificationType.COMPLETION: "Form completed by client: {title}",
    NotificationType.REMINDER: "Reminder: please complete {title}",
    NotificationType.REVIEW_REQUEST: "Form submitted for review: {title}",
    NotificationType.APPROVED: "Form approved: {title}",
    NotificationType.REJECTED: "Form requires changes: {title}",
}
DEFAULT_MESSAGES = {
    NotificationType.FORM_AVAILABLE: "You have a new form to complete: {title}. Open it here: {url}",
    NotificationType.COMPLETION: "The client has completed the form {title}. It is ready for review.",
    NotificationType.REMINDER: "This is a reminder that the form {title} is still pending. Continue here: {url}",
    NotificationType.REVIEW_REQUEST: "Your form {title} has been submitted and is being reviewed by our team.",
    NotificationType.APPROVED: "Your form {title} has been approved. We will contact you soon.",
    NotificationType.REJECTED: "Your form {title} was reviewed and needs changes. Our team will contact you.",
}
FALLBACK_SUBJECT = "Notification about {title}"
FALLBACK_MESSAGE = "You have a notification about the form {title}."


class NotificationService:

    def get_default_subject(self, notification_type: str, form_title: str) -> str:
        return DEFAULT_SUBJECTS.get(notification_type, FALLBACK_SUBJECT).format(title=form_title)

    def get_default_message(self, notification_type: str, form_title: str, access_token: str) -> str:
        template = DEFAULT_MESSAGES.get(notification_type, FALLBACK_MESSAGE)
        return template.format(title=form_title, url=get_client_form_url(access_token))

    def notify(
        self,
        db: Session,
        client_form_id: int,
        notification_type: str,
        custom_subject: Optional[str] = None,
        custom_message: Optional[str] = None,
    ) -> Optional[FormNotification]:
        """
        Records an outbound notification for a client form as PENDING; delivery is external.

        Firm-facing types go to the contact email of the active law firm, all others to the client.
        An unknown form or a missing recipient email skips the notification (returns None).
        Joins the caller's transaction.
        """
        client_form = (
            db.query(ClientForm)
            .filter(ClientForm.id == client_form_id)
            .options(
                selectinload(ClientForm.client),
                selectinload(ClientForm.template),
            )
            .first()
        )
        if not client_form:
            logger.warning(f"Notification {notification_type} skipped: client form {client_form_id} not found.")
            return None

        if notification_type in NotificationType.FIRM_FACING:
            law_firm = crud_law_firm.get_active(db, client_form.template.law_firm_id) if client_form.template else None
            recipient_email = law_firm.contact_email if law_firm else None
        else:
            recipient_email = client_form.client.email if client_form.client else None

        if not recipient_email:
            logger.warning(
                f"Notification {notification_type} skipped for client form {client_form_id}: no recipient email."
            )
            return None

        notification = crud_form_notification.create(
            db,
            obj_in=None,
            client_form_id=client_form.id,
            notification_type=notification_type,
            recipient_email=recipient_email,
            subject=custom_subject or self.get_default_subject(notification_type, client_form.form_title),
            message=custom_message or self.get_default_message(
                notification_type, client_form.form_title, client_form.access_token
            ),
            status=NotificationStatus.PENDING,
        )
        logger.info(f"Notification {notification_type} queued for client form {client_form_id}.")
        return notification


notification_service = NotificationService()
