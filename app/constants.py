# app/constants.py
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    LAWYER = "LAWYER"
    PARALEGAL = "PARALEGAL"


# Client form status values are stored as plain strings, not a DB enum.
class ClientFormStatus:
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    REVIEW_OUTCOMES = (REVIEWED, APPROVED, REJECTED)
    REVIEWABLE = (COMPLETED, REVIEWED)


class NotificationStatus:
    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    OPENED = "OPENED"
    FAILED = "FAILED"


class NotificationType:
    FORM_AVAILABLE = "FORM_AVAILABLE"
    COMPLETION = "COMPLETION"
    REMINDER = "REMINDER"
    REVIEW_REQUEST = "REVIEW_REQUEST"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    # Types addressed to the law firm instead of the client.
    FIRM_FACING = (COMPLETION,)


class FormAuditAction:
    CREATED = "CREATED"
    FIELD_UPDATED = "FIELD_UPDATED"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    DOCUMENT_DELETED = "DOCUMENT_DELETED"
    SUBMITTED = "SUBMITTED"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REMINDER_SENT = "REMINDER_SENT"


class ActivityType(str, Enum):
    FORM_TEMPLATE_CREATED = "FORM_TEMPLATE_CREATED"
    FORM_SENT = "FORM_SENT"
    FORM_COMPLETED = "FORM_COMPLETED"
    FORM_REVIEWED = "FORM_REVIEWED"


DEFAULT_ACCEPTED_FORMATS = "PDF,JPG,PNG"
DEFAULT_MAX_FILE_SIZE = 10485760  # 10 MiB
