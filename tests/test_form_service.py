import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

import app.services.form_service as form_service_module
from app.constants import ActivityType, ClientFormStatus, FormAuditAction, NotificationType
from app.core.exceptions import (
    ConflictError,
    FormAlreadyCompletedError,
    FormExpiredError,
    FormValidationError,
    NotFoundError,
)
from app.crud.crud import crud_form_response
from app.models import ActivityLog
from app.models_forms import ClientForm, FormAuditLog, FormNotification, FormResponse, FormSection, FormTemplate
from app.schemas.schemas_forms import (
    FormFieldCreate,
    FormSectionCreate,
    FormTemplateCreate,
    ReviewFormRequest,
    SubmitClientFormRequest,
    SubmitFormResponseIn,
    VerifyFieldIn,
)
from app.services.form_service import form_service

from conftest import build_template_in, field_ids, send_form


def submit(db, client_form, answers, partial=False):
    request_in = SubmitClientFormRequest(
        responses=[SubmitFormResponseIn(field_id=field_id, response_value=value) for field_id, value in answers.items()],
        is_partial_submission=partial,
    )
    return form_service.submit_public_form(db, client_form.access_token, request_in, ip_address="10.0.0.5", user_agent="pytest")


def audit_rows(db, client_form, action):
    return (
        db.query(FormAuditLog)
        .filter(FormAuditLog.client_form_id == client_form.id, FormAuditLog.action == action)
        .order_by(FormAuditLog.id)
        .all()
    )


# --- Template store ---

def test_list_templates_orders_by_form_type_then_name(db, law_firm, lawyer):
    for name, form_type in [("Zeta", "I-485"), ("Beta", "DS-160"), ("Alpha", "DS-160")]:
        template_in = build_template_in(name=name)
        template_in.form_type = form_type
        form_service.create_template(db, law_firm.id, lawyer.id, template_in)

    templates = form_service.list_templates(db, law_firm.id)

    assert [(t.form_type, t.name) for t in templates] == [("DS-160", "Alpha"), ("DS-160", "Beta"), ("I-485", "Zeta")]


def test_list_templates_excludes_inactive_and_other_firms(db, law_firm, other_law_firm, lawyer, template):
    inactive = form_service.create_template(db, law_firm.id, lawyer.id, build_template_in(name="Old intake"))
    inactive.is_active = False
    db.commit()
    form_service.create_template(db, other_law_firm.id, lawyer.id, build_template_in(name="Foreign"))

    templates = form_service.list_templates(db, law_firm.id)

    assert [t.id for t in templates] == [template.id]


def test_create_template_keeps_structure_order_and_opaque_json(db, law_firm, lawyer):
    template_in = FormTemplateCreate(
        name="Green card",
        form_type="I-485",
        process_type="Green Card",
        sections=[
            FormSectionCreate(title="Second", section_order=2, fields=[
                FormFieldCreate(field_name="b2", field_label="B2", field_type="text", field_order=2),
                FormFieldCreate(field_name="b1", field_label="B1", field_type="select", field_order=1,
                                options=[{"value": "yes"}, {"value": "no"}]),
            ]),
            FormSectionCreate(title="First", section_order=1, conditional_logic={"show_if": {"field": "b1", "eq": "yes"}}),
        ],
    )

    template = form_service.create_template(db, law_firm.id, lawyer.id, template_in)

    assert template.version == 1
    assert [s.title for s in template.sections] == ["First", "Second"]
    assert template.sections[0].conditional_logic == {"show_if": {"field": "b1", "eq": "yes"}}
    assert [f.field_name for f in template.sections[1].fields] == ["b1", "b2"]
    assert template.sections[1].fields[0].options == [{"value": "yes"}, {"value": "no"}]

    activity = db.query(ActivityLog).filter(ActivityLog.action_type == ActivityType.FORM_TEMPLATE_CREATED.value).one()
    assert activity.entity_id == template.id


def test_create_template_is_all_or_nothing(db, law_firm, lawyer, monkeypatch):
    def failing_log_action(*args, **kwargs):
        raise RuntimeError("activity log unavailable")

    monkeypatch.setattr(form_service_module, "log_action", failing_log_action)

    with pytest.raises(RuntimeError):
        form_service.create_template(db, law_firm.id, lawyer.id, build_template_in())

    assert db.query(FormTemplate).count() == 0
    assert db.query(FormSection).count() == 0


def test_get_template_of_other_firm_is_not_found(db, other_law_firm, template):
    with pytest.raises(NotFoundError):
        form_service.get_template(db, other_law_firm.id, template.id)


# --- Send to client ---

def test_send_form_to_client_creates_pending_form_with_token(db, law_firm, lawyer, client_record, template):
    client_form = send_form(db, law_firm, lawyer, client_record, template, instructions="Bring your passport")

    assert re.fullmatch(r"[0-9a-f]{32}", client_form.access_token)
    assert client_form.status == ClientFormStatus.PENDING
    assert client_form.completion_percentage == Decimal("0")
    assert client_form.instructions == "Bring your passport"

    created = audit_rows(db, client_form, FormAuditAction.CREATED)
    assert len(created) == 1
    assert created[0].user_id == lawyer.id

    notification = db.query(FormNotification).filter(FormNotification.client_form_id == client_form.id).one()
    assert notification.notification_type == NotificationType.FORM_AVAILABLE
    assert notification.recipient_email == client_record.email
    assert client_form.access_token in notification.message

    activity = db.query(ActivityLog).filter(ActivityLog.action_type == ActivityType.FORM_SENT.value).one()
    assert activity.client_id == client_record.id
    assert activity.law_firm_id == law_firm.id


def test_send_form_without_email_and_with_custom_text(db, law_firm, lawyer, client_record, template):
    silent = send_form(db, law_firm, lawyer, client_record, template, send_email=False)
    custom = send_form(
        db, law_firm, lawyer, client_record, template,
        custom_email_subject="Please fill this in", custom_email_message="Hello Ana",
    )

    assert db.query(FormNotification).filter(FormNotification.client_form_id == silent.id).count() == 0
    notification = db.query(FormNotification).filter(FormNotification.client_form_id == custom.id).one()
    assert notification.subject == "Please fill this in"
    assert notification.message == "Hello Ana"
    assert silent.access_token != custom.access_token


def test_send_form_rejects_foreign_client_and_inactive_template(db, law_firm, other_law_firm, lawyer, client_record, template):
    with pytest.raises(NotFoundError):
        send_form(db, other_law_firm, lawyer, client_record, template)

    template.is_active = False
    db.commit()
    with pytest.raises(NotFoundError):
        send_form(db, law_firm, lawyer, client_record, template)

    assert db.query(ClientForm).count() == 0


# --- Completion percentage ---

def test_completion_percentage_rounds_to_two_decimals(db, law_firm, lawyer, client_record):
    template_in = FormTemplateCreate(
        name="Three required",
        form_type="CUSTOM",
        process_type="Intake",
        sections=[FormSectionCreate(title="Main", fields=[
            FormFieldCreate(field_name=f"f{i}", field_label=f"F{i}", field_type="text", field_order=i, is_required=True)
            for i in range(3)
        ])],
    )
    template = form_service.create_template(db, law_firm.id, lawyer.id, template_in)
    client_form = send_form(db, law_firm, lawyer, client_record, template)
    ids = field_ids(template)

    result = submit(db, client_form, {ids["f0"]: "a"}, partial=True)
    assert result.completion_percentage == pytest.approx(33.33)

    result = submit(db, client_form, {ids["f1"]: "b", ids["f2"]: "   "})
    assert result.completion_percentage == pytest.approx(66.67)
    db.refresh(client_form)
    assert client_form.status == ClientFormStatus.IN_PROGRESS
    assert client_form.completion_percentage == Decimal("66.67")


def test_template_without_required_fields_is_complete(db, law_firm, lawyer, client_record):
    template_in = FormTemplateCreate(
        name="Optional only",
        form_type="CUSTOM",
        process_type="Intake",
        sections=[FormSectionCreate(title="Main", fields=[
            FormFieldCreate(field_name="comment", field_label="Comment", field_type="textarea"),
        ])],
    )
    template = form_service.create_template(db, law_firm.id, lawyer.id, template_in)
    client_form = send_form(db, law_firm, lawyer, client_record, template)

    result = submit(db, client_form, {})

    db.refresh(client_form)
    assert result.completion_percentage == 100.0
    assert client_form.status == ClientFormStatus.COMPLETED


def test_optional_answers_do_not_count(db, client_form, template):
    ids = field_ids(template)

    result = submit(db, client_form, {ids["nickname"]: "Annie", ids["first_name"]: "Ana"}, partial=True)

    assert result.completion_percentage == 50.0


# --- Submission examples ---

def test_partial_then_final_submission_completes_form(db, client_form, template, law_firm):
    ids = field_ids(template)

    result = submit(db, client_form, {ids["first_name"]: "x"}, partial=True)
    db.refresh(client_form)
    assert result.completion_percentage == 50.0
    assert result.is_valid is False
    assert result.missing_required_fields == ["Last name"]
    assert client_form.status == ClientFormStatus.IN_PROGRESS
    assert client_form.submitted_at is None

    result = submit(db, client_form, {ids["last_name"]: "y"})
    db.refresh(client_form)
    assert result.completion_percentage == 100.0
    assert result.is_valid is True
    assert result.missing_required_fields == []
    assert result.missing_required_documents == []
    assert client_form.status == ClientFormStatus.COMPLETED
    assert client_form.submitted_at is not None

    assert len(audit_rows(db, client_form, FormAuditAction.SUBMITTED)) == 1
    completion = (
        db.query(FormNotification)
        .filter(FormNotification.client_form_id == client_form.id, FormNotification.notification_type == NotificationType.COMPLETION)
        .one()
    )
    assert completion.recipient_email == law_firm.contact_email
    assert db.query(ActivityLog).filter(ActivityLog.action_type == ActivityType.FORM_COMPLETED.value).count() == 1


def test_full_answers_on_partial_submission_stay_in_progress(db, client_form, template):
    ids = field_ids(template)

    result = submit(db, client_form, {ids["first_name"]: "x", ids["last_name"]: "y"}, partial=True)

    db.refresh(client_form)
    assert result.completion_percentage == 100.0
    assert client_form.status == ClientFormStatus.IN_PROGRESS
    assert client_form.submitted_at is None


def test_completed_form_still_reports_missing_document(db, law_firm, lawyer, client_record, template_with_document):
    client_form = send_form(db, law_firm, lawyer, client_record, template_with_document)
    ids = field_ids(template_with_document)

    result = submit(db, client_form, {ids["first_name"]: "x", ids["last_name"]: "y"})

    db.refresh(client_form)
    assert client_form.status == ClientFormStatus.COMPLETED
    assert result.is_valid is False
    assert result.missing_required_fields == []
    assert result.missing_required_documents == ["Passport copy"]


def test_resubmitting_completed_form_fails(db, client_form, template):
    ids = field_ids(template)
    submit(db, client_form, {ids["first_name"]: "x", ids["last_name"]: "y"})
    db.refresh(client_form)
    submitted_at = client_form.submitted_at

    with pytest.raises(FormAlreadyCompletedError):
        submit(db, client_form, {ids["first_name"]: "changed"})

    db.refresh(client_form)
    assert client_form.submitted_at == submitted_at
    assert db.query(FormResponse).filter(FormResponse.response_value == "changed").count() == 0


def test_same_field_twice_upserts_one_row_with_two_audit_rows(db, client_form, template):
    ids = field_ids(template)

    submit(db, client_form, {ids["first_name"]: "Ana"}, partial=True)
    submit(db, client_form, {ids["first_name"]: "Anna"}, partial=True)

    rows = db.query(FormResponse).filter(FormResponse.client_form_id == client_form.id).all()
    assert len(rows) == 1
    assert rows[0].response_value == "Anna"

    updates = audit_rows(db, client_form, FormAuditAction.FIELD_UPDATED)
    assert [(u.old_value, u.new_value) for u in updates] == [(None, "Ana"), ("Ana", "Anna")]
    assert all(u.user_id is None for u in updates)
    assert updates[0].field_name == "first_name"
    assert updates[0].ip_address == "10.0.0.5"
    assert updates[0].user_agent == "pytest"


def test_unknown_field_is_rejected_without_writes(db, client_form, template):
    ids = field_ids(template)

    with pytest.raises(FormValidationError):
        submit(db, client_form, {ids["first_name"]: "Ana", 99999: "ghost"})

    assert db.query(FormResponse).count() == 0
    assert audit_rows(db, client_form, FormAuditAction.FIELD_UPDATED) == []


def test_unknown_token_is_not_found(db, client_form):
    with pytest.raises(NotFoundError):
        form_service.get_public_form(db, "0" * 32)


def test_expired_form_fails_fetch_and_submit_regardless_of_status(db, client_form, template):
    ids = field_ids(template)
    client_form.expires_at = datetime.now(timezone.utc) - timedelta(days=1)
    client_form.status = ClientFormStatus.COMPLETED
    db.commit()

    with pytest.raises(FormExpiredError):
        form_service.get_public_form(db, client_form.access_token)
    with pytest.raises(FormExpiredError):
        submit(db, client_form, {ids["first_name"]: "x"})


def test_public_form_exposes_structure_and_answers(db, client_form, template):
    ids = field_ids(template)
    submit(db, client_form, {ids["first_name"]: "Ana"}, partial=True)

    public_form = form_service.get_public_form(db, client_form.access_token)

    assert public_form.is_expired is False
    assert public_form.form_type == "DS-160"
    assert [f.field_name for f in public_form.form_template.sections[0].fields] == ["first_name", "last_name", "nickname"]
    assert [r.response_value for r in public_form.existing_responses] == ["Ana"]


def test_persisting_unique_violation_surfaces_as_conflict(db, client_form, template, monkeypatch):
    ids = field_ids(template)
    calls = []

    def conflicting_upsert(*args, **kwargs):
        calls.append(1)
        raise IntegrityError("INSERT INTO form_responses", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(crud_form_response, "upsert", conflicting_upsert)

    with pytest.raises(ConflictError):
        submit(db, client_form, {ids["first_name"]: "x"})

    assert len(calls) == 3
    assert audit_rows(db, client_form, FormAuditAction.FIELD_UPDATED) == []


def test_insert_racing_existing_answer_is_retried_as_update(db, client_form, template, monkeypatch):
    ids = field_ids(template)
    db.add(FormResponse(client_form_id=client_form.id, field_id=ids["first_name"], field_name="first_name", response_value="old"))
    db.commit()

    lookup = crud_form_response.get_by_form_and_field
    lookups = []

    def stale_then_fresh(session, client_form_id, field_id):
        lookups.append(field_id)
        if len(lookups) == 1:
            return None
        return lookup(session, client_form_id, field_id)

    monkeypatch.setattr(crud_form_response, "get_by_form_and_field", stale_then_fresh)

    result = submit(db, client_form, {ids["first_name"]: "new"}, partial=True)

    assert lookups == [ids["first_name"], ids["first_name"]]
    rows = db.query(FormResponse).filter(FormResponse.client_form_id == client_form.id).all()
    assert [r.response_value for r in rows] == ["new"]
    updates = audit_rows(db, client_form, FormAuditAction.FIELD_UPDATED)
    assert [(a.old_value, a.new_value) for a in updates] == [("old", "new")]
    assert result.completion_percentage == 50.0


def test_fields_of_deleted_sections_are_rejected(db, client_form, template):
    ids = field_ids(template)
    template.sections[0].is_deleted = True
    db.commit()

    with pytest.raises(FormValidationError):
        submit(db, client_form, {ids["first_name"]: "x"})

    assert db.query(FormResponse).filter(FormResponse.client_form_id == client_form.id).count() == 0


def test_validate_unknown_form_is_not_found(db):
    with pytest.raises(NotFoundError):
        form_service.validate_form(db, 4242)


# --- Reminders ---

def test_send_reminder_records_notification_and_audit(db, law_firm, lawyer, client_form):
    notification = form_service.send_reminder(db, law_firm.id, lawyer.id, client_form.id)

    assert notification.notification_type == NotificationType.REMINDER
    assert f"/forms/fill/{client_form.access_token}" in notification.message
    reminders = audit_rows(db, client_form, FormAuditAction.REMINDER_SENT)
    assert len(reminders) == 1
    assert reminders[0].user_id == lawyer.id


def test_send_reminder_rejects_completed_expired_and_foreign_forms(db, law_firm, other_law_firm, lawyer, client_form):
    with pytest.raises(NotFoundError):
        form_service.send_reminder(db, other_law_firm.id, lawyer.id, client_form.id)

    client_form.expires_at = datetime.now(timezone.utc) - timedelta(hours=1)
    db.commit()
    with pytest.raises(FormExpiredError):
        form_service.send_reminder(db, law_firm.id, lawyer.id, client_form.id)

    client_form.status = ClientFormStatus.COMPLETED
    db.commit()
    with pytest.raises(FormAlreadyCompletedError):
        form_service.send_reminder(db, law_firm.id, lawyer.id, client_form.id)


# --- Review & statistics ---

def test_review_approves_completed_form(db, law_firm, lawyer, client_form, template):
    ids = field_ids(template)
    submit(db, client_form, {ids["first_name"]: "x", ids["last_name"]: "y"})
    response = db.query(FormResponse).filter(FormResponse.field_id == ids["first_name"]).one()

    reviewed = form_service.review_client_form(
        db, law_firm.id, lawyer.id, client_form.id,
        ReviewFormRequest(status="APPROVED", review_notes="All good",
                          field_verifications=[VerifyFieldIn(response_id=response.id, is_verified=True)]),
    )

    assert reviewed.status == ClientFormStatus.APPROVED
    assert reviewed.reviewed_by == lawyer.id
    assert reviewed.reviewed_at is not None
    db.refresh(response)
    assert response.is_verified is True
    assert response.verified_by == lawyer.id

    approvals = audit_rows(db, client_form, FormAuditAction.APPROVED)
    assert [(a.old_value, a.new_value) for a in approvals] == [(ClientFormStatus.COMPLETED, ClientFormStatus.APPROVED)]
    assert (
        db.query(FormNotification)
        .filter(FormNotification.client_form_id == client_form.id, FormNotification.notification_type == NotificationType.APPROVED)
        .count()
        == 1
    )


def test_review_rejects_unfinished_forms_and_bad_input(db, law_firm, lawyer, client_form, template):
    with pytest.raises(FormValidationError):
        form_service.review_client_form(db, law_firm.id, lawyer.id, client_form.id, ReviewFormRequest(status="APPROVED"))

    ids = field_ids(template)
    submit(db, client_form, {ids["first_name"]: "x", ids["last_name"]: "y"})

    with pytest.raises(FormValidationError):
        form_service.review_client_form(db, law_firm.id, lawyer.id, client_form.id, ReviewFormRequest(status="PENDING"))
    with pytest.raises(NotFoundError):
        form_service.review_client_form(
            db, law_firm.id, lawyer.id, client_form.id,
            ReviewFormRequest(status="REVIEWED", field_verifications=[VerifyFieldIn(response_id=999, is_verified=True)]),
        )

    db.refresh(client_form)
    assert client_form.status == ClientFormStatus.COMPLETED
    assert client_form.reviewed_at is None


def test_client_resubmission_reopens_reviewed_form(db, law_firm, lawyer, client_form, template):
    ids = field_ids(template)
    submit(db, client_form, {ids["first_name"]: "x", ids["last_name"]: "y"})
    form_service.review_client_form(db, law_firm.id, lawyer.id, client_form.id, ReviewFormRequest(status="APPROVED"))

    submit(db, client_form, {ids["nickname"]: "Annie"}, partial=True)

    db.refresh(client_form)
    assert client_form.status == ClientFormStatus.IN_PROGRESS
    assert client_form.completion_percentage == Decimal("100.00")


def test_statistics_count_statuses_for_the_firm(db, law_firm, lawyer, client_record, template):
    ids = field_ids(template)
    pending = send_form(db, law_firm, lawyer, client_record, template)
    in_progress = send_form(db, law_firm, lawyer, client_record, template)
    completed = send_form(db, law_firm, lawyer, client_record, template)
    submit(db, in_progress, {ids["first_name"]: "x"}, partial=True)
    submit(db, completed, {ids["first_name"]: "x", ids["last_name"]: "y"})

    stats = form_service.get_form_statistics(db, law_firm.id)

    assert pending.status == ClientFormStatus.PENDING
    assert stats.total_forms == 3
    assert stats.pending_forms == 1
    assert stats.in_progress_forms == 1
    assert stats.completed_forms == 1
    assert stats.average_completion_percentage == pytest.approx(50.0)
    assert stats.average_completion_time_days >= 0


def test_audit_trail_is_newest_first_and_filterable(db, law_firm, lawyer, client_form, template):
    ids = field_ids(template)
    submit(db, client_form, {ids["first_name"]: "x"}, partial=True)

    trail = form_service.get_audit_trail(db, law_firm.id, client_form.id)
    updates = form_service.get_audit_trail(db, law_firm.id, client_form.id, action=FormAuditAction.FIELD_UPDATED)

    assert [row.action for row in trail] == [FormAuditAction.FIELD_UPDATED, FormAuditAction.CREATED]
    assert len(updates) == 1
