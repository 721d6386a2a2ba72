import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.core.file_storage as file_storage
from app.constants import UserRole
from app.core.security import create_access_token
from app.database import Base, get_db
from app.main import app
from app.models import Client, LawFirm, User, UserLawFirm
from app.schemas.schemas_forms import (
    FormFieldCreate,
    FormRequiredDocumentCreate,
    FormSectionCreate,
    FormTemplateCreate,
    SendFormToClientRequest,
)
from app.services.form_service import form_service

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    directory = tmp_path / "uploads"
    monkeypatch.setattr(file_storage, "FORM_UPLOAD_DIR", str(directory))
    return directory


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def law_firm(db):
    firm = LawFirm(name="Rivera & Cole", contact_email="intake@riveracole.example")
    db.add(firm)
    db.commit()
    db.refresh(firm)
    return firm


@pytest.fixture
def other_law_firm(db):
    firm = LawFirm(name="Other Firm LLP", contact_email="office@otherfirm.example")
    db.add(firm)
    db.commit()
    db.refresh(firm)
    return firm


def _make_user(db, law_firm, email, role):
    user = User(email=email, full_name=email.split("@")[0].title(), role=role)
    db.add(user)
    db.flush()
    if law_firm is not None:
        db.add(UserLawFirm(user_id=user.id, law_firm_id=law_firm.id))
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def lawyer(db, law_firm):
    return _make_user(db, law_firm, "lawyer@riveracole.example", UserRole.LAWYER)


@pytest.fixture
def paralegal(db, law_firm):
    return _make_user(db, law_firm, "paralegal@riveracole.example", UserRole.PARALEGAL)


@pytest.fixture
def unaffiliated_user(db):
    return _make_user(db, None, "nobody@example.com", UserRole.LAWYER)


def auth_headers_for(user):
    token = create_access_token({"sub": user.email, "user_id": user.id, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(lawyer):
    return auth_headers_for(lawyer)


@pytest.fixture
def client_record(db, law_firm):
    record = Client(law_firm_id=law_firm.id, full_name="Ana Morales", email="ana@example.com")
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def build_template_in(required_document: bool = False, name: str = "Visa intake") -> FormTemplateCreate:
    documents = []
    if required_document:
        documents.append(
            FormRequiredDocumentCreate(document_type="PASSPORT", document_name="Passport copy", accepted_formats="PDF,JPG")
        )
    return FormTemplateCreate(
        name=name,
        form_type="DS-160",
        process_type="Tourist Visa",
        sections=[
            FormSectionCreate(
                title="Personal data",
                section_order=1,
                fields=[
                    FormFieldCreate(field_name="first_name", field_label="First name", field_type="text", field_order=1, is_required=True),
                    FormFieldCreate(field_name="last_name", field_label="Last name", field_type="text", field_order=2, is_required=True),
                    FormFieldCreate(
                        field_name="nickname",
                        field_label="Nickname",
                        field_type="text",
                        field_order=3,
                        validation_rules={"maxLength": 30},
                    ),
                ],
            )
        ],
        required_documents=documents,
    )


@pytest.fixture
def template(db, law_firm, lawyer):
    return form_service.create_template(db, law_firm.id, lawyer.id, build_template_in())


@pytest.fixture
def template_with_document(db, law_firm, lawyer):
    return form_service.create_template(db, law_firm.id, lawyer.id, build_template_in(required_document=True, name="Visa intake with passport"))


def send_form(db, law_firm, lawyer, client_record, template, **kwargs):
    request_in = SendFormToClientRequest(
        client_id=client_record.id,
        form_template_id=template.id,
        form_title=kwargs.pop("form_title", "Your visa questionnaire"),
        **kwargs,
    )
    return form_service.send_form_to_client(db, law_firm.id, lawyer.id, request_in)


@pytest.fixture
def client_form(db, law_firm, lawyer, client_record, template):
    return send_form(db, law_firm, lawyer, client_record, template)


def field_ids(template):
    return {field.field_name: field.id for section in template.sections for field in section.fields}
