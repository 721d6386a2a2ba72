# app/crud/crud_forms.py

from typing import Any, List, Optional, Tuple
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import desc

from app.crud.base import CRUDBase
from app.models_forms import (
    ClientForm,
    ClientFormDocument,
    FormField,
    FormNotification,
    FormRequiredDocument,
    FormResponse,
    FormSection,
    FormTemplate,
)
from app.schemas.schemas_forms import FormTemplateCreate
from app.constants import ClientFormStatus


def _template_structure_options(path=None):
    """Eager-load options for sections -> fields and required documents (ordered by the relationships)."""
    if path is None:
        sections = selectinload(FormTemplate.sections)
        documents = selectinload(FormTemplate.required_documents)
    else:
        sections = path.selectinload(FormTemplate.sections)
        documents = path.selectinload(FormTemplate.required_documents)
    return [sections.selectinload(FormSection.fields), documents]


class CRUDFormTemplate(CRUDBase):
    def get_active_for_law_firm(self, db: Session, law_firm_id: int) -> List[FormTemplate]:
        return (
            db.query(self.model)
            .filter(
                self.model.law_firm_id == law_firm_id,
                self.model.is_active == True,
                self.model.is_deleted == False,
            )
            .options(*_template_structure_options())
            .order_by(self.model.form_type, self.model.name)
            .all()
        )

    def get_for_law_firm(self, db: Session, law_firm_id: int, template_id: int, active_only: bool = True) -> Optional[FormTemplate]:
        query = db.query(self.model).filter(
            self.model.id == template_id,
            self.model.law_firm_id == law_firm_id,
            self.model.is_deleted == False,
        )
        if active_only:
            query = query.filter(self.model.is_active == True)
        return query.options(*_template_structure_options()).first()

    def create_with_structure(self, db: Session, obj_in: FormTemplateCreate, law_firm_id: int, created_by: int) -> FormTemplate:
        """
        Inserts the template, its sections (each flushed before its fields) and required documents.
        Does not commit: the caller owns the transaction so a partial template is never persisted.
        """
        db_obj = FormTemplate(
            law_firm_id=law_firm_id,
            created_by=created_by,
            name=obj_in.name,
            description=obj_in.description,
            form_type=obj_in.form_type,
            process_type=obj_in.process_type,
        )
        db.add(db_obj)
        db.flush()

        for section_in in obj_in.sections:
            db_section = FormSection(
                form_template_id=db_obj.id,
                title=section_in.title,
                description=section_in.description,
                section_order=section_in.section_order,
                is_required=section_in.is_required,
                depends_on_section_id=section_in.depends_on_section_id,
                conditional_logic=section_in.conditional_logic,
            )
            db.add(db_section)
            db.flush()

            for field_in in section_in.fields:
                db.add(FormField(section_id=db_section.id, **field_in.model_dump()))

        for document_in in obj_in.required_documents:
            db.add(FormRequiredDocument(form_template_id=db_obj.id, **document_in.model_dump()))

        db.flush()
        db.refresh(db_obj)
        return db_obj


class CRUDClientForm(CRUDBase):
    def get_by_access_token(self, db: Session, access_token: str, with_structure: bool = False) -> Optional[ClientForm]:
        query = db.query(self.model).filter(
            self.model.access_token == access_token,
            self.model.is_deleted == False,
        )
        if with_structure:
            query = query.options(
                *_template_structure_options(selectinload(ClientForm.template)),
                selectinload(ClientForm.responses),
                selectinload(ClientForm.documents),
            )
        return query.first()

    def get_with_structure(self, db: Session, client_form_id: int) -> Optional[ClientForm]:
        return (
            db.query(self.model)
            .filter(self.model.id == client_form_id, self.model.is_deleted == False)
            .options(
                *_template_structure_options(selectinload(ClientForm.template)),
                selectinload(ClientForm.responses),
                selectinload(ClientForm.documents),
            )
            .first()
        )

    def get_for_law_firm(self, db: Session, law_firm_id: int, client_form_id: int) -> Optional[ClientForm]:
        return (
            db.query(self.model)
            .join(FormTemplate, FormTemplate.id == self.model.form_template_id)
            .filter(
                self.model.id == client_form_id,
                self.model.is_deleted == False,
                FormTemplate.law_firm_id == law_firm_id,
            )
            .options(
                selectinload(ClientForm.client),
                selectinload(ClientForm.template),
                selectinload(ClientForm.reviewer),
            )
            .first()
        )

    def get_multi_for_law_firm(
        self,
        db: Session,
        law_firm_id: int,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ClientForm]:
        query = (
            db.query(self.model)
            .join(FormTemplate, FormTemplate.id == self.model.form_template_id)
            .filter(self.model.is_deleted == False, FormTemplate.law_firm_id == law_firm_id)
        )
        if status:
            query = query.filter(self.model.status == status)

        return (
            query.options(
                selectinload(ClientForm.client),
                selectinload(ClientForm.template),
                selectinload(ClientForm.reviewer),
            )
            .order_by(desc(self.model.created_at), desc(self.model.id))
            .offset(skip)
            .limit(limit)
            .all()
        )

    def create_for_client(
        self,
        db: Session,
        client_id: int,
        form_template_id: int,
        form_title: str,
        access_token: str,
        expires_at: Any = None,
        instructions: Optional[str] = None,
    ) -> ClientForm:
        db_obj = self.model(
            client_id=client_id,
            form_template_id=form_template_id,
            form_title=form_title,
            access_token=access_token,
            expires_at=expires_at,
            instructions=instructions,
            status=ClientFormStatus.PENDING,
            completion_percentage=0,
        )
        db.add(db_obj)
        db.flush()
        db.refresh(db_obj)
        return db_obj


class CRUDFormResponse(CRUDBase):
    def get_by_form_and_field(self, db: Session, client_form_id: int, field_id: int) -> Optional[FormResponse]:
        return db.query(self.model).filter(
            self.model.client_form_id == client_form_id,
            self.model.field_id == field_id,
        ).first()

    def get_for_client_form(self, db: Session, client_form_id: int) -> List[FormResponse]:
        return db.query(self.model).filter(self.model.client_form_id == client_form_id).all()

    def upsert(
        self,
        db: Session,
        client_form_id: int,
        field: FormField,
        response_value: Optional[str],
        response_data: Any = None,
    ) -> Tuple[FormResponse, Optional[str]]:
        """
        Updates the (client form, field) answer in place or inserts it.
        Returns the row and the previous value (None on insert).
        An insert racing another one raises IntegrityError on flush.
        """
        existing = self.get_by_form_and_field(db, client_form_id, field.id)
        if existing:
            old_value = existing.response_value
            existing.response_value = response_value
            existing.response_data = response_data
            existing.field_name = field.field_name
            db.add(existing)
            db.flush()
            return existing, old_value

        db_obj = self.model(
            client_form_id=client_form_id,
            field_id=field.id,
            field_name=field.field_name,
            response_value=response_value,
            response_data=response_data,
        )
        db.add(db_obj)
        db.flush()
        return db_obj, None


class CRUDClientFormDocument(CRUDBase):
    def get_for_client_form(self, db: Session, client_form_id: int, document_id: int) -> Optional[ClientFormDocument]:
        return db.query(self.model).filter(
            self.model.id == document_id,
            self.model.client_form_id == client_form_id,
            self.model.is_deleted == False,
        ).first()

    def remove(self, db: Session, db_obj: ClientFormDocument) -> None:
        db.delete(db_obj)
        db.flush()


class CRUDFormNotification(CRUDBase):
    def get_for_client_form(self, db: Session, client_form_id: int) -> List[FormNotification]:
        return (
            db.query(self.model)
            .filter(self.model.client_form_id == client_form_id)
            .order_by(self.model.id)
            .all()
        )
