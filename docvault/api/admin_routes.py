"""Administrator routes; every route here requires the ``admin`` role."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status

from .dependencies import get_service, require_role
from .routes import read_upload
from .schemas import (
    AccountResponse,
    ArchiveResponse,
    ArchivedAccountResponse,
    CompanyDocumentResponse,
    CreateAccountRequest,
    DocumentResponse,
    StatisticsResponse,
)
from ..domain.account import Role
from ..domain.document import DocumentSpace
from ..domain.service import WorkforceService

router = APIRouter(prefix="/admin", dependencies=[Depends(require_role(Role.ADMIN))])


@router.get("/employees", response_model=list[AccountResponse])
def list_employees(service: WorkforceService = Depends(get_service)) -> list[AccountResponse]:
    """List employee accounts in the active space."""
    return [AccountResponse.from_domain(account) for account in service.list_employees()]


@router.post("/employees", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_employee(
    payload: CreateAccountRequest,
    service: WorkforceService = Depends(get_service),
) -> AccountResponse:
    account = service.provision_account(
        external_login_id=payload.external_login_id,
        credential=payload.credential,
        display_name=payload.display_name,
        role=payload.role,
    )
    return AccountResponse.from_domain(account)


@router.post("/employees/{account_id}/archive", response_model=ArchiveResponse)
def archive_employee(account_id: int, service: WorkforceService = Depends(get_service)) -> ArchiveResponse:
    """Move an employee and all of their documents into the archived space."""
    return ArchiveResponse.from_domain(service.archive_employee(account_id))


@router.get("/archived-employees", response_model=list[ArchivedAccountResponse])
def list_archived_employees(service: WorkforceService = Depends(get_service)) -> list[ArchivedAccountResponse]:
    return [ArchivedAccountResponse.from_domain(account) for account in service.list_archived_employees()]


@router.get("/documents/{account_id}", response_model=list[DocumentResponse])
def list_account_documents(
    account_id: int,
    space: DocumentSpace = Query(default=DocumentSpace.ACTIVE),
    service: WorkforceService = Depends(get_service),
) -> list[DocumentResponse]:
    """List one account's documents in the selected space."""
    return [DocumentResponse.from_domain(document) for document in service.list_documents(account_id, space)]


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: int,
    space: DocumentSpace = Query(default=DocumentSpace.ACTIVE),
    service: WorkforceService = Depends(get_service),
) -> Response:
    service.delete_document(document_id, space)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/company-documents", response_model=list[CompanyDocumentResponse])
def list_company_documents(
    document_type: str | None = Query(default=None),
    service: WorkforceService = Depends(get_service),
) -> list[CompanyDocumentResponse]:
    return [CompanyDocumentResponse.from_domain(doc) for doc in service.list_company_documents(document_type)]


@router.post("/company-documents", response_model=CompanyDocumentResponse, status_code=status.HTTP_201_CREATED)
def upload_company_document(
    file: UploadFile = File(...),
    document_type: str = Form(...),
    expiration_date: date | None = Form(default=None),
    service: WorkforceService = Depends(get_service),
) -> CompanyDocumentResponse:
    """Upload an organisation-wide document."""
    document = service.upload_company_document(document_type, read_upload(file), expiration_date)
    return CompanyDocumentResponse.from_domain(document)


@router.get("/company-documents/{document_id}", response_model=CompanyDocumentResponse)
def get_company_document(
    document_id: int,
    service: WorkforceService = Depends(get_service),
) -> CompanyDocumentResponse:
    return CompanyDocumentResponse.from_domain(service.get_company_document(document_id))


@router.delete("/company-documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_company_document(
    document_id: int,
    service: WorkforceService = Depends(get_service),
) -> Response:
    service.delete_company_document(document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/statistics", response_model=StatisticsResponse)
def statistics(service: WorkforceService = Depends(get_service)) -> StatisticsResponse:
    return StatisticsResponse.from_domain(service.statistics())
