"""HTTP routes for login and employee self-service uploads."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from .dependencies import current_identity, get_service, require_role
from .schemas import DocumentResponse, IdentityResponse, LoginRequest, LoginResponse
from ..domain.account import Identity, Role
from ..domain.service import UploadedArtifact, WorkforceService

router = APIRouter()


def read_upload(upload: UploadFile) -> UploadedArtifact:
    """Buffer a multipart upload so it can be classified and stored."""
    content = upload.file.read()
    return UploadedArtifact(
        filename=upload.filename or "",
        content_type=upload.content_type or "application/octet-stream",
        content=content,
    )


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    service: WorkforceService = Depends(get_service),
) -> LoginResponse:
    """Verify a credential and issue an 8-hour bearer token."""
    result = service.login(payload.username, payload.password)
    return LoginResponse(
        access_token=result.access_token,
        expires_in=result.expires_in,
        role=result.account.role,
        display_name=result.account.display_name,
    )


@router.get("/me", response_model=IdentityResponse)
def who_am_i(identity: Identity = Depends(current_identity)) -> IdentityResponse:
    return IdentityResponse(
        account_id=identity.account_id,
        role=identity.role,
        display_name=identity.display_name,
    )


@router.post("/documents", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
def upload_document(
    file: UploadFile = File(...),
    document_type: str = Form(...),
    expiration_date: date | None = Form(default=None),
    identity: Identity = Depends(require_role(Role.USER)),
    service: WorkforceService = Depends(get_service),
) -> DocumentResponse:
    """Upload a compliance document owned by the caller."""
    document = service.upload_document(identity, document_type, read_upload(file), expiration_date)
    return DocumentResponse.from_domain(document)


@router.get("/documents", response_model=list[DocumentResponse])
def list_my_documents(
    identity: Identity = Depends(require_role(Role.USER)),
    service: WorkforceService = Depends(get_service),
) -> list[DocumentResponse]:
    return [DocumentResponse.from_domain(document) for document in service.list_documents(identity.account_id)]
