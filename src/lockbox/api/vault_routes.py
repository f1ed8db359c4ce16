# Vault API - REST endpoints for the secrets vault
#
# - Create / login / recover / lock
# - CRUD for secrets, activate / deactivate to disk
# - Every endpoint requires the X-Session-Token header
#
# Endpoints are plain `def` so FastAPI runs them in its threadpool: key
# derivation and file I/O block.

import base64
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..vault import (
    InvalidCategoryError,
    MissingFilePathError,
    SecretNotFoundError,
    SecretRegistry,
    VaultError,
    VaultExistsError,
    VaultLockedError,
    VaultNotFoundError,
    VaultSecret,
    VaultSession,
)
from .security import verify_session_token

router = APIRouter(
    prefix="/api/vault",
    tags=["vault"],
    dependencies=[Depends(verify_session_token)],
)


def get_vault_session(request: Request) -> VaultSession:
    return request.app.state.vault_session


def get_secret_registry(request: Request) -> SecretRegistry:
    return request.app.state.secret_registry


def _http_error(exc: VaultError) -> HTTPException:
    """Map a vault exception to an HTTP error."""
    if isinstance(exc, VaultLockedError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, (SecretNotFoundError, VaultNotFoundError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, VaultExistsError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, (InvalidCategoryError, MissingFilePathError)):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(exc))


# Request/Response Models

class PasswordRequest(BaseModel):
    password: str = Field(..., min_length=1)


class RecoverRequest(BaseModel):
    recovery_key: str = Field(..., min_length=1)


class VaultStatusResponse(BaseModel):
    exists: bool
    unlocked: bool


class AddSecretRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    category: str
    content: str
    content_encoding: str = Field("utf-8", pattern="^(utf-8|base64)$")
    file_path: Optional[str] = None
    notes: Optional[str] = None


class UpdateSecretRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = None
    content: Optional[str] = None
    content_encoding: str = Field("utf-8", pattern="^(utf-8|base64)$")
    file_path: Optional[str] = None
    notes: Optional[str] = None


class SecretResponse(BaseModel):
    id: str
    name: str
    category: str
    file_path: Optional[str]
    notes: Optional[str]
    is_active: bool
    created_at: str
    updated_at: str


class SecretContentResponse(BaseModel):
    id: str
    content: str
    content_encoding: str


def _decode_content(content: str, encoding: str) -> bytes:
    if encoding == "base64":
        try:
            return base64.b64decode(content, validate=True)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="content is not valid base64",
            ) from None
    return content.encode("utf-8")


def _secret_response(secret: VaultSecret) -> SecretResponse:
    return SecretResponse(**secret.to_dict())


# Session endpoints

@router.get("/status", response_model=VaultStatusResponse)
def get_vault_status(session: VaultSession = Depends(get_vault_session)):
    """Whether the vault exists and whether it is unlocked."""
    return VaultStatusResponse(**session.vault_status().to_dict())


@router.post("/create")
def create_vault(request: PasswordRequest, session: VaultSession = Depends(get_vault_session)):
    """
    Create the vault with a master password.

    The returned recovery key is shown once and never stored in plaintext.
    """
    try:
        recovery_key = session.create_master_password(request.password)
    except VaultError as e:
        raise _http_error(e) from e
    return {"success": True, "recovery_key": recovery_key}


@router.post("/login")
def login(request: PasswordRequest, session: VaultSession = Depends(get_vault_session)):
    """Unlock the vault with the master password."""
    try:
        ok = session.login(request.password)
    except VaultError as e:
        raise _http_error(e) from e

    if not ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect master password",
        )
    return {"success": True}


@router.post("/recover")
def recover(request: RecoverRequest, session: VaultSession = Depends(get_vault_session)):
    """Unlock the vault with the recovery key."""
    try:
        ok = session.recover_vault(request.recovery_key)
    except VaultError as e:
        raise _http_error(e) from e

    if not ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect recovery key",
        )
    return {"success": True}


@router.post("/lock")
def lock(session: VaultSession = Depends(get_vault_session)):
    """Lock the vault and remove every activated secret file."""
    try:
        removed = session.lock_vault()
    except VaultError as e:
        raise _http_error(e) from e
    return {"success": True, "files_removed": removed}


@router.post("/touch")
def touch(session: VaultSession = Depends(get_vault_session)):
    """Reset the inactivity auto-lock timer."""
    session.touch()
    return {"success": True, "unlocked": session.is_unlocked}


# Secret endpoints

@router.get("/secrets", response_model=List[SecretResponse])
def list_secrets(
    category: Optional[str] = None,
    registry: SecretRegistry = Depends(get_secret_registry),
):
    """List secrets (metadata only)."""
    try:
        secrets = registry.list_secrets(category=category)
    except VaultError as e:
        raise _http_error(e) from e
    return [_secret_response(s) for s in secrets]


@router.post("/secrets", status_code=status.HTTP_201_CREATED)
def add_secret(request: AddSecretRequest, registry: SecretRegistry = Depends(get_secret_registry)):
    content = _decode_content(request.content, request.content_encoding)
    try:
        secret_id = registry.add_secret(
            name=request.name,
            category=request.category,
            content=content,
            file_path=request.file_path,
            notes=request.notes,
        )
    except VaultError as e:
        raise _http_error(e) from e
    return {"success": True, "id": secret_id}


@router.post("/secrets/deactivate-all")
def deactivate_all_secrets(registry: SecretRegistry = Depends(get_secret_registry)):
    """Remove every activated secret file from disk."""
    try:
        removed = registry.deactivate_all()
    except VaultError as e:
        raise _http_error(e) from e
    return {"success": True, "files_removed": removed}


@router.get("/secrets/{secret_id}", response_model=SecretResponse)
def get_secret(secret_id: str, registry: SecretRegistry = Depends(get_secret_registry)):
    try:
        return _secret_response(registry.get_secret(secret_id))
    except VaultError as e:
        raise _http_error(e) from e


@router.get("/secrets/{secret_id}/content", response_model=SecretContentResponse)
def get_secret_content(secret_id: str, registry: SecretRegistry = Depends(get_secret_registry)):
    """Secret content; UTF-8 text when possible, base64 otherwise."""
    try:
        content = registry.get_content(secret_id)
    except VaultError as e:
        raise _http_error(e) from e

    try:
        return SecretContentResponse(id=secret_id, content=content.decode("utf-8"), content_encoding="utf-8")
    except UnicodeDecodeError:
        return SecretContentResponse(
            id=secret_id,
            content=base64.b64encode(content).decode("ascii"),
            content_encoding="base64",
        )


@router.patch("/secrets/{secret_id}")
def update_secret(
    secret_id: str,
    request: UpdateSecretRequest,
    registry: SecretRegistry = Depends(get_secret_registry),
):
    """Update only the supplied fields."""
    content = None
    if request.content is not None:
        content = _decode_content(request.content, request.content_encoding)
    try:
        registry.update_secret(
            secret_id,
            name=request.name,
            category=request.category,
            content=content,
            file_path=request.file_path,
            notes=request.notes,
        )
    except VaultError as e:
        raise _http_error(e) from e
    return {"success": True}


@router.delete("/secrets/{secret_id}")
def delete_secret(secret_id: str, registry: SecretRegistry = Depends(get_secret_registry)):
    try:
        registry.delete_secret(secret_id)
    except VaultError as e:
        raise _http_error(e) from e
    return {"success": True}


@router.post("/secrets/{secret_id}/activate")
def activate_secret(secret_id: str, registry: SecretRegistry = Depends(get_secret_registry)):
    """Write the secret to its file_path (0600)."""
    try:
        path = registry.activate(secret_id)
    except VaultError as e:
        raise _http_error(e) from e
    return {"success": True, "file_path": path}


@router.post("/secrets/{secret_id}/deactivate")
def deactivate_secret(secret_id: str, registry: SecretRegistry = Depends(get_secret_registry)):
    """Securely delete the secret's file."""
    try:
        registry.deactivate(secret_id)
    except VaultError as e:
        raise _http_error(e) from e
    return {"success": True}
