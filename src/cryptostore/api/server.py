"""
cryptostore - FastAPI Key Server

Endpoints:
- GET /health - Liveness check (no auth)
- GET /algorithms - Supported key algorithms
- GET /keys - List keys, sorted by name
- POST /keys - Create a key, returns the recovery phrase once
- POST /keys/recover - Recreate a key from its phrase
- POST /keys/import - Import an exported key
- GET /keys/{name} - Public key info
- PUT /keys/{name} - Change passphrase
- DELETE /keys/{name} - Delete (passphrase required)
- POST /keys/{name}/sign - Sign base64 data
- POST /keys/{name}/export - Re-encrypt under a transfer passphrase
"""

import base64
import binascii
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional
import structlog

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..config import Settings, build_manager
from ..core.manager import Manager
from ..crypto.signable import SignedMessage
from ..errors import (
    AuthenticationFailed,
    CryptoStoreError,
    DuplicateName,
    NotFound,
)

logger = structlog.get_logger()


# ============================================================================
# Pydantic Models
# ============================================================================

class CreateKeyRequest(BaseModel):
    """Request to create a key."""
    name: str = Field(..., min_length=1, description="Unique key name")
    passphrase: str = Field(..., min_length=1)
    algorithm: str = Field(default="ed25519", description="ed25519 or secp256k1")


class RecoverKeyRequest(BaseModel):
    """Request to recover a key from its phrase."""
    name: str = Field(..., min_length=1)
    passphrase: str = Field(..., min_length=1)
    phrase: str = Field(..., description="Space-separated recovery phrase")


class UpdateKeyRequest(BaseModel):
    """Request to change a key's passphrase."""
    passphrase: str
    new_passphrase: str = Field(..., min_length=1)


class PassphraseRequest(BaseModel):
    """Request carrying only the current passphrase."""
    passphrase: str


class SignRequest(BaseModel):
    """Request to sign data."""
    passphrase: str
    data: str = Field(..., description="Base64-encoded bytes to sign")


class ExportRequest(BaseModel):
    """Request to export a key."""
    passphrase: str
    transfer_passphrase: str = Field(..., min_length=1)


class ImportRequest(BaseModel):
    """Request to import an exported key."""
    name: str = Field(..., min_length=1)
    passphrase: str = Field(..., min_length=1)
    transfer_passphrase: str
    salt: str = Field(..., description="Base64-encoded salt")
    ciphertext: str = Field(..., description="Base64-encoded ciphertext")


class KeyResponse(BaseModel):
    """Public key information."""
    name: str
    algorithm: str
    tag: int
    public_key: str
    key_id: str


class CreateKeyResponse(BaseModel):
    """Response from key creation."""
    key: KeyResponse
    phrase: str


class SignResponse(BaseModel):
    """Response from signing."""
    name: str
    public_key: str
    signature: str


class ExportResponse(BaseModel):
    """Exported key material."""
    name: str
    salt: str
    ciphertext: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    uptime_seconds: float


# ============================================================================
# Helpers
# ============================================================================

ERROR_STATUS = {
    NotFound: 404,
    DuplicateName: 409,
    AuthenticationFailed: 401,
}


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode('utf-8')


def _unb64(value: str, field_name: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail=f"Invalid base64 in {field_name}")


def _key_response(key_info) -> KeyResponse:
    return KeyResponse(
        name=key_info.name,
        algorithm=key_info.algorithm,
        tag=key_info.tag,
        public_key=_b64(key_info.public_key),
        key_id=key_info.key_id,
    )


# ============================================================================
# Dependencies
# ============================================================================

def get_manager(request: Request) -> Manager:
    """Get the application's key manager."""
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Application not initialized")
    return manager


def verify_api_key(request: Request, x_api_key: str = Header(..., alias="X-API-Key")) -> str:
    """Verify API key."""
    if x_api_key != request.app.state.settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return x_api_key


# ============================================================================
# Endpoints
# ============================================================================

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(request: Request):
    """Health check endpoint."""
    uptime = (datetime.now(timezone.utc) - request.app.state.start_time).total_seconds()
    return HealthResponse(status="healthy", version=__version__, uptime_seconds=uptime)


@router.get("/algorithms", tags=["Keys"])
async def list_algorithms(
    manager: Manager = Depends(get_manager),
    api_key: str = Depends(verify_api_key),
):
    """Supported key algorithms."""
    return {"algorithms": manager.registry.algorithms()}


@router.get("/keys", response_model=List[KeyResponse], tags=["Keys"])
def list_keys(
    manager: Manager = Depends(get_manager),
    api_key: str = Depends(verify_api_key),
):
    """List all keys, sorted by name."""
    return [_key_response(k) for k in manager.list()]


@router.post("/keys", response_model=CreateKeyResponse, status_code=201, tags=["Keys"])
def create_key(
    body: CreateKeyRequest,
    manager: Manager = Depends(get_manager),
    api_key: str = Depends(verify_api_key),
):
    """
    Create a key.

    The recovery phrase is returned exactly once and is never stored.
    """
    key_info, phrase = manager.create(body.name, body.passphrase, body.algorithm)
    return CreateKeyResponse(key=_key_response(key_info), phrase=phrase)


@router.post("/keys/recover", response_model=KeyResponse, status_code=201, tags=["Keys"])
def recover_key(
    body: RecoverKeyRequest,
    manager: Manager = Depends(get_manager),
    api_key: str = Depends(verify_api_key),
):
    """Recreate a key from its recovery phrase."""
    return _key_response(manager.recover(body.name, body.passphrase, body.phrase))


@router.post("/keys/import", response_model=KeyResponse, status_code=201, tags=["Transfer"])
def import_key(
    body: ImportRequest,
    manager: Manager = Depends(get_manager),
    api_key: str = Depends(verify_api_key),
):
    """Import a key produced by /keys/{name}/export."""
    key_info = manager.import_key(
        body.name,
        body.passphrase,
        body.transfer_passphrase,
        _unb64(body.salt, "salt"),
        _unb64(body.ciphertext, "ciphertext"),
    )
    return _key_response(key_info)


@router.get("/keys/{name}", response_model=KeyResponse, tags=["Keys"])
def get_key(
    name: str,
    manager: Manager = Depends(get_manager),
    api_key: str = Depends(verify_api_key),
):
    """Public information about one key."""
    return _key_response(manager.get(name))


@router.put("/keys/{name}", tags=["Keys"])
def update_key(
    name: str,
    body: UpdateKeyRequest,
    manager: Manager = Depends(get_manager),
    api_key: str = Depends(verify_api_key),
):
    """Change the passphrase protecting a key."""
    manager.update(name, body.passphrase, body.new_passphrase)
    return {"name": name, "updated": True}


@router.delete("/keys/{name}", tags=["Keys"])
def delete_key(
    name: str,
    body: PassphraseRequest,
    manager: Manager = Depends(get_manager),
    api_key: str = Depends(verify_api_key),
):
    """Delete a key. The current passphrase is required."""
    manager.delete(name, body.passphrase)
    return {"name": name, "deleted": True}


@router.post("/keys/{name}/sign", response_model=SignResponse, tags=["Signing"])
def sign_data(
    name: str,
    body: SignRequest,
    manager: Manager = Depends(get_manager),
    api_key: str = Depends(verify_api_key),
):
    """Sign base64-encoded data with the named key."""
    message = SignedMessage(_unb64(body.data, "data"))
    manager.sign(name, body.passphrase, message)
    return SignResponse(
        name=name,
        public_key=_b64(message.public_key),
        signature=_b64(message.signature),
    )


@router.post("/keys/{name}/export", response_model=ExportResponse, tags=["Transfer"])
def export_key(
    name: str,
    body: ExportRequest,
    manager: Manager = Depends(get_manager),
    api_key: str = Depends(verify_api_key),
):
    """Re-encrypt a key under a one-time transfer passphrase."""
    salt, ciphertext = manager.export(name, body.passphrase, body.transfer_passphrase)
    return ExportResponse(name=name, salt=_b64(salt), ciphertext=_b64(ciphertext))


# ============================================================================
# Application Factory
# ============================================================================

async def handle_store_error(request: Request, exc: CryptoStoreError) -> JSONResponse:
    """Map domain errors to HTTP status codes."""
    status = 400
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status = code
            break
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "ValueError", "detail": str(exc)},
    )


def create_app(manager: Optional[Manager] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        """Application lifespan handler."""
        if getattr(application.state, "manager", None) is None:
            application.state.manager = build_manager(settings)
        logger.info("cryptostore_starting", version=__version__, backend=settings.backend)
        yield
        logger.info("cryptostore_stopping")

    application = FastAPI(
        title="cryptostore",
        description="Passphrase-protected private key manager.",
        version=__version__,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.manager = manager
    application.state.start_time = datetime.now(timezone.utc)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_exception_handler(CryptoStoreError, handle_store_error)
    application.add_exception_handler(ValueError, handle_value_error)
    application.include_router(router)

    return application


# ============================================================================
# Run
# ============================================================================

def run(settings: Optional[Settings] = None, host: str = "0.0.0.0"):
    """Run the server."""
    import uvicorn

    settings = settings or Settings.from_env()
    uvicorn.run(create_app(settings=settings), host=host, port=settings.port)


if __name__ == "__main__":
    run()
