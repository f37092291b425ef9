"""FastAPI application for the addon uploads service."""

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi import Path as PathParam
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from addon_uploads.adapters.shop import shop
from addon_uploads.adapters.storage import LocalStorage
from addon_uploads.config import AddonSettings, load_settings
from addon_uploads.domain.errors import NotFoundError
from addon_uploads.domain.models import (
    AddToCartResponse,
    CartResponse,
    Order,
    UploadField,
)
from addon_uploads.security import problem_from_error, problem_response
from addon_uploads.security.nonces import UPLOAD_ACTION, NonceManager
from addon_uploads.security.uploads import RawUpload, UploadValidator
from addon_uploads.services import cart_service
from addon_uploads.services.audit_service import audit_service
from addon_uploads.services.download_service import (
    DOWNLOAD_ACTION,
    DOWNLOAD_ROUTE,
    RetrievalGate,
)
from addon_uploads.services.store import AttachmentStore
from addon_uploads.services.upload_service import UploadService

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Addon Uploads API",
    description="Image attachments for cart line items",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8080"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

CART_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"
SPOOL_CHUNK = 64 * 1024

settings = load_settings()


# Dependencies


def get_settings() -> AddonSettings:
    return settings


def get_storage() -> LocalStorage:
    return LocalStorage()


def get_nonce_manager(config: AddonSettings = Depends(get_settings)) -> NonceManager:
    return NonceManager(config.secret_key, lifetime=config.nonce_lifetime)


def get_store(
    config: AddonSettings = Depends(get_settings),
    storage: LocalStorage = Depends(get_storage),
) -> AttachmentStore:
    return AttachmentStore(
        storage,
        config.storage_root,
        config.media_base_url,
        allowed_extensions=config.allowed_extensions,
    )


def get_upload_service(
    config: AddonSettings = Depends(get_settings),
    nonces: NonceManager = Depends(get_nonce_manager),
    store: AttachmentStore = Depends(get_store),
) -> UploadService:
    validator = UploadValidator(config.allowed_extensions, nonces, config.max_bytes)
    return UploadService(validator, store, audit_service.audit_logger)


def get_gate(
    config: AddonSettings = Depends(get_settings),
    storage: LocalStorage = Depends(get_storage),
) -> RetrievalGate:
    return RetrievalGate(storage, config.storage_root)


# Helpers


def _ensure_correlation_id(request: Request) -> str:
    """Return existing correlation id or generate a new one."""
    correlation_id = getattr(request.state, "correlation_id", None)
    if not correlation_id:
        correlation_id = audit_service.generate_correlation_id()
        request.state.correlation_id = correlation_id
    return correlation_id


def _problem_response(
    request: Request,
    *,
    status_code: int,
    title: str,
    detail: str,
    code: str,
    headers: dict[str, str] | None = None,
    extras: dict[str, Any] | None = None,
):
    """Produce a RFC 7807 response with a stable correlation id."""
    payload = {"code": code}
    if extras:
        payload.update(extras)
    return problem_response(
        status=status_code,
        title=title,
        detail=detail,
        headers=headers,
        extras=payload,
        correlation_id=_ensure_correlation_id(request),
        instance=str(request.url.path),
    )


async def _spool_upload(file: Optional[UploadFile], limit: int) -> Optional[RawUpload]:
    """Copy the posted file to a temporary path.

    Reading stops one chunk past the limit; the reported size then exceeds
    it and the validator rejects the upload.
    """
    if file is None or not file.filename:
        return None
    fd, temp_name = tempfile.mkstemp(prefix="addon-upload-")
    size = 0
    try:
        with os.fdopen(fd, "wb") as handle:
            while size <= limit:
                chunk = await file.read(SPOOL_CHUNK)
                if not chunk:
                    break
                size += len(chunk)
                handle.write(chunk)
    except Exception:
        Path(temp_name).unlink(missing_ok=True)
        raise
    finally:
        await file.close()
    return RawUpload(original_name=file.filename, temp_path=Path(temp_name), size=size)


def _get_product_or_404(product_id: int):
    product = shop.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


# Middleware


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Attach a correlation id and hardening headers to every response."""
    correlation_id = _ensure_correlation_id(request)
    audit_service.log_request(correlation_id, request.method, request.url.path)

    response = await call_next(request)
    for header, value in audit_service.get_security_headers().items():
        response.headers[header] = value
    response.headers.setdefault("X-Correlation-ID", correlation_id)
    return response


# Exception handlers


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
    fields = [".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()]
    return _problem_response(
        request,
        status_code=422,
        title="Invalid input",
        detail="Request failed validation",
        code="validation_error",
        extras={"fields": fields},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTPException exceptions."""
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    status_code = exc.status_code
    title = "HTTP error"
    code = "http_error"

    if status_code == status.HTTP_403_FORBIDDEN:
        title = "Access denied"
        code = "access_denied"
    elif status_code == status.HTTP_404_NOT_FOUND:
        title = "Resource not found"
        code = "not_found"
    elif status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        title = "Method not allowed"
        code = "method_not_allowed"

    logger.warning("HTTPException (%s): %s", status_code, detail)
    return _problem_response(
        request,
        status_code=status_code,
        title=title,
        detail=detail,
        code=code,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions."""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return _problem_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        title="Internal server error",
        detail="Internal server error",
        code="internal_error",
    )


# Product page


@app.get("/api/v1/products/{product_id}/upload-field", response_model=UploadField)
async def upload_field(
    product_id: int,
    cart_id: str = Query(..., pattern=CART_ID_PATTERN),
    config: AddonSettings = Depends(get_settings),
    nonces: NonceManager = Depends(get_nonce_manager),
):
    """Describe the upload input for a product page."""
    product = _get_product_or_404(product_id)
    enabled = cart_service.is_upload_enabled(config, product)
    return UploadField(
        enabled=enabled,
        product_id=product.id,
        nonce=nonces.create(UPLOAD_ACTION, cart_id) if enabled else None,
    )


# Cart


@app.post(
    "/api/v1/carts/{cart_id}/items",
    response_model=AddToCartResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_to_cart(
    request: Request,
    cart_id: str = PathParam(..., pattern=CART_ID_PATTERN),
    product_id: int = Form(...),
    quantity: int = Form(1, ge=1, le=1000),
    addon_file: Optional[UploadFile] = File(None),
    addon_upload_nonce: Optional[str] = Form(None),
    config: AddonSettings = Depends(get_settings),
    upload_service: UploadService = Depends(get_upload_service),
):
    """Add a product to the cart, attaching the uploaded image when admitted."""
    product = _get_product_or_404(product_id)
    upload = await _spool_upload(addon_file, config.max_bytes)
    try:
        line, notices = upload_service.add_to_cart(
            shop,
            cart_id,
            product,
            quantity,
            upload=upload,
            token=addon_upload_nonce,
            upload_enabled=cart_service.is_upload_enabled(config, product),
            correlation_id=_ensure_correlation_id(request),
        )
    finally:
        if upload is not None:
            upload.temp_path.unlink(missing_ok=True)

    logger.info("Line %s added to cart %s (%s attachments)", line.key, cart_id, len(line.attachments))
    return AddToCartResponse(line=line, notices=notices)


@app.get("/api/v1/carts/{cart_id}", response_model=CartResponse)
async def get_cart(
    cart_id: str = PathParam(..., pattern=CART_ID_PATTERN),
    block: bool = Query(False),
    config: AddonSettings = Depends(get_settings),
):
    """Return the cart rebuilt from its session values."""
    if not shop.has_cart(cart_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cart not found")
    lines = cart_service.cart_view(shop, cart_id, config.site_url, block_present=block)
    return CartResponse(cart_id=cart_id, lines=lines)


@app.delete("/api/v1/carts/{cart_id}/items/{line_key}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_cart_item(
    request: Request,
    line_key: str,
    cart_id: str = PathParam(..., pattern=CART_ID_PATTERN),
    store: AttachmentStore = Depends(get_store),
):
    """Remove a cart line and clean up its uploaded file."""
    removed = cart_service.remove_cart_line(
        shop,
        store,
        cart_id,
        line_key,
        audit_logger=audit_service.audit_logger,
        correlation_id=_ensure_correlation_id(request),
    )
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cart item not found")
    logger.info("Line %s removed from cart %s", line_key, cart_id)


@app.post(
    "/api/v1/carts/{cart_id}/checkout",
    response_model=Order,
    status_code=status.HTTP_201_CREATED,
)
async def checkout(
    request: Request,
    cart_id: str = PathParam(..., pattern=CART_ID_PATTERN),
    config: AddonSettings = Depends(get_settings),
):
    """Turn the cart into an order."""
    if not shop.has_cart(cart_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cart not found")
    if not shop.session_values(cart_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cart is empty")
    order = cart_service.checkout(shop, cart_id, config.site_url)
    audit_service.audit_logger.log_event(
        "order_created",
        _ensure_correlation_id(request),
        order_id=order.id,
        cart_id=cart_id,
    )
    return order


@app.get("/api/v1/orders/{order_id}", response_model=Order)
async def get_order(order_id: int):
    """Get order by ID."""
    order = shop.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


# Secure download


@app.get(DOWNLOAD_ROUTE)
async def secure_download(
    request: Request,
    action: Optional[str] = Query(None),
    file: Optional[str] = Query(None),
    gate: RetrievalGate = Depends(get_gate),
):
    """Stream a stored attachment as a forced download."""
    if action != DOWNLOAD_ACTION or not file:
        return _problem_response(
            request,
            status_code=status.HTTP_403_FORBIDDEN,
            title="Unauthorized access",
            detail="Unauthorized access.",
            code="unauthorized",
        )

    try:
        target = gate.resolve(file)
    except NotFoundError as exc:
        return problem_from_error(
            exc,
            title="File not found",
            detail="File does not exist.",
            instance=str(request.url.path),
            correlation_id=_ensure_correlation_id(request),
        )

    audit_service.audit_logger.log_event(
        "file_downloaded",
        _ensure_correlation_id(request),
        file_name=target.file_name,
        size=target.size,
    )
    return FileResponse(
        target.path,
        media_type="application/octet-stream",
        filename=target.file_name,
    )


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
