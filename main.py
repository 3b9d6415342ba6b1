from fastapi import FastAPI, UploadFile, File, HTTPException, Request, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.background import BackgroundTask
from pydantic import BaseModel
import asyncio
import shutil
import uuid
from pathlib import Path
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from collections import defaultdict
from reportlab.lib.utils import ImageReader

from config import config
from draft_state import DraftValidationError, EditAction, InvalidActionError, SetLogo, ensure_valid
from draft_store import (
    get_session, apply_action, reset_session, switch_tab,
    load_draft, current_preview, session_view, cleanup_expired_drafts
)
from exports import ExportError, PreviewNotFoundError, export_pdf, export_print, export_email
from formatting import InvalidDateError
from models import CURRENCY_SYMBOLS, PAYMENT_TERMS, PRICING_MODES, SERVICE_TYPES
from pdf_generator import invoice_filename
from submission import InvoiceSink, LoggingInvoiceSink, PersistError, submit_draft

# Configure structured logging
import json as json_lib

class StructuredFormatter(logging.Formatter):
    def format(self, record):
        log_obj = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add extra fields if present
        if hasattr(record, 'session_id'):
            log_obj['session_id'] = record.session_id
        if hasattr(record, 'action'):
            log_obj['action'] = record.action
        if hasattr(record, 'error_type'):
            log_obj['error_type'] = record.error_type

        return json_lib.dumps(log_obj)

# Configure logging
json_handler = logging.FileHandler(config.LOG_FILE.replace('.log', '_structured.json'))
json_handler.setFormatter(StructuredFormatter())

standard_handler = logging.StreamHandler()
standard_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL),
    handlers=[json_handler, standard_handler]
)
logger = logging.getLogger(__name__)

# Error tracking metrics
error_metrics = defaultdict(lambda: {'count': 0, 'last_error': None})

def track_error(error_type: str, session_id: str = None, details: str = None):
    """Track error occurrences for monitoring"""
    error_metrics[error_type]['count'] += 1
    error_metrics[error_type]['last_error'] = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'session_id': session_id,
        'details': details
    }

    logger.error(
        f"Error tracked: {error_type}",
        extra={
            'error_type': error_type,
            'session_id': session_id,
            'details': details
        }
    )

# Configuration validation
try:
    config.validate()
    logger.info("Configuration validated successfully")
except ValueError as e:
    logger.warning(f"Configuration validation warning: {e}")

async def _cleanup_sessions_periodically():
    while True:
        await asyncio.sleep(max(config.SESSION_CLEANUP_INTERVAL_MINUTES, 1) * 60)
        try:
            cleanup_expired_drafts()
        except Exception as e:
            logger.error(f"Session cleanup failed: {str(e)}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    removed = cleanup_expired_drafts()
    logger.info(f"Removed {removed} expired session(s) at startup")
    cleanup_task = asyncio.create_task(_cleanup_sessions_periodically())

    yield

    cleanup_task.cancel()
    logger.info("Shutting down Invoice Draft API...")

app = FastAPI(title="Invoice Draft API", lifespan=lifespan)

# Configure rate limiting
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)

UPLOAD_DIR = Path(config.UPLOAD_DIR)
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)

ALLOWED_LOGO_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
}

invoice_sink = LoggingInvoiceSink()

def get_invoice_sink() -> InvoiceSink:
    return invoice_sink

def _session_id(request: Request) -> str:
    return request.path_params.get("session_id")

# Domain errors mapped to HTTP responses

async def invalid_action_handler(request: Request, exc: InvalidActionError):
    track_error('invalid_action', _session_id(request), str(exc))
    return JSONResponse(status_code=400, content={"detail": str(exc)})

async def draft_validation_handler(request: Request, exc: DraftValidationError):
    logger.warning(f"Validation failed for session {_session_id(request)}: {exc}",
                   extra={'session_id': _session_id(request)})
    track_error('validation_error', _session_id(request), str(exc))
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Invoice has invalid fields",
            "errors": [error.model_dump() for error in exc.errors]
        }
    )

async def invalid_date_handler(request: Request, exc: InvalidDateError):
    track_error('invalid_date', _session_id(request), str(exc))
    return JSONResponse(status_code=422, content={"detail": str(exc)})

async def preview_not_found_handler(request: Request, exc: PreviewNotFoundError):
    track_error('preview_not_found', _session_id(request), str(exc))
    return JSONResponse(status_code=409, content={"detail": str(exc)})

async def export_error_handler(request: Request, exc: ExportError):
    track_error('export_error', _session_id(request), str(exc))
    return JSONResponse(status_code=500, content={"detail": "Failed to export invoice"})

async def persist_error_handler(request: Request, exc: PersistError):
    track_error('persist_error', _session_id(request), str(exc))
    return JSONResponse(status_code=500, content={"detail": "Failed to save invoice"})

app.add_exception_handler(InvalidActionError, invalid_action_handler)
app.add_exception_handler(DraftValidationError, draft_validation_handler)
app.add_exception_handler(InvalidDateError, invalid_date_handler)
app.add_exception_handler(PreviewNotFoundError, preview_not_found_handler)
app.add_exception_handler(ExportError, export_error_handler)
app.add_exception_handler(PersistError, persist_error_handler)

class SessionStart(BaseModel):
    session_id: str

class SessionReset(BaseModel):
    session_id: str

class ActionRequest(BaseModel):
    action: EditAction

class TabSwitch(BaseModel):
    tab: str

def validate_logo_upload(file: UploadFile) -> None:
    """Validate uploaded logo"""
    if file.content_type not in ALLOWED_LOGO_TYPES:
        raise HTTPException(
            status_code=415,
            detail=f"Invalid file type. Allowed types: {', '.join(ALLOWED_LOGO_TYPES)}"
        )

    # Check file size (read in chunks to avoid memory issues)
    file_size = 0
    for chunk in iter(lambda: file.file.read(64 * 1024), b''):
        file_size += len(chunk)
        if file_size > config.max_logo_size_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum size is {config.MAX_LOGO_SIZE_MB}MB"
            )

    if file_size == 0:
        raise HTTPException(status_code=400, detail="Logo file is empty.")

    # The PDF renderer must be able to read the image
    file.file.seek(0)
    try:
        ImageReader(file.file).getSize()
    except Exception as e:
        logger.warning(f"Rejected unreadable logo {file.filename}: {str(e)}")
        raise HTTPException(status_code=415, detail="Logo file is not a readable image.")

    file.file.seek(0)  # Reset file pointer

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {}
    }

    # Check database connectivity
    try:
        from database import db
        db.get_session("health_check_test")
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"
        logger.error(f"Database health check failed: {str(e)}")

    return health_status

@app.get("/metrics")
async def get_metrics():
    """Get error metrics"""
    return {
        "error_metrics": dict(error_metrics),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

@app.post("/start")
@limiter.limit(f"{config.RATE_LIMIT_PER_MINUTE}/minute")
async def start_session(request: Request, payload: SessionStart):
    """Open the invoice form, resuming the session's draft if it has one"""
    session = get_session(payload.session_id)
    logger.info(f"Started session: {payload.session_id}")
    return {
        **session_view(session),
        "options": {
            "currencies": CURRENCY_SYMBOLS,
            "payment_terms": list(PAYMENT_TERMS),
            "service_types": list(SERVICE_TYPES),
            "pricing_modes": list(PRICING_MODES),
        }
    }

@app.post("/reset")
@limiter.limit(f"{config.RATE_LIMIT_PER_MINUTE}/minute")
async def reset(request: Request, payload: SessionReset):
    """Reset the session's draft to its defaults"""
    session = reset_session(payload.session_id)
    return {
        "detail": "Invoice reset successfully",
        **session_view(session)
    }

@app.get("/drafts/{session_id}")
@limiter.limit(f"{config.RATE_LIMIT_PER_MINUTE}/minute")
async def get_draft(request: Request, session_id: str):
    """Current draft with its derived totals"""
    return session_view(get_session(session_id))

@app.post("/drafts/{session_id}/actions")
@limiter.limit(f"{config.RATE_LIMIT_PER_MINUTE}/minute")
async def draft_action(request: Request, session_id: str, payload: ActionRequest):
    """Apply one edit to the draft"""
    session = apply_action(session_id, payload.action)
    return session_view(session)

@app.post("/drafts/{session_id}/tab")
@limiter.limit(f"{config.RATE_LIMIT_PER_MINUTE}/minute")
async def change_tab(request: Request, session_id: str, payload: TabSwitch):
    """Switch between the edit form and the preview"""
    session = switch_tab(session_id, payload.tab)
    return session_view(session)

@app.post("/drafts/{session_id}/logo")
@limiter.limit(f"{config.RATE_LIMIT_PER_MINUTE}/minute")
async def upload_logo(request: Request, session_id: str, file: UploadFile = File(...)):
    """Attach a company logo to the draft"""
    validate_logo_upload(file)

    logo_path = UPLOAD_DIR / f"{uuid.uuid4()}{ALLOWED_LOGO_TYPES[file.content_type]}"
    with open(logo_path, "wb") as buffer:
        shutil.copyfileobj(file.file, buffer)

    session = apply_action(session_id, SetLogo(logo_path=str(logo_path)))
    logger.info(f"Stored logo for session {session_id}: {logo_path}")
    return session_view(session)

@app.delete("/drafts/{session_id}/logo")
@limiter.limit(f"{config.RATE_LIMIT_PER_MINUTE}/minute")
async def remove_logo(request: Request, session_id: str):
    """Detach the company logo from the draft"""
    session = apply_action(session_id, SetLogo(logo_path=None))
    return session_view(session)

@app.get("/drafts/{session_id}/preview")
@limiter.limit(f"{config.RATE_LIMIT_PER_MINUTE}/minute")
async def get_preview(request: Request, session_id: str):
    """Rendered invoice preview"""
    preview = current_preview(get_session(session_id))
    if preview is None:
        raise PreviewNotFoundError("Invoice preview is not shown. Switch to the preview tab first.")
    return preview.model_dump(mode='json')

@app.post("/drafts/{session_id}/submit")
@limiter.limit(f"{config.RATE_LIMIT_PER_MINUTE}/minute")
async def submit(request: Request, session_id: str, sink: InvoiceSink = Depends(get_invoice_sink)):
    """Validate the draft and save the invoice"""
    draft = load_draft(get_session(session_id))
    receipt = submit_draft(draft, sink)
    logger.info(f"Invoice {receipt.invoice_number} saved for session {session_id}",
                extra={'session_id': session_id})
    return {
        "detail": "Invoice saved successfully!",
        "receipt": receipt.model_dump(mode='json')
    }

@app.post("/drafts/{session_id}/export/pdf")
@limiter.limit(f"{config.EXPORT_RATE_LIMIT_PER_HOUR}/hour")
async def download_pdf(request: Request, session_id: str):
    """Download the previewed invoice as a PDF"""
    session = get_session(session_id)
    draft = load_draft(session)
    ensure_valid(draft)
    pdf_path = await export_pdf(draft, current_preview(session))
    return FileResponse(
        path=pdf_path,
        media_type="application/pdf",
        filename=invoice_filename(draft.invoice_number),
        background=BackgroundTask(pdf_path.unlink, missing_ok=True)
    )

@app.post("/drafts/{session_id}/export/print")
@limiter.limit(f"{config.EXPORT_RATE_LIMIT_PER_HOUR}/hour")
async def print_invoice(request: Request, session_id: str):
    """Previewed invoice as an inline PDF for the browser's print dialog"""
    session = get_session(session_id)
    draft = load_draft(session)
    ensure_valid(draft)
    pdf_path = await export_print(draft, current_preview(session))
    return FileResponse(
        path=pdf_path,
        media_type="application/pdf",
        filename=invoice_filename(draft.invoice_number),
        content_disposition_type="inline",
        background=BackgroundTask(pdf_path.unlink, missing_ok=True)
    )

@app.post("/drafts/{session_id}/export/email")
@limiter.limit(f"{config.EXPORT_RATE_LIMIT_PER_HOUR}/hour")
async def email_invoice(request: Request, session_id: str):
    """Prefilled email for the client's mail program"""
    draft = load_draft(get_session(session_id))
    email = export_email(draft)
    return email.model_dump()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)
