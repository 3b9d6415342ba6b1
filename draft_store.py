import logging
import time
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from config import config
from database import db
from draft_state import DraftAction, InvalidActionError, ResetDraft, compute_totals, new_draft, reduce_draft
from models import InvoiceDraft, InvoicePreview
from preview import build_preview

logger = logging.getLogger(__name__)

# Tabs of the invoice page; the preview only exists while its tab is shown
TABS = ("edit", "preview")

def _initial_session(session_id: str) -> Dict[str, Any]:
    draft = new_draft().model_dump(mode='json')
    return {
        "session_id": session_id,
        "active_tab": "edit",
        "draft": draft,
        # Reset restores the values the form was opened with
        "defaults": draft,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }

def get_session(session_id: str) -> Dict[str, Any]:
    """Get or create a session"""
    session = db.get_session(session_id)
    if not session:
        session = db.create_session(session_id, _initial_session(session_id))
    return session

def save_session(session_id: str, session_data: Dict[str, Any]) -> bool:
    """Save session data to database"""
    return db.update_session(session_id, session_data)

def load_draft(session: Dict[str, Any]) -> InvoiceDraft:
    return InvoiceDraft.model_validate(session["draft"])

def load_defaults(session: Dict[str, Any]) -> Optional[InvoiceDraft]:
    defaults = session.get("defaults")
    return InvoiceDraft.model_validate(defaults) if defaults else None

def _store_draft(session: Dict[str, Any], draft: InvoiceDraft) -> None:
    session["draft"] = draft.model_dump(mode='json')
    save_session(session["session_id"], session)

def _discard_logo(logo_path: Optional[str]) -> None:
    if not logo_path:
        return
    path = Path(logo_path)
    # Only uploads are ours to delete
    if path.resolve().parent != Path(config.UPLOAD_DIR).resolve():
        return
    if path.exists():
        path.unlink()
        logger.info(f"Removed uploaded logo: {logo_path}")

def apply_action(session_id: str, action: DraftAction) -> Dict[str, Any]:
    """Apply a draft action to the session's draft and save it"""
    session = get_session(session_id)
    draft = load_draft(session)
    updated = reduce_draft(draft, action, defaults=load_defaults(session))

    if draft.logo_path and updated.logo_path != draft.logo_path:
        _discard_logo(draft.logo_path)

    if updated is not draft:
        _store_draft(session, updated)
    logger.info(f"Applied {action.type} to session {session_id}",
                extra={'session_id': session_id, 'action': action.type})
    return session

def reset_session(session_id: str) -> Dict[str, Any]:
    """Reset the session's draft to its defaults"""
    session = apply_action(session_id, ResetDraft())
    logger.info(f"Reset session: {session_id}")
    return session

def cleanup_expired_drafts() -> int:
    """Drop expired sessions along with uploaded logos no live draft uses"""
    removed = db.cleanup_expired_sessions()

    upload_dir = Path(config.UPLOAD_DIR)
    if not upload_dir.exists():
        return removed

    in_use = {
        Path(session["draft"]["logo_path"]).resolve()
        for session in db.list_sessions()
        if session.get("draft", {}).get("logo_path")
    }
    # Recent files may belong to an upload still being attached
    cutoff = time.time() - db.ttl.total_seconds()
    for path in upload_dir.iterdir():
        if path.is_file() and path.resolve() not in in_use and path.stat().st_mtime < cutoff:
            path.unlink()
            logger.info(f"Removed orphaned logo: {path}")
    return removed

def switch_tab(session_id: str, tab: str) -> Dict[str, Any]:
    """Show the edit form or the invoice preview"""
    if tab not in TABS:
        raise InvalidActionError(f"Unknown tab '{tab}'. Expected one of: {', '.join(TABS)}")
    session = get_session(session_id)
    session["active_tab"] = tab
    save_session(session_id, session)
    return session

def current_preview(session: Dict[str, Any]) -> Optional[InvoicePreview]:
    """Preview of the session's draft, or None when the preview tab is not shown"""
    if session.get("active_tab") != "preview":
        return None
    return build_preview(load_draft(session))

def session_view(session: Dict[str, Any]) -> Dict[str, Any]:
    """Draft, derived totals and active tab as returned to the client"""
    draft = load_draft(session)
    return {
        "session_id": session["session_id"],
        "active_tab": session.get("active_tab", "edit"),
        "draft": draft.model_dump(mode='json'),
        "totals": compute_totals(draft).model_dump(mode='json'),
    }
