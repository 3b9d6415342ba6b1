import os
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import draft_store
from config import config
from database import Database, db
from draft_state import AddLineItem, InvalidActionError, SetField, SetLogo, UpdateLineItem

def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)

class TestDatabase:
    def test_session_round_trip(self, tmp_path):
        db = Database(str(tmp_path / "sessions.db"))
        db.create_session("abc", {"active_tab": "edit"})
        assert db.get_session("abc") == {"active_tab": "edit"}
        assert db.update_session("abc", {"active_tab": "preview"})
        assert db.get_session("abc") == {"active_tab": "preview"}
        assert db.delete_session("abc")
        assert db.get_session("abc") is None

    def test_update_unknown_session(self, tmp_path):
        db = Database(str(tmp_path / "sessions.db"))
        assert db.update_session("missing", {}) is False

    def test_expired_sessions_are_dropped(self, tmp_path):
        db = Database(str(tmp_path / "sessions.db"), ttl_hours=0)
        db.create_session("old", {"x": 1})
        expired = (_utcnow() - timedelta(minutes=1)).isoformat(sep=" ")
        with db.get_connection() as conn:
            conn.execute("UPDATE sessions SET expires_at = ? WHERE session_id = ?", (expired, "old"))
        assert db.get_session("old") is None

    def test_list_sessions_skips_expired(self, tmp_path):
        db = Database(str(tmp_path / "sessions.db"))
        db.create_session("live", {"n": 1})
        db.create_session("old", {"n": 2})
        expired = (_utcnow() - timedelta(hours=1)).isoformat(sep=" ")
        with db.get_connection() as conn:
            conn.execute("UPDATE sessions SET expires_at = ? WHERE session_id = ?", (expired, "old"))
        assert db.list_sessions() == [{"n": 1}]

    def test_cleanup_expired_sessions(self, tmp_path):
        db = Database(str(tmp_path / "sessions.db"))
        db.create_session("live", {})
        db.create_session("old", {})
        expired = (_utcnow() - timedelta(hours=1)).isoformat(sep=" ")
        with db.get_connection() as conn:
            conn.execute("UPDATE sessions SET expires_at = ? WHERE session_id = ?", (expired, "old"))
        assert db.cleanup_expired_sessions() == 1
        assert db.get_session("live") == {}

class TestDraftStore:
    def test_new_session_has_default_draft(self, session_id):
        session = draft_store.get_session(session_id)
        assert session["active_tab"] == "edit"
        draft = draft_store.load_draft(session)
        assert len(draft.line_items) == 1
        assert draft.invoice_number.startswith("INV-")

    def test_get_session_resumes(self, session_id):
        first = draft_store.get_session(session_id)
        again = draft_store.get_session(session_id)
        assert first["draft"] == again["draft"]

    def test_actions_are_saved(self, session_id):
        draft_store.apply_action(session_id, SetField(name="client_name", value="Acme"))
        session = draft_store.apply_action(session_id, AddLineItem())
        stored = draft_store.load_draft(draft_store.get_session(session_id))
        assert stored == draft_store.load_draft(session)
        assert stored.client_name == "Acme"
        assert len(stored.line_items) == 2

    def test_latest_write_wins(self, session_id):
        session = draft_store.get_session(session_id)
        item_id = draft_store.load_draft(session).line_items[0].id
        for rate in (5, 10, 15):
            draft_store.apply_action(session_id, UpdateLineItem(item_id=item_id, field="rate", value=rate))
        stored = draft_store.load_draft(draft_store.get_session(session_id))
        assert stored.line_items[0].rate == 15
        assert stored.line_items[0].total == 15

    def test_reset_session(self, session_id):
        draft_store.apply_action(session_id, AddLineItem())
        draft_store.apply_action(session_id, SetField(name="tax_rate", value=20))
        draft_store.switch_tab(session_id, "preview")
        session = draft_store.reset_session(session_id)
        draft = draft_store.load_draft(session)
        assert len(draft.line_items) == 1
        assert draft.tax_rate == 0
        assert session["active_tab"] == "preview"

    def test_reset_discards_uploaded_logo(self, session_id):
        upload_dir = Path(config.UPLOAD_DIR)
        upload_dir.mkdir(parents=True, exist_ok=True)
        logo = upload_dir / f"{session_id}.png"
        logo.write_bytes(b"png")
        draft_store.apply_action(session_id, SetLogo(logo_path=str(logo)))
        session = draft_store.reset_session(session_id)
        assert draft_store.load_draft(session).logo_path is None
        assert not logo.exists()

    def test_files_outside_upload_dir_are_never_deleted(self, session_id, tmp_path):
        outside = tmp_path / "keep.png"
        outside.write_bytes(b"png")
        draft_store.apply_action(session_id, SetLogo(logo_path=str(outside)))
        draft_store.reset_session(session_id)
        assert outside.exists()

    def test_reset_keeps_the_opening_invoice_number(self, session_id):
        opened = draft_store.load_draft(draft_store.get_session(session_id))
        draft_store.apply_action(session_id, SetField(name="invoice_number", value="INV-EDITED"))
        draft_store.apply_action(session_id, SetField(name="due_date", value="2030-01-01"))
        reset = draft_store.load_draft(draft_store.reset_session(session_id))
        assert reset.invoice_number == opened.invoice_number
        assert reset.due_date == opened.due_date

    def test_cleanup_removes_expired_sessions_and_orphaned_logos(self, session_id):
        upload_dir = Path(config.UPLOAD_DIR)
        upload_dir.mkdir(parents=True, exist_ok=True)
        expired_logo = upload_dir / f"{session_id}-expired.png"
        orphan_logo = upload_dir / f"{session_id}-orphan.png"
        live_logo = upload_dir / f"{session_id}-live.png"
        for logo in (expired_logo, orphan_logo, live_logo):
            logo.write_bytes(b"png")

        expired_session = f"{session_id}-expired"
        draft_store.apply_action(expired_session, SetLogo(logo_path=str(expired_logo)))
        draft_store.apply_action(session_id, SetLogo(logo_path=str(live_logo)))
        expired = (_utcnow() - timedelta(minutes=1)).isoformat(sep=" ")
        with db.get_connection() as conn:
            conn.execute("UPDATE sessions SET expires_at = ? WHERE session_id = ?", (expired, expired_session))

        old = time.time() - db.ttl.total_seconds() - 60
        for logo in (expired_logo, orphan_logo, live_logo):
            os.utime(logo, (old, old))

        assert draft_store.cleanup_expired_drafts() >= 1
        assert db.get_session(expired_session) is None
        assert not expired_logo.exists()
        assert not orphan_logo.exists()
        assert live_logo.exists()

    def test_cleanup_keeps_recent_uploads(self, session_id):
        upload_dir = Path(config.UPLOAD_DIR)
        upload_dir.mkdir(parents=True, exist_ok=True)
        fresh = upload_dir / f"{session_id}-fresh.png"
        fresh.write_bytes(b"png")
        draft_store.cleanup_expired_drafts()
        assert fresh.exists()

    def test_switch_tab(self, session_id):
        assert draft_store.switch_tab(session_id, "preview")["active_tab"] == "preview"
        assert draft_store.get_session(session_id)["active_tab"] == "preview"
        with pytest.raises(InvalidActionError):
            draft_store.switch_tab(session_id, "settings")

    def test_preview_only_while_preview_tab_shown(self, session_id):
        session = draft_store.get_session(session_id)
        assert draft_store.current_preview(session) is None
        session = draft_store.switch_tab(session_id, "preview")
        preview = draft_store.current_preview(session)
        assert preview.invoice_number == draft_store.load_draft(session).invoice_number

    def test_session_view_includes_totals(self, session_id):
        session = draft_store.get_session(session_id)
        item_id = draft_store.load_draft(session).line_items[0].id
        session = draft_store.apply_action(session_id, UpdateLineItem(item_id=item_id, field="rate", value=40))
        view = draft_store.session_view(session)
        assert view["totals"]["subtotal"] == 40
        assert view["totals"]["balance_due"] == 40
        assert view["active_tab"] == "edit"
        assert "subtotal" not in view["draft"]
