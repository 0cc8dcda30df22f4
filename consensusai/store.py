"""File-backed store for negotiation sessions."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List
from datetime import datetime
import json
import time
import uuid
try:
    import fcntl  # type: ignore
except ImportError:  # pragma: no cover - non-POSIX environments
    fcntl = None

from consensusai.audit import TranscriptLog
from consensusai.schema import Scenario


def _now() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


@dataclass
class SessionStore:
    data_dir: Path

    def _sessions_dir(self) -> Path:
        return self.data_dir / "sessions"

    def session_dir(self, session_id: str) -> Path:
        return self._sessions_dir() / session_id

    def _latest_path(self) -> Path:
        return self.data_dir / "latest.json"

    def transcript(self, session_id: str) -> TranscriptLog:
        return TranscriptLog(self.session_dir(session_id) / "transcript.jsonl", session_id=session_id)

    def create_session(self, scenario: Scenario, meta: Dict[str, Any] | None = None) -> str:
        session_id = time.strftime("%Y%m%d-%H%M%S") + "-" + uuid.uuid4().hex[:6]
        payload = {
            "id": session_id,
            "created_at": _now(),
            "status": "idle",
            "scenario": scenario.to_dict(),
            "meta": meta or {},
            "rounds": [],
        }
        self._write_session(session_id, payload)
        return session_id

    def record_round(self, session_id: str, snapshot: Dict[str, Any]) -> None:
        def _update(session: Dict[str, Any]) -> Dict[str, Any]:
            result = snapshot.get("lastResult") or {}
            session.setdefault("rounds", []).append({"timestamp": _now(), **result})
            session["status"] = snapshot.get("status", session.get("status"))
            session["state"] = snapshot
            return session
        self._locked_update(session_id, _update)

    def finalize_session(self, session_id: str, snapshot: Dict[str, Any], summary: str) -> None:
        def _update(session: Dict[str, Any]) -> Dict[str, Any]:
            session["status"] = snapshot.get("status", "converged")
            session["completed_at"] = _now()
            session["state"] = snapshot
            session["summary"] = summary
            return session
        session = self._locked_update(session_id, _update)
        if not session:
            return
        self._latest_path().parent.mkdir(parents=True, exist_ok=True)
        self._latest_path().write_text(json.dumps(session, indent=2))

    def get_session(self, session_id: str) -> Dict[str, Any] | None:
        path = self.session_dir(session_id) / "session.json"
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text())
        except ValueError:
            return None

    def latest(self) -> Dict[str, Any] | None:
        if not self._latest_path().exists():
            return None
        try:
            return json.loads(self._latest_path().read_text())
        except ValueError:
            return None

    def list_sessions(self, limit: int = 20) -> List[Dict[str, Any]]:
        sessions: List[Dict[str, Any]] = []
        if not self._sessions_dir().exists():
            return sessions
        for session_dir in sorted(self._sessions_dir().iterdir(), reverse=True)[:limit]:
            path = session_dir / "session.json"
            if not path.exists():
                continue
            try:
                data = json.loads(path.read_text())
            except ValueError:
                continue
            sessions.append({
                "id": data.get("id"),
                "created_at": data.get("created_at"),
                "status": data.get("status"),
                "title": (data.get("scenario") or {}).get("title"),
                "rounds": len(data.get("rounds") or []),
            })
        return sessions

    def _write_session(self, session_id: str, payload: Dict[str, Any]) -> None:
        session_dir = self.session_dir(session_id)
        session_dir.mkdir(parents=True, exist_ok=True)
        (session_dir / "session.json").write_text(json.dumps(payload, indent=2))

    def _locked_update(
        self,
        session_id: str,
        updater: Callable[[Dict[str, Any]], Dict[str, Any]],
    ) -> Dict[str, Any] | None:
        path = self.session_dir(session_id) / "session.json"
        if not path.exists():
            return None
        if fcntl is None:
            session = self.get_session(session_id)
            if not session:
                return None
            updated = updater(session)
            self._write_session(session_id, updated)
            return updated
        with path.open("r+", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                handle.seek(0)
                data = handle.read()
                if not data.strip():
                    return None
                updated = updater(json.loads(data))
                handle.seek(0)
                handle.truncate()
                handle.write(json.dumps(updated, indent=2))
                return updated
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
