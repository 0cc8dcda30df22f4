import json
import tempfile
import unittest
from pathlib import Path

from consensusai.schema import Constraints, Scenario
from consensusai.store import SessionStore


def _scenario(title="Office move"):
    return Scenario(title=title, description="Relocate HQ",
                    constraints=Constraints(budget=40000, timeline=30, quality_min=80, risk_max=20))


class SessionStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SessionStore(Path(self._tmp.name))

    def tearDown(self):
        self._tmp.cleanup()

    def test_create_and_get(self):
        session_id = self.store.create_session(_scenario(), meta={"source": "test"})
        session = self.store.get_session(session_id)
        self.assertEqual(session["status"], "idle")
        self.assertEqual(session["scenario"]["title"], "Office move")
        self.assertEqual(session["meta"], {"source": "test"})
        self.assertEqual(session["rounds"], [])

    def test_record_round_appends(self):
        session_id = self.store.create_session(_scenario())
        snapshot = {"status": "active", "lastResult": {"round": 1, "converged": False,
                                                       "summary": "Conflict", "conflict_count": 2}}
        self.store.record_round(session_id, snapshot)
        self.store.record_round(session_id, {**snapshot, "lastResult": {**snapshot["lastResult"], "round": 2}})
        session = self.store.get_session(session_id)
        self.assertEqual([r["round"] for r in session["rounds"]], [1, 2])
        self.assertIn("timestamp", session["rounds"][0])
        self.assertEqual(session["status"], "active")

    def test_finalize_writes_latest(self):
        session_id = self.store.create_session(_scenario())
        self.store.finalize_session(session_id, {"status": "converged"}, "## Executive Decision Summary")
        latest = self.store.latest()
        self.assertEqual(latest["id"], session_id)
        self.assertEqual(latest["status"], "converged")
        self.assertEqual(latest["summary"], "## Executive Decision Summary")
        self.assertIn("completed_at", latest)

    def test_unknown_session(self):
        self.assertIsNone(self.store.get_session("missing"))
        self.store.record_round("missing", {"status": "active"})
        self.assertIsNone(self.store.latest())

    def test_list_sessions(self):
        first = self.store.create_session(_scenario("First"))
        second = self.store.create_session(_scenario("Second"))
        sessions = self.store.list_sessions()
        self.assertEqual({s["id"] for s in sessions}, {first, second})
        self.assertEqual(len(self.store.list_sessions(limit=1)), 1)
        self.assertEqual(sessions[0]["rounds"], 0)

    def test_corrupt_session_skipped(self):
        session_id = self.store.create_session(_scenario())
        (self.store.session_dir(session_id) / "session.json").write_text("{not json")
        self.assertIsNone(self.store.get_session(session_id))
        self.assertEqual(self.store.list_sessions(), [])

    def test_transcript_path(self):
        session_id = self.store.create_session(_scenario())
        transcript = self.store.transcript(session_id)
        transcript.log("session.start", {"module": "general"})
        lines = (self.store.session_dir(session_id) / "transcript.jsonl").read_text().splitlines()
        entry = json.loads(lines[0])
        self.assertEqual(entry["session_id"], session_id)
        self.assertEqual(entry["event"], "session.start")
        self.assertEqual(transcript.tail(1)[0]["data"], {"module": "general"})


if __name__ == "__main__":
    unittest.main()
