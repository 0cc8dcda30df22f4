"""FastAPI server for ConsensusAI."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional
import logging
import random
import threading

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from consensusai.config import Config, get_config
from consensusai.engine import CallerProtocolError, ConsensusEngine
from consensusai.intake import DocumentParser, build_vendor_proposal, scenario_from_dict
from consensusai.oracle import ReasoningOracle, build_client, build_oracle
from consensusai.store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class LiveSession:
    engine: ConsensusEngine
    lock: threading.Lock = field(default_factory=threading.Lock)


def _not_found(session_id: str) -> JSONResponse:
    return JSONResponse({"error": f"session {session_id} not found"}, status_code=404)


def create_app(
    config: Optional[Config] = None,
    oracle_factory: Optional[Callable[[], ReasoningOracle]] = None,
    document_parser: Optional[DocumentParser] = None,
) -> FastAPI:
    config = config or get_config()
    app = FastAPI(title="ConsensusAI")
    app.state.config = config
    app.state.store = SessionStore(config.data_dir)
    app.state.sessions = {}
    app.state.sessions_lock = threading.Lock()
    app.state.oracle_factory = oracle_factory or (lambda: build_oracle(config))
    if document_parser is None:
        client = build_client(config.oracle) if config.intake.get("use_model", True) else None
        document_parser = DocumentParser(
            client=client,
            model=config.oracle.get("model") or None,
            timeout=config.oracle_timeout_seconds,
            max_text_chars=int(config.intake.get("max_text_chars", 2000)),
        )
    app.state.parser = document_parser

    def _live(request: Request, session_id: str) -> LiveSession | None:
        with request.app.state.sessions_lock:
            return request.app.state.sessions.get(session_id)

    @app.get("/health")
    async def health():
        """Health check endpoint for monitoring."""
        return {"status": "healthy", "service": "consensusai"}

    @app.post("/api/parse")
    def parse_api(request: Request, file: UploadFile = File(...), vendor_name: Optional[str] = Form(None)):
        data = file.file.read()
        text = data.decode("utf-8", errors="ignore")
        document = request.app.state.parser.parse(file.filename or "document", text)
        payload: Dict[str, Any] = {"ok": True, "document": document.to_dict()}
        if vendor_name:
            seed = request.app.state.config.intake.get("vendor_seed")
            rng = random.Random(seed) if seed is not None else None
            payload["vendor"] = build_vendor_proposal(document, vendor_name, rng=rng).to_dict()
        return payload

    @app.post("/api/sessions")
    async def create_session_api(payload: dict, request: Request):
        state = request.app.state
        try:
            scenario = scenario_from_dict(payload.get("scenario", payload))
            session_id = state.store.create_session(scenario, meta={"source": "api"})
            engine = ConsensusEngine(
                scenario,
                state.oracle_factory(),
                vendor_round_cap=state.config.vendor_round_cap,
                max_workers=state.config.max_workers,
                transcript=state.store.transcript(session_id),
            )
        except (TypeError, ValueError) as exc:
            return JSONResponse({"error": f"invalid scenario: {exc}"}, status_code=400)
        with state.sessions_lock:
            state.sessions[session_id] = LiveSession(engine)
        logger.info(f"Session {session_id} created for {scenario.module} scenario '{scenario.title}'")
        return {"ok": True, "session_id": session_id, "state": engine.snapshot()}

    @app.get("/api/sessions")
    async def sessions_api(request: Request, limit: int = 20):
        return {"sessions": request.app.state.store.list_sessions(limit=limit)}

    @app.post("/api/sessions/{session_id}/rounds")
    def round_api(session_id: str, request: Request):
        live = _live(request, session_id)
        if not live:
            return _not_found(session_id)
        store = request.app.state.store
        # One round at a time per session.
        with live.lock:
            try:
                result = live.engine.evaluate_round()
            except CallerProtocolError as exc:
                return JSONResponse({"error": str(exc)}, status_code=409)
            snapshot = live.engine.snapshot()
            store.record_round(session_id, snapshot)
            if result.converged:
                store.finalize_session(session_id, snapshot, live.engine.executive_summary())
        return {"ok": True, "result": result.to_dict(), "state": snapshot}

    @app.get("/api/sessions/{session_id}")
    async def session_detail_api(session_id: str, request: Request):
        live = _live(request, session_id)
        if live:
            return live.engine.snapshot()
        stored = request.app.state.store.get_session(session_id)
        if not stored:
            return _not_found(session_id)
        return stored

    @app.get("/api/sessions/{session_id}/summary")
    async def summary_api(session_id: str, request: Request):
        live = _live(request, session_id)
        if not live:
            return _not_found(session_id)
        engine = live.engine
        return {
            "status": engine.status,
            "confidence": engine.confidence_score(),
            "summary": engine.executive_summary(),
        }

    @app.get("/api/sessions/{session_id}/rankings")
    async def rankings_api(session_id: str, request: Request):
        live = _live(request, session_id)
        if not live:
            return _not_found(session_id)
        try:
            rankings = live.engine.vendor_rankings()
        except CallerProtocolError as exc:
            return JSONResponse({"error": str(exc)}, status_code=409)
        return {"rankings": [entry.to_dict() for entry in rankings]}

    return app


def main():
    import uvicorn
    config = get_config()
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))
    host = config.server.get("host", "127.0.0.1")
    port = int(config.server.get("port", 8098))
    uvicorn.run(create_app(config), host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
