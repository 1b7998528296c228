"""FastAPI server for the Veterans' Preference questionnaire.

Provides REST endpoints for session management and answer-by-answer
navigation. Each session owns a ToolController whose renderer records the
latest views, so every request returns what a screen would show.
"""

from __future__ import annotations

import logging
import os
import re
import uuid

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from vetpref.config import (
    ToolConfigError,
    build_decision_graph,
    load_tool_config,
    tool_settings,
    total_steps_for,
)
from vetpref.controller import ToolController
from vetpref.decision_graph import DataIntegrityError
from vetpref.graph import build_graph
from vetpref.logging_setup import configure_logging
from vetpref.storage import InMemoryProgressStore, PgProgressStore
from vetpref.views import DEFAULT_DISCLAIMER


logger = logging.getLogger(__name__)

DEFAULT_TOOL_ID = "veterans_preference"

_TOOL_ID_RE = re.compile(r"^[a-z0-9_]+$")


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class SessionRequest(BaseModel):
    tool_id: str = DEFAULT_TOOL_ID
    client_id: str | None = None   # enables saved progress for this client
    restore: bool = False


class AnswerRequest(BaseModel):
    session_id: str
    question_id: str
    answer: str


class SessionIdRequest(BaseModel):
    session_id: str


class ToolResponse(BaseModel):
    session_id: str
    type: str          # "question", "result", or "error"
    question: dict | None = None
    result: dict | None = None
    progress: dict | None = None
    error: str | None = None
    accepted: bool = True
    restored: bool = False
    can_go_back: bool = False
    done: bool = False


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

class ViewRecorder:
    """Renderer that keeps the most recent view of each kind."""

    def __init__(self):
        self.question: dict | None = None
        self.result: dict | None = None
        self.progress: dict | None = None
        self.error: str | None = None

    def on_question_change(self, view: dict) -> None:
        self.question, self.result, self.error = view, None, None

    def on_result(self, view: dict) -> None:
        self.question, self.result, self.error = None, view, None

    def on_progress(self, progress: dict) -> None:
        self.progress = progress

    def on_error(self, message: str) -> None:
        self.question, self.result, self.error = None, None, message


def _session_response(
    session_id: str,
    session: dict,
    accepted: bool = True,
    restored: bool = False,
) -> ToolResponse:
    """Convert a session's recorded views into a ToolResponse."""
    recorder: ViewRecorder = session["recorder"]
    controller: ToolController = session["controller"]

    if recorder.error is not None:
        resp_type = "error"
    elif recorder.result is not None:
        resp_type = "result"
    else:
        resp_type = "question"

    return ToolResponse(
        session_id=session_id,
        type=resp_type,
        question=recorder.question,
        result=recorder.result,
        progress=recorder.progress,
        error=recorder.error,
        accepted=accepted,
        restored=restored,
        can_go_back=controller.navigation.current_step > 0,
        done=resp_type != "question",
    )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def _default_store():
    if os.environ.get("VETPREF_DATABASE_URL") or os.environ.get("DATABASE_URL"):
        return PgProgressStore()
    return InMemoryProgressStore()


def create_app(
    services: dict | None = None,
    tool_id: str = DEFAULT_TOOL_ID,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Dict with ``store`` (a ProgressStore) and optionally
                  ``tools_path`` for dependency injection.
        tool_id: Tool to load at startup.
    """
    configure_logging()
    app = FastAPI(title="Veterans' Preference Eligibility Tool")

    services = services or {}
    store = services.get("store") or _default_store()
    tools_path = services.get("tools_path")

    # Loaded tools: tool_id -> (config, decision graph)
    tools: dict[str, tuple[dict, object]] = {}

    def load_tool(requested: str):
        if requested in tools:
            return tools[requested]
        if not _TOOL_ID_RE.match(requested):
            raise ToolConfigError(f"Invalid tool id: {requested!r}")
        config = load_tool_config(requested, base_path=tools_path)
        decision_graph = build_decision_graph(config)
        # Compiling checks every edge target exists
        build_graph(decision_graph)
        tools[requested] = (config, decision_graph)
        logger.info("Tool %s ready (version %s)", requested, decision_graph.version)
        return tools[requested]

    try:
        load_tool(tool_id)
    except DataIntegrityError as e:
        logger.error("Could not load default tool %s: %s", tool_id, e)

    # In-memory session store
    sessions: dict[str, dict] = {}

    def get_session(session_id: str) -> dict:
        session = sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session

    @app.get("/health")
    def health():
        return {"status": "ok", "tools": sorted(tools)}

    @app.post("/session", response_model=ToolResponse)
    def create_session(req: SessionRequest):
        try:
            config, decision_graph = load_tool(req.tool_id)
        except DataIntegrityError as e:
            logger.warning("Rejected session for tool %s: %s", req.tool_id, e)
            raise HTTPException(status_code=400, detail="Unknown tool ID")

        settings = tool_settings(config)
        tool_info = config.get("tool") or {}
        recorder = ViewRecorder()
        controller = ToolController(
            decision_graph,
            recorder,
            total_steps=total_steps_for(config, decision_graph),
            store=store if req.client_id else None,
            storage_name=f"{settings['storageKey']}-{req.client_id}" if req.client_id else settings["storageKey"],
            tool_name=tool_info.get("name", "Veterans' Preference Eligibility Tool"),
            disclaimer=tool_info.get("disclaimer", DEFAULT_DISCLAIMER),
        )
        restored = controller.start(confirm_restore=lambda: req.restore)

        sid = str(uuid.uuid4())
        sessions[sid] = {"controller": controller, "recorder": recorder}
        return _session_response(sid, sessions[sid], restored=restored)

    @app.get("/session/{session_id}", response_model=ToolResponse)
    def get_session_state(session_id: str):
        return _session_response(session_id, get_session(session_id))

    @app.post("/answer", response_model=ToolResponse)
    def answer(req: AnswerRequest):
        session = get_session(req.session_id)
        accepted = session["controller"].select_answer(req.question_id, req.answer)
        return _session_response(req.session_id, session, accepted=accepted)

    @app.post("/back", response_model=ToolResponse)
    def back(req: SessionIdRequest):
        session = get_session(req.session_id)
        accepted = session["controller"].go_back()
        return _session_response(req.session_id, session, accepted=accepted)

    @app.post("/restart", response_model=ToolResponse)
    def restart(req: SessionIdRequest):
        session = get_session(req.session_id)
        accepted = session["controller"].restart()
        return _session_response(req.session_id, session, accepted=accepted)

    @app.get("/print/{session_id}", response_class=HTMLResponse)
    def print_result(session_id: str):
        html = get_session(session_id)["controller"].print_view()
        if html is None:
            raise HTTPException(status_code=409, detail="No result to print yet")
        return HTMLResponse(content=html)

    return app
