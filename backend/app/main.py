"""FastAPI application entrypoints for jsviz.

This module exposes the HTTP control surface used by a frontend renderer and
by the tests. Handlers stay small: `/translate` and `/run` work on a fresh
`Session` per request, while `/sessions/...` keeps sessions in an in-process
registry so a client can step, run, pause and resume one program across
requests. Server-side caps are enforced so clients cannot override the
interpreter's safety limits.
"""

import asyncio
import logging
import os
import time
from collections import OrderedDict
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ..jsviz.clock import AsyncioClock, VirtualClock
from ..jsviz.instructions import to_dict
from ..jsviz.interpreter import Interpreter, Phase
from ..jsviz.session import Session
from ..jsviz.state import StateStore, to_jsonable
from ..jsviz.translator import TranslationError, translate_with_diagnostics

logger = logging.getLogger(__name__)

app = FastAPI(title="jsviz API", version="0.1")

MAX_SPEED_MS = 5000


def _max_sessions() -> int:
    try:
        return max(1, int(os.getenv("JSVIZ_MAX_SESSIONS", "32")))
    except ValueError:
        return 32


def _cap_settings(settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Enforce server-side safe caps for runtime tunables.

    Clients may include a `settings` object with per-run tunables. The server
    must not trust these entirely; `_cap_settings` establishes a conservative
    ceiling using a fresh `Interpreter()`'s defaults and then applies the
    client's requested values up to those ceilings.

    Returns a dict with `speed_ms`, `max_steps`, `max_call_depth` and
    `realtime`, ready to be passed to `Session`.
    """
    defaults = Interpreter(StateStore())
    safe = {
        "speed_ms": defaults.store.speed_ms,
        "max_steps": defaults.max_steps,
        "max_call_depth": defaults.max_call_depth,
        "realtime": False,
    }
    if not settings:
        return safe
    caps = {}
    # coerce and clamp numeric values to the server's safe maximums
    caps["speed_ms"] = min(max(0, int(settings.get("speed_ms", safe["speed_ms"]))), MAX_SPEED_MS)
    caps["max_steps"] = min(max(1, int(settings.get("max_steps", safe["max_steps"]))), safe["max_steps"])
    caps["max_call_depth"] = min(max(1, int(settings.get("max_call_depth", safe["max_call_depth"]))), safe["max_call_depth"])
    caps["realtime"] = bool(settings.get("realtime", False))
    return caps


def _new_session(capped: Dict[str, Any]) -> Session:
    clock = AsyncioClock() if capped["realtime"] else VirtualClock()
    return Session(
        speed_ms=capped["speed_ms"],
        clock=clock,
        max_call_depth=capped["max_call_depth"],
        max_steps=capped["max_steps"],
    )


def _translation_error(e: TranslationError) -> Dict[str, Any]:
    return {"code": "TRANSLATION_ERROR", "message": e.message, "line": e.line, "column": e.column}


def _first_error(session: Session) -> Optional[Dict[str, Any]]:
    return session.errors[0] if session.errors else None


# --- session registry ----------------------------------------------------

_sessions: "OrderedDict[str, Session]" = OrderedDict()
_run_tasks: Dict[str, asyncio.Task] = {}
_counter = {"next": 0}


def _register(session: Session) -> str:
    _counter["next"] += 1
    session_id = f"s{_counter['next']}"
    _sessions[session_id] = session
    # evict the oldest sessions beyond the configured limit
    while len(_sessions) > _max_sessions():
        old_id, old = _sessions.popitem(last=False)
        _drop(old_id, old)
        logger.info("evicted session %s", old_id)
    return session_id


def _drop(session_id: str, session: Session) -> None:
    task = _run_tasks.pop(session_id, None)
    session.close()
    if task is not None and not task.done():
        task.cancel()


def _get(session_id: str) -> Session:
    session = _sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"unknown session {session_id}")
    return session


def _view(session: Session) -> Dict[str, Any]:
    return {
        "phase": session.phase.value,
        "state": to_jsonable(session.snapshot()),
        "console": [to_jsonable(e) for e in session.console],
    }


# --- request models ------------------------------------------------------

class TranslateRequest(BaseModel):
    code: str


class RunRequest(BaseModel):
    """Pydantic model for `/run` and `/sessions` request bodies.

    Fields:
        code: snippet source text.
        settings: optional runtime tunables; will be capped server-side.
    """
    code: str
    settings: Optional[Dict[str, Any]] = None


class SessionRunRequest(BaseModel):
    wait: bool = True


# --- endpoints -----------------------------------------------------------

@app.post("/translate")
async def translate_code(req: TranslateRequest):
    try:
        translation = translate_with_diagnostics(req.code)
    except TranslationError as e:
        return {"instructions": [], "diagnostics": [], "errors": _translation_error(e)}
    return {
        "instructions": [to_dict(i) for i in translation.instructions],
        "diagnostics": [to_jsonable(d) for d in translation.diagnostics],
        "errors": None,
    }


@app.post("/run")
async def run_code(req: RunRequest):
    """Translate and run a snippet to completion in one request.

    A fresh `Session` is built per request. Unless `settings.realtime` is set
    it runs on a virtual clock, so timers and pacing delays cost no wall
    time. Any unexpected exception is turned into a SERVER_ERROR response so
    callers receive a stable JSON shape.
    """
    start = time.time()
    try:
        session = _new_session(_cap_settings(req.settings or {}))
        if session.load(req.code):
            await session.run()
    except Exception as e:
        logger.exception("run failed")
        return {
            "console": [],
            "state": None,
            "steps": 0,
            "duration_ms": int((time.time() - start) * 1000),
            "errors": {"code": "SERVER_ERROR", "message": str(e)},
        }
    result = {
        "console": [to_jsonable(e) for e in session.console],
        "state": to_jsonable(session.snapshot()),
        "steps": session.store.current_step,
        "duration_ms": int((time.time() - start) * 1000),
        "errors": _first_error(session),
    }
    session.close()
    return result


@app.post("/sessions")
async def create_session(req: RunRequest):
    session = _new_session(_cap_settings(req.settings or {}))
    session.load(req.code)
    session_id = _register(session)
    return {
        "session_id": session_id,
        "instructions": [to_dict(i) for i in session.instructions],
        "diagnostics": [to_jsonable(d) for d in session.diagnostics],
        "state": to_jsonable(session.snapshot()),
        "errors": _first_error(session),
    }


@app.get("/sessions/{session_id}")
async def get_session(session_id: str):
    return _view(_get(session_id))


@app.post("/sessions/{session_id}/step")
async def step_session(session_id: str):
    session = _get(session_id)
    task = _run_tasks.get(session_id)
    if task is not None and not task.done() and session.phase is Phase.RUNNING:
        raise HTTPException(status_code=409, detail="session is running; pause it first")
    has_more = session.step()
    return {"has_more": has_more, **_view(session)}


@app.post("/sessions/{session_id}/run")
async def run_session(session_id: str, req: Optional[SessionRunRequest] = None):
    session = _get(session_id)
    wait = True if req is None else req.wait
    task = _run_tasks.get(session_id)
    if task is None or task.done():
        task = asyncio.create_task(session.run())
        _run_tasks[session_id] = task
    elif session.phase is Phase.PAUSED:
        session.resume()
    if wait:
        await task
    return _view(session)


@app.post("/sessions/{session_id}/pause")
async def pause_session(session_id: str):
    session = _get(session_id)
    return {"paused": session.pause(), **_view(session)}


@app.post("/sessions/{session_id}/resume")
async def resume_session(session_id: str):
    session = _get(session_id)
    return {"resumed": session.resume(), **_view(session)}


@app.post("/sessions/{session_id}/reset")
async def reset_session(session_id: str):
    """Cancel timers, clear state and reload the session's source."""
    session = _get(session_id)
    task = _run_tasks.pop(session_id, None)
    if task is not None and not task.done():
        task.cancel()
    session.load(session.source)
    return _view(session)


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    session = _get(session_id)
    del _sessions[session_id]
    _drop(session_id, session)
    return {"deleted": session_id}
