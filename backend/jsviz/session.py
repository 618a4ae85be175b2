"""One visualization session: a state store, an interpreter and a console log.

`Session` is the control boundary used by the command line and the HTTP
surface. It translates source text, loads the interpreter and records every
console entry. Translation faults never escape `load`; they are reported as
console errors and as structured entries in `errors`.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from .clock import VirtualClock
from .interpreter import Interpreter, Phase
from .state import ConsoleEntry, RuntimeState, StateStore, Topic, to_jsonable
from .translator import Diagnostic, TranslationError, translate_with_diagnostics

logger = logging.getLogger(__name__)


def default_speed_ms() -> int:
    """Pacing speed from JSVIZ_SPEED_MS, falling back to the store default."""
    raw = os.getenv("JSVIZ_SPEED_MS")
    if raw is None:
        return 1000
    try:
        return max(0, int(raw))
    except ValueError:
        logger.warning("ignoring invalid JSVIZ_SPEED_MS=%r", raw)
        return 1000


class Session:
    """Bundle a `StateStore` and an `Interpreter` for one caller.

    Args:
        source: optional snippet to load right away.
        speed_ms: pacing delay between steps (JSVIZ_SPEED_MS or 1000 by default).
        clock: timer clock handed to the interpreter; `VirtualClock` when omitted.
        max_call_depth, max_steps: interpreter limits.
    """

    def __init__(
        self,
        source: Optional[str] = None,
        *,
        speed_ms: Optional[int] = None,
        clock=None,
        max_call_depth: int = 64,
        max_steps: int = 10000,
    ):
        speed = default_speed_ms() if speed_ms is None else speed_ms
        self.clock = clock or VirtualClock()
        # timestamps follow the interpreter clock (virtual time in tests)
        self.store = StateStore(speed_ms=speed, now=self.clock.now)
        self.interpreter = Interpreter(
            self.store,
            self.clock,
            max_call_depth=max_call_depth,
            max_steps=max_steps,
        )
        self.source = ""
        self.instructions: List[Any] = []
        self.diagnostics: List[Diagnostic] = []
        self.errors: List[Dict[str, Any]] = []
        self.console: List[ConsoleEntry] = []
        self._unsubscribe = self.store.subscribe(Topic.CONSOLE, self._capture)
        if source is not None:
            self.load(source)

    def _capture(self, entry: ConsoleEntry, snapshot: RuntimeState) -> None:
        self.console.append(entry)

    @property
    def phase(self) -> Phase:
        return self.interpreter.phase

    def load(self, source: str) -> bool:
        """Translate and load `source`; return False when translation failed."""
        self.reset()
        self.source = source
        if not source.strip():
            self.store.log_console("warn", "No code to execute")
            return False
        try:
            translation = translate_with_diagnostics(source)
        except TranslationError as e:
            logger.info("translation failed: %s", e)
            self.errors.append({"code": "TRANSLATION_ERROR", "message": e.message, "line": e.line, "column": e.column})
            self.store.log_console("error", f"Error: {e}")
            return False
        self.instructions = translation.instructions
        self.diagnostics = translation.diagnostics
        self.interpreter.init(self.instructions)
        return True

    def step(self) -> bool:
        if not self.interpreter.loaded:
            return False
        return self.interpreter.step()

    async def run(self) -> None:
        if not self.interpreter.loaded:
            return
        await self.interpreter.run()

    def pause(self) -> bool:
        return self.interpreter.pause()

    def resume(self) -> bool:
        return self.interpreter.resume()

    def stop(self) -> None:
        self.interpreter.stop()

    def reset(self) -> None:
        """Cancel timers, clear the store and forget the console and errors."""
        self.interpreter.reset()
        self.instructions = []
        self.diagnostics = []
        self.errors = []
        self.console = []

    def close(self) -> None:
        self.reset()
        self._unsubscribe()

    def snapshot(self) -> RuntimeState:
        return self.store.snapshot()

    def console_lines(self, include_info: bool = True) -> List[str]:
        return [e.text for e in self.console if include_info or e.type != "info"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "state": to_jsonable(self.snapshot()),
            "console": [to_jsonable(e) for e in self.console],
            "errors": self.errors or None,
        }
