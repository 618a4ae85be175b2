"""Runtime state store.

The store owns the whole execution model of one interpreter session: the
call stack, the heap, the scope list and the three event-loop queues, plus
the cursor-related flags (current line, step counter, running/paused, pacing
speed). It is an explicit object: create one per session and hand it to the
interpreter and to whatever renders it.

Every mutation is a single synchronous method call. Before it returns it
notifies the handlers subscribed to its topic and the catch-all `Topic.ALL`
with a typed event (one frozen dataclass per topic) and a deep, detached
snapshot of the full state. Nothing else is observable: there is no polling
API beyond `snapshot()`.

Mutations never schedule timers or perform I/O. The only side effect besides
notification is in `reset()`, which cancels the timer handles the
interpreter registered through `track_timer()`.
"""

import copy
import dataclasses
import enum
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .values import UNDEFINED, FunctionValue, HeapRef, format_number

logger = logging.getLogger(__name__)

DEFAULT_SPEED_MS = 1000


class StateError(Exception):
    """Raised for store operations that refer to missing frames or scopes."""


class Topic(str, enum.Enum):
    CALL_STACK = "call-stack"
    HEAP = "heap"
    SCOPES = "scopes"
    EVENT_LOOP = "event-loop"
    CURRENT_LINE = "current-line"
    EXECUTION = "execution"
    CONSOLE = "console"
    ALL = "all"


# --- State model ---------------------------------------------------------

@dataclass
class Frame:
    id: str
    name: str
    kind: str  # global | function
    variables: Dict[str, Dict[str, str]] = field(default_factory=dict)
    this_binding: str = "window"
    line: int = 0
    active: bool = True


@dataclass
class HeapObject:
    id: str
    kind: str  # function | object | array
    value: Any
    references: List[str] = field(default_factory=list)
    created_at: float = 0.0


@dataclass
class Binding:
    value: Any
    kind: str
    declaration: str  # var | let | const | function | param | implicit


@dataclass
class Scope:
    id: str
    name: str
    kind: str  # global | function | block
    parent_id: Optional[str] = None
    variables: Dict[str, Binding] = field(default_factory=dict)
    created_at: float = 0.0


@dataclass
class Task:
    """An event-loop entry. `callback` is body text re-translated on execution."""

    id: str
    name: str
    callback: str
    kind: str = "timer"  # timer | microtask
    delay: int = 0
    start_time: float = 0.0
    closure: Optional[str] = None
    callback_name: str = ""
    body_offset: int = 0
    concise: bool = False
    params: Tuple[str, ...] = ()
    args: List[Any] = field(default_factory=list)


@dataclass
class EventLoop:
    web_apis: List[Task] = field(default_factory=list)
    callback_queue: List[Task] = field(default_factory=list)
    microtask_queue: List[Task] = field(default_factory=list)


@dataclass
class RuntimeState:
    call_stack: List[Frame] = field(default_factory=list)
    heap: Dict[str, HeapObject] = field(default_factory=dict)
    scopes: List[Scope] = field(default_factory=list)
    event_loop: EventLoop = field(default_factory=EventLoop)
    current_line: int = -1
    current_step: int = 0
    is_running: bool = False
    is_paused: bool = False
    speed_ms: int = DEFAULT_SPEED_MS


# --- Events ----------------------------------------------------------------

@dataclass(frozen=True)
class CallStackEvent:
    action: str  # push | pop | update | reset
    frame: Optional[Frame]
    stack: List[Frame]
    topic: Topic = field(default=Topic.CALL_STACK, init=False)


@dataclass(frozen=True)
class HeapEvent:
    action: str  # allocate | deallocate | reference | update | reset
    object: Optional[HeapObject]
    heap: Dict[str, HeapObject]
    from_id: Optional[str] = None
    to_id: Optional[str] = None
    topic: Topic = field(default=Topic.HEAP, init=False)


@dataclass(frozen=True)
class ScopesEvent:
    action: str  # create | addVariable | updateVariable | destroy | reset
    scope: Optional[Scope]
    scopes: List[Scope]
    variable: Optional[str] = None
    topic: Topic = field(default=Topic.SCOPES, init=False)


@dataclass(frozen=True)
class EventLoopEvent:
    action: str  # addWebAPI | moveToCallback | addMicrotask | processMicrotask | processCallback | reset
    task: Optional[Task]
    event_loop: EventLoop
    topic: Topic = field(default=Topic.EVENT_LOOP, init=False)


@dataclass(frozen=True)
class CurrentLineEvent:
    line: int  # non-positive means no highlight
    topic: Topic = field(default=Topic.CURRENT_LINE, init=False)


@dataclass(frozen=True)
class ExecutionEvent:
    is_running: bool
    is_paused: bool
    speed_ms: int
    topic: Topic = field(default=Topic.EXECUTION, init=False)


@dataclass(frozen=True)
class ConsoleEntry:
    type: str  # log | warn | error | info
    args: Tuple[str, ...]
    timestamp: float
    topic: Topic = field(default=Topic.CONSOLE, init=False)

    @property
    def text(self) -> str:
        return " ".join(self.args)


Event = Union[CallStackEvent, HeapEvent, ScopesEvent, EventLoopEvent, CurrentLineEvent, ExecutionEvent, ConsoleEntry]
Handler = Callable[[Any, RuntimeState], None]


class StateStore:
    """Mutable runtime state plus topic-based change notification.

    Args:
        speed_ms: pacing delay between visualized steps, in milliseconds.
        now: timestamp source (seconds); a virtual clock can be plugged in
            for deterministic timestamps.
    """

    def __init__(self, speed_ms: int = DEFAULT_SPEED_MS, now: Optional[Callable[[], float]] = None):
        self._state = RuntimeState(speed_ms=speed_ms)
        self._now = now or time.time
        self._subscribers: Dict[Topic, List[Handler]] = {topic: [] for topic in Topic}
        self._timers: List[Any] = []
        self._counters = {"ref": 0, "scope": 0, "frame": 0, "task": 0}

    # --- subscriptions -------------------------------------------------
    def subscribe(self, topic: Union[Topic, str], handler: Handler) -> Callable[[], None]:
        """Register `handler` for `topic`; returns a function that unregisters it."""
        topic = Topic(topic)
        self._subscribers[topic].append(handler)

        def unsubscribe() -> None:
            if handler in self._subscribers[topic]:
                self._subscribers[topic].remove(handler)

        return unsubscribe

    def _notify(self, topic: Topic, build: Callable[[], Event]) -> None:
        handlers = self._subscribers[topic] + self._subscribers[Topic.ALL]
        if not handlers:
            return
        payload = build()
        snapshot = self.snapshot()
        for handler in handlers:
            handler(payload, snapshot)

    def snapshot(self) -> RuntimeState:
        """Deep, detached copy of the whole state."""
        return copy.deepcopy(self._state)

    def _next_id(self, prefix: str) -> str:
        self._counters[prefix] += 1
        return f"{prefix}_{self._counters[prefix]}"

    # --- read access ----------------------------------------------------
    @property
    def speed_ms(self) -> int:
        return self._state.speed_ms

    @property
    def current_step(self) -> int:
        return self._state.current_step

    @property
    def current_scope_id(self) -> Optional[str]:
        scopes = self._state.scopes
        return scopes[-1].id if scopes else None

    @property
    def scope_ids(self) -> List[str]:
        return [s.id for s in self._state.scopes]

    def top_frame(self) -> Optional[Frame]:
        stack = self._state.call_stack
        return copy.deepcopy(stack[-1]) if stack else None

    def heap_entry(self, ref_id: str) -> Optional[Tuple[str, Any]]:
        """Return (kind, value) of a heap object; the value must not be mutated."""
        obj = self._state.heap.get(ref_id)
        return (obj.kind, obj.value) if obj else None

    def get_heap_object(self, ref_id: str) -> Optional[HeapObject]:
        obj = self._state.heap.get(ref_id)
        return copy.deepcopy(obj) if obj else None

    def _scope(self, scope_id: Optional[str]) -> Scope:
        for scope in self._state.scopes:
            if scope.id == scope_id:
                return scope
        raise StateError(f"no such scope: {scope_id}")

    def get_scope(self, scope_id: str) -> Optional[Scope]:
        for scope in self._state.scopes:
            if scope.id == scope_id:
                return copy.deepcopy(scope)
        return None

    def find_binding(self, name: str, from_scope_id: Optional[str] = None) -> Optional[Tuple[str, Binding]]:
        """Resolve `name` starting at `from_scope_id` (default: innermost scope).

        The scope list is walked from the end backward; only scopes on the
        starting scope's parent chain are considered.
        """
        scopes = self._state.scopes
        if not scopes:
            return None
        by_id = {s.id: s for s in scopes}
        chain = set()
        current = from_scope_id or scopes[-1].id
        while current is not None and current in by_id and current not in chain:
            chain.add(current)
            current = by_id[current].parent_id
        for scope in reversed(scopes):
            if scope.id in chain and name in scope.variables:
                return scope.id, copy.copy(scope.variables[name])
        return None

    def find_scope(self, name: str, from_scope_id: Optional[str] = None) -> Optional[Scope]:
        """Return a copy of the nearest scope binding `name`, or None."""
        found = self.find_binding(name, from_scope_id)
        return self.get_scope(found[0]) if found else None

    def pending_counts(self) -> Dict[str, int]:
        loop = self._state.event_loop
        return {
            "web_apis": len(loop.web_apis),
            "callback_queue": len(loop.callback_queue),
            "microtask_queue": len(loop.microtask_queue),
        }

    def has_pending_tasks(self) -> bool:
        return any(self.pending_counts().values())

    # --- call stack -------------------------------------------------------
    def push_frame(self, name: str, kind: str = "function", this_binding: str = "window", line: int = 0) -> Frame:
        stack = self._state.call_stack
        if stack:
            stack[-1].active = False
        frame = Frame(id=self._next_id("frame"), name=name or "anonymous", kind=kind, this_binding=this_binding, line=line)
        stack.append(frame)
        self._notify(Topic.CALL_STACK, lambda: CallStackEvent("push", copy.deepcopy(frame), copy.deepcopy(stack)))
        return copy.deepcopy(frame)

    def pop_frame(self) -> Frame:
        stack = self._state.call_stack
        if not stack:
            raise StateError("cannot pop from an empty call stack")
        frame = stack.pop()
        frame.active = False
        if stack:
            stack[-1].active = True
        self._notify(Topic.CALL_STACK, lambda: CallStackEvent("pop", copy.deepcopy(frame), copy.deepcopy(stack)))
        return frame

    def update_frame_variable(self, name: str, value: str, kind: str) -> None:
        stack = self._state.call_stack
        if not stack:
            return
        top = stack[-1]
        top.variables[name] = {"value": value, "kind": kind}
        self._notify(Topic.CALL_STACK, lambda: CallStackEvent("update", copy.deepcopy(top), copy.deepcopy(stack)))

    # --- heap ---------------------------------------------------------------
    def allocate(self, kind: str, value: Any) -> str:
        heap = self._state.heap
        obj = HeapObject(id=self._next_id("ref"), kind=kind, value=value, created_at=self._now())
        heap[obj.id] = obj
        self._notify(Topic.HEAP, lambda: HeapEvent("allocate", copy.deepcopy(obj), copy.deepcopy(heap)))
        return obj.id

    def update_heap_value(self, ref_id: str, value: Any) -> None:
        heap = self._state.heap
        obj = heap.get(ref_id)
        if obj is None:
            raise StateError(f"no such heap object: {ref_id}")
        obj.value = value
        self._notify(Topic.HEAP, lambda: HeapEvent("update", copy.deepcopy(obj), copy.deepcopy(heap)))

    def add_reference(self, from_id: str, to_id: str) -> None:
        heap = self._state.heap
        obj = heap.get(from_id)
        if obj is None or to_id in obj.references:
            return
        obj.references.append(to_id)
        self._notify(Topic.HEAP, lambda: HeapEvent("reference", None, copy.deepcopy(heap), from_id=from_id, to_id=to_id))

    def deallocate(self, ref_id: str) -> None:
        heap = self._state.heap
        obj = heap.pop(ref_id, None)
        if obj is None:
            return
        self._notify(Topic.HEAP, lambda: HeapEvent("deallocate", copy.deepcopy(obj), copy.deepcopy(heap)))

    # --- scopes -----------------------------------------------------------
    def create_scope(self, name: str, kind: str, parent_id: Optional[str] = None) -> Scope:
        scopes = self._state.scopes
        scope = Scope(id=self._next_id("scope"), name=name, kind=kind, parent_id=parent_id, created_at=self._now())
        scopes.append(scope)
        self._notify(Topic.SCOPES, lambda: ScopesEvent("create", copy.deepcopy(scope), copy.deepcopy(scopes)))
        return copy.deepcopy(scope)

    def restore_scope(self, scope: Scope) -> None:
        """Re-attach a previously destroyed scope (a closure being re-entered)."""
        scopes = self._state.scopes
        if any(s.id == scope.id for s in scopes):
            return
        restored = copy.deepcopy(scope)
        scopes.append(restored)
        self._notify(Topic.SCOPES, lambda: ScopesEvent("create", copy.deepcopy(restored), copy.deepcopy(scopes)))

    def add_scope_variable(self, scope_id: str, name: str, value: Any, kind: str, declaration: str) -> None:
        scopes = self._state.scopes
        scope = self._scope(scope_id)
        scope.variables[name] = Binding(value=value, kind=kind, declaration=declaration)
        self._notify(Topic.SCOPES, lambda: ScopesEvent("addVariable", copy.deepcopy(scope), copy.deepcopy(scopes), variable=name))

    def update_scope_variable(self, scope_id: str, name: str, value: Any, kind: Optional[str] = None) -> None:
        scopes = self._state.scopes
        scope = self._scope(scope_id)
        binding = scope.variables.get(name)
        if binding is None:
            raise StateError(f"{name} is not bound in {scope_id}")
        binding.value = value
        if kind is not None:
            binding.kind = kind
        self._notify(Topic.SCOPES, lambda: ScopesEvent("updateVariable", copy.deepcopy(scope), copy.deepcopy(scopes), variable=name))

    def destroy_scope(self, scope_id: str) -> Scope:
        scopes = self._state.scopes
        scope = self._scope(scope_id)
        scopes.remove(scope)
        self._notify(Topic.SCOPES, lambda: ScopesEvent("destroy", copy.deepcopy(scope), copy.deepcopy(scopes)))
        return scope

    # --- event loop ---------------------------------------------------------
    def _new_task(self, name: str, callback: str, kind: str, **details: Any) -> Task:
        return Task(id=self._next_id("task"), name=name, callback=callback, kind=kind, start_time=self._now(), **details)

    def add_web_api(self, name: str, callback: str, delay: int = 0, **details: Any) -> Task:
        loop = self._state.event_loop
        task = self._new_task(name, callback, "timer", delay=delay, **details)
        loop.web_apis.append(task)
        self._notify(Topic.EVENT_LOOP, lambda: EventLoopEvent("addWebAPI", copy.deepcopy(task), copy.deepcopy(loop)))
        return copy.deepcopy(task)

    def move_to_callback_queue(self, task_id: str) -> Optional[Task]:
        loop = self._state.event_loop
        for task in loop.web_apis:
            if task.id == task_id:
                break
        else:
            return None
        loop.web_apis.remove(task)
        loop.callback_queue.append(task)
        self._notify(Topic.EVENT_LOOP, lambda: EventLoopEvent("moveToCallback", copy.deepcopy(task), copy.deepcopy(loop)))
        return copy.deepcopy(task)

    def add_microtask(self, name: str, callback: str, **details: Any) -> Task:
        loop = self._state.event_loop
        task = self._new_task(name, callback, "microtask", **details)
        loop.microtask_queue.append(task)
        self._notify(Topic.EVENT_LOOP, lambda: EventLoopEvent("addMicrotask", copy.deepcopy(task), copy.deepcopy(loop)))
        return copy.deepcopy(task)

    def next_microtask(self) -> Optional[Task]:
        loop = self._state.event_loop
        if not loop.microtask_queue:
            return None
        task = loop.microtask_queue.pop(0)
        self._notify(Topic.EVENT_LOOP, lambda: EventLoopEvent("processMicrotask", copy.deepcopy(task), copy.deepcopy(loop)))
        return task

    def next_callback(self) -> Optional[Task]:
        loop = self._state.event_loop
        if not loop.callback_queue:
            return None
        task = loop.callback_queue.pop(0)
        self._notify(Topic.EVENT_LOOP, lambda: EventLoopEvent("processCallback", copy.deepcopy(task), copy.deepcopy(loop)))
        return task

    # --- cursor, flags, console ----------------------------------------------
    def set_current_line(self, line: int) -> None:
        self._state.current_line = line
        self._notify(Topic.CURRENT_LINE, lambda: CurrentLineEvent(line))

    def increment_step(self) -> int:
        self._state.current_step += 1
        return self._state.current_step

    def set_execution_state(self, is_running: bool, is_paused: bool = False) -> None:
        self._state.is_running = is_running
        self._state.is_paused = is_paused
        self._notify(Topic.EXECUTION, lambda: ExecutionEvent(is_running, is_paused, self._state.speed_ms))

    def set_speed(self, speed_ms: int) -> None:
        self._state.speed_ms = max(0, int(speed_ms))
        state = self._state
        self._notify(Topic.EXECUTION, lambda: ExecutionEvent(state.is_running, state.is_paused, state.speed_ms))

    def log_console(self, type: str, *args: Any) -> None:
        entry = ConsoleEntry(type=type, args=tuple(str(a) for a in args), timestamp=self._now())
        logger.debug("console.%s %s", type, entry.text)
        self._notify(Topic.CONSOLE, lambda: entry)

    # --- timers & reset ---------------------------------------------------------
    def track_timer(self, handle: Any) -> None:
        """Remember a timer handle (anything with `cancel()`) for `reset()`."""
        self._timers.append(handle)

    def reset(self) -> None:
        """Cancel tracked timers and clear all state except the pacing speed."""
        for handle in self._timers:
            handle.cancel()
        self._timers = []
        self._state = RuntimeState(speed_ms=self._state.speed_ms)
        self._counters = {key: 0 for key in self._counters}
        state = self._state
        self._notify(Topic.CALL_STACK, lambda: CallStackEvent("reset", None, []))
        self._notify(Topic.HEAP, lambda: HeapEvent("reset", None, {}))
        self._notify(Topic.SCOPES, lambda: ScopesEvent("reset", None, []))
        self._notify(Topic.EVENT_LOOP, lambda: EventLoopEvent("reset", None, copy.deepcopy(state.event_loop)))
        self._notify(Topic.CURRENT_LINE, lambda: CurrentLineEvent(-1))
        self._notify(Topic.EXECUTION, lambda: ExecutionEvent(False, False, self._state.speed_ms))


def to_jsonable(obj: Any) -> Any:
    """Convert snapshots, events and values into JSON-serializable data."""
    if obj is UNDEFINED:
        return None
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, HeapRef):
        return {"$ref": obj.id}
    if isinstance(obj, float) and (math.isnan(obj) or math.isinf(obj)):
        return format_number(obj)
    if isinstance(obj, FunctionValue):
        return {"name": obj.name, "params": list(obj.params), "closure": obj.closure, "line": obj.line, "arrow": obj.arrow}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj
