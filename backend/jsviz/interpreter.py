"""Step interpreter for translated snippets.

The interpreter walks the instruction sequence produced by
`backend.jsviz.translator` and applies each instruction to a `StateStore`.
It never keeps program state of its own beyond the cursor: frames, scopes,
heap objects and queued tasks all live in the store so that every change is
published to subscribers.

Execution is organised as generators. One "unit" of work is either a single
top-level instruction or, once the sequence is exhausted, one pass over the
event loop. A unit yields at every pacing point (between the instructions of
a function body, around queued callbacks). `step()` drives a whole unit
synchronously; `run()` drives units repeatedly and awaits the pacing delay
at every yield, which is also where a pause takes effect. Because the yield
points sit between instructions, no instruction is ever observed half
applied.

Lifecycle::

    idle --init()--> idle (loaded) --run()/step()--> running/paused
    running <--pause()/resume()--> paused
    running --(no work left | stop() | fatal error)--> completed
    any --reset()--> idle
"""

import asyncio
import enum
import logging
import types
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional, Sequence

from .clock import VirtualClock
from .instructions import (
    ArrayLiteral,
    Assignment,
    BinaryExpression,
    CallExpression,
    ConsoleCall,
    Expression,
    FunctionCall,
    FunctionDeclaration,
    FunctionLiteral,
    HoistedVar,
    HoistingMarker,
    Instruction,
    Literal,
    MethodCall,
    NewObject,
    ObjectLiteral,
    PromiseThen,
    PropertyAccess,
    Reference,
    Return,
    TimerRegistration,
    TypeofExpression,
    UnaryExpression,
    VariableDeclaration,
)
from .state import Scope, StateStore, Task
from .translator import translate_body
from .values import (
    UNDEFINED,
    FunctionValue,
    HeapRef,
    binary_op,
    format_console_arg,
    format_value,
    heap_refs_in,
    js_typeof,
    to_number,
    truthy,
    value_kind,
)

logger = logging.getLogger(__name__)

# names that exist in a browser global object; reading them is not an error
KNOWN_GLOBALS = frozenset(("Math", "Promise", "JSON", "Object", "Array", "window", "document", "globalThis"))

GLOBAL_NAME = "Global"

# A unit of work: yields at pacing points, returns an optional outcome.
Unit = Generator[None, None, Any]


class Phase(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class InterpreterError(Exception):
    """Base class for interpreter failures."""


class LifecycleError(InterpreterError):
    """A control operation was called in a phase that does not allow it."""


class _Halt(InterpreterError):
    """Stops the current run; the message is reported as a console error."""


@dataclass(frozen=True)
class _Returned:
    value: Any


class Interpreter:
    """Drive a `StateStore` through a translated instruction sequence.

    Tunable attributes (defaults are set in __init__):
    - max_call_depth: nested function calls allowed before a RangeError halts the run
    - max_steps: executed instructions allowed per run (runaway protection)

    Args:
        store: the state store this interpreter mutates.
        clock: timer clock; a `VirtualClock` when omitted, so `step()` works
            without a running event loop. Pass an `AsyncioClock` for real time.
    """

    def __init__(self, store: StateStore, clock=None, max_call_depth: int = 64, max_steps: int = 10000):
        self.store = store
        self.clock = clock or VirtualClock()
        self.max_call_depth = max_call_depth
        self.max_steps = max_steps
        self._phase = Phase.IDLE
        self._loaded = False
        self._instructions: List[Instruction] = []
        self._functions: Dict[str, FunctionDeclaration] = {}
        self._cursor = 0
        self._unit: Optional[Unit] = None
        self._global_scope_id: Optional[str] = None
        # scopes that were torn down but may still be closed over
        self._detached: Dict[str, Scope] = {}
        self._depth = 0
        self._line = 0
        self._this: List[Any] = []
        # bumped by stop()/reset(); a run() that sees a new generation exits
        self._generation = 0
        self._run_active = False
        self._resume: Optional[asyncio.Event] = None
        self._handlers = {
            HoistingMarker: self._exec_hoisting,
            FunctionDeclaration: self._exec_function_declaration,
            HoistedVar: self._exec_hoisted_var,
            VariableDeclaration: self._exec_variable_declaration,
            Assignment: self._exec_assignment,
            FunctionCall: self._exec_function_call,
            MethodCall: self._exec_method_call,
            ConsoleCall: self._exec_console,
            TimerRegistration: self._exec_timer,
            PromiseThen: self._exec_promise,
            Return: self._exec_return,
            NewObject: self._exec_new_object,
        }

    # --- lifecycle -------------------------------------------------------
    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def loaded(self) -> bool:
        return self._loaded

    def init(self, instructions: Sequence[Instruction]) -> None:
        """Load an instruction sequence and create the global frame and scope."""
        if self._phase is not Phase.IDLE:
            raise LifecycleError(f"cannot init while {self._phase.value}; reset first")
        self.store.reset()
        self._instructions = list(instructions)
        self._functions = {i.name: i for i in self._instructions if isinstance(i, FunctionDeclaration)}
        self._cursor = 0
        self._unit = None
        self._detached = {}
        self._depth = 0
        self._line = 0
        self._this = []
        self.store.push_frame(GLOBAL_NAME, "global", this_binding="window", line=0)
        self._global_scope_id = self.store.create_scope(GLOBAL_NAME, "global").id
        self._loaded = True
        logger.debug("loaded %d instructions", len(self._instructions))

    def has_more(self) -> bool:
        if not self._loaded or self._phase is Phase.COMPLETED:
            return False
        return self._unit is not None or self._cursor < len(self._instructions) or self.store.has_pending_tasks()

    def step(self) -> bool:
        """Execute one unit of work synchronously; return whether work remains.

        Stepping from idle enters the paused phase, like a debugger's first
        single step.
        """
        if not self._loaded:
            raise LifecycleError("nothing loaded; call init() first")
        if self._phase is Phase.COMPLETED:
            return False
        if self._phase is Phase.RUNNING and self._run_active:
            raise LifecycleError("a run is in progress; pause it before stepping")
        if self._phase is Phase.IDLE:
            self._set_phase(Phase.PAUSED)
        delay_s = self.store.speed_ms / 1000
        generation = self._generation
        if self._unit is None:
            self._unit = self._next_unit()
        while self._advance():
            self.clock.elapse(delay_s)
        if generation != self._generation or self._phase is Phase.COMPLETED:
            return False
        if not self.has_more():
            self._finish()
            return False
        return True

    async def run(self) -> None:
        """Run until no work remains, honoring pause/resume/stop."""
        if not self._loaded:
            raise LifecycleError("nothing loaded; call init() first")
        if self._phase is Phase.COMPLETED:
            return
        if self._run_active:
            raise LifecycleError("already running")
        generation = self._generation
        self._resume = asyncio.Event()
        self._resume.set()
        self._run_active = True
        self._set_phase(Phase.RUNNING)
        try:
            while generation == self._generation and self._phase is not Phase.COMPLETED:
                if self._unit is None:
                    if not self.has_more():
                        self._finish()
                        break
                    self._unit = self._next_unit()
                self._advance()
                if self._phase is Phase.COMPLETED or generation != self._generation:
                    break
                await self._pace(generation)
        finally:
            if generation == self._generation:
                self._run_active = False

    def pause(self) -> bool:
        if self._phase is not Phase.RUNNING:
            return False
        if self._resume is not None:
            self._resume.clear()
        self._set_phase(Phase.PAUSED)
        return True

    def resume(self) -> bool:
        if self._phase is not Phase.PAUSED:
            return False
        self._set_phase(Phase.RUNNING)
        if self._resume is not None:
            self._resume.set()
        return True

    def stop(self) -> None:
        """Halt the current run without clearing state."""
        if self._phase in (Phase.IDLE, Phase.COMPLETED):
            return
        # close first so open calls unwind their frames and scopes
        self._close_unit()
        self._generation += 1
        self._run_active = False
        self._phase = Phase.COMPLETED
        self.store.set_execution_state(False, False)
        if self._resume is not None:
            self._resume.set()

    def reset(self) -> None:
        """Stop, cancel tracked timers and clear the store."""
        self._generation += 1
        self._run_active = False
        self._close_unit()
        if self._resume is not None:
            self._resume.set()
        self.store.reset()
        self._phase = Phase.IDLE
        self._loaded = False
        self._instructions = []
        self._functions = {}
        self._cursor = 0
        self._detached = {}
        self._depth = 0
        self._line = 0
        self._this = []
        self._global_scope_id = None

    # --- driving -----------------------------------------------------------
    def _set_phase(self, phase: Phase) -> None:
        self._phase = phase
        self.store.set_execution_state(phase in (Phase.RUNNING, Phase.PAUSED), phase is Phase.PAUSED)

    def _finish(self) -> None:
        self._close_unit()
        self._phase = Phase.COMPLETED
        self.store.set_current_line(-1)
        self.store.set_execution_state(False, False)
        self.store.log_console("info", "Execution completed")

    def _close_unit(self) -> None:
        unit, self._unit = self._unit, None
        # a unit cannot be closed from inside itself (a subscriber calling stop)
        if unit is not None and not unit.gi_running:
            unit.close()

    def _advance(self) -> bool:
        """Run the current unit to its next pacing point.

        Returns True when the unit paused at a pacing point and False when it
        ended (normally or with an error reported to the console).
        """
        unit, generation = self._unit, self._generation
        try:
            next(unit)
            return generation == self._generation
        except StopIteration:
            if self._unit is unit:
                self._unit = None
            return False
        except _Halt as e:
            if generation != self._generation:
                return False
            self._unit = None
            self.store.log_console("error", str(e))
            self._finish()
        except Exception as e:
            if generation != self._generation:
                return False
            logger.exception("run halted by an unexpected error")
            self._unit = None
            self.store.log_console("error", f"Error: {e}")
            self._finish()
        return False

    async def _pace(self, generation: int) -> None:
        await self.clock.sleep(self.store.speed_ms / 1000)
        while self._phase is Phase.PAUSED and generation == self._generation:
            await self._resume.wait()

    def _next_unit(self) -> Unit:
        if self._cursor < len(self._instructions):
            inst = self._instructions[self._cursor]
            self._cursor += 1
            return self._top_level(inst)
        return self._drain()

    def _top_level(self, inst: Instruction) -> Unit:
        yield from self._execute(inst, self._global_scope_id)

    # --- event loop ------------------------------------------------------------
    def _drain(self) -> Unit:
        """One event-loop pass: all microtasks, then at most one callback.

        Microtasks enqueued by that callback are drained before the pass
        ends so they run ahead of the next callback.
        """
        ran = yield from self._drain_microtasks()
        task = self.store.next_callback()
        if task is not None:
            ran = True
            self.store.log_console("info", f"Executing callback: {task.name}")
            yield
            yield from self._run_task(task, f"{task.name} callback")
            yield
            yield from self._drain_microtasks()
        if not ran:
            # only pending timers remain; let time pass
            yield

    def _drain_microtasks(self) -> Unit:
        ran = False
        while True:
            task = self.store.next_microtask()
            if task is None:
                return ran
            ran = True
            self.store.log_console("info", f"Executing microtask: {task.name}")
            yield
            yield from self._run_task(task, f"{task.name} callback")
            yield

    def _run_task(self, task: Task, label: str) -> Unit:
        if task.callback_name:
            target = self._lookup_function(task.callback_name, task.closure)
            if target is not None:
                yield from self._invoke(target, list(task.args), task.callback_name, 0)
                return
        fn = FunctionValue(
            name=task.callback_name or label,
            params=task.params,
            body=task.callback,
            closure=task.closure,
            arrow=True,
            body_offset=task.body_offset,
            concise=task.concise,
        )
        yield from self._invoke(fn, list(task.args), fn.name, 0)

    # --- instructions ----------------------------------------------------------
    def _execute(self, inst: Instruction, scope_id: str) -> Unit:
        step = self.store.increment_step()
        if step > self.max_steps:
            raise _Halt(f"RangeError: step limit of {self.max_steps} exceeded")
        if inst.line > 0:
            self._line = inst.line
            self.store.set_current_line(inst.line)
        logger.debug("step %d: %s (line %d)", step, inst.kind, inst.line)
        outcome = self._handlers[type(inst)](inst, scope_id)
        if isinstance(outcome, types.GeneratorType):
            outcome = yield from outcome
        return outcome

    def _exec_hoisting(self, inst: HoistingMarker, scope_id: str) -> None:
        self.store.log_console(
            "info", f"Hoisting: Functions [{', '.join(inst.functions)}], Vars [{', '.join(inst.variables)}]"
        )

    def _exec_function_declaration(self, inst: FunctionDeclaration, scope_id: str) -> None:
        fn = FunctionValue(
            name=inst.name,
            params=inst.params,
            body=inst.body,
            line=inst.line,
            closure=scope_id,
            body_offset=inst.body_offset,
        )
        ref = HeapRef(self.store.allocate("function", fn))
        self._bind(scope_id, inst.name, ref, "function")

    def _exec_hoisted_var(self, inst: HoistedVar, scope_id: str) -> None:
        if self._own_binding(scope_id, inst.name) is None:
            self._bind(scope_id, inst.name, UNDEFINED, "var")

    def _exec_variable_declaration(self, inst: VariableDeclaration, scope_id: str) -> Unit:
        value = yield from self._evaluate(inst.value, scope_id)
        self._bind(scope_id, inst.name, value, inst.declaration)

    def _exec_new_object(self, inst: NewObject, scope_id: str) -> Unit:
        for arg in inst.args:
            yield from self._evaluate(arg, scope_id)
        ref = HeapRef(self.store.allocate("object", {}))
        self._bind(scope_id, inst.name, ref, inst.declaration)

    def _exec_assignment(self, inst: Assignment, scope_id: str) -> Unit:
        value = yield from self._evaluate(inst.value, scope_id)
        self._assign(scope_id, inst.name, value)

    def _exec_function_call(self, inst: FunctionCall, scope_id: str) -> Unit:
        args = yield from self._evaluate_all(inst.args, scope_id)
        yield from self._call(inst.name, args, scope_id, inst.line)

    def _exec_method_call(self, inst: MethodCall, scope_id: str) -> Unit:
        args = yield from self._evaluate_all(inst.args, scope_id)
        yield from self._call_method(Reference(inst.target), inst.method, args, scope_id, inst.line)

    def _exec_console(self, inst: ConsoleCall, scope_id: str) -> Unit:
        args = yield from self._evaluate_all(inst.args, scope_id)
        self._log(inst.method, args)

    def _exec_timer(self, inst: TimerRegistration, scope_id: str) -> None:
        task = self.store.add_web_api(
            "setTimeout",
            inst.callback,
            inst.delay,
            closure=scope_id,
            callback_name=inst.callback_name,
            body_offset=inst.body_offset,
            concise=inst.concise,
        )
        self.store.log_console("info", f"setTimeout registered ({inst.delay}ms)")
        wait_ms = min(inst.delay, self.store.speed_ms)
        handle = self.clock.call_later(wait_ms / 1000, self.store.move_to_callback_queue, task.id)
        self.store.track_timer(handle)

    def _exec_promise(self, inst: PromiseThen, scope_id: str) -> Unit:
        value = yield from self._evaluate(inst.value, scope_id)
        self.store.add_microtask(
            "Promise.then",
            inst.callback,
            closure=scope_id,
            callback_name=inst.callback_name,
            body_offset=inst.body_offset,
            concise=inst.concise,
            params=inst.params,
            args=[value],
        )
        self.store.log_console("info", "Promise.then added to microtask queue")

    def _exec_return(self, inst: Return, scope_id: str) -> Unit:
        value = yield from self._evaluate(inst.value, scope_id)
        self.store.log_console("info", f"Return: {self._format(value)}")
        return _Returned(value)

    # --- bindings ----------------------------------------------------------------
    def _heap(self, ref_id: str):
        return self.store.heap_entry(ref_id)

    def _format(self, value: Any) -> str:
        return format_value(value, self._heap)

    def _log(self, method: str, args: List[Any]) -> None:
        self.store.log_console(method, *(format_console_arg(a, self._heap) for a in args))

    def _own_binding(self, scope_id: str, name: str):
        scope = self.store.get_scope(scope_id)
        return scope.variables.get(name) if scope else None

    def _mirror(self, scope_id: str, name: str, value: Any) -> None:
        # frames show the bindings of the scope that is currently executing
        if scope_id == self.store.current_scope_id:
            self.store.update_frame_variable(name, self._format(value), value_kind(value, self._heap))

    def _bind(self, scope_id: str, name: str, value: Any, declaration: str) -> None:
        kind = value_kind(value, self._heap)
        if self._own_binding(scope_id, name) is not None:
            self.store.update_scope_variable(scope_id, name, value, kind)
        else:
            self.store.add_scope_variable(scope_id, name, value, kind, declaration)
        self._mirror(scope_id, name, value)

    def _assign(self, scope_id: str, name: str, value: Any) -> None:
        found = self.store.find_binding(name, scope_id)
        if found is None:
            self.store.add_scope_variable(scope_id, name, value, value_kind(value, self._heap), "implicit")
            self._mirror(scope_id, name, value)
            return
        owner, binding = found
        if binding.declaration == "const":
            self.store.log_console("error", "TypeError: Assignment to constant variable.")
            return
        self.store.update_scope_variable(owner, name, value, value_kind(value, self._heap))
        self._mirror(owner, name, value)

    # --- calls -----------------------------------------------------------------
    def _as_function(self, value: Any) -> Optional[FunctionValue]:
        if isinstance(value, HeapRef):
            entry = self._heap(value.id)
            if entry and entry[0] == "function":
                return entry[1]
        return None

    def _lookup_function(self, name: str, scope_id: Optional[str]) -> Optional[FunctionValue]:
        found = self.store.find_binding(name, scope_id)
        if found is not None:
            return self._as_function(found[1].value)
        decl = self._functions.get(name)
        if decl is None:
            return None
        return FunctionValue(decl.name, decl.params, decl.body, decl.line, self._global_scope_id, body_offset=decl.body_offset)

    def _call(self, name: str, args: List[Any], scope_id: str, line: int) -> Unit:
        found = self.store.find_binding(name, scope_id)
        if found is not None:
            fn = self._as_function(found[1].value)
            if fn is None:
                self.store.log_console("error", f"TypeError: {name} is not a function")
                return UNDEFINED
        elif name in self._functions:
            fn = self._lookup_function(name, None)
        else:
            self.store.log_console("error", f"ReferenceError: {name} is not defined")
            return UNDEFINED
        result = yield from self._invoke(fn, args, name, line)
        return result

    def _call_method(self, target: Expression, method: str, args: List[Any], scope_id: str, line: int) -> Unit:
        if isinstance(target, Reference) and target.name == "console" and self.store.find_binding("console", scope_id) is None:
            self._log(method if method in ("log", "warn", "error", "info") else "log", args)
            return UNDEFINED
        if isinstance(target, Reference) and target.name in KNOWN_GLOBALS and self.store.find_binding(target.name, scope_id) is None:
            return UNDEFINED
        if isinstance(target, Reference) and self._is_unbound(target.name, scope_id):
            self.store.log_console("error", f"ReferenceError: {target.name} is not defined")
            return UNDEFINED
        receiver = yield from self._evaluate(target, scope_id)
        label = target.text if isinstance(target, PropertyAccess) else getattr(target, "name", "value")
        entry = self._heap(receiver.id) if isinstance(receiver, HeapRef) else None
        if entry and entry[0] == "array" and method in ("push", "pop"):
            items = list(entry[1])
            if method == "push":
                items.extend(args)
                result = len(items)
            else:
                result = items.pop() if items else UNDEFINED
            self.store.update_heap_value(receiver.id, items)
            for ref_id in heap_refs_in(items):
                self.store.add_reference(receiver.id, ref_id)
            return result
        if entry and entry[0] == "object":
            fn = self._as_function(entry[1].get(method))
            if fn is not None:
                result = yield from self._invoke(fn, args, method, line, this=receiver)
                return result
        if receiver is UNDEFINED or receiver is None:
            self.store.log_console("error", f"TypeError: Cannot read properties of {self._format(receiver)} (reading '{method}')")
            return UNDEFINED
        self.store.log_console("error", f"TypeError: {label}.{method} is not a function")
        return UNDEFINED

    def _reattach(self, closure_id: Optional[str]) -> List[str]:
        """Restore torn-down ancestors of `closure_id`; return their ids, outermost first."""
        live = set(self.store.scope_ids)
        missing: List[Scope] = []
        current = closure_id
        while current is not None and current not in live:
            scope = self._detached.get(current)
            if scope is None:
                break
            missing.append(scope)
            current = scope.parent_id
        for scope in reversed(missing):
            self.store.restore_scope(scope)
        return [s.id for s in reversed(missing)]

    def _unwind(self, scope_id: str, restored: List[str]) -> None:
        self._this.pop()
        self._depth -= 1
        self.store.pop_frame()
        self._detached[scope_id] = self.store.destroy_scope(scope_id)
        for restored_id in reversed(restored):
            self._detached[restored_id] = self.store.destroy_scope(restored_id)

    def _invoke(self, fn: FunctionValue, args: List[Any], name: str, line: int, this: Any = None) -> Unit:
        if self._depth >= self.max_call_depth:
            raise _Halt("RangeError: Maximum call stack size exceeded")
        restored = self._reattach(fn.closure)
        parent = fn.closure if fn.closure in self.store.scope_ids else self._global_scope_id
        scope = self.store.create_scope(name or "anonymous", "function", parent_id=parent)
        this_binding = self._format(this) if this is not None else "window"
        self.store.push_frame(name or "anonymous", "function", this_binding=this_binding, line=line)
        self._depth += 1
        self._this.append(this if this is not None else UNDEFINED)
        generation = self._generation
        result = UNDEFINED
        try:
            for i, param in enumerate(fn.params):
                value = args[i] if i < len(args) else UNDEFINED
                self.store.add_scope_variable(scope.id, param, value, value_kind(value, self._heap), "param")
                self.store.update_frame_variable(param, self._format(value), value_kind(value, self._heap))
            yield
            for inst in translate_body(fn.body, fn.body_offset, fn.concise):
                outcome = yield from self._execute(inst, scope.id)
                yield
                if isinstance(outcome, _Returned):
                    result = outcome.value
                    break
        finally:
            # unwinds on return, halt and close alike; after reset() the store is already empty
            if generation == self._generation:
                self._unwind(scope.id, restored)
        if line > 0:
            self.store.set_current_line(line)
        return result

    # --- values ----------------------------------------------------------------
    def _evaluate_all(self, exprs: Sequence[Expression], scope_id: str) -> Unit:
        values = []
        for expr in exprs:
            value = yield from self._evaluate(expr, scope_id)
            values.append(value)
        return values

    def _evaluate(self, expr: Expression, scope_id: str) -> Unit:  # noqa: C901
        """Resolve a value expression; composites and functions are allocated on the heap."""
        if isinstance(expr, Literal):
            return UNDEFINED if expr.type == "undefined" else expr.value
        if isinstance(expr, ArrayLiteral):
            items = yield from self._evaluate_all(expr.elements, scope_id)
            return self._allocate("array", items)
        if isinstance(expr, ObjectLiteral):
            obj = {}
            for key, value_expr in expr.entries:
                obj[key] = yield from self._evaluate(value_expr, scope_id)
            return self._allocate("object", obj)
        if isinstance(expr, FunctionLiteral):
            fn = FunctionValue(
                name=expr.name,
                params=expr.params,
                body=expr.body,
                closure=scope_id,
                arrow=expr.arrow,
                body_offset=expr.body_offset,
                concise=expr.concise,
            )
            return HeapRef(self.store.allocate("function", fn))
        if isinstance(expr, Reference):
            return self._resolve(expr.name, scope_id)
        if isinstance(expr, PropertyAccess):
            target = yield from self._evaluate(expr.target, scope_id)
            return self._property(target, expr.name)
        if isinstance(expr, CallExpression):
            args = yield from self._evaluate_all(expr.args, scope_id)
            if expr.target is None:
                result = yield from self._call(expr.name, args, scope_id, self._line)
            else:
                result = yield from self._call_method(expr.target, expr.name, args, scope_id, self._line)
            return result
        if isinstance(expr, TypeofExpression):
            operand = expr.operand
            if isinstance(operand, Reference) and self._is_unbound(operand.name, scope_id):
                return "undefined"
            value = yield from self._evaluate(operand, scope_id)
            return js_typeof(value, self._heap)
        if isinstance(expr, UnaryExpression):
            value = yield from self._evaluate(expr.operand, scope_id)
            if expr.op == "!":
                return not truthy(value)
            number = to_number(value)
            return -number if expr.op == "-" else number
        if isinstance(expr, BinaryExpression):
            left = yield from self._evaluate(expr.left, scope_id)
            if expr.op == "&&" and not truthy(left):
                return left
            if expr.op == "||" and truthy(left):
                return left
            right = yield from self._evaluate(expr.right, scope_id)
            return binary_op(expr.op, left, right, self._heap)
        raise InterpreterError(f"unsupported expression {expr!r}")

    def _allocate(self, kind: str, value: Any) -> HeapRef:
        ref_id = self.store.allocate(kind, value)
        for child in heap_refs_in(value):
            self.store.add_reference(ref_id, child)
        return HeapRef(ref_id)

    def _is_unbound(self, name: str, scope_id: str) -> bool:
        return (
            name != "this"
            and self.store.find_binding(name, scope_id) is None
            and name not in self._functions
        )

    def _resolve(self, name: str, scope_id: str) -> Any:
        if name == "this":
            return self._this[-1] if self._this else UNDEFINED
        found = self.store.find_binding(name, scope_id)
        if found is not None:
            return found[1].value
        if name in KNOWN_GLOBALS or name == "console":
            return UNDEFINED
        self.store.log_console("error", f"ReferenceError: {name} is not defined")
        return UNDEFINED

    def _property(self, target: Any, name: str) -> Any:
        if isinstance(target, str):
            if name == "length":
                return len(target)
            return target[int(name)] if name.isdigit() and int(name) < len(target) else UNDEFINED
        entry = self._heap(target.id) if isinstance(target, HeapRef) else None
        if entry is None:
            return UNDEFINED
        kind, payload = entry
        if kind == "array":
            if name == "length":
                return len(payload)
            if name.isdigit() and int(name) < len(payload):
                return payload[int(name)]
            return UNDEFINED
        if kind == "object":
            return payload.get(name, UNDEFINED)
        if kind == "function" and name == "name":
            return payload.name
        return UNDEFINED
