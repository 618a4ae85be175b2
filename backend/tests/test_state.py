"""Unit tests for the runtime state store."""

import pytest

from backend.jsviz.clock import VirtualClock
from backend.jsviz.state import (
    CallStackEvent,
    ConsoleEntry,
    ExecutionEvent,
    HeapEvent,
    StateError,
    StateStore,
    Topic,
    to_jsonable,
)
from backend.jsviz.values import UNDEFINED, HeapRef


def test_push_and_pop_keep_single_active_top_frame():
    store = StateStore()
    store.push_frame("Global", "global")
    store.push_frame("a")
    store.push_frame("b")
    stack = store.snapshot().call_stack
    assert [f.active for f in stack] == [False, False, True]
    store.pop_frame()
    stack = store.snapshot().call_stack
    assert [f.name for f in stack] == ["Global", "a"]
    assert [f.active for f in stack] == [False, True]


def test_pop_empty_stack_raises():
    with pytest.raises(StateError):
        StateStore().pop_frame()


def test_handlers_get_typed_payload_and_snapshot():
    store = StateStore()
    seen = []
    store.subscribe(Topic.CALL_STACK, lambda payload, snap: seen.append((payload, snap)))
    store.push_frame("main")
    payload, snap = seen[0]
    assert isinstance(payload, CallStackEvent)
    assert payload.action == "push"
    assert payload.frame.name == "main"
    assert snap.call_stack[0].name == "main"


def test_all_topic_sees_every_mutation_and_unsubscribe_stops_delivery():
    store = StateStore()
    topics = []
    unsubscribe = store.subscribe("all", lambda payload, snap: topics.append(payload.topic))
    store.allocate("object", {})
    store.log_console("log", "hi")
    unsubscribe()
    store.set_current_line(3)
    assert topics == [Topic.HEAP, Topic.CONSOLE]


def test_unknown_topic_is_rejected():
    with pytest.raises(ValueError):
        StateStore().subscribe("nope", lambda p, s: None)


def test_snapshot_is_detached():
    store = StateStore()
    ref = store.allocate("array", [1, 2])
    snap = store.snapshot()
    snap.heap[ref].value.append(3)
    assert store.snapshot().heap[ref].value == [1, 2]


def test_heap_ids_are_monotonic_and_never_reused():
    store = StateStore()
    first = store.allocate("object", {})
    second = store.allocate("array", [])
    store.deallocate(second)
    third = store.allocate("function", None)
    assert (first, second, third) == ("ref_1", "ref_2", "ref_3")
    assert list(store.snapshot().heap) == ["ref_1", "ref_3"]


def test_add_reference_is_a_set():
    store = StateStore()
    events = []
    store.subscribe(Topic.HEAP, lambda p, s: events.append(p))
    a = store.allocate("object", {})
    b = store.allocate("array", [])
    store.add_reference(a, b)
    store.add_reference(a, b)
    assert store.snapshot().heap[a].references == [b]
    refs = [e for e in events if e.action == "reference"]
    assert len(refs) == 1
    assert isinstance(refs[0], HeapEvent) and (refs[0].from_id, refs[0].to_id) == (a, b)


def test_scope_lookup_follows_parent_chain_innermost_first():
    store = StateStore()
    g = store.create_scope("Global", "global").id
    outer = store.create_scope("outer", "function", g).id
    store.add_scope_variable(g, "name", "global", "string", "var")
    store.add_scope_variable(outer, "name", "outer", "string", "let")
    inner = store.create_scope("inner", "function", outer).id
    owner, binding = store.find_binding("name", inner)
    assert owner == outer and binding.value == "outer"
    # a sibling scope parented at global does not see outer's bindings
    sibling = store.create_scope("sibling", "function", g).id
    owner, binding = store.find_binding("name", sibling)
    assert owner == g
    assert store.find_scope("name", sibling).name == "Global"
    assert store.find_binding("missing", inner) is None


def test_update_unknown_binding_raises():
    store = StateStore()
    g = store.create_scope("Global", "global").id
    with pytest.raises(StateError):
        store.update_scope_variable(g, "x", 1)


def test_destroy_and_restore_scope_keeps_identity():
    store = StateStore()
    g = store.create_scope("Global", "global").id
    fn = store.create_scope("fn", "function", g)
    store.add_scope_variable(fn.id, "count", 0, "number", "let")
    removed = store.destroy_scope(fn.id)
    assert store.scope_ids == [g]
    store.restore_scope(removed)
    assert store.scope_ids == [g, fn.id]
    assert store.find_binding("count", fn.id)[1].value == 0


def test_event_loop_queues_move_tasks_forward():
    store = StateStore()
    timer = store.add_web_api("setTimeout", "cb()", 100)
    store.add_microtask("Promise.then", "m()")
    assert store.pending_counts() == {"web_apis": 1, "callback_queue": 0, "microtask_queue": 1}
    store.move_to_callback_queue(timer.id)
    assert store.pending_counts() == {"web_apis": 0, "callback_queue": 1, "microtask_queue": 1}
    assert store.next_microtask().name == "Promise.then"
    assert store.next_callback().id == timer.id
    assert not store.has_pending_tasks()
    # moving a task that is no longer pending is a no-op
    assert store.move_to_callback_queue(timer.id) is None


def test_console_entries_are_strings():
    store = StateStore()
    entries = []
    store.subscribe(Topic.CONSOLE, lambda p, s: entries.append(p))
    store.log_console("warn", "a", 1)
    assert isinstance(entries[0], ConsoleEntry)
    assert entries[0].args == ("a", "1")
    assert entries[0].text == "a 1"


def test_reset_cancels_timers_and_keeps_speed():
    clock = VirtualClock()
    store = StateStore(speed_ms=250, now=clock.now)
    fired = []
    store.track_timer(clock.call_later(1, fired.append, "x"))
    store.push_frame("Global", "global")
    store.allocate("object", {})
    store.set_execution_state(True, False)
    store.reset()
    clock.advance(5)
    assert fired == []
    snap = store.snapshot()
    assert snap.speed_ms == 250
    assert snap.call_stack == [] and snap.heap == {} and snap.scopes == []
    assert snap.current_line == -1 and not snap.is_running
    # identities restart after a reset
    assert store.allocate("object", {}) == "ref_1"


def test_set_speed_clamps_and_notifies_execution():
    store = StateStore()
    seen = []
    store.subscribe(Topic.EXECUTION, lambda payload, snap: seen.append((payload, snap.speed_ms)))
    store.set_execution_state(True, False)
    store.set_speed(-20)
    assert store.speed_ms == 0
    store.set_speed(300)
    assert [(e.is_running, e.speed_ms) for e, _ in seen] == [(True, 1000), (True, 0), (True, 300)]
    assert isinstance(seen[-1][0], ExecutionEvent)
    assert seen[-1][1] == 300


def test_to_jsonable_converts_runtime_values():
    store = StateStore()
    g = store.create_scope("Global", "global").id
    store.add_scope_variable(g, "u", UNDEFINED, "undefined", "var")
    store.add_scope_variable(g, "r", HeapRef("ref_9"), "object", "let")
    data = to_jsonable(store.snapshot())
    variables = data["scopes"][0]["variables"]
    assert variables["u"]["value"] is None
    assert variables["r"]["value"] == {"$ref": "ref_9"}
    assert data["event_loop"]["web_apis"] == []
