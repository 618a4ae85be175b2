"""Tests for value display rules, operators and the virtual clock."""

import asyncio
import math

from backend.jsviz.clock import VirtualClock
from backend.jsviz.values import (
    UNDEFINED,
    FunctionValue,
    HeapRef,
    binary_op,
    format_console_arg,
    format_value,
    js_typeof,
)


def test_format_value_rules():
    heap = {
        "ref_1": ("array", [1, 2, 3]),
        "ref_2": ("array", [1, 2, 3, 4]),
        "ref_3": ("object", {"a": 1, "b": "x"}),
        "ref_4": ("object", {"a": 1, "b": 2, "c": 3}),
        "ref_5": ("function", FunctionValue("greet", (), "")),
    }
    lookup = heap.get
    assert format_value(UNDEFINED) == "undefined"
    assert format_value(None) == "null"
    assert format_value(5.0) == "5"
    assert format_value(math.nan) == "NaN"
    assert format_value("hi") == '"hi"'
    assert format_value(HeapRef("ref_1"), lookup) == "[1, 2, 3]"
    assert format_value(HeapRef("ref_2"), lookup) == "[4 items]"
    assert format_value(HeapRef("ref_3"), lookup) == '{a: 1, b: "x"}'
    assert format_value(HeapRef("ref_4"), lookup) == "{...}"
    assert format_value(HeapRef("ref_5"), lookup) == "[Function: greet]"
    assert format_console_arg("raw") == "raw"


def test_operators_follow_js_coercion():
    assert binary_op("+", "a", 1) == "a1"
    assert binary_op("+", 1, 2) == 3
    assert binary_op("/", 1, 0) == math.inf
    assert binary_op("===", 1, "1") is False
    assert binary_op("==", 1, "1") is True
    assert binary_op("||", 0, "fallback") == "fallback"
    assert js_typeof(None) == "object"


def test_virtual_clock_fires_in_due_order_and_skips_cancelled():
    clock = VirtualClock()
    fired = []
    clock.call_later(2, fired.append, "late")
    clock.call_later(1, fired.append, "early")
    cancelled = clock.call_later(1.5, fired.append, "cancelled")
    cancelled.cancel()
    clock.advance(1)
    assert fired == ["early"]
    clock.advance(1)
    assert fired == ["early", "late"]
    assert clock.now() == 2
    assert clock.pending == 0


def test_virtual_sleep_advances_time():
    clock = VirtualClock()
    fired = []
    clock.call_later(0.5, fired.append, 1)
    asyncio.run(clock.sleep(1))
    assert fired == [1]
    assert clock.now() == 1
