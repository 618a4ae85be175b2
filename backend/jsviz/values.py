"""Runtime values of the simulated language and their display rules.

Values are tracked structurally. Scalars map onto plain Python objects
(`None` is null, `bool`, `int`/`float`, `str`) and the module-level
`UNDEFINED` sentinel stands in for `undefined`. Anything that lives on the
simulated heap (arrays, objects, functions) is referred to through a
`HeapRef` holding the heap identity; the payload itself is stored in the
runtime state store.

Only a thin slice of expression semantics is implemented here (typeof,
truthiness, number coercion and a handful of binary operators). It is enough
for the teaching snippets, not a faithful engine.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple


class Undefined:
    """Type of the `UNDEFINED` singleton."""

    _instance: Optional["Undefined"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


UNDEFINED = Undefined()


@dataclass(frozen=True)
class HeapRef:
    """Reference to an object allocated in the runtime heap."""

    id: str

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True)
class FunctionValue:
    """Heap payload of a function object.

    `closure` is the identity of the scope the function was created in; calls
    resolve free names starting from that scope.
    """

    name: str
    params: Tuple[str, ...]
    body: str
    line: int = 0
    closure: Optional[str] = None
    arrow: bool = False
    body_offset: int = 0
    concise: bool = False


# Resolves a heap identity to (kind, payload); used by the display helpers.
HeapLookup = Callable[[str], Optional[Tuple[str, Any]]]


def value_kind(value: Any, heap: Optional[HeapLookup] = None) -> str:
    """Return the type label shown next to a binding (frames and scopes)."""
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, HeapRef):
        entry = heap(value.id) if heap else None
        return entry[0] if entry else "object"
    if isinstance(value, FunctionValue):
        return "function"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def js_typeof(value: Any, heap: Optional[HeapLookup] = None) -> str:
    kind = value_kind(value, heap)
    if kind in ("null", "array"):
        return "object"
    return kind


def truthy(value: Any) -> bool:
    if value is UNDEFINED or value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, (bool, int, float, str)):
        return bool(value)
    return True


def to_number(value: Any) -> float:
    if value is UNDEFINED:
        return math.nan
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def format_number(value: Any) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def _normalize_number(value: float) -> Any:
    # keep integral results as ints so "1 + 1" displays as 2, not 2.0
    if isinstance(value, float) and value.is_integer() and abs(value) < 2 ** 53:
        return int(value)
    return value


def to_display_string(value: Any, heap: Optional[HeapLookup] = None) -> str:
    """String conversion used by `+` concatenation and raw console output."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, HeapRef) and heap:
        entry = heap(value.id)
        if entry and entry[0] == "array":
            return ",".join(to_display_string(v, heap) for v in entry[1])
        if entry and entry[0] == "function":
            return f"function {entry[1].name}() {{ ... }}"
    return "[object Object]"


def format_value(value: Any, heap: Optional[HeapLookup] = None, _depth: int = 0) -> str:
    """Format a value for frame and console display.

    Strings are quoted, short arrays and objects are shown inline and longer
    ones are abbreviated.
    """
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, FunctionValue):
        return f"[Function: {value.name}]" if value.name else "[Function]"
    if isinstance(value, HeapRef):
        entry = heap(value.id) if heap else None
        if entry is None:
            return f"<{value.id}>"
        if _depth > 2:
            return "[...]" if entry[0] == "array" else "{...}"
        return format_value(entry[1], heap, _depth + 1)
    if isinstance(value, list):
        if len(value) <= 3:
            return "[" + ", ".join(format_value(v, heap, _depth + 1) for v in value) + "]"
        return f"[{len(value)} items]"
    if isinstance(value, dict):
        if len(value) <= 2:
            inner = ", ".join(f"{k}: {format_value(v, heap, _depth + 1)}" for k, v in value.items())
            return "{" + inner + "}"
        return "{...}"
    return str(value)


def format_console_arg(value: Any, heap: Optional[HeapLookup] = None) -> str:
    # top-level strings print raw, like a real console
    if isinstance(value, str):
        return value
    return format_value(value, heap)


def _loose_equal(left: Any, right: Any) -> bool:
    if (left is UNDEFINED or left is None) and (right is UNDEFINED or right is None):
        return True
    if isinstance(left, (int, float, bool)) and isinstance(right, str):
        return to_number(left) == to_number(right)
    if isinstance(left, str) and isinstance(right, (int, float, bool)):
        return to_number(left) == to_number(right)
    return _strict_equal(left, right)


def _strict_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _divide(left: float, right: float) -> float:
    if right == 0:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.inf if left > 0 else -math.inf
    return left / right


def _modulo(left: float, right: float) -> float:
    if right == 0 or math.isinf(left):
        return math.nan
    return math.fmod(left, right)


_ARITHMETIC: Dict[str, Callable[[float, float], float]] = {
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _divide,
    "%": _modulo,
}

_RELATIONAL: Dict[str, Callable[[Any, Any], bool]] = {
    "<": lambda a, b: a < b,
    ">": lambda a, b: a > b,
    "<=": lambda a, b: a <= b,
    ">=": lambda a, b: a >= b,
}


def binary_op(op: str, left: Any, right: Any, heap: Optional[HeapLookup] = None) -> Any:
    """Apply a binary operator to two already-resolved values.

    Logical operators are short-circuited by the caller; here they only pick
    the operand that a real engine would return.
    """
    if op == "+":
        if isinstance(left, str) or isinstance(right, str) or isinstance(left, HeapRef) or isinstance(right, HeapRef):
            return to_display_string(left, heap) + to_display_string(right, heap)
        return _normalize_number(to_number(left) + to_number(right))
    if op in _ARITHMETIC:
        a, b = to_number(left), to_number(right)
        if math.isnan(a) or math.isnan(b):
            return math.nan
        return _normalize_number(_ARITHMETIC[op](a, b))
    if op in _RELATIONAL:
        if isinstance(left, str) and isinstance(right, str):
            return _RELATIONAL[op](left, right)
        a, b = to_number(left), to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
        return _RELATIONAL[op](a, b)
    if op == "===":
        return _strict_equal(left, right)
    if op == "!==":
        return not _strict_equal(left, right)
    if op == "==":
        return _loose_equal(left, right)
    if op == "!=":
        return not _loose_equal(left, right)
    if op == "&&":
        return right if truthy(left) else left
    if op == "||":
        return left if truthy(left) else right
    raise ValueError(f"unsupported operator {op!r}")


def heap_refs_in(value: Any) -> List[str]:
    """Collect heap identities referenced directly by a composite payload."""
    if isinstance(value, HeapRef):
        return [value.id]
    found: List[str] = []
    items = value.values() if isinstance(value, dict) else value if isinstance(value, list) else []
    for item in items:
        if isinstance(item, HeapRef) and item.id not in found:
            found.append(item.id)
    return found
