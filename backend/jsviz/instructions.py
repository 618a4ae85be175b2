"""Instruction and value-expression variants produced by the translator.

Every instruction is a frozen dataclass with a string `kind` tag and the
1-based source `line` it came from (0 for synthetic instructions such as the
hoisting marker). Value expressions form a second, smaller variant set that
instructions embed for initializers and call arguments.

`to_dict` turns either variant into plain JSON-friendly data for the HTTP
and command line front-ends.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union


# --- Value expressions ----------------------------------------------------

@dataclass(frozen=True)
class Literal:
    type: str  # number | string | boolean | null | undefined
    value: Any
    kind: str = field(default="literal", init=False)


@dataclass(frozen=True)
class ArrayLiteral:
    elements: Tuple["Expression", ...]
    kind: str = field(default="array", init=False)


@dataclass(frozen=True)
class ObjectLiteral:
    entries: Tuple[Tuple[str, "Expression"], ...]
    kind: str = field(default="object", init=False)


@dataclass(frozen=True)
class FunctionLiteral:
    """Function or arrow literal; `concise` marks an arrow without braces."""

    params: Tuple[str, ...]
    body: str
    arrow: bool = False
    name: str = ""
    body_offset: int = 0
    concise: bool = False
    kind: str = field(default="function", init=False)


@dataclass(frozen=True)
class CallExpression:
    """Call used as a value. `target` is set for `obj.method(...)` calls."""

    name: str
    args: Tuple["Expression", ...]
    target: Optional["Expression"] = None
    kind: str = field(default="call", init=False)


@dataclass(frozen=True)
class Reference:
    name: str
    kind: str = field(default="reference", init=False)


@dataclass(frozen=True)
class PropertyAccess:
    """Dotted access such as `person.name`; `text` keeps the source form."""

    target: "Expression"
    name: str
    text: str
    kind: str = field(default="propertyAccess", init=False)


@dataclass(frozen=True)
class TypeofExpression:
    operand: "Expression"
    kind: str = field(default="typeof", init=False)


@dataclass(frozen=True)
class UnaryExpression:
    op: str
    operand: "Expression"
    kind: str = field(default="unary", init=False)


@dataclass(frozen=True)
class BinaryExpression:
    op: str
    left: "Expression"
    right: "Expression"
    kind: str = field(default="binary", init=False)


Expression = Union[
    Literal,
    ArrayLiteral,
    ObjectLiteral,
    FunctionLiteral,
    CallExpression,
    Reference,
    PropertyAccess,
    TypeofExpression,
    UnaryExpression,
    BinaryExpression,
]

UNDEFINED_LITERAL = Literal("undefined", None)


# --- Instructions ---------------------------------------------------------

@dataclass(frozen=True)
class FunctionDeclaration:
    name: str
    params: Tuple[str, ...]
    body: str
    line: int
    end_line: int
    # line number the body text starts counting from
    body_offset: int = 0
    hoisted: bool = False
    kind: str = field(default="functionDeclaration", init=False)


@dataclass(frozen=True)
class HoistedVar:
    name: str
    line: int
    kind: str = field(default="hoistedVar", init=False)


@dataclass(frozen=True)
class VariableDeclaration:
    declaration: str  # var | let | const
    name: str
    value: Expression
    line: int
    kind: str = field(default="variableDeclaration", init=False)


@dataclass(frozen=True)
class Assignment:
    name: str
    value: Expression
    line: int
    kind: str = field(default="assignment", init=False)


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: Tuple[Expression, ...]
    line: int
    kind: str = field(default="functionCall", init=False)


@dataclass(frozen=True)
class MethodCall:
    target: str
    method: str
    args: Tuple[Expression, ...]
    line: int
    kind: str = field(default="methodCall", init=False)


@dataclass(frozen=True)
class ConsoleCall:
    method: str  # log | warn | error | info
    args: Tuple[Expression, ...]
    line: int
    kind: str = field(default="console", init=False)


@dataclass(frozen=True)
class TimerRegistration:
    callback: str
    delay: int
    line: int
    callback_name: str = ""
    body_offset: int = 0
    concise: bool = False
    kind: str = field(default="setTimeout", init=False)


@dataclass(frozen=True)
class PromiseThen:
    """`Promise.resolve(value).then(callback)`; the promise is already settled."""

    callback: str
    line: int
    callback_name: str = ""
    body_offset: int = 0
    concise: bool = False
    params: Tuple[str, ...] = ()
    value: Expression = UNDEFINED_LITERAL
    kind: str = field(default="promise", init=False)


@dataclass(frozen=True)
class Return:
    value: Expression
    line: int
    kind: str = field(default="return", init=False)


@dataclass(frozen=True)
class NewObject:
    declaration: str
    name: str
    constructor: str
    args: Tuple[Expression, ...]
    line: int
    kind: str = field(default="newObject", init=False)


@dataclass(frozen=True)
class HoistingMarker:
    functions: Tuple[str, ...]
    variables: Tuple[str, ...]
    line: int = 0
    kind: str = field(default="hoistingPhase", init=False)


Instruction = Union[
    FunctionDeclaration,
    HoistedVar,
    VariableDeclaration,
    Assignment,
    FunctionCall,
    MethodCall,
    ConsoleCall,
    TimerRegistration,
    PromiseThen,
    Return,
    NewObject,
    HoistingMarker,
]


def to_dict(node: Any) -> Any:
    """Convert an instruction or expression tree into plain data."""
    if dataclasses.is_dataclass(node) and not isinstance(node, type):
        out: Dict[str, Any] = {"kind": node.kind}
        for f in dataclasses.fields(node):
            if f.name == "kind":
                continue
            out[f.name] = to_dict(getattr(node, f.name))
        return out
    if isinstance(node, tuple):
        # object entries are (key, expression) pairs
        if node and all(isinstance(e, tuple) and len(e) == 2 and isinstance(e[0], str) for e in node):
            return {k: to_dict(v) for k, v in node}
        return [to_dict(n) for n in node]
    return node
