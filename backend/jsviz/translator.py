"""Source-to-instruction translator.

`translate` turns a snippet of the modeled language into the ordered
instruction sequence the step interpreter consumes. It is a pure function of
its input and fails soft: a statement that matches none of the recognized
shapes is skipped. `translate_with_diagnostics` returns the same sequence
plus one `Diagnostic` per skipped statement, and every skip is logged at
WARNING level.

The translator is split in three parts:

- a regex tokenizer (`tokenize`) that records offsets and line numbers,
- a small recursive-descent `Parser` that recognizes the fixed statement
  subset (declarations, calls, timers, promises, console, return, ...) and
  value expressions,
- the hoisting pass (`hoist`) that lifts function declarations and `var`
  placeholders to the front of the sequence behind one marker instruction.

Function bodies are kept as raw text on their instructions and parsed on
demand by `translate_body`, which caches the result so a body is parsed once
however many times it is called.

Lexical faults (illegal characters, unterminated strings, a function body
whose braces never close) raise `TranslationError`; the control boundary is
expected to report them.
"""

import bisect
import dataclasses
import functools
import logging
import re
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Sequence, Tuple

from .instructions import (
    UNDEFINED_LITERAL,
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

logger = logging.getLogger(__name__)

TOKEN_SPEC = [
    ("COMMENT", r"//[^\n]*|/\*[\s\S]*?\*/"),
    ("NUMBER", r"(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?"),
    ("TEMPLATE", r"`(?:[^`\\]|\\[\s\S])*`"),
    ("STRING", r"\"(?:[^\"\\\n]|\\.)*\"|'(?:[^'\\\n]|\\.)*'"),
    ("IDENT", r"[A-Za-z_$][A-Za-z0-9_$]*"),
    # longer operators first
    ("OP", r"=>|===|!==|==|!=|<=|>=|&&|\|\||\+\+|--|\+=|-=|\*=|/=|%=|[+\-*/%<>=!?&|^~]"),
    ("PUNC", r"[(){}\[\],;.:]"),
    ("SKIP", r"\s+"),
    ("BAD", r"[\s\S]"),
]
TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in TOKEN_SPEC))

CONSOLE_METHODS = ("log", "warn", "error", "info")
DECLARATION_KEYWORDS = ("var", "let", "const")
# statements starting with these are never calls or assignments
RESERVED = frozenset((
    "if", "else", "for", "while", "do", "switch", "case", "default", "break",
    "continue", "try", "catch", "finally", "throw", "class", "new", "typeof",
    "delete", "void", "in", "instanceof", "this", "import", "export", "yield",
    "await", "async", "function", "return", "var", "let", "const",
))
CONTROL_KEYWORDS = frozenset(("if", "else", "for", "while", "do", "switch", "try"))
CONTINUATION_KEYWORDS = frozenset(("else", "catch", "finally", "while"))
COMPOUND_ASSIGNMENT = {"+=": "+", "-=": "-", "*=": "*", "/=": "/", "%=": "%"}

_BINARY_LEVELS = (
    ("||",),
    ("&&",),
    ("===", "!==", "==", "!="),
    ("<", ">", "<=", ">="),
    ("+", "-"),
    ("*", "/", "%"),
)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "b": "\b", "f": "\f", "v": "\v"}


class TranslationError(Exception):
    """Raised when a snippet is malformed beyond statement-level recovery.

    Attributes:
        line: 1-based source line of the offending token, when known
        column: 1-based column of the offending token, when known
        text: the offending source text
    """

    def __init__(self, message: str, *, line: Optional[int] = None, column: Optional[int] = None, text: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column
        self.text = text

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"line {self.line}: {self.message}"


class Token(NamedTuple):
    type: str
    value: str
    start: int
    end: int
    line: int
    column: int


@dataclass(frozen=True)
class Diagnostic:
    """A statement the translator skipped."""

    line: int
    message: str
    text: str


@dataclass
class Translation:
    instructions: List[Instruction]
    diagnostics: List[Diagnostic] = field(default_factory=list)


class _Unrecognized(Exception):
    """Internal signal: the current statement matches no recognizer."""


def tokenize(source: str, line_offset: int = 0) -> List[Token]:
    """Split `source` into tokens, dropping whitespace and comments."""
    line_starts = [0] + [m.end() for m in re.finditer(r"\n", source)]
    tokens: List[Token] = []
    pos = 0
    while pos < len(source):
        # BAD matches any single character, so there is always a match
        m = TOKEN_RE.match(source, pos)
        kind = m.lastgroup
        value = m.group(0)
        start, pos = m.start(), m.end()
        if kind in ("SKIP", "COMMENT"):
            continue
        row = bisect.bisect_right(line_starts, start) - 1
        line = row + 1 + line_offset
        column = start - line_starts[row] + 1
        if kind == "BAD":
            if value in "\"'`":
                raise TranslationError("Unterminated string literal", line=line, column=column, text=value)
            raise TranslationError(f"Illegal character {value!r}", line=line, column=column, text=value)
        tokens.append(Token(kind, value, start, pos, line, column))
    return tokens


def _unescape(text: str) -> str:
    return re.sub(r"\\([\s\S])", lambda m: _ESCAPES.get(m.group(1), m.group(1)), text)


class Parser:
    """Recursive-descent parser over the token stream of one snippet or body."""

    def __init__(self, source: str, line_offset: int = 0):
        self.source = source
        self.line_offset = line_offset
        self.tokens = tokenize(source, line_offset)
        self.pos = 0
        self.diagnostics: List[Diagnostic] = []

    # --- token helpers -------------------------------------------------
    def _peek(self, k: int = 0) -> Optional[Token]:
        i = self.pos + k
        return self.tokens[i] if i < len(self.tokens) else None

    def _at(self, value: str, k: int = 0) -> bool:
        tok = self._peek(k)
        return tok is not None and tok.type in ("IDENT", "OP", "PUNC") and tok.value == value

    def _peek_type(self, k: int = 0) -> Optional[str]:
        tok = self._peek(k)
        return tok.type if tok is not None else None

    def _advance(self) -> Token:
        tok = self._peek()
        if tok is None:
            raise _Unrecognized("unexpected end of input")
        self.pos += 1
        return tok

    def _expect(self, value: str) -> Token:
        if not self._at(value):
            raise _Unrecognized(f"expected {value!r}")
        return self._advance()

    def _ident(self) -> str:
        tok = self._peek()
        if tok is None or tok.type != "IDENT":
            raise _Unrecognized("expected identifier")
        self.pos += 1
        return tok.value

    def _text_from(self, start: int) -> str:
        return self.source[self.tokens[start].start:self.tokens[self.pos - 1].end]

    # --- statements ----------------------------------------------------
    def parse_statements(self) -> List[Instruction]:
        out: List[Instruction] = []
        while self._peek() is not None:
            start = self.pos
            try:
                out.extend(self._statement())
            except _Unrecognized as e:
                self.pos = start
                self._skip_statement()
                self._record_skip(start, str(e))
        return out

    def _record_skip(self, start: int, reason: str) -> None:
        text = self._text_from(start).strip().splitlines()
        first = text[0] if text else ""
        self.diagnostics.append(
            Diagnostic(line=self.tokens[start].line, message=f"Unrecognized statement skipped ({reason})", text=first)
        )

    def _skip_statement(self) -> None:
        """Consume one unrecognized statement, keeping bracket balance."""
        first = self._advance()
        control = first.type == "IDENT" and first.value in CONTROL_KEYWORDS
        depth = 0
        prev = first
        if first.type == "PUNC":
            if first.value == ";":
                return
            if first.value in "([{":
                depth = 1
            elif first.value in ")]}":
                # a stray closer is a statement of its own
                return
        while self._peek() is not None:
            tok = self._peek()
            if depth == 0 and tok.line > prev.line and not control:
                return
            self.pos += 1
            if tok.type == "PUNC":
                if tok.value in "([{":
                    depth += 1
                elif tok.value in ")]}":
                    depth = max(0, depth - 1)
                    if depth == 0 and tok.value == ")":
                        # end of an `if (...)`-style header
                        control = False
                    if depth == 0 and tok.value == "}":
                        nxt = self._peek()
                        if nxt is not None and nxt.type == "IDENT" and nxt.value in CONTINUATION_KEYWORDS:
                            prev = tok
                            control = True
                            continue
                        return
                elif tok.value == ";" and depth == 0:
                    return
            prev = tok

    def _end_statement(self) -> None:
        tok = self._peek()
        if tok is None:
            return
        if tok.type == "PUNC" and tok.value == ";":
            self.pos += 1
            return
        if tok.line > self.tokens[self.pos - 1].line:
            return
        raise _Unrecognized(f"unexpected {tok.value!r} after statement")

    def _statement(self) -> List[Instruction]:
        tok = self._peek()
        if tok.type == "PUNC" and tok.value == ";":
            self.pos += 1
            return []
        if tok.type != "IDENT":
            raise _Unrecognized(f"unexpected {tok.value!r}")
        word = tok.value
        if word == "function" and self._peek_type(1) == "IDENT":
            return [self._function_declaration()]
        if word in DECLARATION_KEYWORDS:
            out = self._declaration()
        elif word == "return":
            out = [self._return()]
        elif word in RESERVED:
            raise _Unrecognized(f"unsupported statement {word!r}")
        elif word == "setTimeout" and self._at("(", 1):
            out = [self._timer()]
        elif word == "Promise" and self._at(".", 1):
            out = [self._promise()]
        elif word == "console" and self._at(".", 1):
            out = [self._console()]
        elif self._at("(", 1):
            out = [self._call()]
        elif self._at(".", 1) and self._peek_type(2) == "IDENT" and self._at("(", 3):
            out = [self._method_call()]
        elif self._at("=", 1) or self._peek_type(1) == "OP" and self._peek(1).value in COMPOUND_ASSIGNMENT:
            out = [self._assignment()]
        elif self._at("++", 1) or self._at("--", 1):
            out = [self._increment()]
        else:
            raise _Unrecognized(f"unsupported statement starting with {word!r}")
        self._end_statement()
        return out

    def _function_declaration(self) -> FunctionDeclaration:
        start = self._advance()
        name = self._ident()
        params = self._params()
        body, offset, close = self._block()
        return FunctionDeclaration(
            name=name,
            params=params,
            body=body,
            line=start.line,
            end_line=close.line,
            body_offset=offset,
        )

    def _declaration(self) -> List[Instruction]:
        keyword = self._advance()
        declaration = keyword.value
        out: List[Instruction] = []
        while True:
            name = self._ident()
            if not self._at("="):
                out.append(VariableDeclaration(declaration, name, UNDEFINED_LITERAL, keyword.line))
            elif self._at("new", 1) and self._peek_type(2) == "IDENT" and self._at("(", 3):
                self.pos += 2
                constructor = self._ident()
                args = self._arguments()
                out.append(NewObject(declaration, name, constructor, args, keyword.line))
            else:
                self.pos += 1
                out.append(VariableDeclaration(declaration, name, self._expression(), keyword.line))
            if not self._at(","):
                return out
            self.pos += 1

    def _return(self) -> Return:
        tok = self._advance()
        nxt = self._peek()
        if nxt is None or nxt.line > tok.line or (nxt.type == "PUNC" and nxt.value in (";", "}")):
            return Return(UNDEFINED_LITERAL, tok.line)
        return Return(self._expression(), tok.line)

    def _callback(self) -> Tuple[str, str, int, bool, Tuple[str, ...]]:
        """Parse a callback argument.

        Returns (name, body_text, body_offset, concise, params). A named
        callback becomes the body text `name()` so it re-translates like any
        other body.
        """
        tok = self._peek()
        if tok is not None and tok.type == "IDENT" and (self._at(",", 1) or self._at(")", 1)) and tok.value not in RESERVED:
            self.pos += 1
            return tok.value, f"{tok.value}()", tok.line - 1, False, ()
        expr = self._expression()
        if not isinstance(expr, FunctionLiteral):
            raise _Unrecognized("callback must be a function")
        return expr.name, expr.body, expr.body_offset, expr.concise, expr.params

    def _timer(self) -> TimerRegistration:
        tok = self._advance()
        self._expect("(")
        name, body, offset, concise, _ = self._callback()
        delay = 0
        if self._at(","):
            self.pos += 1
            delay_expr = self._expression()
            if isinstance(delay_expr, Literal) and delay_expr.type == "number":
                delay = max(0, int(delay_expr.value))
            # extra arguments are accepted and ignored
            while self._at(","):
                self.pos += 1
                self._expression()
        self._expect(")")
        return TimerRegistration(
            callback=body,
            delay=delay,
            line=tok.line,
            callback_name=name,
            body_offset=offset,
            concise=concise,
        )

    def _promise(self) -> PromiseThen:
        tok = self._advance()
        self._expect(".")
        if self._ident() != "resolve":
            raise _Unrecognized("only Promise.resolve() is supported")
        args = self._arguments()
        self._expect(".")
        if self._ident() != "then":
            raise _Unrecognized("expected .then()")
        self._expect("(")
        name, body, offset, concise, params = self._callback()
        self._expect(")")
        return PromiseThen(
            callback=body,
            line=tok.line,
            callback_name=name,
            body_offset=offset,
            concise=concise,
            params=params,
            value=args[0] if args else UNDEFINED_LITERAL,
        )

    def _console(self) -> Instruction:
        tok = self._advance()
        self._expect(".")
        method = self._ident()
        args = self._arguments()
        if method in CONSOLE_METHODS:
            return ConsoleCall(method, args, tok.line)
        return MethodCall("console", method, args, tok.line)

    def _call(self) -> FunctionCall:
        tok = self._advance()
        return FunctionCall(tok.value, self._arguments(), tok.line)

    def _method_call(self) -> MethodCall:
        tok = self._advance()
        self._expect(".")
        method = self._ident()
        return MethodCall(tok.value, method, self._arguments(), tok.line)

    def _assignment(self) -> Assignment:
        tok = self._advance()
        op = self._advance().value
        value = self._expression()
        if op in COMPOUND_ASSIGNMENT:
            value = BinaryExpression(COMPOUND_ASSIGNMENT[op], Reference(tok.value), value)
        return Assignment(tok.value, value, tok.line)

    def _increment(self) -> Assignment:
        tok = self._advance()
        op = "+" if self._advance().value == "++" else "-"
        return Assignment(tok.value, BinaryExpression(op, Reference(tok.value), Literal("number", 1)), tok.line)

    # --- shared pieces -------------------------------------------------
    def _params(self) -> Tuple[str, ...]:
        self._expect("(")
        params: List[str] = []
        while not self._at(")"):
            params.append(self._ident())
            if not self._at(","):
                break
            self.pos += 1
        self._expect(")")
        return tuple(params)

    def _block(self) -> Tuple[str, int, Token]:
        """Capture the raw text between a `{` and its matching `}`.

        Returns (body_text, body_offset, closing_token); `body_offset` is the
        number of source lines preceding the first body line.
        """
        open_tok = self._expect("{")
        depth = 1
        i = self.pos
        while i < len(self.tokens):
            tok = self.tokens[i]
            if tok.type == "PUNC" and tok.value == "{":
                depth += 1
            elif tok.type == "PUNC" and tok.value == "}":
                depth -= 1
                if depth == 0:
                    break
            i += 1
        else:
            raise TranslationError("Unclosed function body", line=open_tok.line, column=open_tok.column, text="{")
        close_tok = self.tokens[i]
        self.pos = i + 1
        return self.source[open_tok.end:close_tok.start], open_tok.line - 1, close_tok

    def _arguments(self) -> Tuple[Expression, ...]:
        self._expect("(")
        args: List[Expression] = []
        while not self._at(")"):
            args.append(self._expression())
            if not self._at(","):
                break
            self.pos += 1
        self._expect(")")
        return tuple(args)

    # --- expressions ---------------------------------------------------
    def _expression(self) -> Expression:
        return self._binary(0)

    def _binary(self, level: int) -> Expression:
        if level == len(_BINARY_LEVELS):
            return self._unary()
        left = self._binary(level + 1)
        while True:
            tok = self._peek()
            if tok is None or tok.type != "OP" or tok.value not in _BINARY_LEVELS[level]:
                return left
            self.pos += 1
            left = BinaryExpression(tok.value, left, self._binary(level + 1))

    def _unary(self) -> Expression:
        if self._at("typeof"):
            self.pos += 1
            return TypeofExpression(self._unary())
        tok = self._peek()
        if tok is not None and tok.type == "OP" and tok.value in ("!", "-", "+"):
            self.pos += 1
            return UnaryExpression(tok.value, self._unary())
        return self._postfix()

    def _postfix(self) -> Expression:
        start = self.pos
        expr = self._primary()
        while True:
            if self._at("."):
                self.pos += 1
                name = self._ident()
                expr = PropertyAccess(expr, name, self._text_from(start))
            elif self._at("("):
                args = self._arguments()
                if isinstance(expr, Reference):
                    expr = CallExpression(expr.name, args)
                elif isinstance(expr, PropertyAccess):
                    expr = CallExpression(expr.name, args, target=expr.target)
                else:
                    raise _Unrecognized("unsupported call target")
            elif self._at("["):
                self.pos += 1
                key = self._expression()
                self._expect("]")
                name = ""
                if isinstance(key, Literal) and key.type in ("number", "string"):
                    name = str(key.value)
                expr = PropertyAccess(expr, name, self._text_from(start))
            else:
                return expr

    def _primary(self) -> Expression:
        tok = self._peek()
        if tok is None:
            raise _Unrecognized("unexpected end of input")
        if tok.type == "NUMBER":
            self.pos += 1
            if any(c in tok.value for c in ".eE"):
                return Literal("number", float(tok.value))
            return Literal("number", int(tok.value))
        if tok.type == "STRING":
            self.pos += 1
            return Literal("string", _unescape(tok.value[1:-1]))
        if tok.type == "TEMPLATE":
            self.pos += 1
            return self._template(tok)
        if tok.type == "IDENT":
            return self._word(tok)
        if tok.value == "[":
            return self._array()
        if tok.value == "{":
            return self._object()
        if tok.value == "(":
            if self._is_arrow_params():
                return self._arrow(self._params())
            self.pos += 1
            expr = self._expression()
            self._expect(")")
            return expr
        raise _Unrecognized(f"unexpected {tok.value!r}")

    def _word(self, tok: Token) -> Expression:
        word = tok.value
        if word in ("true", "false"):
            self.pos += 1
            return Literal("boolean", word == "true")
        if word == "null":
            self.pos += 1
            return Literal("null", None)
        if word == "undefined":
            self.pos += 1
            return UNDEFINED_LITERAL
        if word == "function":
            return self._function_literal()
        if word == "new":
            # any constructed value is an empty object
            self.pos += 1
            self._ident()
            if self._at("("):
                self._arguments()
            return ObjectLiteral(())
        if self._at("=>", 1):
            self.pos += 1
            return self._arrow((word,))
        if word in RESERVED and word != "this":
            raise _Unrecognized(f"unexpected keyword {word!r}")
        self.pos += 1
        return Reference(word)

    def _function_literal(self) -> FunctionLiteral:
        self._expect("function")
        name = self._ident() if self._peek_type() == "IDENT" else ""
        params = self._params()
        body, offset, _ = self._block()
        return FunctionLiteral(params, body, arrow=False, name=name, body_offset=offset)

    def _is_arrow_params(self) -> bool:
        depth = 0
        for i in range(self.pos, len(self.tokens)):
            tok = self.tokens[i]
            if tok.type != "PUNC":
                continue
            if tok.value in "([{":
                depth += 1
            elif tok.value in ")]}":
                depth -= 1
                if depth == 0:
                    nxt = self.tokens[i + 1] if i + 1 < len(self.tokens) else None
                    return nxt is not None and nxt.value == "=>"
        return False

    def _arrow(self, params: Tuple[str, ...]) -> FunctionLiteral:
        self._expect("=>")
        if self._at("{"):
            body, offset, _ = self._block()
            return FunctionLiteral(params, body, arrow=True, body_offset=offset)
        first = self._peek()
        if first is None:
            raise _Unrecognized("missing arrow body")
        start = self.pos
        self._expression()
        # concise bodies may be a single assignment: () => count = count + 1
        tok = self._peek()
        if tok is not None and tok.type == "OP" and (tok.value == "=" or tok.value in COMPOUND_ASSIGNMENT):
            self.pos += 1
            self._expression()
        return FunctionLiteral(params, self._text_from(start), arrow=True, body_offset=first.line - 1, concise=True)

    def _array(self) -> ArrayLiteral:
        self._expect("[")
        elements: List[Expression] = []
        while not self._at("]"):
            elements.append(self._expression())
            if not self._at(","):
                break
            self.pos += 1
        self._expect("]")
        return ArrayLiteral(tuple(elements))

    def _object(self) -> ObjectLiteral:
        self._expect("{")
        entries: List[Tuple[str, Expression]] = []
        while not self._at("}"):
            tok = self._advance()
            if tok.type in ("IDENT", "NUMBER"):
                key = tok.value
            elif tok.type == "STRING":
                key = _unescape(tok.value[1:-1])
            else:
                raise _Unrecognized("bad object key")
            if self._at(":"):
                self.pos += 1
                value = self._expression()
            elif tok.type == "IDENT" and (self._at(",") or self._at("}")):
                value = Reference(key)
            elif tok.type == "IDENT" and self._at("("):
                params = self._params()
                body, offset, _ = self._block()
                value = FunctionLiteral(params, body, name=key, body_offset=offset)
            else:
                raise _Unrecognized("bad object entry")
            entries.append((key, value))
            if not self._at(","):
                break
            self.pos += 1
        self._expect("}")
        return ObjectLiteral(tuple(entries))

    def _template(self, tok: Token) -> Expression:
        raw = tok.value[1:-1]
        parts: List[Expression] = []
        buf = ""
        i = 0
        while i < len(raw):
            if raw.startswith("${", i):
                depth, j = 1, i + 2
                while j < len(raw) and depth:
                    if raw[j] == "{":
                        depth += 1
                    elif raw[j] == "}":
                        depth -= 1
                    j += 1
                if depth:
                    raise TranslationError("Unterminated template expression", line=tok.line, column=tok.column, text=tok.value)
                if buf:
                    parts.append(Literal("string", buf))
                    buf = ""
                parts.append(parse_expression(raw[i + 2:j - 1], tok.line - 1))
                i = j
            elif raw[i] == "\\" and i + 1 < len(raw):
                buf += _ESCAPES.get(raw[i + 1], raw[i + 1])
                i += 2
            else:
                buf += raw[i]
                i += 1
        if buf:
            parts.append(Literal("string", buf))
        if not parts:
            return Literal("string", "")
        expr = parts[0]
        if not (isinstance(expr, Literal) and expr.type == "string"):
            # force string concatenation for templates that start with ${...}
            expr = BinaryExpression("+", Literal("string", ""), expr)
        for part in parts[1:]:
            expr = BinaryExpression("+", expr, part)
        return expr


def parse_expression(text: str, line_offset: int = 0) -> Expression:
    """Parse one standalone value expression."""
    parser = Parser(text, line_offset)
    try:
        expr = parser._expression()
    except _Unrecognized as e:
        raise TranslationError(f"Unsupported expression: {e}", line=line_offset + 1, text=text.strip()) from e
    if parser._peek() is not None:
        tok = parser._peek()
        raise TranslationError(f"Unexpected {tok.value!r} in expression", line=tok.line, column=tok.column, text=text.strip())
    return expr


def hoist(instructions: Sequence[Instruction]) -> List[Instruction]:
    """Lift function declarations and `var` placeholders to the front.

    Function declarations move entirely. Each `var` name gets one value-less
    `HoistedVar` in the lifted block while its initializing instruction stays
    where it was. A `HoistingMarker` listing the hoisted names leads the
    sequence whenever anything was hoisted.
    """
    functions: List[FunctionDeclaration] = []
    placeholders: List[HoistedVar] = []
    rest: List[Instruction] = []
    seen = set()
    for inst in instructions:
        if isinstance(inst, FunctionDeclaration):
            functions.append(dataclasses.replace(inst, hoisted=True))
            continue
        if isinstance(inst, (VariableDeclaration, NewObject)) and inst.declaration == "var" and inst.name not in seen:
            seen.add(inst.name)
            placeholders.append(HoistedVar(inst.name, inst.line))
        rest.append(inst)
    if not functions and not placeholders:
        return rest
    names = tuple(dict.fromkeys(f.name for f in functions))
    marker = HoistingMarker(functions=names, variables=tuple(p.name for p in placeholders))
    return [marker, *functions, *placeholders, *rest]


def translate_with_diagnostics(source: str) -> Translation:
    parser = Parser(source)
    instructions = hoist(parser.parse_statements())
    for diag in parser.diagnostics:
        logger.warning("line %d: %s: %s", diag.line, diag.message, diag.text)
    return Translation(instructions, parser.diagnostics)


def translate(source: str) -> List[Instruction]:
    """Translate source text into the hoisted instruction sequence."""
    return translate_with_diagnostics(source).instructions


@functools.lru_cache(maxsize=256)
def translate_body(body: str, line_offset: int = 0, concise: bool = False) -> Tuple[Instruction, ...]:
    """Translate (once) the body text of a function or callback.

    A concise arrow body (`x => x * 2`) that is not itself a statement is
    treated as `return <expression>`.
    """
    parser = Parser(body, line_offset)
    statements = parser.parse_statements()
    if concise and (parser.diagnostics or not statements):
        try:
            return (Return(parse_expression(body, line_offset), line_offset + 1),)
        except TranslationError:
            logger.warning("line %d: unsupported arrow body skipped: %s", line_offset + 1, body.strip())
            return ()
    for diag in parser.diagnostics:
        logger.warning("line %d: %s: %s", diag.line, diag.message, diag.text)
    return tuple(hoist(statements))
