"""Unit tests for the source-to-instruction translator."""

import pytest

from backend.jsviz.instructions import (
    ArrayLiteral,
    CallExpression,
    ConsoleCall,
    FunctionDeclaration,
    FunctionLiteral,
    HoistedVar,
    HoistingMarker,
    NewObject,
    ObjectLiteral,
    PromiseThen,
    Return,
    TimerRegistration,
    TypeofExpression,
    VariableDeclaration,
    to_dict,
)
from backend.jsviz.translator import (
    TranslationError,
    translate,
    translate_body,
    translate_with_diagnostics,
)

HOISTING = (
    'console.log(x);\n'
    'console.log(typeof greet);\n'
    'var x = 5;\n'
    'function greet() {\n'
    '  return "Hello";\n'
    '}\n'
)


def test_hoisting_marker_and_lifted_block_lead_the_sequence():
    out = translate(HOISTING)
    assert isinstance(out[0], HoistingMarker)
    assert out[0].functions == ("greet",)
    assert out[0].variables == ("x",)
    assert isinstance(out[1], FunctionDeclaration) and out[1].hoisted
    assert isinstance(out[2], HoistedVar) and out[2].name == "x"
    assert [i.kind for i in out[3:]] == ["console", "console", "variableDeclaration"]
    # the initializer stays where it was written
    assert out[5].line == 3


def test_no_marker_without_hoisted_names():
    out = translate('let a = 1;\nconsole.log(a);')
    assert not any(isinstance(i, HoistingMarker) for i in out)


def test_typeof_argument():
    out = translate(HOISTING)
    call = out[4]
    assert isinstance(call, ConsoleCall)
    assert isinstance(call.args[0], TypeofExpression)


def test_several_statements_on_one_line():
    src = (
        'console.log("Start"); setTimeout(()=>console.log("Timeout"),1000); '
        'Promise.resolve().then(()=>console.log("Promise")); console.log("End");'
    )
    out = translate(src)
    assert [i.kind for i in out] == ["console", "setTimeout", "promise", "console"]
    timer = out[1]
    assert isinstance(timer, TimerRegistration)
    assert timer.delay == 1000
    assert timer.concise
    assert timer.callback == 'console.log("Timeout")'
    assert isinstance(out[2], PromiseThen)


def test_timer_with_named_callback_and_default_delay():
    out = translate('function tick() {\n  console.log("tick");\n}\nsetTimeout(tick);')
    timer = out[-1]
    assert isinstance(timer, TimerRegistration)
    assert timer.callback_name == "tick"
    assert timer.delay == 0


def test_multiline_function_keeps_line_range_and_body():
    src = 'let a = 1;\nfunction add(x, y) {\n  let s = x + y;\n  return s;\n}\n'
    decl = next(i for i in translate(src) if isinstance(i, FunctionDeclaration) and i.name == "add")
    assert decl.params == ("x", "y")
    assert (decl.line, decl.end_line) == (2, 5)
    body = translate_body(decl.body, decl.body_offset)
    assert [i.kind for i in body] == ["variableDeclaration", "return"]
    # body instructions carry absolute source lines
    assert [i.line for i in body] == [3, 4]


def test_translate_body_is_cached():
    body = '\n  console.log("cached");\n'
    assert translate_body(body, 3) is translate_body(body, 3)


def test_concise_arrow_body_becomes_return():
    body = translate_body("x * 2", 0, True)
    assert len(body) == 1
    assert isinstance(body[0], Return)


def test_declarations_and_composites():
    src = (
        'const add = (a, b) => a + b;\n'
        'const person = { name: "Ann", tags: ["a", "b"] };\n'
        'let d = new Date();\n'
        'let u;\n'
    )
    add, person, d, u = translate(src)
    assert isinstance(add.value, FunctionLiteral)
    assert add.value.params == ("a", "b") and add.value.arrow and add.value.concise
    assert isinstance(person.value, ObjectLiteral)
    tags = dict(person.value.entries)["tags"]
    assert isinstance(tags, ArrayLiteral) and len(tags.elements) == 2
    assert isinstance(d, NewObject) and d.constructor == "Date"
    assert isinstance(u, VariableDeclaration) and u.value.type == "undefined"


def test_call_with_nested_arguments():
    out = translate('log(add(1, [2, 3]), { a: (4) });')
    call = out[0]
    assert call.kind == "functionCall"
    assert len(call.args) == 2
    assert isinstance(call.args[0], CallExpression)


def test_unrecognized_statement_is_skipped_with_diagnostic():
    src = 'if (ready) {\n  go();\n}\nconsole.log("after");'
    result = translate_with_diagnostics(src)
    assert [i.kind for i in result.instructions] == ["console"]
    assert len(result.diagnostics) == 1
    assert result.diagnostics[0].line == 1
    # the plain contract stays silent and returns the same sequence
    assert translate(src) == result.instructions


def test_if_else_chain_is_skipped_as_one_statement():
    src = 'if (a) {\n  x();\n} else {\n  y();\n}\nconsole.log(1);'
    result = translate_with_diagnostics(src)
    assert [i.kind for i in result.instructions] == ["console"]
    assert len(result.diagnostics) == 1


def test_comments_are_ignored():
    out = translate('// heading\nconsole.log(1); /* inline */ console.log(2);')
    assert len(out) == 2


def test_unterminated_string_raises():
    with pytest.raises(TranslationError) as exc:
        translate('console.log("abc);')
    assert exc.value.line == 1


def test_unclosed_function_body_raises():
    with pytest.raises(TranslationError) as exc:
        translate('function f() {\n  console.log(1);\n')
    assert "Unclosed" in str(exc.value)


def test_to_dict_is_plain_data():
    data = to_dict(translate('var a = { k: [1] };')[-1])
    assert data["kind"] == "variableDeclaration"
    assert data["value"]["kind"] == "object"
    assert data["value"]["entries"]["k"]["kind"] == "array"
