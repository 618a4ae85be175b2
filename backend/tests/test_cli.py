"""Tests for the command line front-end."""

import json

from backend.jsviz.cli import main

SCENARIO = (
    'console.log("Start");\n'
    'setTimeout(() => console.log("Timeout"), 1000);\n'
    'Promise.resolve().then(() => console.log("Promise"));\n'
    'console.log("End");\n'
)


def test_run_prints_console_in_event_loop_order(tmp_path, capsys):
    src = tmp_path / "order.js"
    src.write_text(SCENARIO)
    assert main(["run", str(src), "--quiet-info"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out == ["Start", "End", "Promise", "Timeout"]


def test_run_json_snapshot_and_trace(tmp_path, capsys):
    src = tmp_path / "heap.js"
    src.write_text("const a = [1, 2];\nconsole.log(a);\n")
    assert main(["run", str(src), "--json", "--trace", "--quiet-info"]) == 0
    captured = capsys.readouterr()
    lines = captured.out.splitlines()
    assert lines[0] == "[1, 2]"
    snapshot = json.loads("\n".join(lines[1:]))
    assert snapshot["heap"]["ref_1"]["kind"] == "array"
    assert "# heap allocate" in captured.err


def test_run_exit_code_on_error(tmp_path, capsys):
    src = tmp_path / "bad.js"
    src.write_text("missing();\n")
    assert main(["run", str(src)]) == 1
    assert "[error] ReferenceError: missing is not defined" in capsys.readouterr().out


def test_translate_prints_instructions(tmp_path, capsys):
    src = tmp_path / "t.js"
    src.write_text("var x = 1;\nwhile (x) {}\n")
    assert main(["translate", str(src)]) == 0
    data = json.loads(capsys.readouterr().out)
    assert [i["kind"] for i in data["instructions"]] == ["hoistingPhase", "hoistedVar", "variableDeclaration"]
    assert data["diagnostics"][0]["line"] == 2


def test_translate_error_exit_code(tmp_path, capsys):
    src = tmp_path / "t.js"
    src.write_text("let s = 'open;\n")
    assert main(["translate", str(src)]) == 1
    assert "TranslationError" in capsys.readouterr().err
