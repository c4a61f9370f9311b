"""Test runner for the Obstruct language"""

import signal
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from obstruct import ObstructError, check as obstruct_check, parse as obstruct_parse
from obstruct import run as obstruct_run, tokenize as obstruct_tokenize
from obstruct.ast import to_dict

PHASE_TIMEOUT = 5
TESTS_DIR = Path(__file__).parent

TESTS = {
    "obstruct_lex": {"dir": "lexer", "run": "phase"},
    "obstruct_parse": {"dir": "parser", "run": "phase"},
    "obstruct_check": {"dir": "checker", "run": "phase"},
    "obstruct_run": {"dir": "runtime", "run": "phase"},
    "obstruct_app": {"dir": "apps", "run": "obstruct_app"},
}


# ---------------------------------------------------------------------------
# Timeout
# ---------------------------------------------------------------------------


def _timeout_handler(signum, frame):
    raise TimeoutError("phase timed out")


signal.signal(signal.SIGALRM, _timeout_handler)


# ---------------------------------------------------------------------------
# Spec file parsing
# ---------------------------------------------------------------------------


def parse_spec_file(path: Path) -> list[tuple[str, str, str]]:
    """Parse a .tests file into (name, input, expected) tuples."""
    lines = path.read_text().split("\n")
    result: list[tuple[str, str, str]] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("=== "):
            test_name = line[4:].strip()
            i += 1
            input_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                input_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            expected_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                expected_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            test_input = "\n".join(input_lines)
            expected = "\n".join(expected_lines).strip()
            result.append((test_name, test_input, expected))
        else:
            i += 1
    return result


def discover_specs(test_dir: Path) -> list[tuple[str, str, str]]:
    """Glob *.tests in test_dir, return (test_id, input, expected) tuples."""
    results = []
    for test_file in sorted(test_dir.glob("*.tests")):
        for name, input_code, expected in parse_spec_file(test_file):
            results.append((f"{test_file.stem}/{name}", input_code, expected))
    return results


def discover_obstruct_apps(test_dir: Path) -> list[Path]:
    """Find all .obs files in a directory."""
    return sorted(test_dir.glob("*.obs"))


def unescape(text: str) -> str:
    return text.replace("\\n", "\n").replace("\\t", "\t")


# ---------------------------------------------------------------------------
# Phase result + assertion checker
# ---------------------------------------------------------------------------


@dataclass
class PhaseResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    data: dict | None = None


def resolve_dotpath(obj: object, path: str) -> object:
    """Resolve a dot-separated path against a nested dict/list structure."""
    parts = path.split(".")
    current = obj
    i = 0
    while i < len(parts):
        part = parts[i]
        if part == "length":
            return len(current)
        if isinstance(current, list):
            current = current[int(part)]
            i += 1
        elif isinstance(current, dict):
            if part in current:
                current = current[part]
                i += 1
            else:
                found = False
                for j in range(i + 1, len(parts)):
                    composite = ".".join(parts[i : j + 1])
                    if composite in current:
                        current = current[composite]
                        i = j + 1
                        found = True
                        break
                if not found:
                    raise KeyError(part)
        else:
            raise KeyError(
                f"cannot traverse {type(current).__name__} with key {part!r}"
            )
    return current


def to_comparable(value: object) -> str:
    """Convert a value to its string form for comparison."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value
    return str(value)


def check_expected(expected: str, result: PhaseResult, phase: str) -> None:
    if expected == "ok":
        if result.errors:
            pytest.fail(f"Expected ok, got error: {result.errors[0]}")
        return
    if expected.startswith("error:"):
        expected_msg = expected[6:].strip()
        if not result.errors:
            pytest.fail(f"Expected error containing '{expected_msg}', got ok")
        found = any(expected_msg.lower() in e.lower() for e in result.errors)
        if not found:
            pytest.fail(
                f"Expected error containing '{expected_msg}', got: {result.errors}"
            )
        return
    # Dotpath assertions
    if result.errors:
        pytest.fail(f"{phase} failed: {result.errors[0]}")
    assert result.data is not None, f"No data returned from {phase}"
    for line in expected.split("\n"):
        line = line.strip()
        if not line:
            continue
        if "=" not in line:
            pytest.fail(f"Bad assertion (no '='): {line}")
        path, expected_val = line.split("=", 1)
        path = path.strip()
        expected_val = expected_val.strip()
        try:
            actual = resolve_dotpath(result.data, path)
        except (KeyError, IndexError, TypeError) as e:
            pytest.fail(f"Path '{path}' not found in result: {e}")
        actual_str = to_comparable(actual)
        if actual_str != expected_val:
            pytest.fail(
                f"Assertion failed: {path}\n"
                f"  expected: {expected_val!r}\n"
                f"  actual:   {actual_str!r}"
            )


def check_run_expected(expected: str, result: PhaseResult) -> None:
    """Runtime expectations: `stdout:` pieces (concatenated, with \\n escapes),
    `exit:` code (default 0) and `stderr-contains:` substrings."""
    if expected.startswith("error:"):
        check_expected(expected, result, "obstruct_run")
        return
    if result.errors:
        pytest.fail(f"static error: {result.errors[0]}")
    assert result.data is not None
    want_stdout = ""
    want_exit = 0
    for line in expected.split("\n"):
        line = line.strip()
        if line.startswith("stdout:"):
            want_stdout += unescape(line[7:].strip())
        elif line.startswith("exit:"):
            want_exit = int(line[5:].strip())
        elif line.startswith("stderr-contains:"):
            needle = line[16:].strip()
            if needle not in result.data["stderr"]:
                pytest.fail(
                    f"expected stderr to contain {needle!r}, got {result.data['stderr']!r}"
                )
        elif line:
            pytest.fail(f"Bad runtime assertion: {line}")
    assert result.data["stdout"] == want_stdout, (
        f"stdout mismatch\n  expected: {want_stdout!r}\n  actual:   {result.data['stdout']!r}"
        f"\n  stderr: {result.data['stderr']!r}"
    )
    assert result.data["exit"] == want_exit, (
        f"expected exit {want_exit}, got {result.data['exit']}"
        f"\n  stderr: {result.data['stderr']!r}"
    )


# ---------------------------------------------------------------------------
# Phase runners
# ---------------------------------------------------------------------------


def run_obstruct_lex(source: str) -> PhaseResult:
    try:
        signal.alarm(PHASE_TIMEOUT)
        tokens = obstruct_tokenize(source)
        return PhaseResult(
            data={
                "tokens": [
                    {
                        "type": t.type,
                        "value": t.value,
                        "line": t.line,
                        "col": t.col,
                        "suffix": t.suffix,
                    }
                    for t in tokens
                ]
            }
        )
    except ObstructError as e:
        return PhaseResult(errors=[str(e)])
    finally:
        signal.alarm(0)


def run_obstruct_parse(source: str) -> PhaseResult:
    try:
        signal.alarm(PHASE_TIMEOUT)
        program = obstruct_parse(source)
        data = to_dict(program)
        assert isinstance(data, dict)
        return PhaseResult(data=data)
    except ObstructError as e:
        return PhaseResult(errors=[str(e)])
    finally:
        signal.alarm(0)


def run_obstruct_check(source: str) -> PhaseResult:
    try:
        signal.alarm(PHASE_TIMEOUT)
        errors = obstruct_check(source)
        if errors:
            return PhaseResult(errors=[str(e) for e in errors])
        return PhaseResult()
    except ObstructError as e:
        return PhaseResult(errors=[str(e)])
    finally:
        signal.alarm(0)


def run_obstruct_run(source: str) -> PhaseResult:
    stdin = ""
    lines = source.split("\n")
    if lines and lines[0].startswith("stdin:"):
        stdin = unescape(lines[0][6:].strip())
        source = "\n".join(lines[1:])
    try:
        signal.alarm(PHASE_TIMEOUT)
        result = obstruct_run(source, stdin=stdin, args=["prog"])
        return PhaseResult(
            data={
                "stdout": result.stdout,
                "stderr": result.stderr,
                "exit": result.exit_code,
            }
        )
    except ObstructError as e:
        return PhaseResult(errors=[str(e)])
    finally:
        signal.alarm(0)


RUNNERS = {
    "obstruct_lex": run_obstruct_lex,
    "obstruct_parse": run_obstruct_parse,
    "obstruct_check": run_obstruct_check,
    "obstruct_run": run_obstruct_run,
}


# ---------------------------------------------------------------------------
# Parametrization
# ---------------------------------------------------------------------------


def pytest_generate_tests(metafunc):
    for name, cfg in TESTS.items():
        test_dir = TESTS_DIR / cfg["dir"]
        run = cfg["run"]
        if run == "phase":
            fixture = f"{name}_input"
            if fixture in metafunc.fixturenames:
                specs = discover_specs(test_dir)
                params = [pytest.param(inp, exp, id=tid) for tid, inp, exp in specs]
                metafunc.parametrize(f"{fixture},{name}_expected", params)
        elif run == "obstruct_app" and "obstruct_app" in metafunc.fixturenames:
            apps = discover_obstruct_apps(test_dir)
            params = [pytest.param(p, id=p.stem) for p in apps]
            metafunc.parametrize("obstruct_app", params)


# ---------------------------------------------------------------------------
# Test functions
# ---------------------------------------------------------------------------


def test_obstruct_lex(obstruct_lex_input, obstruct_lex_expected):
    check_expected(
        obstruct_lex_expected, run_obstruct_lex(obstruct_lex_input), "obstruct_lex"
    )


def test_obstruct_parse(obstruct_parse_input, obstruct_parse_expected):
    check_expected(
        obstruct_parse_expected,
        run_obstruct_parse(obstruct_parse_input),
        "obstruct_parse",
    )


def test_obstruct_check(obstruct_check_input, obstruct_check_expected):
    check_expected(
        obstruct_check_expected,
        run_obstruct_check(obstruct_check_input),
        "obstruct_check",
    )


def test_obstruct_run(obstruct_run_input, obstruct_run_expected):
    check_run_expected(obstruct_run_expected, run_obstruct_run(obstruct_run_input))


def test_obstruct_app(obstruct_app: Path):
    """Run a .obs program in-process and compare stdout with its .out file."""
    source = obstruct_app.read_text()
    stdin_path = obstruct_app.with_suffix(".in")
    stdin = stdin_path.read_text() if stdin_path.exists() else ""
    result = obstruct_run(source, stdin=stdin, args=[obstruct_app.name])
    if result.exit_code != 0:
        pytest.fail(f"Exit code {result.exit_code}:\n{result.stdout}{result.stderr}")
    expected = obstruct_app.with_suffix(".out").read_text()
    assert result.stdout == expected
