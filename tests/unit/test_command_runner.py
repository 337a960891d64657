from __future__ import annotations

import sys
from pathlib import Path

import pytest
from ci_server.sandbox.command_runner import CommandExecutionError, format_command, run_command


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def test_zero_exit_is_success() -> None:
    result = run_command(_python("print('hello')"))

    assert result.success is True
    assert result.output == "hello\n"


def test_nonzero_exit_is_failure_not_exception() -> None:
    result = run_command(_python("import sys; print('boom'); sys.exit(3)"))

    assert result.success is False
    assert "boom" in result.output


def test_stdout_and_stderr_are_merged_in_order() -> None:
    code = (
        "import sys\n"
        "sys.stdout.write('one\\n'); sys.stdout.flush()\n"
        "sys.stderr.write('two\\n'); sys.stderr.flush()\n"
        "sys.stdout.write('three\\n'); sys.stdout.flush()\n"
    )
    result = run_command(_python(code))

    assert result.output == "one\ntwo\nthree\n"


def test_output_is_newline_terminated() -> None:
    result = run_command(_python("import sys; sys.stdout.write('no newline')"))

    assert result.output == "no newline\n"


def test_empty_output_stays_empty() -> None:
    result = run_command(_python("pass"))

    assert result.output == ""


def test_invalid_utf8_is_replaced() -> None:
    result = run_command(_python("import sys; sys.stdout.buffer.write(b'\\xff ok\\n')"))

    assert result.success is True
    assert result.output == "� ok\n"


def test_result_carries_command_line() -> None:
    argv = _python("print('x')")
    result = run_command(argv)

    assert result.command == format_command(argv)
    assert result.transcript.startswith(f"$ {result.command}\n")


def test_runs_in_given_directory(tmp_path: Path) -> None:
    result = run_command(_python("import os; print(os.getcwd())"), cwd=tmp_path)

    assert Path(result.output.strip()).resolve() == tmp_path.resolve()


def test_missing_executable_raises(tmp_path: Path) -> None:
    missing = tmp_path / "does-not-exist"

    with pytest.raises(CommandExecutionError) as excinfo:
        run_command([str(missing), "build"])

    assert str(missing) in excinfo.value.command


def test_empty_command_raises() -> None:
    with pytest.raises(CommandExecutionError):
        run_command([])


def test_format_command_quotes_arguments() -> None:
    assert format_command(["git", "commit", "-m", "two words"]) == "git commit -m 'two words'"
