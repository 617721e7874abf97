from __future__ import annotations

from pathlib import Path
import textwrap

import pytest

from napper.errors import ScriptError
from napper.scripts import ScriptOutcome, ScriptRunner


def _script(directory: Path, name: str, body: str) -> Path:
    path = directory / name
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


def test_python_script_outputs_and_exports(tmp_path: Path) -> None:
    script = _script(
        tmp_path,
        "setup.py",
        """
        print("preparing data")
        print("::set token=abc=123")
        print("::set  =ignored")
        """,
    )

    outcome = ScriptRunner().run(script)

    assert outcome.passed
    assert outcome.error_message is None
    assert outcome.exported_variables() == {"token": "abc=123"}
    assert outcome.log_lines() == ["preparing data"]


def test_script_runs_in_its_directory_with_extra_env(tmp_path: Path) -> None:
    script = _script(
        tmp_path,
        "where.py",
        """
        import os
        print(os.getcwd())
        print(os.environ["NAP_RESPONSE_STATUS"])
        """,
    )

    outcome = ScriptRunner().run(script, {"NAP_RESPONSE_STATUS": "204"})

    assert Path(outcome.stdout_lines[0]).resolve() == tmp_path.resolve()
    assert outcome.stdout_lines[1] == "204"


def test_failure_prefers_stderr(tmp_path: Path) -> None:
    script = _script(
        tmp_path,
        "broken.py",
        """
        import sys
        sys.stderr.write("database unreachable\\n")
        sys.exit(1)
        """,
    )

    outcome = ScriptRunner().run(script)

    assert not outcome.passed
    assert outcome.error_message == "database unreachable"


def test_failure_without_stderr_reports_exit_code() -> None:
    outcome = ScriptOutcome(exit_code=3)

    assert outcome.error_message == "Script exited with code 3"


def test_unknown_suffix_and_missing_file_raise(tmp_path: Path) -> None:
    runner = ScriptRunner()
    ruby = _script(tmp_path, "setup.rb", "puts 'hi'\n")

    with pytest.raises(ScriptError, match="No interpreter"):
        runner.run(ruby)
    with pytest.raises(ScriptError, match="not found"):
        runner.run(tmp_path / "absent.py")


def test_interpreter_that_cannot_start_raises(tmp_path: Path) -> None:
    script = _script(tmp_path, "setup.py", "print('hi')\n")
    runner = ScriptRunner({".py": [str(tmp_path / "no-such-interpreter")]})

    with pytest.raises(ScriptError, match="failed to start"):
        runner.run(script)
