"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import json
import os
import re
import subprocess
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


def run_cli_command(args: list[str], db_path: Path | None = None, timeout: int = 60) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        args: Arguments after 'python -m src.cli.main'
        db_path: SQLite file backing the store (isolates each test)
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    env = dict(os.environ)
    env["LEARNLOOP_LOG_FILE"] = ""
    env["COLUMNS"] = "200"
    env["PYTHONIOENCODING"] = "utf-8"
    env.pop("LEARNLOOP_INSIGHT_SERVICE_URL", None)
    if db_path is not None:
        env["LEARNLOOP_DATABASE_URL"] = f"sqlite:///{db_path}"

    result = subprocess.run(
        [sys.executable, "-m", "src.cli.main", *args],
        cwd=PROJECT_ROOT,
        env=env,
        capture_output=True,
        text=True,
        timeout=timeout,
    )

    return result.returncode, result.stdout, result.stderr


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "learnloop.db"


@pytest.fixture
def events_file(tmp_path):
    """Three phonics failures from an hour ago, written out of order."""
    base = datetime.now(UTC) - timedelta(hours=1)
    lines = []
    for n in (3, 1, 2):
        lines.append(
            json.dumps(
                {
                    "id": f"smoke-{n}",
                    "user_id": "learner-1",
                    "timestamp": (base + timedelta(minutes=n)).isoformat(),
                    "tool_name": "phonics",
                    "event_kind": "error",
                    "performance": {"attempts": 2},
                }
            )
        )
    lines.append("{not json")
    path = tmp_path / "events.jsonl"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        """Main help should display without errors."""
        code, stdout, stderr = run_cli_command(["--help"])

        assert code == 0, f"Help failed: {stderr}"
        assert "learnloop" in stdout.lower()
        assert "Commands" in stdout

    @pytest.mark.parametrize("command", ["ingest", "recommend", "bundle", "outcome", "recompute"])
    def test_command_help(self, command):
        code, stdout, stderr = run_cli_command([command, "--help"])
        assert code == 0, f"{command} help failed: {stderr}"

    def test_version(self):
        code, stdout, _ = run_cli_command(["version"])
        assert code == 0
        assert "0.1.0" in stdout


class TestCLIFlow:
    """Ingest, recompute and query against a throwaway SQLite file."""

    def test_empty_store(self, db_path):
        code, stdout, stderr = run_cli_command(["users"], db_path)
        assert code == 0, stderr
        assert "No learners" in stdout

    def test_unknown_user_fails(self, db_path):
        code, stdout, _ = run_cli_command(["profile", "ghost"], db_path)
        assert code == 1
        assert "not found" in stdout

    def test_ingest_reports_bad_lines(self, db_path, events_file):
        code, stdout, stderr = run_cli_command(["ingest", str(events_file)], db_path)

        assert code == 0, stderr
        assert "Applied" in stdout
        assert "line 4" in stdout

    def test_full_loop(self, db_path, events_file):
        assert run_cli_command(["ingest", str(events_file)], db_path)[0] == 0

        code, stdout, stderr = run_cli_command(["recompute", "learner-1"], db_path)
        assert code == 0, stderr
        assert "focus areas" in stdout

        code, stdout, stderr = run_cli_command(["recommend", "learner-1"], db_path)
        assert code == 0, stderr
        assert "Phonics Tile Building" in stdout
        rec_id = re.search(r"rec_[0-9a-f]{16}", stdout).group(0)

        code, stdout, stderr = run_cli_command(["bundle", "learner-1", "--minutes", "30"], db_path)
        assert code == 0, stderr
        assert "Practice Bundle" in stdout

        code, stdout, stderr = run_cli_command(
            ["outcome", rec_id, "--type", "regression", "--accuracy", "40"], db_path
        )
        assert code == 0, stderr
        assert "New adjustment" in stdout

        code, stdout, stderr = run_cli_command(["effectiveness", "learner-1"], db_path)
        assert code == 0, stderr
        assert "success_rate" in stdout

    def test_recompute_nothing_due(self, db_path):
        code, stdout, stderr = run_cli_command(["recompute"], db_path)
        assert code == 0, stderr
        assert "No learners due" in stdout
