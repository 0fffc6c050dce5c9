"""End-to-end tests of the rederr command.

Runs ``python -m rederr`` in a subprocess and checks its streams and exit
code.
"""

from __future__ import annotations

import os
import signal
import subprocess
import sys
import time

import pytest

from conftest import END, START, SRC_DIR, fake_cli_argv, run_rederr
from rederr.app import apply_arguments, build_parser
from rederr.config import ColorMode, Config

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX-specific tests")


# =============================================================================
# Argument parsing
# =============================================================================


class TestParser:
    """Everything after the command belongs to the child."""

    def test_command_only(self):
        args = build_parser().parse_args(["make"])
        assert args.command == "make"
        assert args.args == []

    def test_child_options_passed_through(self):
        args = build_parser().parse_args(["--combine", "cmd", "--foo", "-c", "--combine"])
        assert args.combine is True
        assert args.command == "cmd"
        assert args.args == ["--foo", "-c", "--combine"]

    def test_always_color_flag(self):
        args = build_parser().parse_args(["-c", "cmd", "-s"])
        assert args.color == "always"
        assert args.args == ["-s"]

    def test_color_choice(self):
        args = build_parser().parse_args(["--color", "never", "cmd"])
        assert args.color == "never"

    def test_invalid_color(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--color", "purple", "cmd"])

    def test_negative_buffer_size(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--buffer-size", "-2", "cmd"])

    def test_missing_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_apply_arguments_overrides_config(self):
        args = build_parser().parse_args(["--color", "never", "--combine", "--buffer-size", "64", "cmd"])
        config = apply_arguments(Config(), args)

        assert config.color == ColorMode.NEVER
        assert config.combine is True
        assert config.buffer_size == 64

    def test_apply_arguments_keeps_env_values(self):
        args = build_parser().parse_args(["cmd"])
        config = apply_arguments(Config(color=ColorMode.AUTO, buffer_size=99), args)

        assert config.color == ColorMode.AUTO
        assert config.buffer_size == 99


# =============================================================================
# Exit codes
# =============================================================================


class TestExitCodes:
    """rederr exits like its child."""

    def test_true(self):
        result = run_rederr(["true"])

        assert result.returncode == 0
        assert result.stdout == b""
        assert result.stderr == b""

    def test_false(self):
        result = run_rederr(["false"])

        assert result.returncode == 1
        assert result.stdout == b""
        assert result.stderr == b""

    def test_exit_seven(self):
        assert run_rederr(fake_cli_argv("exit:7")).returncode == 7

    def test_self_kill(self):
        result = run_rederr(["sh", "-c", "kill $$"])
        assert result.returncode == 128 + signal.SIGTERM

    def test_interleave_fixture_ends_with_self_kill(self, fixtures_dir):
        result = run_rederr(["bash", str(fixtures_dir / "interleave.sh")])

        assert result.returncode == 128 + signal.SIGTERM
        assert result.stdout.startswith(b"01 stdout\n02 stdout\n")
        assert result.stdout.endswith(b"10 stdout sleep 0.1 ")
        assert result.stderr.count(START) == 1
        assert result.stderr.count(END) == 1
        assert result.stderr.startswith(START + b"03 STDERR\n")
        assert result.stderr.endswith(b"09 STDERR sleep 0.2 11 STDERR\n" + END)

    def test_command_not_found(self):
        result = run_rederr(["rederr-no-such-program-xyz"])

        assert result.returncode == 127
        assert result.stdout == b""
        assert b"could not run 'rederr-no-such-program-xyz'" in result.stderr
        assert START not in result.stderr

    def test_usage_error(self):
        result = run_rederr([])
        assert result.returncode == 2


# =============================================================================
# Streams
# =============================================================================


class TestStreams:
    """What ends up on stdout and stderr."""

    def test_stdouterr_scenario(self, fixtures_dir):
        result = run_rederr(["sh", str(fixtures_dir / "stdouterr.sh")])

        assert result.returncode == 0
        assert result.stdout == b"1 stdout\n3 stdout\n"
        assert result.stderr == START + b"2 STDERR\n" + END

    def test_invalid_utf8_is_byte_identical(self):
        result = run_rederr(fake_cli_argv("outhex:62616420e228a1206261640a"))
        assert result.stdout == b"bad \xe2(\xa1 bad\n"

    def test_color_never(self):
        result = run_rederr(["--color", "never", *fake_cli_argv("errln:plain")])
        assert result.stderr == b"plain\n"

    def test_color_auto_on_pipe(self):
        result = run_rederr(["--color", "auto", *fake_cli_argv("errln:plain")])
        assert result.stderr == b"plain\n"

    def test_color_from_env(self):
        result = run_rederr(fake_cli_argv("errln:plain"), env={"REDERR_COLOR": "never"})
        assert result.stderr == b"plain\n"

    def test_region_idle_from_env(self):
        result = run_rederr(
            fake_cli_argv("errln:first", "sleep:0.3", "errln:second"),
            env={"REDERR_REGION_IDLE": "0.05"},
        )
        assert result.stderr == START + b"first\n" + END + START + b"second\n" + END

    def test_combine(self, fixtures_dir):
        result = run_rederr(["--combine", "sh", str(fixtures_dir / "mixed_output.sh")])

        assert result.returncode == 0
        assert result.stderr == b""
        assert result.stdout.replace(START, b"").replace(END, b"") == b"111aaa333\nbbb\n"

    def test_arguments_reach_child(self):
        result = run_rederr(["sh", "-c", 'printf "%s|" "$@"', "sh", "--combine", "-c", "x y"])
        assert result.stdout == b"--combine|-c|x y|"


# =============================================================================
# Signals sent to rederr
# =============================================================================


def _spawn_rederr(*args: str, env: dict[str, str] | None = None) -> subprocess.Popen[bytes]:
    full_env = dict(os.environ, PYTHONPATH=str(SRC_DIR))
    if env:
        full_env.update(env)
    return subprocess.Popen(
        [sys.executable, "-m", "rederr", *args],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=full_env,
    )


class TestSignals:
    """rederr outlives signals until its child is done."""

    def test_sigterm_is_forwarded(self):
        start = time.monotonic()
        proc = _spawn_rederr(*fake_cli_argv("outln:ready", "sleep:30"))
        try:
            assert proc.stdout.readline() == b"ready\n"
            proc.send_signal(signal.SIGTERM)
            proc.wait(timeout=10)
        finally:
            proc.kill()
            proc.communicate()

        assert proc.returncode == 128 + signal.SIGTERM
        assert time.monotonic() - start < 10

    def test_sigint_ignored_by_default(self):
        proc = _spawn_rederr(*fake_cli_argv("outln:ready", "sleep:0.5", "outln:done", "exit:4"))
        try:
            assert proc.stdout.readline() == b"ready\n"
            proc.send_signal(signal.SIGINT)
            rest, _ = proc.communicate(timeout=10)
        finally:
            proc.kill()

        assert rest == b"done\n"
        assert proc.returncode == 4

    def test_sigint_forwarded_when_configured(self):
        proc = _spawn_rederr(
            *fake_cli_argv("outln:ready", "sleep:30"),
            env={"REDERR_SIGINT_MODE": "forward"},
        )
        try:
            assert proc.stdout.readline() == b"ready\n"
            proc.send_signal(signal.SIGINT)
            proc.communicate(timeout=10)
        finally:
            proc.kill()

        # The Python child dies of KeyboardInterrupt with status 130.
        assert proc.returncode == 130
