"""Test the stackchart command-line tool against a synthetic sample log.

    python3 tests/test_cli.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "python"))

import contextlib
import io
import tempfile

from stackchart.cli import _format_duration, main
from stackchart.demo import DEFAULT_LABELS


def _run(*argv):
    out, err = io.StringIO(), io.StringIO()
    code = 0
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        try:
            main(list(argv))
        except SystemExit as e:
            code = e.code
    return code, out.getvalue(), err.getvalue()


def _demo_log(path):
    code, out, _ = _run("demo", path, "--end", "600000", "--step", "1000")
    assert code == 0
    assert "wrote 600 samples per column" in out


def test_format_duration():
    print("test_format_duration...", end="")

    assert _format_duration(250) == "250ms"
    assert _format_duration(1_500) == "1.50s"
    assert _format_duration(600_000) == "10.0m"
    assert _format_duration(7_200_000) == "2.0h"
    assert _format_duration(172_800_000) == "2.0d"

    print(" OK")


def test_info():
    print("test_info...", end="")

    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "demo.schl")
        _demo_log(path)
        code, out, _ = _run("info", path)

    assert code == 0
    assert "Profile:    demo" in out
    assert "Samples:    1,200" in out
    assert "Duration:   10.0m" in out
    assert "host" in out and "latency_ms" in out

    print(" OK")


def test_dump_column_range():
    print("test_dump_column_range...", end="")

    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "demo.schl")
        _demo_log(path)
        code, out, _ = _run("dump", path, "--column", "host", "--begin", "0", "--end", "1999")

    assert code == 0
    lines = out.splitlines()
    assert len(lines) == 2
    assert all("host: " in line and line.endswith("=1") for line in lines)

    print(" OK")


def test_render_custom_window():
    print("test_render_custom_window...", end="")

    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "demo.schl")
        _demo_log(path)
        code, out, _ = _run("render", path, "--column", "host", "--range", "custom",
                            "--begin", "0", "--end", "600000")

    assert code == 0
    lines = out.splitlines()
    assert lines[0] == f"# host COUNT bucket=2000ms series={len(DEFAULT_LABELS)} rows=300"
    header = lines[1].split("\t")
    assert header[0] == "time"
    assert sorted(header[1:]) == sorted(DEFAULT_LABELS)
    rows = lines[2:]
    assert len(rows) == 300
    # One sample per second -> two per 2 s bucket
    assert all(sum(float(c) for c in row.split("\t")[1:]) == 2.0 for row in rows)

    print(" OK")


def test_render_errors_exit_nonzero():
    print("test_render_errors_exit_nonzero...", end="")

    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "demo.schl")
        _demo_log(path)
        code, _, err = _run("render", path, "--column", "missing")
        assert code == 1
        assert "Error:" in err

        code, _, err = _run("render", path, "--column", "host", "--range", "custom")
        assert code == 1
        assert "custom" in err.lower()

    print(" OK")


if __name__ == "__main__":
    print("stackchart CLI tests")
    print("====================\n")

    test_format_duration()
    test_info()
    test_dump_column_range()
    test_render_custom_window()
    test_render_errors_exit_nonzero()

    print("\nAll CLI tests passed.")
