"""Shared fixtures for the exchange test suite."""

from __future__ import annotations

import os
import socket
import subprocess
import sys
from pathlib import Path

import pytest

SRC_DIR = Path(__file__).resolve().parent.parent / "src"


@pytest.fixture
def free_port() -> int:
    """A TCP port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


@pytest.fixture
def exchange_process():
    """Launch ``python -m exchange`` subprocesses, terminating leftovers."""
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(
        p for p in (str(SRC_DIR), env.get("PYTHONPATH")) if p
    )
    started: list[subprocess.Popen] = []

    def _launch(*args: str) -> subprocess.Popen:
        arguments = [sys.executable, "-m", "exchange", *args]
        pipe = subprocess.PIPE
        proc = subprocess.Popen(
            arguments, stdout=pipe, stderr=pipe, env=env, text=True
        )
        started.append(proc)
        return proc

    yield _launch

    for proc in started:
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
