"""Session layer: wiring for same-process and separate-process runs."""

from exchange.session.runner import (
    SessionResult,
    run_client,
    run_same_process,
    run_server,
    run_session,
)

__all__ = [
    "SessionResult",
    "run_client",
    "run_same_process",
    "run_server",
    "run_session",
]
