"""Command-line interface for the player message exchange."""

from __future__ import annotations

import logging
import signal
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import click

from exchange.comms.cancel import CancelToken
from exchange.config.loader import load_config, merge_configs
from exchange.config.schema import ExchangeConfig
from exchange.errors import Cancelled, ExchangeError, ExchangeFailed
from exchange.session.runner import SessionResult, run_session

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_CANCELLED = 130


@click.group()
@click.option("--log-level", default="INFO", help="Logging level.")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=False),
    help="Path to exchange config YAML.",
)
@click.option("--verbose", is_flag=True, help="Enable verbose output.")
@click.pass_context
def cli(ctx: click.Context, log_level: str, config_path: str | None, verbose: bool) -> None:
    """Exchange -- two players trading messages for a fixed number of rounds."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if verbose:
        logging.getLogger("exchange").setLevel(logging.DEBUG)

    ctx.obj = load_config(config_path)


# ------------------------------------------------------------------
# exchange same-process
# ------------------------------------------------------------------


@cli.command("same-process")
@click.pass_obj
def same_process(config: ExchangeConfig) -> None:
    """Run both players inside this process."""
    config = merge_configs(config, {"mode": "same-process", "role": None})
    _execute(config)


# ------------------------------------------------------------------
# exchange separate-process / server / client
# ------------------------------------------------------------------


@cli.command("separate-process")
@click.argument("role", type=click.Choice(["server", "client"]))
@click.argument("port", type=click.IntRange(0, 65535))
@click.argument("host", required=False)
@click.pass_obj
def separate_process(
    config: ExchangeConfig, role: str, port: int, host: str | None
) -> None:
    """Run one player of a two-process exchange over TCP."""
    _execute(_separate_config(config, role, port, host))


@cli.command()
@click.argument("port", type=click.IntRange(0, 65535))
@click.pass_obj
def server(config: ExchangeConfig, port: int) -> None:
    """Listen on PORT and act as the responder."""
    _execute(_separate_config(config, "server", port, None))


@cli.command()
@click.argument("port", type=click.IntRange(1, 65535))
@click.argument("host", required=False)
@click.pass_obj
def client(config: ExchangeConfig, port: int, host: str | None) -> None:
    """Connect to HOST:PORT and act as the initiator."""
    _execute(_separate_config(config, "client", port, host))


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _separate_config(
    config: ExchangeConfig, role: str, port: int, host: str | None
) -> ExchangeConfig:
    overrides: dict[str, Any] = {
        "mode": "separate-process",
        "role": role,
        "socket": {"port": port},
    }
    if host is not None:
        overrides["socket"]["host"] = host
    return merge_configs(config, overrides)


def _execute(config: ExchangeConfig) -> None:
    """Run a session and print its summary, mapping failures to exit codes."""
    cancel = CancelToken()

    click.echo(click.style("=== Exchange: Starting Session ===", fg="cyan", bold=True))
    click.echo(f"  Mode: {config.mode}")
    if config.role is not None:
        click.echo(f"  Role: {config.role}")
        click.echo(f"  Endpoint: {config.socket.host}:{config.socket.port}")
    click.echo()

    try:
        with _cancel_on_signals(cancel):
            result = run_session(config, cancel)
    except Cancelled as exc:
        click.echo(click.style(f"Cancelled: {exc}", fg="yellow"), err=True)
        sys.exit(EXIT_CANCELLED)
    except ExchangeFailed as exc:
        click.echo(
            click.style(
                f"Exchange failed in round {exc.round} ({exc.side}): {exc}", fg="red"
            ),
            err=True,
        )
        sys.exit(EXIT_FAILURE)
    except ExchangeError as exc:
        click.echo(click.style(f"Error: {exc}", fg="red"), err=True)
        sys.exit(EXIT_FAILURE)

    _print_summary(result)


def _print_summary(result: SessionResult) -> None:
    click.echo()
    click.echo(click.style("=== Session Result ===", fg="green", bold=True))
    click.echo(f"  Mode: {result.mode}")
    if result.role is not None:
        click.echo(f"  Role: {result.role}")
    click.echo(f"  Rounds: {click.style(str(result.rounds), fg='yellow')}")
    for player_id, count in result.messages_sent.items():
        click.echo(f"  {player_id} sent: {count} messages")
    click.echo(f"  Duration: {result.duration:.2f}s")

    if result.transcript:
        click.echo()
        click.echo(click.style("Transcript:", fg="cyan"))
        for message in result.transcript:
            click.echo(
                f"  #{message.sequence_number} {message.sender_id} -> "
                f"{message.recipient_id}: {message.content}"
            )


@contextmanager
def _cancel_on_signals(cancel: CancelToken) -> Iterator[None]:
    """Trip *cancel* on SIGINT/SIGTERM for the duration of the block."""

    def _handler(signum: int, frame: Any) -> None:
        logger.warning("Received %s, cancelling", signal.Signals(signum).name)
        cancel.cancel()

    previous: dict[int, Any] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[signum] = signal.signal(signum, _handler)
        except ValueError:
            # Not the main thread.
            break
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
