# Simple CLI for Kite Stream
import asyncio
import sys

import click

from core.config.settings import Settings
from core.config.validator import validate_startup_configuration
from core.logging import configure_logging, get_logger
from core.utils.exceptions import KiteStreamException, PacketSizeError


def _load_settings(require_access_token: bool) -> Settings:
    settings = Settings()
    configure_logging(settings)
    if not validate_startup_configuration(settings, require_access_token=require_access_token):
        click.echo("❌ Configuration validation failed", err=True)
        sys.exit(1)
    return settings


def describe_frame(frame) -> str:
    """One-line summary of a received frame."""
    if isinstance(frame, str):
        return f"text  {len(frame):>6} chars"
    # Imported lazily so `--help` does not pull in the websocket stack
    from services.ticker.models import Mode
    try:
        mode = Mode.from_packet_size(len(frame)).value
    except PacketSizeError:
        mode = "unclassified"
    return f"bytes {len(frame):>6} bytes  {mode}"


@click.group()
def cli():
    """Kite Stream CLI"""
    pass


@cli.command("login-url")
def login_url():
    """Print the Kite login URL"""
    from services.auth import KiteClientWrapper

    settings = _load_settings(require_access_token=False)
    click.echo(KiteClientWrapper(settings).login_url())


@cli.command()
@click.option("--request-token", required=True, help="request_token from the login redirect")
def session(request_token):
    """Exchange a request token for an access token"""
    from services.auth import KiteClientWrapper

    settings = _load_settings(require_access_token=False)
    try:
        user_session = KiteClientWrapper(settings).generate_session(request_token)
    except KiteStreamException as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(f"✅ Session created for {user_session.user_id}")
    click.echo(f"ZERODHA__ACCESS_TOKEN={user_session.access_token.get_secret_value()}")


@cli.command()
@click.option("-t", "--token", "tokens", type=int, multiple=True, required=True,
              help="Instrument token to subscribe (repeatable)")
@click.option("--mode", "mode_name", default="quote", show_default=True,
              type=click.Choice(["full", "quote", "ltp"], case_sensitive=False))
@click.option("--max-frames", type=int, default=None, help="Stop after N frames")
def stream(tokens, mode_name, max_frames):
    """Stream ticks for the given instrument tokens"""
    settings = _load_settings(require_access_token=True)
    click.echo("📡 Starting ticker stream...")
    try:
        asyncio.run(_stream(settings, tokens, mode_name, max_frames))
    except KeyboardInterrupt:
        pass
    except KiteStreamException as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)


async def _stream(settings: Settings, tokens, mode_name: str, max_frames):
    from services.ticker import (
        ConnectionOptions,
        Mode,
        ReconnectOptions,
        StreamState,
        WebSocketClient,
    )

    logger = get_logger("cli", "ticker")
    state = StreamState.from_settings(settings).subscribe_tokens(Mode.parse(mode_name), tokens)
    client = await WebSocketClient.connect(
        state,
        reconnect=ReconnectOptions.from_settings(settings.reconnection),
        options=ConnectionOptions.from_settings(settings.ticker),
    )

    received = 0
    async with client:
        async for frame in client:
            click.echo(describe_frame(frame))
            received += 1
            if max_frames is not None and received >= max_frames:
                break

    logger.info("Ticker stream finished", frames=received, stats=client.stats)


if __name__ == "__main__":
    cli()
