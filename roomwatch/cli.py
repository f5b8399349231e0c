"""CLI interface for roomwatch."""

import logging
import signal
from pathlib import Path
from typing import Optional

import click

from . import events
from .config import Config, DEFAULT_HOME, DISPATCHERS, load_env, normalize_handle
from .dispatch import build_dispatcher
from .exceptions import ConfigurationError, PersistenceError
from .poller import PollLoop
from .source import SupabaseMessageSource
from .watermark import WatermarkStore


def setup_logging(verbose: bool, quiet: bool):
    """Configure logging based on verbosity.

    Args:
        verbose: Enable debug logging
        quiet: Suppress all but errors
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def load_config(config_path: Optional[Path], **overrides) -> Config:
    """Load .env, then the YAML file (if any), then CLI overrides.

    Exits with status 2 on configuration errors.
    """
    load_env()
    try:
        return Config.from_yaml(config_path, overrides=overrides)
    except ConfigurationError as e:
        click.echo(f"[CONFIG ERROR] {e}", err=True)
        raise SystemExit(2)


def build_source(config: Config) -> SupabaseMessageSource:
    if not config.source.url:
        raise ConfigurationError(
            "source url is required (set source.url, --url, or SUPABASE_URL in .env)"
        )
    if not config.source.api_key:
        raise ConfigurationError(
            "API key is required (set source.api_key, --api-key, or SUPABASE_SERVICE_ROLE_KEY in .env)"
        )
    return SupabaseMessageSource(
        url=config.source.url,
        api_key=config.source.api_key,
        timeout=config.poll.fetch_timeout,
        table=config.source.table,
    )


@click.group()
@click.version_option(package_name="roomwatch")
def cli():
    """roomwatch - wake an agent session when a room asks for it."""
    pass


@cli.command()
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path), default=None,
              help="YAML config file")
@click.option("--room", "-r", "room_id", default=None, help="Room identifier to watch")
@click.option("--handle", "-H", default=None, help="Our handle (leading @ is stripped)")
@click.option("--interval", "-i", "interval_seconds", type=float, default=None,
              help="Poll interval in seconds (default: 30)")
@click.option("--target", "-t", "target_context", default=None,
              help="tmux session (or gateway agent id) to wake (default: claude)")
@click.option("--dispatcher", type=click.Choice(DISPATCHERS), default=None,
              help="How to deliver triggers (default: tmux)")
@click.option("--instruction", default=None, help="Text to deliver (default: 'check room')")
@click.option("--url", default=None, help="Supabase project URL")
@click.option("--api-key", default=None, help="Supabase API key")
@click.option("--state-dir", type=click.Path(path_type=Path), default=None,
              help="Where watermarks are kept (default: ~/.roomwatch)")
@click.option("--dry-run", is_flag=True,
              help="Log what would be dispatched without executing")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Errors only")
def poll(config_path, room_id, handle, interval_seconds, target_context, dispatcher,
         instruction, url, api_key, state_dir, dry_run, verbose, quiet):
    """Watch a room and wake the target session on trigger messages.

    Example:
        roomwatch poll --room 083b04cb --handle claudemm --target claude
    """
    setup_logging(verbose, quiet)
    config = load_config(
        config_path,
        room_id=room_id,
        handle=handle,
        interval_seconds=interval_seconds,
        target_context=target_context,
        dispatcher=dispatcher,
        instruction=instruction,
        url=url,
        api_key=api_key,
        state_dir=state_dir,
        dry_run=dry_run or None,
    )
    events.configure(config.log_dir)

    try:
        source = build_source(config)
    except ConfigurationError as e:
        click.echo(f"[CONFIG ERROR] {e}", err=True)
        raise SystemExit(2)

    dispatcher_impl = build_dispatcher(config)
    loop = PollLoop(
        config.poll,
        source=source,
        store=WatermarkStore(config.poll.state_dir),
        dispatcher=dispatcher_impl,
    )

    def _on_signal(signum, frame):
        logging.getLogger(__name__).info(f"Received signal {signum}, stopping after current cycle")
        loop.stop()

    signal.signal(signal.SIGTERM, _on_signal)

    mode_str = " [DRY-RUN MODE]" if config.poll.dry_run else ""
    click.echo(
        f"Starting roomwatch{mode_str} for [{config.poll.handle}] "
        f"on {config.poll.dispatcher} [{config.poll.target_context}]"
    )

    try:
        loop.run()
    except KeyboardInterrupt:
        loop.stop()
        click.echo("\nBye!")
    except PersistenceError as e:
        click.echo(f"Fatal: {e}", err=True)
        raise SystemExit(1)
    finally:
        source.close()
        dispatcher_impl.close()


@cli.command()
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path), default=None,
              help="YAML config file (supplies handle and state_dir)")
@click.option("--handle", "-H", default=None, help="Handle whose watermark to show")
@click.option("--state-dir", type=click.Path(path_type=Path), default=None,
              help="Where watermarks are kept (default: ~/.roomwatch)")
def status(config_path, handle, state_dir):
    """Show the stored watermark for a handle."""
    if config_path is not None:
        # room doesn't matter here, but PollConfig requires one
        config = load_config(config_path, room_id="-", handle=handle, state_dir=state_dir)
        handle = config.poll.handle
        state_dir = config.poll.state_dir
    elif not handle:
        raise click.UsageError("--handle is required without --config")

    store = WatermarkStore(state_dir or DEFAULT_HOME)
    handle = normalize_handle(handle)
    watermark = store.load(handle)
    path = store.path_for(handle)

    click.echo(f"Handle:    {handle}")
    click.echo(f"File:      {path}{'' if path.exists() else ' (missing)'}")
    if watermark.is_empty:
        click.echo("Watermark: none (next message seen will only set it)")
    else:
        click.echo(f"Watermark: {watermark.last_seen_id}")
        if watermark.last_seen_at:
            click.echo(f"Seen at:   {watermark.last_seen_at.isoformat()}")


@cli.command()
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path), default=None,
              help="YAML config file")
@click.option("--target", "-t", "target_context", default=None, help="Target to check")
@click.option("--dispatcher", type=click.Choice(DISPATCHERS), default=None)
def probe(config_path, target_context, dispatcher):
    """Check that the target session is reachable."""
    # room and handle don't matter for a probe, but PollConfig requires them
    config = load_config(
        config_path,
        room_id="-",
        handle="-",
        target_context=target_context,
        dispatcher=dispatcher,
    )

    dispatcher_impl = build_dispatcher(config)
    try:
        target = config.poll.target_context
        if dispatcher_impl.probe(target):
            click.echo(f"{target}: OK")
        else:
            click.echo(f"{target}: NOT FOUND", err=True)
            raise SystemExit(1)
    finally:
        dispatcher_impl.close()


def main():
    cli()


if __name__ == "__main__":
    main()
