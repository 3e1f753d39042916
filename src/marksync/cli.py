"""Command-line interface for marksync."""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click
import httpx
import uvicorn


@click.group()
@click.version_option(version="0.1.0", prog_name="marksync")
def cli():
    """marksync - xBrowserSync compatible bookmark sync service."""
    pass


config_dir_option = click.option(
    "--config-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Configuration directory (default: ~/.marksync)",
)


def _load_config(config_dir: Optional[Path]):
    """Load resolved config or exit with an error message."""
    from .config import ConfigError, ConfigManager

    cm = ConfigManager(config_dir)
    try:
        return cm, cm.load()
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


def _open_store(config_dir: Optional[Path]):
    """Open the configured database for offline commands."""
    from .core.kv_backend import BackendError, open_backend
    from .core.sync_store import SyncStore

    _, app_config = _load_config(config_dir)
    try:
        backend = open_backend(app_config.db_path)
    except BackendError as e:
        click.echo(f"Cannot open database: {e}", err=True)
        sys.exit(1)
    return app_config, backend, SyncStore(backend)


@cli.command()
@config_dir_option
@click.option(
    "--db-path",
    type=str,
    default=None,
    help="Database file (default: <config-dir>/marksync.db)",
)
@click.option("--host", type=str, default="127.0.0.1", show_default=True, help="Host to bind")
@click.option("--port", type=int, default=8080, show_default=True, help="Port to bind")
@click.option("--force", is_flag=True, default=False, help="Overwrite existing config.yaml")
def init(config_dir: Optional[Path], db_path: Optional[str], host: str, port: int, force: bool):
    """Initialize marksync configuration.

    Creates the configuration directory with config.yaml and a .env template.
    """
    from .config import ConfigError, ConfigManager
    from .models.config import AppConfig

    try:
        cm = ConfigManager(config_dir)

        click.echo(f"Initializing marksync at {cm.config_dir}...")

        if cm.config_file.exists() and not force:
            click.echo(f"Error: {cm.config_file} already exists (use --force to overwrite)", err=True)
            sys.exit(1)

        cm.config_dir.mkdir(parents=True, exist_ok=True)

        app_config = AppConfig(host=host, port=port, db_path=db_path)
        cm.save_app_config(app_config)
        click.echo("[OK] Created config.yaml")

        if not cm.env_file.exists():
            cm.create_env_file()
            click.echo("[OK] Created .env template")

        click.echo(f"\nDatabase: {cm.resolve_db_path(app_config)}")
        click.echo("Start the server with: marksync serve")

    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--host", type=str, default=None, help="Host to bind (default: from config)")
@click.option("--port", type=int, default=None, help="Port to bind (default: from config)")
@click.option(
    "--reload",
    is_flag=True,
    default=False,
    help="Enable auto-reload for development",
)
@config_dir_option
def serve(host: Optional[str], port: Optional[int], reload: bool, config_dir: Optional[Path]):
    """Start the marksync API server."""
    from .config import CONFIG_DIR_ENV

    cm, app_config = _load_config(config_dir)

    # The app loads its configuration again inside the server process
    if config_dir:
        os.environ[CONFIG_DIR_ENV] = str(config_dir)

    host = host or app_config.host
    port = port or app_config.port
    log_level = app_config.log_level.upper()

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    click.echo("=" * 60)
    click.echo("Starting marksync API server...")
    click.echo("=" * 60)
    click.echo(f"Config directory: {cm.config_dir}")
    click.echo(f"Database: {app_config.db_path}")
    click.echo(f"Server URL: http://{host}:{port}")
    click.echo("=" * 60)

    try:
        uvicorn.run(
            "marksync.api:app",
            host=host,
            port=port,
            reload=reload,
            log_level=log_level.lower(),
        )
    except KeyboardInterrupt:
        click.echo("\nShutting down server...")


@cli.command()
@click.argument("sync_id")
@config_dir_option
def inspect(sync_id: str, config_dir: Optional[Path]):
    """Show metadata of a stored sync (never the bookmarks payload)."""
    from .core.sync_store import PersistenceError, SyncNotFoundError
    from .models.sync import format_timestamp

    _, backend, store = _open_store(config_dir)
    try:
        sync = asyncio.run(store.get(sync_id))
    except SyncNotFoundError:
        click.echo(f"Sync not found: {sync_id}", err=True)
        sys.exit(1)
    except PersistenceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        backend.close()

    click.echo(f"id:           {sync.id}")
    click.echo(f"lastUpdated:  {format_timestamp(sync.last_updated)}")
    click.echo(f"version:      {sync.version}")
    click.echo(f"payload size: {len(sync.bookmarks)} bytes")


@cli.command()
@config_dir_option
def stats(config_dir: Optional[Path]):
    """Show database statistics."""
    app_config, backend, store = _open_store(config_dir)
    try:
        click.echo(f"Database: {app_config.db_path}")
        click.echo(f"Syncs: {store.count()}")
        click.echo(f"File size: {backend.size_bytes} bytes")
    finally:
        backend.close()


@cli.command()
@config_dir_option
def compact(config_dir: Optional[Path]):
    """Reclaim unused space in the database file.

    Safe to run while the server is up.
    """
    from .core.kv_backend import BackendError

    app_config, backend, _ = _open_store(config_dir)
    try:
        before = backend.size_bytes
        backend.compact()
        click.echo(f"Compacted {app_config.db_path}: {before} -> {backend.size_bytes} bytes")
    except BackendError as e:
        click.echo(f"Compaction failed: {e}", err=True)
        sys.exit(1)
    finally:
        backend.close()


@cli.command()
@config_dir_option
@click.option(
    "--api-url",
    type=str,
    default=None,
    help="Optional running API URL to verify (example: http://127.0.0.1:8080)",
)
def doctor(config_dir: Optional[Path], api_url: Optional[str]):
    """Validate local setup and report actionable fixes."""
    from .config import ConfigError, ConfigManager
    from .models.config import STATUS_ONLINE

    cm = ConfigManager(config_dir)
    failures = 0
    warnings = 0
    app_config = None

    def report(status: str, message: str, fix: Optional[str] = None) -> None:
        click.echo(f"[{status}] {message}")
        if fix:
            click.echo(f"      Fix: {fix}")

    click.echo("=" * 60)
    click.echo("marksync doctor")
    click.echo("=" * 60)
    click.echo(f"Config directory: {cm.config_dir}")

    if cm.config_file.exists():
        report("PASS", f"Found config file: {cm.config_file}")
        try:
            app_config = cm.load()
            report("PASS", "config.yaml parsed successfully")
        except ConfigError as e:
            failures += 1
            report("FAIL", f"config.yaml validation failed: {e}")
    else:
        failures += 1
        report("FAIL", f"Missing config file: {cm.config_file}", "Run: marksync init")

    if app_config is not None:
        try:
            cm.validate_db_path(app_config.db_path)
            report("PASS", f"Database path is usable: {app_config.db_path}")
        except ConfigError as e:
            failures += 1
            report("FAIL", f"Database path is not usable: {e}")

        if app_config.service_status != STATUS_ONLINE:
            warnings += 1
            report("WARN", f"service_status is {app_config.service_status} (not online)")

    if api_url:
        info_url = f"{api_url.rstrip('/')}/info"
        try:
            response = httpx.get(info_url, timeout=3.0)
            if response.status_code == 200:
                report("PASS", f"Server is reachable: {info_url}")
            else:
                failures += 1
                report(
                    "FAIL",
                    f"Server info check returned HTTP {response.status_code}: {info_url}",
                    "Start server: marksync serve",
                )
        except httpx.HTTPError as e:
            failures += 1
            report(
                "FAIL",
                f"Server is not reachable at {info_url} ({e})",
                "Start server and ensure API URL matches --api-url",
            )
    else:
        warnings += 1
        report("WARN", "Skipped server reachability check (no --api-url provided)")

    click.echo("-" * 60)
    click.echo(f"Summary: {failures} fail, {warnings} warn")

    sys.exit(1 if failures else 0)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
