"""CLI interface for pycloudsync."""

import logging
import time
from pathlib import Path
from typing import Any, Optional

import click

from .config import config
from .crypto import AESCryptoService
from .exceptions import CloudSyncError, ConfigError
from .output import OutputFormatter
from .providers import WebDAVProvider, create_enabled_providers
from .settings import (
    ConflictPolicy,
    SyncDirection,
    SyncMode,
    SyncSettings,
    validate_and_fix,
)
from .sync import (
    AutoSyncScheduler,
    DebouncedTrigger,
    LocalChangeHandler,
    SyncFileFilter,
    SyncManager,
    make_engine_factory,
    watch_local_tree,
)

logger = logging.getLogger(__name__)

SECRET_FIELDS = ("password", "key")


def _choice_values(enum_class: Any) -> list[str]:
    return [member.value for member in enum_class]


def _load_settings(
    ctx: Any, out: OutputFormatter, apply_env: bool = True
) -> SyncSettings:
    """Load stored settings or exit with an error."""
    try:
        settings = config.load_settings(apply_env=apply_env)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        raise  # Unreachable, but helps type checker

    if settings.debug_mode or settings.log_level.lower() == "debug":
        logging.getLogger("pycloudsync").setLevel(logging.DEBUG)
    return settings


def _resolve_local_root(
    ctx: Any, out: OutputFormatter, settings: SyncSettings, local_dir: Optional[str]
) -> Path:
    """Pick the local folder from the argument or the stored settings."""
    root = local_dir or settings.local_root
    if not root:
        out.error("No local folder given and none configured")
        out.info("Pass LOCAL_DIR or run 'pycloudsync init'")
        ctx.exit(1)

    local_path = Path(root).expanduser()
    if not local_path.exists():
        out.error(f"Path does not exist: {local_path}")
        ctx.exit(1)
    if not local_path.is_dir():
        out.error(f"Path is not a directory: {local_path}")
        ctx.exit(1)
    return local_path


def _masked(data: dict) -> dict:
    """Copy a settings dict with passwords and keys hidden."""
    masked = {}
    for key, value in data.items():
        if isinstance(value, dict):
            masked[key] = _masked(value)
        elif key in SECRET_FIELDS and value:
            masked[key] = "********"
        else:
            masked[key] = value
    return masked


@click.group()
@click.option(
    "--config-dir",
    envvar="PYCLOUDSYNC_CONFIG_DIR",
    type=click.Path(file_okay=False),
    help="Configuration directory (default: ~/.config/pycloudsync)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option()
@click.pass_context
def main(
    ctx: Any,
    config_dir: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """PyCloudSync - Keep a local folder in sync with WebDAV storage."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if config_dir:
        config.config_dir = Path(config_dir).expanduser()

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pycloudsync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option("--server-url", prompt="WebDAV server URL", help="WebDAV server URL")
@click.option("--username", "-u", prompt="Username", help="WebDAV username")
@click.option(
    "--password",
    "-p",
    prompt="Password",
    hide_input=True,
    help="WebDAV password",
)
@click.option(
    "--sync-path",
    prompt="Remote folder",
    default="",
    show_default=False,
    help="Remote folder under which synced files are stored",
)
@click.option(
    "--local-dir",
    prompt="Local folder to sync",
    default=".",
    help="Local folder to keep in sync",
)
@click.pass_context
def init(
    ctx: Any,
    server_url: str,
    username: str,
    password: str,
    sync_path: str,
    local_dir: str,
) -> None:
    """Initialize the WebDAV configuration.

    Tests the connection and stores the settings in
    ~/.config/pycloudsync/config.json for future use.
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        settings = config.load_settings(apply_env=False)
    except ConfigError as e:
        out.warning(f"Ignoring unreadable settings: {e}")
        settings = SyncSettings()

    settings.webdav.server_url = server_url.strip()
    settings.webdav.username = username
    settings.webdav.password = password
    settings.webdav.sync_path = sync_path.strip()
    settings.webdav.enabled = True
    settings.local_root = str(Path(local_dir).expanduser().resolve())

    out.info("Testing connection...")
    provider = WebDAVProvider(settings.webdav)
    try:
        reachable = provider.test_connection()
    except CloudSyncError as e:
        out.error(f"Connection test failed: {e}")
        ctx.exit(1)
        return
    finally:
        provider.disconnect()

    if not reachable:
        out.error("Could not connect to the WebDAV server")
        out.info("Check the server URL, username and password")
        ctx.exit(1)

    validate_and_fix(settings)
    config_path = config.save_settings(settings)
    out.success("✓ Connection successful")
    out.success(f"✓ Configuration saved to {config_path}")


@main.command()
@click.argument("local_dir", required=False, type=str)
@click.option(
    "--direction",
    "-d",
    type=click.Choice(_choice_values(SyncDirection)),
    default=None,
    help="Sync direction (default: from settings)",
)
@click.option(
    "--mode",
    "-m",
    type=click.Choice(_choice_values(SyncMode)),
    default=None,
    help="Sync mode (default: from settings)",
)
@click.option(
    "--policy",
    "-p",
    type=click.Choice(_choice_values(ConflictPolicy)),
    default=None,
    help="Conflict policy for files changed on both sides",
)
@click.option(
    "--delete-local-extras",
    is_flag=True,
    help="Delete local files that no longer exist remotely",
)
@click.option(
    "--delete-remote-extras",
    is_flag=True,
    help="Delete remote files that no longer exist locally",
)
@click.option(
    "--encrypt-key",
    "-k",
    default=None,
    help="Encrypt content with this 16 character key",
)
@click.pass_context
def sync(
    ctx: Any,
    local_dir: Optional[str],
    direction: Optional[str],
    mode: Optional[str],
    policy: Optional[str],
    delete_local_extras: bool,
    delete_remote_extras: bool,
    encrypt_key: Optional[str],
) -> None:
    """Run one sync pass between LOCAL_DIR and every enabled provider.

    LOCAL_DIR defaults to the folder stored by 'pycloudsync init'. Options
    override the stored settings for this pass only.

    Examples:
        pycloudsync sync                         # Stored folder and settings
        pycloudsync sync ./notes -d upload_only  # Push local changes only
        pycloudsync sync ./notes -p keep_remote  # Remote wins when newer
        pycloudsync sync ./notes -m full --delete-remote-extras
    """
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)

    if direction:
        settings.sync_direction = SyncDirection.from_string(direction)
    if mode:
        settings.sync_mode = SyncMode.from_string(mode)
    if policy:
        settings.conflict_policy = ConflictPolicy.from_string(policy)
    if delete_local_extras:
        settings.delete_local_extra_files = True
    if delete_remote_extras:
        settings.delete_remote_extra_files = True
    if encrypt_key:
        if not AESCryptoService().validate_key(encrypt_key):
            out.error("Encryption key must be exactly 16 characters long")
            ctx.exit(1)
        settings.encryption.key = encrypt_key
        settings.encryption.enabled = True

    local_path = _resolve_local_root(ctx, out, settings, local_dir)

    if not out.quiet:
        out.info(f"Sync direction: {settings.sync_direction.value}")
        out.info(f"Sync mode: {settings.sync_mode.value}")
        out.info(f"Local path: {local_path}")
        out.info("")  # Empty line for readability

    manager = SyncManager(settings, make_engine_factory(local_path), out)
    try:
        completed = manager.manual_sync(show_notice=not out.json_output)
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
        return

    if out.json_output:
        out.output_json(
            {
                "success": completed,
                "error": str(manager.last_error) if manager.last_error else None,
                "providers": {
                    provider_id: stats.to_dict()
                    for provider_id, stats in manager.last_result.items()
                },
            }
        )
    if not completed:
        ctx.exit(1)


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show settings, enabled providers and their connection state."""
    out: OutputFormatter = ctx.obj["out"]

    if not config.is_configured():
        out.warning("pycloudsync is not configured yet")
        out.info("Run 'pycloudsync init' to configure a WebDAV server")

    settings = _load_settings(ctx, out)
    validate_and_fix(settings)
    providers = create_enabled_providers(settings)

    connections: dict[str, bool] = {}
    for provider_id, provider in providers.items():
        try:
            connections[provider_id] = provider.test_connection()
        except CloudSyncError as e:
            logger.debug(f"Connection test of {provider_id} failed: {e}")
            connections[provider_id] = False
        finally:
            provider.disconnect()

    if out.json_output:
        out.output_json(
            {
                "config_path": str(config.get_config_path()),
                "local_root": settings.local_root,
                "sync_direction": settings.sync_direction.value,
                "sync_mode": settings.sync_mode.value,
                "conflict_policy": settings.conflict_policy.value,
                "sync_interval": settings.sync_interval,
                "encryption": settings.encryption.active,
                "providers": connections,
            }
        )
        return

    out.print_summary(
        "Sync settings",
        [
            ("Config file", str(config.get_config_path())),
            ("Local folder", settings.local_root or "-"),
            ("Direction", settings.sync_direction.value),
            ("Mode", settings.sync_mode.value),
            ("Conflict policy", settings.conflict_policy.value),
            (
                "Auto sync",
                f"every {settings.sync_interval} min"
                if settings.sync_interval > 0
                else "off",
            ),
            ("Encryption", "on" if settings.encryption.active else "off"),
        ],
    )
    if not providers:
        out.warning("No storage providers enabled")
        return
    out.print("")
    for provider_id, connected in connections.items():
        name = providers[provider_id].get_name()
        if connected:
            out.success(f"✓ {name}: connected")
        else:
            out.warning(f"{name}: unreachable")


@main.command("test-connection")
@click.pass_context
def test_connection(ctx: Any) -> None:
    """Test the connection of every enabled provider."""
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)

    manager = SyncManager(settings, make_engine_factory(settings.local_root), out)
    manager.validate_and_fix_settings()
    if not settings.enabled_providers:
        out.error("No storage providers enabled")
        ctx.exit(1)

    results = manager.test_all_enabled_providers()
    if out.json_output:
        out.output_json(results)
    else:
        for provider_id, reachable in results.items():
            if reachable:
                out.success(f"✓ {provider_id}: connection successful")
            else:
                out.error(f"{provider_id}: connection failed")

    if not results or not all(results.values()):
        ctx.exit(1)


@main.command()
@click.option("--save", is_flag=True, help="Store the key and enable encryption")
@click.pass_context
def genkey(ctx: Any, save: bool) -> None:
    """Generate a new 16 character encryption key."""
    out: OutputFormatter = ctx.obj["out"]
    key = AESCryptoService().generate_key()

    if save:
        settings = _load_settings(ctx, out, apply_env=False)
        settings.encryption.key = key
        settings.encryption.enabled = True
        config.save_settings(settings)
        out.success("Encryption enabled with the new key")
        out.warning("Keep the key safe, encrypted files cannot be read without it")

    if out.json_output:
        out.output_json({"key": key})
    else:
        click.echo(key)


@main.command()
@click.argument("local_dir", required=False, type=str)
@click.option(
    "--interval",
    "-i",
    type=int,
    default=None,
    help="Auto sync interval in minutes (default: from settings)",
)
@click.option(
    "--debounce",
    type=float,
    default=5.0,
    show_default=True,
    help="Seconds to wait for local changes to settle",
)
@click.option("--no-watch", is_flag=True, help="Only sync on the timer")
@click.pass_context
def watch(
    ctx: Any,
    local_dir: Optional[str],
    interval: Optional[int],
    debounce: float,
    no_watch: bool,
) -> None:
    """Keep LOCAL_DIR in sync until interrupted.

    Runs a pass at start, on the auto sync timer and shortly after local
    changes.
    """
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)
    local_path = _resolve_local_root(ctx, out, settings, local_dir)

    manager = SyncManager(
        settings,
        make_engine_factory(local_path),
        out,
        on_settings_changed=config.save_repaired,
    )
    scheduler = AutoSyncScheduler(manager, interval_minutes=interval)
    trigger = DebouncedTrigger(
        lambda: manager.manual_sync(show_notice=True, is_auto=True), debounce
    )
    observer = None

    try:
        manager.manual_sync(show_notice=True, is_auto=True)
        if not no_watch:
            handler = LocalChangeHandler(local_path, trigger, SyncFileFilter(settings))
            observer = watch_local_tree(local_path, handler)
        scheduler.start()
        out.info(f"Watching {local_path}, press Ctrl+C to stop")
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        out.info("\nStopping...")
    finally:
        trigger.cancel()
        scheduler.stop()
        if observer is not None:
            observer.stop()
            observer.join()


@main.group("config")
def config_group() -> None:
    """Show or repair the stored settings."""


@config_group.command("show")
@click.option("--show-secrets", is_flag=True, help="Do not hide passwords and keys")
@click.pass_context
def config_show(ctx: Any, show_secrets: bool) -> None:
    """Print the stored settings."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        settings = config.load_settings(apply_env=False)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    data = settings.to_dict()
    if not show_secrets:
        data = _masked(data)

    if out.json_output:
        out.output_json(data)
        return
    out.info(f"Config file: {config.get_config_path()}")
    if not config.is_configured():
        out.warning("No config file yet, showing defaults")
    out.print_summary(
        "Settings",
        [(key, value) for key, value in data.items() if not isinstance(value, dict)],
    )
    for section in ("providerSettings", "encryption"):
        out.print(f"{section}: {data[section]}")


@config_group.command("repair")
@click.pass_context
def config_repair(ctx: Any) -> None:
    """Repair provider enablement in the stored settings."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        settings = config.load_settings(apply_env=False)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if validate_and_fix(settings):
        config.save_settings(settings)
        out.success("Settings repaired and saved")
    else:
        out.info("Settings are consistent, nothing to repair")
    if out.json_output:
        out.output_json({"enabled_providers": settings.enabled_providers})


if __name__ == "__main__":
    main()
