"""CLI interface for pytheme."""

import logging
import platform
from importlib import metadata
from pathlib import Path
from typing import Any, Callable, Optional

import click

from .api import ThemeClient
from .config import (
    ThemeConfig,
    current_branch,
    load_config,
    save_config,
    unsafe_mode_enabled,
)
from .exceptions import (
    BranchChangedError,
    InvalidAssetDataError,
    RemoteDriftConflictError,
    ThemeAPIError,
    ThemeConfigError,
)
from .output import OutputFormatter
from .sync import (
    DEFAULT_THEME_DIR,
    AssetPolicy,
    JsonStore,
    LocalAssetStore,
    ManifestCache,
    RateLimiter,
    SnapshotStore,
    ThemeSync,
    WatchCoordinator,
)

logger = logging.getLogger(__name__)

REPLACE_WARNING = (
    "Are you sure you want to completely replace your shop theme assets? "
    "This is not undoable."
)


def build_engine(directory: Path, out: OutputFormatter) -> ThemeSync:
    """Wire up the sync engine for the project in ``directory``.

    Raises:
        ThemeConfigError: If config.yml is missing or incomplete
    """
    theme_config = load_config(directory)
    rate_limiter = RateLimiter()
    client = ThemeClient(theme_config, rate_limiter=rate_limiter)
    store = JsonStore(directory)
    return ThemeSync(
        client=client,
        local=LocalAssetStore(directory / DEFAULT_THEME_DIR),
        manifest=ManifestCache(store),
        snapshot=SnapshotStore(store),
        policy=AssetPolicy(
            whitelist_patterns=theme_config.whitelist_files,
            ignore_patterns=theme_config.ignore_files,
        ),
        rate_limiter=rate_limiter,
        output=out,
    )


def _run_operation(ctx: Any, operation: Callable[[ThemeSync], Any]) -> Any:
    """Run an engine operation, turning fatal errors into exit status 1."""
    out: OutputFormatter = ctx.obj["out"]
    engine: Optional[ThemeSync] = None
    try:
        engine = build_engine(ctx.obj["directory"], out)
        return operation(engine)
    except RemoteDriftConflictError as e:
        out.error(str(e))
        if engine is not None:
            engine.display_changes(e.changes)
        out.output_json({"error": str(e), "changes": e.changes.to_dict()})
        ctx.exit(1)
    except BranchChangedError as e:
        out.error(str(e))
        ctx.exit(1)
    except ThemeConfigError as e:
        out.error(str(e))
        ctx.exit(1)
    except InvalidAssetDataError as e:
        out.error(f"Invalid asset data: {e}")
        ctx.exit(1)
    except ThemeAPIError as e:
        out.error(f"API error: {e}")
        ctx.exit(1)
    finally:
        if engine is not None:
            engine.client.close()


def _report_stats(out: OutputFormatter, stats: dict[str, int]) -> None:
    out.output_json(stats)


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.option(
    "--directory",
    "-C",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Project directory holding config.yml and the theme folder",
)
@click.version_option(package_name="pytheme")
@click.pass_context
def main(
    ctx: Any,
    quiet: bool,
    json: bool,
    verbose: bool,
    directory: Path,
) -> None:
    """pytheme - Keep a local theme in sync with your store."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["directory"] = directory
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pytheme").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.pass_context
def check(ctx: Any) -> None:
    """Check the configuration against the store."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        theme_config = load_config(ctx.obj["directory"])
        with ThemeClient(theme_config) as client:
            ok = client.check_config()
    except ThemeConfigError as e:
        out.error(str(e))
        ctx.exit(1)
    except ThemeAPIError as e:
        out.error(f"API error: {e}")
        ctx.exit(1)

    out.output_json({"ok": ok})
    if ok:
        out.success("Configuration [OK]")
    else:
        out.error("Configuration [FAIL]")
        ctx.exit(1)


@main.command()
@click.argument("api_key")
@click.argument("password")
@click.argument("store")
@click.argument("theme_id", required=False, type=int)
@click.pass_context
def configure(
    ctx: Any, api_key: str, password: str, store: str, theme_id: Optional[int]
) -> None:
    """Write config.yml for the store to connect to.

    The entry is stored under the current git branch.
    """
    out: OutputFormatter = ctx.obj["out"]
    directory: Path = ctx.obj["directory"]
    branch = current_branch(directory)
    theme_config = ThemeConfig(
        api_key=api_key, password=password, store=store, theme_id=theme_id
    )
    try:
        config_path = save_config(directory, theme_config, branch)
    except ThemeConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    out.print_summary(
        "Configuration saved",
        [("Branch", branch), ("Store", store), ("Config file", str(config_path))],
    )
    out.output_json({"branch": branch, "config_file": str(config_path)})


@main.command()
@click.pass_context
def changes(ctx: Any) -> None:
    """Show remote changes since the last import."""
    out: OutputFormatter = ctx.obj["out"]

    def operation(engine: ThemeSync) -> None:
        pending = engine.changes()
        engine.display_changes(pending)
        out.output_json(pending.to_dict())

    _run_operation(ctx, operation)


@main.command()
@click.argument("keys", nargs=-1)
@click.option("--exclude", help="Regular expression of keys to skip")
@click.pass_context
def download(ctx: Any, keys: tuple[str, ...], exclude: Optional[str]) -> None:
    """Download theme assets (all of them if no KEYS are given)."""
    out: OutputFormatter = ctx.obj["out"]
    stats = _run_operation(
        ctx, lambda engine: engine.download(list(keys), exclude=exclude)
    )
    _report_stats(out, stats)


@main.command("import")
@click.pass_context
def import_(ctx: Any) -> None:
    """Download the assets that changed remotely."""
    out: OutputFormatter = ctx.obj["out"]
    stats = _run_operation(ctx, lambda engine: engine.import_changes())
    _report_stats(out, stats)


@main.command()
@click.option("--exclude", help="Regular expression of keys to skip")
@click.pass_context
def init(ctx: Any, exclude: Optional[str]) -> None:
    """Set up sync.json and manifest.json from the store."""
    out: OutputFormatter = ctx.obj["out"]
    stats = _run_operation(ctx, lambda engine: engine.init(exclude=exclude))
    _report_stats(out, stats)


@main.command()
@click.option(
    "--dry-run", is_flag=True, help="Show what would change without changing it"
)
@click.pass_context
def export(ctx: Any, dry_run: bool) -> None:
    """Upload local changes and delete remote files removed locally."""
    out: OutputFormatter = ctx.obj["out"]
    stats = _run_operation(ctx, lambda engine: engine.export(dry_run=dry_run))
    _report_stats(out, stats)


@main.command()
@click.argument("keys", nargs=-1)
@click.option(
    "--force", is_flag=True, help="Upload even if the file did not change"
)
@click.pass_context
def upload(ctx: Any, keys: tuple[str, ...], force: bool) -> None:
    """Upload theme assets (all local files if no KEYS are given)."""
    out: OutputFormatter = ctx.obj["out"]
    stats = _run_operation(ctx, lambda engine: engine.upload(list(keys), force=force))
    _report_stats(out, stats)


@main.command()
@click.argument("keys", nargs=-1)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def replace(ctx: Any, keys: tuple[str, ...], yes: bool) -> None:
    """Completely replace the store's theme assets with the local ones."""
    out: OutputFormatter = ctx.obj["out"]
    if not yes:
        out.warning(REPLACE_WARNING)
        if not click.confirm("Continue?", default=False):
            out.warning("Replace cancelled.")
            return
    stats = _run_operation(ctx, lambda engine: engine.replace(list(keys)))
    _report_stats(out, stats)


@main.command()
@click.argument("keys", nargs=-1, required=True)
@click.pass_context
def remove(ctx: Any, keys: tuple[str, ...]) -> None:
    """Remove theme assets from the store."""
    out: OutputFormatter = ctx.obj["out"]
    stats = _run_operation(ctx, lambda engine: engine.remove(list(keys)))
    _report_stats(out, stats)


@main.command()
@click.option(
    "--keep-files", is_flag=True, help="Do not delete remote files on local deletion"
)
@click.option(
    "--unsafe",
    is_flag=True,
    help="Upload even if the store has changes that were not imported",
)
@click.pass_context
def watch(ctx: Any, keep_files: bool, unsafe: bool) -> None:
    """Upload and delete individual theme assets as they change."""
    out: OutputFormatter = ctx.obj["out"]
    directory: Path = ctx.obj["directory"]

    def operation(engine: ThemeSync) -> None:
        coordinator = WatchCoordinator(
            engine,
            branch_provider=lambda: current_branch(directory),
            allow_drift=unsafe or unsafe_mode_enabled(),
            keep_files=keep_files,
        )
        out.info(f"Watching current folder: {engine.local.root.resolve()}")
        try:
            coordinator.run()
        except KeyboardInterrupt:
            out.warning("\nStopped watching.")

    _run_operation(ctx, operation)


@main.command()
@click.pass_context
def systeminfo(ctx: Any) -> None:
    """Print versions useful for bug reports."""
    out: OutputFormatter = ctx.obj["out"]
    rows = [
        ("Python", platform.python_version()),
        ("Operating System", platform.platform()),
    ]
    for package in ("pytheme", "click", "httpx", "rich", "PyYAML", "watchdog"):
        try:
            version = metadata.version(package)
        except metadata.PackageNotFoundError:
            version = "not installed"
        rows.append((package, version))

    out.print_summary("System information", rows)
    out.output_json(dict(rows))


if __name__ == "__main__":
    main()
