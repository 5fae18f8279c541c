"""Command-line interface for chat-vault."""

import logging
import signal
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path

import click

from . import __version__
from .archive import sort_archives
from .config import load_settings
from .errors import ChatVaultError
from .models import Action, ProgressEvent
from .providers import PROVIDER_NAMES
from .service import ImportService
from .store import ImportProfile

SORT_KEYS = {"updated": "updated_at", "created": "created_at", "title": "title"}


def validate_zip_file(ctx, param, value):
    """Validate that the ZIP file(s) exist and are readable."""
    if isinstance(value, tuple):
        return tuple(validate_zip_file(ctx, param, v) for v in value)
    path = Path(value)
    if not path.exists():
        raise click.BadParameter(f"File not found: {value}")
    if not path.is_file():
        raise click.BadParameter(f"Not a file: {value}")
    if not path.suffix.lower() == ".zip":
        raise click.BadParameter(f"Not a ZIP file: {value}")
    return path


def _report_error(error: ChatVaultError, zipfile: Path | None = None) -> None:
    prefix = f"{zipfile.name}: " if zipfile else ""
    click.echo(f"Error: {prefix}{error.message}", err=True)
    if error.detail:
        click.echo(error.detail, err=True)


def _fail(error: ChatVaultError) -> None:
    _report_error(error)
    sys.exit(1)


def _date(epoch_ms: int) -> str:
    if not epoch_ms:
        return "-"
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def _provider_option(f):
    return click.option(
        "--provider",
        type=click.Choice(["auto", *PROVIDER_NAMES]),
        default="auto",
        help="Chat provider (default: auto-detect)",
    )(f)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--vault",
    "vault_root",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    envvar="CHAT_VAULT_DIR",
    show_envvar=True,
    help="Vault directory (default: current directory)",
)
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    envvar="CHAT_VAULT_STATE_DIR",
    help="Importer state directory (default: <vault>/.chat-vault)",
)
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.pass_context
def main(ctx, vault_root: Path, state_dir: Path | None, verbose: bool):
    """Import ChatGPT and Claude exports into a Markdown vault.

    Each conversation becomes one note. Re-importing an archive only
    rewrites notes whose conversation changed.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = load_settings(vault_root, state_dir)
    except ChatVaultError as e:
        _fail(e)
    ctx.obj = ImportService(settings)


@main.command()
@click.argument("zipfile", callback=validate_zip_file)
@_provider_option
@click.pass_obj
def info(service: ImportService, zipfile: Path, provider: str):
    """Show metadata about a chat export without importing.

    Example:

        chat-vault info export.zip
    """
    try:
        loaded = service.load(zipfile, None if provider == "auto" else provider)
    except ChatVaultError as e:
        _fail(e)

    summaries = loaded.summaries
    click.echo(f"File: {zipfile.name}")
    click.echo(f"Provider: {loaded.provider}")
    click.echo(f"Conversations: {len(summaries)}")
    click.echo(f"Total messages: {sum(s.message_count for s in summaries)}")

    dated = [s.created_at for s in summaries if s.created_at]
    if dated:
        click.echo(f"Date range: {_date(min(dated))} to {_date(max(dated))}")


@main.command(name="list")
@click.argument("zipfile", callback=validate_zip_file)
@_provider_option
@click.option("--filter", "keyword", default="", help="Only show titles or keywords containing this text")
@click.option("--sort", "sort_key", type=click.Choice(list(SORT_KEYS)), default="updated", help="Sort field")
@click.option("--asc", is_flag=True, help="Sort ascending (default: descending)")
@click.pass_obj
def list_chats(service: ImportService, zipfile: Path, provider: str, keyword: str, sort_key: str, asc: bool):
    """List conversations in an export with their import status.

    Selected rows (not globally ignored) are marked with [x].
    """
    try:
        loaded = service.load(zipfile, None if provider == "auto" else provider)
    except ChatVaultError as e:
        _fail(e)

    selection = service.selection(loaded)
    selection.set_filter(keyword)
    selection.set_sort(SORT_KEYS[sort_key], descending=not asc)
    statuses = service.statuses(loaded)

    rows = selection.visible()
    for s in rows:
        mark = "x" if selection.is_selected(s.uid) else " "
        click.echo(
            f"[{mark}] {statuses[s.uid].value:<8} {_date(s.created_at)} {_date(s.updated_at)}  "
            f"{s.title}  ({s.uid})"
        )
    click.echo(f"Showing {len(rows)} of {len(loaded.summaries)} • Selected {len(selection)}")


def _print_progress(event: ProgressEvent) -> None:
    if event.phase in ("scan", "complete", "cancelled", "error"):
        click.echo(f"{event.title}: {event.detail}")


@main.command(name="import")
@click.argument("zipfiles", nargs=-1, callback=validate_zip_file)
@_provider_option
@click.option("--only", "only", multiple=True, help="Import only these conversation ids")
@click.option("--skip", "skip", multiple=True, help="Do not import these conversation ids")
@click.option("--filter", "keyword", default="", help="Only import titles or keywords containing this text")
@click.option("--all", "select_all", is_flag=True, help="Also import ignored conversations")
@click.option("--dry-run", is_flag=True, help="Show the plan without writing anything")
@click.option("--reprocess", is_flag=True, help="Import archives that were already imported")
@click.option(
    "--persist-unselected/--no-persist-unselected",
    default=False,
    help="Remember unselected conversations as ignored",
)
@click.option(
    "--ignore-scope",
    type=click.Choice(["profile", "global"]),
    default="profile",
    help="Where --persist-unselected records ignores",
)
@click.option("--exclude-unselected", is_flag=True, help="Add unselected conversations to the global ignore list")
@click.pass_obj
def import_archives(
    service: ImportService,
    zipfiles: tuple[Path, ...],
    provider: str,
    only: tuple[str, ...],
    skip: tuple[str, ...],
    keyword: str,
    select_all: bool,
    dry_run: bool,
    reprocess: bool,
    persist_unselected: bool,
    ignore_scope: str,
    exclude_unselected: bool,
):
    """Import one or more chat export ZIPs into the vault.

    Archives are processed oldest first, using the export timestamp in
    their file names. Without arguments the last imported archive is used.

    Examples:

        chat-vault --vault ~/notes import export.zip

        chat-vault import export.zip --filter recipe --dry-run

        chat-vault import export.zip --skip 6d1f... --persist-unselected --ignore-scope global
    """
    if not zipfiles:
        last = service.state.last_export_path()
        if not last:
            raise click.UsageError("No archive given and no previous import to repeat.")
        zipfiles = (validate_zip_file(None, None, last),)

    failures = 0

    for zipfile in sort_archives(list(zipfiles)):
        try:
            loaded = service.load(zipfile, None if provider == "auto" else provider)
        except ChatVaultError as e:
            _report_error(e, zipfile)
            failures += 1
            continue

        click.echo(f"Loaded {len(loaded.summaries)} chats from {zipfile.name} ({loaded.provider})")

        if service.is_imported(loaded) and not (reprocess or dry_run):
            click.echo(f"Already processed: {zipfile.name} has already been imported. Use --reprocess to import it again.")
            continue

        selection = service.selection(loaded)
        if select_all:
            selection.select_all()
        if only:
            selection.replace(only)
        for uid in skip:
            selection.remove(uid)
        if keyword:
            selection.set_filter(keyword)
            visible = {s.uid for s in selection.visible()}
            for uid in selection.selected():
                if uid not in visible:
                    selection.remove(uid)

        if exclude_unselected and not dry_run:
            excluded = service.exclude(selection, selection.unselected())
            click.echo(f"Ignored {len(excluded)} unselected conversation(s)")

        if not len(selection):
            click.echo("No chats selected. Import cancelled.")
            continue

        plan = service.plan(loaded, selection.selected())
        for item in plan:
            reason = f" ({item.reason})" if item.reason else ""
            click.echo(f"  {item.action.value:<6} {item.target_path}{reason}")

        if dry_run:
            counts = {a: sum(1 for i in plan if i.action is a) for a in Action}
            click.echo(
                f"Dry run: {counts[Action.NEW]} new, {counts[Action.UPDATE]} to update, "
                f"{counts[Action.SKIP]} unchanged"
            )
            continue

        service.record_selection(loaded, selection, persist_unselected, ignore_scope)

        cancel = threading.Event()
        previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
        try:
            report = service.execute(loaded, plan, progress=_print_progress, cancel=cancel)
        except ChatVaultError as e:
            _fail(e)
        finally:
            signal.signal(signal.SIGINT, previous)

        for entry in report.entries:
            if entry.outcome == "error":
                click.echo(f"Failed {entry.uid}: {entry.message}", err=True)
        failures += report.failed_count

        if report.cancelled:
            break
        service.mark_imported(loaded)

    if failures:
        sys.exit(1)


@main.command()
@click.pass_obj
def imported(service: ImportService):
    """List conversations already written to the vault."""
    records = service.materialized.all()
    for record in records:
        click.echo(f"{_date(record.last_imported_at)}  {record.file_path}  ({record.uid})")
    click.echo(f"{len(records)} imported conversation(s)")


@main.group()
def ignore():
    """Manage the global ignore list."""
    pass


@ignore.command(name="list")
@click.pass_obj
def ignore_list(service: ImportService):
    """Show globally ignored conversation ids."""
    ignored = service.exclusions.list()
    for uid in sorted(ignored):
        click.echo(uid)
    click.echo(f"{len(ignored)} ignored conversation(s)")


@ignore.command(name="add")
@click.argument("uids", nargs=-1, required=True)
@click.pass_obj
def ignore_add(service: ImportService, uids: tuple[str, ...]):
    """Add conversation ids to the global ignore list."""
    service.ignore(uids)
    click.echo(f"Ignored {len(uids)} conversation(s)")


@ignore.command(name="remove")
@click.argument("uids", nargs=-1, required=True)
@click.pass_obj
def ignore_remove(service: ImportService, uids: tuple[str, ...]):
    """Remove conversation ids from the global ignore list."""
    service.exclusions.remove(uids)
    click.echo(f"Removed {len(uids)} conversation(s) from the ignore list")


@ignore.command(name="clear")
@click.confirmation_option(prompt="Clear the global ignore list?")
@click.pass_obj
def ignore_clear(service: ImportService):
    """Empty the global ignore list."""
    service.exclusions.clear()
    click.echo("Ignore list cleared")


@main.group()
def profile():
    """Manage import profiles."""
    pass


@profile.command(name="list")
@click.pass_obj
def profile_list(service: ImportService):
    """List profiles; the active one is marked with *."""
    active = service.active_profile().name
    for name in service.profiles.list():
        click.echo(f"{'*' if name == active else ' '} {name}")


@profile.command(name="show")
@click.argument("name", required=False)
@click.pass_obj
def profile_show(service: ImportService, name: str | None):
    """Show a profile (default: the active one)."""
    prof = service.profiles.get(name) if name else service.active_profile()
    if prof is None:
        click.echo(f"Error: Unknown profile: {name}", err=True)
        sys.exit(1)
    click.echo(f"Name: {prof.name}")
    click.echo(f"Target folder: {prof.target_folder or service.settings.notes_folder}")
    click.echo(f"Filename template: {prof.filename_template or service.settings.filename_template}")
    click.echo(f"Included: {len(prof.include)}")
    click.echo(f"Ignored: {len(prof.ignore)}")


@profile.command(name="save")
@click.argument("name")
@click.option("--folder", default=None, help="Vault-relative folder for notes")
@click.option("--template", default=None, help="Filename template, e.g. '{{date}} {{title}}'")
@click.pass_obj
def profile_save(service: ImportService, name: str, folder: str | None, template: str | None):
    """Create or update a profile."""
    prof = service.profiles.get(name) or ImportProfile(name=name)
    if folder is not None:
        prof.target_folder = folder
    if template is not None:
        prof.filename_template = template
    service.profiles.save(prof)
    click.echo(f"Saved profile: {name}")


@profile.command(name="use")
@click.argument("name")
@click.pass_obj
def profile_use(service: ImportService, name: str):
    """Make a profile active."""
    service.profiles.set_active(name)
    click.echo(f"Active profile: {name}")


@profile.command(name="delete")
@click.argument("name")
@click.pass_obj
def profile_delete(service: ImportService, name: str):
    """Delete a profile."""
    if name not in service.profiles.list():
        click.echo(f"Error: Unknown profile: {name}", err=True)
        sys.exit(1)
    service.profiles.delete(name)
    click.echo(f"Deleted profile: {name}")


if __name__ == "__main__":
    main()
