"""Command-line interface for VMBackup."""

import sys
import json
import click
from typing import Optional

from .config import Config
from .backup_engine import BackupEngine
from .exceptions import BackupError, ConfigurationError, EnumerationError
from .models import ResourceStatus
from .storage_manager import StorageManager
from .utils import NotificationManager
from .vm_manager import VMManager


EXIT_FATAL = 2

STATUS_LABELS = {
    ResourceStatus.BACKED_UP: "BACKED UP",
    ResourceStatus.UNCHANGED: "UNCHANGED",
    ResourceStatus.PENDING: "PENDING",
    ResourceStatus.NOT_STOPPED: "NOT STOPPED",
    ResourceStatus.EXCLUDED: "EXCLUDED",
    ResourceStatus.DATA_UNAVAILABLE: "NO DATA",
    ResourceStatus.FAILED: "FAILED",
}


def load_settings(config_file: Optional[str]):
    """Load and validate configuration, exiting on error."""
    try:
        return Config(config_file).settings()
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_FATAL)


def make_notifier(ctx, quiet: bool = False) -> NotificationManager:
    """Build the notification manager; quiet disables console logging."""
    settings = ctx.obj['settings']
    level = 'DEBUG' if ctx.obj['verbose'] else settings.log_level
    return NotificationManager(level, settings.log_console and not quiet, settings.log_file)


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False),
              help='Path to configuration file')
@click.option('--verbose', '-v', is_flag=True,
              help='Enable verbose output')
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """VMBackup - versioned backups of stopped virtual machines.

    Backs up every stopped VM whose disks changed since its newest version,
    then keeps only the configured number of versions per VM.
    """
    ctx.ensure_object(dict)
    ctx.obj['settings'] = load_settings(config)
    ctx.obj['verbose'] = verbose


@cli.command()
@click.option('--dry-run', is_flag=True, help='Only report which VMs would be backed up')
@click.option('--json', 'output_json', is_flag=True, help='Output the run summary as JSON')
@click.pass_context
def run(ctx, dry_run: bool, output_json: bool):
    """Back up all changed, stopped VMs."""
    settings = ctx.obj['settings']
    notifier = make_notifier(ctx, quiet=output_json)

    try:
        engine = BackupEngine(settings, notifier)
    except BackupError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_FATAL)

    summary = engine.run(dry_run=dry_run)

    if output_json:
        click.echo(json.dumps(summary.to_dict(), indent=2))
    else:
        click.echo("\n📋 Backup Summary:")
        click.echo("-" * 80)
        click.echo(f"{'VM':<25} {'Status':<12} {'Version':<22} {'Detail'}")
        click.echo("-" * 80)
        for result in summary.results:
            label = STATUS_LABELS[result.status]
            detail = result.detail or ""
            if result.pruned:
                detail = f"pruned {len(result.pruned)}" + (f"; {detail}" if detail else "")
            click.echo(f"{result.vm_name[:24]:<25} {label:<12} {result.version or '-':<22} {detail}")
        if summary.orphans_removed:
            click.echo(f"\nRemoved {summary.orphans_removed} orphaned staging directories")
        if summary.fatal_error:
            click.echo(f"\n❌ Run aborted: {summary.fatal_error}")

    sys.exit(summary.exit_code)


@cli.command()
@click.option('--json', 'output_json', is_flag=True, help='Output in JSON format')
@click.pass_context
def vms(ctx, output_json: bool):
    """List VMs and whether they are eligible for backup."""
    settings = ctx.obj['settings']
    notifier = make_notifier(ctx, quiet=output_json)

    try:
        vm_manager = VMManager(settings, notifier)
        all_vms = vm_manager.list_vms()
    except (ConfigurationError, EnumerationError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_FATAL)

    rows = [
        {
            "name": vm.name,
            "state": vm.state.value,
            "selected": vm_manager.is_selected(vm.name),
            "eligible": vm.is_stopped and vm_manager.is_selected(vm.name),
        }
        for vm in all_vms
    ]

    if output_json:
        click.echo(json.dumps(rows, indent=2))
        return

    if not rows:
        click.echo("No VMs found.")
        return

    click.echo(f"\n🖥️  Virtual Machines ({vm_manager.platform.platform_name}):")
    click.echo("-" * 60)
    for row in rows:
        eligible = "yes" if row["eligible"] else "no"
        selected = "" if row["selected"] else " (excluded)"
        click.echo(f"  {row['name']:<30} {row['state']:<10} eligible: {eligible}{selected}")


@cli.command()
@click.argument('vm_name', required=False)
@click.option('--json', 'output_json', is_flag=True, help='Output in JSON format')
@click.pass_context
def versions(ctx, vm_name: Optional[str], output_json: bool):
    """List committed versions, for one VM or all of them."""
    settings = ctx.obj['settings']
    storage = StorageManager(settings, make_notifier(ctx, quiet=output_json))

    names = [vm_name] if vm_name else storage.list_vm_directories()
    rows = [row for name in names for row in storage.describe_versions(name)]

    if output_json:
        click.echo(json.dumps(rows, indent=2))
        return

    if not rows:
        click.echo("No versions found.")
        return

    click.echo(f"\n📦 Versions in {settings.backup_root}:")
    click.echo("-" * 60)
    click.echo(f"{'VM':<25} {'Version':<22} {'Size':<10}")
    click.echo("-" * 60)
    for row in rows:
        click.echo(f"{row['vm'][:24]:<25} {row['version']:<22} {row['size_human']:<10}")


@cli.command()
@click.option('--dry-run', is_flag=True, help='Show what would be deleted without actually deleting')
@click.pass_context
def cleanup(ctx, dry_run: bool):
    """Remove staging directories left by interrupted runs."""
    storage = StorageManager(ctx.obj['settings'], make_notifier(ctx))

    if dry_run:
        orphans = storage.find_orphans()
        if not orphans:
            click.echo("No orphaned staging directories.")
        for orphan in orphans:
            click.echo(f"  - {orphan}")
        return

    removed = storage.cleanup_orphans()
    click.echo(f"🧹 Removed {removed} orphaned staging directories")


@cli.command()
@click.argument('vm_name', required=False)
@click.option('--keep', type=click.IntRange(min=1), help='Versions to keep (default: backup.max_versions)')
@click.pass_context
def prune(ctx, vm_name: Optional[str], keep: Optional[int]):
    """Apply the retention limit without creating new versions."""
    storage = StorageManager(ctx.obj['settings'], make_notifier(ctx))

    names = [vm_name] if vm_name else storage.list_vm_directories()
    total = 0
    for name in names:
        deleted = storage.prune(name, keep)
        total += len(deleted)
        for version in deleted:
            click.echo(f"  - {name}/{version}")

    click.echo(f"🧹 Deleted {total} old versions")


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == '__main__':
    main()
