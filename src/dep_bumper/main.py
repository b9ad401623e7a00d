import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import click
from rich.console import Console

from .cli_config import GROUP_BY_CHOICES, create_sample_config, load_config
from .commit_sequence import (
    GROUP_BY_FUNCTIONS,
    CommitMessageContext,
    CommitOptions,
    CommitRecord,
    compose,
    default_commit_message,
    execute,
    report,
    summarize,
    task_hook,
)
from .error_handling import setup_error_handling
from .file_update import collect_file_changes, write_all
from .import_map import find_config_up
from .module_graph import SCRIPT_EXTENSIONS
from .reporting import UpdateReporter, write_report, write_summary
from .structured_logging import clear_run_context, configure_logging, set_run_context
from .update import Update
from .update_collector import CollectOptions, collect
from .version_resolver import ResolverContext

__version__ = "1.0.0"

console = Console()
error_console = Console(stderr=True)


def ensure_script_files(paths: Sequence[str]) -> None:
    """Reject entrypoints that are not JavaScript or TypeScript files."""
    errors = []
    for path in paths:
        suffix = Path(path).suffix
        if not suffix or suffix not in SCRIPT_EXTENSIONS:
            errors.append(f'file must be javascript or typescript: "{path}"')
    if errors:
        raise click.BadParameter("; ".join(errors), param_hint="ENTRYPOINTS")


async def async_collect_updates(
    entrypoints: Sequence[str], import_map: Optional[str] = None
) -> List[Update]:
    """Collect updates for each entrypoint, sharing one resolver."""
    updates: List[Update] = []
    async with ResolverContext() as resolver:
        for entrypoint in entrypoints:
            map_path = import_map or find_config_up(entrypoint)
            updates.extend(
                await collect(
                    [entrypoint],
                    CollectOptions(import_map=map_path, resolver=resolver),
                )
            )
    # Entrypoints may share modules
    return list(dict.fromkeys(updates))


def _write_text(path: Optional[str], content: str) -> None:
    if path:
        Path(path).write_text(content, encoding="utf-8")
        console.print(f"📄 {path}")


def _setup(verbose: bool) -> None:
    config = load_config()
    log_level = "INFO" if verbose else config.logging.log_level
    configure_logging(log_level)
    setup_error_handling(getattr(logging, log_level, logging.WARNING))


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    📦 Dep-Bumper: update dependencies pinned in import specifiers

    Finds newer releases of URL and registry imports (https:, npm:, jsr:)
    and rewrites the specifiers in place, optionally as one git commit per
    dependency.
    """
    if version:
        console.print(f"Dep-Bumper version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


_entrypoints_argument = click.argument(
    "entrypoints",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, readable=True, dir_okay=False),
)
_import_map_option = click.option(
    "--import-map",
    type=click.Path(exists=True, readable=True, dir_okay=False),
    help="Import map file (default: nearest deno.json)",
)


@cli.command()
@_entrypoints_argument
@_import_map_option
@click.option("--verbose", "-v", is_flag=True, help="Log resolution events")
def check(entrypoints: Tuple[str, ...], import_map: Optional[str], verbose: bool) -> None:
    """
    Check for the latest version of dependencies.

    Examples:

      dep-bumper check mod.ts
    """
    ensure_script_files(entrypoints)
    _setup(verbose)
    try:
        updates = asyncio.run(async_collect_updates(entrypoints, import_map))
    except Exception as e:
        error_console.print(f"❌ Error: {str(e)}", style="red")
        sys.exit(1)
    UpdateReporter(console).print_updates(updates)


@cli.command()
@_entrypoints_argument
@_import_map_option
@click.option("--commit", is_flag=True, help="Commit changes to git")
@click.option(
    "--pre-commit",
    multiple=True,
    help="Command to run before each commit (repeatable)",
)
@click.option(
    "--post-commit",
    multiple=True,
    help="Command to run after each commit (repeatable)",
)
@click.option("--prefix", help="Prefix for commit messages (default from config)")
@click.option(
    "--group-by",
    type=click.Choice(GROUP_BY_CHOICES, case_sensitive=False),
    help="How to group updates into commits (default from config)",
)
@click.option("--summary", type=click.Path(dir_okay=False), help="Write a summary of changes to file")
@click.option("--report", "report_file", type=click.Path(dir_okay=False), help="Write a report of changes to file")
@click.option("--verbose", "-v", is_flag=True, help="Log resolution events")
def update(
    entrypoints: Tuple[str, ...],
    import_map: Optional[str],
    commit: bool,
    pre_commit: Tuple[str, ...],
    post_commit: Tuple[str, ...],
    prefix: Optional[str],
    group_by: Optional[str],
    summary: Optional[str],
    report_file: Optional[str],
    verbose: bool,
) -> None:
    """
    Update dependencies to the latest version.

    Examples:

      dep-bumper update mod.ts

      dep-bumper update mod.ts --commit --pre-commit "deno test"
    """
    ensure_script_files(entrypoints)
    if (pre_commit or post_commit or prefix or group_by) and not commit:
        raise click.UsageError("--pre-commit, --post-commit, --prefix and --group-by require --commit")

    _setup(verbose)
    config = load_config()
    run_id = f"update_{int(time.time())}"
    set_run_context(run_id, entrypoints=len(entrypoints))

    try:
        updates = asyncio.run(async_collect_updates(entrypoints, import_map))
        reporter = UpdateReporter(console)
        reporter.print_updates(updates)
        if not updates:
            return

        console.print()
        if not commit:
            write_all(
                collect_file_changes(updates),
                on_write=lambda change: reporter.print_written(change.location),
            )
            if summary or report_file:
                console.print()
            _write_text(summary, write_summary(updates))
            _write_text(report_file, write_report(updates))
            return

        final_prefix = prefix if prefix is not None else config.commit.prefix
        pre_commands = list(pre_commit) or config.commit.pre_commit
        post_commands = list(post_commit) or config.commit.post_commit

        def announce_pre(record: CommitRecord) -> None:
            console.print(f"\n💾 {record.message}")

        def announce_post(record: CommitRecord) -> None:
            console.print(f"📝 {record.message}")

        def compose_message(context: CommitMessageContext) -> str:
            return default_commit_message(context, final_prefix)

        sequence = compose(
            updates,
            CommitOptions(
                group_by=GROUP_BY_FUNCTIONS[(group_by or config.commit.group_by).lower()],
                compose_commit_message=compose_message,
                pre_commit=task_hook(pre_commands, announce_pre) if pre_commands else None,
                post_commit=task_hook(post_commands, announce_post),
            ),
        )
        asyncio.run(execute(sequence))
        console.print()
        reporter.print_sequence(sequence)

        if summary or report_file:
            console.print()
        _write_text(summary, summarize(sequence, final_prefix))
        _write_text(report_file, report(sequence))

    except KeyboardInterrupt:
        error_console.print("\n⚠️  Update interrupted by user", style="yellow")
        sys.exit(130)
    except Exception as e:
        error_console.print(f"❌ Error: {str(e)}", style="red")
        sys.exit(1)
    finally:
        clear_run_context()


@cli.command()
def info():
    """Show supported specifier schemes and registries."""
    config = load_config()
    console.print(f"[bold blue]Dep-Bumper[/bold blue] v{__version__}\n")
    console.print("[bold]Supported specifiers:[/bold]")
    console.print(f"  npm:<name>@<version>    → {config.network.registry_urls['npm']}")
    console.print(f"  jsr:<name>@<version>    → {config.network.registry_urls['jsr']}")
    console.print("  https://<host>/<name>@<version>/...  → redirect probing")
    console.print("\nVersion ranges (^1.0.0, >=2 <3) and prereleases are never bumped.")


@cli.group()
def config():
    """Manage configuration settings."""


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=".dep-bumper.json",
    show_default=True,
    help="Path for the configuration file",
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)
    if config_path.exists() and not force:
        console.print(f"⚠️  Config file already exists at {config_path}", style="yellow")
        console.print("Use --force to overwrite", style="dim")
        return

    try:
        config_path.write_text(create_sample_config(), encoding="utf-8")
        console.print(f"✅ Created configuration file at {config_path}", style="green")
    except OSError as e:
        console.print(f"❌ Failed to create config file: {e}", style="red")
        sys.exit(1)


@config.command("show")
def config_show():
    """Show current configuration."""
    current_config = load_config()
    console.print("\n[bold cyan]🔎 Resolve Settings:[/bold cyan]")
    console.print(f"  Max Concurrent: {current_config.resolve.max_concurrent}")
    console.print(f"  Rate Limit: {current_config.resolve.rate_limit} req/s")
    console.print(f"  Timeout: {current_config.resolve.timeout_seconds}s")

    console.print("\n[bold cyan]🌐 Registries:[/bold cyan]")
    for name, url in current_config.network.registry_urls.items():
        console.print(f"  {name}: {url}")

    console.print("\n[bold cyan]📝 Commits:[/bold cyan]")
    console.print(f"  Prefix: {current_config.commit.prefix!r}")
    console.print(f"  Group By: {current_config.commit.group_by}")
    console.print(f"  Pre-commit: {', '.join(current_config.commit.pre_commit) or '-'}")
    console.print(f"  Post-commit: {', '.join(current_config.commit.post_commit) or '-'}")

    console.print("\n[bold cyan]📋 Logging:[/bold cyan]")
    console.print(f"  Level: {current_config.logging.log_level}")


def main():
    cli()


if __name__ == "__main__":
    main()
