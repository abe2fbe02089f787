"""
Main CLI entry point for tagstack.

Provides the command-line interface using Click. Every command works on
one tag: the one named on the command line, or the resolver's active tag.
"""

import asyncio as _asyncio
import json as _json
import logging as _logging
import os as _os
import pathlib as _pathlib
import sys as _sys
import typing as _typing

import click as _click
import yaml as _yaml

import tagstack
import tagstack.config as config
import tagstack.config.sources as config_sources
import tagstack.diff as diff
import tagstack.fetcher as fetcher
import tagstack.models as models
import tagstack.storage as storage
import tagstack.stores as stores
import tagstack.tags as tags

# Custom Click context settings for better help formatting
CONTEXT_SETTINGS: dict[str, _typing.Any] = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 100,
}

_KIND_CHOICE = _click.Choice([kind.value for kind in models.EntityKind])


def _run_async(coro: _typing.Coroutine[_typing.Any, _typing.Any, _typing.Any]) -> _typing.Any:
    """Run an async coroutine synchronously."""
    return _asyncio.run(coro)


def _configure_logging(settings: config.Settings, verbose: bool) -> None:
    """Send log records to stderr at the configured (or debug) level."""
    _logging.basicConfig(
        level=_logging.DEBUG if verbose else settings.log_level,
        format=settings.logging.format,
        stream=_sys.stderr,
        force=True,
    )


class _Runtime:
    """Objects every command shares, built lazily from Settings."""

    def __init__(self, settings: config.Settings) -> None:
        self.settings = settings
        self._store: storage.KeyValueStore | None = None
        self._resolver: tags.TagResolver | None = None

    @property
    def store(self) -> storage.KeyValueStore:
        if self._store is None:
            self._store = storage.JsonFileStore(self.settings.storage.resolved_path)
        return self._store

    @property
    def scoped_storage(self) -> storage.ScopedStorage:
        return storage.ScopedStorage(self.store, self.settings.storage.prefix)

    @property
    def resolver(self) -> tags.TagResolver:
        if self._resolver is None:
            tag_settings = self.settings.tags
            self._resolver = tags.TagResolver(
                self.store,
                tag_settings.location,
                query_param=tag_settings.query_param,
                stored_key=tag_settings.stored_key,
                fallback=tag_settings.fallback,
            )
        return self._resolver

    def client(self) -> fetcher.ConfigClient:
        try:
            return fetcher.ConfigClient.from_settings(
                self.settings, self.resolver, self.scoped_storage
            )
        except ValueError as e:
            _click.echo(f"Error: {e}", err=True)
            raise SystemExit(1) from None

    def tag_or_active(self, tag: str | None) -> str:
        if tag is None:
            return self.resolver.get_active_tag()
        sanitized = tags.sanitize_tag(tag)
        if sanitized is None:
            _click.echo(f"Error: Invalid tag: {tag!r}", err=True)
            raise SystemExit(1)
        return sanitized


def _runtime(ctx: _click.Context) -> _Runtime:
    runtime: _Runtime = ctx.obj["runtime"]
    return runtime


def _echo_json(payload: _typing.Any) -> None:
    _click.echo(_json.dumps(payload, indent=2, ensure_ascii=False))


async def _load_stores(
    client: fetcher.ConfigClient,
    tag: str,
    *,
    force: bool = False,
) -> tuple[stores.EventsStore, stores.TipsStore]:
    """Stores pinned to ``tag``, initialized from the composed bundle."""
    events = stores.EventsStore(client, tag=tag, follow_active_tag=False)
    tips = stores.TipsStore(client, tag=tag, follow_active_tag=False)
    await events.initialize_from_config(force)
    await tips.initialize_from_config()
    return events, tips


@_click.group(context_settings=CONTEXT_SETTINGS)
@_click.version_option(tagstack.__version__, "-v", "--version", prog_name="tagstack")
@_click.option(
    "--config-url",
    type=str,
    default=None,
    help="Base URL of the remote documents (overrides fetch.config_url)",
)
@_click.option(
    "--url",
    "page_url",
    type=str,
    default=None,
    help="Page URL the session runs at (overrides tags.url)",
)
@_click.option(
    "--storage",
    "storage_path",
    type=_click.Path(dir_okay=False, path_type=_pathlib.Path),
    default=None,
    help="JSON file holding local overrides (overrides storage.path)",
)
@_click.option("--verbose", is_flag=True, help="Enable debug logging")
@_click.pass_context
def cli(
    ctx: _click.Context,
    config_url: str | None,
    page_url: str | None,
    storage_path: _pathlib.Path | None,
    verbose: bool,
) -> None:
    """tagstack - layered, tag-scoped configuration with local overrides."""
    try:
        settings = config.Settings()
    except config.ConfigFileError as e:
        _click.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from None

    if config_url:
        settings.fetch.config_url = config_url
    if page_url:
        settings.tags.url = page_url
    if storage_path:
        settings.storage.path = str(storage_path)

    _configure_logging(settings, verbose)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["runtime"] = _Runtime(settings)


# =============================================================================
# Config Commands
# =============================================================================


@cli.group()
def config_cmd() -> None:
    """Configuration management commands."""
    pass


# Register config_cmd with the name "config" to avoid shadowing the module
cli.add_command(config_cmd, name="config")


def _should_use_color(cli_flag: bool | None) -> tuple[bool, bool]:
    """Determine whether to use color output.

    Priority:
    1. CLI flag (--color / --no-color) if specified
    2. NO_COLOR env var (if set, disable color)
    3. Auto-detect: color if stdout is a TTY

    Returns:
        Tuple of (color_enabled, force_color).
        force_color is True when color was explicitly requested.
    """
    if cli_flag is not None:
        return (cli_flag, cli_flag)
    if _os.environ.get("NO_COLOR"):
        return (False, False)
    return (_sys.stdout.isatty(), False)


def _print_yaml(yaml_text: str, *, color: bool = True, force_color: bool = False) -> None:
    """Print YAML text, optionally with syntax highlighting."""
    if not color:
        _click.echo(yaml_text, nl=False)
        return

    import rich.console as _rich_console
    import rich.syntax as _rich_syntax

    console = _rich_console.Console(
        force_terminal=force_color,
        no_color=False if force_color else None,
        color_system="truecolor" if force_color else "auto",
    )
    console.print(
        _rich_syntax.Syntax(yaml_text, "yaml", theme="monokai", background_color="default")
    )


@config_cmd.command(name="show")
@_click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@_click.option("--section", type=str, default=None, help="Show specific section only")
@_click.option("--extras", is_flag=True, help="Show unknown keys (possible typos)")
@_click.option(
    "--color/--no-color",
    "use_color",
    default=None,
    help="Enable/disable syntax highlighting (default: auto-detect TTY)",
)
@_click.pass_context
def config_show(
    ctx: _click.Context,
    as_json: bool,
    section: str | None,
    extras: bool,
    use_color: bool | None,
) -> None:
    """Show effective configuration from all sources.

    Examples:
        tagstack config show              # Show all config as YAML
        tagstack config show --json       # Show as JSON
        tagstack config show --extras     # List unknown keys
    """
    settings: config.Settings = ctx.obj["settings"]

    if extras:
        unknown = settings.get_extra_fields()
        if as_json:
            _echo_json(unknown)
        elif not unknown:
            _click.echo("No unknown configuration keys.")
        else:
            for path, value in unknown.items():
                _click.echo(f"  {path}: {value!r}")
        return

    full_config = settings.to_display_dict()
    if section:
        if section not in full_config:
            raise _click.ClickException(f"Unknown section: {section}")
        full_config = {section: full_config[section]}

    if as_json:
        _echo_json(full_config)
    else:
        color_enabled, force_color = _should_use_color(use_color)
        yaml_text = _yaml.safe_dump(full_config, default_flow_style=False, sort_keys=False)
        _print_yaml(yaml_text, color=color_enabled, force_color=force_color)


@config_cmd.command(name="path")
@_click.option("--all", "show_all", is_flag=True, help="Show all paths even if not found")
def config_path(show_all: bool) -> None:
    """Show configuration file paths and their status.

    Examples:
        tagstack config path        # Show existing config files
        tagstack config path --all  # Show all possible paths
    """
    paths = [
        ("Built-in defaults", config_sources.get_builtin_defaults_path()),
        ("User config", config_sources.get_user_config_path()),
    ]

    project_root = config.find_project_root()
    if project_root:
        paths.append(("Project config", config_sources.get_project_config_path(project_root)))

    for name, path in paths:
        exists = path.exists()
        if exists or show_all:
            status = "✓" if exists else "✗"
            _click.echo(f"{status} {name}: {path}")


# =============================================================================
# Tag Commands
# =============================================================================


@cli.group()
def tag_cmd() -> None:
    """Active tag commands."""
    pass


cli.add_command(tag_cmd, name="tag")


@tag_cmd.command(name="show")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def tag_show(ctx: _click.Context, json_output: bool) -> None:
    """Show the active tag and where it could come from."""
    resolver = _runtime(ctx).resolver
    info = {
        "active": resolver.get_active_tag(),
        "query": resolver.get_tag_override(),
        "stored": resolver.stored_tag(),
        "hostname": resolver.hostname_tag(),
        "fallback": resolver.fallback,
    }
    if json_output:
        _echo_json(info)
        return
    _click.echo(f"Active tag: {info['active']}")
    for source in ("query", "stored", "hostname", "fallback"):
        _click.echo(f"  {source}: {info[source] or '-'}")


@tag_cmd.command(name="set")
@_click.argument("tag")
@_click.pass_context
def tag_set(ctx: _click.Context, tag: str) -> None:
    """Remember TAG as the active tag."""
    resolver = _runtime(ctx).resolver
    resolver.set_active_tag(tag)
    _click.echo(f"Active tag: {resolver.get_active_tag()}")


@tag_cmd.command(name="clear")
@_click.pass_context
def tag_clear(ctx: _click.Context) -> None:
    """Forget the remembered active tag."""
    _runtime(ctx).resolver.clear_stored_tag()
    _click.echo("Cleared stored tag.")


# =============================================================================
# Composition Commands
# =============================================================================


@cli.command()
@_click.argument("tag", required=False)
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.option("--force", is_flag=True, help="Bypass caches")
@_click.option(
    "--include-local",
    is_flag=True,
    help="Surface ancestors' stored overrides in the composition",
)
@_click.pass_context
def compose(
    ctx: _click.Context,
    tag: str | None,
    json_output: bool,
    force: bool,
    include_local: bool,
) -> None:
    """Compose TAG's ancestry chain (default: the active deployment's tag)."""
    runtime = _runtime(ctx)
    resolved = runtime.tag_or_active(tag) if tag is not None else None
    client = runtime.client()

    async def run() -> fetcher.TagBundle:
        async with client:
            if resolved is None:
                return await client.fetch_config(force)
            return await client.fetch_composed_for_tag(
                resolved, force, include_local_overrides=include_local
            )

    bundle: fetcher.TagBundle = _run_async(run())

    if json_output:
        _echo_json(bundle.to_dict())
        return
    if bundle.is_empty():
        _click.echo(f"Nothing loaded for tag {bundle.tag}.", err=True)
        raise SystemExit(1)
    _click.echo(f"Tag: {bundle.tag}")
    _click.echo(f"  Ancestry: {' -> '.join(bundle.ancestry)}")
    _click.echo(f"  Events: {len(bundle.events)} ({len(bundle.archived_events)} archived)")
    _click.echo(f"  Tips: {len(bundle.tips)}")
    for name, stamp in bundle.updated.to_dict().items():
        if stamp:
            _click.echo(f"  Updated ({name}): {stamp}")


@cli.command(name="diff")
@_click.argument("tag", required=False)
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def diff_cmd(ctx: _click.Context, tag: str | None, json_output: bool) -> None:
    """Show which records TAG overrides relative to its parent chain."""
    runtime = _runtime(ctx)
    resolved = runtime.tag_or_active(tag)
    client = runtime.client()

    async def run() -> diff.DiffIndex:
        async with client:
            events, tips = await _load_stores(client, resolved)
            return await diff.compute_diff_index_for_tag(client, events.items, tips.items, resolved)

    index: diff.DiffIndex = _run_async(run())

    if json_output:
        _echo_json(index.to_dict())
        return
    if not index.has_parent_chain:
        _click.echo(f"Tag {resolved} has no parent; every record is its own.")
    else:
        _click.echo(f"Tag {resolved} over parent {index.parent_tag}:")
    for kind in models.EntityKind:
        for item_id, info in index.for_kind(kind).items():
            if info.new_in_tag:
                _click.echo(f"  {kind.value} {item_id}: new in tag")
            elif info.override_keys:
                _click.echo(f"  {kind.value} {item_id}: overrides {', '.join(info.override_keys)}")


@cli.command(name="export")
@_click.argument("tag", required=False)
@_click.option(
    "--output",
    "output_dir",
    type=_click.Path(file_okay=False, path_type=_pathlib.Path),
    default=None,
    help="Directory to write conf.json, events.json and tips.json into",
)
@_click.option(
    "--archive",
    "archive_path",
    type=_click.Path(dir_okay=False, path_type=_pathlib.Path),
    default=None,
    help="Zip file bundling the three documents under <tag>/",
)
@_click.pass_context
def export_cmd(
    ctx: _click.Context,
    tag: str | None,
    output_dir: _pathlib.Path | None,
    archive_path: _pathlib.Path | None,
) -> None:
    """Export the documents TAG would publish over its parent chain."""
    if output_dir is None and archive_path is None:
        raise _click.UsageError("Pass --output and/or --archive")

    runtime = _runtime(ctx)
    resolved = runtime.tag_or_active(tag)
    client = runtime.client()

    async def run() -> fetcher.ChildDeltaFiles:
        async with client:
            events, tips = await _load_stores(client, resolved)
            return await fetcher.build_child_delta_files(client, events.items, tips.items, resolved)

    try:
        files: fetcher.ChildDeltaFiles = _run_async(run())
        if output_dir is not None:
            fetcher.write_delta_files(files, output_dir)
        if archive_path is not None:
            archive_path.write_bytes(fetcher.build_delta_archive(files))
    except OSError as e:
        _click.echo(f"Export failed: {e}", err=True)
        raise SystemExit(1) from None

    _click.echo(
        f"Export complete for {resolved}: "
        f"{len(files.events)} event and {len(files.tips)} tip records."
    )


# =============================================================================
# Override Commands
# =============================================================================


@cli.group()
def overrides_cmd() -> None:
    """Local override commands."""
    pass


cli.add_command(overrides_cmd, name="overrides")


@overrides_cmd.command(name="show")
@_click.argument("tag", required=False)
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def overrides_show(ctx: _click.Context, tag: str | None, json_output: bool) -> None:
    """Show TAG's stored override layers."""
    runtime = _runtime(ctx)
    resolved = runtime.tag_or_active(tag)
    scoped = runtime.scoped_storage
    snapshots = {kind.value: scoped.read_snapshot(resolved, kind) for kind in models.EntityKind}

    if json_output:
        _echo_json(
            {
                "tag": resolved,
                **{
                    name: snapshot.to_dict() if snapshot else None
                    for name, snapshot in snapshots.items()
                },
            }
        )
        return

    _click.echo(f"Overrides for {resolved}:")
    for name, snapshot in snapshots.items():
        if snapshot is None or snapshot.is_empty():
            _click.echo(f"  {name}: none")
            continue
        _click.echo(
            f"  {name}: {len(snapshot.overrides_by_id)} overridden, "
            f"{len(snapshot.deleted_ids)} deleted"
            + (" (legacy data pending)" if snapshot.legacy_items is not None else "")
        )


@overrides_cmd.command(name="reset")
@_click.argument("item_id")
@_click.option("--kind", type=_KIND_CHOICE, default="events", help="Record kind")
@_click.option("--tag", "tag", type=str, default=None, help="Tag (default: active tag)")
@_click.pass_context
def overrides_reset(ctx: _click.Context, item_id: str, kind: str, tag: str | None) -> None:
    """Replace ITEM_ID with its parent chain's version."""
    runtime = _runtime(ctx)
    resolved = runtime.tag_or_active(tag)
    client = runtime.client()

    async def run() -> bool:
        async with client:
            events, tips = await _load_stores(client, resolved)
            store = events if kind == models.EntityKind.EVENTS.value else tips
            return await store.reset_item_overrides(item_id)

    if not _run_async(run()):
        _click.echo(f"Nothing to reset: {item_id} has no parent version in {resolved}.", err=True)
        raise SystemExit(1)
    _click.echo(f"Reset {kind} {item_id} to its parent version in {resolved}.")


@overrides_cmd.command(name="clear")
@_click.argument("tag", required=False)
@_click.option("--kind", type=_KIND_CHOICE, default=None, help="Only clear one kind")
@_click.option("--yes", is_flag=True, help="Skip confirmation")
@_click.pass_context
def overrides_clear(ctx: _click.Context, tag: str | None, kind: str | None, yes: bool) -> None:
    """Discard TAG's stored overrides."""
    runtime = _runtime(ctx)
    resolved = runtime.tag_or_active(tag)
    kinds = [models.EntityKind(kind)] if kind else list(models.EntityKind)

    if not yes and not _click.confirm(f"Discard local overrides for {resolved}?"):
        _click.echo("Cancelled.")
        return

    scoped = runtime.scoped_storage
    for entity_kind in kinds:
        scoped.remove_snapshot(resolved, entity_kind)
    _click.echo(f"Cleared {', '.join(k.value for k in kinds)} overrides for {resolved}.")


def main() -> None:
    """Main entry point with correct program name."""
    cli(prog_name="tagstack")


if __name__ == "__main__":
    main()
