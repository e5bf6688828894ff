"""CLI for music-search using Typer and Rich.

Search Spotify and Discogs side by side, inspect details, and turn picked
results into content nodes.
"""

from __future__ import annotations

import json
import logging
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console

from music_search.config import Config
from music_search.console import (
    print as cprint,
)
from music_search.console import (
    print_error,
    print_success,
    print_table,
    print_warning,
    set_console,
    status,
)
from music_search.merge import MergeError, comparison_rows
from music_search.models import MediaType, NormalizedDetails
from music_search.safe_logging import configure_safe_logging
from music_search.service import MusicSearchService


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    TEXT = "text"
    JSON = "json"


class ExitCode:
    """Standard exit codes for CLI commands."""

    SUCCESS = 0
    ERROR = 1
    NO_RESULTS = 2


app = typer.Typer(
    name="music-search",
    help="Search Spotify and Discogs and create artist, album and song content",
    no_args_is_help=True,
    add_completion=False,
)


# Global state (set by callback)
class AppState:
    """Global application state passed between commands."""

    config: Config
    output_format: OutputFormat
    verbose: int


state = AppState()


def _service() -> MusicSearchService:
    return MusicSearchService.from_config(state.config)


def _echo_json(data: Any) -> None:
    # Plain echo: Rich would wrap long lines and break the JSON
    typer.echo(json.dumps(data, indent=2, default=str))


def _parse_pick(value: str) -> tuple[str, str]:
    provider, sep, item_id = value.partition(":")
    if not sep or not provider or not item_id:
        raise typer.BadParameter(f"Expected PROVIDER:ID, got {value!r}")
    return provider.lower(), item_id


def _parse_choice(value: str) -> tuple[str, str]:
    field_name, sep, provider = value.partition("=")
    if not sep or not field_name or not provider:
        raise typer.BadParameter(f"Expected FIELD=PROVIDER, got {value!r}")
    return field_name, provider.lower()


@app.callback()
def main(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help="Path to configuration TOML file", exists=True),
    ] = None,
    output: Annotated[
        OutputFormat,
        typer.Option("--output", "-o", help="Output format"),
    ] = OutputFormat.TEXT,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity"),
    ] = 0,
) -> None:
    """music-search: multi-provider music metadata search and content creation."""
    logger = logging.getLogger(__name__)

    cfg = Config.load(config_path)

    # CLI flag takes precedence over the config file
    if verbose >= 2:
        log_level = logging.DEBUG
    elif verbose == 1:
        log_level = logging.INFO
    else:
        log_level = getattr(logging, cfg.logging.level.upper(), logging.WARNING)

    configure_safe_logging(level=log_level, format_string=cfg.logging.format)
    set_console(Console())

    # Suppress external library logging unless very verbose (-vvv)
    if verbose < 3:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    if config_path:
        logger.info(f"Loaded config from {config_path}")

    state.config = cfg
    state.output_format = output
    state.verbose = verbose


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query")],
    media_type: Annotated[
        MediaType,
        typer.Option("--type", "-t", help="What to search for"),
    ] = MediaType.ARTIST,
) -> None:
    """Search every provider and show the results per provider."""
    service = _service()
    try:
        with status(f"Searching for {query!r}..."):
            results = service.search_all(query, media_type)
    finally:
        service.close()

    if state.output_format == OutputFormat.JSON:
        _echo_json({name: [r.as_dict() for r in items] for name, items in results.items()})
    else:
        for name, items in results.items():
            if not items:
                print_warning(f"No {media_type} results from {name.capitalize()}")
                continue
            if media_type == MediaType.ARTIST:
                print_table(
                    name.capitalize(),
                    ("ID", "Name", "Genres"),
                    [(r.id, r.name, ", ".join(r.genres) or None) for r in items],
                )
            else:
                print_table(
                    name.capitalize(),
                    ("ID", "Name", "Artist", "Year"),
                    [(r.id, r.name, r.artist, r.year) for r in items],
                )

    if not any(results.values()):
        raise typer.Exit(code=ExitCode.NO_RESULTS)


def _print_details(details: NormalizedDetails) -> None:
    rows = []
    for key, value in details.as_dict().items():
        if key == "tracklist" or value in (None, [], ""):
            continue
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        rows.append((key, value))
    print_table(f"{details.provider.capitalize()} {details.id}", ("Field", "Value"), rows)

    if details.tracklist:
        print_table(
            "Tracklist",
            ("#", "Title", "Length"),
            [(t.position, t.title, t.length) for t in details.tracklist],
        )


@app.command()
def details(
    provider: Annotated[str, typer.Argument(help="Provider name (spotify or discogs)")],
    item_id: Annotated[str, typer.Argument(help="Provider-specific item ID")],
    media_type: Annotated[
        MediaType,
        typer.Option("--type", "-t", help="Item type"),
    ] = MediaType.ARTIST,
) -> None:
    """Show normalized details for one provider item."""
    service = _service()
    try:
        result = service.get_details(provider.lower(), item_id, media_type)
    finally:
        service.close()

    if result is None:
        print_error(f"No details for {provider}:{item_id}")
        raise typer.Exit(code=ExitCode.NO_RESULTS)

    if state.output_format == OutputFormat.JSON:
        _echo_json(result.as_dict())
    else:
        _print_details(result)


@app.command()
def create(
    picks: Annotated[
        list[str],
        typer.Argument(help="One or more PROVIDER:ID picks (e.g. spotify:3WrFJ7ztbogyGnTHbHJFl2)"),
    ],
    media_type: Annotated[
        MediaType,
        typer.Option("--type", "-t", help="Content type to create"),
    ] = MediaType.ARTIST,
    pick: Annotated[
        list[str] | None,
        typer.Option("--pick", "-p", help="Field source as FIELD=PROVIDER (repeatable)"),
    ] = None,
) -> None:
    """Fetch details, merge the chosen fields and create content."""
    parsed_picks = [_parse_pick(value) for value in picks]
    choices = dict(_parse_choice(value) for value in pick or [])

    service = _service()
    try:
        with status("Fetching details..."):
            selections = service.select(parsed_picks, media_type)

        if not selections:
            print_error("None of the picked items could be fetched")
            raise typer.Exit(code=ExitCode.ERROR)

        if len(selections) == 1 and not choices:
            record = next(iter(selections.values())).details.as_record()
        else:
            if state.output_format == OutputFormat.TEXT:
                print_table(
                    "Comparison",
                    ("Field", *(name.capitalize() for name in selections)),
                    [(name, *values) for name, values in comparison_rows(selections)],
                )
            try:
                record = service.merge(selections, media_type, choices).as_record()
            except MergeError as e:
                print_error(str(e))
                raise typer.Exit(code=ExitCode.ERROR) from e

        node = service.create_content(record, media_type)
    finally:
        service.close()

    if node is None:
        print_error(f"Failed to create {media_type} content")
        raise typer.Exit(code=ExitCode.ERROR)

    if state.output_format == OutputFormat.JSON:
        _echo_json({"nid": node.id, "bundle": node.bundle, "title": node.title})
    else:
        print_success(f"Created {node.bundle}: {node.title} (nid: {node.id})")


if __name__ == "__main__":
    app()
