"""
Comparison and merge of detail records from several providers.

A human picks, per displayed field, which provider's value to keep. Only
providers with a non-empty value for a field are selectable, and every
contributing provider's `{provider}_id` is carried into the merged record
regardless of which fields were picked.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from music_search.models import MediaType, NormalizedDetails

EMPTY_MARKERS = ("", "-", "null")

# Rows shown in the side-by-side comparison table
DISPLAY_FIELDS = (
    "name",
    "artist",
    "album",
    "year",
    "genres",
    "length",
    "image",
    "profile",
    "website",
)


class MergeError(ValueError):
    """A field choice names a provider that cannot supply that field."""


@dataclass(frozen=True)
class CompareField:
    """A field offered for per-provider selection."""

    field: str
    label: str
    required: bool = False


COMPARE_FIELDS: dict[MediaType, tuple[CompareField, ...]] = {
    MediaType.ARTIST: (
        CompareField("name", "Artist Name", required=True),
        CompareField("image", "Image"),
        CompareField("profile", "Description"),
        CompareField("website", "Website"),
        CompareField("genres", "Genres"),
    ),
    MediaType.ALBUM: (
        CompareField("name", "Album Name", required=True),
        CompareField("artist", "Artist Name"),
        CompareField("year", "Release Year"),
        CompareField("image", "Cover Image"),
        CompareField("genres", "Genres"),
    ),
    MediaType.SONG: (
        CompareField("name", "Song Title", required=True),
        CompareField("artist", "Artist Name"),
        CompareField("album", "Album Name"),
        CompareField("length", "Length"),
    ),
}


def compare_fields(media_type: MediaType | str) -> list[CompareField]:
    """Fields to compare for a content type."""
    return list(COMPARE_FIELDS[MediaType(media_type)])


def is_empty(value: Any) -> bool:
    """
    Whether a field value counts as "no value".

    None, "", "-", the literal "null", whitespace-only strings and empty
    collections are all empty.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() in EMPTY_MARKERS
    if isinstance(value, list | tuple | dict | set):
        return len(value) == 0
    return False


def format_field_value(value: Any, field_name: str, short: bool = False) -> str:
    """Format a field value for display in the comparison."""
    if isinstance(value, list | tuple):
        text = ", ".join(str(v) for v in value)
    elif field_name == "image":
        return "[Image Available]"
    else:
        text = str(value)

    if short and len(text) > 50:
        return text[:50] + "..."
    return text


@dataclass
class Selection:
    """One provider's detail record chosen for comparison."""

    provider: str
    id: str
    details: NormalizedDetails

    def value(self, field_name: str) -> Any:
        return self.details.as_dict().get(field_name)


@dataclass(frozen=True)
class FieldOption:
    """A selectable source for one field."""

    provider: str
    value: Any
    display: str


@dataclass
class MergedRecord:
    """Result of a per-field merge, ready for reconciliation."""

    type: MediaType
    fields: dict[str, Any] = field(default_factory=dict)
    provider_ids: dict[str, str] = field(default_factory=dict)
    members: list[str] = field(default_factory=list)

    def as_record(self) -> dict[str, Any]:
        record: dict[str, Any] = dict(self.fields)
        record.update(self.provider_ids)
        record["type"] = self.type.value
        if self.members:
            record["members"] = list(self.members)
        return record


def field_options(
    selections: Mapping[str, Selection],
    media_type: MediaType | str,
) -> dict[str, list[FieldOption]]:
    """
    Selectable sources per field.

    Fields where no provider has a non-empty value are left out entirely.
    Option order follows provider iteration order; the first option is the
    default choice.
    """
    options: dict[str, list[FieldOption]] = {}
    for compare_field in compare_fields(media_type):
        name = compare_field.field
        field_opts = [
            FieldOption(
                provider=key,
                value=value,
                display=f"{selection.provider.capitalize()}: {format_field_value(value, name)}",
            )
            for key, selection in selections.items()
            if not is_empty(value := selection.value(name))
        ]
        if field_opts:
            options[name] = field_opts
    return options


def merge_records(
    selections: Mapping[str, Selection],
    media_type: MediaType | str,
    choices: Mapping[str, str] | None = None,
) -> MergedRecord:
    """
    Merge field-level choices from several providers into one record.

    Args:
        selections: Selections keyed by provider name
        media_type: artist, album or song
        choices: Field name -> provider name. Fields without a choice take
            the first selectable provider.

    Returns:
        MergedRecord carrying every provider's `{provider}_id`

    Raises:
        MergeError: A choice names a provider with no value for that field
    """
    kind = MediaType(media_type)
    choices = dict(choices or {})
    options = field_options(selections, kind)

    known_fields = {f.field for f in compare_fields(kind)}
    unknown = set(choices) - known_fields
    if unknown:
        raise MergeError(f"Unknown field(s) for {kind}: {', '.join(sorted(unknown))}")

    merged = MergedRecord(type=kind)

    for name, field_opts in options.items():
        chosen = choices.get(name)
        if chosen is None:
            option = field_opts[0]
        else:
            option = next((o for o in field_opts if o.provider == chosen), None)
            if option is None:
                available = ", ".join(o.provider for o in field_opts)
                raise MergeError(f"{chosen!r} has no value for {name!r} (choose from: {available})")
        merged.fields[name] = option.value

    for choice_field, chosen in choices.items():
        if choice_field not in options:
            raise MergeError(f"No provider has a value for {choice_field!r} (chose {chosen!r})")

    for selection in selections.values():
        merged.provider_ids[f"{selection.provider}_id"] = selection.id

    if kind == MediaType.ARTIST:
        for selection in selections.values():
            if selection.details.members:
                merged.members = list(selection.details.members)
                break

    return merged


def comparison_rows(selections: Mapping[str, Selection]) -> list[tuple[str, list[str]]]:
    """
    Rows of the side-by-side comparison table.

    Each row is (field name, display value per selection). Rows where every
    provider's value is empty are skipped.
    """
    rows = []
    for name in DISPLAY_FIELDS:
        values = [selection.value(name) for selection in selections.values()]
        if all(is_empty(v) for v in values):
            continue
        rows.append(
            (
                name,
                ["-" if is_empty(v) else format_field_value(v, name, short=True) for v in values],
            )
        )
    return rows
