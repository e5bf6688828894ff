"""
Service facade: search, details, comparison and content creation.

This is the surface the CLI (and any other front end) talks to. All
collaborators are injected; `from_config` wires the default stack.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from music_search.aggregator import Aggregator
from music_search.media import MediaStore
from music_search.merge import MergedRecord, Selection, merge_records
from music_search.models import MediaType, NormalizedDetails, NormalizedResult
from music_search.providers.factory import providers_from_config
from music_search.reconcile import ContentReconciler
from music_search.repository import Node, SqliteContentRepository

if TYPE_CHECKING:
    from music_search.config import Config

log = logging.getLogger(__name__)


class MusicSearchService:
    def __init__(
        self,
        aggregator: Aggregator,
        reconciler: ContentReconciler,
        media: MediaStore | None = None,
    ):
        self.aggregator = aggregator
        self.reconciler = reconciler
        self.media = media

    @classmethod
    def from_config(cls, config: Config) -> MusicSearchService:
        """Wire providers, the SQLite repository, media store and member lookup."""
        aggregator = Aggregator(providers_from_config(config), parallel=config.providers.parallel)
        repository = SqliteContentRepository(config.content.database_path)
        media = MediaStore(
            repository,
            config.content.media_directory,
            timeout_s=config.providers.timeout_s,
        )
        reconciler = ContentReconciler(
            repository,
            media=media,
            member_lookup=aggregator.find_band_members,
            genre_vocabulary=config.content.genre_vocabulary,
        )
        return cls(aggregator, reconciler, media=media)

    def search_all(self, query: str, media_type: MediaType | str) -> dict[str, list[NormalizedResult]]:
        return self.aggregator.search_all(query, media_type)

    def get_details(self, provider: str, item_id: str, media_type: MediaType | str) -> NormalizedDetails | None:
        return self.aggregator.get_details(provider, item_id, media_type)

    def select(self, picks: Sequence[tuple[str, str]], media_type: MediaType | str) -> dict[str, Selection]:
        """
        Fetch details for (provider, id) picks.

        Picks whose details cannot be fetched are dropped (and logged). A
        provider picked twice keeps its last pick.
        """
        selections: dict[str, Selection] = {}
        for provider, item_id in picks:
            details = self.get_details(provider, item_id, media_type)
            if details is None:
                log.warning(f"No details for {provider}:{item_id}, skipping")
                continue
            selections[provider] = Selection(provider=provider, id=item_id, details=details)
        return selections

    def merge(
        self,
        selections: Mapping[str, Selection],
        media_type: MediaType | str,
        choices: Mapping[str, str] | None = None,
    ) -> MergedRecord:
        """Merge per-field choices; raises MergeError on an invalid choice."""
        return merge_records(selections, media_type, choices)

    def create_content(self, record: Mapping[str, Any], media_type: MediaType | str) -> Node | None:
        """Materialize a record as content; None on failure."""
        return self.reconciler.materialize(record, media_type)

    def close(self) -> None:
        self.aggregator.close()
        if self.media is not None:
            self.media.close()

    def __enter__(self) -> MusicSearchService:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
