__all__ = (
    "app",
    "Config",
    "Aggregator",
    "ContentReconciler",
    "MusicSearchService",
    "ContentRepository",
    "SqliteContentRepository",
    "Node",
    "MediaStore",
    "DiscogsClient",
    "SpotifyClient",
    # Data model
    "MediaType",
    "ProviderName",
    "NormalizedResult",
    "NormalizedDetails",
    "TrackInfo",
    # Merge
    "MergeError",
    "MergedRecord",
    "Selection",
    "merge_records",
)

from music_search.aggregator import Aggregator
from music_search.cli import app
from music_search.config import Config
from music_search.media import MediaStore
from music_search.merge import MergedRecord, MergeError, Selection, merge_records
from music_search.models import (
    MediaType,
    NormalizedDetails,
    NormalizedResult,
    ProviderName,
    TrackInfo,
)
from music_search.providers import DiscogsClient, SpotifyClient
from music_search.reconcile import ContentReconciler
from music_search.repository import ContentRepository, Node, SqliteContentRepository
from music_search.service import MusicSearchService
