"""Genre term deduplication against the content repository."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from music_search.repository import ContentRepository

log = logging.getLogger(__name__)

GENRE_VOCABULARY = "music_genre"


def get_or_create_terms(
    repository: ContentRepository,
    names: Iterable[str],
    vocabulary: str = GENRE_VOCABULARY,
) -> list[int]:
    """
    Resolve term names to term IDs, creating missing terms.

    Terms are matched by exact (name, vocabulary). The returned IDs follow
    input order; a name repeated within one call maps to the same ID.
    Terms are never deleted here.

    Args:
        repository: Content repository
        names: Term names (e.g. genres), blank names are skipped
        vocabulary: Vocabulary ID

    Returns:
        Term IDs in input order
    """
    seen: dict[str, int] = {}
    term_ids: list[int] = []

    for raw_name in names:
        name = str(raw_name).strip()
        if not name:
            continue

        if name not in seen:
            existing = repository.find_terms(name, vocabulary)
            if existing:
                seen[name] = existing[0].id
            else:
                term = repository.create_term(name, vocabulary)
                log.debug(f"Created {vocabulary} term {term.id}: {name}")
                seen[name] = term.id

        term_ids.append(seen[name])

    return term_ids
