"""
Abstract base class for music metadata provider clients.

Every provider client exposes the same two operations, `search` and
`get_details`, and guarantees they never raise: failures are classified into
`ProviderError` values internally, logged, and surfaced to callers as an empty
list or `None`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from music_search.models import (
    ErrorKind,
    MediaType,
    NormalizedDetails,
    NormalizedResult,
    Ok,
    ProviderError,
)
from music_search.safe_logging import sanitize_message

log = logging.getLogger(__name__)

JsonResult = Ok[dict[str, Any]] | ProviderError


class ProviderClient(ABC):
    """
    Base class for provider clients.

    Subclasses implement `_search` and `_details`, returning either `Ok` or a
    `ProviderError`; the public wrappers turn those into the boundary contract.
    """

    name: str = "provider"

    def __init__(
        self,
        timeout_s: float = 10.0,
        client: httpx.Client | None = None,
    ):
        """
        Initialize the shared transport.

        Args:
            timeout_s: Per-request timeout; a timeout is an ordinary provider failure
            client: Optional pre-built httpx client (tests, connection sharing)
        """
        self.timeout_s = timeout_s
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_s)

    # --- Provider hooks ---

    @abstractmethod
    def has_credentials(self) -> bool:
        """Whether credentials are configured (checked before any network call)."""
        ...

    @abstractmethod
    def _search(self, query: str, media_type: MediaType) -> Ok[list[NormalizedResult]] | ProviderError:
        ...

    @abstractmethod
    def _details(self, item_id: str, media_type: MediaType) -> Ok[NormalizedDetails] | ProviderError:
        ...

    # --- Public boundary ---

    def search(self, query: str, media_type: MediaType | str) -> list[NormalizedResult]:
        """
        Search the provider.

        Args:
            query: Free-text search query
            media_type: artist, album or song

        Returns:
            Normalized results, or an empty list on any failure
        """
        result = self._guarded("search", self._search, query, media_type)
        if isinstance(result, ProviderError):
            self._report("search", result)
            return []
        return result.value

    def get_details(self, item_id: str, media_type: MediaType | str) -> NormalizedDetails | None:
        """
        Look up one item by provider ID.

        Args:
            item_id: Provider-specific identifier
            media_type: artist, album or song

        Returns:
            Normalized details, or None on any failure
        """
        result = self._guarded("details", self._details, item_id, media_type)
        if isinstance(result, ProviderError):
            self._report("details", result)
            return None
        return result.value

    def _guarded(self, operation: str, func: Any, arg: str, media_type: MediaType | str) -> Any:
        try:
            kind = MediaType(media_type)
        except ValueError:
            return self._error(ErrorKind.MALFORMED, f"Unsupported media type: {media_type!r}")

        if not self.has_credentials():
            return self._error(ErrorKind.MISSING_CREDENTIALS, f"No {self.name} credentials configured")

        try:
            return func(arg, kind)
        except (KeyError, TypeError, ValueError, AttributeError, IndexError) as e:
            # Payload did not have the shape the normalizer expected
            return self._error(ErrorKind.MALFORMED, f"Unexpected {operation} payload: {e!r}")

    # --- Transport helpers ---

    def _error(self, kind: ErrorKind, message: str = "") -> ProviderError:
        return ProviderError(provider=self.name, kind=kind, message=message)

    def _report(self, operation: str, error: ProviderError) -> None:
        """Log a provider failure at a level matching its kind."""
        if error.kind == ErrorKind.NOT_FOUND:
            log.warning(f"{self.name} {operation}: not found ({error.message})")
        else:
            log.error(f"{self.name} {operation} error [{error.kind}]: {error.message}")

    def _send(self, method: str, url: str, **kwargs: Any) -> JsonResult:
        """Issue a request and classify every failure mode."""
        try:
            response = self._client.request(method, url, timeout=self.timeout_s, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            return self._error(ErrorKind.TIMEOUT, sanitize_message(f"{type(e).__name__}: {e}"))
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = sanitize_message(f"HTTP {status} for {e.request.url}")
            if status == 404:
                return self._error(ErrorKind.NOT_FOUND, message)
            if status in (401, 403):
                return self._error(ErrorKind.AUTH, message)
            return self._error(ErrorKind.TRANSPORT, message)
        except httpx.HTTPError as e:
            return self._error(ErrorKind.TRANSPORT, sanitize_message(f"{type(e).__name__}: {e}"))
        except httpx.InvalidURL as e:
            # Raised while building the request, before anything is sent
            return self._error(ErrorKind.MALFORMED, f"Invalid request URL: {e}")

        try:
            data = response.json()
        except ValueError as e:
            return self._error(ErrorKind.MALFORMED, f"Invalid JSON: {e}")
        if not isinstance(data, dict):
            return self._error(ErrorKind.MALFORMED, f"Expected JSON object, got {type(data).__name__}")
        return Ok(data)

    def _get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> JsonResult:
        return self._send("GET", url, params=params, headers=headers)

    # --- Lifecycle ---

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> ProviderClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
