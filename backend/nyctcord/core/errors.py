"""Error taxonomy for the alert aggregation pipeline.

Feed errors and per-line storage errors are recoverable: the poll round logs them and
skips the feed or line. ``StorageUnavailableError`` aborts the current round, and
``ConfigError`` prevents the process from starting.
"""

# Maximum characters of a failing response body kept for diagnostics
BODY_SNIPPET_LIMIT = 200


class AlertPipelineError(Exception):
    """Base class for all alert pipeline errors."""


class FeedError(AlertPipelineError):
    """A single feed could not be turned into alert entities."""

    def __init__(self, feed_url: str, message: str) -> None:
        self.feed_url = feed_url
        super().__init__(f"{message} (feed={feed_url})")


class FetchError(FeedError):
    """Network failure, timeout or non-2xx response from a feed."""

    def __init__(
        self,
        feed_url: str,
        message: str,
        *,
        status_code: int | None = None,
        body_snippet: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body_snippet = body_snippet[:BODY_SNIPPET_LIMIT] if body_snippet is not None else None
        super().__init__(feed_url, message)


class DecodeError(FeedError):
    """Feed payload could not be decoded."""


class StorageError(AlertPipelineError):
    """A line's state transition failed and was rolled back."""

    def __init__(self, line_id: str, message: str) -> None:
        self.line_id = line_id
        super().__init__(f"{message} (line={line_id})")


class StorageUnavailableError(StorageError):
    """The connection to the persistent store was lost."""


class ConfigError(AlertPipelineError):
    """Startup configuration is unusable."""
