"""Record matchers — derive the match key that groups equivalent interactions."""

import hashlib
from abc import ABC, abstractmethod
from typing import Callable, FrozenSet, Iterable, Literal, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit

from http_recorder.core.format import RecordEntry


MatchStrategy = Literal["method", "method_and_path", "method_and_uri", "exact"]

# Parameters that change on every run: cache busters, timestamps and SAS token
# start/expiry/signature fields.
DEFAULT_IGNORED_QUERY_PARAMS: FrozenSet[str] = frozenset(
    {"t", "_", "timestamp", "st", "se", "sig"}
)


def normalize_uri(
    uri: str,
    ignore_query_params: Iterable[str] = (),
    include_query: bool = True,
) -> str:
    """Reduce a request target to its path and stable query parameters.

    Scheme and host are dropped so recordings replay against any endpoint.
    Ignored parameter names are compared case-insensitively; the remaining
    parameters are sorted so their order on the wire does not matter.

    Args:
        uri: Absolute URL or path (with optional query string)
        ignore_query_params: Query parameter names to drop
        include_query: If False, drop the query string entirely

    Returns:
        Normalized target such as ``/foo?a=1&b=2``
    """
    parts = urlsplit(uri)
    path = parts.path or "/"
    if not include_query or not parts.query:
        return path

    ignored = {name.lower() for name in ignore_query_params}
    params = [
        (name, value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
        if name.lower() not in ignored
    ]
    if not params:
        return path
    return f"{path}?{urlencode(sorted(params))}"


class RecordMatcher(ABC):
    """Capability that maps a record to its match key."""

    @abstractmethod
    def get_matching_key(self, record: RecordEntry) -> str:
        """Return the match key for ``record``."""


class FunctionMatcher(RecordMatcher):
    """Adapts a plain ``RecordEntry -> str`` callable to a RecordMatcher."""

    def __init__(self, func: Callable[[RecordEntry], str]) -> None:
        self._func = func

    def get_matching_key(self, record: RecordEntry) -> str:
        return self._func(record)


MatcherLike = Union[RecordMatcher, Callable[[RecordEntry], str]]


def as_matcher(matcher: Optional[MatcherLike]) -> RecordMatcher:
    """Coerce a matcher, a callable or None (default RequestMatcher) to a RecordMatcher."""
    if matcher is None:
        return RequestMatcher()
    if isinstance(matcher, RecordMatcher):
        return matcher
    if callable(matcher):
        return FunctionMatcher(matcher)
    raise TypeError(f"Expected a RecordMatcher or callable, got {type(matcher).__name__}")


class RequestMatcher(RecordMatcher):
    """Derives match keys from the request side of a record.

    Strategies:
    - method: HTTP method only
    - method_and_path: method + path, query string dropped
    - method_and_uri: method + path + stable query parameters (default)
    - exact: method_and_uri + a digest of the request body
    """

    VALID_STRATEGIES = {"method", "method_and_path", "method_and_uri", "exact"}

    def __init__(
        self,
        strategy: MatchStrategy = "method_and_uri",
        ignore_query_params: Iterable[str] = DEFAULT_IGNORED_QUERY_PARAMS,
    ) -> None:
        """Initialize the request matcher.

        Args:
            strategy: Matching strategy to use
            ignore_query_params: Volatile query parameter names to leave out of keys

        Raises:
            ValueError: If strategy is not a valid matching strategy
        """
        if strategy not in self.VALID_STRATEGIES:
            raise ValueError(
                f"Unknown matching strategy: '{strategy}'. "
                f"Valid strategies: {', '.join(sorted(self.VALID_STRATEGIES))}"
            )
        self.strategy = strategy
        self.ignore_query_params = frozenset(ignore_query_params)

    def get_matching_key(self, record: RecordEntry) -> str:
        method = record.method.upper()
        if self.strategy == "method":
            return method

        target = normalize_uri(
            record.uri,
            self.ignore_query_params,
            include_query=self.strategy != "method_and_path",
        )
        key = f"{method}:{target}"

        if self.strategy == "exact":
            digest = hashlib.sha256(record.request_body.encode("utf-8")).hexdigest()
            key = f"{key}#{digest[:12]}"
        return key

    def __repr__(self) -> str:
        return (
            f"RequestMatcher(strategy={self.strategy!r}, "
            f"ignore_query_params={sorted(self.ignore_query_params)!r})"
        )
