"""
Stream routing: decides which ingestion stream a request is mirrored to.

Three configuration styles, mutually exclusive:
- SingleStream: every request goes to one stream
- PatternMap: ordered (pattern, stream_id) pairs; exact paths, "/prefix/*" and "*"
- DynamicStream: a callable receiving the RequestView
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from loguru import logger

from frkr_mirror.schemas import RequestView

CATCH_ALL = "*"
PREFIX_SUFFIX = "/*"


def normalize_path(view: RequestView) -> str:
    """Canonical path used for matching.

    Prefers the framework's parsed path, falls back to the raw URL without its
    query string, and defaults to "/". Trailing slashes are kept.
    """
    path = view.path
    if not path and view.url:
        path = view.url.split("?", 1)[0]
    return path or "/"


@dataclass(frozen=True)
class SingleStream:
    stream_id: str


@dataclass(frozen=True)
class DynamicStream:
    resolve: Callable[[RequestView], Optional[str]]


@dataclass(frozen=True)
class PatternMap:
    """Ordered pattern table. Declaration order breaks ties between prefixes."""

    entries: Tuple[Tuple[str, str], ...]

    def __post_init__(self):
        exact: Dict[str, str] = {}
        for pattern, stream_id in self.entries:
            exact.setdefault(pattern, stream_id)
        object.__setattr__(self, "_exact", exact)

    @classmethod
    def from_value(cls, value: Union[Mapping[str, str], Iterable[Tuple[str, str]]]) -> "PatternMap":
        items = value.items() if isinstance(value, Mapping) else value
        entries = tuple((str(pattern), stream_id) for pattern, stream_id in items)
        return cls(entries=entries)

    def exact(self, path: str) -> Optional[str]:
        return self._exact.get(path)

    @property
    def catch_all(self) -> Optional[str]:
        return self._exact.get(CATCH_ALL)

    def dead_patterns(self) -> List[str]:
        """Wildcard patterns that can only ever match literally."""
        return [
            pattern
            for pattern, _ in self.entries
            if CATCH_ALL in pattern and pattern != CATCH_ALL and not _is_prefix_pattern(pattern)
        ]


RoutingConfig = Union[SingleStream, PatternMap, DynamicStream]


def _is_prefix_pattern(pattern: str) -> bool:
    return pattern.endswith(PREFIX_SUFFIX)


def build_routing_config(value: Any) -> Optional[RoutingConfig]:
    """Turn a user-supplied stream_id value into a RoutingConfig.

    A callable always wins, even if it also behaves like a mapping.
    Returns None when no routing is configured.
    """
    if value is None:
        return None
    if isinstance(value, (SingleStream, PatternMap, DynamicStream)):
        return value
    if callable(value):
        return DynamicStream(resolve=value)
    if isinstance(value, str):
        return SingleStream(stream_id=value)
    if isinstance(value, (Mapping, list, tuple)):
        config = PatternMap.from_value(value)
        dead = config.dead_patterns()
        if dead:
            logger.warning(
                f"Stream patterns {dead} only match literally; use '/prefix/*' or '*' for wildcards"
            )
        return config
    raise TypeError(f"Unsupported stream_id configuration: {type(value).__name__}")


def resolve_stream(config: Optional[RoutingConfig], view: RequestView) -> Optional[str]:
    """Stream id for this request, or None when it should not be mirrored.

    A dynamic resolver's result is returned as is, so an async resolver yields
    an awaitable the caller must await.
    """
    if isinstance(config, DynamicStream):
        return config.resolve(view)

    if isinstance(config, PatternMap):
        path = normalize_path(view)

        stream_id = config.exact(path)
        if stream_id is not None:
            return stream_id

        for pattern, stream_id in config.entries:
            if pattern == CATCH_ALL or pattern == path:
                continue
            if _is_prefix_pattern(pattern):
                prefix = pattern[: -len(PREFIX_SUFFIX)]
                if path == prefix or path.startswith(prefix + "/"):
                    return stream_id

        return config.catch_all

    if isinstance(config, SingleStream):
        return config.stream_id

    return None
