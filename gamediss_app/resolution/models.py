"""
================================================================================
GameDiss - Resolution Models
================================================================================
Immutable data models shared by the catalog store, matcher, caches and
aggregator.

  - CatalogEntry / CatalogSnapshot: one loaded version of the upstream catalog
  - ResolutionResult: outcome of turning a title into a catalog id
  - FieldResult / AggregatedGameData: per-field results of the fan-out
  - Typed source payloads (ReviewSummary, TagList, PlayerCount, ...)

Nothing here is mutated after creation; newer data replaces older objects.
================================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Generic, Mapping, Optional, Tuple, TypeVar


T = TypeVar('T')


# =============================================================================
# ENUMS
# =============================================================================

class ErrorKind(str, Enum):
    """Field-level failure reasons."""
    SOURCE_TIMEOUT = "source_timeout"
    SOURCE_UNAVAILABLE = "source_unavailable"
    SOURCE_PARSE_ERROR = "source_parse_error"


class LookupState(str, Enum):
    """
    States of a single resolve-and-aggregate request.

    Received -> Normalized -> (CacheHit | Matching) -> Resolved | NotFound
             -> Aggregating -> Completed

    Terminal states: COMPLETED, NOT_FOUND, FAILED.
    """
    RECEIVED = "received"
    NORMALIZED = "normalized"
    CACHE_HIT = "cache_hit"
    MATCHING = "matching"
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (LookupState.COMPLETED, LookupState.NOT_FOUND, LookupState.FAILED)


# =============================================================================
# CATALOG
# =============================================================================

@dataclass(frozen=True)
class CatalogEntry:
    """One catalog item: external id, canonical name and known aliases."""
    id: str
    canonical_name: str
    aliases: Tuple[str, ...] = ()

    def all_names(self) -> Tuple[str, ...]:
        return (self.canonical_name,) + tuple(self.aliases)


@dataclass(frozen=True)
class CatalogSnapshot:
    """
    One immutable version of the catalog.

    `entries` maps a normalized name (canonical or alias) to the entries
    carrying it, in catalog order. `ordered` keeps the full catalog in
    insertion order, and `names` lists every (normalized_name, position)
    pair the matcher scans when there is no exact hit.
    """
    entries: Mapping[str, Tuple[CatalogEntry, ...]]
    ordered: Tuple[CatalogEntry, ...]
    names: Tuple[Tuple[str, int], ...]
    loaded_at: float
    checksum: str
    version: int

    def lookup(self, key: str) -> Tuple[CatalogEntry, ...]:
        return self.entries.get(key, ())

    def __len__(self) -> int:
        return len(self.ordered)


# =============================================================================
# RESOLUTION
# =============================================================================

@dataclass(frozen=True)
class ResolutionResult:
    """
    Result of resolving a free-text title.

    matched_id=None is a confirmed "no match", a valid cacheable outcome.
    confidence is on a 0-1 scale; for a no-match it is the best score seen.
    """
    query: str
    matched_id: Optional[str]
    matched_name: Optional[str]
    confidence: float
    resolved_at: float

    @property
    def is_match(self) -> bool:
        return self.matched_id is not None

    def to_dict(self) -> dict:
        return {
            'query': self.query,
            'matched_id': self.matched_id,
            'matched_name': self.matched_name,
            'confidence': round(self.confidence, 4),
            'resolved_at': self.resolved_at,
        }


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value with its expiry and whether a reload is running."""
    value: T
    expires_at: float
    refresh_in_flight: bool = False


# =============================================================================
# SOURCE PAYLOADS
# =============================================================================

@dataclass(frozen=True)
class ReviewSummary:
    label: str  # "Very Positive", "Mixed", ...
    recent_label: Optional[str] = None
    total_reviews: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'label': self.label,
            'recent_label': self.recent_label,
            'total_reviews': self.total_reviews,
        }


@dataclass(frozen=True)
class TagList:
    tags: Tuple[str, ...]

    def to_dict(self) -> dict:
        return {'tags': list(self.tags)}


@dataclass(frozen=True)
class PlayerCount:
    count: int

    def to_dict(self) -> dict:
        return {'count': self.count}


@dataclass(frozen=True)
class StoreDetails:
    price: Optional[str] = None
    discount: Optional[str] = None
    release_date: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'price': self.price,
            'discount': self.discount,
            'release_date': self.release_date,
        }


@dataclass(frozen=True)
class OwnershipEstimate:
    owners_low: int
    owners_high: int
    average_playtime: Optional[int] = None  # minutes

    def to_dict(self) -> dict:
        return {
            'owners_low': self.owners_low,
            'owners_high': self.owners_high,
            'average_playtime': self.average_playtime,
        }


@dataclass(frozen=True)
class UserReview:
    review_id: str
    content: str
    published_at: str  # ISO 8601, UTC
    votes_up: int = 0

    def to_dict(self) -> dict:
        return {
            'review_id': self.review_id,
            'content': self.content,
            'published_at': self.published_at,
            'votes_up': self.votes_up,
        }


@dataclass(frozen=True)
class UserReviews:
    reviews: Tuple[UserReview, ...]

    def to_dict(self) -> dict:
        return {'reviews': [review.to_dict() for review in self.reviews]}


# =============================================================================
# AGGREGATION
# =============================================================================

@dataclass(frozen=True)
class FetchOutcome(Generic[T]):
    """What a fetcher returns: either a value or an error kind."""
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    fetched_at: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class FieldResult(Generic[T]):
    """One aggregated field: value or error, with its own timestamp."""
    value: Optional[T]
    fetched_at: float
    error: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        value = self.value
        if value is not None and hasattr(value, 'to_dict'):
            value = value.to_dict()
        return {
            'value': value,
            'fetched_at': self.fetched_at,
            'error': self.error.value if self.error else None,
        }


@dataclass(frozen=True)
class AggregatedGameData:
    """Merged per-field data for one resolved catalog id."""
    id: str
    fields: Mapping[str, FieldResult] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'fields', MappingProxyType(dict(self.fields)))

    @property
    def all_failed(self) -> bool:
        return bool(self.fields) and all(not f.ok for f in self.fields.values())

    @property
    def failed_fields(self) -> Tuple[str, ...]:
        return tuple(name for name, f in self.fields.items() if not f.ok)

    def value(self, name: str) -> Any:
        result = self.fields.get(name)
        return result.value if result else None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'fields': {name: f.to_dict() for name, f in self.fields.items()},
        }


@dataclass(frozen=True)
class GameLookup:
    """
    Final outcome of resolve_and_aggregate.

    state is one of COMPLETED, NOT_FOUND or FAILED.
    """
    state: LookupState
    title: str
    resolution: Optional[ResolutionResult] = None
    data: Optional[AggregatedGameData] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'title': self.title,
            'resolution': self.resolution.to_dict() if self.resolution else None,
            'data': self.data.to_dict() if self.data else None,
            'error': self.error,
        }
