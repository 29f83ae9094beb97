"""
Identity resolution & aggregation engine.

Free-text title -> canonical catalog id -> merged per-field game data.
"""

from .aggregator import Aggregator
from .cache import SingleFlightCache
from .catalog import CatalogProvider, CatalogSnapshotStore, build_snapshot
from .engine import ResolutionEngine
from .errors import (
    CatalogNotReady,
    CatalogRefreshError,
    ResolutionError,
    SourceError,
    SourceParseError,
    SourceTimeout,
    SourceUnavailable,
)
from .matcher import TitleMatcher, similarity
from .models import (
    AggregatedGameData,
    CatalogEntry,
    CatalogSnapshot,
    ErrorKind,
    FetchOutcome,
    FieldResult,
    GameLookup,
    LookupState,
    OwnershipEstimate,
    PlayerCount,
    ResolutionResult,
    ReviewSummary,
    StoreDetails,
    TagList,
    UserReview,
    UserReviews,
)
from .normalizer import normalize

__all__ = [
    'AggregatedGameData',
    'Aggregator',
    'CatalogEntry',
    'CatalogNotReady',
    'CatalogProvider',
    'CatalogRefreshError',
    'CatalogSnapshot',
    'CatalogSnapshotStore',
    'ErrorKind',
    'FetchOutcome',
    'FieldResult',
    'GameLookup',
    'LookupState',
    'OwnershipEstimate',
    'PlayerCount',
    'ResolutionEngine',
    'ResolutionError',
    'ResolutionResult',
    'ReviewSummary',
    'SingleFlightCache',
    'SourceError',
    'SourceParseError',
    'SourceTimeout',
    'SourceUnavailable',
    'StoreDetails',
    'TagList',
    'UserReview',
    'UserReviews',
    'TitleMatcher',
    'build_snapshot',
    'normalize',
    'similarity',
]
