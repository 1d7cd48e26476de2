"""Series classification, scoped mutation resolution and event storage."""

from .event_store import EventStore
from .mutation_resolver import MutationScopeResolver, resolve_mutation
from .operations import (
    DeleteException,
    DeleteSeries,
    EditScope,
    MutationAction,
    Operation,
    TruncateSeries,
    UpsertBase,
    UpsertException,
)
from .series_classifier import is_exception, is_series_head, is_series_member

__all__ = [
    "DeleteException",
    "DeleteSeries",
    "EditScope",
    "EventStore",
    "MutationAction",
    "MutationScopeResolver",
    "Operation",
    "TruncateSeries",
    "UpsertBase",
    "UpsertException",
    "is_exception",
    "is_series_head",
    "is_series_member",
    "resolve_mutation",
]
