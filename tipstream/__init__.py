"""tipstream - projection engine for a social tipping contract.

Folds the contract's chain events (posts, tips, auto-tip delegations) into
queryable read models, idempotently and in block order.
"""

from .application import Application, ApplicationBuilder, TippingProjector, TippingQueries
from .domain import ChainEvent, Query
from .routing import handles_event, handles_query

__all__ = [
    # Application
    "Application",
    "ApplicationBuilder",
    "TippingProjector",
    "TippingQueries",
    # Domain primitives
    "ChainEvent",
    "Query",
    # Decorators
    "handles_event",
    "handles_query",
]
