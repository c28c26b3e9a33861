from .projector import TippingProjector
from .queries import QueryFacade, TippingQueries

__all__ = ["QueryFacade", "TippingProjector", "TippingQueries"]
