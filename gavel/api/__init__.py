"""Request/response facade for front-ends."""

from gavel.api.service import MarketService, Response

__all__ = ["MarketService", "Response"]
