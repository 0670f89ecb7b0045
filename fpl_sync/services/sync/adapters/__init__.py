"""API adapters for fetching data from external sources.

Available adapters:
- fpl_api_adapter: Fantasy Premier League public API
"""
from fpl_sync.services.sync.adapters.fpl_api_adapter import FplApiAdapter

__all__ = ["FplApiAdapter"]
