"""Persistence for strategies and their append-only order trail."""

from store.strategy_store import StrategyStore, new_order_id

__all__ = ["StrategyStore", "new_order_id"]
