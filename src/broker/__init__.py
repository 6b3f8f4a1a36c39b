"""
Broker adapters: a paper brokerage for offline runs and an Alpaca adapter.

Use get_broker(cfg.broker) to build the configured one.
"""

from broker.client import BrokerClient, OrderUpdate, SubmitAck
from broker.paper_broker import PaperBroker


def get_broker(cfg):
    """Build the broker named by BrokerConfig.provider."""
    if cfg.provider == "alpaca":
        from broker.alpaca_broker import AlpacaBroker

        return AlpacaBroker(cfg.api_key, cfg.api_secret, paper=cfg.alpaca_paper)
    return PaperBroker(cfg.paper_state_path, initial_cash=cfg.paper_initial_cash)


__all__ = ["BrokerClient", "OrderUpdate", "PaperBroker", "SubmitAck", "get_broker"]
