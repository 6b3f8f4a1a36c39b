"""Error taxonomy shared by the core, the broker adapters and the coordinator."""

from dataclasses import dataclass


class AutotradeError(Exception):
    """Base for all project errors."""


class ConfigError(AutotradeError, ValueError):
    """App config file is unreadable or malformed."""


class StrategyValidationError(AutotradeError, ValueError):
    """Strategy parameters are malformed or incomplete. The strategy is not executed."""


class StrategyNotFoundError(AutotradeError, LookupError):
    pass


class BrokerError(AutotradeError):
    """Base for broker failures."""


class BrokerTransientError(BrokerError):
    """Network, rate limit or server error. Safe to retry on the next cycle."""


class BrokerRejection(BrokerError):
    """The broker explicitly refused the request. Do not retry automatically."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ExecutionTimeout(BrokerTransientError):
    """Per-invocation broker time budget exhausted."""


@dataclass(frozen=True)
class OversellWarning:
    """A SELL fill exceeded the FIFO-tracked lots; ``remainder`` was not matched."""

    symbol: str
    remainder: float
    sell_quantity: float
    order_id: str | None = None

    def __str__(self) -> str:
        return (
            f"Oversell on {self.symbol}: sold {self.sell_quantity:g}, "
            f"{self.remainder:g} unmatched (short selling unsupported)"
        )
