"""Per-task credit pools that pace API usage and adapt to rate-limit pressure."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Dict, Optional, Union


class Regime(IntEnum):
    """How aggressively the scheduler may spend API budget."""

    ABUNDANT = 0
    """More than half of the hourly limit remains."""
    NORMAL = 1
    """Between 10% and 50% remains."""
    SCARCE = 2
    """Less than 10% remains."""
    EXHAUSTED = 3
    """Nothing remains; collection is paused."""

    def __str__(self) -> str:
        return self.name.lower()


class TaskType(IntEnum):
    """The kinds of work that draw from separate credit pools."""

    METRICS = 0
    LOGS = 1
    DISCOVERY = 2
    USAGE = 3


@dataclass(frozen=True)
class CreditsConfig:
    """Credit drip rates (credits per minute) and the cap on each pool."""

    metrics_rate: float
    logs_rate: float
    discovery_rate: float
    usage_rate: float
    max_credits: float


class _CreditPool:
    """A token bucket that starts with one credit so work can fire at once."""

    def __init__(self, credits_per_minute: float, max_tokens: float, now: datetime) -> None:
        self.tokens = 1.0
        self.rate = credits_per_minute / 60.0
        self.max_tokens = max_tokens
        self.last_check = now

    def available(self, now: datetime) -> float:
        elapsed = (now - self.last_check).total_seconds()
        if elapsed > 0:
            self.tokens = min(self.tokens + elapsed * self.rate, self.max_tokens)
            self.last_check = now
        return self.tokens

    def try_deduct(self, now: datetime) -> bool:
        self.available(now)
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False

    def set_rate(self, credits_per_minute: float) -> None:
        self.rate = credits_per_minute / 60.0


class CreditAllocator:
    """Manages one credit pool per task type and adapts rates to the regime."""

    def __init__(
        self,
        config: CreditsConfig,
        now: datetime,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config
        self._lock = threading.Lock()
        self._regime = Regime.ABUNDANT
        self._logger = logger or logging.getLogger(__name__)
        self._pools: Dict[TaskType, _CreditPool] = {
            TaskType.METRICS: _CreditPool(config.metrics_rate, config.max_credits, now),
            TaskType.LOGS: _CreditPool(config.logs_rate, config.max_credits, now),
            TaskType.DISCOVERY: _CreditPool(config.discovery_rate, config.max_credits, now),
            TaskType.USAGE: _CreditPool(config.usage_rate, config.max_credits, now),
        }

    def try_deduct(self, task_type: Union[TaskType, int], now: datetime) -> bool:
        """Take one credit from the task type's pool; False if none is available."""
        with self._lock:
            pool = self._pools.get(task_type)
            return pool is not None and pool.try_deduct(now)

    def available(self, task_type: Union[TaskType, int], now: datetime) -> float:
        """The current balance for a task type; 0.0 for an unknown type."""
        with self._lock:
            pool = self._pools.get(task_type)
            return 0.0 if pool is None else pool.available(now)

    def regime(self) -> Regime:
        """The current rate-limit regime."""
        with self._lock:
            return self._regime

    def update_regime(self, remaining: int, limit: int, seconds_until_reset: float) -> None:
        """Adjust credit rates from the API's remaining calls and hourly limit."""
        with self._lock:
            if limit <= 0:
                return
            ratio = remaining / limit
            if remaining <= 0:
                new_regime = Regime.EXHAUSTED
            elif ratio < 0.10:
                new_regime = Regime.SCARCE
            elif ratio < 0.50:
                new_regime = Regime.NORMAL
            else:
                new_regime = Regime.ABUNDANT

            if new_regime == self._regime:
                return
            old_regime, self._regime = self._regime, new_regime

            self._logger.info(
                "credit regime changed from=%s to=%s remaining=%d limit=%d "
                "budget_pct=%.1f%% reset_in=%.0fs",
                old_regime, new_regime, remaining, limit, ratio * 100, seconds_until_reset,
            )

            cfg = self._config
            pools = self._pools
            if new_regime is Regime.EXHAUSTED:
                for pool in pools.values():
                    pool.set_rate(0)
            elif new_regime is Regime.SCARCE:
                pools[TaskType.METRICS].set_rate(cfg.metrics_rate * 0.5)
                pools[TaskType.LOGS].set_rate(cfg.logs_rate * 0.5)
                pools[TaskType.DISCOVERY].set_rate(0)
                pools[TaskType.USAGE].set_rate(0)
            else:
                pools[TaskType.METRICS].set_rate(cfg.metrics_rate)
                pools[TaskType.LOGS].set_rate(cfg.logs_rate)
                pools[TaskType.DISCOVERY].set_rate(cfg.discovery_rate)
                pools[TaskType.USAGE].set_rate(cfg.usage_rate)