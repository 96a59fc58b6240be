from __future__ import annotations
import time, logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from tuya_bridge.core.exceptions import CircuitOpenError

T = TypeVar("T")

@dataclass
class BreakerConfig:
    failure_threshold: int = 10
    success_threshold: int = 1
    timeout: float = 300.0                # seconds spent OPEN before a trial call

class BreakerState(Enum):
    CLOSED = "closed"
    OPEN   = "open"
    HALF_OPEN = "half_open"

class CircuitBreaker:
    def __init__(self, cfg: BreakerConfig | None = None, name: str | None = None):
        self.cfg  = cfg or BreakerConfig()
        self.log  = logging.getLogger(name or self.__class__.__name__)
        self.state= BreakerState.CLOSED
        self.fail = 0
        self.ok   = 0
        self.last_fail_ts = 0.0

    @property
    def is_open(self) -> bool:
        return self.state == BreakerState.OPEN and self.remaining_cooldown() > 0

    def remaining_cooldown(self) -> float:
        if self.state != BreakerState.OPEN:
            return 0.0
        return max(0.0, self.cfg.timeout - (time.monotonic() - self.last_fail_ts))

    async def __call__(self, fn: Callable[..., Awaitable[T]], *a, **kw) -> T:
        if self.state == BreakerState.OPEN:
            if time.monotonic() - self.last_fail_ts >= self.cfg.timeout:
                self.state, self.ok = BreakerState.HALF_OPEN, 0
                self.log.info("circuit half-open, probing")
            else:
                raise CircuitOpenError("circuit-breaker: OPEN")
        try:
            res = await fn(*a, **kw)
            await self._on_success()
            return res
        except Exception:
            await self._on_fail()
            raise

    def reset(self) -> None:
        self.state, self.fail, self.ok = BreakerState.CLOSED, 0, 0

    async def _on_success(self):
        if self.state == BreakerState.HALF_OPEN:
            self.ok += 1
            if self.ok >= self.cfg.success_threshold:
                self.state, self.fail = BreakerState.CLOSED, 0
                self.log.info("circuit closed")
        else:
            self.fail = 0

    async def _on_fail(self):
        self.fail, self.last_fail_ts = self.fail + 1, time.monotonic()
        self.log.warning("circuit fail %d/%d", self.fail, self.cfg.failure_threshold)
        if self.state == BreakerState.HALF_OPEN or self.fail >= self.cfg.failure_threshold:
            self.state = BreakerState.OPEN
            self.log.error("circuit opened for %.0fs", self.cfg.timeout)
