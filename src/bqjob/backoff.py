import asyncio
import logging
from typing import Iterator

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class PollSettings(BaseSettings):
    initial_delay: float = 1.0
    multiplier: float = 1.5
    max_delay: float = 30.0
    timeout_ms: int = 10000

    model_config = SettingsConfigDict(
        env_prefix="bqjob_poll_", env_file=".env", extra="ignore"
    )


class Backoff:
    """ポーリング間隔を徐々に伸ばす. 上限はmaximum"""

    def __init__(self, initial: float = 1.0, multiplier: float = 1.5, maximum: float = 30.0):
        if initial < 0 or maximum < 0:
            raise ValueError("delays must not be negative")
        if multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        self.initial = initial
        self.multiplier = multiplier
        self.maximum = maximum
        self._delays = self.delays()

    @classmethod
    def from_settings(cls, settings: PollSettings = None) -> "Backoff":
        if settings is None:
            settings = PollSettings()
        return cls(
            initial=settings.initial_delay,
            multiplier=settings.multiplier,
            maximum=settings.max_delay,
        )

    def delays(self) -> Iterator[float]:
        delay = min(self.initial, self.maximum)
        while True:
            yield delay
            delay = min(delay * self.multiplier, self.maximum)

    async def sleep(self) -> float:
        delay = next(self._delays)
        logger.debug(f"sleep {delay}s before next poll")
        await asyncio.sleep(delay)
        return delay
