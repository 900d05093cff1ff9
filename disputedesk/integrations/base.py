import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from disputedesk.common.exceptions import TransientNetworkError
from disputedesk.common.logging import get_logger
from disputedesk.common.simulation import Simulator

T = TypeVar("T")


class BaseIntegration(ABC):
    """Base class for all external collaborators.

    Provides common logging, the simulated transport every call goes through,
    retry with exponential backoff for read paths, and a required
    health_check interface so the application can verify connectivity at
    startup or on-demand.
    """

    def __init__(
        self,
        name: str,
        simulator: Simulator | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.name = name
        self.logger = get_logger(f"integrations.{name}")
        self.simulator = simulator or Simulator.disabled()
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    async def _with_retry(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run a read ``func``, retrying transient failures with backoff.

        Only read paths use this. Mutations propagate their first failure.
        """
        attempt = 0
        while True:
            try:
                return await func()
            except TransientNetworkError as exc:
                if attempt >= self.max_retries:
                    self.logger.error(
                        "%s failed after %d attempts: %s", operation, attempt + 1, exc
                    )
                    raise
                backoff = self.retry_delay * (2 ** attempt)
                attempt += 1
                self.logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs",
                    operation,
                    attempt,
                    self.max_retries + 1,
                    backoff,
                )
                await self._sleep(backoff)

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the integration is reachable and functional."""
        ...
