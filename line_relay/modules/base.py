from abc import ABC, abstractmethod


class AsyncModule(ABC):
    """Base class for runnable modules with a standard async lifecycle.

    ``run()`` calls initialize → validate → execute and always tears down,
    even when initialization or validation raised.
    """

    async def initialize(self) -> None:
        """Connect services and build components. Override as needed."""

    async def validate(self) -> None:
        """Reject bad configuration before serving. Override as needed."""

    @abstractmethod
    async def execute(self) -> int:
        """Module logic. Must return an exit code."""
        ...

    async def teardown(self) -> None:
        """Release connections and timers. Override as needed."""

    async def run(self) -> int:
        try:
            await self.initialize()
            await self.validate()
            return await self.execute()
        finally:
            await self.teardown()
