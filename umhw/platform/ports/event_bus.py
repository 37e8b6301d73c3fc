from typing import Any, Protocol, runtime_checkable

@runtime_checkable
class EventBusPort(Protocol):
    """Destination for grant lifecycle events drained from the outbox."""

    async def publish(self, topic: str, key: str, value: dict[str, Any], headers: dict[str, str] | None = None) -> None: ...

    async def close(self) -> None: ...
