import json
import logging
from umhw.platform.ports.event_bus import EventBusPort

log = logging.getLogger("bus.noop")

class NoopEventBus(EventBusPort):
    """Logs grant events instead of shipping them anywhere."""

    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None:
        event_type = value.get("event_type", "?")
        log.info(f"[NOOP BUS] {event_type} topic={topic} key={key} payload={json.dumps(value.get('payload'), default=str)}")

    async def close(self) -> None:
        return None
