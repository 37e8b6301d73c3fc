from umhw.core.config import settings
from umhw.platform.ports.event_bus import EventBusPort
from umhw.platform.adapters.bus_noop import NoopEventBus
from umhw.platform.adapters.bus_redis import RedisEventBus
from umhw.platform.ports.directory import PrincipalDirectoryPort
from umhw.platform.ports.records import RecordsPort
from umhw.platform.adapters.records_http import HttpPrincipalDirectory, HttpRecordsProvider

class ProviderRegistry:
    _event_bus: EventBusPort | None = None
    _directory: PrincipalDirectoryPort | None = None
    _records: RecordsPort | None = None

    @classmethod
    def event_bus(cls) -> EventBusPort:
        if cls._event_bus is None:
            if settings.EVENT_BUS_PROVIDER == "redis":
                cls._event_bus = RedisEventBus()
            else:
                cls._event_bus = NoopEventBus()
        return cls._event_bus

    @classmethod
    def directory(cls) -> PrincipalDirectoryPort:
        if cls._directory is None:
            cls._directory = HttpPrincipalDirectory()
        return cls._directory

    @classmethod
    def records(cls) -> RecordsPort:
        if cls._records is None:
            cls._records = HttpRecordsProvider()
        return cls._records

    @classmethod
    def override(cls, *, event_bus: EventBusPort | None = None, directory: PrincipalDirectoryPort | None = None, records: RecordsPort | None = None):
        if event_bus is not None:
            cls._event_bus = event_bus
        if directory is not None:
            cls._directory = directory
        if records is not None:
            cls._records = records

    @classmethod
    def reset(cls):
        cls._event_bus = None
        cls._directory = None
        cls._records = None

registry = ProviderRegistry()
