from typing import Mapping, Protocol, Sequence

from billing_collector.models import UsageReading


class UsageProvider(Protocol):
    """
    UsageProvider stands as a common protocol for cloud providers
    that report per-resource usage.

    Providers return a snapshot keyed by resource name. Names are
    unique within a provider account, duplicates are last-write-wins.
    """

    @property
    def name(self) -> "str": ...

    async def fetch_usage(
        self,
        zones: "Sequence[str] | None" = None,
    ) -> "Mapping[str, UsageReading]": ...

    async def close(self) -> "None": ...


def index_by_name(readings: "Sequence[UsageReading]") -> "dict[str, UsageReading]":
    return {reading.resource_name: reading for reading in readings}
