from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Protocol, Sequence

import structlog

from billing_collector.aggregator import RunContext, aggregate
from billing_collector.billing_party import BillingPartyResolver
from billing_collector.kinds import ResourceKind
from billing_collector.models import BillingRecord, ManagedResourceDetail, UsageReading
from billing_collector.products import (
    CLOUDSCALE_REQUESTS,
    CLOUDSCALE_STORAGE,
    CLOUDSCALE_TRAFFIC_OUT,
    EXOSCALE_DBAAS,
    EXOSCALE_OBJECT_STORAGE,
)
from billing_collector.prometheus import PrometheusClient
from billing_collector.provider.base import UsageProvider
from billing_collector.provider.cloudscale import CloudscaleObjectStorage
from billing_collector.units import UomMapping
from billing_collector.window import BillingWindow, billing_window, local_day_start

logger = structlog.get_logger()

SPKS_QUERIES: "dict[str, str]" = {
    "mariadb": 'count(max_over_time(crossplane_resource_info{{kind="compositemariadbinstances", service_level="{sla}"}}[1d:1d]))',
    "redis": 'count(max_over_time(crossplane_resource_info{{kind="compositeredisinstances", service_level="{sla}"}}[1d:1d]))',
}


class Inventory(Protocol):
    async def fetch_details(
        self, kinds: "Iterable[ResourceKind]"
    ) -> "list[ManagedResourceDetail]": ...


class BillingSink(Protocol):
    async def send(self, records: "Sequence[BillingRecord]") -> "None": ...


@dataclass(frozen=True)
class JobSettings:
    cluster_id: "str"
    uom: "UomMapping"
    billing_party_override: "str" = ""


class UsageJob(ABC):
    """
    UsageJob is the common base of jobs that join cluster inventory
    with provider usage. Every run gets a fresh billing party
    resolver so cached lookups never leak into the next period.
    """

    name = "usage"

    def __init__(
        self,
        inventory: "Inventory",
        sink: "BillingSink",
        settings: "JobSettings",
        sales_order_lookup: "Callable[[str], Awaitable[str]] | None" = None,
    ) -> "None":
        self._inventory = inventory
        self._sink = sink
        self._settings = settings
        self._sales_order_lookup = sales_order_lookup
        self._log = logger.bind(job=self.name)

    def new_context(self, reference: "datetime") -> "RunContext":
        return RunContext(
            reference=reference,
            cluster_id=self._settings.cluster_id,
            uom=self._settings.uom,
            billing_party=BillingPartyResolver(
                lookup=self._sales_order_lookup,
                override=self._settings.billing_party_override,
            ),
        )

    @abstractmethod
    async def collect(self, reference: "datetime") -> "list[BillingRecord]":
        """
        joins inventory and usage for the reference instant.
        """

    async def run_once(self, reference: "datetime") -> "int":
        """
        computes the records for the reference instant and hands them
        to the sink. Returns the number of records delivered.
        """
        records = await self.collect(reference)
        await self._sink.send(records)
        return len(records)


class ExoscaleObjectStorageJob(UsageJob):
    name = "exoscale-objectstorage"

    def __init__(
        self,
        inventory: "Inventory",
        provider: "UsageProvider",
        sink: "BillingSink",
        settings: "JobSettings",
        sales_order_lookup: "Callable[[str], Awaitable[str]] | None" = None,
    ) -> "None":
        super().__init__(inventory, sink, settings, sales_order_lookup)
        self._provider = provider

    async def collect(self, reference: "datetime") -> "list[BillingRecord]":
        details = await self._inventory.fetch_details([ResourceKind.EXOSCALE_BUCKET])
        usage = await self._provider.fetch_usage()
        return await aggregate(
            usage, details, self.new_context(reference), EXOSCALE_OBJECT_STORAGE, self._log
        )


class ExoscaleDBaaSJob(UsageJob):
    name = "exoscale-dbaas"

    def __init__(
        self,
        inventory: "Inventory",
        provider: "UsageProvider",
        sink: "BillingSink",
        settings: "JobSettings",
        sales_order_lookup: "Callable[[str], Awaitable[str]] | None" = None,
        zones: "Sequence[str] | None" = None,
    ) -> "None":
        super().__init__(inventory, sink, settings, sales_order_lookup)
        self._provider = provider
        self._zones = zones

    async def collect(self, reference: "datetime") -> "list[BillingRecord]":
        details = await self._inventory.fetch_details(ResourceKind.dbaas())
        usage = await self._provider.fetch_usage(self._zones)
        return await aggregate(
            usage, details, self.new_context(reference), EXOSCALE_DBAAS, self._log
        )


class CloudscaleObjectStorageJob(UsageJob):
    """
    bills storage, outgoing traffic and requests of cloudscale
    buckets for the previous day, one record per product and bucket.
    """

    name = "cloudscale-objectstorage"

    def __init__(
        self,
        inventory: "Inventory",
        provider: "CloudscaleObjectStorage",
        sink: "BillingSink",
        settings: "JobSettings",
        sales_order_lookup: "Callable[[str], Awaitable[str]] | None" = None,
    ) -> "None":
        super().__init__(inventory, sink, settings, sales_order_lookup)
        self._provider = provider

    async def collect(self, reference: "datetime") -> "list[BillingRecord]":
        details = await self._inventory.fetch_details([ResourceKind.CLOUDSCALE_BUCKET])
        day = local_day_start(reference, days_back=1).date()
        metrics = await self._provider.fetch_metrics(day)

        storage = {n: UsageReading(n, m.storage_bytes) for n, m in metrics.items()}
        traffic = {n: UsageReading(n, m.sent_bytes) for n, m in metrics.items()}
        requests = {n: UsageReading(n, m.requests) for n, m in metrics.items()}

        # one resolver shared by the three products of this run
        context = self.new_context(reference)
        records: "list[BillingRecord]" = []
        for product, usage in (
            (CLOUDSCALE_STORAGE, storage),
            (CLOUDSCALE_TRAFFIC_OUT, traffic),
            (CLOUDSCALE_REQUESTS, requests),
        ):
            records.extend(await aggregate(usage, details, context, product, self._log))
        return records


@dataclass(frozen=True)
class SpksSettings:
    sales_order: "str"
    unit_id: "str"
    environment: "str"
    service_sla: "str" = "standard"


class SpksJob:
    """
    SpksJob bills the number of MariaDB and Redis instances that
    existed on the previous day, as counted by Prometheus.
    """

    name = "spks"

    def __init__(
        self,
        prometheus: "PrometheusClient",
        sink: "BillingSink",
        settings: "SpksSettings",
    ) -> "None":
        self._prometheus = prometheus
        self._sink = sink
        self._settings = settings

    async def collect(self, reference: "datetime") -> "list[BillingRecord]":
        # with the [1d:1d] range a query at local midnight covers
        # exactly the previous day
        start_of_today = local_day_start(reference)
        time_range = billing_window(reference, BillingWindow.DAILY)
        logger.info(
            "spks_billing_run",
            start_of_today=start_of_today.isoformat(),
            start=time_range.start.isoformat(),
            end=time_range.end.isoformat(),
        )

        records: "list[BillingRecord]" = []
        for database, query in SPKS_QUERIES.items():
            count = await self._prometheus.count(
                query.format(sla=self._settings.service_sla), at=start_of_today
            )
            records.append(
                BillingRecord(
                    product_id=f"appcat-spks-{database}-{self._settings.service_sla}",
                    instance_id=f"{database}-{self._settings.environment}",
                    item_description="",
                    item_group_description="",
                    billing_party=self._settings.sales_order,
                    unit_id=self._settings.unit_id,
                    consumed_units=float(count),
                    time_range=time_range,
                )
            )
        return records

    async def run_once(self, reference: "datetime") -> "int":
        records = await self.collect(reference)
        await self._sink.send(records)
        return len(records)
