from datetime import datetime, timedelta

import pytest

from billing_collector.aggregator import RunContext, aggregate
from billing_collector.billing_party import BillingPartyResolver
from billing_collector.errors import BillingPartyLookupError, UnitConversionError
from billing_collector.kinds import ResourceKind
from billing_collector.models import ManagedResourceDetail, UsageReading
from billing_collector.products import (
    CLOUDSCALE_REQUESTS,
    EXOSCALE_DBAAS,
    EXOSCALE_OBJECT_STORAGE,
)
from billing_collector.units import UomMapping


class FakeLookup:
    def __init__(self, sales_orders: "dict[str, str]") -> "None":
        self._sales_orders = sales_orders
        self.calls: "list[str]" = []

    async def __call__(self, organization: "str") -> "str":
        self.calls.append(organization)
        if organization not in self._sales_orders:
            raise BillingPartyLookupError(organization, "not found")
        return self._sales_orders[organization]


def _context(
    reference: "datetime",
    uom: "UomMapping",
    lookup: "FakeLookup | None" = None,
    override: "str" = "",
) -> "RunContext":
    return RunContext(
        reference=reference,
        cluster_id="c-appuio-cloudscale-lpg-2",
        uom=uom,
        billing_party=BillingPartyResolver(lookup=lookup, override=override),
    )


def _pg_detail(name: "str", org: "str" = "org1", ns: "str" = "vshn-xyz") -> "ManagedResourceDetail":
    return ManagedResourceDetail(
        organization=org,
        name=name,
        namespace=ns,
        zone="ch-gva-2",
        kind=ResourceKind.POSTGRESQL,
    )


def _bucket_detail(name: "str", org: "str" = "org1") -> "ManagedResourceDetail":
    return ManagedResourceDetail(
        organization=org,
        name=name,
        namespace="vshn-xyz",
        zone="ch-gva-2",
        kind=ResourceKind.EXOSCALE_BUCKET,
    )


class TestAggregateDBaaS:
    @pytest.mark.asyncio
    async def test_matched_instance_produces_one_record(
        self, reference: "datetime", uom: "UomMapping"
    ) -> "None":
        usage = {
            "postgres-abc": UsageReading(
                "postgres-abc", 1.0, service_type="pg", service_plan="hobbyist-2"
            )
        }
        context = _context(reference, uom, FakeLookup({"org1": "SO-1"}))

        records = await aggregate(usage, [_pg_detail("postgres-abc")], context, EXOSCALE_DBAAS)

        assert len(records) == 1
        record = records[0]
        assert record.instance_id == "ch-gva-2/postgres-abc"
        assert record.consumed_units == 1
        assert record.product_id == "appcat-exoscale-dbaas-pg-hobbyist-2"
        assert record.item_description == "Exoscale DBaaS PostgreSQL"
        assert record.billing_party == "SO-1"
        assert record.unit_id == "uom_instance_hour"
        assert record.time_range.end - record.time_range.start == timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_unmatched_names_produce_nothing(
        self, reference: "datetime", uom: "UomMapping"
    ) -> "None":
        usage = {
            "postgres-123": UsageReading("postgres-123", 1.0, "pg", "hobbyist-2"),
            "postgres-456": UsageReading("postgres-456", 1.0, "pg", "business-128"),
        }
        lookup = FakeLookup({"org1": "SO-1"})
        context = _context(reference, uom, lookup)

        records = await aggregate(
            usage,
            [_pg_detail("postgres-abc"), _pg_detail("postgres-def", org="org2")],
            context,
            EXOSCALE_DBAAS,
        )

        assert records == []
        assert lookup.calls == []

    @pytest.mark.asyncio
    async def test_kind_mismatch_is_skipped(
        self, reference: "datetime", uom: "UomMapping"
    ) -> "None":
        usage = {"shared-name": UsageReading("shared-name", 1.0, "mysql", "startup-4")}
        context = _context(reference, uom, FakeLookup({"org1": "SO-1"}))

        records = await aggregate(usage, [_pg_detail("shared-name")], context, EXOSCALE_DBAAS)

        assert records == []

    @pytest.mark.asyncio
    async def test_unknown_service_type_is_skipped(
        self, reference: "datetime", uom: "UomMapping"
    ) -> "None":
        usage = {"pg-1": UsageReading("pg-1", 1.0, "grafana", "hobbyist-2")}
        context = _context(reference, uom, FakeLookup({"org1": "SO-1"}))

        assert await aggregate(usage, [_pg_detail("pg-1")], context, EXOSCALE_DBAAS) == []


class TestAggregateObjectStorage:
    @pytest.mark.asyncio
    async def test_converts_bytes_to_gigabytes(
        self, reference: "datetime", uom: "UomMapping"
    ) -> "None":
        usage = {"bucket-1": UsageReading("bucket-1", 3 * 1024**3)}
        context = _context(reference, uom, FakeLookup({"org1": "SO-1"}))

        records = await aggregate(
            usage, [_bucket_detail("bucket-1")], context, EXOSCALE_OBJECT_STORAGE
        )

        assert records[0].consumed_units == 3.0
        assert records[0].product_id == "appcat-exoscale-object-storage"
        assert records[0].unit_id == "uom_gbday"
        assert records[0].time_range.end - records[0].time_range.start == timedelta(days=1)

    @pytest.mark.asyncio
    async def test_bucket_usage_does_not_match_dbaas_detail(
        self, reference: "datetime", uom: "UomMapping"
    ) -> "None":
        usage = {"pg-1": UsageReading("pg-1", 1024.0)}
        context = _context(reference, uom, FakeLookup({"org1": "SO-1"}))

        records = await aggregate(usage, [_pg_detail("pg-1")], context, EXOSCALE_OBJECT_STORAGE)

        assert records == []

    @pytest.mark.asyncio
    async def test_item_group_names_cluster_and_namespace(
        self, reference: "datetime", uom: "UomMapping"
    ) -> "None":
        usage = {"bucket-1": UsageReading("bucket-1", 1024.0)}
        context = _context(reference, uom, FakeLookup({"org1": "SO-1"}))

        records = await aggregate(
            usage, [_bucket_detail("bucket-1")], context, EXOSCALE_OBJECT_STORAGE
        )

        assert records[0].item_group_description == (
            "APPUiO Cloud - Zone: c-appuio-cloudscale-lpg-2 / Namespace: vshn-xyz"
        )


class TestAggregateBillingParty:
    @pytest.mark.asyncio
    async def test_override_is_used_verbatim_without_lookup(
        self, reference: "datetime", uom: "UomMapping"
    ) -> "None":
        usage = {
            "pg-1": UsageReading("pg-1", 1.0, "pg", "hobbyist-2"),
            "pg-2": UsageReading("pg-2", 1.0, "pg", "startup-4"),
        }
        lookup = FakeLookup({"org1": "SO-1"})
        context = _context(reference, uom, lookup, override="S10121")

        records = await aggregate(
            usage, [_pg_detail("pg-1"), _pg_detail("pg-2")], context, EXOSCALE_DBAAS
        )

        assert [r.billing_party for r in records] == ["S10121", "S10121"]
        assert lookup.calls == []
        assert records[0].item_group_description.startswith("APPUiO Managed - ")

    @pytest.mark.asyncio
    async def test_lookup_once_per_organization(
        self, reference: "datetime", uom: "UomMapping"
    ) -> "None":
        details = [_pg_detail(f"pg-{i}") for i in range(5)]
        usage = {d.name: UsageReading(d.name, 1.0, "pg", "hobbyist-2") for d in details}
        lookup = FakeLookup({"org1": "SO-1"})
        context = _context(reference, uom, lookup)

        records = await aggregate(usage, details, context, EXOSCALE_DBAAS)

        assert len(records) == 5
        assert lookup.calls == ["org1"]

    @pytest.mark.asyncio
    async def test_failed_lookup_skips_only_that_organization(
        self, reference: "datetime", uom: "UomMapping"
    ) -> "None":
        details = [
            _pg_detail("pg-1", org="org1"),
            _pg_detail("pg-2", org="unknown"),
            _pg_detail("pg-3", org="org1"),
        ]
        usage = {d.name: UsageReading(d.name, 1.0, "pg", "hobbyist-2") for d in details}
        context = _context(reference, uom, FakeLookup({"org1": "SO-1"}))

        records = await aggregate(usage, details, context, EXOSCALE_DBAAS)

        assert [r.instance_id for r in records] == ["ch-gva-2/pg-1", "ch-gva-2/pg-3"]


class TestAggregateProperties:
    @pytest.mark.asyncio
    async def test_empty_input_yields_empty_list(
        self, reference: "datetime", uom: "UomMapping"
    ) -> "None":
        context = _context(reference, uom, FakeLookup({}))
        assert await aggregate({}, [], context, EXOSCALE_DBAAS) == []

    @pytest.mark.asyncio
    async def test_is_idempotent(self, reference: "datetime", uom: "UomMapping") -> "None":
        details = [_bucket_detail("bucket-1"), _bucket_detail("bucket-2", org="org2")]
        usage = {
            "bucket-1": UsageReading("bucket-1", 5 * 1024**3),
            "bucket-2": UsageReading("bucket-2", 1024**3),
        }
        lookup = FakeLookup({"org1": "SO-1", "org2": "SO-2"})

        first = await aggregate(
            usage, details, _context(reference, uom, lookup), EXOSCALE_OBJECT_STORAGE
        )
        second = await aggregate(
            usage, details, _context(reference, uom, lookup), EXOSCALE_OBJECT_STORAGE
        )

        assert first == second
        assert [r.to_dict() for r in first] == [r.to_dict() for r in second]

    @pytest.mark.asyncio
    async def test_unmapped_unit_fails_the_run(self, reference: "datetime") -> "None":
        context = _context(reference, UomMapping({"GBDay": "uom_gbday"}), FakeLookup({}))
        with pytest.raises(UnitConversionError):
            await aggregate({}, [], context, CLOUDSCALE_REQUESTS)
