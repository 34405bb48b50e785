from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Sequence

import structlog

from billing_collector.billing_party import BillingPartyResolver
from billing_collector.errors import BillingPartyLookupError
from billing_collector.kinds import ResourceKind
from billing_collector.models import BillingRecord, ManagedResourceDetail, UsageReading
from billing_collector.products import Product
from billing_collector.units import UomMapping, convert
from billing_collector.window import billing_window

logger = structlog.get_logger()


@dataclass(frozen=True)
class RunContext:
    """
    RunContext carries everything a single aggregation run depends
    on besides the fetched snapshots. The reference instant is
    injected so that runs are reproducible.
    """

    reference: "datetime"
    cluster_id: "str"
    uom: "UomMapping"
    billing_party: "BillingPartyResolver"


def item_group_description(context: "RunContext", namespace: "str") -> "str":
    # managed clusters have a fixed sales order, cloud clusters
    # bill the organization owning the namespace
    platform = "APPUiO Managed" if context.billing_party.has_override else "APPUiO Cloud"
    return f"{platform} - Zone: {context.cluster_id} / Namespace: {namespace}"


def _kind_matches(detail: "ManagedResourceDetail", reading: "UsageReading") -> "bool":
    if reading.service_type is None:
        return detail.kind.is_bucket
    return ResourceKind.from_service_type(reading.service_type) is detail.kind


async def aggregate(
    usage: "Mapping[str, UsageReading]",
    details: "Sequence[ManagedResourceDetail]",
    context: "RunContext",
    product: "Product",
    log: "Any" = None,
) -> "list[BillingRecord]":
    """
    joins the cluster details with the provider usage on resource
    name and builds one billing record per match.

    Details without usage, or whose kind disagrees with the
    provider-reported service type, are skipped. So are details
    whose organization has no resolvable billing party. An unknown
    unit configuration raises and fails the whole run.
    """
    log = (log or logger).bind(product=product.product_id)
    log.info("aggregating_usage", details=len(details), readings=len(usage))

    time_range = billing_window(context.reference, product.window)
    unit_id = context.uom.unit_id(product.unit)

    records: "list[BillingRecord]" = []
    for detail in details:
        log.debug("checking_resource", resource=detail.name)

        reading = usage.get(detail.name)
        if reading is None:
            log.info("usage_not_found", resource=detail.name)
            continue

        if not _kind_matches(detail, reading):
            log.info(
                "usage_kind_mismatch",
                resource=detail.name,
                kind=detail.kind.display_name,
                service_type=reading.service_type,
            )
            continue

        consumed = convert(reading.quantity, product.source, product.unit)

        try:
            billing_party = await context.billing_party.resolve(detail.organization)
        except BillingPartyLookupError as exc:
            log.error(
                "billing_party_unresolved",
                resource=detail.name,
                namespace=detail.namespace,
                organization=detail.organization,
                error=str(exc),
            )
            continue

        records.append(
            BillingRecord(
                product_id=product.product_id_for(reading),
                instance_id=f"{detail.zone}/{detail.name}",
                item_description=product.description_for(detail.kind),
                item_group_description=item_group_description(context, detail.namespace),
                billing_party=billing_party,
                unit_id=unit_id,
                consumed_units=consumed,
                time_range=time_range,
            )
        )

    log.info("aggregation_done", records=len(records))
    return records
