from dataclasses import dataclass
from datetime import datetime

from billing_collector.kinds import ResourceKind


@dataclass(frozen=True, slots=True)
class TimeRange:
    """
    TimeRange is a half-open interval [start, end) in UTC that a
    billing record's consumption is attributed to.
    """

    start: "datetime"
    end: "datetime"

    def __post_init__(self) -> "None":
        if self.end <= self.start:
            raise ValueError(f"time range end {self.end} must be after start {self.start}")

    def to_odoo(self) -> "str":
        """
        renders the range the way the metered billing API expects it:
        both RFC 3339 timestamps joined by a slash.
        """
        return f"{_rfc3339(self.start)}/{_rfc3339(self.end)}"


@dataclass(frozen=True, slots=True)
class BillingRecord:
    """
    BillingRecord represents a single billable line item
    reported to the billing API.
    """

    product_id: "str"
    # stable per resource, the sink upserts on it
    instance_id: "str"
    item_description: "str"
    item_group_description: "str"
    # sales order the usage is billed against
    billing_party: "str"
    unit_id: "str"
    consumed_units: "float"
    time_range: "TimeRange"

    def to_dict(self) -> "dict[str, object]":
        record: "dict[str, object]" = {
            "product_id": self.product_id,
            "instance_id": self.instance_id,
            "sales_order": self.billing_party,
            "unit_id": self.unit_id,
            "consumed_units": self.consumed_units,
            "timerange": self.time_range.to_odoo(),
        }
        if self.item_description:
            record["item_description"] = self.item_description
        if self.item_group_description:
            record["item_group_description"] = self.item_group_description
        return record


@dataclass(frozen=True, slots=True)
class ManagedResourceDetail:
    """
    ManagedResourceDetail is a cluster-managed resource enriched
    with the namespace and organization that own it.
    """

    organization: "str"
    name: "str"
    namespace: "str"
    zone: "str"
    kind: "ResourceKind"


@dataclass(frozen=True, slots=True)
class UsageReading:
    """
    UsageReading is a provider-reported consumption value for
    a single resource, keyed by resource name.
    """

    resource_name: "str"
    quantity: "float"
    # provider service type and plan, only reported for DBaaS
    service_type: "str | None" = None
    service_plan: "str | None" = None


@dataclass(frozen=True, slots=True)
class BucketMetrics:
    """
    BucketMetrics holds the daily totals cloudscale reports
    for one bucket.
    """

    bucket_name: "str"
    storage_bytes: "float"
    sent_bytes: "float"
    requests: "float"


def _rfc3339(value: "datetime") -> "str":
    return value.isoformat().replace("+00:00", "Z")
