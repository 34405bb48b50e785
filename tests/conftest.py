from datetime import datetime, timezone

import pytest
from prometheus_client import CollectorRegistry

from billing_collector.units import UomMapping


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def reference() -> "datetime":
    """
    fixed reference instant: 2023-01-15 10:30 in Zurich (UTC+1).
    """
    return datetime(2023, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture()
def uom() -> "UomMapping":
    return UomMapping(
        {
            "GBDay": "uom_gbday",
            "GB": "uom_gb",
            "KReq": "uom_kreq",
            "InstanceHour": "uom_instance_hour",
        }
    )
