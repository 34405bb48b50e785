from dataclasses import dataclass

from billing_collector.kinds import ResourceKind
from billing_collector.models import UsageReading
from billing_collector.units import Quantity, Unit
from billing_collector.window import BillingWindow


@dataclass(frozen=True)
class Product:
    """
    Product describes how a usage reading turns into a billing record:
    which product ID and description to use, which unit the raw value
    is converted to and which window it is billed over.

    Products with per_service_variant set derive their ID from the
    provider-reported service type and plan.
    """

    product_id: "str"
    description: "str"
    source: "Quantity"
    unit: "Unit"
    window: "BillingWindow"
    per_service_variant: "bool" = False

    def product_id_for(self, reading: "UsageReading") -> "str":
        if self.per_service_variant:
            return f"{self.product_id}-{reading.service_type}-{reading.service_plan}"
        return self.product_id

    def description_for(self, kind: "ResourceKind") -> "str":
        if self.per_service_variant:
            return f"{self.description} {kind.display_name}"
        return self.description


EXOSCALE_OBJECT_STORAGE = Product(
    product_id="appcat-exoscale-object-storage",
    description="AppCat Exoscale ObjectStorage",
    source=Quantity.BYTES,
    unit=Unit.GB_DAY,
    window=BillingWindow.DAILY,
)

EXOSCALE_DBAAS = Product(
    product_id="appcat-exoscale-dbaas",
    description="Exoscale DBaaS",
    source=Quantity.INSTANCES,
    unit=Unit.INSTANCE_HOUR,
    window=BillingWindow.HOURLY,
    per_service_variant=True,
)

CLOUDSCALE_STORAGE = Product(
    product_id="appcat-cloudscale-objectstorage-storage",
    description="AppCat Cloudscale ObjectStorage",
    source=Quantity.BYTES,
    unit=Unit.GB_DAY,
    window=BillingWindow.DAILY,
)

CLOUDSCALE_TRAFFIC_OUT = Product(
    product_id="appcat-cloudscale-objectstorage-trafficout",
    description="AppCat Cloudscale ObjectStorage",
    source=Quantity.BYTES,
    unit=Unit.GB,
    window=BillingWindow.DAILY,
)

CLOUDSCALE_REQUESTS = Product(
    product_id="appcat-cloudscale-objectstorage-requests",
    description="AppCat Cloudscale ObjectStorage",
    source=Quantity.REQUESTS,
    unit=Unit.KREQ,
    window=BillingWindow.DAILY,
)
