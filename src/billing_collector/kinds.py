from enum import Enum
from typing import Any

# label on every managed resource naming the namespace of its claim
NAMESPACE_LABEL = "crossplane.io/claim-namespace"
# annotation carrying the cloud zone of DBaaS instances
ZONE_ANNOTATION = "appcat.vshn.io/cloudzone"


class ResourceKind(Enum):
    """
    ResourceKind is the closed set of cluster-managed resource kinds
    the collector knows how to bill. Each member carries the API
    coordinates used to list it and, for DBaaS kinds, the service
    type the provider reports for it.
    """

    EXOSCALE_BUCKET = ("exoscale.crossplane.io", "v1", "buckets", "ObjectStorageBucket", None)
    CLOUDSCALE_BUCKET = ("cloudscale.crossplane.io", "v1", "buckets", "ObjectStorageBucket", None)
    POSTGRESQL = ("exoscale.crossplane.io", "v1", "postgresqls", "PostgreSQL", "pg")
    MYSQL = ("exoscale.crossplane.io", "v1", "mysqls", "MySQL", "mysql")
    OPENSEARCH = ("exoscale.crossplane.io", "v1", "opensearches", "OpenSearch", "opensearch")
    REDIS = ("exoscale.crossplane.io", "v1", "redis", "Redis", "redis")
    KAFKA = ("exoscale.crossplane.io", "v1", "kafkas", "Kafka", "kafka")

    def __init__(
        self,
        group: "str",
        version: "str",
        plural: "str",
        display_name: "str",
        service_type: "str | None",
    ) -> "None":
        self.group = group
        self.version = version
        self.plural = plural
        self.display_name = display_name
        self.service_type = service_type

    @property
    def is_bucket(self) -> "bool":
        return self.service_type is None

    @classmethod
    def dbaas(cls) -> "tuple[ResourceKind, ...]":
        return tuple(k for k in cls if not k.is_bucket)

    @classmethod
    def from_service_type(cls, service_type: "str") -> "ResourceKind | None":
        """
        maps a provider service type ("pg", "mysql", ...) back to its kind.
        """
        for kind in cls:
            if kind.service_type is not None and kind.service_type == service_type:
                return kind
        return None

    def resource_name(self, item: "dict[str, Any]") -> "str":
        """
        returns the name the provider knows the resource by. Buckets
        carry it in their spec, DBaaS instances share the object name.
        """
        if self.is_bucket:
            for_provider = item.get("spec", {}).get("forProvider", {})
            return for_provider.get("bucketName") or item["metadata"]["name"]
        return item["metadata"]["name"]

    def zone(self, item: "dict[str, Any]") -> "str":
        if self is ResourceKind.EXOSCALE_BUCKET:
            return item.get("spec", {}).get("forProvider", {}).get("zone", "")
        if self is ResourceKind.CLOUDSCALE_BUCKET:
            return item.get("spec", {}).get("forProvider", {}).get("region", "")
        annotations = item["metadata"].get("annotations") or {}
        return annotations.get(ZONE_ANNOTATION, "")
