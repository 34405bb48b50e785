from typing import Any, Iterable, Mapping, Sequence

import structlog
from kubernetes_asyncio import client
from kubernetes_asyncio.client.exceptions import ApiException

from billing_collector.errors import FetchError
from billing_collector.kinds import NAMESPACE_LABEL, ResourceKind
from billing_collector.models import ManagedResourceDetail

logger = structlog.get_logger()

# label on namespaces naming the owning organization
ORGANIZATION_LABEL = "appuio.io/organization"


def resolve_details(
    listings: "Mapping[ResourceKind, Sequence[dict[str, Any]]]",
    namespace_orgs: "Mapping[str, str]",
    log: "Any" = None,
) -> "list[ManagedResourceDetail]":
    """
    turns raw cluster listings into details carrying the owning
    namespace and organization. Resources without the namespace
    label, or in a namespace without an organization, are skipped.
    """
    log = log or logger
    details: "list[ManagedResourceDetail]" = []

    for kind, items in listings.items():
        for item in items:
            metadata = item.get("metadata", {})
            object_name = metadata.get("name", "")
            labels = metadata.get("labels") or {}

            namespace = labels.get(NAMESPACE_LABEL)
            if namespace is None:
                log.info(
                    "namespace_label_missing",
                    resource=object_name,
                    kind=kind.display_name,
                    label=NAMESPACE_LABEL,
                )
                continue

            organization = namespace_orgs.get(namespace)
            if organization is None:
                # org list and resource list are not a consistent snapshot
                log.info(
                    "namespace_not_found",
                    resource=object_name,
                    kind=kind.display_name,
                    namespace=namespace,
                )
                continue

            detail = ManagedResourceDetail(
                organization=organization,
                name=kind.resource_name(item),
                namespace=namespace,
                zone=kind.zone(item),
                kind=kind,
            )
            log.debug(
                "resource_detail_added",
                resource=detail.name,
                namespace=namespace,
                organization=organization,
            )
            details.append(detail)

    return details


class KubernetesInventory:
    """
    KubernetesInventory lists managed resources and namespaces
    from the cluster and resolves them into details.
    """

    def __init__(
        self,
        custom_api: "client.CustomObjectsApi",
        core_api: "client.CoreV1Api",
    ) -> "None":
        self._custom_api = custom_api
        self._core_api = core_api
        self._log = logger.bind(component="inventory")

    @classmethod
    def from_api_client(cls, api_client: "client.ApiClient") -> "KubernetesInventory":
        return cls(client.CustomObjectsApi(api_client), client.CoreV1Api(api_client))

    async def fetch_details(
        self, kinds: "Iterable[ResourceKind]"
    ) -> "list[ManagedResourceDetail]":
        namespace_orgs = await self.fetch_namespace_organizations()

        listings: "dict[ResourceKind, list[dict[str, Any]]]" = {}
        for kind in kinds:
            items = await self.list_kind(kind)
            if items is not None:
                listings[kind] = items

        return resolve_details(listings, namespace_orgs, self._log)

    async def fetch_namespace_organizations(self) -> "dict[str, str]":
        """
        returns a namespace name -> organization mapping for every
        namespace carrying the organization label.
        """
        self._log.debug("listing_namespaces")
        try:
            namespaces = await self._core_api.list_namespace(
                label_selector=ORGANIZATION_LABEL
            )
        except ApiException as exc:
            raise FetchError(f"cannot list namespaces: {exc.reason}") from exc

        mapping: "dict[str, str]" = {}
        for ns in namespaces.items:
            labels = ns.metadata.labels or {}
            organization = labels.get(ORGANIZATION_LABEL)
            if organization:
                mapping[ns.metadata.name] = organization
        return mapping

    async def list_kind(self, kind: "ResourceKind") -> "list[dict[str, Any]] | None":
        """
        lists all objects of a managed resource kind. Returns None
        when a database kind is not installed in the cluster, a
        missing bucket kind is an error.
        """
        self._log.debug("listing_managed_resources", group=kind.group, plural=kind.plural)
        try:
            result = await self._custom_api.list_cluster_custom_object(
                group=kind.group,
                version=kind.version,
                plural=kind.plural,
            )
        except ApiException as exc:
            # database operators are optional, bucket CRDs are not
            if exc.status == 404 and not kind.is_bucket:
                self._log.debug("managed_resource_kind_not_found", plural=kind.plural)
                return None
            raise FetchError(
                f"cannot list {kind.plural}.{kind.group} from cluster: {exc.reason}"
            ) from exc

        return list(result.get("items", []))
