from datetime import datetime
from typing import Any

import httpx
import structlog

from billing_collector.errors import BillingPartyLookupError, FetchError
from billing_collector.metrics import MetricsUpdater

logger = structlog.get_logger()

SALES_ORDER_QUERY = 'appuio_control_organization_info{{organization="{organization}"}}'
SALES_ORDER_LABEL = "sales_order"


class PrometheusClient:
    """
    PrometheusClient runs instant queries against the Prometheus
    HTTP API.
    """

    def __init__(
        self,
        base_url: "str",
        metrics: "MetricsUpdater | None" = None,
        timeout: "float" = 60.0,
    ) -> "None":
        self._base_url = base_url.rstrip("/")
        self._metrics = metrics
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> "None":
        await self._client.aclose()

    async def query(
        self, promql: "str", at: "datetime | None" = None
    ) -> "list[dict[str, Any]]":
        """
        executes an instant query and returns the result vector.
        """
        params: "dict[str, str]" = {"query": promql, "timeout": "5s"}
        if at is not None:
            params["time"] = f"{at.timestamp():.3f}"

        logger.debug("prometheus_query", query=promql, at=params.get("time"))
        try:
            resp = await self._client.get(f"{self._base_url}/api/v1/query", params=params)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            self._observe("failed")
            raise FetchError(f"prometheus query failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError as exc:
            self._observe("failed")
            raise FetchError(f"prometheus returned a malformed body: {exc}") from exc
        if not isinstance(body, dict):
            self._observe("failed")
            raise FetchError("prometheus returned a malformed body")
        if body.get("status") != "success":
            self._observe("failed")
            raise FetchError(f"prometheus query failed: {body.get('error', 'unknown error')}")

        for warning in body.get("warnings", []):
            logger.info("prometheus_query_warning", query=promql, warning=warning)

        data = body.get("data")
        result_type = data.get("resultType") if isinstance(data, dict) else None
        if result_type != "vector":
            self._observe("failed")
            raise FetchError(f"unexpected prometheus result type {result_type}")

        self._observe("succeeded")
        return list(data.get("result", []))

    async def count(self, promql: "str", at: "datetime | None" = None) -> "int":
        """
        runs a query expected to return at most one sample and returns
        its value as an integer. An empty vector counts as zero.
        """
        result = await self.query(promql, at)
        if len(result) != 1:
            return 0
        try:
            return int(float(result[0]["value"][1]))
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise FetchError(f"malformed prometheus sample: {result[0]!r}") from exc

    async def sales_order(self, organization: "str") -> "str":
        """
        looks up the sales order of an organization from the
        organization info metric.
        """
        try:
            result = await self.query(SALES_ORDER_QUERY.format(organization=organization))
        except FetchError as exc:
            raise BillingPartyLookupError(organization, str(exc)) from exc

        if not result:
            raise BillingPartyLookupError(organization, "organization not found")

        sample = result[0]
        labels = sample.get("metric") if isinstance(sample, dict) else None
        if not isinstance(labels, dict):
            raise BillingPartyLookupError(organization, "malformed organization info sample")
        sales_order = labels.get(SALES_ORDER_LABEL, "")
        if not sales_order:
            raise BillingPartyLookupError(organization, "sales order label is empty")
        return sales_order

    def _observe(self, outcome: "str") -> "None":
        if self._metrics is not None:
            self._metrics.inc_provider_request("prometheus", outcome)
