from datetime import date
from typing import Any

import httpx
import structlog

from billing_collector.errors import FetchError
from billing_collector.metrics import MetricsUpdater
from billing_collector.models import BucketMetrics

logger = structlog.get_logger()

CLOUDSCALE_API_URL = "https://api.cloudscale.ch/v1"


class CloudscaleObjectStorage:
    """
    CloudscaleObjectStorage fetches per-bucket daily metrics from
    the cloudscale metrics API.
    """

    def __init__(
        self,
        api_token: "str",
        metrics: "MetricsUpdater | None" = None,
        base_url: "str" = CLOUDSCALE_API_URL,
        timeout: "float" = 30.0,
    ) -> "None":
        self._base_url = base_url.rstrip("/")
        self._metrics = metrics
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_token}"},
        )

    @property
    def name(self) -> "str":
        return "cloudscale-objectstorage"

    async def close(self) -> "None":
        await self._client.aclose()

    async def fetch_metrics(self, day: "date") -> "dict[str, BucketMetrics]":
        """
        returns the totals of the given day keyed by bucket name.
        Time series entries of a bucket are summed up.
        """
        logger.info("fetching_bucket_metrics", provider="cloudscale", day=day.isoformat())
        try:
            resp = await self._client.get(
                f"{self._base_url}/metrics/buckets",
                params={"start": day.isoformat(), "end": day.isoformat()},
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            self._observe("failed")
            raise FetchError(f"cloudscale bucket metrics request failed: {exc}") from exc

        try:
            metrics = _sum_bucket_metrics(resp.json())
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            self._observe("failed")
            raise FetchError(f"malformed cloudscale bucket metrics: {exc!r}") from exc
        self._observe("succeeded")
        return metrics

    def _observe(self, outcome: "str") -> "None":
        if self._metrics is not None:
            self._metrics.inc_provider_request("cloudscale", outcome)


def _sum_bucket_metrics(body: "dict[str, Any]") -> "dict[str, BucketMetrics]":
    metrics: "dict[str, BucketMetrics]" = {}
    for entry in body.get("data", []):
        bucket_name = entry["subject"]["name"]
        storage = sent = requests = 0.0
        for point in entry.get("time_series", []):
            usage = point.get("usage", {})
            storage += usage.get("storage_bytes", 0)
            sent += usage.get("sent_bytes", 0)
            requests += usage.get("requests", 0)

        metrics[bucket_name] = BucketMetrics(
            bucket_name=bucket_name,
            storage_bytes=storage,
            sent_bytes=sent,
            requests=requests,
        )
    return metrics
