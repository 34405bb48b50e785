import base64
import hashlib
import hmac
import time
from typing import Any, Generator, Sequence
from urllib.parse import parse_qs

import httpx
import structlog

from billing_collector.errors import FetchError
from billing_collector.metrics import MetricsUpdater
from billing_collector.models import UsageReading
from billing_collector.provider.base import index_by_name

logger = structlog.get_logger()

EXOSCALE_API_URL = "https://api-{zone}.exoscale.com/v2"
DEFAULT_ZONE = "ch-gva-2"
ZONES: "tuple[str, ...]" = (
    "ch-gva-2",
    "ch-dk-2",
    "de-fra-1",
    "de-muc-1",
    "at-vie-1",
    "at-vie-2",
    "bg-sof-1",
)

# signatures are valid for 10 minutes
_SIGNATURE_TTL_SECONDS = 600


class ExoscaleAuth(httpx.Auth):
    """
    signs requests with the EXO2-HMAC-SHA256 scheme.

    The signed message is made of the method and path, the body,
    the query parameter values ordered by name, an empty header
    section and the expiration timestamp, separated by newlines.
    """

    requires_request_body = True

    def __init__(self, api_key: "str", api_secret: "str") -> "None":
        self._api_key = api_key
        self._api_secret = api_secret.encode("utf-8")

    def auth_flow(
        self, request: "httpx.Request"
    ) -> "Generator[httpx.Request, httpx.Response, None]":
        request.headers["Authorization"] = self.authorization(
            request.method,
            request.url.path,
            request.url.query.decode("ascii"),
            request.content,
            int(time.time()) + _SIGNATURE_TTL_SECONDS,
        )
        yield request

    def authorization(
        self,
        method: "str",
        path: "str",
        query: "str",
        body: "bytes",
        expires: "int",
    ) -> "str":
        params = parse_qs(query, keep_blank_values=True)
        signed_params = sorted(params)

        message = b"\n".join(
            [
                f"{method} {path}".encode("utf-8"),
                body or b"",
                "".join(params[p][0] for p in signed_params).encode("utf-8"),
                b"",
                str(expires).encode("utf-8"),
            ]
        )
        signature = hmac.new(self._api_secret, message, hashlib.sha256).digest()

        header = f"EXO2-HMAC-SHA256 credential={self._api_key}"
        if signed_params:
            header += f",signed-query-args={';'.join(signed_params)}"
        header += f",expires={expires}"
        header += f",signature={base64.standard_b64encode(signature).decode('utf-8')}"
        return header


class ExoscaleClient:
    """
    ExoscaleClient is a thin wrapper around the zone-scoped
    Exoscale v2 API endpoints.
    """

    def __init__(
        self,
        api_key: "str",
        api_secret: "str",
        metrics: "MetricsUpdater | None" = None,
        timeout: "float" = 30.0,
    ) -> "None":
        self._metrics = metrics
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(
            timeout=timeout,
            auth=ExoscaleAuth(api_key, api_secret),
        )

    async def close(self) -> "None":
        await self._client.aclose()

    async def get(self, zone: "str", path: "str") -> "dict[str, Any]":
        url = f"{EXOSCALE_API_URL.format(zone=zone)}/{path}"
        logger.debug("exoscale_request", url=url)
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            self._observe("failed")
            raise FetchError(f"exoscale request {path} in {zone} failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError as exc:
            self._observe("failed")
            raise FetchError(f"exoscale returned a malformed body for {path} in {zone}") from exc
        if not isinstance(body, dict):
            self._observe("failed")
            raise FetchError(f"exoscale returned a malformed body for {path} in {zone}")

        self._observe("succeeded")
        return body

    def _observe(self, outcome: "str") -> "None":
        if self._metrics is not None:
            self._metrics.inc_provider_request("exoscale", outcome)


class ExoscaleObjectStorage:
    """
    ExoscaleObjectStorage reports the current size of every SOS
    bucket in the organization. The usage endpoint is not zone
    partitioned, it returns the buckets of all zones.
    """

    def __init__(self, client: "ExoscaleClient") -> "None":
        self._client = client

    @property
    def name(self) -> "str":
        return "exoscale-objectstorage"

    async def close(self) -> "None":
        await self._client.close()

    async def fetch_usage(
        self,
        zones: "Sequence[str] | None" = None,
    ) -> "dict[str, UsageReading]":
        logger.info("fetching_bucket_usage", provider="exoscale")
        data = await self._client.get(DEFAULT_ZONE, "sos-buckets-usage")

        try:
            readings = [
                UsageReading(resource_name=bucket["name"], quantity=float(bucket.get("size", 0)))
                for bucket in data.get("sos-buckets-usage", [])
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise FetchError(f"malformed exoscale bucket usage: {exc!r}") from exc
        return index_by_name(readings)


class ExoscaleDBaaS:
    """
    ExoscaleDBaaS lists database services zone by zone. Every running
    service counts as one instance.
    """

    def __init__(self, client: "ExoscaleClient") -> "None":
        self._client = client

    @property
    def name(self) -> "str":
        return "exoscale-dbaas"

    async def close(self) -> "None":
        await self._client.close()

    async def fetch_usage(
        self,
        zones: "Sequence[str] | None" = None,
    ) -> "dict[str, UsageReading]":
        logger.info("fetching_dbaas_usage", provider="exoscale")

        # zones are fetched one after the other and a single failing
        # zone fails the whole snapshot
        readings: "list[UsageReading]" = []
        for zone in zones or ZONES:
            try:
                data = await self._client.get(zone, "dbaas-service")
            except FetchError:
                logger.debug("dbaas_zone_fetch_failed", zone=zone)
                raise

            try:
                for service in data.get("dbaas-services", []):
                    readings.append(
                        UsageReading(
                            resource_name=service["name"],
                            quantity=1.0,
                            service_type=service.get("type"),
                            service_plan=service.get("plan"),
                        )
                    )
            except (KeyError, TypeError, AttributeError) as exc:
                raise FetchError(f"malformed exoscale dbaas services in {zone}: {exc!r}") from exc

        return index_by_name(readings)
