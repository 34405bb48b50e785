import time
from typing import Sequence

import httpx
import structlog

from billing_collector.errors import BillingSinkError
from billing_collector.metrics import MetricsUpdater
from billing_collector.models import BillingRecord

logger = structlog.get_logger()

# refresh tokens a little before they actually expire
_TOKEN_EXPIRY_MARGIN_SECONDS = 30


class OdooClient:
    """
    OdooClient delivers billing records to the Odoo metered billing
    API. It authenticates with an OAuth2 client-credentials token
    that is cached until shortly before it expires.
    """

    def __init__(
        self,
        url: "str",
        token_url: "str",
        client_id: "str",
        client_secret: "str",
        metrics: "MetricsUpdater | None" = None,
        timeout: "float" = 30.0,
    ) -> "None":
        self._url = url
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._metrics = metrics
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(timeout=timeout)
        self._token: "str" = ""
        self._token_expires_at: "float" = 0.0

    async def close(self) -> "None":
        await self._client.aclose()

    async def send(self, records: "Sequence[BillingRecord]") -> "None":
        """
        posts the whole batch in one request. A non-2xx response
        raises BillingSinkError, there are no retries.
        """
        if not records:
            logger.info("odoo_nothing_to_send")
            return

        token = await self._access_token()
        payload = {"data": [record.to_dict() for record in records]}

        logger.debug("odoo_send", url=self._url, record_count=len(records))
        try:
            resp = await self._client.post(
                self._url,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            self._failed()
            raise BillingSinkError(f"cannot reach billing API: {exc}") from exc

        if not resp.is_success:
            self._failed()
            raise BillingSinkError(
                f"billing API responded with {resp.status_code}: {resp.text}"
            )

        logger.info("odoo_records_sent", record_count=len(records))

    async def _access_token(self) -> "str":
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        logger.debug("odoo_token_request", token_url=self._token_url)
        try:
            resp = await self._client.post(
                self._token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                },
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            self._failed()
            raise BillingSinkError(f"cannot obtain billing API token: {exc}") from exc

        body = resp.json()
        token = body.get("access_token")
        if not token:
            self._failed()
            raise BillingSinkError("token response carries no access_token")

        expires_in = float(body.get("expires_in", 0))
        self._token = token
        self._token_expires_at = (
            time.monotonic() + expires_in - _TOKEN_EXPIRY_MARGIN_SECONDS
        )
        return token

    def _failed(self) -> "None":
        if self._metrics is not None:
            self._metrics.inc_odoo_failed()
