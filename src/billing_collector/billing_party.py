from typing import Awaitable, Callable

import structlog

from billing_collector.errors import BillingPartyLookupError

logger = structlog.get_logger()

SalesOrderLookup = Callable[[str], Awaitable[str]]


class BillingPartyResolver:
    """
    BillingPartyResolver resolves the sales order an organization's
    usage is billed against.

    With a static override every organization resolves to the
    override and the lookup is never called. Otherwise each distinct
    organization is looked up once; successes and failures are both
    remembered, so a resolver must only live for a single run.
    """

    def __init__(
        self,
        lookup: "SalesOrderLookup | None" = None,
        override: "str" = "",
    ) -> "None":
        if lookup is None and not override:
            raise ValueError("either a lookup or an override is required")
        self._lookup = lookup
        self._override = override
        self._resolved: "dict[str, str]" = {}
        self._failed: "dict[str, BillingPartyLookupError]" = {}

    @property
    def has_override(self) -> "bool":
        return bool(self._override)

    async def resolve(self, organization: "str") -> "str":
        """
        returns the billing party for the organization. Raises
        BillingPartyLookupError if it cannot be resolved.
        """
        if self._override:
            return self._override

        if organization in self._resolved:
            return self._resolved[organization]
        if organization in self._failed:
            raise self._failed[organization]

        lookup = self._lookup
        if lookup is None:
            raise BillingPartyLookupError(organization, "no sales order lookup configured")
        try:
            billing_party = await lookup(organization)
        except BillingPartyLookupError as exc:
            self._failed[organization] = exc
            raise

        if not billing_party:
            exc = BillingPartyLookupError(organization, "empty sales order")
            self._failed[organization] = exc
            raise exc

        logger.debug(
            "billing_party_resolved",
            organization=organization,
            billing_party=billing_party,
        )
        self._resolved[organization] = billing_party
        return billing_party
