class BillingCollectorError(Exception):
    """
    base class for all collector errors.
    """


class ConfigurationError(BillingCollectorError):
    """
    raised for deployment mistakes such as a missing credential or
    an unusable unit mapping. Always fatal.
    """


class UnitConversionError(ConfigurationError):
    pass


class FetchError(BillingCollectorError):
    """
    raised when a listing call against the cluster, a provider or
    Prometheus fails. Fails the current run only.
    """


class BillingPartyLookupError(BillingCollectorError):
    """
    raised when no sales order can be resolved for an organization.
    """

    def __init__(self, organization: "str", reason: "str") -> "None":
        super().__init__(f"cannot resolve billing party for {organization}: {reason}")
        self.organization = organization


class BillingSinkError(BillingCollectorError):
    pass
