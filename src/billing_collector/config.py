import os
from dataclasses import dataclass

from billing_collector.errors import ConfigurationError
from billing_collector.units import Unit, UomMapping
from billing_collector.window import BillingWindow

COMMANDS = (
    "exoscale-objectstorage",
    "exoscale-dbaas",
    "cloudscale-objectstorage",
    "spks",
)

# hourly instance billing needs an hourly run, storage billing a daily one
DEFAULT_INTERVALS: "dict[str, int]" = {
    "exoscale-objectstorage": 24 * 60 * 60,
    "exoscale-dbaas": 60 * 60,
    "cloudscale-objectstorage": 24 * 60 * 60,
    "spks": 24 * 60 * 60,
}

# catch-up walks the history one billing window at a time
COMMAND_WINDOWS: "dict[str, BillingWindow]" = {
    "exoscale-objectstorage": BillingWindow.DAILY,
    "exoscale-dbaas": BillingWindow.HOURLY,
    "cloudscale-objectstorage": BillingWindow.DAILY,
    "spks": BillingWindow.DAILY,
}

COMMAND_UNITS: "dict[str, tuple[Unit, ...]]" = {
    "exoscale-objectstorage": (Unit.GB_DAY,),
    "exoscale-dbaas": (Unit.INSTANCE_HOUR,),
    "cloudscale-objectstorage": (Unit.GB_DAY, Unit.GB, Unit.KREQ),
    # spks bills with an explicit unit id
    "spks": (),
}

DEFAULT_ODOO_URL = "https://preprod.central.vshn.ch/api/v2/product_usage_report_POST"
DEFAULT_PROMETHEUS_URL = (
    "http://prometheus-monitoring-application.monitoring-application.svc.cluster.local:9090"
)

# used when no explicit unit of measure mapping is configured
DEFAULT_UOM = '{"GBDay": "GBDay", "GB": "GB", "KReq": "KReq", "InstanceHour": "InstanceHour"}'


@dataclass(frozen=True)
class Config:
    command: "str" = ""

    # listen_address: format ":9123" or
    # "0.0.0.0:9123"
    listen_address: "str" = ":9123"
    log_level: "str" = "info"
    # console or json
    log_format: "str" = "console"
    # seconds between runs, 0 picks the command default
    interval: "int" = 0
    # days to catch up on start, 0 runs once for now
    days: "int" = 0

    cluster_id: "str" = ""
    # static sales order, disables the per-organization lookup
    sales_order: "str" = ""
    uom: "str" = DEFAULT_UOM

    kubeconfig: "str" = ""
    kubernetes_server_url: "str" = ""
    kubernetes_server_token: "str" = ""

    exoscale_api_key: "str" = ""
    exoscale_api_secret: "str" = ""
    cloudscale_api_token: "str" = ""
    prometheus_url: "str" = DEFAULT_PROMETHEUS_URL

    odoo_url: "str" = DEFAULT_ODOO_URL
    odoo_oauth_token_url: "str" = ""
    odoo_oauth_client_id: "str" = ""
    odoo_oauth_client_secret: "str" = ""

    # spks only
    unit_id: "str" = "uom_uom_68_b1811ca1"
    environment: "str" = ""
    service_sla: "str" = "standard"

    @classmethod
    def from_env(cls) -> "Config":
        defaults = cls()

        def env(name: "str", default: "str") -> "str":
            return os.environ.get(name, default)

        def env_int(name: "str", default: "int") -> "int":
            raw = os.environ.get(name)
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None

        return cls(
            listen_address=env("BIND", defaults.listen_address),
            log_level=env("LOG_LEVEL", defaults.log_level),
            log_format=env("LOG_FORMAT", defaults.log_format),
            interval=env_int("COLLECT_INTERVAL", defaults.interval),
            days=env_int("DAYS", defaults.days),
            cluster_id=env("CLUSTER_ID", defaults.cluster_id),
            sales_order=env("SALES_ORDER", defaults.sales_order),
            uom=env("UOM", defaults.uom),
            kubeconfig=env("KUBECONFIG", defaults.kubeconfig),
            kubernetes_server_url=env("KUBERNETES_SERVER_URL", defaults.kubernetes_server_url),
            kubernetes_server_token=env(
                "KUBERNETES_SERVER_TOKEN", defaults.kubernetes_server_token
            ),
            exoscale_api_key=env("EXOSCALE_API_KEY", defaults.exoscale_api_key),
            exoscale_api_secret=env("EXOSCALE_API_SECRET", defaults.exoscale_api_secret),
            cloudscale_api_token=env("CLOUDSCALE_API_TOKEN", defaults.cloudscale_api_token),
            prometheus_url=env("PROMETHEUS_URL", defaults.prometheus_url),
            odoo_url=env("ODOO_URL", defaults.odoo_url),
            odoo_oauth_token_url=env("ODOO_OAUTH_TOKEN_URL", defaults.odoo_oauth_token_url),
            odoo_oauth_client_id=env("ODOO_OAUTH_CLIENT_ID", defaults.odoo_oauth_client_id),
            odoo_oauth_client_secret=env(
                "ODOO_OAUTH_CLIENT_SECRET", defaults.odoo_oauth_client_secret
            ),
            unit_id=env("UNIT_ID", defaults.unit_id),
            environment=env("ENVIRONMENT", defaults.environment),
            service_sla=env("SERVICE_SLA", defaults.service_sla),
        )

    @property
    def effective_interval(self) -> "int":
        return self.interval or DEFAULT_INTERVALS.get(self.command, 24 * 60 * 60)

    @property
    def billing_window(self) -> "BillingWindow":
        return COMMAND_WINDOWS.get(self.command, BillingWindow.DAILY)

    @property
    def uom_mapping(self) -> "UomMapping":
        return UomMapping.from_json(self.uom)

    def validate(self) -> "None":
        """
        checks that everything the selected command needs is set.
        Raises ConfigurationError listing the missing settings.
        """
        if self.command not in COMMANDS:
            raise ConfigurationError(f"unknown command {self.command!r}")
        if self.days < 0:
            raise ConfigurationError("days must not be negative")

        required: "dict[str, str]" = {
            "odoo-oauth-token-url": self.odoo_oauth_token_url,
            "odoo-oauth-client-id": self.odoo_oauth_client_id,
            "odoo-oauth-client-secret": self.odoo_oauth_client_secret,
        }
        if self.command.startswith("exoscale-"):
            required["exoscale-api-key"] = self.exoscale_api_key
            required["exoscale-api-secret"] = self.exoscale_api_secret
        if self.command == "cloudscale-objectstorage":
            required["cloudscale-api-token"] = self.cloudscale_api_token
        if self.command == "spks":
            required["environment"] = self.environment
            required["sales-order"] = self.sales_order
        else:
            required["cluster-id"] = self.cluster_id
            if not self.kubeconfig:
                required["kubernetes-server-url"] = self.kubernetes_server_url
                required["kubernetes-server-token"] = self.kubernetes_server_token

        missing = sorted(flag for flag, value in required.items() if not value)
        if missing:
            raise ConfigurationError(
                "missing required settings: " + ", ".join(f"--{m}" for m in missing)
            )

        # fails early on mappings that cannot be parsed or lack a unit
        mapping = self.uom_mapping
        for unit in COMMAND_UNITS[self.command]:
            mapping.unit_id(unit)
