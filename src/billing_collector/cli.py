import argparse
import dataclasses

from billing_collector.config import Config

# spks bills a single fixed sales order unless told otherwise
_SPKS_DEFAULT_SALES_ORDER = "S10121"


def _common_flags() -> "argparse.ArgumentParser":
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "--odoo-url",
        dest="odoo_url",
        help="URL of the Odoo metered billing API (env: ODOO_URL)",
    )
    parser.add_argument(
        "--odoo-oauth-token-url",
        dest="odoo_oauth_token_url",
        help="OAuth token URL of the billing API (env: ODOO_OAUTH_TOKEN_URL)",
    )
    parser.add_argument(
        "--odoo-oauth-client-id",
        dest="odoo_oauth_client_id",
        help="OAuth client ID for the billing API (env: ODOO_OAUTH_CLIENT_ID)",
    )
    parser.add_argument(
        "--odoo-oauth-client-secret",
        dest="odoo_oauth_client_secret",
        help="OAuth client secret for the billing API (env: ODOO_OAUTH_CLIENT_SECRET)",
    )
    parser.add_argument(
        "--sales-order",
        dest="sales_order",
        help="Sales order to bill all records against, disables the "
        "per-organization lookup (env: SALES_ORDER)",
    )
    parser.add_argument(
        "--days",
        dest="days",
        type=int,
        help="Days of metrics to catch up on since today, 0 for current "
        "metrics only (env: DAYS, default: 0)",
    )
    parser.add_argument(
        "--collect-interval",
        dest="interval",
        type=int,
        help="Seconds between runs (env: COLLECT_INTERVAL, default: daily, "
        "hourly for DBaaS)",
    )
    return parser


def _cluster_flags() -> "argparse.ArgumentParser":
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "--cluster-id",
        dest="cluster_id",
        help="ID of the cluster the resources run on (env: CLUSTER_ID)",
    )
    parser.add_argument(
        "--kubeconfig",
        dest="kubeconfig",
        help="Path to a kubeconfig file, used instead of the server "
        "url/token flags if set (env: KUBECONFIG)",
    )
    parser.add_argument(
        "--kubernetes-server-url",
        dest="kubernetes_server_url",
        help="Kubernetes API server URL (env: KUBERNETES_SERVER_URL)",
    )
    parser.add_argument(
        "--kubernetes-server-token",
        dest="kubernetes_server_token",
        help="Kubernetes token allowed to list managed resources and "
        "namespaces (env: KUBERNETES_SERVER_TOKEN)",
    )
    parser.add_argument(
        "--prometheus-url",
        dest="prometheus_url",
        help="Prometheus URL used to look up sales orders (env: PROMETHEUS_URL)",
    )
    parser.add_argument(
        "--uom",
        dest="uom",
        help="JSON object mapping units (GBDay, GB, KReq, InstanceHour) "
        "to billing unit of measure IDs (env: UOM)",
    )
    return parser


def _exoscale_flags() -> "argparse.ArgumentParser":
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "--exoscale-api-key",
        dest="exoscale_api_key",
        help="Exoscale API key (env: EXOSCALE_API_KEY)",
    )
    parser.add_argument(
        "--exoscale-api-secret",
        dest="exoscale_api_secret",
        help="Exoscale API secret (env: EXOSCALE_API_SECRET)",
    )
    return parser


def build_parser() -> "argparse.ArgumentParser":
    parser = argparse.ArgumentParser(
        prog="billing-collector",
        description="Collects cloud service usage and reports it to the billing API",
    )
    parser.add_argument(
        "--bind",
        dest="listen_address",
        help="Address the metrics endpoint listens on (env: BIND, default: :9123)",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=["debug", "info", "warning", "error"],
        help="Log level (env: LOG_LEVEL, default: info)",
    )
    parser.add_argument(
        "--log-format",
        dest="log_format",
        choices=["console", "json"],
        help="Log format (env: LOG_FORMAT, default: console)",
    )

    common = _common_flags()
    cluster = _cluster_flags()
    exoscale = _exoscale_flags()

    providers = parser.add_subparsers(dest="provider", required=True)

    exo = providers.add_parser("exoscale", help="Collect metrics from Exoscale")
    exo_products = exo.add_subparsers(dest="product", required=True)
    exo_products.add_parser(
        "objectstorage",
        parents=[common, cluster, exoscale],
        help="Bill object storage usage",
    ).set_defaults(command="exoscale-objectstorage")
    exo_products.add_parser(
        "dbaas",
        parents=[common, cluster, exoscale],
        help="Bill DBaaS instances",
    ).set_defaults(command="exoscale-dbaas")

    cs = providers.add_parser("cloudscale", help="Collect metrics from cloudscale")
    cs_products = cs.add_subparsers(dest="product", required=True)
    cs_objectstorage = cs_products.add_parser(
        "objectstorage",
        parents=[common, cluster],
        help="Bill object storage usage",
    )
    cs_objectstorage.add_argument(
        "--cloudscale-api-token",
        dest="cloudscale_api_token",
        help="API token for cloudscale (env: CLOUDSCALE_API_TOKEN)",
    )
    cs_objectstorage.set_defaults(command="cloudscale-objectstorage")

    spks = providers.add_parser(
        "spks", parents=[common], help="Collect instance counts from SPKS"
    )
    spks.add_argument(
        "--prometheus-url",
        dest="prometheus_url",
        help="URL of the Prometheus API (env: PROMETHEUS_URL)",
    )
    spks.add_argument(
        "--unit-id",
        dest="unit_id",
        help="Billing unit of measure ID for the consumed units (env: UNIT_ID)",
    )
    spks.add_argument(
        "--environment",
        dest="environment",
        help="Environment of the instances, e.g. nonprod or prod (env: ENVIRONMENT)",
    )
    spks.add_argument(
        "--service-sla",
        dest="service_sla",
        help='SLA of the instances, "standard" or "premium" (env: SERVICE_SLA)',
    )
    spks.set_defaults(command="spks")

    return parser


def parse_args(argv: "list[str] | None" = None) -> "Config":
    """
    parses the command line on top of the environment. Flags win
    over environment variables, which win over defaults.
    """
    args = build_parser().parse_args(argv)
    config = Config.from_env()

    overrides = {
        field.name: getattr(args, field.name)
        for field in dataclasses.fields(Config)
        if getattr(args, field.name, None) is not None
    }
    config = dataclasses.replace(config, **overrides)

    if config.command == "spks" and not config.sales_order:
        config = dataclasses.replace(config, sales_order=_SPKS_DEFAULT_SALES_ORDER)
    return config
