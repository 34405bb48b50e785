import asyncio
import signal
import sys
from contextlib import AsyncExitStack

import structlog
from kubernetes_asyncio import client
from kubernetes_asyncio import config as k8s_config
from prometheus_client import start_http_server

from billing_collector.cli import parse_args
from billing_collector.config import Config
from billing_collector.errors import ConfigurationError
from billing_collector.inventory import KubernetesInventory
from billing_collector.jobs import (
    CloudscaleObjectStorageJob,
    ExoscaleDBaaSJob,
    ExoscaleObjectStorageJob,
    JobSettings,
    SpksJob,
    SpksSettings,
)
from billing_collector.logging import setup_logging
from billing_collector.metrics import MetricsUpdater
from billing_collector.odoo import OdooClient
from billing_collector.prometheus import PrometheusClient
from billing_collector.provider.cloudscale import CloudscaleObjectStorage
from billing_collector.provider.exoscale import (
    ExoscaleClient,
    ExoscaleDBaaS,
    ExoscaleObjectStorage,
)
from billing_collector.runner import Job, Runner

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9123' or '0.0.0.0:9123'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


async def _kubernetes_client(config: "Config") -> "client.ApiClient":
    """
    builds a Kubernetes API client from a kubeconfig file if one is
    configured, from the server URL and token otherwise.
    """
    configuration = client.Configuration()
    if config.kubeconfig:
        await k8s_config.load_kube_config(
            config_file=config.kubeconfig,
            client_configuration=configuration,
        )
    else:
        configuration.host = config.kubernetes_server_url
        configuration.api_key = {"authorization": config.kubernetes_server_token}
        configuration.api_key_prefix = {"authorization": "Bearer"}
    return client.ApiClient(configuration=configuration)


async def _build_job(
    config: "Config",
    metrics_updater: "MetricsUpdater",
    stack: "AsyncExitStack",
) -> "Job":
    odoo = OdooClient(
        url=config.odoo_url,
        token_url=config.odoo_oauth_token_url,
        client_id=config.odoo_oauth_client_id,
        client_secret=config.odoo_oauth_client_secret,
        metrics=metrics_updater,
    )
    stack.push_async_callback(odoo.close)

    prometheus = PrometheusClient(config.prometheus_url, metrics=metrics_updater)
    stack.push_async_callback(prometheus.close)

    if config.command == "spks":
        settings = SpksSettings(
            sales_order=config.sales_order,
            unit_id=config.unit_id,
            environment=config.environment,
            service_sla=config.service_sla,
        )
        return SpksJob(prometheus, odoo, settings)

    logger.info("creating_kubernetes_client")
    api_client = await _kubernetes_client(config)
    stack.push_async_callback(api_client.close)
    inventory = KubernetesInventory.from_api_client(api_client)

    job_settings = JobSettings(
        cluster_id=config.cluster_id,
        uom=config.uom_mapping,
        billing_party_override=config.sales_order,
    )
    # with a static sales order the lookup is never consulted
    lookup = None if config.sales_order else prometheus.sales_order

    if config.command == "cloudscale-objectstorage":
        cloudscale = CloudscaleObjectStorage(config.cloudscale_api_token, metrics=metrics_updater)
        stack.push_async_callback(cloudscale.close)
        return CloudscaleObjectStorageJob(inventory, cloudscale, odoo, job_settings, lookup)

    exoscale = ExoscaleClient(
        config.exoscale_api_key, config.exoscale_api_secret, metrics=metrics_updater
    )
    stack.push_async_callback(exoscale.close)

    if config.command == "exoscale-dbaas":
        return ExoscaleDBaaSJob(
            inventory, ExoscaleDBaaS(exoscale), odoo, job_settings, lookup
        )
    return ExoscaleObjectStorageJob(
        inventory, ExoscaleObjectStorage(exoscale), odoo, job_settings, lookup
    )


async def _run(config: "Config", metrics_updater: "MetricsUpdater") -> "None":
    async with AsyncExitStack() as stack:
        job = await _build_job(config, metrics_updater, stack)
        runner = Runner(
            job,
            metrics_updater,
            interval_seconds=config.effective_interval,
            days=config.days,
            catch_up_step=config.billing_window.value,
        )

        loop = asyncio.get_running_loop()
        # for SIGINT and SIGTERM, signal the runner
        # to stop gracefully
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, runner.stop)

        try:
            await runner.run()
        finally:
            logger.info("shutting_down")
    logger.info("shutdown_complete")


def main() -> "None":
    try:
        config = parse_args()
        config.validate()
    except ConfigurationError as exc:
        # logging is not set up yet
        print(f"billing-collector: {exc}", file=sys.stderr)
        raise SystemExit(1) from None

    setup_logging(config.log_level, config.log_format)
    logger.info("starting_billing_collector", command=config.command)

    metrics_updater = MetricsUpdater()
    host, port = _parse_listen_address(config.listen_address)
    start_http_server(port, addr=host)
    logger.info("metrics_server_started", host=host, port=port)

    try:
        asyncio.run(_run(config, metrics_updater))
    except Exception:
        logger.exception("fatal_error")
        raise SystemExit(1) from None


if __name__ == "__main__":
    main()
