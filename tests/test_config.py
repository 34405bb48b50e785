import pytest

from billing_collector.config import Config
from billing_collector.errors import ConfigurationError, UnitConversionError
from billing_collector.window import BillingWindow

_ENV_VARS = (
    "BIND",
    "COLLECT_INTERVAL",
    "DAYS",
    "CLUSTER_ID",
    "SALES_ORDER",
    "UOM",
    "KUBECONFIG",
    "KUBERNETES_SERVER_URL",
    "KUBERNETES_SERVER_TOKEN",
    "EXOSCALE_API_KEY",
    "EXOSCALE_API_SECRET",
    "ODOO_OAUTH_TOKEN_URL",
)


@pytest.fixture()
def clean_env(monkeypatch: "pytest.MonkeyPatch") -> "pytest.MonkeyPatch":
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def _exoscale_config(**overrides: "object") -> "Config":
    values: "dict[str, object]" = {
        "command": "exoscale-objectstorage",
        "cluster_id": "c-1",
        "kubernetes_server_url": "https://k8s.test:6443",
        "kubernetes_server_token": "token",
        "exoscale_api_key": "EXOkey",
        "exoscale_api_secret": "secret",
        "odoo_oauth_token_url": "https://odoo.test/oauth2/token",
        "odoo_oauth_client_id": "client",
        "odoo_oauth_client_secret": "secret",
    }
    values.update(overrides)
    return Config(**values)


class TestConfigFromEnv:
    def test_defaults(self, clean_env: "pytest.MonkeyPatch") -> "None":
        config = Config.from_env()
        assert config.listen_address == ":9123"
        assert config.days == 0
        assert config.cluster_id == ""
        assert config.kubeconfig == ""

    def test_reads_env_vars(self, clean_env: "pytest.MonkeyPatch") -> "None":
        clean_env.setenv("CLUSTER_ID", "c-appuio-cloudscale-lpg-2")
        clean_env.setenv("DAYS", "7")
        clean_env.setenv("EXOSCALE_API_KEY", "EXOkey")
        config = Config.from_env()
        assert config.cluster_id == "c-appuio-cloudscale-lpg-2"
        assert config.days == 7
        assert config.exoscale_api_key == "EXOkey"

    def test_bad_integer_raises(self, clean_env: "pytest.MonkeyPatch") -> "None":
        clean_env.setenv("DAYS", "seven")
        with pytest.raises(ConfigurationError, match="DAYS"):
            Config.from_env()


class TestEffectiveInterval:
    def test_dbaas_defaults_to_hourly(self) -> "None":
        assert Config(command="exoscale-dbaas").effective_interval == 3600

    def test_storage_defaults_to_daily(self) -> "None":
        assert Config(command="cloudscale-objectstorage").effective_interval == 86400

    def test_explicit_interval_wins(self) -> "None":
        assert Config(command="exoscale-dbaas", interval=60).effective_interval == 60


class TestValidate:
    def test_complete_config_passes(self) -> "None":
        _exoscale_config().validate()

    def test_lists_missing_settings(self) -> "None":
        config = _exoscale_config(exoscale_api_key="", cluster_id="")
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()
        assert str(exc_info.value) == (
            "missing required settings: --cluster-id, --exoscale-api-key"
        )

    def test_kubeconfig_replaces_server_flags(self) -> "None":
        config = _exoscale_config(
            kubernetes_server_url="",
            kubernetes_server_token="",
            kubeconfig="/etc/kube/config",
        )
        config.validate()

    def test_spks_needs_no_cluster(self) -> "None":
        config = _exoscale_config(
            command="spks",
            cluster_id="",
            exoscale_api_key="",
            environment="prod",
            sales_order="S10121",
        )
        config.validate()

    def test_unknown_command_fails(self) -> "None":
        with pytest.raises(ConfigurationError):
            _exoscale_config(command="aws-s3").validate()

    def test_negative_days_fail(self) -> "None":
        with pytest.raises(ConfigurationError):
            _exoscale_config(days=-1).validate()

    def test_unmapped_unit_fails(self) -> "None":
        config = _exoscale_config(
            command="cloudscale-objectstorage",
            cloudscale_api_token="token",
            uom='{"GBDay": "uom_gbday"}',
        )
        with pytest.raises(UnitConversionError):
            config.validate()

    def test_malformed_mapping_fails(self) -> "None":
        with pytest.raises(ConfigurationError):
            _exoscale_config(uom="{not json").validate()


class TestBillingWindow:
    def test_dbaas_bills_hourly(self) -> "None":
        assert Config(command="exoscale-dbaas").billing_window is BillingWindow.HOURLY

    def test_storage_bills_daily(self) -> "None":
        assert Config(command="exoscale-objectstorage").billing_window is BillingWindow.DAILY
        assert Config(command="cloudscale-objectstorage").billing_window is BillingWindow.DAILY
