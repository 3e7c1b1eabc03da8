"""Tests for configuration and the client builder."""

import pytest
from unleash_lite import (
    ClientBuilder,
    ClientConfig,
    ClientState,
    FeaturesQuery,
    InvalidCredentialError,
    UnleashClient,
    ValidationError,
)
from unleash_lite.config import DEFAULT_REFRESH_INTERVAL, DEFAULT_REQUEST_TIMEOUT
from unleash_lite.evaluate import YggdrasilEngine

URL = "https://unleash.test/"
TOKEN = "default:production.abc123"


class TestFeaturesQuery:
    """Tests for FeaturesQuery.to_params."""

    def test_empty(self):
        assert FeaturesQuery().to_params() == {}

    def test_project_and_prefix(self):
        query = FeaturesQuery(project=["web", "api"], name_prefix="checkout-")
        assert query.to_params() == {"project": ["web", "api"], "namePrefix": "checkout-"}


class TestClientConfig:
    """Tests for ClientConfig.validate."""

    def test_valid(self):
        config = ClientConfig(url=URL, app_name="my-app", api_token=TOKEN)
        token = config.validate()

        assert token.environment == "production"
        assert config.base_url == "https://unleash.test"

    @pytest.mark.parametrize("url", ["", "unleash.test", "ftp://unleash.test", "https://"])
    def test_invalid_url(self, url):
        with pytest.raises(ValidationError):
            ClientConfig(url=url, app_name="my-app", api_token=TOKEN).validate()

    def test_missing_app_name(self):
        with pytest.raises(ValidationError):
            ClientConfig(url=URL, app_name="", api_token=TOKEN).validate()

    @pytest.mark.parametrize("field", ["refresh_interval", "request_timeout"])
    def test_non_positive_durations(self, field):
        config = ClientConfig(url=URL, app_name="my-app", api_token=TOKEN)
        setattr(config, field, 0)
        with pytest.raises(ValidationError):
            config.validate()

    def test_invalid_token(self):
        with pytest.raises(InvalidCredentialError):
            ClientConfig(url=URL, app_name="my-app", api_token="abc").validate()


class TestClientBuilder:
    """Tests for ClientBuilder."""

    def test_defaults(self):
        config = ClientBuilder().config(URL, "my-app", TOKEN)

        assert config.instance_id is None
        assert config.refresh_interval == DEFAULT_REFRESH_INTERVAL
        assert config.request_timeout == DEFAULT_REQUEST_TIMEOUT
        assert config.features_query is None
        assert config.disable_metrics is False

    def test_chained_settings(self):
        query = FeaturesQuery(project=["web"])
        config = (
            ClientBuilder()
            .instance_id("worker-1")
            .refresh_interval(30)
            .features_query(query)
            .disable_metrics()
            .request_timeout(2)
            .config(URL, "my-app", TOKEN)
        )

        assert config.instance_id == "worker-1"
        assert config.refresh_interval == 30
        assert config.features_query is query
        assert config.disable_metrics is True
        assert config.request_timeout == 2

    async def test_build(self):
        engine = YggdrasilEngine()
        client = ClientBuilder().instance_id("worker-1").engine(engine).build(URL, "my-app", TOKEN)

        assert isinstance(client, UnleashClient)
        assert client.state == ClientState.STOPPED
        assert client.identity.environment == "production"
        assert client.identity.instance_id == "worker-1"
        assert client.evaluation_state.engine is engine
        await client.close()

    def test_build_rejects_bad_token(self):
        with pytest.raises(InvalidCredentialError):
            ClientBuilder().build(URL, "my-app", "no-separator")
