"""
Unit tests for network and deployment settings.

Tests cover:
- Frozen config validation
- load_settings from the environment and from a .env file
- Required variables, overrides and malformed values
"""

import os

import pytest

from poolmigrate.config import (
    GWEI,
    NETWORKS,
    REFERENCE_DEPLOYMENT,
    DeploymentConfig,
    NetworkConfig,
    Settings,
    load_settings,
)
from poolmigrate.exceptions import ConfigurationError
from tests.fixtures import DISTRIBUTOR, SECOND_DISTRIBUTOR

PRIVATE_KEY = "11" * 32


@pytest.fixture
def environ(monkeypatch, tmp_path):
    """Isolated process environment, with no .env file reachable from the cwd."""
    env: dict[str, str] = {}
    monkeypatch.setattr(os, "environ", env)
    monkeypatch.chdir(tmp_path)
    return env


class TestNetworkConfig:
    def test_rpc_url_variable(self):
        assert NetworkConfig(name="polygon", chain_id=137).rpc_url_variable == "POLYGON_URL"
        assert NetworkConfig(name="goerli", chain_id=5).rpc_url_variable == "GOERLI_URL"

    @pytest.mark.parametrize(
        "kwargs",
        [{"chain_id": 0}, {"chain_id": 137, "gas_price_wei": 0}],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            NetworkConfig(name="polygon", **kwargs)

    def test_presets(self):
        goerli, goerli_deployment = NETWORKS["goerli"]
        polygon, polygon_deployment = NETWORKS["polygon"]

        assert goerli.chain_id == 5
        assert polygon.chain_id == 137
        assert goerli.gas_price_wei == polygon.gas_price_wei == 45 * GWEI
        assert not goerli_deployment.is_complete
        assert polygon_deployment == REFERENCE_DEPLOYMENT


class TestDeploymentConfig:
    def test_reference_deployment(self):
        assert REFERENCE_DEPLOYMENT.legacy_registry == "0xC5C24B76de65808eD1c17E411c6C5cfC78FA1A98"
        assert REFERENCE_DEPLOYMENT.current_registry == "0xb80d90DA1231C84DD1327CcaFD9b750e03a0264E"
        assert REFERENCE_DEPLOYMENT.master_slot == 25
        assert REFERENCE_DEPLOYMENT.is_complete

    def test_negative_master_slot_rejected(self):
        with pytest.raises(ValueError):
            DeploymentConfig(master_slot=-1)


class TestSettings:
    def test_private_key_hidden(self):
        settings = Settings(
            network=NetworkConfig(name="polygon", chain_id=137),
            deployment=REFERENCE_DEPLOYMENT,
            private_key=PRIVATE_KEY,
        )

        assert PRIVATE_KEY not in repr(settings)
        data = settings.to_dict()
        assert PRIVATE_KEY not in str(data)
        assert data["signer_configured"] is True

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            Settings(
                network=NetworkConfig(name="polygon", chain_id=137),
                deployment=REFERENCE_DEPLOYMENT,
                confirmation_timeout_seconds=0,
            )


class TestLoadSettings:
    """Tests for load_settings."""

    def test_from_environment(self, environ):
        environ.update({"POLYGON_URL": "https://polygon.example", "PRIVATE_KEY": PRIVATE_KEY})

        settings = load_settings("polygon")

        assert settings.network.rpc_url == "https://polygon.example"
        assert settings.network.chain_id == 137
        assert settings.private_key == PRIVATE_KEY
        assert settings.deployment == REFERENCE_DEPLOYMENT

    def test_from_env_file(self, environ, tmp_path):
        env_file = tmp_path / "deploy.env"
        env_file.write_text(
            f"POLYGON_URL=https://from-file.example\nPRIVATE_KEY=0x{PRIVATE_KEY}\n"
        )

        settings = load_settings("polygon", env_file=env_file)

        assert settings.network.rpc_url == "https://from-file.example"
        assert settings.private_key == f"0x{PRIVATE_KEY}"

    def test_discovers_dotenv_in_working_directory(self, environ, tmp_path):
        (tmp_path / ".env").write_text(
            f"POLYGON_URL=https://discovered.example\nPRIVATE_KEY={PRIVATE_KEY}\n"
        )

        settings = load_settings("polygon")

        assert settings.network.rpc_url == "https://discovered.example"

    def test_environment_wins_over_env_file(self, environ, tmp_path):
        env_file = tmp_path / "deploy.env"
        env_file.write_text(f"POLYGON_URL=https://from-file.example\nPRIVATE_KEY={PRIVATE_KEY}\n")
        environ["POLYGON_URL"] = "https://from-env.example"

        settings = load_settings("polygon", env_file=env_file)

        assert settings.network.rpc_url == "https://from-env.example"

    def test_missing_variables_listed(self, environ):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings("polygon")

        assert exc_info.value.details["missing"] == ["POLYGON_URL", "PRIVATE_KEY"]

    def test_signer_optional_for_dry_runs(self, environ):
        settings = load_settings("goerli", require_signer=False)

        assert settings.private_key is None
        assert settings.network.rpc_url == ""
        assert not settings.deployment.is_complete

    def test_unknown_network(self, environ):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings("mainnet")

        assert "goerli" in str(exc_info.value)

    def test_malformed_private_key(self, environ):
        environ.update({"POLYGON_URL": "https://polygon.example", "PRIVATE_KEY": "not-a-key"})

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings("polygon")

        assert "not-a-key" not in str(exc_info.value)

    def test_goerli_needs_deployment_addresses(self, environ):
        environ.update({"GOERLI_URL": "https://goerli.example", "PRIVATE_KEY": PRIVATE_KEY})

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings("goerli")

        assert "LEGACY_REGISTRY_ADDRESS" in str(exc_info.value)

    def test_overrides(self, environ):
        environ.update(
            {
                "GOERLI_URL": "https://goerli.example",
                "PRIVATE_KEY": PRIVATE_KEY,
                "LEGACY_REGISTRY_ADDRESS": DISTRIBUTOR.lower(),
                "CURRENT_REGISTRY_ADDRESS": SECOND_DISTRIBUTOR,
                "MASTER_SLOT": "3",
            }
        )

        settings = load_settings("goerli")

        assert settings.deployment.legacy_registry == DISTRIBUTOR
        assert settings.deployment.current_registry == SECOND_DISTRIBUTOR
        assert settings.deployment.master_slot == 3

    @pytest.mark.parametrize(
        ("variable", "value"),
        [
            ("LEGACY_REGISTRY_ADDRESS", "0xnope"),
            ("CURRENT_REGISTRY_ADDRESS", "12345"),
            ("LEGACY_REGISTRY_ADDRESS", "0x5aaeb6053F3E94C9b9A09f33669435E7Ef1BeAed"),
            ("MASTER_SLOT", "-1"),
            ("MASTER_SLOT", "twenty-five"),
        ],
    )
    def test_malformed_overrides(self, environ, variable, value):
        environ.update(
            {"POLYGON_URL": "https://polygon.example", "PRIVATE_KEY": PRIVATE_KEY, variable: value}
        )

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings("polygon")

        assert exc_info.value.details["variable"] == variable
