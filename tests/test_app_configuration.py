from pathlib import Path

import pytest
import yaml

from agentgate.configuration.ai_settings import AISettings
from agentgate.configuration.app_configuration import DEFAULT_DATABASE_PATH, AppConfig
from agentgate.configuration.gateway_settings import GatewaySettings


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


def write_config(path: Path, payload) -> None:
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")


def test_app_config_reload_parses_yaml(config_path: Path) -> None:
    write_config(
        config_path,
        {
            "gateway": {"BAN_THRESHOLD": 7, "kick_threshold": 6, "DEDUP_TTL_MS": 5000},
            "ai_settings": {"model_name": "test-model", "temperature": 0.2},
            "database": {"path": "./somewhere/db.sqlite"},
            "default_agent": "helper",
            "agents": [
                {"id": "assistant", "name": "Gate"},
                {"id": "helper", "name": "Helper", "model": "small-model"},
            ],
        },
    )

    config = AppConfig(config_path, environ={})

    settings = config.gateway_settings
    assert settings.BAN_THRESHOLD == 7
    assert settings.KICK_THRESHOLD == 6
    assert settings.TEMP_MUTE_THRESHOLD == 3
    assert settings.dedup_ttl == pytest.approx(5.0)

    ai_settings = config.ai_settings
    assert ai_settings.model_name == "test-model"
    assert ai_settings.temperature == pytest.approx(0.2)

    assert [agent.agent_id for agent in config.agents] == ["assistant", "helper"]
    assert config.default_agent.agent_id == "helper"
    assert config.default_agent.model == "small-model"
    assert config.database_path == Path("./somewhere/db.sqlite")


def test_missing_file_falls_back_to_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "missing.yml", environ={})

    assert config.data == {}
    assert config.gateway_settings == GatewaySettings()
    assert config.agents == []
    assert config.default_agent is None
    assert config.database_path == DEFAULT_DATABASE_PATH


def test_non_mapping_root_is_ignored(config_path: Path) -> None:
    config_path.write_text("- just\n- a list\n", encoding="utf-8")
    assert AppConfig(config_path, environ={}).data == {}


def test_environment_overrides_yaml(config_path: Path) -> None:
    write_config(config_path, {"gateway": {"BAN_THRESHOLD": 7}, "ai_settings": {"model_name": "from-yaml"}})
    environ = {"BAN_THRESHOLD": "9", "GENERATION_TIMEOUT_MS": "1500", "OPENAI_MODEL": "from-env", "OPENAI_API_KEY": "sk-test"}

    config = AppConfig(config_path, environ=environ)

    assert config.gateway_settings.BAN_THRESHOLD == 9
    assert config.gateway_settings.generation_timeout == pytest.approx(1.5)
    assert config.ai_settings.model_name == "from-env"
    assert config.ai_settings.api_key == "sk-test"


def test_invalid_agents_are_skipped(config_path: Path) -> None:
    write_config(config_path, {"agents": [{"name": "no id"}, "garbage", {"id": "ok"}]})
    agents = AppConfig(config_path, environ={}).agents
    assert [agent.agent_id for agent in agents] == ["ok"]
    assert agents[0].name == "ok"


def test_default_agent_falls_back_to_first(config_path: Path) -> None:
    write_config(config_path, {"default_agent": "missing", "agents": [{"id": "first"}, {"id": "second"}]})
    assert AppConfig(config_path, environ={}).default_agent.agent_id == "first"


def test_reload_picks_up_changes(config_path: Path) -> None:
    write_config(config_path, {"gateway": {"BAN_THRESHOLD": 7}})
    config = AppConfig(config_path, environ={})
    write_config(config_path, {"gateway": {"BAN_THRESHOLD": 8}})

    config.reload()

    assert config.gateway_settings.BAN_THRESHOLD == 8


class TestGatewaySettings:
    def test_defaults(self) -> None:
        settings = GatewaySettings()
        assert (settings.TEMP_MUTE_THRESHOLD, settings.KICK_THRESHOLD, settings.BAN_THRESHOLD) == (3, 4, 5)
        assert settings.warning_retention_seconds == 30 * 86400
        assert settings.generation_timeout == 180
        assert settings.dedup_text_window == 3

    @pytest.mark.parametrize(
        "overrides",
        [
            {"TEMP_MUTE_THRESHOLD": 5, "KICK_THRESHOLD": 4},
            {"KICK_THRESHOLD": 6},
            {"TEMP_MUTE_THRESHOLD": 0},
            {"SUMMARIZE_KEEP_COUNT": 30},
            {"PARTIAL_UPDATE_CHARS": 0},
            {"CONTEXT_TOKEN_BUDGET": -1},
        ],
    )
    def test_invalid_values_are_rejected(self, overrides) -> None:
        with pytest.raises(ValueError):
            GatewaySettings.from_mapping(overrides, environ={})

    def test_unparseable_value_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="BAN_THRESHOLD"):
            GatewaySettings.from_mapping({"BAN_THRESHOLD": "lots"}, environ={})

    def test_float_option_accepts_fractions(self) -> None:
        settings = GatewaySettings.from_mapping({"WARNING_EXPIRATION_DAYS": "0.5"}, environ={})
        assert settings.warning_retention_seconds == pytest.approx(43200)


def test_ai_settings_defaults() -> None:
    settings = AISettings()
    assert settings.model_name == "gpt-4o-mini"
    assert settings.summarizer_model == "gpt-4o-mini"
    assert settings.base_url is None
    assert settings.summarizer_max_tokens == 150
