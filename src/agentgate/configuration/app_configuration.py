from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict, List
import yaml

from agentgate.configuration.ai_settings import AISettings
from agentgate.configuration.gateway_settings import GatewaySettings
from agentgate.datatypes.agent_datatypes import AgentProfile
from agentgate.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()
DEFAULT_DATABASE_PATH = Path("./data/agentgate.db")

# Environment variables that override ai_settings keys
AI_ENV_OVERRIDES = {
    "OPENAI_API_KEY": "api_key",
    "OPENAI_BASE_URL": "base_url",
    "OPENAI_MODEL": "model_name",
}


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    typed views: :class:`GatewaySettings` for the tuning options,
    :class:`AISettings` for the model endpoint and a list of
    :class:`AgentProfile` entries. fcntl shared locks guard reads against a
    concurrent writer.
    """

    def __init__(self, config_path: Path, environ: Dict[str, str] | None = None) -> None:
        self.config_path = config_path
        self.environ = os.environ if environ is None else environ
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.error("[APP CONFIGURATION] Config root must be a mapping, got %s", type(data).__name__)
            return {}
        return data

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Re-read the YAML file, replace the cache and return the new mapping.

        An unreadable or missing file yields an empty mapping, so every
        accessor falls back to its defaults.
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """The cached configuration mapping. Callers must not mutate it."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def gateway_settings(self) -> GatewaySettings:
        """Tuning options from the ``gateway`` section plus environment overrides.

        Raises:
            ValueError: If an option is malformed. Configuration errors are
                fatal at startup.
        """
        section = self._data.get("gateway", {})
        if not isinstance(section, dict):
            section = {}
        return GatewaySettings.from_mapping(section, self.environ)

    @property
    def ai_settings(self) -> AISettings:
        settings = self._data.get("ai_settings", {})
        settings = dict(settings) if isinstance(settings, dict) else {}
        for env_name, key in AI_ENV_OVERRIDES.items():
            if self.environ.get(env_name):
                settings[key] = self.environ[env_name]
        return AISettings(settings)

    @property
    def agents(self) -> List[AgentProfile]:
        """Configured agents. Malformed entries are logged and skipped."""
        entries = self._data.get("agents") or []
        if not isinstance(entries, list):
            logger.error("[APP CONFIGURATION] 'agents' must be a list, got %s", type(entries).__name__)
            return []

        profiles: List[AgentProfile] = []
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning("[APP CONFIGURATION] Skipping non-mapping agent entry %r", entry)
                continue
            try:
                profiles.append(AgentProfile.from_dict(entry))
            except ValueError as exc:
                logger.warning("[APP CONFIGURATION] Skipping agent entry: %s", exc)
        return profiles

    @property
    def default_agent(self) -> AgentProfile | None:
        agents = self.agents
        wanted = self._data.get("default_agent")
        for agent in agents:
            if agent.agent_id == wanted:
                return agent
        return agents[0] if agents else None

    @property
    def database_path(self) -> Path:
        database = self._data.get("database", {})
        if isinstance(database, dict) and database.get("path"):
            return Path(str(database["path"]))
        return DEFAULT_DATABASE_PATH
