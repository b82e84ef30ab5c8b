from typing import Any, Dict


class AISettings:
    """Helper exposing typed accessors for the model endpoint configuration.

    Only ``get``, ``as_dict`` and the convenience properties are provided; the
    mapping protocol is intentionally not implemented.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        """Return the underlying mapping."""
        return self.data

    @property
    def base_url(self) -> str | None:
        val = self.data.get("base_url")
        return str(val) if val else None

    @property
    def api_key(self) -> str | None:
        val = self.data.get("api_key")
        return str(val) if val else None

    @property
    def model_name(self) -> str:
        return str(self.data.get("model_name") or "gpt-4o-mini")

    @property
    def summarizer_model(self) -> str:
        return str(self.data.get("summarizer_model") or self.model_name)

    @property
    def summarizer_timeout(self) -> float:
        return float(self.data.get("summarizer_timeout_seconds", 30.0))

    @property
    def summarizer_max_tokens(self) -> int:
        return int(self.data.get("summarizer_max_tokens", 150))

    @property
    def temperature(self) -> float:
        return float(self.data.get("temperature", 0.7))
