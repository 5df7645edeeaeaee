"""Runtime configuration loaded from the environment."""

import os
from dataclasses import dataclass

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI coding assistant with access to tools."

PROVIDER_API_KEY_VARS: dict[str, str] = {
    "claude": "ANTHROPIC_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "glm": "GLM_API_KEY",
    "kimi": "MOONSHOT_API_KEY",
}


def _env_float(name: str) -> float | None:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass
class RelayConfig:
    """Configuration for a relay process.

    Every field can be overridden with a RELAY_-prefixed environment variable,
    e.g. RELAY_MODEL or RELAY_MAX_ITERATIONS.
    """

    provider: str = "claude"
    api_key: str | None = None
    base_url: str | None = None
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 8192
    temperature: float = 0.7
    max_iterations: int = 10
    tool_timeout: float | None = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    instructions_file: str = "CLAUDE.md"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Build configuration from RELAY_* variables, falling back to defaults."""
        defaults = cls()
        provider = os.getenv("RELAY_PROVIDER", defaults.provider).lower()

        api_key = os.getenv("RELAY_API_KEY")
        if not api_key and provider in PROVIDER_API_KEY_VARS:
            api_key = os.getenv(PROVIDER_API_KEY_VARS[provider])

        return cls(
            provider=provider,
            api_key=api_key,
            base_url=os.getenv("RELAY_BASE_URL") or None,
            model=os.getenv("RELAY_MODEL", defaults.model),
            max_tokens=int(os.getenv("RELAY_MAX_TOKENS", defaults.max_tokens)),
            temperature=float(os.getenv("RELAY_TEMPERATURE", defaults.temperature)),
            max_iterations=int(os.getenv("RELAY_MAX_ITERATIONS", defaults.max_iterations)),
            tool_timeout=_env_float("RELAY_TOOL_TIMEOUT"),
            system_prompt=os.getenv("RELAY_SYSTEM_PROMPT", defaults.system_prompt),
            instructions_file=os.getenv("RELAY_INSTRUCTIONS_FILE", defaults.instructions_file),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        )
