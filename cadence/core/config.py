"""
Configuration module for Cadence.
Centralizes all settings with environment variable overrides.
"""
import os


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


class Config:
    """Central configuration for Cadence"""

    # Text generator backend: "rules" (deterministic stand-in) or "ollama"
    BACKEND: str = os.environ.get("CADENCE_BACKEND", "rules")

    # Streaming model backend settings
    OLLAMA_BASE_URL: str = os.environ.get("CADENCE_OLLAMA_URL", "http://127.0.0.1:11434")
    OLLAMA_MODEL: str = os.environ.get("CADENCE_OLLAMA_MODEL", "phi3.5:latest")
    LLM_TIMEOUT: int = int(os.environ.get("CADENCE_LLM_TIMEOUT", "30"))
    OLLAMA_TEMPERATURE: float = float(os.environ.get("CADENCE_OLLAMA_TEMPERATURE", "0.1"))
    OLLAMA_TOP_P: float = float(os.environ.get("CADENCE_OLLAMA_TOP_P", "0.9"))
    OLLAMA_REPEAT_PENALTY: float = float(os.environ.get("CADENCE_OLLAMA_REPEAT_PENALTY", "1.1"))
    OLLAMA_NUM_PREDICT: int = int(os.environ.get("CADENCE_OLLAMA_NUM_PREDICT", "512"))
    OLLAMA_STREAM: bool = _env_bool("CADENCE_OLLAMA_STREAM", "true")

    # Prompt assembly
    HISTORY_TURNS: int = int(os.environ.get("CADENCE_HISTORY_TURNS", "5"))
    MAX_FRAGMENTS: int = int(os.environ.get("CADENCE_MAX_FRAGMENTS", "512"))
    LLM_MAX_PROMPT_CHARS: int = int(os.environ.get("CADENCE_LLM_MAX_PROMPT_CHARS", "8000"))

    # Confirmation gate
    CONFIDENCE_THRESHOLD: float = float(os.environ.get("CADENCE_CONFIDENCE_THRESHOLD", "0.7"))
    # 0 disables expiry; a pending decision then waits until confirm/cancel/new input
    CONFIRMATION_TIMEOUT_SEC: float = float(os.environ.get("CADENCE_CONFIRMATION_TIMEOUT_SEC", "0"))
    # Treat "yes"/"no" typed or spoken input as confirm/cancel while a decision is pending
    CONFIRM_BY_VOICE: bool = _env_bool("CADENCE_CONFIRM_BY_VOICE", "false")

    # Logging
    LOG_LEVEL: str = os.environ.get("CADENCE_LOG_LEVEL", "INFO")
    QUIET_MODE: bool = _env_bool("CADENCE_QUIET_MODE", "false")
