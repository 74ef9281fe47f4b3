from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigError
from core.logging import logger

# --- Base Path ---
BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_PROVIDERS_FILE = 'providers.yml'


def parse_headers(header_str: Optional[str]) -> Dict[str, str]:
    """Parse ``"Key:Value,Key2:Value2"`` into a header dict."""
    headers: Dict[str, str] = {}
    if not header_str:
        return headers
    for pair in header_str.split(','):
        key, sep, value = pair.partition(':')
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


# --- Environment-based Settings ---

class AppSettings(BaseSettings):
    """
    Analysis settings loaded from environment variables.
    The .env file is loaded automatically by pydantic-settings.
    """
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # --- General & Core ---
    LOG_LEVEL: str = Field("INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    LOG_DIR: Optional[str] = Field(None, description="Optional: directory for the rotating JSON log file.")
    LLM_CONFIG_PATH: Optional[str] = Field(None, description="Optional: path to a providers YAML file.")

    # --- Ollama / Local LLMs ---
    OLLAMA_HOST: str = Field("http://localhost:11434", description="Base URL of the Ollama server; empty disables it.")
    OLLAMA_MODEL: str = Field("llama2")
    OLLAMA_TIMEOUT: float = Field(30.0, gt=0)

    # --- Generic HTTP provider ---
    CUSTOM_LLM_NAME: str = Field("Custom LLM")
    CUSTOM_LLM_ENDPOINT: Optional[str] = Field(None, description="HTTP endpoint of a third-party scoring service.")
    CUSTOM_LLM_HEADERS: Optional[str] = Field(None, description="Comma-separated Key:Value header pairs.")
    CUSTOM_LLM_PROMPT_TEMPLATE: Optional[str] = Field(None, description="Jinja2 template for the request body.")
    CUSTOM_LLM_TIMEOUT: float = Field(30.0, gt=0)

    # --- Similarity cache ---
    LLM_CACHE_ENABLED: bool = Field(True)
    LLM_CACHE_TTL: float = Field(3600.0, gt=0)
    LLM_CACHE_SIMILARITY_THRESHOLD: float = Field(0.5, gt=0, le=1)
    LLM_CACHE_MAX_SIZE: int = Field(1000, ge=1)

    # --- Manager ---
    LLM_PROVIDER_PRIORITY: str = Field("ollama,rule_based", description="Comma-separated provider names.")
    LLM_DEFAULT_PROVIDER: Optional[str] = Field(None)
    LLM_FALLBACK_ENABLED: bool = Field(True)
    LLM_HEALTH_CHECK_INTERVAL: float = Field(30.0, gt=0)
    LLM_FALLBACK_DEADLINE: Optional[float] = Field(None, gt=0)

    @property
    def provider_priority(self) -> List[str]:
        return [p.strip() for p in self.LLM_PROVIDER_PRIORITY.split(',') if p.strip()]


# --- YAML-based Configuration Models ---

class OllamaConfig(BaseModel):
    base_url: Optional[str] = "http://localhost:11434"
    model: str = "llama2"
    timeout: float = Field(30.0, gt=0)
    name: str = "ollama"


class GenericHTTPConfig(BaseModel):
    name: str = "Custom LLM"
    endpoint: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)
    request_template: Optional[str] = None
    timeout: float = Field(30.0, gt=0)


class CacheConfig(BaseModel):
    enabled: bool = True
    ttl_seconds: float = Field(3600.0, gt=0)
    similarity_threshold: float = Field(0.5, gt=0, le=1)
    max_size: int = Field(1000, ge=1)


class ManagerConfig(BaseModel):
    default_provider: Optional[str] = None
    fallback_enabled: bool = True
    health_check_interval: float = Field(30.0, gt=0)
    priority: List[str] = Field(default_factory=lambda: ["ollama", "rule_based"])
    deadline: Optional[float] = Field(None, gt=0)

    @field_validator('priority')
    @classmethod
    def _no_duplicate_names(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("priority list contains duplicate provider names")
        return value


class ProvidersConfig(BaseModel):
    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    generic_http: List[GenericHTTPConfig] = Field(default_factory=list)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    manager: ManagerConfig = Field(default_factory=ManagerConfig)

    @classmethod
    def from_settings(cls, app: AppSettings) -> "ProvidersConfig":
        """Build the provider configuration from environment settings alone."""
        return cls.model_validate(_settings_to_dict(app))


def _settings_to_dict(app: AppSettings) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        'ollama': {
            'base_url': app.OLLAMA_HOST or None,
            'model': app.OLLAMA_MODEL,
            'timeout': app.OLLAMA_TIMEOUT,
        },
        'generic_http': [],
        'cache': {
            'enabled': app.LLM_CACHE_ENABLED,
            'ttl_seconds': app.LLM_CACHE_TTL,
            'similarity_threshold': app.LLM_CACHE_SIMILARITY_THRESHOLD,
            'max_size': app.LLM_CACHE_MAX_SIZE,
        },
        'manager': {
            'default_provider': app.LLM_DEFAULT_PROVIDER,
            'fallback_enabled': app.LLM_FALLBACK_ENABLED,
            'health_check_interval': app.LLM_HEALTH_CHECK_INTERVAL,
            'priority': app.provider_priority,
            'deadline': app.LLM_FALLBACK_DEADLINE,
        },
    }
    if app.CUSTOM_LLM_ENDPOINT:
        data['generic_http'].append({
            'name': app.CUSTOM_LLM_NAME,
            'endpoint': app.CUSTOM_LLM_ENDPOINT,
            'headers': parse_headers(app.CUSTOM_LLM_HEADERS),
            'request_template': app.CUSTOM_LLM_PROMPT_TEMPLATE,
            'timeout': app.CUSTOM_LLM_TIMEOUT,
        })
    return data


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_yaml(path: Path) -> Dict[str, Any]:
    """Loads a YAML mapping; a missing file is a ConfigError."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file '{path.name}' not found in {path.parent}")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Configuration file '{path}' is not valid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file '{path}' must contain a mapping")
    return data


def load_providers_config(app: AppSettings, path: Optional[Path] = None) -> ProvidersConfig:
    """
    Environment settings, overridden by the providers YAML file when one exists.
    An explicitly configured path must exist; the default path is optional.
    """
    data = _settings_to_dict(app)

    explicit = path or (Path(app.LLM_CONFIG_PATH) if app.LLM_CONFIG_PATH else None)
    yaml_path = explicit or BASE_DIR / 'configs' / DEFAULT_PROVIDERS_FILE
    if explicit is not None or yaml_path.exists():
        data = _deep_merge(data, load_yaml(yaml_path))
        logger.info(f"Loaded provider configuration from {yaml_path}")

    try:
        return ProvidersConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid provider configuration: {e}") from e


# --- Main Config Object ---

class Config:
    """
    A unified configuration object.
    """
    def __init__(self, config_path: Optional[Path] = None):
        try:
            self.app = AppSettings()
        except ValidationError as e:
            logger.critical(f"FATAL: Configuration validation error: {e}")
            raise ConfigError(f"Invalid environment settings: {e}") from e

        self.providers: ProvidersConfig = load_providers_config(self.app, config_path)


# --- Global Config Instance ---
_settings_instance = None

def get_settings() -> Config:
    """
    Returns a singleton instance of the Config object.
    This function controls when the settings are loaded and validated,
    making the application more testable.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Config()
    return _settings_instance


def reset_settings() -> None:
    """Forget the cached Config so the next get_settings() reloads it."""
    global _settings_instance
    _settings_instance = None
