import logging
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigError

# --- Base Path ---
BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_ROUTING_PATH = BASE_DIR / 'praxis' / 'configs' / 'routing.yml'
logger = logging.getLogger("praxis.config")

OutputKind = Literal["text", "json", "widgets", "image"]

# Provider name -> settings attribute holding its credential
PROVIDER_CREDENTIALS: Dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "openai_image": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "grok": "GROK_API_KEY",
    "perplexity": "PERPLEXITY_API_KEY",
}

# --- Environment-based Settings ---

class AppSettings(BaseSettings):
    """Credentials and runtime knobs, read from the environment or a .env file."""
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # --- Runtime ---
    LOG_LEVEL: str = Field("INFO", description="Log level for the praxis logger")
    PRAXIS_ROUTING_PATH: Optional[str] = Field(None, description="Optional: Path to a routing YAML overriding the shipped one.")
    DEFAULT_TIMEOUT_S: float = Field(30.0, gt=0, description="Per-attempt provider timeout when a route sets none.")
    CACHE_MAX_SIZE: int = Field(2048, ge=1, description="Maximum number of cached responses.")

    # --- Provider credentials ---
    OPENAI_API_KEY: Optional[str] = Field(None)
    ANTHROPIC_API_KEY: Optional[str] = Field(None)
    GEMINI_API_KEY: Optional[str] = Field(None, validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"))
    GROK_API_KEY: Optional[str] = Field(None, validation_alias=AliasChoices("GROK_API_KEY", "XAI_API_KEY"))
    PERPLEXITY_API_KEY: Optional[str] = Field(None)

    def credential_for(self, provider: str) -> Optional[str]:
        """Return the credential for a provider, or None when unset or blank."""
        attr = PROVIDER_CREDENTIALS.get(provider)
        if attr is None:
            return None
        value = getattr(self, attr)
        return value.strip() if value and value.strip() else None

# --- YAML-based Configuration Models ---

class ProviderSpec(BaseModel):
    provider: str
    model: str

class FeatureRoute(BaseModel):
    primary: ProviderSpec
    fallback: List[ProviderSpec] = Field(default_factory=list)
    ttl: int = Field(3600, gt=0)
    output: OutputKind = "text"
    timeout: Optional[float] = Field(None, gt=0)

    def providers(self) -> List[ProviderSpec]:
        return [self.primary, *self.fallback]

class RoutingTable(BaseModel):
    features: Dict[str, FeatureRoute]


def load_routing(path: Optional[Path] = None) -> RoutingTable:
    """Loads a routing YAML file and validates it with the RoutingTable model."""
    config_path = Path(path) if path else DEFAULT_ROUTING_PATH
    if not config_path.exists():
        raise ConfigError(f"Routing file '{config_path.name}' not found in {config_path.parent}")
    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    try:
        return RoutingTable.model_validate(data)
    except ValidationError as e:
        logger.critical(f"FATAL: Routing configuration {config_path} is invalid: {e}")
        raise ConfigError(f"Invalid routing configuration: {config_path}") from e

# --- Main Config Object ---

class Config:
    """Settings plus the validated routing table."""
    def __init__(self, app: Optional[AppSettings] = None, routing_path: Optional[Path] = None):
        try:
            self.app = app or AppSettings()
        except ValidationError as e:
            logger.critical(f"FATAL: Configuration validation error: {e}")
            raise ConfigError("Invalid environment configuration") from e

        self.routing: RoutingTable = load_routing(routing_path or self.app.PRAXIS_ROUTING_PATH)

# --- Global Config Instance ---
_settings_instance = None

def get_settings() -> Config:
    """Lazily built process-wide Config; see reset_settings()."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Config()
    return _settings_instance

def reset_settings() -> None:
    """Drops the cached Config so the next get_settings() reloads it."""
    global _settings_instance
    _settings_instance = None
