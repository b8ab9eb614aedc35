import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from parley.utilities.errors import ConfigurationError


# ========== ENVIRONMENT VARIABLE HELPERS ==========
def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable"""
    value = os.getenv(key, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    elif value in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer value from environment variable"""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float value from environment variable"""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def get_env_str(key: str, default: str = "") -> str:
    """Get string value from environment variable"""
    return os.getenv(key, default)


def get_env_enum(key: str, enum_class: type, default: Any) -> Any:
    """Get enum value from environment variable"""
    value = os.getenv(key, "").lower()
    for enum_val in enum_class:
        if enum_val.value.lower() == value:
            return enum_val
    return default


# ========== ENUMS ==========
class LogLevel(str, Enum):
    """Logging levels"""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class BackendProvider(str, Enum):
    """
    How the client reaches the model provider.

    DIRECT calls the provider from this process; FIREBASE and SUPABASE post to
    an operator-controlled proxy that keeps the API key server-side.
    """

    DIRECT = "direct"
    FIREBASE = "firebase"
    SUPABASE = "supabase"


# ========== BASE CONFIGURATION CLASS ==========
@dataclass
class BaseConfig:
    """Base configuration class"""

    def model_dump(self) -> dict[str, Any]:
        """Convert to dictionary"""
        return asdict(self)

    def validate(self) -> None:
        """Validate configuration values"""
        pass


# ========== PROVIDER CONFIGURATION ==========
@dataclass
class ProviderConfig(BaseConfig):
    """Model provider connection configuration"""

    api_key: str = ""
    base_url: str = "https://openrouter.ai/api/v1"
    backend: BackendProvider = BackendProvider.DIRECT

    # Proxy endpoints, only read for the matching backend
    firebase_proxy_url: str = ""
    supabase_proxy_url: str = ""

    # Attribution headers sent to OpenRouter
    app_name: str = "Parley"
    app_url: str = "https://github.com/parley-chat/parley"

    timeout: float = 30.0
    connect_timeout: float = 10.0

    # Stream canned responses when no API key is set
    mock_when_unconfigured: bool = True

    @property
    def is_api_key_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        """Load provider configuration from environment variables"""
        return cls(
            api_key=get_env_str("PARLEY_OPENROUTER_API_KEY", get_env_str("OPENROUTER_API_KEY", "")),
            base_url=get_env_str("PARLEY_BASE_URL", "https://openrouter.ai/api/v1"),
            backend=get_env_enum("PARLEY_BACKEND_PROVIDER", BackendProvider, BackendProvider.DIRECT),
            firebase_proxy_url=get_env_str("PARLEY_FIREBASE_PROXY_URL", ""),
            supabase_proxy_url=get_env_str("PARLEY_SUPABASE_PROXY_URL", ""),
            app_name=get_env_str("PARLEY_APP_NAME", "Parley"),
            app_url=get_env_str("PARLEY_APP_URL", "https://github.com/parley-chat/parley"),
            timeout=get_env_float("PARLEY_TIMEOUT", 30.0),
            connect_timeout=get_env_float("PARLEY_CONNECT_TIMEOUT", 10.0),
            mock_when_unconfigured=get_env_bool("PARLEY_MOCK_WHEN_UNCONFIGURED", True),
        )

    def validate(self) -> None:
        """Validate provider configuration"""
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        if self.connect_timeout <= 0:
            raise ConfigurationError("connect_timeout must be positive")
        if not self.base_url:
            raise ConfigurationError("base_url cannot be empty")

    def model_dump(self) -> dict[str, Any]:
        """Convert to dictionary with the API key masked"""
        data = asdict(self)
        data["api_key"] = mask_secret(self.api_key)
        return data


# ========== GENERATION CONFIGURATION ==========
@dataclass
class GenerationConfig(BaseConfig):
    """Chat generation parameters"""

    default_model: str = "openai/gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 2048
    system_prompt: str | None = None

    # Multiplier for the mock backend's typing delays (0 disables them)
    mock_delay_scale: float = 1.0

    @classmethod
    def from_env(cls) -> "GenerationConfig":
        """Load generation configuration from environment variables"""
        system_prompt = get_env_str("PARLEY_SYSTEM_PROMPT", "")

        return cls(
            default_model=get_env_str("PARLEY_DEFAULT_MODEL", "openai/gpt-4o-mini"),
            temperature=get_env_float("PARLEY_TEMPERATURE", 0.7),
            max_tokens=get_env_int("PARLEY_MAX_TOKENS", 2048),
            system_prompt=system_prompt or None,
            mock_delay_scale=get_env_float("PARLEY_MOCK_DELAY_SCALE", 1.0),
        )

    def validate(self) -> None:
        """Validate generation configuration"""
        if not self.default_model:
            raise ConfigurationError("default_model cannot be empty")
        if not 0.0 <= self.temperature <= 2.0:
            raise ConfigurationError("temperature must be between 0.0 and 2.0")
        if self.max_tokens <= 0:
            raise ConfigurationError("max_tokens must be positive")
        if self.mock_delay_scale < 0:
            raise ConfigurationError("mock_delay_scale cannot be negative")


# ========== THREAD NAMING CONFIGURATION ==========
@dataclass
class NamingConfig(BaseConfig):
    """Conversation title generation configuration"""

    enabled: bool = True
    model: str = "google/gemini-2.5-flash-lite"
    timeout: float = 10.0
    temperature: float = 0.3
    max_tokens: int = 20

    @classmethod
    def from_env(cls) -> "NamingConfig":
        """Load naming configuration from environment variables"""
        return cls(
            enabled=get_env_bool("PARLEY_NAMING_ENABLED", True),
            model=get_env_str("PARLEY_NAMING_MODEL", "google/gemini-2.5-flash-lite"),
            timeout=get_env_float("PARLEY_NAMING_TIMEOUT", 10.0),
            temperature=get_env_float("PARLEY_NAMING_TEMPERATURE", 0.3),
            max_tokens=get_env_int("PARLEY_NAMING_MAX_TOKENS", 20),
        )

    def validate(self) -> None:
        """Validate naming configuration"""
        if self.timeout <= 0:
            raise ConfigurationError("naming timeout must be positive")
        if self.max_tokens <= 0:
            raise ConfigurationError("naming max_tokens must be positive")


# ========== LOGGING CONFIGURATION ==========
@dataclass
class LoggingConfig(BaseConfig):
    """Logging configuration"""

    level: LogLevel = LogLevel.INFO
    log_to_file: bool = False
    log_file_path: str = "./logs/parley.log"
    log_to_console: bool = True
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Load logging configuration from environment variables"""
        return cls(
            level=get_env_enum("PARLEY_LOGGING_LEVEL", LogLevel, LogLevel.INFO),
            log_to_file=get_env_bool("PARLEY_LOGGING_LOG_TO_FILE", False),
            log_file_path=get_env_str("PARLEY_LOGGING_LOG_FILE_PATH", "./logs/parley.log"),
            log_to_console=get_env_bool("PARLEY_LOGGING_LOG_TO_CONSOLE", True),
            verbose=get_env_bool("PARLEY_LOGGING_VERBOSE", False),
        )


# ========== MAIN CONFIGURATION CLASS ==========
@dataclass
class ParleyConfig(BaseConfig):
    """Complete Parley configuration"""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    naming: NamingConfig = field(default_factory=NamingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    version: str = "1.0.0"

    @classmethod
    def from_env(cls) -> "ParleyConfig":
        """Load configuration from environment variables"""
        config = cls(
            provider=ProviderConfig.from_env(),
            generation=GenerationConfig.from_env(),
            naming=NamingConfig.from_env(),
            logging=LoggingConfig.from_env(),
            version=get_env_str("PARLEY_VERSION", "1.0.0"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate entire configuration"""
        self.provider.validate()
        self.generation.validate()
        self.naming.validate()

    def model_dump(self) -> dict[str, Any]:
        """Convert to dictionary with secrets masked"""
        data = asdict(self)
        data["provider"] = self.provider.model_dump()
        return data


def mask_secret(value: str) -> str:
    """Show only the last four characters of a secret."""
    if not value:
        return ""
    if len(value) <= 8:
        return "****"
    return f"****{value[-4:]}"


def get_config(from_env: bool = False) -> ParleyConfig:
    """
    Get a configuration instance.

    Args:
        from_env: If True, load configuration from environment variables.
                 If False, use default values.

    Returns:
        ParleyConfig instance with specified settings

    Example:
        # Use default configuration
        config = get_config()

        # Load from environment variables
        config = get_config(from_env=True)

        Environment Variables:
        Provider:
            PARLEY_OPENROUTER_API_KEY="sk-or-..."   (or OPENROUTER_API_KEY)
            PARLEY_BASE_URL="https://openrouter.ai/api/v1"
            PARLEY_BACKEND_PROVIDER="direct"        (direct | firebase | supabase)
            PARLEY_FIREBASE_PROXY_URL="https://..."
            PARLEY_SUPABASE_PROXY_URL="https://..."
            PARLEY_TIMEOUT=30
        Generation:
            PARLEY_DEFAULT_MODEL="openai/gpt-4o-mini"
            PARLEY_TEMPERATURE=0.7
            PARLEY_MAX_TOKENS=2048
        Naming:
            PARLEY_NAMING_MODEL="google/gemini-2.5-flash-lite"
            PARLEY_NAMING_TIMEOUT=10
        Logging:
            PARLEY_LOGGING_LEVEL="info"
    """
    if from_env:
        return ParleyConfig.from_env()
    return ParleyConfig()
