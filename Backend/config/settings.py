# Backend/config/settings.py
import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

VALID_STORAGE_BACKENDS = ("memory", "supabase")


def _flag(value: str) -> bool:
    return value.lower() == "true"


# field name -> (environment variable, default, parser)
ENV_FIELDS = {
    # Storage Configuration
    "storage_backend": ("STORAGE_BACKEND", "memory", str),
    "supabase_url": ("SUPABASE_URL", "", str),
    "supabase_key": ("SUPABASE_KEY", "", str),

    # LLM Configuration
    "openai_api_key": ("OPENAI_API_KEY", "", str),
    "llm_model": ("LLM_MODEL", "gpt-4o-mini", str),
    "llm_temperature": ("LLM_TEMPERATURE", "0.7", float),
    "llm_max_tokens": ("LLM_MAX_TOKENS", "1024", int),
    "system_prompt": ("SYSTEM_PROMPT", "", str),

    # Title Generation
    "enable_title_generation": ("ENABLE_TITLE_GENERATION", "true", _flag),
    "title_model": ("TITLE_MODEL", "gpt-4o-mini", str),
    "title_max_length": ("TITLE_MAX_LENGTH", "60", int),

    # Streaming Configuration
    "stream_max_duration": ("STREAM_MAX_DURATION", "120", float),  # seconds
    "strict_message_persistence": ("STRICT_MESSAGE_PERSISTENCE", "false", _flag),
    "seq_allocation_retries": ("SEQ_ALLOCATION_RETRIES", "5", int),
    "max_message_length": ("MAX_MESSAGE_LENGTH", "8000", int),

    # Logging
    "log_level": ("LOG_LEVEL", "INFO", str),
    "log_file": ("LOG_FILE", "logs/chatstream.log", str),

    # Development
    "debug_mode": ("DEBUG_MODE", "false", _flag),

    # Client
    "client_base_url": ("CLIENT_BASE_URL", "http://localhost:8000", str),
    "client_timeout": ("CLIENT_TIMEOUT", "300", int),  # seconds
}


def _env(name: str):
    variable, default, parse = ENV_FIELDS[name]
    return parse(os.getenv(variable, default))


@dataclass
class Settings:
    """Configuration settings for the streaming chat backend"""

    # Storage Configuration
    storage_backend: str = _env("storage_backend")
    supabase_url: str = _env("supabase_url")
    supabase_key: str = _env("supabase_key")

    # LLM Configuration
    openai_api_key: str = _env("openai_api_key")
    llm_model: str = _env("llm_model")
    llm_temperature: float = _env("llm_temperature")
    llm_max_tokens: int = _env("llm_max_tokens")
    system_prompt: str = _env("system_prompt")

    # Title Generation
    enable_title_generation: bool = _env("enable_title_generation")
    title_model: str = _env("title_model")
    title_max_length: int = _env("title_max_length")

    # Streaming Configuration
    stream_max_duration: float = _env("stream_max_duration")
    strict_message_persistence: bool = _env("strict_message_persistence")
    seq_allocation_retries: int = _env("seq_allocation_retries")
    max_message_length: int = _env("max_message_length")

    # Logging
    log_level: str = _env("log_level")
    log_file: str = _env("log_file")

    # Development
    debug_mode: bool = _env("debug_mode")

    # Client
    client_base_url: str = _env("client_base_url")
    client_timeout: int = _env("client_timeout")

    def validate(self) -> bool:
        """Validate configuration settings"""
        errors = []
        warnings = []

        if self.storage_backend not in VALID_STORAGE_BACKENDS:
            errors.append(
                f"STORAGE_BACKEND must be one of {', '.join(VALID_STORAGE_BACKENDS)}"
            )

        if self.storage_backend == "supabase":
            if not self.supabase_url:
                errors.append("SUPABASE_URL is required when STORAGE_BACKEND=supabase")
            if not self.supabase_key:
                errors.append("SUPABASE_KEY is required when STORAGE_BACKEND=supabase")

        if not self.openai_api_key:
            errors.append("OPENAI_API_KEY is required")

        if not (0.0 <= self.llm_temperature <= 2.0):
            errors.append("LLM_TEMPERATURE must be between 0.0 and 2.0")

        if self.llm_max_tokens <= 0:
            errors.append("LLM_MAX_TOKENS must be positive")

        if self.stream_max_duration <= 0:
            errors.append("STREAM_MAX_DURATION must be positive")

        if self.seq_allocation_retries < 1:
            errors.append("SEQ_ALLOCATION_RETRIES must be at least 1")

        if self.max_message_length < 1:
            errors.append("MAX_MESSAGE_LENGTH must be positive")

        if self.title_max_length < 10:
            warnings.append("TITLE_MAX_LENGTH < 10, using 10")
            self.title_max_length = 10

        if self.storage_backend == "memory" and not self.debug_mode:
            warnings.append("STORAGE_BACKEND=memory keeps messages in process memory only")

        for warning in warnings:
            print(f"WARNING: {warning}")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

        return True

    def get_llm_config(self) -> dict:
        """Get completion provider configuration"""
        return {
            "model": self.llm_model,
            "temperature": self.llm_temperature,
            "max_tokens": self.llm_max_tokens,
            "system_prompt": self.system_prompt,
        }

    @classmethod
    def from_env_file(cls, env_file: str = ".env"):
        """Create settings from a specific env file; its values override the process environment"""
        load_dotenv(env_file, override=True)
        return cls(**{name: _env(name) for name in ENV_FIELDS})

    def to_dict(self) -> dict:
        """Convert settings to dictionary (excluding sensitive data)"""
        sensitive_fields = {"supabase_key", "openai_api_key"}

        return {
            k: v for k, v in self.__dict__.items()
            if k not in sensitive_fields
        }


# Global settings instance
settings = Settings()
