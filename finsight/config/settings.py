"""Application settings loader from YAML configuration."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import yaml

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


@dataclass
class AppSettings:
    """Application-wide settings loaded from config.yaml."""

    # App info
    app_name: str
    app_version: str

    # Logging
    log_level: str
    log_max_file_size_mb: int
    log_backup_count: int
    logs_dir: Optional[str]

    # LLM
    llm_model_name: str
    llm_model_provider: str
    llm_temperature: float
    llm_structured_temperature: float
    llm_max_output_tokens: int
    llm_timeout_seconds: int
    llm_max_retries: int
    llm_initial_delay_seconds: float
    llm_backoff_factor: float
    gemini_api_key: Optional[str]

    # Analysis
    min_data_quality: int
    confidence_threshold: int
    max_validation_attempts: int
    risk_tolerance: str

    # Guard
    guard_max_insights: int
    guard_max_action_items: int
    guard_min_action_description: int
    guard_max_monetary_value: float
    guard_disclaimer_threshold: int

    # Anonymization
    anonymization_salt: Optional[str]

    @classmethod
    def load(cls, config_path: Path = None) -> "AppSettings":
        """Load settings from YAML file, then apply environment overrides."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        return cls(
            app_name=config["app"]["name"],
            app_version=str(config["app"]["version"]),
            log_level=os.getenv("FINSIGHT_LOG_LEVEL", config["logging"]["level"]),
            log_max_file_size_mb=config["logging"]["max_file_size_mb"],
            log_backup_count=config["logging"]["backup_count"],
            logs_dir=os.getenv("FINSIGHT_LOG_DIR", config["logging"].get("logs_dir")),
            llm_model_name=config["llm"]["model_name"],
            llm_model_provider=config["llm"]["model_provider"],
            llm_temperature=config["llm"]["temperature"],
            llm_structured_temperature=config["llm"]["structured_temperature"],
            llm_max_output_tokens=config["llm"]["max_output_tokens"],
            llm_timeout_seconds=config["llm"]["timeout_seconds"],
            llm_max_retries=config["llm"]["max_retries"],
            llm_initial_delay_seconds=config["llm"]["initial_delay_seconds"],
            llm_backoff_factor=config["llm"]["backoff_factor"],
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            min_data_quality=config["analysis"]["min_data_quality"],
            confidence_threshold=config["analysis"]["confidence_threshold"],
            max_validation_attempts=config["analysis"]["max_validation_attempts"],
            risk_tolerance=config["analysis"]["risk_tolerance"],
            guard_max_insights=config["guard"]["max_insights"],
            guard_max_action_items=config["guard"]["max_action_items"],
            guard_min_action_description=config["guard"]["min_action_description"],
            guard_max_monetary_value=config["guard"]["max_monetary_value"],
            guard_disclaimer_threshold=config["guard"]["disclaimer_threshold"],
            anonymization_salt=os.getenv("ANONYMIZATION_SALT", config["anonymization"].get("salt")),
        )

    def validate(self) -> Tuple[bool, str]:
        """Validate configuration values."""
        if not self.anonymization_salt:
            return False, "Anonymization salt is required (set ANONYMIZATION_SALT)"

        if not 0 <= self.min_data_quality <= 100:
            return False, "min_data_quality must be between 0 and 100"

        if not 0 <= self.confidence_threshold <= 100:
            return False, "confidence_threshold must be between 0 and 100"

        if self.max_validation_attempts < 1:
            return False, "max_validation_attempts must be at least 1"

        if self.llm_max_retries < 0:
            return False, "llm max_retries cannot be negative"

        if self.guard_max_insights < 1 or self.guard_max_action_items < 1:
            return False, "Guard limits must be at least 1"

        return True, "Configuration is valid"


# Global settings instance
_settings: AppSettings = None


def get_settings() -> AppSettings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = AppSettings.load()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads."""
    global _settings
    _settings = None
