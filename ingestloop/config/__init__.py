"""Configuration module for ingestloop."""

from ingestloop.config.settings import IngestConfig, get_env_credentials, load_config

__all__ = ["IngestConfig", "get_env_credentials", "load_config"]
