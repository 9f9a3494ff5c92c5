from .settings import KAgentConfig, build_api_url, get_config, validate_config

__all__ = ["KAgentConfig", "build_api_url", "get_config", "validate_config"]
