"""
Connection settings for the KAgent primary backend and the khook service.
Values come from the environment (and a .env file when present).
"""

import os
from typing import Dict, List, Literal, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_USER_ID = "admin@kagent.dev"
DEFAULT_KHOOK_URL = "http://localhost:8082"
DEFAULT_DEV_PROXY_URL = "http://localhost:1420"


class KAgentConfig(BaseModel):
    """Address, credentials and timeouts of one KAgent deployment."""
    baseUrl: str = "localhost"
    port: int = 8083
    protocol: str = "http"
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: float = Field(30.0, description="Request timeout in seconds")
    environment: Literal["local", "development", "staging", "production"] = "local"
    ingressUrl: Optional[str] = None
    userId: str = DEFAULT_USER_ID
    khookUrl: str = DEFAULT_KHOOK_URL
    runtime: Literal["native", "browser", "dev_server"] = "native"
    devProxyUrl: str = DEFAULT_DEV_PROXY_URL
    backendOverride: Optional[str] = None


def _preset(**overrides) -> KAgentConfig:
    return KAgentConfig(**overrides)


CONFIGS: Dict[str, KAgentConfig] = {
    # Local development (port-forward)
    "local": _preset(baseUrl="localhost", port=8083, protocol="http", environment="local"),
    "development": _preset(
        baseUrl="kagent-dev.example.com", port=443, protocol="https",
        environment="development", ingressUrl="https://kagent-dev.example.com", timeout=45.0,
    ),
    "staging": _preset(
        baseUrl="kagent-staging.example.com", port=443, protocol="https",
        environment="staging", ingressUrl="https://kagent-staging.example.com", timeout=60.0,
    ),
    "production": _preset(
        baseUrl="kagent.example.com", port=443, protocol="https",
        environment="production", ingressUrl="https://kagent.example.com", timeout=60.0,
    ),
}


def get_config() -> KAgentConfig:
    """Build the active configuration from KAGENT_ENVIRONMENT and per-field overrides."""
    environment = os.getenv("KAGENT_ENVIRONMENT", "local").lower()
    if environment not in CONFIGS:
        raise ValueError(f"Unsupported KAGENT_ENVIRONMENT: {environment}")

    values = CONFIGS[environment].model_dump()

    if os.getenv("KAGENT_PROTOCOL"):
        values["protocol"] = os.getenv("KAGENT_PROTOCOL").lower()
    if os.getenv("KAGENT_HOST"):
        values["baseUrl"] = os.getenv("KAGENT_HOST")
    if os.getenv("KAGENT_PORT"):
        values["port"] = int(os.getenv("KAGENT_PORT"))
    if os.getenv("KAGENT_TIMEOUT"):
        values["timeout"] = float(os.getenv("KAGENT_TIMEOUT"))

    values["token"] = os.getenv("KAGENT_TOKEN") or values.get("token")
    values["userId"] = os.getenv("KAGENT_USER_ID", DEFAULT_USER_ID)
    values["khookUrl"] = os.getenv("KHOOK_URL", DEFAULT_KHOOK_URL).rstrip("/")
    values["runtime"] = os.getenv("SKANYXX_RUNTIME", "native").lower()
    values["devProxyUrl"] = os.getenv("SKANYXX_DEV_PROXY_URL", DEFAULT_DEV_PROXY_URL).rstrip("/")
    values["backendOverride"] = os.getenv("SKANYXX_BACKEND_OVERRIDE") or None

    return KAgentConfig(**values)


def build_api_url(config: KAgentConfig) -> str:
    """Origin of the primary backend, omitting the port when it is the scheme default."""
    protocol = config.protocol or "http"
    base_url = config.baseUrl or "localhost"
    port = config.port or (443 if protocol == "https" else 8083)

    if (protocol == "https" and port == 443) or (protocol == "http" and port == 80):
        return f"{protocol}://{base_url}"

    return f"{protocol}://{base_url}:{port}"


def validate_config(config: KAgentConfig) -> List[str]:
    """Return a list of human-readable configuration errors (empty when valid)."""
    errors = []

    if not config.baseUrl:
        errors.append("baseUrl is required")

    if not config.port or config.port < 1 or config.port > 65535:
        errors.append("port must be between 1 and 65535")

    if config.protocol not in ("http", "https"):
        errors.append("protocol must be either http or https")

    return errors


def get_redis_url() -> Optional[str]:
    return os.getenv("REDIS_URL") or None
