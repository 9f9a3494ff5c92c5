"""
Logging setup for the skanyxx CLI, and helpers for logging protocol payloads
without flooding the terminal or leaking credentials.
"""

import json
import logging
import os
import sys
from typing import Any, Mapping, Optional, TextIO

MAX_LOG_LENGTH = 150
SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key")


def configure_logging(log_level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """Configure timestamped logging; the level comes from the argument or LOG_LEVEL."""
    log_level = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[logging.StreamHandler(stream or sys.stdout)]
    )

    # Transport libraries log every request at INFO
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(f"Logging configured at level {log_level}")


def truncate_large_result(data: Any, max_length: int = MAX_LOG_LENGTH) -> str:
    """String form of a payload, cut to ``max_length`` characters."""
    if data is None:
        return "None"

    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")

    if isinstance(data, bytes):
        data_str = data.decode("utf-8", errors="replace")
    elif isinstance(data, (dict, list)):
        try:
            data_str = json.dumps(data, default=str)
        except (TypeError, ValueError):
            data_str = str(data)
    else:
        data_str = str(data)

    if len(data_str) > max_length:
        return f"{data_str[:max_length]}... (truncated, total length: {len(data_str)})"

    return data_str


def mask_headers(headers: Mapping[str, str]) -> dict:
    """Copy of request headers with credential values hidden."""
    return {
        key: "***" if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }
