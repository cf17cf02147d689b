"""
Configuration for AccessLint Core.

Environment variables are read from the process and from a local .env file.
"""

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from .model_tables import (  # noqa: E402
    ContextWindowInfo,
    ModelWindowTable,
    PricingTable,
)
from .settings import Settings, get_settings  # noqa: E402

__all__ = [
    "ContextWindowInfo",
    "ModelWindowTable",
    "PricingTable",
    "Settings",
    "get_settings",
]
