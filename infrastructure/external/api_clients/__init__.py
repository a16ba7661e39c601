"""
API client module: base class for external REST integrations.
"""
from .base import BaseAPIClient, APIResponse

__all__ = [
    "BaseAPIClient",
    "APIResponse",
]
