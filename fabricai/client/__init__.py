"""
Client application for the sofa visualizer.

Explicit state structs (`state`), controllers that own them (`catalog`,
`gallery`, `generation`) and a command dispatcher (`dispatcher`) wired
together by `app.Application`.
"""

from fabricai.client.api import ApiClient, GenerationTimeout, QuotaExceeded, RequestTimeout, StoreError
from fabricai.client.app import Application
from fabricai.client.imaging import ImageProcessingError, normalize_image

__all__ = [
    "ApiClient",
    "Application",
    "GenerationTimeout",
    "ImageProcessingError",
    "QuotaExceeded",
    "RequestTimeout",
    "StoreError",
    "normalize_image",
]
