"""
Video provider adapters.

- short-clip: Veo 3.1 (google-genai), chained 8s + 7s extensions
- long-form: LongCat on fal.ai (fal-client), up to 900s per call
- avatar: HeyGen (httpx), full script per call
"""

from .base import ProviderAdapter
from .heygen import HeyGenAdapter
from .longcat import LongCatAdapter
from .veo import VeoAdapter

__all__ = [
    "ProviderAdapter",
    "VeoAdapter",
    "LongCatAdapter",
    "HeyGenAdapter",
]
