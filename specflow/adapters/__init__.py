# Explicit exports keep adapter discovery predictable.
from .base import BaseAdapter
from .echo import EchoAdapter
from .gemini import GeminiAdapter
from .openai import OpenAIAdapter

__all__ = [
    "BaseAdapter",
    "EchoAdapter",
    "GeminiAdapter",
    "OpenAIAdapter",
]
