"""
gmpflow.llm.providers - LLM backends.
"""

from .base import BaseProvider, extract_json
from .anthropic import AnthropicProvider
from .local import LocalProvider

__all__ = ["BaseProvider", "extract_json", "AnthropicProvider", "LocalProvider"]
