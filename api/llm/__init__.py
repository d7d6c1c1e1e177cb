"""Generative model client used by the context enhancer and the response rewriter."""

from .client import GenerativeClient, response_text

__all__ = ["GenerativeClient", "response_text"]
