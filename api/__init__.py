"""WorkerBank Assistant API Service.

This package contains the FastAPI application and the chat turn pipeline.

Main components:
- main.py: FastAPI application, logging and error handlers
- models.py: Pydantic models for requests, responses and conversation context
- pipeline/: normalizer, context enhancer, intent resolver, rewriter, assembler
- orchestrators/: LangGraph turn orchestrator
- routers/: chat, session and speech endpoints
"""

# Avoid importing heavy modules (e.g., FastAPI app) at package import time.
__all__ = []
