"""Google Cloud credentials for the REST calls made with httpx."""

import asyncio
import threading
from functools import lru_cache
from typing import Optional

import google.auth
import structlog
from google.auth.credentials import Credentials
from google.auth.transport.requests import Request

logger = structlog.get_logger(__name__)

DIALOGFLOW_SCOPE = "https://www.googleapis.com/auth/dialogflow"


class AccessTokenProvider:
    """
    Issues OAuth access tokens from Application Default Credentials.

    Credentials are resolved on the first call (``GOOGLE_APPLICATION_CREDENTIALS``
    or the runtime's metadata server) and refreshed when expired. The refresh
    is a blocking HTTP call, so it runs in a worker thread.
    """

    def __init__(self, scopes: Optional[list[str]] = None):
        self.scopes = scopes or [DIALOGFLOW_SCOPE]
        self._credentials: Optional[Credentials] = None
        # Worker threads of concurrent requests share the credentials
        self._lock = threading.Lock()

    def _refresh(self) -> str:
        with self._lock:
            if self._credentials is None:
                self._credentials, project = google.auth.default(scopes=self.scopes)
                logger.debug("Google credentials loaded", project=project)
            if not self._credentials.valid:
                self._credentials.refresh(Request())
                logger.debug("Google access token refreshed")
            return self._credentials.token or ""

    async def get_access_token(self) -> str:
        return await asyncio.to_thread(self._refresh)


@lru_cache
def get_access_token_provider() -> AccessTokenProvider:
    """Process-wide provider, so credentials are loaded once and tokens reused until they expire."""
    return AccessTokenProvider()
