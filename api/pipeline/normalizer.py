"""Query normalization: fold a file's extracted content into the user's query."""

from typing import Optional

from api.errors import MissingQuery


def ensure_query_or_file(query: Optional[str], has_file: bool) -> None:
    """Raise ``MissingQuery`` unless there is a query or a file."""
    if not query and not has_file:
        raise MissingQuery()


def normalize_query(query: Optional[str], file_fragment: Optional[str] = None) -> str:
    """
    Build the single query string submitted downstream.

    Without a file fragment the query is returned unchanged.

    Raises:
        MissingQuery: If there is neither a query nor a file fragment
    """
    ensure_query_or_file(query, bool(file_fragment))
    if not file_fragment:
        return query

    query = (query or "").strip()
    if not query:
        return f"{file_fragment} Based on this information, please explain what this is and how you can help."
    return f'{file_fragment} Based on this information, please answer the query: "{query}".'
