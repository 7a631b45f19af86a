"""
Search Mode Controller

Switches a pagination session between browsing by recency and an exact match
on one indexed field. A switch always lands on page 1 with an empty cursor
table, in a single new snapshot.
"""

from recon.models import QueryDescriptor, QueryMode
from recon.pagination import PaginationSession


def submit_search(session: PaginationSession, field_name: str, text: str) -> PaginationSession:
    """
    Enter SEARCH mode.

    Raises:
        ValueError: Empty search text or a field without an index.
    """
    query = QueryDescriptor.search(field_name, text)
    return session.reset(query)


def clear_search(session: PaginationSession) -> PaginationSession:
    """Return to BROWSE mode on page 1."""
    return session.reset(QueryDescriptor.browse())


def is_searching(session: PaginationSession) -> bool:
    return session.query.mode is QueryMode.SEARCH
