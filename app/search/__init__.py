"""
Search across investors and companies.
"""

from app.search.engine import SearchEngine, SearchResult, SearchResultType

__all__ = ["SearchEngine", "SearchResult", "SearchResultType"]
