"""
Services layer - core business logic for sourcewatch.

1. Data ingestion (data_ingestion/):
   - Fetching, robots compliance, parsing, tagging, scheduling

2. Storage (storage.py):
   - Source and article persistence, URL-based deduplication

3. Registration (registration.py):
   - Adding, editing and removing monitored sources
"""

from sourcewatch.services.storage import ArticleStore, SourceStore
from sourcewatch.services.registration import SourceRegistry

__all__ = [
    "ArticleStore",
    "SourceStore",
    "SourceRegistry",
]
