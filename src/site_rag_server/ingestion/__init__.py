from .chunker import chunk_text, clean_text
from .crawler import CrawledPage, SiteCrawler
from .pipeline import (
    IngestionError,
    IngestionOrchestrator,
    IngestReport,
    PageReport,
    RegenerateReport,
)

__all__ = [
    "chunk_text",
    "clean_text",
    "CrawledPage",
    "SiteCrawler",
    "IngestionError",
    "IngestionOrchestrator",
    "IngestReport",
    "PageReport",
    "RegenerateReport",
]
