from .apify_scraper import ApifyScraper, flatten_items
from .base import BaseScraper

__all__ = [
    "ApifyScraper",
    "BaseScraper",
    "flatten_items",
]
