"""Feed Aggregator - collects standard and HTML-scraped feeds into a local store."""

__version__ = "1.0.0"
