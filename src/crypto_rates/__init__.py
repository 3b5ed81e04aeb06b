"""crypto-rates: scheduled crypto price ingestion and point-in-time conversion."""

__version__ = "0.1.0"
