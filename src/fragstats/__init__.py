"""Game-server statistics: log parsing, skill ratings and kill ingestion."""

__version__ = "0.1.0"
