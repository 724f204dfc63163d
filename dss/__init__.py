"""Discovery and Synchronization Service components: errors, authorization, database settings and migration planning."""

__version__ = "0.1.0"