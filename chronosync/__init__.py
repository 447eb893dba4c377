"""chronosync - CalDAV calendar sync with a deterministic offline fallback."""

__version__ = "1.0.0"
__description__ = "CalDAV calendar sync pipeline with a simulated fallback dataset"

__all__ = [
    "__description__",
    "__version__",
]
