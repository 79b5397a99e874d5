"""Paper Alert Digest - extraction, scoring and validation of publication alerts."""

__version__ = "0.1.0"
