"""
Feedpipe - news feed ingestion and source quality tracking.
"""

__version__ = "0.1.0"
