"""
Web Package
===========

Outbound HTTP collaborators of the mirror:
- LensFetcher / WebLensFetcher: remote lens lookups
- AssetSink / AssetDownloader: media download after inserts
"""

from .fetcher import LensFetcher, WebLensFetcher, record_from_remote, lens_from_remote
from .downloader import AssetSink, AssetDownloader

__all__ = [
    "LensFetcher",
    "WebLensFetcher",
    "record_from_remote",
    "lens_from_remote",
    "AssetSink",
    "AssetDownloader",
]
