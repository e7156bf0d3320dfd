"""
Write-through mirror cache for an upstream NuGet v3 package feed.

Packages are served from a local store when present and otherwise fetched
from the upstream feed, persisted, indexed, and then served.
"""

__version__ = "0.1.0"
