"""
Movie Review Client.

Authenticated HTTP access layer for the movie review backend: a shared
transport with bearer credential attachment, single-flight token refresh
and session bootstrap.
"""

__version__ = "1.0.0"
