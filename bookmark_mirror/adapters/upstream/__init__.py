"""Upstream bookmark API integration."""

from bookmark_mirror.adapters.upstream.client import PAGE_SIZE, UpstreamClient

__all__ = ["PAGE_SIZE", "UpstreamClient"]
