"""Errors raised at the registry boundary."""

from __future__ import annotations

from typing import Optional


class RegistryError(Exception):
    """A registry call failed (HTTP status, malformed payload, missing resource)."""

    def __init__(self, message: str, *, status: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.url = url


class ServiceIndexError(RegistryError):
    """The V3 service index could not be loaded or lacks a required resource."""


class PackageNotFoundError(RegistryError):
    """The registry has no such package or version."""
