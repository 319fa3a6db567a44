"""Exception taxonomy shared by every GhostPixel module.

All errors derive from :class:`GhostPixelError` so the reconciliation loop
can catch the whole family at its boundary without swallowing programming
errors raised by the standard library.
"""

from __future__ import annotations


class GhostPixelError(Exception):
    """Base exception for all GhostPixel errors."""

    pass


class InvalidColorFormat(GhostPixelError, ValueError):
    """Malformed color text or out-of-range channel value."""

    pass


class TileDecodeError(GhostPixelError):
    """A tile payload (key, base64 or bitmap) could not be decoded."""

    pass


class NetworkError(GhostPixelError):
    """Transport failure or unparseable response from the GeoPixels API."""

    pass


class AuthExpired(GhostPixelError):
    """The session token was rejected and could not be restored."""

    pass


class ImageNotLoaded(GhostPixelError):
    """No ghost image is available (never loaded, or loading failed)."""

    pass


class ConfigError(GhostPixelError):
    """Raised when configuration validation fails."""

    pass
