"""
GeoPixels server collaborators.

HTTP client for tile sync and pixel placement, wire schemas, session
credentials with file-based relogin, and the local energy model.
"""

from ghostpixel.client.account import AccountState, EnergyTracker
from ghostpixel.client.geopixels import GeoPixelsClient, PlacementResult
from ghostpixel.client.session import CredentialFileRelogin, Session

__all__ = [
    "AccountState",
    "CredentialFileRelogin",
    "EnergyTracker",
    "GeoPixelsClient",
    "PlacementResult",
    "Session",
]
