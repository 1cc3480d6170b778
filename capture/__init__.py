"""
Capture package — isolated browser surfaces and token capture.

Provides TokenCapture for the Steam companion token and the
SurfaceSession bridge shared with the cloud login flow.
"""

from capture.bridge import SurfaceSession
from capture.surface import CaptureSurface, WebviewSurface
from capture.token_capture import TokenCapture, extract_token

__all__ = ["CaptureSurface", "SurfaceSession", "TokenCapture", "WebviewSurface", "extract_token"]
