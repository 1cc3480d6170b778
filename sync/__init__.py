"""
Sync package — cloud session lifecycle and credential upload.

Provides SessionManager for login/refresh and SyncClient for pushing
paired servers and entities to the web app.
"""

from sync.cloud_sync import SyncClient
from sync.session_manager import SessionManager

__all__ = ["SessionManager", "SyncClient"]
