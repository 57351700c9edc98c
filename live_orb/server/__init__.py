"""
Signal server for UI and visual collaborators.
"""

from live_orb.server.app import create_app

__all__ = ["create_app"]
