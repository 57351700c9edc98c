"""
Live Orb - real-time duplex voice assistant session manager.
"""

import logging
import os

# Keep the Gemini/websocket stack quiet unless explicitly asked for
os.environ.setdefault("GRPC_VERBOSITY", "ERROR")

logging.getLogger("websockets").setLevel(logging.WARNING)
logging.getLogger("google_genai").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

__version__ = "0.1.0"

from live_orb.session.lifecycle import LiveSessionManager, SessionState

__all__ = ["LiveSessionManager", "SessionState", "__version__"]
