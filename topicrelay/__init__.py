"""Topic-based signaling relay and static application server."""
from __future__ import annotations

import importlib.metadata as importlib_metadata

__version__ = importlib_metadata.version('topicrelay')
