"""
IPTVPlay - IPTV playlist and stream resolution library

- M3U/M3U8 playlist parsing with headers and DRM metadata per channel
- Pipe-encoded stream URLs carrying headers and DRM settings
- DRM activation (license server or inline ClearKey)
- Playback retry with renderer fallback and User-Agent rotation
"""

__version__ = "1.0.0"
__license__ = "MIT"

from iptvplay.config import get_config, load_config

__all__ = [
    "__version__",
    "get_config",
    "load_config",
]
