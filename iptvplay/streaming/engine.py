"""
Playback engine contract.

The engine itself (decoding, rendering, DRM sessions) lives outside this
package. A concrete engine implements PlaybackEngine and reports back through
a PlaybackEventSink, which the retry controller implements.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional, Protocol

from iptvplay.streaming.drm import MediaConfig
from iptvplay.streaming.tracks import TrackGroup, TrackOverrides

logger = logging.getLogger(__name__)


class RendererMode(IntEnum):
    """Decoder preference, escalated on renderer failures."""

    HARDWARE = 0
    PREFER_SOFTWARE = 1
    FORCE_SOFTWARE = 2


class EngineErrorCode(str, Enum):
    """Typed error codes an engine reports."""

    # Renderer / decoder capability
    DECODER_INIT_FAILED = "decoder_init_failed"
    DECODER_QUERY_FAILED = "decoder_query_failed"
    DECODING_FAILED = "decoding_failed"
    DECODING_FORMAT_EXCEEDS_CAPABILITIES = "decoding_format_exceeds_capabilities"
    DECODING_FORMAT_UNSUPPORTED = "decoding_format_unsupported"
    VIDEO_FRAME_PROCESSING_FAILED = "video_frame_processing_failed"

    # Network
    IO_NETWORK_CONNECTION_FAILED = "io_network_connection_failed"
    IO_NETWORK_CONNECTION_TIMEOUT = "io_network_connection_timeout"

    # HTTP
    IO_BAD_HTTP_STATUS = "io_bad_http_status"
    IO_INVALID_HTTP_CONTENT_TYPE = "io_invalid_http_content_type"

    # DRM
    DRM_LICENSE_ACQUISITION_FAILED = "drm_license_acquisition_failed"
    DRM_SCHEME_UNSUPPORTED = "drm_scheme_unsupported"
    DRM_CONTENT_ERROR = "drm_content_error"

    # Source
    IO_FILE_NOT_FOUND = "io_file_not_found"
    PARSING_CONTAINER_MALFORMED = "parsing_container_malformed"
    PARSING_MANIFEST_MALFORMED = "parsing_manifest_malformed"
    BEHIND_LIVE_WINDOW = "behind_live_window"

    UNSPECIFIED = "unspecified"


@dataclass(frozen=True)
class EngineError:
    """An error reported by the engine."""

    code: EngineErrorCode = EngineErrorCode.UNSPECIFIED
    message: str = ""
    cause_message: Optional[str] = None

    @property
    def display_message(self) -> str:
        """Underlying message shown to the user on terminal failure."""
        return self.cause_message or self.message or self.code.value


@dataclass(frozen=True)
class EngineRequest:
    """Everything an engine needs to open one stream attempt."""

    media: MediaConfig
    headers: dict[str, str] = field(default_factory=dict)
    renderer_mode: RendererMode = RendererMode.HARDWARE
    connect_timeout_ms: int = 30_000
    read_timeout_ms: int = 30_000

    @property
    def uri(self) -> str:
        return self.media.uri


class PlaybackEventSink(Protocol):
    """Receiver of engine events."""

    def on_ready(self) -> None: ...

    def on_tracks_changed(self, groups: list[TrackGroup]) -> None: ...

    def on_error(self, error: EngineError) -> None: ...


class PlaybackEngine(ABC):
    """
    Abstract playback engine.

    One instance serves one attempt: prepare() is called once, release()
    ends it. Events are delivered to the sink passed to the factory.
    """

    @abstractmethod
    def prepare(self, request: EngineRequest) -> None:
        """Open the stream and start playback."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Stop playback and free decoder and DRM resources."""
        pass

    @abstractmethod
    def track_groups(self) -> list[TrackGroup]:
        """Current track groups with their selection state."""
        pass

    @abstractmethod
    def set_track_overrides(self, overrides: TrackOverrides) -> None:
        """Replace the explicit track selections."""
        pass


EngineFactory = Callable[[PlaybackEventSink], PlaybackEngine]
