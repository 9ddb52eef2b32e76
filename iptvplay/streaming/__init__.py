"""
IPTVPlay Streaming Module

Turns a persisted channel URL into something a playback engine can open,
and supervises the engine while it plays.

Components:
- StreamDescriptorResolver: Encoded URL to headers and DRM settings
- DrmConfigBuilder: License server or inline ClearKey activation
- PlaybackEngine: Contract for the external engine
- ErrorClassifier/ErrorHandler: Engine error classification
- PlaybackRetryController: Renderer fallback and User-Agent rotation
- Track helpers: Quality menus and forced video selection
"""

from iptvplay.streaming.drm import (
    DrmActivation,
    DrmConfigBuilder,
    HttpLicense,
    InlineClearKey,
    MediaConfig,
    NoDrm,
    build_clearkey_json,
    hex_to_base64url,
)
from iptvplay.streaming.engine import (
    EngineError,
    EngineErrorCode,
    EngineFactory,
    EngineRequest,
    PlaybackEngine,
    PlaybackEventSink,
    RendererMode,
)
from iptvplay.streaming.error_handler import (
    ErrorClassifier,
    ErrorHandler,
    ErrorSeverity,
    ErrorType,
    StreamError,
)
from iptvplay.streaming.resolver import (
    DrmLicense,
    InlineKeyMaterial,
    LicenseUrl,
    ResolverError,
    StreamDescriptor,
    StreamDescriptorResolver,
    merge_ext_http_json,
    resolve_stream_url,
)
from iptvplay.streaming.retry_manager import (
    PlaybackPhase,
    PlaybackRetryController,
    RecoveryAction,
    RecoveryDecision,
    SessionState,
    decide_recovery,
)
from iptvplay.streaming.tracks import (
    QualityOption,
    Track,
    TrackGroup,
    TrackKind,
    TrackOverride,
    TrackOverrides,
    apply_selection,
    build_quality_options,
    find_forced_video_override,
)

__all__ = [
    # DRM
    "DrmActivation",
    "DrmConfigBuilder",
    "HttpLicense",
    "InlineClearKey",
    "MediaConfig",
    "NoDrm",
    "build_clearkey_json",
    "hex_to_base64url",
    # Engine
    "EngineError",
    "EngineErrorCode",
    "EngineFactory",
    "EngineRequest",
    "PlaybackEngine",
    "PlaybackEventSink",
    "RendererMode",
    # Errors
    "ErrorClassifier",
    "ErrorHandler",
    "ErrorSeverity",
    "ErrorType",
    "StreamError",
    # Resolver
    "DrmLicense",
    "InlineKeyMaterial",
    "LicenseUrl",
    "ResolverError",
    "StreamDescriptor",
    "StreamDescriptorResolver",
    "merge_ext_http_json",
    "resolve_stream_url",
    # Retry
    "PlaybackPhase",
    "PlaybackRetryController",
    "RecoveryAction",
    "RecoveryDecision",
    "SessionState",
    "decide_recovery",
    # Tracks
    "QualityOption",
    "Track",
    "TrackGroup",
    "TrackKind",
    "TrackOverride",
    "TrackOverrides",
    "apply_selection",
    "build_quality_options",
    "find_forced_video_override",
]
