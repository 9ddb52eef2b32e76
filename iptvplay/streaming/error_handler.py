"""
Classification of playback engine errors.

The retry controller only needs to know which family an error belongs to:
renderer failures escalate the decoder mode, everything else goes through
User-Agent rotation or terminates.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from iptvplay.streaming.engine import EngineError, EngineErrorCode

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    """Classification of error types."""

    RENDERER = "renderer"  # Decoder init/capability failures
    NETWORK = "network"  # Connection failures, timeouts
    HTTP = "http"  # Bad status from stream or manifest server
    DRM = "drm"  # License acquisition, key errors
    SOURCE = "source"  # Malformed container/manifest, missing media
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Error severity levels."""

    LOW = "low"  # Recoverable, can retry
    MEDIUM = "medium"  # May need a different renderer or User-Agent
    HIGH = "high"  # Unlikely to recover by retrying


@dataclass
class StreamError:
    """A classified engine error."""

    error_type: ErrorType
    severity: ErrorSeverity
    message: str
    code: EngineErrorCode = EngineErrorCode.UNSPECIFIED
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_renderer_failure(self) -> bool:
        return self.error_type is ErrorType.RENDERER


RENDERER_CODES = frozenset(
    {
        EngineErrorCode.DECODER_INIT_FAILED,
        EngineErrorCode.DECODER_QUERY_FAILED,
        EngineErrorCode.DECODING_FAILED,
        EngineErrorCode.DECODING_FORMAT_EXCEEDS_CAPABILITIES,
        EngineErrorCode.DECODING_FORMAT_UNSUPPORTED,
        EngineErrorCode.VIDEO_FRAME_PROCESSING_FAILED,
    }
)

CODE_TYPES: dict[EngineErrorCode, tuple[ErrorType, ErrorSeverity]] = {
    EngineErrorCode.IO_NETWORK_CONNECTION_FAILED: (ErrorType.NETWORK, ErrorSeverity.LOW),
    EngineErrorCode.IO_NETWORK_CONNECTION_TIMEOUT: (ErrorType.NETWORK, ErrorSeverity.LOW),
    EngineErrorCode.IO_BAD_HTTP_STATUS: (ErrorType.HTTP, ErrorSeverity.MEDIUM),
    EngineErrorCode.IO_INVALID_HTTP_CONTENT_TYPE: (ErrorType.HTTP, ErrorSeverity.MEDIUM),
    EngineErrorCode.DRM_LICENSE_ACQUISITION_FAILED: (ErrorType.DRM, ErrorSeverity.MEDIUM),
    EngineErrorCode.DRM_SCHEME_UNSUPPORTED: (ErrorType.DRM, ErrorSeverity.HIGH),
    EngineErrorCode.DRM_CONTENT_ERROR: (ErrorType.DRM, ErrorSeverity.HIGH),
    EngineErrorCode.IO_FILE_NOT_FOUND: (ErrorType.SOURCE, ErrorSeverity.HIGH),
    EngineErrorCode.PARSING_CONTAINER_MALFORMED: (ErrorType.SOURCE, ErrorSeverity.MEDIUM),
    EngineErrorCode.PARSING_MANIFEST_MALFORMED: (ErrorType.SOURCE, ErrorSeverity.MEDIUM),
    EngineErrorCode.BEHIND_LIVE_WINDOW: (ErrorType.SOURCE, ErrorSeverity.LOW),
}

HTTP_STATUS_PATTERN = re.compile(r"\b(?:401|403|404|5\d\d)\b")


class ErrorClassifier:
    """Classifies engine errors into error types and severity."""

    @staticmethod
    def classify(error: EngineError) -> StreamError:
        """
        Classify an engine error.

        The error code decides when it is specific; message keywords are only
        consulted for UNSPECIFIED codes.

        Args:
            error: The engine error to classify.

        Returns:
            StreamError with classified type and severity.
        """
        message = error.display_message

        if error.code in RENDERER_CODES:
            error_type, severity = ErrorType.RENDERER, ErrorSeverity.MEDIUM
        elif error.code in CODE_TYPES:
            error_type, severity = CODE_TYPES[error.code]
        else:
            error_type, severity = ErrorClassifier._classify_message(
                " ".join(filter(None, (error.message, error.cause_message)))
            )

        return StreamError(
            error_type=error_type,
            severity=severity,
            message=message,
            code=error.code,
        )

    @staticmethod
    def _classify_message(text: str) -> tuple[ErrorType, ErrorSeverity]:
        error_str = text.lower()

        # Renderer errors
        if any(term in error_str for term in ["decoder", "codec", "renderer"]):
            return ErrorType.RENDERER, ErrorSeverity.MEDIUM

        # Network errors (including DNS)
        if any(term in error_str for term in ["timeout", "connection", "network", "dns"]):
            return ErrorType.NETWORK, ErrorSeverity.LOW

        # HTTP errors
        if HTTP_STATUS_PATTERN.search(error_str) or "http" in error_str:
            return ErrorType.HTTP, ErrorSeverity.MEDIUM

        # DRM errors
        if any(term in error_str for term in ["drm", "license", "key"]):
            return ErrorType.DRM, ErrorSeverity.MEDIUM

        return ErrorType.UNKNOWN, ErrorSeverity.MEDIUM


class ErrorHandler:
    """Classifies engine errors and keeps a short history for diagnostics."""

    HISTORY_LIMIT = 100

    def __init__(self):
        self.classifier = ErrorClassifier()
        self.error_history: list[StreamError] = []

    def handle_error(self, error: EngineError) -> StreamError:
        """Classify an engine error and record it."""
        stream_error = self.classifier.classify(error)

        self.error_history.append(stream_error)
        if len(self.error_history) > self.HISTORY_LIMIT:
            self.error_history = self.error_history[-self.HISTORY_LIMIT :]

        logger.warning(
            f"Playback error classified: {stream_error.error_type.value} "
            f"(code: {error.code.value}, severity: {stream_error.severity.value}) "
            f"- {stream_error.message}"
        )
        return stream_error

    def get_recent_errors(
        self,
        error_type: ErrorType | None = None,
        limit: int = 10,
    ) -> list[StreamError]:
        """Get recent errors, optionally filtered by type."""
        errors = self.error_history[-limit:]
        if error_type:
            errors = [e for e in errors if e.error_type == error_type]
        return errors

    def clear(self) -> None:
        self.error_history.clear()
