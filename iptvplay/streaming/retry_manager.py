"""
Playback retry and escalation.

Each engine error is classified and fed to decide_recovery(), a pure function
of the session state. Retries re-enter initialization after a short delay;
all pending retries belong to the session and are cancelled when it ends.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from iptvplay.config import PlaybackConfig, get_config
from iptvplay.streaming.drm import DrmConfigBuilder
from iptvplay.streaming.engine import (
    EngineError,
    EngineFactory,
    EngineRequest,
    PlaybackEngine,
    RendererMode,
)
from iptvplay.streaming.error_handler import ErrorHandler, ErrorType
from iptvplay.streaming.resolver import ResolverError, StreamDescriptor, resolve_stream_url
from iptvplay.streaming.tracks import (
    QualityOption,
    TrackGroup,
    TrackKind,
    TrackOverride,
    TrackOverrides,
    apply_selection,
    build_quality_options,
    find_forced_video_override,
)

logger = logging.getLogger(__name__)


class PlaybackPhase(str, Enum):
    """Session lifecycle."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"  # transient, between an error and its retry
    ABORTED = "aborted"  # terminal


@dataclass(frozen=True)
class SessionState:
    """
    Per-session playback state, replaced as a whole on every transition.

    Attributes:
        current_stream_url: Encoded stream URL being played
        is_playlist_mode: Channel came from a playlist (enables UA rotation)
        renderer_mode: Decoder preference for the next attempt
        user_agent_index: Position in the playlist User-Agent rotation
        phase: Lifecycle phase
        track_overrides: Explicit user track selections
        forced_video: Override applied when the engine left video unselected
        attempt: Attempts started in this session
    """

    current_stream_url: str = ""
    is_playlist_mode: bool = False
    renderer_mode: RendererMode = RendererMode.HARDWARE
    user_agent_index: int = 0
    phase: PlaybackPhase = PlaybackPhase.IDLE
    track_overrides: TrackOverrides = field(default_factory=TrackOverrides)
    forced_video: Optional[TrackOverride] = None
    attempt: int = 0

    @property
    def is_first_failure(self) -> bool:
        return self.renderer_mode == RendererMode.HARDWARE and self.user_agent_index == 0

    @property
    def is_active(self) -> bool:
        return self.phase in (
            PlaybackPhase.INITIALIZING,
            PlaybackPhase.READY,
            PlaybackPhase.FAILED,
        )


class RecoveryAction(str, Enum):
    """Outcome of an error evaluation."""

    ESCALATE_RENDERER = "escalate_renderer"
    ROTATE_USER_AGENT = "rotate_user_agent"
    COMBINED_ESCALATION = "combined_escalation"
    ABORT = "abort"


@dataclass(frozen=True)
class RecoveryDecision:
    action: RecoveryAction
    state: SessionState

    @property
    def should_retry(self) -> bool:
        return self.action is not RecoveryAction.ABORT


def decide_recovery(
    state: SessionState,
    error_type: ErrorType,
    has_explicit_user_agent: bool,
    rotation_size: int,
) -> RecoveryDecision:
    """
    Choose how to react to an engine error.

    Rules, first match wins:
        1. Renderer failure below FORCE_SOFTWARE: next renderer mode.
        2. Playlist mode, no explicit User-Agent and rotation not exhausted:
           next User-Agent.
        3. First failure of the session: PREFER_SOFTWARE, plus the second
           User-Agent in playlist mode.
        4. Abort.

    Returns:
        The decision and the state for the next attempt (unchanged on abort).
    """
    if error_type is ErrorType.RENDERER and state.renderer_mode < RendererMode.FORCE_SOFTWARE:
        return RecoveryDecision(
            RecoveryAction.ESCALATE_RENDERER,
            replace(state, renderer_mode=RendererMode(state.renderer_mode + 1)),
        )

    if (
        state.is_playlist_mode
        and not has_explicit_user_agent
        and state.user_agent_index < rotation_size - 1
    ):
        return RecoveryDecision(
            RecoveryAction.ROTATE_USER_AGENT,
            replace(state, user_agent_index=state.user_agent_index + 1),
        )

    if state.is_first_failure:
        next_index = state.user_agent_index
        if state.is_playlist_mode:
            next_index = min(1, max(rotation_size - 1, 0))
        return RecoveryDecision(
            RecoveryAction.COMBINED_ESCALATION,
            replace(
                state,
                renderer_mode=RendererMode.PREFER_SOFTWARE,
                user_agent_index=next_index,
            ),
        )

    return RecoveryDecision(RecoveryAction.ABORT, state)


class _AttemptSink:
    """Forwards engine events for one attempt; events from older attempts are dropped."""

    def __init__(self, controller: "PlaybackRetryController", token: int):
        self._controller = controller
        self._token = token

    def _current(self) -> bool:
        return self._controller.attempt_token == self._token

    def on_ready(self) -> None:
        if self._current():
            self._controller.on_ready()

    def on_tracks_changed(self, groups: list[TrackGroup]) -> None:
        if self._current():
            self._controller.on_tracks_changed(groups)

    def on_error(self, error: EngineError) -> None:
        if self._current():
            self._controller.on_error(error)
        else:
            logger.debug(f"Dropping error from stale attempt {self._token}: {error.code.value}")


class PlaybackRetryController:
    """
    Drives one playback session at a time.

    Owns the SessionState, the current engine instance and the pending
    delayed retries. Must be used from the event loop thread.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        playback_config: Optional[PlaybackConfig] = None,
        on_failure: Optional[Callable[[str], None]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """
        Initialize the controller.

        Args:
            engine_factory: Creates an engine bound to an event sink
            playback_config: Retry delay, User-Agents and timeouts; global config if None
            on_failure: Called with the user-facing message on terminal failure
            loop: Loop for delayed retries; the running loop if None
        """
        self._engine_factory = engine_factory
        self._config = playback_config or get_config().playback
        self._on_failure = on_failure
        self._loop = loop
        self._state = SessionState()
        self._descriptor: Optional[StreamDescriptor] = None
        self._engine: Optional[PlaybackEngine] = None
        self._pending_retries: set[asyncio.TimerHandle] = set()
        self.error_handler = ErrorHandler()
        self.failure_message: Optional[str] = None
        # Identifies the live engine instance across sessions
        self.attempt_token = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def engine(self) -> Optional[PlaybackEngine]:
        return self._engine

    @property
    def descriptor(self) -> Optional[StreamDescriptor]:
        return self._descriptor

    @property
    def pending_retry_count(self) -> int:
        return len(self._pending_retries)

    def start(self, stream_url: str, is_playlist_mode: bool = False) -> None:
        """Begin a new session, ending any previous one first."""
        if self._state.phase is not PlaybackPhase.IDLE or self._engine is not None:
            self.stop()

        logger.info(f"Starting playback (playlist_mode={is_playlist_mode}): {stream_url[:80]}")
        self.failure_message = None
        self.error_handler.clear()
        self._state = SessionState(
            current_stream_url=stream_url,
            is_playlist_mode=is_playlist_mode,
        )
        self._initialize()

    def stop(self) -> None:
        """End the session: cancel pending retries and release the engine."""
        self._cancel_retries()
        self.attempt_token += 1
        self._release_engine()
        self._descriptor = None
        self._state = SessionState()

    def user_agent_for_attempt(self) -> str:
        """User-Agent used when the stream itself does not set one."""
        if self._state.is_playlist_mode:
            agents = self._config.user_agents
            return agents[min(self._state.user_agent_index, len(agents) - 1)]
        return self._config.default_user_agent

    def _initialize(self) -> None:
        state = replace(
            self._state,
            phase=PlaybackPhase.INITIALIZING,
            attempt=self._state.attempt + 1,
            forced_video=None,
        )
        self._state = state
        self.attempt_token += 1

        try:
            descriptor = resolve_stream_url(state.current_stream_url)
        except ResolverError as e:
            self._abort(str(e))
            return
        self._descriptor = descriptor

        headers = descriptor.request_headers(self.user_agent_for_attempt())
        media = DrmConfigBuilder.build_media_config(descriptor, headers)
        request = EngineRequest(
            media=media,
            headers=headers,
            renderer_mode=state.renderer_mode,
            connect_timeout_ms=self._config.connect_timeout_ms,
            read_timeout_ms=self._config.read_timeout_ms,
        )

        logger.info(
            f"Attempt {state.attempt}: renderer={state.renderer_mode.name} "
            f"ua_index={state.user_agent_index} drm={media.drm_scheme.value}"
        )
        logger.debug(f"Request headers: {sorted(headers)} UA={headers.get('User-Agent')}")

        self._release_engine()
        try:
            engine = self._engine_factory(_AttemptSink(self, self.attempt_token))
            self._engine = engine
            engine.prepare(request)
        except Exception as e:
            logger.exception(f"Engine initialization failed: {e}")
            self._abort(f"Player initialization failed: {e}")

    def on_ready(self) -> None:
        """Engine reached the ready state."""
        if not self._state.is_active:
            return

        if self._state.phase is not PlaybackPhase.READY:
            logger.info(f"Playback ready after {self._state.attempt} attempt(s)")
        self._state = replace(
            self._state,
            phase=PlaybackPhase.READY,
            renderer_mode=RendererMode.HARDWARE,
            user_agent_index=0,
        )

        if self._engine is not None:
            self._check_video_selection(self._engine.track_groups())

    def on_tracks_changed(self, groups: list[TrackGroup]) -> None:
        if self._state.phase is PlaybackPhase.READY:
            self._check_video_selection(groups)

    def on_error(self, error: EngineError) -> None:
        """Engine reported an error; retry with escalation or abort."""
        # FAILED means a retry is already scheduled
        if self._state.phase not in (PlaybackPhase.INITIALIZING, PlaybackPhase.READY):
            logger.debug(f"Ignoring engine error outside an active attempt: {error.code.value}")
            return

        stream_error = self.error_handler.handle_error(error)
        self._state = replace(self._state, phase=PlaybackPhase.FAILED)

        has_explicit_ua = self._descriptor is not None and self._descriptor.has_explicit_user_agent
        decision = decide_recovery(
            self._state,
            stream_error.error_type,
            has_explicit_user_agent=has_explicit_ua,
            rotation_size=len(self._config.user_agents),
        )

        if not decision.should_retry:
            self._abort(error.display_message)
            return

        next_state = decision.state
        logger.warning(
            f"Retrying playback ({decision.action.value}): "
            f"renderer={next_state.renderer_mode.name} ua_index={next_state.user_agent_index}"
        )
        self._state = next_state
        self._schedule_retry()

    def select_track(self, kind: TrackKind, option: QualityOption) -> None:
        """Apply a menu selection; the other kind's selection is kept."""
        overrides = apply_selection(self._state.track_overrides, kind, option)
        self._state = replace(self._state, track_overrides=overrides)
        self._push_overrides()

    def quality_options(self, kind: TrackKind) -> list[QualityOption]:
        if self._engine is None:
            return []
        return build_quality_options(
            self._engine.track_groups(), kind, self._state.track_overrides
        )

    def _check_video_selection(self, groups: list[TrackGroup]) -> None:
        if self._state.track_overrides.video is not None:
            return
        override = find_forced_video_override(groups)
        if override is None:
            return
        if override == self._state.forced_video:
            return
        logger.warning(
            f"Video track present but not selected - forcing {override.group_id}[{override.track_index}]"
        )
        self._state = replace(self._state, forced_video=override)
        self._push_overrides()

    def _push_overrides(self) -> None:
        if self._engine is None:
            return
        overrides = self._state.track_overrides
        if overrides.video is None and self._state.forced_video is not None:
            overrides = replace(overrides, video=self._state.forced_video)
        self._engine.set_track_overrides(overrides)

    def _schedule_retry(self) -> None:
        loop = self._loop or asyncio.get_running_loop()
        handle: Optional[asyncio.TimerHandle] = None

        def fire() -> None:
            self._pending_retries.discard(handle)
            self._initialize()

        handle = loop.call_later(self._config.retry_delay_seconds, fire)
        self._pending_retries.add(handle)

    def _cancel_retries(self) -> None:
        for handle in self._pending_retries:
            handle.cancel()
        if self._pending_retries:
            logger.debug(f"Cancelled {len(self._pending_retries)} pending retries")
        self._pending_retries.clear()

    def _abort(self, message: str) -> None:
        logger.error(f"Playback failed: {message}")
        self._cancel_retries()
        self._release_engine()
        self._state = replace(self._state, phase=PlaybackPhase.ABORTED)
        self.failure_message = message
        if self._on_failure is not None:
            self._on_failure(message)

    def _release_engine(self) -> None:
        if self._engine is None:
            return
        engine, self._engine = self._engine, None
        try:
            engine.release()
        except Exception as e:
            logger.warning(f"Error releasing engine: {e}")
