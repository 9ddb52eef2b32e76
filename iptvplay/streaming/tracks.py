"""
Track capability model and quality selection.

The playback engine reports its tracks as TrackGroups of Tracks; everything
here works on those plain values so menus and overrides do not depend on a
particular engine.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class TrackKind(str, Enum):
    """Track types."""

    VIDEO = "video"
    AUDIO = "audio"
    TEXT = "text"


@dataclass(frozen=True)
class Track:
    """
    One selectable format inside a track group.

    Attributes:
        id: Engine-assigned identifier
        kind: Track type
        bitrate: Bits per second, 0 when unknown
        height: Video height in pixels, 0 when unknown
        channels: Audio channel count, 0 when unknown
        language: Language tag, None when unknown
        frame_rate: Frames per second, 0.0 when unknown
        supported: Whether the engine can render this track
    """

    id: str
    kind: TrackKind
    bitrate: int = 0
    height: int = 0
    channels: int = 0
    language: Optional[str] = None
    frame_rate: float = 0.0
    supported: bool = True


@dataclass(frozen=True)
class TrackGroup:
    """Tracks of one kind that carry the same content at different qualities."""

    group_id: str
    kind: TrackKind
    tracks: tuple[Track, ...] = ()
    selected_indices: tuple[int, ...] = ()

    @property
    def is_selected(self) -> bool:
        return bool(self.selected_indices)

    def first_supported_index(self) -> int:
        for index, track in enumerate(self.tracks):
            if track.supported:
                return index
        return 0


@dataclass(frozen=True)
class TrackOverride:
    """Pin a group to one of its tracks."""

    group_id: str
    track_index: int
    kind: TrackKind = TrackKind.VIDEO
    # Exceed renderer capability checks when the engine misjudges a format
    force: bool = False


@dataclass(frozen=True)
class TrackOverrides:
    """Explicit selections for the session, at most one per kind."""

    video: Optional[TrackOverride] = None
    audio: Optional[TrackOverride] = None

    def as_list(self) -> list[TrackOverride]:
        return [o for o in (self.video, self.audio) if o is not None]

    def get(self, kind: TrackKind) -> Optional[TrackOverride]:
        if kind is TrackKind.VIDEO:
            return self.video
        if kind is TrackKind.AUDIO:
            return self.audio
        return None


@dataclass(frozen=True)
class QualityOption:
    """One entry of a quality or audio menu."""

    label: str
    group_id: Optional[str] = None
    track_index: int = -1
    is_auto: bool = False
    is_selected: bool = False


def find_forced_video_override(groups: list[TrackGroup]) -> Optional[TrackOverride]:
    """
    Detect a video track the engine left unselected.

    Returns an override onto the first supported track of the first video
    group when video exists but no video group is selected, otherwise None.
    """
    first_group: Optional[TrackGroup] = None
    for group in groups:
        if group.kind is not TrackKind.VIDEO:
            continue
        if group.is_selected:
            return None
        if first_group is None:
            first_group = group

    if first_group is None or not first_group.tracks:
        return None

    return TrackOverride(
        group_id=first_group.group_id,
        track_index=first_group.first_supported_index(),
        kind=TrackKind.VIDEO,
        force=True,
    )


def format_video_label(track: Track) -> str:
    kbps = track.bitrate // 1000 if track.bitrate > 0 else 0
    fps = int(track.frame_rate) if track.frame_rate > 0 else 0
    if fps > 0 and kbps > 0:
        return f"{track.height}p ({fps}fps, {kbps} kbps)"
    if kbps > 0:
        return f"{track.height}p ({kbps} kbps)"
    if track.height > 0:
        return f"{track.height}p"
    return "Unknown"


def format_audio_label(track: Track) -> str:
    lang = track.language or "und"
    kbps = track.bitrate // 1000 if track.bitrate > 0 else 0
    if kbps > 0 and track.channels > 0:
        return f"[{lang}] {kbps} kbps {track.channels}ch"
    if kbps > 0:
        return f"[{lang}] {kbps} kbps"
    return f"[{lang}]"


def _label(track: Track) -> str:
    if track.kind is TrackKind.AUDIO:
        return format_audio_label(track)
    return format_video_label(track)


def build_quality_options(
    groups: list[TrackGroup],
    kind: TrackKind,
    overrides: Optional[TrackOverrides] = None,
) -> list[QualityOption]:
    """
    Build the selection menu for one track kind.

    The first entry is Auto, labelled with the currently playing track when
    no explicit override is set.
    """
    current = (overrides or TrackOverrides()).get(kind)
    is_auto = current is None

    current_label = None
    for group in groups:
        if group.kind is kind and group.is_selected:
            index = group.selected_indices[0]
            if 0 <= index < len(group.tracks):
                current_label = _label(group.tracks[index])
            break

    auto_label = f"Auto ({current_label})" if is_auto and current_label else "Auto"
    options = [QualityOption(label=auto_label, is_auto=True, is_selected=is_auto)]

    for group in groups:
        if group.kind is not kind:
            continue
        for index, track in enumerate(group.tracks):
            selected = (
                not is_auto
                and current.group_id == group.group_id
                and current.track_index == index
            )
            options.append(
                QualityOption(
                    label=_label(track),
                    group_id=group.group_id,
                    track_index=index,
                    is_selected=selected,
                )
            )

    return options


def apply_selection(
    overrides: TrackOverrides, kind: TrackKind, option: QualityOption
) -> TrackOverrides:
    """
    Return overrides with ``option`` applied for ``kind``.

    The other kind's override is kept. Auto clears this kind's override.
    """
    if kind is TrackKind.TEXT:
        raise ValueError("Text tracks are not selectable")

    if option.is_auto or option.group_id is None or option.track_index < 0:
        new_override = None
    else:
        new_override = TrackOverride(
            group_id=option.group_id, track_index=option.track_index, kind=kind
        )

    logger.debug(f"{kind.value} selection -> {option.label}")
    if kind is TrackKind.VIDEO:
        return replace(overrides, video=new_override)
    return replace(overrides, audio=new_override)
