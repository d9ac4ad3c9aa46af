"""Segment manifest builder: flattens the main track into an ffconcat file."""

from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple
from loguru import logger

from clipforge.models.timeline import MediaClip, Track, TrackType

CONCAT_HEADER = "ffconcat version 1.0"
CONCAT_FILENAME = "concat.txt"


class ExportValidationError(Exception):
    """Raised when an export request cannot be turned into a job."""
    pass


class NoMainTrackError(ExportValidationError):
    """Raised when the timeline has no main track to export."""

    def __init__(self):
        super().__init__("No main track found")


class MediaNotFoundError(ExportValidationError):
    """Raised when a clip references media missing from the library."""

    def __init__(self, media_clip_id: str):
        self.media_clip_id = media_clip_id
        super().__init__(f"Media clip not found: {media_clip_id}")


class InvalidOutputPathError(ExportValidationError):
    """Raised when the output path cannot be handed to a process."""

    def __init__(self, output_path: str):
        self.output_path = output_path
        super().__init__(f"Invalid output path: {output_path!r}")


class OutputDirectoryNotFoundError(ExportValidationError):
    """Raised when the output file's parent directory does not exist."""

    def __init__(self, directory: Path):
        self.directory = directory
        super().__init__(f"Output directory does not exist: {directory}")


def calculate_timeline_duration(tracks: Iterable[Track]) -> float:
    """Total timeline duration: the longest track, 0 for no tracks."""
    return max((track.duration() for track in tracks), default=0.0)


def select_main_track(tracks: Sequence[Track]) -> Track:
    """Pick the main track with the most clips.

    Ties go to the track that comes first in the input.
    """
    main_tracks = [t for t in tracks if t.track_type == TrackType.MAIN]
    if not main_tracks:
        raise NoMainTrackError()

    # max() keeps the first of equal keys
    return max(main_tracks, key=lambda t: t.clip_count)


def escape_concat_path(path: str) -> str:
    """Escape a path for a single-quoted ffconcat `file` directive.

    A quote cannot appear inside single quotes, so it is closed, escaped
    and reopened: ' becomes '\\''.
    """
    return path.replace("'", "'\\''")


def unescape_concat_path(quoted: str) -> str:
    """Recover the literal path from a quoted ffconcat `file` argument."""
    literal = []
    i = 0
    in_quotes = False
    while i < len(quoted):
        char = quoted[i]
        if char == "'":
            in_quotes = not in_quotes
        elif char == "\\" and not in_quotes and i + 1 < len(quoted):
            i += 1
            literal.append(quoted[i])
        else:
            literal.append(char)
        i += 1
    return "".join(literal)


def render_concat_manifest(segments: Iterable[Tuple[str, float, float]]) -> str:
    """Render (path, inpoint, outpoint) segments as ffconcat text."""
    lines = [CONCAT_HEADER]
    for path, in_point, out_point in segments:
        lines.append(f"file '{escape_concat_path(path)}'")
        lines.append(f"inpoint {in_point:.6f}")
        lines.append(f"outpoint {out_point:.6f}")
    return "\n".join(lines) + "\n"


def parse_concat_manifest(content: str) -> List[Tuple[str, float, float]]:
    """Parse ffconcat text written by render_concat_manifest."""
    segments: List[Tuple[str, float, float]] = []
    path = None
    in_point = 0.0
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line == CONCAT_HEADER:
            continue
        directive, _, value = line.partition(" ")
        if directive == "file":
            path = unescape_concat_path(value)
        elif directive == "inpoint":
            in_point = float(value)
        elif directive == "outpoint" and path is not None:
            segments.append((path, in_point, float(value)))
            path = None
            in_point = 0.0
    return segments


def build_segments(
    tracks: Sequence[Track],
    media_library: Iterable[MediaClip],
) -> List[Tuple[str, float, float]]:
    """Resolve the main track into ordered (path, inpoint, outpoint) segments.

    Every clip is resolved before anything is returned, so a missing media
    reference fails the whole manifest.
    """
    main_track = select_main_track(tracks)
    logger.debug(
        f"Using main track '{main_track.name}' with {main_track.clip_count} clips"
    )

    media_by_id: Dict[str, MediaClip] = {m.id: m for m in media_library}

    # sorted() is stable, equal start times keep their input order
    clips = sorted(main_track.clips, key=lambda c: c.start_time)

    segments = []
    for clip in clips:
        media = media_by_id.get(clip.media_clip_id)
        if media is None:
            raise MediaNotFoundError(clip.media_clip_id)
        segments.append((media.playable_path, clip.in_point, clip.out_point))
    return segments


def generate_concat_file(
    tracks: Sequence[Track],
    media_library: Iterable[MediaClip],
    output_dir: Path,
) -> Path:
    """Write the main track's ffconcat manifest into output_dir.

    Args:
        tracks: All timeline tracks
        media_library: Media descriptors referenced by the clips
        output_dir: Scratch directory owned by the export

    Returns:
        Path to the written concat.txt

    Raises:
        NoMainTrackError: No main track in the timeline
        MediaNotFoundError: A clip references unknown media (nothing is written)
    """
    segments = build_segments(tracks, media_library)
    content = render_concat_manifest(segments)

    concat_path = Path(output_dir) / CONCAT_FILENAME
    with open(concat_path, "w", encoding="utf-8") as f:
        f.write(content)

    logger.debug(f"Generated concat file {concat_path}:\n{content}")
    return concat_path
