from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .entities import ParseDiagnostic, Song, SongStatus

NEW_MARKER = "new"
PRACTICING_MARKER = "練習中"

FIELD_DELIMITER = ","
TAB_DELIMITER = "\t"
FULLWIDTH_DELIMITER = "，"


def _is_new(value: str) -> bool:
    return value.casefold() == NEW_MARKER


def _status(value: str) -> SongStatus:
    if value.casefold() == PRACTICING_MARKER.casefold():
        return SongStatus.PRACTICING
    return SongStatus.PLAYABLE


@dataclass(frozen=True)
class FieldRule:
    """Positional field of a song line: where it lives, its default and how to read it."""

    index: int
    name: str
    default: object
    convert: Callable[[str], object]


# title and artist are required; every other field falls back to its default
SONG_FIELDS: Tuple[FieldRule, ...] = (
    FieldRule(0, "title", None, str),
    FieldRule(1, "artist", None, str),
    FieldRule(2, "genre", "", str),
    FieldRule(3, "is_new", False, _is_new),
    FieldRule(4, "status", SongStatus.PLAYABLE, _status),
)


def split_fields(line: str) -> List[str]:
    """Split one stored song-list line into trimmed fields on ASCII commas."""
    return [p.strip() for p in line.split(FIELD_DELIMITER)]


def split_bulk_fields(line: str) -> List[str]:
    """Split one pasted line into trimmed fields.

    Tab-separated lines (spreadsheet paste) win over commas; the full-width
    comma is only honoured when the line has no ASCII comma.
    """
    if TAB_DELIMITER in line:
        parts = line.split(TAB_DELIMITER)
    elif FIELD_DELIMITER not in line and FULLWIDTH_DELIMITER in line:
        parts = line.split(FULLWIDTH_DELIMITER)
    else:
        parts = line.split(FIELD_DELIMITER)
    return [p.strip() for p in parts]


def _split_lines(blob: Optional[str]) -> List[str]:
    if not blob:
        return []
    return blob.replace("\r\n", "\n").split("\n")


def _song_from_fields(fields: Sequence[str]) -> Song:
    values = {}
    for rule in SONG_FIELDS:
        raw = fields[rule.index] if rule.index < len(fields) else ""
        values[rule.name] = rule.convert(raw) if raw else rule.default
    return Song(**values)


def parse_songs_with_diagnostics(blob: Optional[str]) -> Tuple[List[Song], List[ParseDiagnostic]]:
    """Parse a song-list blob, also reporting every non-blank line that was dropped."""
    songs: List[Song] = []
    diagnostics: List[ParseDiagnostic] = []

    for line_number, line in enumerate(_split_lines(blob), start=1):
        if not line.strip():
            continue
        fields = split_fields(line)
        if len(fields) < 2:
            diagnostics.append(ParseDiagnostic(line_number, line, "expected at least title and artist"))
            continue
        if not fields[0] or not fields[1]:
            diagnostics.append(ParseDiagnostic(line_number, line, "empty title or artist"))
            continue
        songs.append(_song_from_fields(fields))

    return songs, diagnostics


def parse_songs(blob: Optional[str]) -> List[Song]:
    """Parse the persisted song-list blob. Malformed lines are dropped, never raised."""
    songs, _ = parse_songs_with_diagnostics(blob)
    return songs


def parse_bulk_songs(text: Optional[str]) -> List[Song]:
    """Parse rows pasted into the admin bulk-add box.

    Unlike the stored blob, tab and full-width comma delimiters are accepted
    (see ``split_bulk_fields``), and the ``new`` and ``練習中`` markers are
    recognised in any trailing column.
    """
    songs: List[Song] = []
    for line in _split_lines((text or "").strip()):
        if not line.strip():
            continue
        fields = split_bulk_fields(line)
        if len(fields) < 2 or not fields[0] or not fields[1]:
            continue
        extras = [f.casefold() for f in fields[2:]]
        genre = fields[2] if len(fields) > 2 else ""
        if genre.casefold() in (NEW_MARKER, PRACTICING_MARKER):
            genre = ""
        songs.append(Song(
            title=fields[0],
            artist=fields[1],
            genre=genre,
            is_new=NEW_MARKER in extras,
            status=SongStatus.PRACTICING if PRACTICING_MARKER in extras else SongStatus.PLAYABLE,
        ))
    return songs


def encode_song(song: Song) -> str:
    return FIELD_DELIMITER.join([
        song.title.strip(),
        song.artist.strip(),
        (song.genre or "").strip(),
        NEW_MARKER if song.is_new else "",
        PRACTICING_MARKER if song.status == SongStatus.PRACTICING else "",
    ])


def encode_songs(songs: Iterable[Song]) -> str:
    """Serialize songs back into the blob form. Rows missing title or artist are dropped."""
    lines = [
        encode_song(song)
        for song in songs
        if (song.title or "").strip() and (song.artist or "").strip()
    ]
    return "\n".join(lines)
