"""Date-based image identifiers.

Identifiers have the form ``YYMMDD[day]##``: two-digit year, month and
day-of-month of the upload, one digit for the gallery day (1-9) and a
two-digit sequence number (01-99).

Examples:
    250524101 = May 24, 2025, gallery day 1, first image
    250524102 = May 24, 2025, gallery day 1, second image
    250524301 = May 24, 2025, gallery day 3, first image
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

MIN_GALLERY_DAY = 1
MAX_GALLERY_DAY = 9
MAX_SEQUENCE = 99
ID_LENGTH = 9

# Raw ids above this are treated as millisecond Unix timestamps.
TIMESTAMP_ID_THRESHOLD = 1_000_000_000_000

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_ID_PATTERN = re.compile(r"[0-9]{9}")


class IdentifierError(ValueError):
    """Base class for identifier allocation failures."""


class InvalidBucketError(IdentifierError):
    """Raised when a gallery day falls outside 1-9."""

    def __init__(self, gallery_day: Any) -> None:
        super().__init__(
            f"Gallery day must be between {MIN_GALLERY_DAY} and {MAX_GALLERY_DAY}, got: {gallery_day}"
        )
        self.gallery_day = gallery_day


class CapacityExceededError(IdentifierError):
    """Raised when a date and gallery day already hold 99 images."""

    def __init__(self, prefix: str) -> None:
        super().__init__(f"Maximum images per gallery day ({MAX_SEQUENCE}) exceeded for {prefix}")
        self.prefix = prefix


@dataclass(frozen=True)
class ParsedId:
    """Components decoded from a well-formed identifier."""

    year: int
    month: int
    day: int
    gallery_day: int
    sequence: int
    date: date


def validate_gallery_day(gallery_day: Any) -> int:
    """Return `gallery_day` as an int, or raise InvalidBucketError."""
    if isinstance(gallery_day, bool) or not isinstance(gallery_day, int):
        raise InvalidBucketError(gallery_day)
    if gallery_day < MIN_GALLERY_DAY or gallery_day > MAX_GALLERY_DAY:
        raise InvalidBucketError(gallery_day)
    return gallery_day


def _record_id(record: Any) -> Any:
    if isinstance(record, Mapping):
        return record.get("id")
    return getattr(record, "id", None)


def _record_upload_date(record: Any) -> Any:
    if isinstance(record, Mapping):
        return record.get("uploadDate")
    return getattr(record, "upload_date", None)


def _id_string(value: Any) -> Optional[str]:
    """Format an integer id as a zero-padded 9-character string."""
    if isinstance(value, str):
        return value if _ID_PATTERN.fullmatch(value) else None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return f"{value:0{ID_LENGTH}d}"


def date_prefix(upload_date: date, gallery_day: int) -> str:
    """Build the 7-character ``YYMMDD[day]`` prefix."""
    return f"{upload_date.year % 100:02d}{upload_date.month:02d}{upload_date.day:02d}{gallery_day}"


def generate_date_based_id(
    existing_images: Optional[Iterable[Any]] = None,
    gallery_day: int = 1,
    upload_date: Optional[datetime] = None,
) -> int:
    """Allocate a new identifier for an image.

    The sequence is the smallest integer >= 1 not already used by an
    existing id sharing the same date and gallery day prefix.

    Args:
        existing_images: Records (ImageRecord, mappings or objects with
            an `id`) to check for conflicts.
        gallery_day: Gallery day bucket, 1-9.
        upload_date: Upload timestamp; defaults to the current time.

    Returns:
        The new identifier as an integer.

    Raises:
        InvalidBucketError: If `gallery_day` is outside 1-9.
        CapacityExceededError: If sequences 01-99 are all taken.
    """
    gallery_day = validate_gallery_day(gallery_day)
    when = upload_date or datetime.now(timezone.utc)
    prefix = date_prefix(when, gallery_day)

    taken = set()
    for record in existing_images or ():
        id_str = _id_string(_record_id(record))
        if id_str is None or len(id_str) != ID_LENGTH or not id_str.startswith(prefix):
            continue
        taken.add(int(id_str[-2:]))

    sequence = 1
    while sequence in taken:
        sequence += 1

    if sequence > MAX_SEQUENCE:
        raise CapacityExceededError(prefix)

    return int(f"{prefix}{sequence:02d}")


def parse_date_based_id(value: Any) -> Optional[ParsedId]:
    """Decode an identifier, returning None when it is not well-formed."""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, str)):
        return None

    id_str = str(value)
    if not _ID_PATTERN.fullmatch(id_str):
        return None

    year = 2000 + int(id_str[0:2])
    month = int(id_str[2:4])
    day = int(id_str[4:6])
    gallery_day = int(id_str[6:7])
    sequence = int(id_str[7:9])

    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    if not (MIN_GALLERY_DAY <= gallery_day <= MAX_GALLERY_DAY):
        return None
    if sequence < 1:
        return None

    # date() refuses impossible days such as February 30
    try:
        parsed_date = date(year, month, day)
    except ValueError:
        return None

    return ParsedId(
        year=year,
        month=month,
        day=day,
        gallery_day=gallery_day,
        sequence=sequence,
        date=parsed_date,
    )


def is_date_based_id(value: Any) -> bool:
    """Return True if `value` is a well-formed ``YYMMDD[day]##`` identifier."""
    return parse_date_based_id(value) is not None


def _format_timestamp_ms(value: int) -> str:
    moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{MONTH_NAMES[moment.month - 1]} {moment.day}, {moment.year}, {hour:02d}:{moment.minute:02d} {meridiem}"


def format_id_for_display(value: Any) -> str:
    """Render an identifier for people.

    Well-formed ids read like ``May 24, 2025 Day 1 #1``; raw millisecond
    timestamps are shown as a UTC date and time; anything else falls back
    to ``ID: <value>``.
    """
    parsed = parse_date_based_id(value)
    if parsed:
        return (
            f"{MONTH_NAMES[parsed.month - 1]} {parsed.day}, {parsed.year} "
            f"Day {parsed.gallery_day} #{parsed.sequence}"
        )

    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > TIMESTAMP_ID_THRESHOLD:
        try:
            return _format_timestamp_ms(int(value))
        except (OverflowError, OSError, ValueError):
            pass

    return f"ID: {value}"


def parse_upload_date(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 upload date; returns None when it cannot be read.

    Naive values are taken as UTC so they compare with aware ones.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def upload_sort_key(record: Any) -> datetime:
    return parse_upload_date(_record_upload_date(record)) or _EARLIEST


def _with_id(record: Any, new_id: int, original_id: Any = None) -> Any:
    """Return a copy of `record` carrying `new_id` (and `original_id` if given)."""
    if isinstance(record, Mapping):
        updated = dict(record)
        if original_id is not None:
            updated["originalId"] = original_id
        updated["id"] = new_id
        return updated
    changes = {"id": new_id}
    if original_id is not None:
        changes["original_id"] = original_id
    return record.with_changes(**changes)


def migrate_to_date_based_ids(
    records: Iterable[Any], gallery_day: int = 1, taken: Iterable[Any] = ()
) -> List[Any]:
    """Give every record a well-formed identifier for `gallery_day`.

    Records are processed in ascending upload-date order so sequence
    numbers follow chronology. Missing or unparseable dates sort first
    and keep their relative input order. Records that already carry a
    well-formed id keep it, except that a later copy of an id already
    kept is treated like a legacy id. Replaced ids are preserved under
    `originalId`, so the result never holds the same id twice.

    Args:
        records: ImageRecord instances or JSON-style mappings.
        gallery_day: Gallery day used for newly allocated ids.
        taken: Records migrated elsewhere whose ids must not appear again.

    Returns:
        A new list in chronological order, one entry per input record.

    Raises:
        InvalidBucketError: If `gallery_day` is outside 1-9.
        CapacityExceededError: If any date and day fills up; the whole
            batch is abandoned.
    """
    validate_gallery_day(gallery_day)
    ordered = sorted(records, key=upload_sort_key)
    # Ids that are kept as-is must not be handed out to earlier records
    taken = list(taken)
    reserved = taken + [record for record in ordered if is_date_based_id(_record_id(record))]
    kept = {_id_string(_record_id(record)) for record in taken} - {None}
    migrated: List[Any] = []

    for record in ordered:
        current_id = _record_id(record)

        if current_id and is_date_based_id(current_id) and _id_string(current_id) not in kept:
            kept.add(_id_string(current_id))
            migrated.append(record)
            continue

        upload_date = parse_upload_date(_record_upload_date(record)) or datetime.now(timezone.utc)
        new_id = generate_date_based_id(migrated + reserved, gallery_day, upload_date)

        if not current_id:
            migrated.append(_with_id(record, new_id))
        else:
            migrated.append(_with_id(record, new_id, original_id=current_id))

    return migrated
