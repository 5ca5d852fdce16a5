"""
adb output parsers.

Parsers for ``ls -l``/``ls -lR``, ``adb devices -l``, ``du``, ``df`` and
``stat`` output as produced by Android's toybox and older toolbox shells.
"""

from __future__ import annotations

import posixpath
import re
from datetime import datetime, timedelta
from typing import Any

from adbsync.core.logging import get_logger
from adbsync.core.models import FileEntry, relative_to_root

logger = get_logger(__name__)

# ls type characters; only regular files and directories produce entries
TYPE_CHARS = frozenset("-dlcbps")
ENTRY_TYPES = {"-": False, "d": True}

MONTHS = frozenset(
    {"jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"}
)

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TOTAL_RE = re.compile(r"^total\s+\d+$")
FRACTION_RE = re.compile(r"^(\d{2}:\d{2}:\d{2})\.(\d+)$")

ISO_DATE_FORMATS = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
)
RECENT_DATE_FORMAT = "%b %d %H:%M %Y"
OLD_DATE_FORMAT = "%b %d %Y"

SIZE_COLUMNS = (3, 4, 5)

DEVICE_MISSING_RE = re.compile(
    r"device '.*' not found"
    r"|no devices/emulators found"
    r"|device offline"
    r"|device unauthorized"
    r"|device not found",
    re.IGNORECASE,
)


def is_date_token(token: str) -> bool:
    """Whether a listing token starts a date (ISO day or month abbreviation)."""
    return bool(ISO_DATE_RE.match(token)) or token.lower() in MONTHS


def find_size_index(tokens: list[str]) -> int | None:
    """Locate the size column: an integer immediately followed by a date token."""
    for index in SIZE_COLUMNS:
        if index + 1 >= len(tokens):
            break
        if tokens[index].isdigit() and is_date_token(tokens[index + 1]):
            return index
    return None


def parse_ls_date(tokens: list[str], now: datetime | None = None) -> datetime:
    """Parse ls date/time tokens, falling back to ``now`` when no format fits."""
    now = now or datetime.now()
    text = " ".join(tokens)

    if tokens and tokens[0].lower() in MONTHS:
        # ls omits the year for recent files; a future date is last year's
        for year in (now.year, now.year - 1):
            try:
                parsed = datetime.strptime(f"{text} {year}", RECENT_DATE_FORMAT)
            except ValueError:
                continue
            if parsed <= now + timedelta(days=1):
                return parsed
        try:
            return datetime.strptime(text, OLD_DATE_FORMAT)
        except ValueError:
            return now

    if len(tokens) == 2:
        match = FRACTION_RE.match(tokens[1])
        if match:
            # strptime's %f takes at most microseconds
            text = f"{tokens[0]} {match.group(1)}.{match.group(2)[:6]}"

    for fmt in ISO_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return now


def parse_ls_line(
    line: str,
    current_dir: str,
    root: str,
    now: datetime | None = None,
) -> FileEntry | None:
    """Parse a single ``ls -l`` line into a FileEntry, or None if not an entry."""
    if not line or line[0] not in TYPE_CHARS:
        return None

    type_char = line[0]
    if type_char not in ENTRY_TYPES:
        # symlinks, devices, pipes and sockets are not synced
        return None

    tokens = line.split()
    size_index = find_size_index(tokens)
    if size_index is None:
        logger.debug("Skipping unparseable listing line", line=line)
        return None

    date_count = 3 if tokens[size_index + 1].lower() in MONTHS else 2
    name_index = size_index + 1 + date_count
    parts = line.split(None, name_index)
    if len(parts) <= name_index:
        return None

    name = parts[name_index].rstrip("\r\n")
    if " -> " in name:
        name = name.split(" -> ", 1)[0]
    if name in (".", "..") or not name:
        return None

    full_path = posixpath.join(current_dir, name)
    return FileEntry(
        absolute_path=full_path,
        relative_path=relative_to_root(full_path, root),
        size=int(tokens[size_index]),
        modified_at=parse_ls_date(tokens[size_index + 1 : name_index], now),
        is_directory=ENTRY_TYPES[type_char],
    )


def parse_ls_output(
    output: str,
    base_path: str,
    root: str | None = None,
    now: datetime | None = None,
) -> list[FileEntry]:
    """
    Parse ``ls -l`` or ``ls -lR`` output.

    Example input:
    /sdcard/DCIM:
    total 8
    drwxrwx--x 3 root sdcard_rw 4096 2024-01-15 10:30 Camera
    -rw-rw---- 1 root sdcard_rw  123 2024-01-15 10:30 photo.jpg

    Relative paths are computed against ``root`` (default ``base_path``).
    """
    root = root if root is not None else base_path
    current_dir = base_path
    entries: list[FileEntry] = []

    for raw_line in output.splitlines():
        line = raw_line.rstrip()
        if not line.strip():
            continue
        if TOTAL_RE.match(line.strip()):
            continue
        if line.endswith(":") and " " not in line:
            current_dir = line[:-1] or "/"
            continue

        entry = parse_ls_line(line, current_dir, root, now)
        if entry is not None:
            entries.append(entry)

    return entries


def parse_devices_output(output: str) -> list[dict[str, Any]]:
    """
    Parse ``adb devices -l`` output.

    Example input:
    List of devices attached
    R58M123ABC    device usb:1-1 product:beyond1 model:SM_G973F device:beyond1
    """
    devices: list[dict[str, Any]] = []

    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("List of devices") or line.startswith("*"):
            continue

        parts = line.split()
        if len(parts) < 2:
            continue

        attributes: dict[str, str] = {}
        for part in parts[2:]:
            if ":" in part:
                key, value = part.split(":", 1)
                attributes[key] = value

        devices.append({"serial": parts[0], "state": parts[1], "attributes": attributes})

    return devices


def parse_adb_version(output: str) -> str:
    """Extract the version line from ``adb version`` output."""
    for line in output.splitlines():
        if "version" in line:
            return line.strip()
    return "Unknown version"


def parse_du_output(output: str) -> int | None:
    """Parse the leading number of ``du -s`` output."""
    for line in output.splitlines():
        parts = line.split()
        if parts and parts[0].isdigit():
            return int(parts[0])
    return None


def parse_df_output(output: str) -> tuple[int, int]:
    """
    Parse ``df`` output for a single mount into (total, available) bytes.

    df reports 1K blocks.
    """
    lines = [line for line in output.splitlines() if line.strip()]
    if len(lines) < 2:
        return 0, 0

    parts = lines[1].split()
    if len(parts) < 4:
        return 0, 0

    try:
        return int(parts[1]) * 1024, int(parts[3]) * 1024
    except ValueError:
        return 0, 0


def parse_stat_output(output: str) -> tuple[int, datetime] | None:
    """Parse ``stat -c "%s %Y"`` output into (size, mtime)."""
    parts = output.strip().split()
    if len(parts) < 2:
        return None
    try:
        return int(parts[0]), datetime.fromtimestamp(int(parts[1]))
    except ValueError:
        return None


def is_device_missing(stderr: str) -> bool:
    """Whether adb error text reports the device as missing or unusable."""
    return bool(DEVICE_MISSING_RE.search(stderr))
