from __future__ import annotations

import gzip
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from .errors import FormatError, ParseError

logger = logging.getLogger(__name__)

HEADER = '" Vimball Archiver by Charles E. Campbell, Jr., Ph.D.\nUseVimball\nfinish\n'

MEMBER_RX = re.compile(r"^(.*?)\t\[\[\[1$")
COUNT_RX = re.compile(r"[0-9]+")

# Lines are stored as text; undecodable bytes survive the round-trip.
ENCODING = "utf-8"
ERRORS = "surrogateescape"


@dataclass(frozen=True)
class Entry:
    path: str
    lines: Tuple[str, ...]


def split_lines(data: bytes) -> List[str]:
    """Split raw bytes on "\\n" only; a trailing "\\r" stays part of its line."""
    if not data:
        return []
    text = data.decode(ENCODING, ERRORS)
    lines = text.split("\n")
    if text.endswith("\n"):
        lines.pop()
    return lines


def join_lines(lines: Iterable[str]) -> bytes:
    return "".join(f"{ln}\n" for ln in lines).encode(ENCODING, ERRORS)


def encode(entries: Iterable[Entry], header: str = HEADER) -> bytes:
    """Serialize entries after the signature.

    Member contents are not escaped: a content line looking like a member
    header is read back as one only if the count before it is wrong.
    """
    out: List[str] = [header]
    for e in entries:
        out.append(f"{e.path}\t[[[1\n{len(e.lines)}\n")
        out.extend(f"{ln}\n" for ln in e.lines)
    return "".join(out).encode(ENCODING, ERRORS)


def decode(data: bytes, header: str = HEADER) -> List[Entry]:
    lines = split_lines(data)
    nhead = header.count("\n")
    if len(lines) < nhead or "".join(f"{ln}\n" for ln in lines[:nhead]) != header:
        raise FormatError("Not a vimball")

    entries: List[Entry] = []
    i = nhead
    while i < len(lines):
        m = MEMBER_RX.match(lines[i])
        nlines = _parse_count(lines[i + 1]) if i + 1 < len(lines) else 0
        if not m or nlines <= 0:
            raise ParseError(f"Error when parsing vimball at line {i + 1}")
        start = i + 2
        end = start + nlines
        if end > len(lines):
            raise ParseError(
                f"Member {m.group(1)} declares {nlines} lines but only {len(lines) - start} remain"
            )
        entries.append(Entry(path=m.group(1), lines=tuple(lines[start:end])))
        i = end
    return entries


def _parse_count(line: str) -> int:
    s = line.strip()
    if not COUNT_RX.fullmatch(s):
        return 0
    return int(s)


def archive_basename(path: str | Path) -> str:
    """foo.vba -> foo, foo.vba.gz -> foo"""
    name = os.path.basename(str(path))
    if name.endswith(".gz"):
        name = name[: -len(".gz")]
    return os.path.splitext(name)[0]


def read_archive(path: str | Path) -> Tuple[str, List[Entry]]:
    p = Path(path)
    if p.name.endswith(".gz"):
        with gzip.open(p, "rb") as fh:
            data = fh.read()
    else:
        data = p.read_bytes()
    logger.debug("Read %d bytes from %s", len(data), p)
    return archive_basename(p), decode(data)


def member_paths(entries: Sequence[Entry]) -> List[str]:
    return [e.path for e in entries]
