from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MkdirResult:
    path: Path
    created: Tuple[Path, ...]

    @property
    def existed(self) -> bool:
        return not self.created


def ensure_dir_exists(
    path: str | Path,
    *,
    dry_run: bool = False,
    planned: Optional[Set[Path]] = None,
) -> MkdirResult:
    """Create every missing directory from the filesystem root down to path.

    Segments that already exist count as success. In dry-run mode the same
    "mkdir" messages are logged but nothing is created; pass the same planned
    set to successive calls so directories "created" earlier are not logged
    twice.
    """

    d = Path(path)
    if str(d) in ("", "."):
        return MkdirResult(path=d, created=())

    created: List[Path] = []
    chain = [*reversed(d.parents), d]
    for seg in chain:
        if str(seg) in ("", "."):
            continue
        if seg.is_dir() or (planned is not None and seg in planned):
            continue
        if seg.exists():
            raise NotADirectoryError(str(seg))
        logger.info("mkdir %s", seg)
        if not dry_run:
            seg.mkdir()
        created.append(seg)
        if planned is not None:
            planned.add(seg)
    return MkdirResult(path=d, created=tuple(created))


def write_file(
    path: str | Path,
    data: bytes,
    *,
    append: bool = False,
    dry_run: bool = False,
    planned: Optional[Set[Path]] = None,
) -> bool:
    """Write (or append) bytes; returns False when nothing was written."""

    p = Path(path)
    logger.info("Write file: %s", p)
    if (p.exists() or (planned is not None and p in planned)) and not append:
        logger.warning("Overwrite existing file: %s", p)
    if planned is not None:
        planned.add(p)
    if dry_run:
        return False
    with p.open("ab" if append else "wb") as fh:
        fh.write(data)
    return True
