from __future__ import annotations

import gzip
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set

from .codec import Entry, encode, split_lines
from .config import VimballConfig, apply_rules
from .errors import MissingSourceError
from .lib.fs import ensure_dir_exists, write_file
from .resolver import PathResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackResult:
    name: str
    target: Path
    written: bool
    repo: Optional[str] = None
    data: Optional[bytes] = None


def read_recipe(path: str | Path) -> List[str]:
    """Member paths of a recipe file, in order, blank lines skipped."""
    text = Path(path).read_text(encoding="utf-8")
    return [ln.strip() for ln in text.splitlines() if ln.strip()]


def recipe_name(path: str | Path) -> str:
    name = os.path.basename(str(path))
    if name.endswith(".recipe"):
        name = name[: -len(".recipe")]
    return name


def clean_filename(filename: str, root: str) -> str:
    return os.path.relpath(filename, root).replace("\\", "/")


class Packer:
    def __init__(self, cfg: VimballConfig) -> None:
        self.cfg = cfg
        self.planned: Set[Path] = set()

    def target_for(self, name: str) -> Path:
        target = Path(self.cfg.outdir) / f"{name}.vba"
        if self.cfg.compress:
            target = target.with_name(target.name + ".gz")
        return target

    def _locate(self, resolver: PathResolver, name: str, member: str) -> str:
        resolved = resolver.resolve(member, name)
        if not os.path.isfile(resolved.path):
            logger.error("File does not exist: %s", resolved.path)
            raise MissingSourceError(resolved.path)
        return resolved.path

    def is_up_to_date(self, resolver: PathResolver, name: str, members: List[str], target: Path) -> bool:
        if not target.exists():
            return False
        target_mtime = target.stat().st_mtime
        logger.debug("MTIME VBA: %s: %s", target, target_mtime)
        up_to_date = True
        for member in members:
            filename = self._locate(resolver, name, member)
            mtime = os.stat(filename).st_mtime
            older = mtime <= target_mtime
            logger.debug("MTIME: %s: %s => %s", filename, mtime, older)
            if not older:
                up_to_date = False
        return up_to_date

    def build_entries(self, resolver: PathResolver, name: str, members: List[str]) -> List[Entry]:
        entries: List[Entry] = []
        for member in members:
            filename = self._locate(resolver, name, member)
            lines = split_lines(Path(filename).read_bytes())
            if not lines:
                logger.warning("Skip empty file: %s", filename)
                continue
            path = clean_filename(resolver.primary_path(member), self.cfg.vimfiles)
            path = apply_rules(self.cfg.rewrite, path)
            entries.append(Entry(path=path, lines=tuple(lines)))
        return entries

    def pack(self, recipe: str | Path) -> PackResult:
        """Build <outdir>/<name>.vba from a recipe.

        Raises MissingSourceError (and writes nothing) when a member cannot be
        found.
        """

        name = recipe_name(recipe)
        members = read_recipe(recipe)
        target = self.target_for(name)
        resolver = PathResolver(self.cfg.resolution)

        if self.cfg.update and self.is_up_to_date(resolver, name, members, target):
            logger.info("VBA is up to date: %s", target)
            return PackResult(name=name, target=target, written=False, repo=resolver.repo_for(name))

        data = encode(self.build_entries(resolver, name, members))
        if self.cfg.compress:
            data = gzip.compress(data)

        ensure_dir_exists(target.parent, dry_run=self.cfg.dry, planned=self.planned)
        logger.warning("Save as: %s", target)
        written = write_file(target, data, dry_run=self.cfg.dry, planned=self.planned)
        return PackResult(name=name, target=target, written=written, repo=resolver.repo_for(name), data=data)
