from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import List, Optional, Sequence, Set

from .codec import Entry, join_lines, member_paths, read_archive
from .config import VimballConfig
from .errors import UnsafePathError, VimballError
from .lib.command import command_from_template, run_cmd
from .lib.fs import ensure_dir_exists, write_file

logger = logging.getLogger(__name__)

RECORD_FILE = ".VimballRecord"
DELETE_RX = re.compile(r'call delete\(("(?:[^"\\]|\\.)*")\)')


@dataclass(frozen=True)
class InstallResult:
    name: str
    installdir: Path
    recipe: List[str]
    written: List[Path]


def record_line(name: str, paths: Sequence[str | Path]) -> str:
    """One .VimballRecord line; json.dumps gives vim a double-quoted string."""
    cmds = [f"call delete({json.dumps(os.path.abspath(str(p)))})" for p in paths]
    return f"{name}.vba: {'|'.join(cmds)}\n"


def member_target(installdir: Path, path: str) -> Path:
    """Join an archive member path onto installdir, refusing to leave it."""
    parts = PurePosixPath(path.replace("\\", "/")).parts
    if (
        not path
        or PurePosixPath(path).is_absolute()
        or PureWindowsPath(path).anchor
        or ".." in parts
        or not [p for p in parts if p != "."]
    ):
        raise UnsafePathError(path, str(installdir))
    return installdir.joinpath(*parts)


class Installer:
    def __init__(self, cfg: VimballConfig) -> None:
        self.cfg = cfg
        self.doc_dirs: List[Path] = []
        self.planned: Set[Path] = set()

    def installdir_for(self, name: str) -> Path:
        installdir = Path(self.cfg.installdir)
        if self.cfg.repo:
            installdir = installdir / self.cfg.repodir / name
        return installdir

    def read(self, archive: str | Path) -> tuple[str, List[Entry]]:
        try:
            return read_archive(archive)
        except VimballError as e:
            logger.critical("%s: %s", e, archive)
            raise

    def list_archive(self, archive: str | Path) -> List[str]:
        _name, entries = self.read(archive)
        logger.info("List %s", archive)
        return member_paths(entries)

    def install(self, archive: str | Path) -> InstallResult:
        name, entries = self.read(archive)
        installdir = self.installdir_for(name)
        logger.warning("Install %s in %s", archive, installdir)

        try:
            targets = [member_target(installdir, e.path) for e in entries]
        except UnsafePathError as e:
            logger.critical("%s: %s", e, archive)
            raise

        dry = self.cfg.dry
        recipe: List[str] = []
        written: List[Path] = []
        for e, filename in zip(entries, targets):
            recipe.append(e.path)
            ensure_dir_exists(filename.parent, dry_run=dry, planned=self.planned)
            write_file(filename, join_lines(e.lines), dry_run=dry, planned=self.planned)
            written.append(filename)

        doc_dir = installdir / "doc"
        if any(p.startswith("doc/") for p in recipe) and doc_dir not in self.doc_dirs:
            self.doc_dirs.append(doc_dir)

        if self.cfg.save_recipes:
            self.save_recipe(name, recipe)
        if self.cfg.record:
            self.append_record(name, installdir, recipe)

        return InstallResult(name=name, installdir=installdir, recipe=recipe, written=written)

    def save_recipe(self, name: str, recipe: Sequence[str]) -> Path:
        recipefile = Path(self.cfg.installdir) / "vimballs" / "recipes" / f"{name}.recipe"
        logger.debug("Save recipe file: %s", recipefile)
        ensure_dir_exists(recipefile.parent, dry_run=self.cfg.dry, planned=self.planned)
        data = ("\n".join(recipe) + "\n").encode("utf-8")
        write_file(recipefile, data, dry_run=self.cfg.dry, planned=self.planned)
        return recipefile

    def append_record(self, name: str, installdir: Path, recipe: Sequence[str]) -> Path:
        record = Path(self.cfg.vimfiles) / RECORD_FILE
        logger.debug("Save vimball-record information: %s", record)
        root = Path(self.cfg.vimoutdir) if self.cfg.vimoutdir else installdir
        line = record_line(name, [root / r for r in recipe])
        write_file(record, line.encode("utf-8"), append=True, dry_run=self.cfg.dry)
        return record

    def post_install(self) -> None:
        template = self.cfg.helptags
        if not template:
            return
        for doc_dir in self.doc_dirs:
            # In dry-run mode the directory may not exist yet.
            if not (doc_dir.is_dir() or self.cfg.dry):
                continue
            logger.info("Create helptags: %s", doc_dir)
            run_cmd(command_from_template(template, str(doc_dir)), dry_run=self.cfg.dry)


def installed_files(record: str | Path, name: str) -> Optional[List[str]]:
    """Paths recorded for the most recent install of a vimball, if any."""
    p = Path(record)
    if not p.exists():
        return None
    found: Optional[List[str]] = None
    prefix = f"{name}.vba: "
    for line in p.read_text(encoding="utf-8").splitlines():
        if not line.startswith(prefix):
            continue
        found = [json.loads(m.group(1)) for m in DELETE_RX.finditer(line, len(prefix))]
    return found
