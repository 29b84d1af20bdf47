from __future__ import annotations

import functools
import hashlib
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

import yaml

from .config import VimballConfig
from .lib.command import run_cmd
from .lib.fs import write_file
from .packer import read_recipe
from .resolver import PathResolver

logger = logging.getLogger(__name__)


class ChangelogSource(Protocol):
    """Where the release notes of a script come from."""

    def tags(self) -> List[str]:
        ...

    def entries_since(self, tag: str) -> List[str]:
        ...


class GitChangelogSource:
    def __init__(self, repo: str) -> None:
        self.repo = repo

    @classmethod
    def for_repo(cls, repo: Optional[str]) -> Optional["GitChangelogSource"]:
        if repo and os.path.exists(os.path.join(repo, ".git")):
            return cls(repo)
        return None

    def tags(self) -> List[str]:
        return run_cmd(["git", "tag"], cwd=self.repo).lines

    def entries_since(self, tag: str) -> List[str]:
        return run_cmd(["git", "log", "--oneline", f"{tag}.."], cwd=self.repo).lines


_NUMERIC_TAG = re.compile(r"^v?(\d+)$")
_LEADING_FLOAT = re.compile(r"^\d+(?:\.\d+)?")


def _tag_value(tag: str) -> float:
    # Plain numbers like "v123" mean version 1.23.
    m = _NUMERIC_TAG.match(tag)
    if m:
        return int(m.group(1)) / 100
    m = _LEADING_FLOAT.match(tag)
    return float(m.group(0)) if m else 0.0


def _compare_tags(a: str, b: str) -> int:
    af, bf = _tag_value(a), _tag_value(b)
    if af == 0 and bf == 0:
        return (a > b) - (a < b)
    return (af > bf) - (af < bf)


def sort_tags(tags: Sequence[str]) -> List[str]:
    return sorted(tags, key=functools.cmp_to_key(_compare_tags))


def changelog_message(source: ChangelogSource, ignore_rx: Optional[str] = None) -> str:
    tags = sort_tags(source.tags())
    if not tags:
        return ""
    latest = tags[-1]
    logger.debug("git log --oneline %s..", latest)
    changes = [re.sub(r"^\S+", "-", ln, count=1) for ln in source.entries_since(latest)]
    if ignore_rx:
        rx = re.compile(ignore_rx)
        changes = [ln for ln in changes if not rx.search(ln)]
    if not changes:
        return ""
    return "\n".join(changes) + "\n"


def _member_files(name: str, members: Sequence[str], resolver: PathResolver) -> List[str]:
    files: List[str] = []
    for member in members:
        path = resolver.resolve(member, name).path
        if os.path.isfile(path):
            files.append(path)
    return files


def _read_lines(path: str) -> List[str]:
    return Path(path).read_text(encoding="utf-8", errors="replace").splitlines()


def find_script_id(name: str, members: Sequence[str], resolver: PathResolver) -> Optional[str]:
    for filename in _member_files(name, members, resolver):
        bname = re.escape(os.path.basename(filename))
        rx = re.compile(rf"^\" GetLatestVimScripts: (\d+) +\d+ +(:AutoInstall: +)?{bname}$")
        for line in _read_lines(filename):
            m = rx.match(line)
            if m and int(m.group(1)) != 0:
                logger.debug("%s: Script ID is #%s", name, m.group(1))
                return m.group(1)
    return None


def find_version(name: str, members: Sequence[str], resolver: PathResolver) -> Optional[str]:
    """Version from "let g:loaded_<name> = 123" (-> "1.23")."""
    logger.debug("Get version number for %s", name)
    rx = re.compile(rf"^let (g:)?loaded_{re.escape(name)} = (\d+)$")
    for filename in _member_files(name, members, resolver):
        logger.debug("Get version number in %s", filename)
        for line in _read_lines(filename):
            m = rx.match(line)
            if m:
                version = int(m.group(2))
                majmin = "%d.%02d" % (version // 100, version % 100)
                logger.debug("%s: Version number is %s", name, majmin)
                return majmin
    logger.error("Cannot find version number: %s", name)
    return None


def recipe_path(cfg: VimballConfig, name: str) -> Path:
    return Path(cfg.outdir) / f"{name}.recipe"


def script_def_path(cfg: VimballConfig, name: str) -> Path:
    return Path(cfg.script_def_yaml or os.path.join(cfg.outdir, f"{name}.yml"))


def load_script_def(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Script definition must be a mapping: {p}")
    return data


def print_version(cfg: VimballConfig, name: str) -> Optional[str]:
    members = read_recipe(recipe_path(cfg, name))
    return find_version(name, members, PathResolver(cfg.resolution))


def saved_version(cfg: VimballConfig, name: str) -> Optional[str]:
    version = load_script_def(Path(cfg.outdir) / f"{name}.yml").get("version")
    return None if version is None else str(version)


def build_script_def(
    cfg: VimballConfig,
    name: str,
    archive: str | Path,
    *,
    changelog: Optional[ChangelogSource] = None,
    data: Optional[bytes] = None,
) -> Optional[Dict[str, Any]]:
    """Write the YAML script definition used when uploading a vimball.

    The MD5 checksum is taken from data when given (the archive bytes of a
    dry run, which were never written), otherwise from the archive on disk.
    """

    members = read_recipe(recipe_path(cfg, name))
    resolver = PathResolver(cfg.resolution)
    yml = script_def_path(cfg, name)
    script_def = load_script_def(yml)

    script_id = find_script_id(name, members, resolver)
    if script_id is None:
        logger.error("No Script ID found")
    elif "id" in script_def and str(script_def["id"]) != script_id:
        logger.error("Script ID mismatch: Expected %s but got %s", script_def["id"], script_id)
        return None
    script_def["id"] = script_id

    script_def["version"] = find_version(name, members, resolver)
    if script_def["version"] is None:
        return None

    message = ""
    if changelog is not None:
        message = changelog_message(changelog, cfg.ignore_git_messages_rx)
    if not message and cfg.history_fmt:
        message = cfg.history_fmt % name + "\n"
    digest = hashlib.md5(Path(archive).read_bytes() if data is None else data).hexdigest()
    script_def["message"] = message + f"MD5 checksum: {digest}"
    script_def["file"] = str(archive)

    text = yaml.safe_dump(script_def, sort_keys=False)
    write_file(yml, text.encode("utf-8"), dry_run=cfg.dry)
    return script_def
