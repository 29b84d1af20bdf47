from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, Union

from .config import ResolutionConfig, apply_rules

logger = logging.getLogger(__name__)


class _SearchFailed:
    def __repr__(self) -> str:
        return "<search failed>"


SEARCH_FAILED = _SearchFailed()


@dataclass(frozen=True)
class Resolution:
    path: str
    found: bool


class PathResolver:
    """Locate the file on disk that backs a recipe member.

    Lookup order:
    1. <primary_root>/<member>
    2. the repository directory already discovered for this archive
    3. <alt_root>/<repo name>/<member> for each alternate root
    4. an explicit replacement for the primary-root path
    5. the primary-root path passed through the rewrite rules

    One resolver serves one pack operation; the discovered repository
    directories are remembered per archive name.
    """

    def __init__(self, cfg: ResolutionConfig, *, exists: Callable[[str], bool] = os.path.exists) -> None:
        self.cfg = cfg
        self._exists = exists
        self._repos: Dict[str, Union[str, _SearchFailed]] = {}

    def repo_for(self, archive_name: str) -> str | None:
        repo = self._repos.get(archive_name)
        return repo if isinstance(repo, str) else None

    def primary_path(self, member: str) -> str:
        return os.path.join(self.cfg.primary_root, member)

    def resolve(self, member: str, archive_name: str) -> Resolution:
        filename = self.primary_path(member)
        if self._exists(filename):
            return Resolution(path=filename, found=True)

        repo = self._repos.get(archive_name)
        if isinstance(repo, str):
            return Resolution(path=os.path.join(repo, member), found=True)

        if repo is None:
            repo_name = self.cfg.repo_name(archive_name)
            for root in self.cfg.alternate_roots:
                candidate_repo = os.path.join(root, repo_name)
                candidate = os.path.join(candidate_repo, member)
                if self._exists(candidate):
                    logger.debug("%s: using repository %s", archive_name, candidate_repo)
                    self._repos[archive_name] = candidate_repo
                    return Resolution(path=candidate, found=True)
            self._repos[archive_name] = SEARCH_FAILED

        replacement = self.cfg.replacement_for(filename)
        if replacement is not None:
            return Resolution(path=replacement, found=False)

        return Resolution(path=apply_rules(self.cfg.rewrite_rules, filename), found=False)
