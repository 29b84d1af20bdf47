from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_HELPTAGS = 'vim -T dumb -c "helptags %s" -cq'
DEFAULT_REPODIR = "bundle"


@dataclass(frozen=True)
class RewriteRule:
    pattern: str
    replacement: str

    def apply(self, text: str) -> str:
        try:
            return re.sub(self.pattern, self.replacement, text)
        except re.error as e:
            raise ConfigError(f"Bad rewrite rule {self.pattern!r} -> {self.replacement!r}: {e}") from e


def apply_rules(rules: Tuple[RewriteRule, ...], text: str) -> str:
    for rule in rules:
        text = rule.apply(text)
    return text


@dataclass(frozen=True)
class ResolutionConfig:
    primary_root: str
    alternate_roots: Tuple[str, ...] = ()
    repo_name_template: Optional[str] = None
    explicit_replacements: Tuple[Tuple[str, str], ...] = ()
    rewrite_rules: Tuple[RewriteRule, ...] = ()

    def replacement_for(self, path: str) -> Optional[str]:
        for src, dst in self.explicit_replacements:
            if src == path:
                return dst
        return None

    def repo_name(self, archive_name: str) -> str:
        if self.repo_name_template:
            try:
                return self.repo_name_template % archive_name
            except (TypeError, ValueError) as e:
                raise ConfigError(f"repo_fmt must contain one %s: {self.repo_name_template!r}") from e
        return archive_name


def _rules(value: Any, key: str) -> Tuple[RewriteRule, ...]:
    # Either a mapping {pattern: replacement} or a list of [pattern, replacement].
    if not value:
        return ()
    pairs = value.items() if isinstance(value, Mapping) else value
    rules: List[RewriteRule] = []
    for pair in pairs:
        try:
            pattern, replacement = pair
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{key}: expected [pattern, replacement], got {pair!r}") from e
        try:
            re.compile(str(pattern))
        except re.error as e:
            raise ConfigError(f"{key}: bad pattern {pattern!r}: {e}") from e
        rules.append(RewriteRule(pattern=str(pattern), replacement=str(replacement)))
    return tuple(rules)


@dataclass(frozen=True)
class VimballConfig:
    raw: Dict[str, Any]

    @property
    def vimfiles(self) -> str:
        return str(self.raw.get("vimfiles") or ".")

    @property
    def installdir(self) -> str:
        return str(self.raw.get("installdir") or self.vimfiles)

    @property
    def outdir(self) -> str:
        return str(self.raw.get("outdir") or os.path.join(self.vimfiles, "vimballs"))

    @property
    def vimoutdir(self) -> Optional[str]:
        v = self.raw.get("vimoutdir")
        return str(v) if v else None

    @property
    def configfile(self) -> Optional[str]:
        v = self.raw.get("configfile")
        return str(v) if v else None

    @property
    def roots(self) -> List[str]:
        return [str(r) for r in (self.raw.get("roots") or [])]

    @property
    def repo_fmt(self) -> Optional[str]:
        v = self.raw.get("repo_fmt")
        return str(v) if v else None

    @property
    def replacements(self) -> Dict[str, str]:
        return {str(k): str(v) for k, v in (self.raw.get("replacements") or {}).items()}

    @property
    def gsub(self) -> Tuple[RewriteRule, ...]:
        return _rules(self.raw.get("gsub"), "gsub")

    @property
    def rewrite(self) -> Tuple[RewriteRule, ...]:
        return _rules(self.raw.get("rewrite"), "rewrite")

    @property
    def compress(self) -> bool:
        return bool(self.raw.get("compress", False))

    @property
    def update(self) -> bool:
        return bool(self.raw.get("update", False))

    @property
    def dry(self) -> bool:
        return bool(self.raw.get("dry", False))

    @property
    def record(self) -> bool:
        return bool(self.raw.get("record", True))

    @property
    def repo(self) -> bool:
        return bool(self.raw.get("repo", False))

    @property
    def repodir(self) -> str:
        return str(self.raw.get("repodir") or DEFAULT_REPODIR)

    @property
    def save_recipes(self) -> bool:
        return bool(self.raw.get("save_recipes", False))

    @property
    def helptags(self) -> Optional[str]:
        v = self.raw.get("helptags", DEFAULT_HELPTAGS)
        return str(v) if v else None

    @property
    def save_script_def(self) -> bool:
        return "script_def_yaml" in self.raw

    @property
    def script_def_yaml(self) -> Optional[str]:
        v = self.raw.get("script_def_yaml")
        return str(v) if v else None

    @property
    def history_fmt(self) -> Optional[str]:
        v = self.raw.get("history_fmt")
        return str(v) if v else None

    @property
    def ignore_git_messages_rx(self) -> Optional[str]:
        v = self.raw.get("ignore_git_messages_rx")
        return str(v) if v else None

    @property
    def resolution(self) -> ResolutionConfig:
        return ResolutionConfig(
            primary_root=self.vimfiles,
            alternate_roots=tuple(self.roots),
            repo_name_template=self.repo_fmt,
            explicit_replacements=tuple(self.replacements.items()),
            rewrite_rules=self.gsub,
        )

    def with_overrides(self, **overrides: Any) -> "VimballConfig":
        return VimballConfig(raw={**self.raw, **overrides})


def find_vimfiles(env: Mapping[str, str]) -> str:
    if env.get("VIMFILES"):
        return env["VIMFILES"]
    for dirname in (".vim", "vimfiles"):
        for var in ("HOME", "USERPROFILE", "VIM"):
            base = env.get(var)
            if base:
                candidate = os.path.join(base, dirname)
                if os.path.isdir(candidate):
                    return candidate
    logger.warning("Couldn't find your vimfiles directory.")
    logger.warning("Please use the -b command-line option,")
    logger.warning("or set it in your config file.")
    return "."


def default_config_file(vimfiles: str, env: Mapping[str, str]) -> str:
    host = env.get("HOSTNAME", "")
    p = os.path.join(vimfiles, "vimballs", f"config_{host}.yml")
    if os.path.exists(p):
        return p
    return os.path.join(vimfiles, "vimballs", "config.yml")


def load_yaml_file(path: str) -> Dict[str, Any]:
    p = Path(path)
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    return data


def read_config_chain(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Merge config files starting at raw['configfile'].

    A file may point to the next one via its own 'configfile' key; every file
    is read at most once.
    """

    merged = dict(raw)
    seen: List[str] = []
    path = merged.get("configfile")
    while path and path not in seen:
        seen.append(path)
        if not os.path.isfile(path):
            logger.debug("No configuration file: %s", path)
            break
        logger.debug("Read configuration from %s", path)
        merged.update(load_yaml_file(path))
        path = merged.get("configfile")
    return merged


def apply_defaults(raw: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(raw)
    vimfiles = str(out.get("vimfiles") or ".")
    out.setdefault("installdir", vimfiles)
    out.setdefault("compress", False)
    out.setdefault("helptags", DEFAULT_HELPTAGS)
    out.setdefault("outdir", os.path.join(vimfiles, "vimballs"))
    out.setdefault("vimoutdir", None)
    out.setdefault("dry", False)
    out.setdefault("record", True)
    out.setdefault("repo", False)
    out.setdefault("repodir", DEFAULT_REPODIR)
    return out


def load_config(
    *,
    env: Optional[Mapping[str, str]] = None,
    vimfiles: Optional[str] = None,
    configfile: Optional[str] = None,
) -> VimballConfig:
    env = os.environ if env is None else env
    raw: Dict[str, Any] = {}
    raw["vimfiles"] = vimfiles or find_vimfiles(env)
    raw["configfile"] = configfile or default_config_file(raw["vimfiles"], env)
    if configfile and not os.path.isfile(configfile):
        raise ConfigError(f"Config file not found: {configfile}")
    raw = read_config_chain(raw)
    if vimfiles:
        raw["vimfiles"] = vimfiles
    return VimballConfig(raw=apply_defaults(raw))
