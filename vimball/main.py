from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Optional

import yaml

from . import __version__
from .config import VimballConfig, load_config
from .errors import ConfigError, FormatError, MissingSourceError, ParseError, UnsafePathError, VimballError
from .installer import Installer
from .logging_utils import configure_logging, level_for
from .packer import Packer
from .scriptdef import GitChangelogSource, build_script_def, print_version, saved_version

logger = logging.getLogger(__name__)

COMMANDS = ("vba", "install", "list")
EXIT_FATAL = 5

DESCRIPTION = """\
commands:
  install VIMBALL ... Install a vimball (implicit if the only argument ends with ".vba")
  vba RECIPE ...      Create a vimball
  list VIMBALL ...    List files in a vimball
"""


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="vimball",
        usage="vimball [OPTIONS] COMMAND ARGS ...",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-b", "--vimfiles", default=None, help="Vimfiles directory")
    p.add_argument("-c", "--config", default=None, help="Config file (YAML)")
    p.add_argument("-d", "--dir", dest="outdir", default=None, help="Destination directory for vimballs")
    p.add_argument("-D", "--dir4vim", dest="vimoutdir", default=None, help="Directory name recorded for vim")
    p.add_argument("--helptags", action=argparse.BooleanOptionalAction, default=None, help="Build the helptags file")
    p.add_argument("-n", "--dry-run", dest="dry", action=argparse.BooleanOptionalAction, default=None,
                   help="Don't actually write anything or run any commands; just log them")
    p.add_argument("--print-config", action="store_true", help="Print the configuration and exit")
    p.add_argument("--print-version", metavar="NAME", default=None, help="Print the plugin's current version number")
    p.add_argument("--print-saved-version", metavar="NAME", default=None,
                   help="Print the plugin's last saved version number")
    p.add_argument("-R", "--recipe", dest="save_recipes", action=argparse.BooleanOptionalAction, default=None,
                   help="On install, save the recipe in DESTDIR/vimballs/recipes")
    p.add_argument("-r", "--record", action=argparse.BooleanOptionalAction, default=None,
                   help="Save record in .VimballRecord")
    p.add_argument("--repo", action=argparse.BooleanOptionalAction, default=None,
                   help="Install as single directory in a code repository")
    p.add_argument("-u", "--update", action=argparse.BooleanOptionalAction, default=None,
                   help="Create VBA only if it is outdated")
    p.add_argument("-y", "--save-yaml", dest="script_def_yaml", nargs="?", const="", default=None, metavar="YAML",
                   help="Save a YAML script definition for uploading")
    p.add_argument("-z", "--gzip", dest="compress", action="store_true", default=None, help="Save as vba.gz")
    p.add_argument("--log", default=None, help="Also write log messages to this file")
    p.add_argument("--debug", action="store_true", help="Show debug messages")
    p.add_argument("-v", "--verbose", action="store_true", help="Run verbosely")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("args", nargs="*", metavar="COMMAND ARGS")
    return p


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in ("outdir", "vimoutdir", "dry", "save_recipes", "record", "repo", "update", "compress"):
        value = getattr(args, key)
        if value is not None:
            out[key] = value
    if args.helptags is False:
        out["helptags"] = None
    if args.script_def_yaml is not None:
        out["script_def_yaml"] = args.script_def_yaml or None
    return out


def split_command(rest: List[str]) -> tuple[Optional[str], List[str]]:
    if len(rest) == 1 and rest[0].endswith((".vba", ".vba.gz")):
        return "install", rest
    if not rest:
        return None, []
    return rest[0], rest[1:]


def check_ready(cfg: VimballConfig, cmd: Optional[str], files: List[str]) -> None:
    if not os.path.isdir(cfg.vimfiles):
        raise ConfigError("Where are your vimfiles?")
    if cmd not in COMMANDS:
        raise ConfigError(f"Command must be one of: {', '.join(COMMANDS)}")
    if not files:
        raise ConfigError("No input files")


def do_vba(cfg: VimballConfig, recipe: str) -> None:
    result = Packer(cfg).pack(recipe)
    # An up-to-date archive keeps its script definition.
    if cfg.save_script_def and (result.written or cfg.dry):
        build_script_def(
            cfg,
            result.name,
            result.target,
            changelog=GitChangelogSource.for_repo(result.repo),
            data=result.data,
        )


def run(cfg: VimballConfig, cmd: str, files: List[str]) -> int:
    """Run one command over a batch of files; failures don't stop the batch."""

    installer = Installer(cfg)
    failures = 0
    for file in files:
        logger.debug("%s: %s", cmd, file)
        try:
            if cmd == "vba":
                do_vba(cfg, file)
            elif cmd == "install":
                installer.install(file)
            else:
                print("\n".join(installer.list_archive(file)))
        except (FormatError, ParseError, MissingSourceError, UnsafePathError):
            # Already logged where they were raised.
            failures += 1
        except (VimballError, OSError) as e:
            logger.error("%s %s: %s", cmd, file, e)
            failures += 1

    if cmd == "install":
        try:
            installer.post_install()
        except VimballError as e:
            logger.error("%s", e)
            failures += 1

    return EXIT_FATAL if failures else 0


def main(argv: Optional[List[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    configure_logging(level_for(verbose=args.verbose, debug=args.debug), log_path=args.log)
    logger.debug("command-line arguments: %s", argv if argv is not None else sys.argv[1:])

    try:
        cfg = load_config(vimfiles=args.vimfiles, configfile=args.config)
    except ConfigError as e:
        logger.critical("%s", e)
        return EXIT_FATAL
    cfg = cfg.with_overrides(**overrides_from_args(args))

    if args.print_config:
        print(f"Configuration file: {cfg.configfile}")
        print(yaml.safe_dump(cfg.raw, sort_keys=True), end="")
        return 0
    if args.print_version:
        print(print_version(cfg, args.print_version) or "")
        return 0
    if args.print_saved_version:
        version = saved_version(cfg, args.print_saved_version)
        if version is not None:
            print(version)
        return 0

    cmd, files = split_command(list(args.args))
    try:
        check_ready(cfg, cmd, files)
    except ConfigError as e:
        logger.critical("%s", e)
        return EXIT_FATAL

    return run(cfg, cmd, files)


if __name__ == "__main__":
    raise SystemExit(main())
