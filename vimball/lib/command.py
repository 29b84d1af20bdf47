from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Sequence

from ..errors import VimballError

logger = logging.getLogger(__name__)


class CommandError(VimballError):
    pass


@dataclass(frozen=True)
class CmdResult:
    argv: List[str]
    returncode: int
    stdout: str

    @property
    def lines(self) -> List[str]:
        return self.stdout.splitlines()


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def command_from_template(template: str, *args: str) -> List[str]:
    """Fill a "%s" command template from the config and split it into argv."""
    if args and "%s" in template:
        template = template % args
    return shlex.split(template)


def run_cmd(
    argv: Sequence[str],
    *,
    cwd: str | None = None,
    check: bool = True,
    dry_run: bool = False,
) -> CmdResult:
    """Run an external command.

    The command line is always logged; with dry_run nothing is executed and
    an empty successful result is returned.
    """

    argv_list = list(argv)
    logger.info("CMD %s", format_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="")

    try:
        p = subprocess.run(
            argv_list,
            cwd=cwd,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise CommandError(f"Command not found: {argv_list[0]}") from e

    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(f"Command failed ({p.returncode}): {format_argv(argv_list)}\n{p.stderr}")

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout)
