from __future__ import annotations

import logging
import sys

_PLAIN_FORMAT = "javasentinel: %(message)s"
_VERBOSE_FORMAT = "javasentinel %(levelname)-7s %(name)s: %(message)s"


def configure_logging(*, verbose: bool, quiet: bool) -> None:
    """
    Set process-wide logging for a CLI run.

    Records go to stderr so reports on stdout (notably `--format json`) stay
    machine-readable. `--verbose` enables DEBUG with logger names, which shows
    per-rule tracebacks and unresolved symbols; `--quiet` keeps WARNING and up.
    """

    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format=_VERBOSE_FORMAT if verbose else _PLAIN_FORMAT,
        stream=sys.stderr,
        force=True,
    )
