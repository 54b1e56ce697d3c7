# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Operation errors, progress reporting and the ``@operation`` decorator.

Long-running build operations report progress through an
:class:`OperationReporter`.  The CLI hands one in that renders to a
``rich`` console on stderr; library callers may pass ``None`` and get a
silent reporter.  Failures surface as :class:`OperationError` whose
message already carries the operating context (container, source,
verb), so callers can show ``str(e)`` verbatim.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, Concatenate, ParamSpec, TypeVar

from rich.console import Console

logger = logging.getLogger(__name__)

_P = ParamSpec("_P")
_R = TypeVar("_R")
_Self = TypeVar("_Self")


class OperationError(Exception):
    """A build operation failed; the message is user-facing."""


class OperationCancelled(OperationError):
    """The invocation was cancelled before it could finish."""


class OperationReporter:
    """Progress sink for one operation.

    Messages go to *console* (normally stderr) unless *quiet* is set or
    no console was given.  Nothing here is written to stdout; stdout is
    reserved for the digest confirmation line.
    """

    def __init__(
        self,
        kind: str,
        target: str = "",
        console: Console | None = None,
        quiet: bool = False,
    ) -> None:
        self.kind = kind
        self.target = target
        self._console = console
        self._quiet = quiet

    def _emit(self, style: str, prefix: str, msg: str) -> None:
        if self._console is None or self._quiet:
            return
        self._console.print(f"[{style}]{prefix}[/{style}]{msg}", highlight=False)

    def info(self, msg: str) -> None:
        self._emit("cyan", "", msg)

    def dim(self, msg: str) -> None:
        self._emit("dim", "", msg)

    def error(self, msg: str) -> None:
        # Errors are shown even in quiet mode.
        if self._console is not None:
            self._console.print(f"[bold red]error:[/bold red] {msg}", highlight=False)


def operation(
    kind: str,
    *,
    description: str,
    target_param: str,
) -> Callable[
    [Callable[Concatenate[_Self, OperationReporter, _P], Awaitable[_R]]],
    Callable[_P, Awaitable[_R]],
]:
    """Decorate an async service method as a reported operation.

    The wrapped method receives an :class:`OperationReporter` as its
    first argument after ``self``.  Callers may pass ``progress=`` to
    supply one; otherwise a silent reporter is created.  *description*
    is formatted with the call's keyword arguments and logged when the
    operation starts.

    Example::

        @operation("copy", description="Copying into {container}",
                   target_param="container")
        async def copy(self, progress, *, container: str, ...) -> ...: ...
    """

    def decorator(func: Callable[..., Awaitable[_R]]) -> Callable[..., Awaitable[_R]]:
        @wraps(func)
        async def wrapper(self: Any, *args: Any, progress: OperationReporter | None = None, **kwargs: Any) -> _R:
            target = str(kwargs.get(target_param, ""))
            reporter = progress or OperationReporter(kind, target=target)
            logger.info("%s: %s", kind, description.format(**kwargs))
            try:
                return await func(self, reporter, *args, **kwargs)
            except OperationError as e:
                logger.debug("%s on %r failed: %s", kind, target, e)
                raise

        return wrapper

    return decorator  # type: ignore[return-value]
