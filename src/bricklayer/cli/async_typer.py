# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Typer application that accepts ``async def`` commands."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from functools import wraps
from typing import Any

import typer


class AsyncTyper(typer.Typer):
    """Typer that runs coroutine commands with :func:`asyncio.run`."""

    def command(self, *args: Any, **kwargs: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        decorator = super().command(*args, **kwargs)

        def add_runner(f: Callable[..., Any]) -> Callable[..., Any]:
            if inspect.iscoroutinefunction(f):
                @wraps(f)
                def runner(*a: Any, **kw: Any) -> Any:
                    return asyncio.run(f(*a, **kw))

                decorator(runner)
            else:
                decorator(f)
            return f

        return add_runner
