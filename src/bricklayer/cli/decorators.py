# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Decorators for CLI commands."""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from functools import wraps
from typing import TypeVar

import typer

from ..ingest_options import OptionValidationError
from ..operations import OperationCancelled, OperationError
from ..podman_client import PodmanError
from .output import out

R = TypeVar("R")


def report_errors(func: Callable[..., Coroutine[None, None, R]]) -> Callable[..., Coroutine[None, None, R]]:
    """Turn operation and argument errors into one error line and exit 1."""
    @wraps(func)
    async def wrapper(*args: object, **kwargs: object) -> R:
        try:
            return await func(*args, **kwargs)
        except OperationCancelled as e:
            out.error(str(e))
            raise typer.Exit(130)
        except (OperationError, OptionValidationError, PodmanError) as e:
            out.error(str(e))
            raise typer.Exit(1)
    return wrapper
