# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Ordered pipeline of async step functions.

A :class:`Pipeline` instance lives at module level and its
:meth:`~Pipeline.step` method is used as a decorator.  Step modules
import the instance and decorate their functions, so the sequence is
declared where each step is written.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar, overload

logger = logging.getLogger(__name__)

_Ctx = TypeVar("_Ctx")

_StepFn = Callable[[_Ctx], Awaitable[None]]

# Default order for steps that don't specify one.
_DEFAULT_ORDER = 500


class Pipeline(Generic[_Ctx]):
    """A registry of async step functions executed by ``order``.

    Ordering
    --------
    Every step has a numeric *order* (default 500).  Steps run in
    ascending order; steps with equal order run in registration
    order.  Use multiples of 100 so there's room to insert steps
    between existing ones.

    A step that raises stops the run; the exception propagates to the
    caller unchanged.  Steps guard their own preconditions (e.g. the
    source step returns early when no ``--from`` was given).

    Example::

        ingest = Pipeline[IngestContext]("ingest")

        @ingest.step(order=100)
        async def validate(ctx: IngestContext) -> None: ...
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: list[tuple[int, int, _StepFn[_Ctx]]] = []
        self._seq = 0  # registration counter for stable sort

    @overload
    def step(self, fn: _StepFn[_Ctx]) -> _StepFn[_Ctx]: ...
    @overload
    def step(self, *, order: int) -> Callable[[_StepFn[_Ctx]], _StepFn[_Ctx]]: ...

    def step(
        self,
        fn: _StepFn[_Ctx] | None = None,
        *,
        order: int = _DEFAULT_ORDER,
    ) -> _StepFn[_Ctx] | Callable[[_StepFn[_Ctx]], _StepFn[_Ctx]]:
        """Register *fn* as a step in this pipeline.

        Can be used bare (``@pipeline.step``) or with arguments
        (``@pipeline.step(order=200)``).
        """
        def _register(f: _StepFn[_Ctx]) -> _StepFn[_Ctx]:
            self._entries.append((order, self._seq, f))
            self._seq += 1
            return f

        if fn is not None:
            return _register(fn)
        return _register

    def _ordered(self) -> list[_StepFn[_Ctx]]:
        return [f for _o, _s, f in sorted(self._entries, key=lambda e: (e[0], e[1]))]

    async def run(self, ctx: _Ctx) -> None:
        """Execute every registered step in order."""
        for s in self._ordered():
            logger.debug("%s: running step %s", self.name, s.__name__)
            await s(ctx)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        ordered = sorted(self._entries, key=lambda e: (e[0], e[1]))
        names = ", ".join(f"{f.__name__}({o})" for o, _s, f in ordered)
        return f"Pipeline({self.name!r}, [{names}])"
