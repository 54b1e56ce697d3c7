# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Content sources: existing working containers or freshly pulled images.

:class:`SourceResolver` opens a source reference as an existing
container, falling back to pulling it as an image (with retries) when
no such container exists.  Everything it acquires is registered on the
caller's :class:`~contextlib.AsyncExitStack` through the :func:`mounted`
and :func:`temporary` scopes, so the unmount (and, for pulled images,
the delete) runs whatever happens afterwards, unmount first.

Release failures are reported according to how the scope exits.  If the
body raised, the release error is only logged as a warning and the
original exception propagates.  If the body succeeded, the release
error becomes the operation's error.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

from ..operations import OperationCancelled, OperationError
from .store import ContainerUnknownError, ImageNotFoundError, PullOptions, ReportSink, Store, StoreError
from .models import Builder

logger = logging.getLogger(__name__)


@dataclass
class Source:
    """A resolved, mounted content source."""

    ref: str
    builder: Builder
    temporary: bool

    @property
    def mount_point(self) -> str:
        return self.builder.mount_point

    def path(self, rel: str) -> str:
        """*rel* (absolute or not) as a host path under the mount point."""
        return os.path.join(self.mount_point, rel.lstrip("/")) if rel else self.mount_point


async def _release(action: Callable[[], Awaitable[None]], what: str, primary: BaseException | None) -> None:
    try:
        await action()
    except StoreError as e:
        if primary is None:
            raise OperationError(f"{what}: {e}") from e
        logger.warning("%s: %s (after earlier failure: %s)", what, e, primary)


@asynccontextmanager
async def mounted(store: Store, builder: Builder, label: str) -> AsyncIterator[str]:
    """Mount *builder* for the duration of the scope.

    *label* names the container in messages (the reference the user
    gave, or the container name).
    """
    try:
        mount_point = await store.mount(builder)
    except StoreError as e:
        raise OperationError(f'mounting "{label}" container "{builder.container_id}": {e}') from e
    logger.debug("Mounted %s at %s", builder.container_id, mount_point)

    primary: BaseException | None = None
    try:
        yield mount_point
    except BaseException as e:
        primary = e
        raise
    finally:
        await _release(
            lambda: store.unmount(builder),
            f'unmounting "{label}" container "{builder.container_id}"',
            primary,
        )


@asynccontextmanager
async def temporary(store: Store, builder: Builder, label: str) -> AsyncIterator[Builder]:
    """Delete *builder* when the scope ends.

    Only enter this for containers the current operation created.
    """
    primary: BaseException | None = None
    try:
        yield builder
    except BaseException as e:
        primary = e
        raise
    finally:
        await _release(
            lambda: store.delete(builder),
            f'deleting "{label}" temporary working container "{builder.container_id}"',
            primary,
        )


class SourceResolver:
    """Resolve source references against a :class:`Store`.

    Args:
        store: Backing store.
        retry: Maximum pull attempts; anything below 1 still tries once.
        retry_delay: Seconds to wait between pull attempts.
        pull_options: Passed through to :meth:`Store.pull`.
        cancel: Once set, no further pull attempt starts and a pending
            retry wait ends early.
        report: Receives pull progress lines.
    """

    def __init__(
        self,
        store: Store,
        *,
        retry: int = 3,
        retry_delay: float = 2.0,
        pull_options: PullOptions | None = None,
        cancel: asyncio.Event | None = None,
        report: ReportSink | None = None,
    ) -> None:
        self._store = store
        self._retry = retry
        self._retry_delay = retry_delay
        self._pull_options = pull_options or PullOptions()
        self._cancel = cancel or asyncio.Event()
        self._report = report

    async def acquire(self, ref: str, stack: AsyncExitStack) -> Source:
        """Open *ref* and mount it, registering cleanup on *stack*."""
        builder, is_temporary = await self.open(ref)
        if is_temporary:
            await stack.enter_async_context(temporary(self._store, builder, ref))
        await stack.enter_async_context(mounted(self._store, builder, ref))
        return Source(ref=ref, builder=builder, temporary=is_temporary)

    async def open(self, ref: str) -> tuple[Builder, bool]:
        """Return ``(builder, is_temporary)`` for *ref*.

        Raises:
            OperationError: If *ref* is neither an existing container nor
                a pullable image.
        """
        try:
            return await self._store.open_existing(ref), False
        except ContainerUnknownError:
            logger.debug("No container named %s; pulling it as an image", ref)
        except StoreError as e:
            raise OperationError(f'reading build container "{ref}": {e}') from e

        try:
            builder = await self.pull(ref)
        except StoreError as e:
            raise OperationError(
                f'no container named "{ref}", error copying content from image "{ref}": {e}'
            ) from e
        return builder, True

    async def pull(self, ref: str) -> Builder:
        """Pull *ref*, retrying transient failures.

        Raises:
            ImageNotFoundError: Immediately, without retrying.
            StoreError: The last failure, once attempts are exhausted.
            OperationCancelled: If cancelled before an attempt starts.
        """
        attempts = max(1, self._retry)
        for attempt in range(1, attempts + 1):
            if self._cancel.is_set():
                raise OperationCancelled(f'pulling "{ref}": cancelled')
            try:
                return await self._store.pull(ref, self._pull_options, self._report)
            except ImageNotFoundError:
                raise
            except StoreError as e:
                if attempt == attempts:
                    raise type(e)(f"{e} (after {attempts} attempts)") from e
                logger.info("Pulling %s failed (attempt %d/%d): %s", ref, attempt, attempts, e)
            await self._wait()
        raise AssertionError("unreachable")

    async def _wait(self) -> None:
        try:
            await asyncio.wait_for(self._cancel.wait(), timeout=self._retry_delay)
        except asyncio.TimeoutError:
            return
