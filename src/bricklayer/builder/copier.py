# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Copy content into a mounted working container.

:class:`ContentCopier` takes already-resolved source paths (local paths,
globs, URLs, or paths under another container's mount point) and
writes them below the target Builder's mount point.  While writing it:

- drops entries matched by the exclude patterns,
- sets owners (``--chown``, the source's own owners for cross-container
  copies, or container root otherwise) and translates them through the
  target's ID maps,
- applies ``--chmod`` and ``--timestamp``,
- unpacks local archives when the verb is ``ADD``,
- feeds every entry through the Builder's content digester, one part
  per source.

The copier never mounts or unmounts anything; the caller guarantees
the target is mounted for the duration of :meth:`ContentCopier.run`.
"""

from __future__ import annotations

import glob
import logging
import os
import posixpath
import shutil
import stat
import tarfile
from dataclasses import dataclass, field

from .constants import COPY_CHUNK_SIZE, URL_SCHEMES
from .digester import CONTENT_DIR, CONTENT_FILE, CONTENT_URL, ContentDigester
from .fetch import FetchError, FetchOptions, fetch_url, url_basename
from .models import Builder, IDMappingOptions, Verb
from .paths import container_path, secure_join
from .patterns import PatternError, PatternMatcher
from .policy import OwnershipPolicy, forced_owner

logger = logging.getLogger(__name__)

_GLOB_MAGIC = frozenset("*?[")


class CopyError(Exception):
    """Content could not be copied into the container."""


@dataclass
class CopyRequest:
    """One ingestion request against a mounted Builder.

    ``dest`` empty means the Builder's working directory.  With more
    than one source, ``dest`` is always a directory.
    """

    sources: list[str]
    verb: Verb
    dest: str = ""
    context_dir: str = ""
    excludes: list[str] = field(default_factory=lambda: list[str]())
    ownership: OwnershipPolicy = field(default_factory=OwnershipPolicy)
    # ID maps of the container the sources live in, if any.
    source_id_mappings: IDMappingOptions | None = None
    parents: bool = False
    link: bool = False
    fetch: FetchOptions = field(default_factory=FetchOptions)


def is_url(source: str) -> bool:
    return source.startswith(URL_SCHEMES)


@dataclass
class _Local:
    path: str
    rel: str  # path relative to the context base, slash-separated


class ContentCopier:
    """Runs one :class:`CopyRequest` against a mounted :class:`Builder`."""

    def __init__(self, builder: Builder, request: CopyRequest) -> None:
        self.builder = builder
        self.request = request
        self._root = builder.mount_point
        try:
            self._matcher = PatternMatcher(request.excludes)
        except PatternError as e:
            raise CopyError(f"invalid exclude pattern: {e}") from e
        # Directories whose times must be set after their contents land.
        self._dir_times: list[tuple[str, int | None, int]] = []
        self._forced: tuple[int, int] | None = None

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        if not self.builder.mounted:
            raise CopyError(f"container {self.builder.container_id!r} is not mounted")
        if not self.request.sources:
            raise CopyError("no source given")

        try:
            self._forced = forced_owner(self._root, self.request.ownership)
        except LookupError as e:
            raise CopyError(str(e)) from e

        urls: list[str] = []
        locals_: list[_Local] = []
        for source in self.request.sources:
            if is_url(source):
                urls.append(source)
                continue
            matches = self._expand(source)
            kept: list[_Local] = []
            for m in matches:
                if self._excluded(m.rel):
                    logger.debug("Excluded %s", m.rel)
                else:
                    kept.append(m)
            if not kept:
                raise CopyError(f"no items matching glob {source!r} copied ({len(matches)} filtered out)")
            locals_.extend(kept)

        dest = self.request.dest
        dest_ctr = container_path(self.builder.workdir, dest)
        first_is_dir = bool(locals_) and os.path.isdir(locals_[0].path)
        dest_is_dir = (
            not dest
            or dest.endswith("/")
            or len(urls) + len(locals_) > 1
            or first_is_dir
            or self.request.parents
        )
        try:
            if dest_is_dir:
                self._makedirs(dest_ctr)
            elif os.path.isdir(secure_join(self._root, dest_ctr)):
                dest_is_dir = True
            else:
                self._makedirs(posixpath.dirname(dest_ctr))
        except OSError as e:
            raise CopyError(f"preparing destination {dest_ctr!r}: {e}") from e

        for url in urls:
            await self._copy_url(url, dest_ctr, dest_is_dir)
        for local in locals_:
            self._copy_local(local, dest_ctr, dest_is_dir)

        try:
            for path, atime, mtime in reversed(self._dir_times):
                os.utime(path, (atime if atime is not None else mtime, mtime), follow_symlinks=False)
        except OSError as e:
            raise CopyError(f"setting times on {path!r}: {e}") from e
        finally:
            self._dir_times.clear()

    # -------------------------------------------------------------------------
    # Source expansion
    # -------------------------------------------------------------------------

    def _base(self) -> str:
        return os.path.abspath(self.request.context_dir or os.getcwd())

    def _expand(self, source: str) -> list[_Local]:
        base = self._base()
        pattern = source if os.path.isabs(source) else os.path.join(base, source)
        if _GLOB_MAGIC & set(source):
            matches = sorted(glob.glob(pattern))
            if not matches:
                raise CopyError(f"no items matching glob {source!r} copied (0 filtered out)")
        elif os.path.lexists(pattern):
            matches = [pattern]
        else:
            raise CopyError(f"checking on sources under {base!r}: stat {source!r}: no such file or directory")
        return [_Local(path=m, rel=self._relative(m, base)) for m in matches]

    @staticmethod
    def _relative(path: str, base: str) -> str:
        path = os.path.normpath(path)
        if path == base or path.startswith(base.rstrip("/") + "/"):
            rel = os.path.relpath(path, base)
        else:
            rel = path.lstrip("/")
        return rel.replace(os.sep, "/")

    def _excluded(self, rel: str) -> bool:
        return bool(self._matcher) and self._matcher.excludes(rel)

    # -------------------------------------------------------------------------
    # Ownership and metadata
    # -------------------------------------------------------------------------

    def _owner_for(self, st: os.stat_result, forced: tuple[int, int] | None) -> tuple[int, int]:
        """Container-relative owner for an entry with host stat *st*."""
        if forced is not None:
            return forced
        src_maps = self.request.source_id_mappings
        try:
            if src_maps is not None:
                return src_maps.uid_to_container(st.st_uid), src_maps.gid_to_container(st.st_gid)
        except LookupError as e:
            raise CopyError(f"mapping owner of source content: {e}") from e
        return st.st_uid, st.st_gid

    def _apply(
        self,
        path: str,
        uid: int,
        gid: int,
        mode: int | None,
        mtime: int,
        atime: int | None = None,
        is_dir: bool = False,
    ) -> None:
        """Chown (through the target's ID maps), chmod and set times."""
        maps = self.builder.id_mappings
        try:
            host_uid, host_gid = maps.uid_to_host(uid), maps.gid_to_host(gid)
        except LookupError as e:
            raise CopyError(f"setting owner of {path!r}: {e}") from e
        st = os.lstat(path)
        if (st.st_uid, st.st_gid) != (host_uid, host_gid):
            os.lchown(path, host_uid, host_gid)
        if mode is not None and not stat.S_ISLNK(st.st_mode):
            os.chmod(path, mode)
        if is_dir:
            self._dir_times.append((path, atime, mtime))
        elif not stat.S_ISLNK(st.st_mode) or os.utime in os.supports_follow_symlinks:
            os.utime(path, (atime if atime is not None else mtime, mtime), follow_symlinks=False)

    def _makedirs(self, ctr_dir: str) -> None:
        """Create *ctr_dir* and missing parents, owned by container root."""
        current = "/"
        for part in [p for p in ctr_dir.split("/") if p]:
            current = posixpath.join(current, part)
            host = secure_join(self._root, current)
            if os.path.isdir(host):
                continue
            if os.path.lexists(host):
                raise CopyError(f"creating directory {current!r}: exists and is not a directory")
            os.mkdir(host, 0o755)
            maps = self.builder.id_mappings
            try:
                uid, gid = maps.uid_to_host(0), maps.gid_to_host(0)
            except LookupError as e:
                raise CopyError(f"creating directory {current!r}: {e}") from e
            st = os.lstat(host)
            if (st.st_uid, st.st_gid) != (uid, gid):
                os.lchown(host, uid, gid)

    @staticmethod
    def _clear(path: str, for_dir: bool = False) -> None:
        if not os.path.lexists(path):
            return
        if os.path.isdir(path) and not os.path.islink(path):
            if for_dir:
                return
            shutil.rmtree(path)
        else:
            os.unlink(path)

    # -------------------------------------------------------------------------
    # URLs
    # -------------------------------------------------------------------------

    async def _copy_url(self, url: str, dest_ctr: str, dest_is_dir: bool) -> None:
        try:
            target_ctr = posixpath.join(dest_ctr, url_basename(url)) if dest_is_dir else dest_ctr
        except FetchError as e:
            raise CopyError(str(e)) from e
        part = self.builder.content_digester.start(CONTENT_URL)
        try:
            target = secure_join(self._root, target_ctr)
            self._clear(target)
            result = await fetch_url(url, target, part, self.request.fetch)
        except FetchError as e:
            raise CopyError(str(e)) from e
        except OSError as e:
            raise CopyError(f"fetching {url!r}: {e}") from e

        policy = self.request.ownership
        uid, gid = self._forced or (0, 0)
        if policy.timestamp is not None:
            mtime = policy.timestamp
        elif result.last_modified is not None:
            mtime = int(result.last_modified.timestamp())
        else:
            mtime = int(os.lstat(target).st_mtime)
        mode = policy.chmod if policy.chmod is not None else 0o600
        try:
            self._apply(target, uid, gid, mode, mtime, atime=mtime)
        except OSError as e:
            raise CopyError(f"fetching {url!r}: {e}") from e

    # -------------------------------------------------------------------------
    # Local content
    # -------------------------------------------------------------------------

    def _copy_local(self, local: _Local, dest_ctr: str, dest_is_dir: bool) -> None:
        try:
            # Top-level symlinks are followed.
            st = os.stat(local.path)
        except OSError as e:
            raise CopyError(f"reading {local.path!r}: {e}") from e

        if self.request.parents:
            rel_dir = local.rel if stat.S_ISDIR(st.st_mode) else posixpath.dirname(local.rel)
            base_ctr = posixpath.normpath(posixpath.join(dest_ctr, rel_dir))
        else:
            base_ctr = dest_ctr

        try:
            if stat.S_ISDIR(st.st_mode):
                part = self.builder.content_digester.start(CONTENT_DIR)
                self._makedirs(base_ctr)
                self._copy_tree(local, base_ctr, part)
            elif self.request.verb.extracts_local_archives and stat.S_ISREG(st.st_mode) \
                    and tarfile.is_tarfile(local.path):
                part = self.builder.content_digester.start(CONTENT_FILE)
                self._makedirs(base_ctr)
                self._extract_archive(local.path, base_ctr, part)
            else:
                part = self.builder.content_digester.start(CONTENT_FILE)
                name = posixpath.basename(local.rel)
                if dest_is_dir:
                    self._makedirs(base_ctr)
                    target_ctr = posixpath.join(base_ctr, name)
                else:
                    target_ctr = base_ctr
                self._copy_entry(local.path, target_ctr, name, st, part, self._forced)
        except (OSError, tarfile.TarError) as e:
            raise CopyError(f"copying {local.path!r}: {e}") from e
        except LookupError as e:
            raise CopyError(str(e)) from e

    def _copy_tree(self, local: _Local, dest_ctr: str, part: ContentDigester) -> None:
        forced = self._forced
        prune = not self._matcher.has_exclusions

        def onerror(e: OSError) -> None:
            raise e

        for dirpath, dirnames, filenames in os.walk(local.path, onerror=onerror):
            dirnames.sort()
            sub = os.path.relpath(dirpath, local.path)
            sub = "" if sub == "." else sub.replace(os.sep, "/")

            keep: list[str] = []
            for d in dirnames:
                src = os.path.join(dirpath, d)
                name = posixpath.join(sub, d) if sub else d
                rel = posixpath.join(local.rel, name) if local.rel != "." else name
                st = os.lstat(src)
                if stat.S_ISLNK(st.st_mode):
                    # Symlinks to directories are copied as links.
                    filenames.append(d)
                    continue
                if self._excluded(rel):
                    if not prune:
                        keep.append(d)
                    continue
                keep.append(d)
                self._copy_entry(src, posixpath.join(dest_ctr, name), name, st, part, forced)
            dirnames[:] = keep

            for f in sorted(filenames):
                src = os.path.join(dirpath, f)
                name = posixpath.join(sub, f) if sub else f
                rel = posixpath.join(local.rel, name) if local.rel != "." else name
                if self._excluded(rel):
                    continue
                target_ctr = posixpath.join(dest_ctr, name)
                # Re-included entries under an excluded directory need their parents.
                self._makedirs(posixpath.dirname(target_ctr))
                self._copy_entry(src, target_ctr, name, os.lstat(src), part, forced)

    def _mtime(self, st: os.stat_result) -> int:
        ts = self.request.ownership.timestamp
        return ts if ts is not None else int(st.st_mtime)

    def _copy_entry(
        self,
        src: str,
        target_ctr: str,
        name: str,
        st: os.stat_result,
        part: ContentDigester,
        forced: tuple[int, int] | None,
    ) -> None:
        """Write one entry and record it in *part*."""
        target = secure_join(self._root, target_ctr)
        uid, gid = self._owner_for(st, forced)
        chmod = self.request.ownership.chmod
        mode = chmod if chmod is not None else stat.S_IMODE(st.st_mode)
        mtime = self._mtime(st)
        atime = mtime if self.request.ownership.timestamp is not None else int(st.st_atime)
        fmt = stat.S_IFMT(st.st_mode)

        if fmt == stat.S_IFDIR:
            part.add_header(name, "dir", mode, uid, gid, 0, mtime)
            self._clear(target, for_dir=True)
            if not os.path.isdir(target):
                os.mkdir(target, 0o700)
            self._apply(target, uid, gid, mode, mtime, atime, is_dir=True)
        elif fmt == stat.S_IFREG:
            part.add_header(name, "reg", mode, uid, gid, st.st_size, mtime)
            self._clear(target)
            with open(src, "rb") as fin, open(target, "wb") as fout:
                while chunk := fin.read(COPY_CHUNK_SIZE):
                    fout.write(chunk)
                    part.write(chunk)
            self._apply(target, uid, gid, mode, mtime, atime)
        elif fmt == stat.S_IFLNK:
            linkname = os.readlink(src)
            part.add_header(name, "symlink", 0o777, uid, gid, 0, mtime, linkname)
            self._clear(target)
            os.symlink(linkname, target)
            self._apply(target, uid, gid, None, mtime, atime)
        elif fmt == stat.S_IFIFO:
            part.add_header(name, "fifo", mode, uid, gid, 0, mtime)
            self._clear(target)
            os.mkfifo(target, mode)
            self._apply(target, uid, gid, mode, mtime, atime)
        elif fmt in (stat.S_IFCHR, stat.S_IFBLK):
            kind = "char" if fmt == stat.S_IFCHR else "block"
            part.add_header(name, kind, mode, uid, gid, 0, mtime, f"{os.major(st.st_rdev)},{os.minor(st.st_rdev)}")
            self._clear(target)
            os.mknod(target, fmt | mode, st.st_rdev)
            self._apply(target, uid, gid, mode, mtime, atime)
        else:
            logger.warning("Skipping %s: unsupported file type", src)

    # -------------------------------------------------------------------------
    # Archives (ADD only)
    # -------------------------------------------------------------------------

    def _extract_archive(self, archive: str, dest_ctr: str, part: ContentDigester) -> None:
        policy = self.request.ownership
        forced = self._forced if policy.chown else None
        with tarfile.open(archive, "r:*") as tar:
            for member in tar:
                name = posixpath.normpath(member.name.lstrip("/"))
                if name == ".":
                    continue
                if name == ".." or name.startswith("../"):
                    raise CopyError(f"archive {archive!r}: entry {member.name!r} escapes the destination")
                target_ctr = posixpath.join(dest_ctr, name)
                self._makedirs(posixpath.dirname(target_ctr))
                target = secure_join(self._root, target_ctr)
                uid, gid = forced if forced is not None else (member.uid, member.gid)
                mode = policy.chmod if policy.chmod is not None else member.mode & 0o7777
                mtime = policy.timestamp if policy.timestamp is not None else int(member.mtime)

                if member.isdir():
                    part.add_header(name, "dir", mode, uid, gid, 0, mtime)
                    self._clear(target, for_dir=True)
                    if not os.path.isdir(target):
                        os.mkdir(target, 0o700)
                    self._apply(target, uid, gid, mode, mtime, is_dir=True)
                elif member.isreg():
                    part.add_header(name, "reg", mode, uid, gid, member.size, mtime)
                    self._clear(target)
                    fin = tar.extractfile(member)
                    if fin is None:
                        raise CopyError(f"archive {archive!r}: cannot read {member.name!r}")
                    with fin, open(target, "wb") as fout:
                        while chunk := fin.read(COPY_CHUNK_SIZE):
                            fout.write(chunk)
                            part.write(chunk)
                    self._apply(target, uid, gid, mode, mtime)
                elif member.issym():
                    part.add_header(name, "symlink", 0o777, uid, gid, 0, mtime, member.linkname)
                    self._clear(target)
                    os.symlink(member.linkname, target)
                    self._apply(target, uid, gid, None, mtime)
                elif member.islnk():
                    link_ctr = posixpath.join(dest_ctr, posixpath.normpath(member.linkname.lstrip("/")))
                    part.add_header(name, "link", mode, uid, gid, 0, mtime, member.linkname)
                    self._clear(target)
                    os.link(secure_join(self._root, link_ctr), target)
                elif member.isfifo():
                    part.add_header(name, "fifo", mode, uid, gid, 0, mtime)
                    self._clear(target)
                    os.mkfifo(target, mode)
                    self._apply(target, uid, gid, mode, mtime)
                elif member.ischr() or member.isblk():
                    fmt = stat.S_IFCHR if member.ischr() else stat.S_IFBLK
                    kind = "char" if member.ischr() else "block"
                    part.add_header(name, kind, mode, uid, gid, 0, mtime, f"{member.devmajor},{member.devminor}")
                    self._clear(target)
                    os.mknod(target, fmt | mode, os.makedev(member.devmajor, member.devminor))
                    self._apply(target, uid, gid, mode, mtime)
                else:
                    logger.warning("Skipping %s in %s: unsupported entry type", member.name, archive)
