# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Constants shared across the builder package."""

from __future__ import annotations

# Ignore files looked up in the context directory, in order.
DEFAULT_IGNORE_FILES = (".containerignore", ".dockerignore")

# History line prefix; matches what image builders record for
# non-RUN instructions so caches keyed on it stay comparable.
HISTORY_PREFIX = "/bin/sh -c #(nop)"

# Suffix for temporary working containers created from pulled images.
WORKING_CONTAINER_SUFFIX = "-working-container"

# Chunk size for streaming file content through the digester.
COPY_CHUNK_SIZE = 1024 * 1024

URL_SCHEMES = ("http://", "https://")
