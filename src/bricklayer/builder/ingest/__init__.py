# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Ingest pipeline: open the target, resolve a source, copy, release, commit.

Importing this package registers all steps with the pipeline.
"""

from ...pipeline import Pipeline
from ..contexts import IngestContext

ingest_pipeline = Pipeline[IngestContext]("ingest")

# Import step modules so their decorators register with the pipeline.
# Argument checks and the target container
from . import validate as _  # noqa: F401, E402
from . import open_target as _  # noqa: F401, E402

# Source acquisition and filters
from . import resolve_source as _  # noqa: F401, E402
from . import exclusion_policy as _  # noqa: F401, E402

# Content transfer and commit
from . import copy_content as _  # noqa: F401, E402
from . import release_source as _  # noqa: F401, E402
from . import commit as _  # noqa: F401, E402
