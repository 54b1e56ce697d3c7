# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Builder package: public API re-exports."""

from .models import Builder, Verb
from .service import IngestResult, IngestService

__all__ = ["Builder", "IngestResult", "IngestService", "Verb"]
