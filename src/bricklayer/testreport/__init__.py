# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Runtime snapshot tool used to compare a container's environment with an expected spec."""

from .collect import collect_report
from .models import SpecReport

__all__ = ["SpecReport", "collect_report"]
