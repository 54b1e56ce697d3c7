# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Bricklayer - add and copy content into working containers."""

__version__ = "0.1.0"
