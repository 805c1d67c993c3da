# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Test suite for LinkAlchemy.

Every test runs against an in-memory SQLite database; see ``conftest.py``.
"""
