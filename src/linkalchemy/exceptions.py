# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy for LinkAlchemy.

Each class also derives from the builtin exception callers would naturally
catch for that failure (ValueError, TypeError, RuntimeError).
"""

from __future__ import annotations


class LinkAlchemyError(Exception):
    """Base class for all LinkAlchemy errors."""


class SchemaError(LinkAlchemyError, ValueError):
    """Model or relationship metadata cannot be resolved."""


class UnsupportedRelationError(LinkAlchemyError, ValueError):
    """The requested association name is not a relationship of the model."""


class LengthMismatchError(LinkAlchemyError, ValueError):
    """Per-source association values do not line up with the source list."""


class UnsupportedDataTypeError(LinkAlchemyError, TypeError):
    """An association value is not an instance of the relationship's element type."""


class PrimaryKeyRequiredError(LinkAlchemyError, ValueError):
    """A set computation needs a primary key the source does not have."""


class StoreError(LinkAlchemyError, RuntimeError):
    """The backing store rejected a statement."""
