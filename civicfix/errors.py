"""
civicfix.errors — Primary-Action Failures
==========================================

Only failures of the *primary* action are raised.  Side-effect failures
(points, badges, notifications) are collected as
:class:`~civicfix.engine.outcomes.SideEffectFailure` values instead.
"""

from __future__ import annotations


class CivicError(Exception):
    """Base class for errors surfaced to callers."""


class ValidationFailure(CivicError):
    """Caller-supplied input was rejected before any write happened."""


class PrimaryFailure(CivicError):
    """The primary write (e.g. issue status + audit row) did not commit."""
