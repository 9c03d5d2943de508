"""
civicfix.constants — Shared Constants & Message Templates
==========================================================

Single source of truth for user-facing status labels and notification
wording.  Import from here instead of duplicating strings in services.
"""

from __future__ import annotations

from civicfix.database.models import IssueStatus

# ---------------------------------------------------------------------------
# Status presentation
# ---------------------------------------------------------------------------
STATUS_TEXT: dict[str, str] = {
    IssueStatus.PENDING: "Pending",
    IssueStatus.IN_PROGRESS: "In Progress",
    IssueStatus.RESOLVED: "Resolved",
    IssueStatus.FAKE: "Marked as Fake",
}


def status_text(status: str) -> str:
    """Human-readable label for *status* (falls back to the raw value)."""
    return STATUS_TEXT.get(status, status)


# ---------------------------------------------------------------------------
# Notification templates
# ---------------------------------------------------------------------------
POINTS_EARNED_MESSAGE = "You earned {points} points for {action}!"
POINTS_LOST_MESSAGE = "You lost {points} points for {action}."
BADGE_EARNED_MESSAGE = "\U0001f389 Congratulations! You earned the \"{badge}\" badge!"  # 🎉
STATUS_CHANGED_MESSAGE = "Your issue \"{title}\" status changed to {status}"
ISSUE_ASSIGNED_MESSAGE = "New issue assigned: {title}"
