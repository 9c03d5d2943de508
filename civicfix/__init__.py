"""
CivicFix — Civic Issue Reporting with Points, Badges & Audit Trail
====================================================================
Citizens report problems (potholes, garbage, streetlights), authorities
triage and resolve them, and admins curate the badge catalogue.  Every
status change is recorded in an append-only audit trail and feeds a
points ledger that keeps each citizen's badges in step with their score.

Package layout::

    civicfix/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Status labels, notification templates
    ├── errors.py          # ValidationFailure / PrimaryFailure
    ├── repair.py          # ``python -m civicfix.repair`` operator CLI
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default settings, badges, categories
    ├── engine/
    │   ├── badges.py      # Pure badge-eligibility diff
    │   ├── points.py      # PointsAction + delta resolution
    │   ├── status.py      # IssueStatus transition planning
    │   └── outcomes.py    # Result types for best-effort side effects
    ├── services/
    │   ├── ledger_service.py        # Points ledger
    │   ├── badge_service.py         # Badge reconciler + batch repair
    │   ├── notification_service.py  # Notification emitter / read model
    │   ├── issue_service.py         # Status transitions + audit trail
    │   ├── admin_service.py         # Audit-logged admin mutations
    │   ├── settings_service.py      # Settings table access
    │   └── log_buffer.py            # In-memory log tail for admins
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT → current user, role guards
        └── routes/        # Authority, citizen, admin endpoints
"""

__version__ = "0.1.0"
