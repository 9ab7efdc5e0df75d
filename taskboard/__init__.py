"""
Taskboard Backend — Collaboration Core
========================================

What: Project invitations, membership and notification dispatch for a
      collaborative task tracker.

Layers:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← envelope, principal, status codes
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← invite ledger, dispatcher,
    │                                     │    reminder scanner, hooks, guard
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← async sessions, one per request
    └─────────────────────────────────────┘
"""

__version__ = "0.1.0"
