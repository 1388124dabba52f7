"""Authoritative command store and lifecycle state machine.

Every mutation of a command row goes through exactly one of three guarded
transitions, each committed as a single unit of work:

- claim:    PENDING | FAILED -> RUNNING   (oldest first, compare-and-swap)
- complete: RUNNING -> COMPLETED          (only by the bound agent)
- recover:  RUNNING -> FAILED             (bulk, once at startup)

FAILED is re-eligible for claim; there is no retry cap.
"""
