# Overview: Transaction helpers shared by services that must commit several rows as one unit.

from __future__ import annotations

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Combine with populate_existing() so the locked read also refreshes any
    copy already sitting in the identity map.
    """
    return query.with_for_update().populate_existing()


def run_in_transaction(func):
    """
    Execute func and commit its writes once.

    Any exception (domain error, flush failure, commit failure) rolls the
    whole session back and is re-raised unchanged. There is no retry here:
    whether to retry is the caller's decision.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except Exception:
        db.session.rollback()
        raise
