# Overview: Unit-of-work and row-locking helpers for treasury operations.

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator

from flask import current_app
from sqlalchemy.orm import Session

from ..extensions import db

_DEPTH_KEY = "treasury.uow_depth"
_AFTER_COMMIT_KEY = "treasury.after_commit"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def unit_of_work() -> Iterator[Session]:
    """
    All-or-nothing boundary around a multi-step operation.

    The outermost unit commits on success, or rolls back and re-raises the
    original exception. Nested units join the enclosing one, so an operation
    composed of other operations still commits exactly once.

    Callbacks registered with after_commit() run only after the outermost
    commit succeeds and are dropped on rollback. A failing callback is logged
    and the remaining ones still run.
    """
    session = db.session()
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
    except Exception:
        if depth == 0:
            session.rollback()
            session.info.pop(_AFTER_COMMIT_KEY, None)
        raise
    finally:
        session.info[_DEPTH_KEY] = depth

    if depth == 0:
        _run_after_commit(session)


def in_unit_of_work() -> bool:
    return db.session().info.get(_DEPTH_KEY, 0) > 0


def after_commit(callback: Callable[[], None]) -> None:
    """
    Defer callback until the enclosing unit of work commits.

    Outside a unit of work the callback runs immediately.
    """
    session = db.session()
    if session.info.get(_DEPTH_KEY, 0) == 0:
        callback()
        return
    session.info.setdefault(_AFTER_COMMIT_KEY, []).append(callback)


def _run_after_commit(session: Session) -> None:
    callbacks = session.info.pop(_AFTER_COMMIT_KEY, [])
    for callback in callbacks:
        # Unit already committed
        try:
            callback()
        except Exception:
            current_app.logger.exception("after-commit callback %r failed", callback)
