"""
Persistence primitives used by the review pipeline services.

Every state-changing primitive here is atomic at the single-row level:
status changes are conditional UPDATEs keyed on the stored status, and
per-reviewer rows are written with INSERT ... ON CONFLICT DO UPDATE against
the (application_id, reviewer_id) unique constraint.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Type, TypeVar

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from grant_review.core.exceptions import NotFound
from grant_review.db.models import utcnow

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

_REVIEWER_KEY = ["application_id", "reviewer_id"]


def get_or_404(db: Session, model: Type[ModelT], entity_id: int, label: Optional[str] = None) -> ModelT:
    """Load an entity by primary key or raise NotFound."""
    entity = db.get(model, entity_id)
    if entity is None:
        name = label or model.__name__
        raise NotFound(f"{name} not found", entity_id=entity_id)
    return entity


def conditional_status_update(
    db: Session,
    model: Type[Any],
    entity_id: int,
    from_statuses: Iterable[Any],
    to_status: Any,
    values: Optional[Dict[str, Any]] = None,
    extra_criteria: Iterable[Any] = (),
) -> bool:
    """
    Move an entity to ``to_status`` only if its stored status is one of ``from_statuses``.

    Returns False when no row matched, i.e. another writer changed the
    status first. Nothing is committed here.
    """
    stmt = (
        update(model)
        .where(model.id == entity_id, model.status.in_(list(from_statuses)), *extra_criteria)
        .values(status=to_status, **(values or {}))
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount == 1


def upsert_reviewer_row(
    db: Session,
    model: Type[ModelT],
    application_id: int,
    reviewer_id: int,
    values: Dict[str, Any],
) -> ModelT:
    """
    Insert or overwrite the single row a reviewer owns for an application.

    Shared by votes and budget assessments. Concurrent writes from the same
    reviewer converge to the last write; the row is never duplicated.
    """
    now = utcnow()
    dialect = db.get_bind().dialect.name

    if dialect in ("postgresql", "sqlite"):
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert_fn(model).values(
            application_id=application_id,
            reviewer_id=reviewer_id,
            created_at=now,
            updated_at=now,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=_REVIEWER_KEY,
            set_={**values, "updated_at": now},
        )
        db.execute(stmt)
    else:
        _upsert_fallback(db, model, application_id, reviewer_id, values, now)

    row = (
        db.query(model)
        .filter(model.application_id == application_id, model.reviewer_id == reviewer_id)
        .populate_existing()
        .one()
    )
    return row


def _upsert_fallback(db: Session, model, application_id: int, reviewer_id: int, values: Dict[str, Any], now) -> None:
    """Read-then-write upsert for dialects without ON CONFLICT; a lost insert race becomes an update."""
    existing = (
        db.query(model)
        .filter(model.application_id == application_id, model.reviewer_id == reviewer_id)
        .first()
    )
    if existing is None:
        try:
            with db.begin_nested():
                db.add(model(
                    application_id=application_id,
                    reviewer_id=reviewer_id,
                    created_at=now,
                    updated_at=now,
                    **values,
                ))
            return
        except IntegrityError:
            logger.info(
                f"Concurrent insert for {model.__name__} application={application_id} "
                f"reviewer={reviewer_id}; updating instead"
            )
            existing = (
                db.query(model)
                .filter(model.application_id == application_id, model.reviewer_id == reviewer_id)
                .one()
            )

    for key, value in values.items():
        setattr(existing, key, value)
    existing.updated_at = now
    db.flush()
