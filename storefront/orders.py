"""Order placement, visibility and deletion.

Orders never store a total. ``Order.total`` re-derives it from the lines on
every read, so what a caller sees always matches the quantities and unit
prices captured when the order was placed.

Visibility: a non-admin caller only ever sees their own orders. For single
order reads and deletes the owner id is part of the lookup itself, so another
user's order is reported as not found rather than forbidden.
"""
import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from . import errors, models, schemas
from .auth import Identity, is_admin

log = logging.getLogger(__name__)


def _with_details(query):
    return query.options(
        selectinload(models.Order.user),
        selectinload(models.Order.lines).selectinload(models.OrderLine.product),
    )


def _visible_to(query, identity: Identity):
    if not is_admin(identity):
        query = query.filter(models.Order.user_id == identity.user_id)
    return query


def create_order(db: Session, caller_id: int, lines: List[schemas.OrderLineCreate]) -> models.Order:
    if not isinstance(lines, list) or not lines:
        raise errors.ValidationError("an order needs at least one product")
    # the token may outlive its user
    if not db.get(models.User, caller_id):
        raise errors.ValidationError("user no longer exists")

    wanted = {line.product_id for line in lines}
    found = {pid for (pid,) in db.query(models.Product.id).filter(models.Product.id.in_(wanted))}
    missing = wanted - found
    if missing:
        raise errors.ValidationError(f"products not found: {sorted(missing)}")

    # The unit price is taken from the request as-is and frozen on the line;
    # later catalog price changes do not affect it.
    order = models.Order(user_id=caller_id)
    order.lines = [
        models.OrderLine(
            product_id=line.product_id,
            quantity=line.quantity or 1,
            unit_price=line.unit_price if line.unit_price is not None else Decimal("0"),
        )
        for line in lines
    ]
    db.add(order)
    try:
        db.commit()
    except Exception:
        # header and lines are one transaction: nothing is kept on failure
        db.rollback()
        raise
    log.info("user %s placed order %s with %s line(s)", caller_id, order.id, len(lines))
    return _with_details(db.query(models.Order)).filter(models.Order.id == order.id).one()


def list_orders(
    db: Session,
    identity: Identity,
    target_user_id: Optional[int] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Tuple[List[models.Order], int, dict]:
    """Return ``(orders, total_count, applied_filters)``, newest first."""
    if is_admin(identity):
        user_id = target_user_id
    else:
        if target_user_id is not None and target_user_id != identity.user_id:
            log.warning("user %s asked for orders of user %s", identity.user_id, target_user_id)
            raise errors.Forbidden("you may not view another user's orders")
        user_id = identity.user_id

    query = db.query(models.Order)
    if user_id is not None:
        query = query.filter(models.Order.user_id == user_id)

    total_count = query.with_entities(func.count(models.Order.id)).scalar()

    query = _with_details(query).order_by(models.Order.created_at.desc(), models.Order.id.desc())
    if limit is not None:
        query = query.limit(limit)
    if offset:
        query = query.offset(offset)

    filters = {"user_id": user_id, "limit": limit, "offset": offset or 0}
    return query.all(), total_count, filters


def get_order(db: Session, identity: Identity, order_id: int) -> models.Order:
    query = _visible_to(db.query(models.Order).filter(models.Order.id == order_id), identity)
    order = _with_details(query).first()
    if not order:
        raise errors.NotFound("order not found")
    return order


def delete_order(db: Session, identity: Identity, order_id: int) -> None:
    order = _visible_to(db.query(models.Order).filter(models.Order.id == order_id), identity).first()
    if not order:
        raise errors.NotFound("order not found")
    db.delete(order)
    db.commit()
    log.info("order %s deleted by user %s", order_id, identity.user_id)
