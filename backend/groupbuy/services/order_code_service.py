# Overview: Allocation of human-readable order codes (GB-/SG-/IND-YYYYMMDD-NNN).

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderCodeSequence
from ..models.orders import ORDER_TYPE_GROUP_BUY, ORDER_TYPE_SUB_GROUP, ORDER_TYPE_INDIVIDUAL
from groupbuy.time_utils import date_key


ORDER_CODE_PREFIXES = {
    ORDER_TYPE_GROUP_BUY: "GB",
    ORDER_TYPE_SUB_GROUP: "SG",
    ORDER_TYPE_INDIVIDUAL: "IND",
}


class OrderCodeError(Exception):
    pass


def _bump(prefix: str, day: str) -> int | None:
    stmt = (
        update(OrderCodeSequence)
        .where(
            OrderCodeSequence.prefix == prefix,
            OrderCodeSequence.date_key == day,
        )
        .values(next_number=OrderCodeSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(OrderCodeSequence.next_number)
        .filter_by(prefix=prefix, date_key=day)
        .scalar()
    )
    return current - 1


def next_order_code(order_type: str, *, now=None, pad: int = 3) -> str:
    """
    Allocate the next code for an order type within the caller's transaction.

    The sequence row is bumped with one UPDATE, which takes the row lock until
    the surrounding checkout commits, so two checkouts can never read the same
    number. First use of a day inserts the row inside a savepoint; losing that
    insert race falls back to the UPDATE path.
    """
    prefix = ORDER_CODE_PREFIXES.get(order_type)
    if not prefix:
        raise OrderCodeError(f"Unknown order type: {order_type}")

    day = date_key(now)

    number = _bump(prefix, day)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(OrderCodeSequence(prefix=prefix, date_key=day, next_number=2))
            number = 1
        except IntegrityError:
            number = _bump(prefix, day)
            if number is None:
                raise OrderCodeError("Could not allocate order code")

    return f"{prefix}-{day}-{number:0{pad}d}"
