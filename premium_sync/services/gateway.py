"""
Persistence gateway for user subscription records.

The only code that reads or writes `user_subscriptions`. Each write is a single
statement in its own transaction, so concurrent events for the same user are
serialized by the database and never lose each other's fields. Writes for
different users share no lock. Nothing here retries: Stripe's redelivery is
the retry layer.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from premium_sync.core.errors import (
    AmbiguousCustomerError,
    ConfigurationError,
    NotFoundError,
    PersistenceError,
)
from premium_sync.models.user_subscription import UserSubscription
from premium_sync.schemas.billing import SubscriptionRecord, utcnow

logger = logging.getLogger(__name__)

_table = UserSubscription.__table__


def _dialect_insert(dialect_name: str):
    # ON CONFLICT upserts are dialect specific
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise ConfigurationError(f"Unsupported database dialect for upserts: {dialect_name}")
    return insert


def _monotonic_updated_at(new_value):
    """Keep the later of the stored and incoming updated_at."""
    return case(
        (_table.c.updated_at > new_value, _table.c.updated_at),
        else_=new_value,
    )


class SubscriptionGateway:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        bind = session_factory.kw.get("bind")
        if bind is None:
            raise ConfigurationError("Session factory is not bound to an engine")
        self._insert = _dialect_insert(bind.dialect.name)

    def get(self, user_id: str) -> Optional[SubscriptionRecord]:
        try:
            with self.session_factory() as db:
                row = db.get(UserSubscription, user_id)
                return SubscriptionRecord.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load subscription: {e}", user_id=user_id)

    def find_by_customer(self, customer_id: str) -> List[SubscriptionRecord]:
        try:
            with self.session_factory() as db:
                rows = db.query(UserSubscription).filter(
                    UserSubscription.stripe_customer_id == customer_id
                ).all()
                return [SubscriptionRecord.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to look up customer: {e}", customer_id=customer_id)

    def upsert_merge(
        self,
        user_id: str,
        fields: Dict[str, Any],
        set_if_absent: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Create the record or merge `fields` into it, leaving other columns as they are.

        Values in `set_if_absent` only fill columns that are still NULL, which
        keeps stripe_customer_id immutable once linked.
        """
        set_if_absent = set_if_absent or {}
        values = {"user_id": user_id, **set_if_absent, **fields}
        values.setdefault("updated_at", utcnow())
        values["created_at"] = values["updated_at"]

        stmt = self._insert(_table).values(**values)
        merge = {
            key: stmt.excluded[key]
            for key in fields
            if key not in ("user_id", "updated_at")
        }
        for key in set_if_absent:
            merge[key] = func.coalesce(_table.c[key], stmt.excluded[key])
        merge["updated_at"] = _monotonic_updated_at(stmt.excluded.updated_at)
        stmt = stmt.on_conflict_do_update(index_elements=[_table.c.user_id], set_=merge)

        with self.session_factory() as db:
            try:
                db.execute(stmt)
                db.commit()
            except IntegrityError as e:
                db.rollback()
                customer_id = set_if_absent.get("stripe_customer_id")
                owners = self.find_by_customer(customer_id) if customer_id else []
                raise AmbiguousCustomerError(
                    f"Customer {customer_id} is already linked to another user: {e.orig}",
                    user_ids=[r.user_id for r in owners] + [user_id],
                    user_id=user_id,
                    customer_id=customer_id,
                )
            except SQLAlchemyError as e:
                db.rollback()
                raise PersistenceError(f"Failed to upsert subscription: {e}", user_id=user_id)

    def update_existing(self, user_id: str, fields: Dict[str, Any]) -> None:
        """Apply `fields` to an existing record; NotFoundError when there is none."""
        values = {key: value for key, value in fields.items() if key != "user_id"}
        if "updated_at" in values:
            values["updated_at"] = _monotonic_updated_at(values["updated_at"])

        stmt = update(_table).where(_table.c.user_id == user_id).values(**values)
        with self.session_factory() as db:
            try:
                result = db.execute(stmt)
                if result.rowcount == 0:
                    db.rollback()
                    raise NotFoundError(f"No subscription record for user {user_id}", user_id=user_id)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise PersistenceError(f"Failed to update subscription: {e}", user_id=user_id)
