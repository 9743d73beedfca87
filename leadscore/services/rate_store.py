"""
Conversion-rate persistence — the ConversionRateStore contract and its
SQLAlchemy implementation.

batch_upsert is keyed by (client_id, key_field, key_name) and runs in one
transaction. Its stats count a row as "updated" only when its values actually
changed, so `total` reflects real changes rather than rows touched.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from leadscore.database import get_session
from leadscore.errors import PersistenceError, ValidationError
from leadscore.models.conversion_rate import ConversionRate
from leadscore.scoring.base import RateRow, UpsertStats

logger = logging.getLogger('services.rate_store')

FILTERABLE_FIELDS = frozenset({'client_id', 'key_field', 'key_name'})


class ConversionRateStore(ABC):
    """Persistence of per-dimension conversion-rate rows."""

    @abstractmethod
    def get_rates(self, filter: Dict[str, Any]) -> List[RateRow]:
        ...

    @abstractmethod
    def batch_upsert(self, rows: List[RateRow]) -> UpsertStats:
        ...


def _to_row(model: ConversionRate) -> RateRow:
    return RateRow(
        client_id=model.client_id,
        key_field=model.key_field,
        key_name=model.key_name,
        past_total_count=model.past_total_count or 0,
        past_total_est=model.past_total_est or 0,
        conversion_rate=model.conversion_rate or 0.0,
        last_batch_id=model.last_batch_id,
    )


class SqlConversionRateStore(ConversionRateStore):
    """ConversionRateStore over the `conversion_rates` table."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session

    def get_rates(self, filter: Dict[str, Any]) -> List[RateRow]:
        if not isinstance(filter, dict):
            raise ValidationError(f"Rate filter must be a dict, got {type(filter).__name__}")
        unknown = set(filter) - FILTERABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unsupported rate filter fields: {sorted(unknown)}")

        conditions = [getattr(ConversionRate, name) == value for name, value in filter.items()]
        session = self._session_factory()
        try:
            models = session.scalars(
                select(ConversionRate).where(*conditions).order_by(ConversionRate.id)
            ).all()
            return [_to_row(m) for m in models]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load conversion rates for {filter}: {e}") from e
        finally:
            session.close()

    def batch_upsert(self, rows: List[RateRow]) -> UpsertStats:
        stats = UpsertStats()
        if not rows:
            return stats

        session = self._session_factory()
        try:
            client_ids = sorted({row.client_id for row in rows})
            existing = {
                (m.client_id, m.key_field, m.key_name): m
                for m in session.scalars(
                    select(ConversionRate).where(ConversionRate.client_id.in_(client_ids))
                ).all()
            }

            for row in rows:
                model = existing.get((row.client_id, row.key_field, row.key_name))
                if model is None:
                    model = ConversionRate(
                        client_id=row.client_id,
                        key_field=row.key_field,
                        key_name=row.key_name,
                        conversion_rate=row.conversion_rate,
                        past_total_count=row.past_total_count,
                        past_total_est=row.past_total_est,
                        last_batch_id=row.last_batch_id,
                    )
                    session.add(model)
                    existing[(row.client_id, row.key_field, row.key_name)] = model
                    stats.new_inserts += 1
                    continue

                changed = (
                    model.conversion_rate != row.conversion_rate
                    or model.past_total_count != row.past_total_count
                    or model.past_total_est != row.past_total_est
                )
                if changed:
                    model.conversion_rate = row.conversion_rate
                    model.past_total_count = row.past_total_count
                    model.past_total_est = row.past_total_est
                    stats.updated += 1
                if row.last_batch_id:
                    model.last_batch_id = row.last_batch_id

            session.commit()
            stats.total = stats.new_inserts + stats.updated
            logger.info("Upserted %d conversion rates (%d new, %d changed)",
                        len(rows), stats.new_inserts, stats.updated)
            return stats
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to upsert {len(rows)} conversion rates: {e}") from e
        finally:
            session.close()
