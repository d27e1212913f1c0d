"""
Finalize a sync job: persist scraped data and caller rows in one transaction.

Order of writes inside the transaction:
1. item, entry (insert-or-ignore on (source, external_id))
2. re-select internal ids for the external ids of this job
3. item_release (on id), entry_to_item (on (entry_id, item_id))
4. caller rows: csv, order or collection strategy

If anything raises, nothing is committed. The outcome is returned as a
FinalizeSuccess or FinalizeFailure; `run` then writes the session outcome.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import PersistenceError
from models.base import ItemSource, OrderStatus, new_id, utcnow
from models.catalog import Entry, EntryToItem, Item, ItemRelease
from models.collection import CollectionItem, Order
from models.sync_session import SyncSession
from pipeline.loaders.upsert import insert_ignore, insert_or_update
from pipeline.status.store import SyncStatusStore, resolve_session_status
from pipeline.transformers.assembler import assemble, latest_date
from pipeline.transformers.money import parse_money_to_minor_units
from schemas.assembled import AssembledEntities
from schemas.jobs import (
    BaseJobPayload,
    CollectionJobPayload,
    CollectionSyncItem,
    CsvJobPayload,
    OrderJobPayload,
    OrderSyncItem,
)
from schemas.scraped import ScrapedRecord

logger = logging.getLogger(__name__)

PERSISTENCE_FAILED_REASON = "Persistence failed while saving scraped items"

ORDER_UPDATE_COLUMNS = (
    "user_id", "title", "shop", "status",
    "order_date", "release_date", "payment_date", "shipping_date", "collection_date",
    "shipping_method", "shipping_fee", "taxes", "duties", "tariffs", "misc_fees", "notes",
    "updated_at",
)


@dataclass(frozen=True)
class FinalizeSuccess:
    persisted_rows: int


@dataclass(frozen=True)
class FinalizeFailure:
    reason: str
    error: PersistenceError


FinalizeResult = Union[FinalizeSuccess, FinalizeFailure]


def _as_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _score(value: str) -> Decimal:
    return Decimal(value) if value and value.strip() else Decimal("0.0")


class SyncFinalizer:
    """
    Persist one job's scraped records and caller rows.

    Internal id maps are rebuilt inside every transaction; nothing is
    cached between jobs.
    """

    def __init__(self, session_factory: async_sessionmaker, status_store: SyncStatusStore):
        self.session_factory = session_factory
        self.status_store = status_store

    # --------------------------------------------------
    # Entry point
    # --------------------------------------------------

    async def run(self, payload: BaseJobPayload, records: List[ScrapedRecord]) -> FinalizeResult:
        """Finalize and write the session outcome. Never raises for persistence errors."""
        result = await self.finalize(payload, records)

        existing = payload.existing_count
        scrape_rows = payload.scrape_row_count
        total_rows = existing + scrape_rows

        if isinstance(result, FinalizeFailure):
            success_count = existing
            fail_count = scrape_rows
            status = resolve_session_status(success_count, fail_count)
            message = (
                "Sync partially completed: Failed to persist scraped items."
                if success_count > 0
                else "Sync failed: Failed to persist scraped items."
            )

            await self.status_store.demote_scraped(
                payload.sync_session_id,
                [record.external_id for record in records],
                PERSISTENCE_FAILED_REASON,
            )
            await self.status_store.complete(
                payload.sync_session_id, status, message, success_count, fail_count,
            )
            return result

        success_count = existing + result.persisted_rows
        fail_count = scrape_rows - result.persisted_rows
        status = resolve_session_status(success_count, fail_count)
        label = {"completed": "completed", "partial": "partially completed", "failed": "failed"}[status.value]

        await self.status_store.complete(
            payload.sync_session_id,
            status,
            f"Sync {label}: Synced {success_count} out of {total_rows} items",
            success_count,
            fail_count,
        )
        return result

    async def finalize(self, payload: BaseJobPayload, records: List[ScrapedRecord]) -> FinalizeResult:
        assembled = assemble(records)
        scraped_ids = {record.external_id for record in records}

        try:
            async with self.session_factory() as db:
                async with db.begin():
                    item_ids = await self._upsert_catalog(db, assembled, payload)

                    if isinstance(payload, CsvJobPayload):
                        persisted = await self._persist_csv(db, payload, assembled, item_ids, scraped_ids, records)
                    elif isinstance(payload, OrderJobPayload):
                        persisted = await self._persist_order(db, payload, assembled, item_ids, scraped_ids)
                    elif isinstance(payload, CollectionJobPayload):
                        persisted = await self._persist_collection(db, payload, assembled, item_ids, scraped_ids)
                    else:
                        raise TypeError(f"Unsupported payload type: {type(payload).__name__}")

        except Exception as e:
            error = PersistenceError(
                "Failed to persist scraped items",
                context={
                    "sync_session_id": payload.sync_session_id,
                    "sync_type": payload.type,
                    "scraped_items": len(records),
                },
                original_exception=e,
            )
            logger.error(f"Failed to insert data to database: {error}", extra={"error_context": error.to_dict()})
            return FinalizeFailure(reason=PERSISTENCE_FAILED_REASON, error=error)

        logger.info(
            f"Persisted {persisted} scraped rows for sync session {payload.sync_session_id} "
            f"({len(assembled.items)} items, {len(assembled.item_releases)} releases, {len(assembled.entries)} entries)"
        )
        return FinalizeSuccess(persisted_rows=persisted)

    # --------------------------------------------------
    # Catalog entities
    # --------------------------------------------------

    async def _upsert_catalog(
        self,
        db: AsyncSession,
        assembled: AssembledEntities,
        payload: BaseJobPayload,
    ) -> Dict[int, str]:
        """Upsert items, entries, releases and links. Returns external -> internal item ids."""
        await insert_ignore(
            db,
            Item,
            [
                {
                    "id": new_id(),
                    "external_id": item.external_id,
                    "source": item.source,
                    "title": item.title,
                    "category": item.category,
                    "version": item.version,
                    "scale": item.scale or "NON_SCALE",
                    "height": item.height,
                    "width": item.width,
                    "depth": item.depth,
                    "image": item.image or None,
                }
                for item in assembled.items
            ],
            ("source", "external_id"),
        )

        # Rows inserted without scraping still need their internal id
        lookup_ids = {item.external_id for item in assembled.items}
        lookup_ids.update(self._unresolved_insert_ids(payload))
        item_ids = await self._internal_ids(db, Item, lookup_ids)

        await insert_ignore(
            db,
            Entry,
            [
                {
                    "id": new_id(),
                    "external_id": entry.external_id,
                    "source": entry.source,
                    "category": entry.category,
                    "name": entry.name,
                }
                for entry in assembled.entries
            ],
            ("source", "external_id"),
        )
        entry_ids = await self._internal_ids(db, Entry, {entry.external_id for entry in assembled.entries})

        await insert_ignore(
            db,
            ItemRelease,
            [
                {
                    "id": release.id,
                    "item_id": item_ids[release.item_external_id],
                    "date": release.date,
                    "type": release.type,
                    "price": release.price,
                    "price_currency": release.price_currency,
                    "barcode": release.barcode,
                }
                for release in assembled.item_releases
                if release.item_external_id in item_ids
            ],
            ("id",),
        )

        await insert_ignore(
            db,
            EntryToItem,
            [
                {
                    "entry_id": entry_ids[link.entry_external_id],
                    "item_id": item_ids[link.item_external_id],
                    "role": link.role,
                }
                for link in assembled.entry_to_items
                if link.entry_external_id in entry_ids and link.item_external_id in item_ids
            ],
            ("entry_id", "item_id"),
        )

        return item_ids

    async def _internal_ids(self, db: AsyncSession, model, external_ids: Iterable[int]) -> Dict[int, str]:
        ids = list(external_ids)
        if not ids:
            return {}
        result = await db.execute(
            select(model.id, model.external_id).where(
                model.source == ItemSource.MFC,
                model.external_id.in_(ids),
            )
        )
        return {external_id: internal_id for internal_id, external_id in result.all()}

    def _unresolved_insert_ids(self, payload: BaseJobPayload) -> Set[int]:
        if isinstance(payload, OrderJobPayload):
            rows = payload.order.items_to_insert
        elif isinstance(payload, CollectionJobPayload):
            rows = payload.collection.items_to_insert
        else:
            return set()
        return {row.item_external_id for row in rows if not row.item_id}

    # --------------------------------------------------
    # Caller rows
    # --------------------------------------------------

    async def _persist_csv(
        self,
        db: AsyncSession,
        payload: CsvJobPayload,
        assembled: AssembledEntities,
        item_ids: Dict[int, str],
        scraped_ids: Set[int],
        records: List[ScrapedRecord],
    ) -> int:
        latest = assembled.latest_release_by_external_id
        titles = {record.external_id: record.title for record in records}
        rows = [row for row in payload.items if row.item_external_id in scraped_ids]

        orders: Dict[str, dict] = {}
        for row in rows:
            if row.order_id is None or row.order_id in orders:
                continue
            info = latest.get(row.item_external_id)
            orders[row.order_id] = {
                "id": row.order_id,
                "user_id": payload.user_id,
                "title": titles.get(row.item_external_id) or f"Order {row.order_id}",
                "shop": row.shop,
                "status": row.status if row.status in OrderStatus._value2member_map_ else OrderStatus.ORDERED.value,
                "order_date": row.order_date,
                "release_date": _as_date(info.date if info else None),
                "payment_date": row.payment_date,
                "shipping_date": row.shipping_date,
                "collection_date": row.collecting_date,
                "shipping_method": row.shipping_method,
            }
        await insert_ignore(db, Order, list(orders.values()), ("id",))

        collection_rows = []
        for row in rows:
            item_id = item_ids.get(row.item_external_id)
            if item_id is None:
                continue
            info = latest.get(row.item_external_id)
            collection_rows.append({
                "id": new_id(),
                "user_id": payload.user_id,
                "item_id": item_id,
                "order_id": row.order_id,
                "release_id": info.release_id if info else None,
                "status": row.status,
                "count": row.count,
                "score": _score(row.score),
                "price": parse_money_to_minor_units(row.price) if row.price.strip() else 0,
                "shop": row.shop,
                "order_date": row.order_date,
                "payment_date": row.payment_date,
                "shipping_date": row.shipping_date,
                "collection_date": row.collecting_date,
                "shipping_method": row.shipping_method,
                "tags": [],
                "condition": "New",
                "notes": row.note,
            })

        await self._insert_collection(db, collection_rows)
        return len(collection_rows)

    async def _persist_order(
        self,
        db: AsyncSession,
        payload: OrderJobPayload,
        assembled: AssembledEntities,
        item_ids: Dict[int, str],
        scraped_ids: Set[int],
    ) -> int:
        details = payload.order.details
        latest = assembled.latest_release_by_external_id

        header = details.model_dump()
        header["updated_at"] = utcnow()
        newest = latest_date(info.date for info in latest.values())
        current = details.release_date.isoformat() if details.release_date else None
        if newest and (current is None or newest > current):
            header["release_date"] = _as_date(newest)
        await insert_or_update(db, Order, header, ("id",), ORDER_UPDATE_COLUMNS)

        scraped_rows = [row for row in payload.order.items_to_scrape if row.item_external_id in scraped_ids]
        inserted = self._order_rows(payload.order.items_to_insert, details.id, item_ids, latest, scraped=False)
        scraped = self._order_rows(scraped_rows, details.id, item_ids, latest, scraped=True)

        await self._insert_collection(db, inserted + scraped)

        await db.execute(
            update(SyncSession)
            .where(SyncSession.id == payload.sync_session_id)
            .values(order_id=details.id, pending_inserts=[])
            .execution_options(synchronize_session=False)
        )
        return len(scraped)

    def _order_rows(
        self,
        rows: List[OrderSyncItem],
        order_id: str,
        item_ids: Dict[int, str],
        latest,
        scraped: bool,
    ) -> List[dict]:
        collection_rows = []
        for row in rows:
            item_id = row.item_id if (row.item_id and not scraped) else item_ids.get(row.item_external_id)
            if item_id is None:
                continue
            info = latest.get(row.item_external_id)
            collection_rows.append({
                "id": new_id(),
                "user_id": row.user_id,
                "item_id": item_id,
                "order_id": order_id,
                "release_id": info.release_id if (scraped and info) else row.release_id,
                "status": row.status,
                "count": row.count,
                "score": Decimal("0.0"),
                "price": row.price,
                "shop": "",
                "order_date": row.order_date,
                "payment_date": row.payment_date,
                "shipping_date": row.shipping_date,
                "collection_date": row.collection_date,
                "shipping_method": row.shipping_method,
                "tags": [],
                "condition": row.condition,
                "notes": "",
            })
        return collection_rows

    async def _persist_collection(
        self,
        db: AsyncSession,
        payload: CollectionJobPayload,
        assembled: AssembledEntities,
        item_ids: Dict[int, str],
        scraped_ids: Set[int],
    ) -> int:
        latest = assembled.latest_release_by_external_id
        scraped_rows = [row for row in payload.collection.items_to_scrape if row.item_external_id in scraped_ids]

        inserted = self._collection_rows(payload.collection.items_to_insert, item_ids, latest, scraped=False)
        scraped = self._collection_rows(scraped_rows, item_ids, latest, scraped=True)

        await self._insert_collection(db, inserted + scraped)

        await db.execute(
            update(SyncSession)
            .where(SyncSession.id == payload.sync_session_id)
            .values(pending_inserts=[])
            .execution_options(synchronize_session=False)
        )
        return len(scraped)

    def _collection_rows(
        self,
        rows: List[CollectionSyncItem],
        item_ids: Dict[int, str],
        latest,
        scraped: bool,
    ) -> List[dict]:
        collection_rows = []
        for row in rows:
            item_id = row.item_id if (row.item_id and not scraped) else item_ids.get(row.item_external_id)
            if item_id is None:
                continue
            info = latest.get(row.item_external_id)
            collection_rows.append({
                "id": new_id(),
                "user_id": row.user_id,
                "item_id": item_id,
                "order_id": None,
                "release_id": info.release_id if (scraped and info) else row.release_id,
                "status": "Owned",
                "count": row.count,
                "score": _score(row.score),
                "price": row.price,
                "shop": row.shop,
                "order_date": row.order_date,
                "payment_date": row.payment_date,
                "shipping_date": row.shipping_date,
                "collection_date": row.collection_date,
                "shipping_method": row.shipping_method,
                "tags": row.tags,
                "condition": row.condition,
                "notes": row.notes,
            })
        return collection_rows

    async def _insert_collection(self, db: AsyncSession, rows: List[dict]) -> None:
        if rows:
            await db.execute(CollectionItem.__table__.insert(), rows)
