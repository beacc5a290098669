"""
Initiatives registry: product work tracked with an owner, status, expected
metrics and an optional PRD link.

Uses the same index + detail layout as documents (``initiatives:index`` and
``initiatives:detail:<id>``). An initiative's id is derived from its name
at creation and stays fixed across renames. Initiatives are searched
lexically (see search.py) and never embedded.
"""

import json
import logging
from typing import Callable, Optional

from .config import InitiativeLimits
from .errors import DocumentTooLargeError, InvalidStatusError, NotFoundError, ValidationError
from .formatting import DEFAULT_PAGE_SIZE, paginate
from .guard import SizedEntry, WriteLimits, validate_write
from .indexed_store import IndexedStore, IndexedStoreConfig, prefixed_key
from .protocol import KVStoreProtocol
from .types import (
    INITIATIVE_STATUSES,
    METRIC_TYPES,
    ExpectedMetric,
    Initiative,
    InitiativeIndex,
    InitiativeMetadata,
    InitiativeStatus,
    OperationResult,
    Page,
    sanitize_title,
    utc_now,
)

logger = logging.getLogger(__name__)

INITIATIVES_INDEX_KEY = "initiatives:index"
INITIATIVES_PREFIX = "initiatives:detail:"


def name_to_id(name: str) -> str:
    return sanitize_title(name)


def _load_index(raw: str) -> InitiativeIndex:
    data = json.loads(raw)
    return InitiativeIndex(
        [InitiativeMetadata.from_dict(d) for d in data.get("initiatives", [])]
    )


def _dump_index(index: InitiativeIndex) -> str:
    return json.dumps({"initiatives": [m.to_dict() for m in index.initiatives]})


def initiatives_store_config() -> IndexedStoreConfig[InitiativeIndex, Initiative, InitiativeMetadata]:
    return IndexedStoreConfig(
        index_key=INITIATIVES_INDEX_KEY,
        item_key=prefixed_key(INITIATIVES_PREFIX),
        item_id=lambda init: init.id,
        meta_id=lambda meta: meta.id,
        to_metadata=lambda init: init.to_metadata(),
        empty_index=InitiativeIndex,
        get_entries=lambda index: index.initiatives,
        set_entries=lambda index, entries: InitiativeIndex(entries),
        load_index=_load_index,
        dump_index=_dump_index,
        load_item=lambda raw: Initiative.from_dict(json.loads(raw)),
        dump_item=lambda init: json.dumps(init.to_dict()),
    )


class InitiativeStore:
    """
    CRUD for initiatives. Lookups accept an id or a case-insensitive name.

    Failures raise ValidationError or NotFoundError subclasses.
    """

    def __init__(self, kv: KVStoreProtocol, limits: Optional[InitiativeLimits] = None):
        self._store = IndexedStore(kv, initiatives_store_config())
        self._limits = limits or InitiativeLimits()

    @property
    def store(self) -> IndexedStore[InitiativeIndex, Initiative, InitiativeMetadata]:
        return self._store

    def _write_limits(self) -> WriteLimits:
        return WriteLimits(
            max_title_length=self._limits.max_name_length,
            max_item_size=self._limits.max_description_length,
            max_items=self._limits.max_initiatives,
            title_label="Name",
            item_label="Description",
            entity="initiative",
            entity_plural="initiatives",
            store_name="Initiatives",
        )

    def find(self, id_or_name: str) -> Optional[InitiativeMetadata]:
        """Index entry by exact id, then by case-insensitive name."""
        entries = self._store.entries()
        for meta in entries:
            if meta.id == id_or_name:
                return meta
        key = id_or_name.strip().lower()
        for meta in entries:
            if meta.name.lower() == key:
                return meta
        return None

    def get(self, id_or_name: str) -> Optional[Initiative]:
        meta = self.find(id_or_name)
        if meta is None:
            return None
        return self._store.get_item(meta.id)

    def _require(self, id_or_name: str) -> Initiative:
        init = self.get(id_or_name)
        if init is None:
            raise NotFoundError("initiative", id_or_name)
        return init

    @staticmethod
    def _unique_id(name: str, entries: list[InitiativeMetadata]) -> str:
        """Id for a new initiative; a renamed initiative may still hold the plain slug."""
        base = name_to_id(name)
        taken = {m.id for m in entries}
        id, n = base, 2
        while id in taken:
            id, n = f"{base}-{n}", n + 1
        return id

    def _save(self, init: Initiative) -> None:
        self._store.save_item(init)
        self._store.upsert_index_entry(init)

    def _modify(self, id_or_name: str, change: Callable[[Initiative, str], None]) -> Initiative:
        """Load, mutate and persist an initiative under the index lock."""
        with self._store.index_lock():
            init = self._require(id_or_name)
            now = utc_now()
            change(init, now)
            init.updated_at = now
            self._save(init)
        return init

    # --- Writes ------------------------------------------------------------

    def add(self, name: str, description: str, owner: str, created_by: str) -> OperationResult:
        """Create an initiative in status "proposed"."""
        name = name.strip()
        with self._store.index_lock():
            entries = self._store.entries()
            validate_write(
                name, len(description),
                [SizedEntry(m.name, 0) for m in entries],
                self._write_limits(),
            )
            now = utc_now()
            init = Initiative(
                id=self._unique_id(name, entries),
                name=name,
                description=description,
                owner=owner,
                status=InitiativeStatus("proposed", now, created_by),
                created_at=now,
                created_by=created_by,
                updated_at=now,
            )
            self._save(init)

        logger.info("Created initiative %r", name)
        return OperationResult(
            success=True,
            message=f'Created initiative "{name}" with status proposed. Owner: {owner}',
            data=init,
        )

    def update_status(self, id_or_name: str, status: str, updated_by: str) -> OperationResult:
        status = status.strip().lower()
        if status not in INITIATIVE_STATUSES:
            raise InvalidStatusError(status, INITIATIVE_STATUSES)

        def change(init: Initiative, now: str) -> None:
            init.status = InitiativeStatus(status, now, updated_by)

        init = self._modify(id_or_name, change)
        return OperationResult(True, f'Updated "{init.name}" status to {status}.', data=init)

    def update_prd(self, id_or_name: str, prd_link: str, updated_by: str) -> OperationResult:
        def change(init: Initiative, now: str) -> None:
            init.prd_link = prd_link.strip() or None

        init = self._modify(id_or_name, change)
        return OperationResult(True, f'Added PRD link to "{init.name}".', data=init)

    def update_name(self, id_or_name: str, new_name: str, updated_by: str) -> OperationResult:
        new_name = new_name.strip()
        with self._store.index_lock():
            init = self._require(id_or_name)
            old_name = init.name
            validate_write(
                new_name, len(init.description),
                [SizedEntry(m.name, 0) for m in self._store.entries()],
                self._write_limits(),
                replacing=old_name,
            )
            init.name = new_name
            init.updated_at = utc_now()
            self._save(init)
        return OperationResult(True, f'Renamed "{old_name}" to "{new_name}".', data=init)

    def update_description(self, id_or_name: str, description: str, updated_by: str) -> OperationResult:
        limit = self._limits.max_description_length
        if len(description) > limit:
            raise DocumentTooLargeError(len(description), limit, "Description")

        def change(init: Initiative, now: str) -> None:
            init.description = description

        init = self._modify(id_or_name, change)
        return OperationResult(True, f'Updated description for "{init.name}".', data=init)

    def update_owner(self, id_or_name: str, owner: str, updated_by: str) -> OperationResult:
        def change(init: Initiative, now: str) -> None:
            init.owner = owner

        init = self._modify(id_or_name, change)
        return OperationResult(True, f'Updated owner of "{init.name}" to {owner}.', data=init)

    def add_metric(self, id_or_name: str, metric: ExpectedMetric, updated_by: str) -> OperationResult:
        if metric.type not in METRIC_TYPES:
            raise ValidationError(
                f'Invalid metric type "{metric.type}". Use one of: {", ".join(METRIC_TYPES)}.'
            )

        def change(init: Initiative, now: str) -> None:
            init.expected_metrics.append(metric)

        init = self._modify(id_or_name, change)
        return OperationResult(
            True,
            f'Added {metric.type_label} metric to "{init.name}": {metric.name} - {metric.target}',
            data=init,
        )

    def remove(self, id_or_name: str) -> OperationResult:
        """Delete an initiative. Ghost entries are removed from the index too."""
        with self._store.index_lock():
            meta = self.find(id_or_name)
            if meta is None:
                raise NotFoundError("initiative", id_or_name)
            self._store.delete_item(meta.id)
            self._store.remove_from_index(meta.id)
        logger.info("Removed initiative %r", meta.name)
        return OperationResult(True, f'Removed initiative "{meta.name}".', data=meta)

    # --- Reads -------------------------------------------------------------

    def entries(self) -> list[InitiativeMetadata]:
        return self._store.entries()

    def list_page(
        self,
        owner: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[InitiativeMetadata]:
        """Filter by exact owner and status, then paginate."""
        items = self._store.entries()
        if owner:
            items = [i for i in items if i.owner == owner]
        if status:
            items = [i for i in items if i.status == status]
        return paginate(items, page=page, page_size=page_size)

    def active(self) -> list[Initiative]:
        """Full records of active and proposed initiatives, ghosts skipped."""
        return [
            init for init in self._store.get_all_items()
            if init.status.value in ("active", "proposed")
        ]
