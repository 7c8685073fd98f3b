import logging
import threading
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient, ReturnDocument, UpdateOne
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from . import config
from .errors import NotFound, StoreUnavailable

logger = logging.getLogger("painel.database")

Snapshot = Tuple[Mapping[str, Any], ...]
Listener = Callable[[Snapshot], None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _object_id(doc_id: str) -> ObjectId:
    try:
        return ObjectId(doc_id)
    except (InvalidId, TypeError):
        raise NotFound(f"Documento {doc_id} não encontrado.")


def _serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc["_id"] = str(doc.get("_id"))
    return doc


class DocumentStore:
    """
    Collections of documents keyed by id, on top of a pymongo database.

    Writes made through the store push a fresh snapshot of the collection to
    every subscriber of that collection.
    """

    def __init__(self, db: Database):
        self.db = db
        self._listeners: Dict[str, List[Tuple[Listener, Optional[List]]]] = {}
        # Held from snapshot read to last delivery, so listeners see
        # snapshots of one collection in write order.
        self._publish_locks: Dict[str, threading.RLock] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, url: str = config.DATABASE_URL, name: str = config.DATABASE_NAME) -> "DocumentStore":
        client = MongoClient(url)
        return cls(client[name])

    def _collection(self, name: str) -> Collection:
        return self.db[name]

    def collection_names(self) -> List[str]:
        try:
            return self.db.list_collection_names()
        except PyMongoError as e:
            logger.exception("Mongo round trip failed: %s", e)
            raise StoreUnavailable("Banco de dados indisponível.") from e

    def create_document(self, collection_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            now = _now()
            data.setdefault("created_at", now)
            data["updated_at"] = now
            res = self._collection(collection_name).insert_one(data)
            data["_id"] = str(res.inserted_id)
        except PyMongoError as e:
            logger.exception("Mongo insert failed: %s", e)
            raise StoreUnavailable("Falha ao gravar no banco de dados.") from e
        self._publish(collection_name)
        return data

    def get_documents(
        self,
        collection_name: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        sort: Optional[List] = None,
    ) -> List[Dict[str, Any]]:
        try:
            cursor = self._collection(collection_name).find(filter_dict or {})
            if sort:
                cursor = cursor.sort(sort)
            if limit:
                cursor = cursor.limit(limit)
            return [_serialize(doc) for doc in cursor]
        except PyMongoError as e:
            logger.exception("Mongo query failed: %s", e)
            raise StoreUnavailable("Falha ao ler o banco de dados.") from e

    def get_one(self, collection_name: str, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            doc = self._collection(collection_name).find_one(filter_dict)
        except PyMongoError as e:
            logger.exception("Mongo query failed: %s", e)
            raise StoreUnavailable("Falha ao ler o banco de dados.") from e
        if doc:
            _serialize(doc)
        return doc

    def get_by_id(self, collection_name: str, doc_id: str) -> Dict[str, Any]:
        doc = self.get_one(collection_name, {"_id": _object_id(doc_id)})
        if doc is None:
            raise NotFound(f"Documento {doc_id} não encontrado.")
        return doc

    def update_document(self, collection_name: str, doc_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Partial update of one document; returns the document as stored afterwards."""
        update = {"$set": {**fields, "updated_at": _now()}}
        try:
            doc = self._collection(collection_name).find_one_and_update(
                {"_id": _object_id(doc_id)}, update, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.exception("Mongo update failed: %s", e)
            raise StoreUnavailable("Falha ao gravar no banco de dados.") from e
        if doc is None:
            raise NotFound(f"Documento {doc_id} não encontrado.")
        self._publish(collection_name)
        return _serialize(doc)

    def delete_document(self, collection_name: str, doc_id: str) -> None:
        try:
            res = self._collection(collection_name).delete_one({"_id": _object_id(doc_id)})
        except PyMongoError as e:
            logger.exception("Mongo delete failed: %s", e)
            raise StoreUnavailable("Falha ao apagar no banco de dados.") from e
        if not res.deleted_count:
            raise NotFound(f"Documento {doc_id} não encontrado.")
        self._publish(collection_name)

    def delete_documents(self, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None) -> int:
        try:
            res = self._collection(collection_name).delete_many(filter_dict or {})
        except PyMongoError as e:
            logger.exception("Mongo delete failed: %s", e)
            raise StoreUnavailable("Falha ao apagar no banco de dados.") from e
        self._publish(collection_name)
        return res.deleted_count

    def batch_update(self, collection_name: str, updates: Mapping[str, Mapping[str, Any]]) -> int:
        """
        Apply one partial update per document id in a single ordered bulk write.

        A failure is reported as StoreUnavailable. Without MONGO_TRANSACTIONS an
        ordered bulk write stops at the first error and keeps the updates before
        it, so subscribers are sent the collection as stored either way.
        """
        if not updates:
            return 0
        now = _now()
        ops = [
            UpdateOne({"_id": _object_id(doc_id)}, {"$set": {**fields, "updated_at": now}})
            for doc_id, fields in updates.items()
        ]
        collection = self._collection(collection_name)
        try:
            res = self._bulk_write(collection, ops)
        except PyMongoError as e:
            logger.exception("Mongo batch update failed: %s", e)
            raise StoreUnavailable("Falha na atualização em lote.") from e
        finally:
            self._publish(collection_name)
        return res.matched_count

    def _bulk_write(self, collection: Collection, ops: List[UpdateOne]):
        if not config.MONGO_TRANSACTIONS:
            return collection.bulk_write(ops, ordered=True)
        with self.db.client.start_session() as session:
            return session.with_transaction(lambda s: collection.bulk_write(ops, ordered=True, session=s))

    def subscribe(self, collection_name: str, listener: Listener, sort: Optional[List] = None) -> Callable[[], None]:
        """
        Register listener for snapshots of collection_name.

        The current snapshot is delivered immediately. Returns the unsubscribe
        callable.
        """
        entry = (listener, sort)
        with self._publish_lock(collection_name):
            with self._lock:
                self._listeners.setdefault(collection_name, []).append(entry)
            listener(self.snapshot(collection_name, sort))

        def _unsubscribe() -> None:
            with self._lock:
                entries = self._listeners.get(collection_name, [])
                if entry in entries:
                    entries.remove(entry)

        return _unsubscribe

    def snapshot(self, collection_name: str, sort: Optional[List] = None) -> Snapshot:
        return tuple(MappingProxyType(doc) for doc in self.get_documents(collection_name, sort=sort))

    def _publish_lock(self, collection_name: str):
        with self._lock:
            return self._publish_locks.setdefault(collection_name, threading.RLock())

    def _publish(self, collection_name: str) -> None:
        with self._publish_lock(collection_name):
            with self._lock:
                entries = list(self._listeners.get(collection_name, []))
            for listener, sort in entries:
                try:
                    listener(self.snapshot(collection_name, sort))
                except Exception:
                    logger.exception("Snapshot listener for %s failed", collection_name)
