import threading
import typing as t

from bavard_dict_storage.codec.base import ENTITY_ID, PARTITION_ID, AttributeCodec
from bavard_dict_storage.codec.dynamodb import DynamoDBAttributeCodec
from bavard_dict_storage.errors import OperationInvalidError
from bavard_dict_storage.persistence.dictionary_store.base import BaseDictionaryStore, Document
from bavard_dict_storage.retry import RetryPolicy
from bavard_dict_storage.types.entity import EntityT


class InMemoryDictionaryStore(BaseDictionaryStore[EntityT]):
    r"""
    A simple in-memory DAO for pydantic entities. Useful for testing or other lightweight needs. Entities are encoded
    exactly like a remote back-end would encode them (DynamoDB attribute values by default), so their round trip
    behaves the same. Listing a partition is :math:`\mathcal{O}(p)` in the size of the partition.
    """

    def __init__(
        self,
        entity_class: t.Type[EntityT],
        *,
        codec: t.Optional[AttributeCodec] = None,
        batch_size=25,
        retry_policy: t.Optional[RetryPolicy] = None,
        read_only=False,
    ):
        super().__init__(
            entity_class,
            codec if codec is not None else DynamoDBAttributeCodec(),
            retry_policy=retry_policy,
            batch_size=batch_size,
            read_only=read_only,
        )
        self._lock = threading.RLock()

    def _connect(self) -> t.Dict[str, t.Dict[str, Document]]:
        # Documents in the db can be resolved via `self.connection[partition_id][entity_id]`.
        return {}

    def _exists(self, entity_id: str, partition_id: str) -> bool:
        return self._load(entity_id, partition_id) is not None

    def _load(self, entity_id: str, partition_id: str) -> t.Optional[Document]:
        with self._lock:
            return self.connection.get(partition_id, {}).get(entity_id)

    def _store(self, document: Document):
        entity_id = self.codec.decode_key(document, ENTITY_ID)
        partition_id = self.codec.decode_key(document, PARTITION_ID)
        with self._lock:
            self.connection.setdefault(partition_id, {})[entity_id] = document

    def _store_batch(self, documents: t.List[Document]):
        with self._lock:
            for document in documents:
                self._store(document)

    def _remove(self, entity_id: str, partition_id: str):
        with self._lock:
            partition = self.connection.get(partition_id, {})
            if entity_id not in partition:
                raise OperationInvalidError(f"entity [{partition_id}/{entity_id}] does not exist.")
            del partition[entity_id]
            if not partition:
                del self.connection[partition_id]

    def _remove_batch(self, partition_id: str, entity_ids: t.List[str]):
        with self._lock:
            partition = self.connection.get(partition_id, {})
            for entity_id in entity_ids:
                partition.pop(entity_id, None)
            if not partition:
                self.connection.pop(partition_id, None)

    def _scan_partition(self, partition_id: str) -> t.Iterator[Document]:
        with self._lock:
            # Snapshot the partition so concurrent writers can't invalidate the iterator.
            documents = list(self.connection.get(partition_id, {}).values())
        return iter(documents)
