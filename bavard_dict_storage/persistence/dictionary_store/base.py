import threading
import typing as t
from abc import ABC, abstractmethod
from enum import Enum

from loguru import logger

from bavard_dict_storage.codec.base import ENTITY_ID, AttributeCodec
from bavard_dict_storage.errors import ConfigurationError, InvalidArgumentError, OperationInvalidError
from bavard_dict_storage.retry import RetryPolicy
from bavard_dict_storage.types.entity import DictionaryStorageEntity, EntityT
from bavard_dict_storage.types.metadata import get_type_metadata
from bavard_dict_storage.utils import chunked, require_non_empty


Document = t.Dict[str, t.Any]


class ConnectionState(Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    READY = "ready"


class BaseDictionaryStore(ABC, t.Generic[EntityT]):
    """
    Abstract base class for implementing a Data Access Object (DAO) which saves pydantic models to a partitioned
    key/attribute storage back-end. Entities are wrapped in a :class:`~bavard_dict_storage.types.entity
    .DictionaryStorageEntity` envelope, and are addressed by ``(entity_id, partition_id)``. Only lookup by key and
    enumeration of a single partition are supported.

    The back-end connection is created lazily, exactly once, on first use. If ``auto_setup`` is enabled, the back-end
    schema object (e.g. a table) is created at the same time if it doesn't exist yet. Concurrent callers block until
    the connection is ready.

    Batch operations are split into chunks of at most ``batch_size`` entities, written one chunk at a time, in input
    order. They are **not** atomic: if a chunk fails, the chunks before it stay written.

    Parameters
    ----------
    entity_class : pydantic model type
        The class that persisted entities should be deserialized into.
    codec : AttributeCodec
        Translates entities to and from the back-end's native attribute values.
    retry_policy : RetryPolicy, optional
        The policy every remote call is made through. Subclasses supply a default that knows the back-end's transient
        errors.
    auto_setup : bool
        Whether to create the back-end schema object on first use if it doesn't exist.
    batch_size : int
        The largest number of entities sent to the back-end in one batch call. Can't exceed :attr:`max_batch_size`.
    read_only : bool
        Whether the store is read only. Mutating operations raise
        :class:`~bavard_dict_storage.errors.OperationInvalidError` if so.
    """

    max_batch_size = 25
    """The back-end's limit on the number of operations in one batch call."""

    def __init__(
        self,
        entity_class: t.Type[EntityT],
        codec: AttributeCodec,
        *,
        retry_policy: t.Optional[RetryPolicy] = None,
        auto_setup: bool = True,
        batch_size: int = 25,
        read_only: bool = False,
    ):
        if not 1 <= batch_size <= self.max_batch_size:
            raise ConfigurationError(
                f"batch_size must be between 1 and {self.max_batch_size} for {type(self).__name__}, got {batch_size}"
            )
        self.entity_cls = entity_class
        self.metadata = get_type_metadata(entity_class)
        self.codec = codec
        self.retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self.auto_setup = auto_setup
        self.batch_size = batch_size
        self._read_only = read_only
        self._state = ConnectionState.UNINITIALIZED
        self._connection: t.Any = None
        self._connection_lock = threading.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connection(self) -> t.Any:
        """The back-end connection handle, created (and the back-end set up) on first access."""
        if self._state is ConnectionState.READY:
            return self._connection
        with self._connection_lock:
            if self._state is not ConnectionState.READY:
                self._state = ConnectionState.CONNECTING
                try:
                    connection = self._connect()
                    if self.auto_setup:
                        self._setup(connection)
                except BaseException:
                    self._state = ConnectionState.UNINITIALIZED
                    raise
                self._connection = connection
                self._state = ConnectionState.READY
                logger.debug(f"{type(self).__name__} for {self.entity_cls.__name__} is connected")
        return self._connection

    def exists(self, entity_id: str, partition_id: str) -> bool:
        """Returns ``True`` if an entity is stored under the given key."""
        require_non_empty(entity_id, "entity_id")
        require_non_empty(partition_id, "partition_id")
        return self._exists(entity_id, partition_id)

    def get(self, entity_id: str, partition_id: str) -> t.Optional[DictionaryStorageEntity[EntityT]]:
        """Retrieves an entity from the database, returning ``None`` if it doesn't exist."""
        require_non_empty(entity_id, "entity_id")
        require_non_empty(partition_id, "partition_id")
        document = self._load(entity_id, partition_id)
        if document is None:
            return None
        return self.codec.decode_document(document, self.metadata)

    def put(self, entity: DictionaryStorageEntity[EntityT]):
        """Inserts ``entity``, replacing any entity already stored under the same key."""
        self.assert_can_edit()
        self._store(self._encode(entity))

    def put_batch(self, entities: t.Iterable[DictionaryStorageEntity[EntityT]]) -> int:
        """
        Inserts or replaces all of ``entities``, ``batch_size`` at a time. Returns the number of entities written.
        Every entity is validated before the first chunk is sent, so invalid input writes nothing.
        """
        self.assert_can_edit()
        if entities is None:
            raise InvalidArgumentError("[entities] is required.", "entities")
        documents = [self._encode(entity) for entity in entities]
        num_written = 0
        for chunk in chunked(documents, self.batch_size):
            self._store_batch(chunk)
            num_written += len(chunk)
            logger.debug(f"wrote a batch of {len(chunk)} entities ({num_written} so far)")
        return num_written

    def delete(self, entity_id: str, partition_id: str) -> bool:
        """
        Deletes the entity stored under the given key. Returns ``True`` once it is deleted.

        Raises
        ------
        OperationInvalidError
            If no entity is stored under the key, or the back-end container doesn't exist.
        """
        self.assert_can_edit()
        require_non_empty(entity_id, "entity_id")
        require_non_empty(partition_id, "partition_id")
        self._remove(entity_id, partition_id)
        return True

    def delete_partition(self, partition_id: str) -> int:
        """
        Deletes every entity in the partition, ``batch_size`` at a time. Returns the number of entities deleted. This
        is not atomic: if it fails part way through, the partition is left partially deleted.
        """
        self.assert_can_edit()
        require_non_empty(partition_id, "partition_id")
        entity_ids = list(self._scan_entity_ids(partition_id))
        for chunk in chunked(entity_ids, self.batch_size):
            self._remove_batch(partition_id, chunk)
        logger.debug(f"deleted {len(entity_ids)} entities from partition {partition_id}")
        return len(entity_ids)

    def list_partition(self, partition_id: str) -> t.Iterator[DictionaryStorageEntity[EntityT]]:
        """
        Lazily yields every entity in the partition, in whatever order the back-end returns them. The partition id is
        validated immediately, not when iteration starts.
        """
        require_non_empty(partition_id, "partition_id")
        return (self.codec.decode_document(doc, self.metadata) for doc in self._scan_partition(partition_id))

    def assert_can_edit(self):
        """Raises an :class:`~bavard_dict_storage.errors.OperationInvalidError` if this store is read only."""
        if self._read_only:
            raise OperationInvalidError("dictionary store is read only")

    def _encode(self, entity: DictionaryStorageEntity[EntityT]) -> Document:
        if entity is None:
            raise InvalidArgumentError("[entity] is required.", "entity")
        require_non_empty(entity.entity_id, "entity_id")
        require_non_empty(entity.partition_id, "partition_id")
        if not isinstance(entity.entity, self.entity_cls):
            raise InvalidArgumentError(
                f"expected a {self.entity_cls.__name__} entity, got {type(entity.entity).__name__}", "entity"
            )
        return self.codec.encode_document(entity, self.metadata)

    def _scan_entity_ids(self, partition_id: str) -> t.Iterator[str]:
        """Yields the entity ids in a partition. Subclasses can override this to avoid fetching whole documents."""
        for doc in self._scan_partition(partition_id):
            yield self.codec.decode_key(doc, ENTITY_ID)

    @abstractmethod
    def _connect(self) -> t.Any:
        """Creates the back-end connection handle."""
        pass

    def _setup(self, connection: t.Any):
        """Creates the back-end schema object if it doesn't exist yet. Only called when ``auto_setup`` is enabled."""
        pass

    @abstractmethod
    def _exists(self, entity_id: str, partition_id: str) -> bool:
        pass

    @abstractmethod
    def _load(self, entity_id: str, partition_id: str) -> t.Optional[Document]:
        pass

    @abstractmethod
    def _store(self, document: Document):
        pass

    @abstractmethod
    def _store_batch(self, documents: t.List[Document]):
        """Writes one chunk of at most ``batch_size`` documents in a single back-end batch call."""
        pass

    @abstractmethod
    def _remove(self, entity_id: str, partition_id: str):
        """Deletes one document, raising ``OperationInvalidError`` if it doesn't exist."""
        pass

    @abstractmethod
    def _remove_batch(self, partition_id: str, entity_ids: t.List[str]):
        """Deletes one chunk of at most ``batch_size`` documents in a single back-end batch call."""
        pass

    @abstractmethod
    def _scan_partition(self, partition_id: str) -> t.Iterator[Document]:
        pass
