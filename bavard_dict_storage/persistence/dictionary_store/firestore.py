import os
import typing as t

from bavard_dict_storage.utils import ImportExtraError


try:
    from google.api_core.exceptions import NotFound
    from google.auth.credentials import AnonymousCredentials, Credentials
    from google.cloud import firestore
    from google.cloud.firestore import DocumentSnapshot
    from google.cloud.firestore_v1.field_path import FieldPath
except ImportError:
    raise ImportExtraError("gcp", __name__)

from bavard_dict_storage.codec.base import ENTITY_ID, PARTITION_ID
from bavard_dict_storage.codec.firestore import FirestoreValueCodec
from bavard_dict_storage.errors import ConfigurationError, InvalidArgumentError, OperationInvalidError
from bavard_dict_storage.gcp.errors import is_transient_gcp_error
from bavard_dict_storage.persistence.dictionary_store.base import BaseDictionaryStore, Document
from bavard_dict_storage.retry import RetryPolicy
from bavard_dict_storage.settings import FirestoreSettings, RetrySettings
from bavard_dict_storage.types.entity import EntityT


ENTITIES_COLLECTION = "entities"


def _check_document_id(value: str, param_name: str):
    if "/" in value or value in {".", ".."}:
        raise InvalidArgumentError(f"[{param_name}] can't be used as a Firestore document id: {value!r}", param_name)


class FirestoreDictionaryStore(BaseDictionaryStore[EntityT]):
    """
    A Firestore DAO for pydantic entities. Each partition is a document in the ``collection_name`` collection, and
    each entity is a document in that partition's ``entities`` sub-collection, i.e. entities live at
    ``<collection_name>/<partition_id>/entities/<entity_id>``. Entity and partition ids therefore can't contain ``/``.
    Firestore creates collections implicitly, so there is nothing to set up ahead of time.

    When the ``FIRESTORE_EMULATOR_HOST`` environment variable is set, anonymous credentials and the ``test`` project
    are used unless others are given.

    Partitions are read ``page_size`` documents at a time, in document id order.
    """

    max_batch_size = 500

    def __init__(
        self,
        collection_name: str,
        entity_class: t.Type[EntityT],
        *,
        project: t.Optional[str] = None,
        credentials: t.Optional[Credentials] = None,
        batch_size=25,
        page_size=300,
        retry_policy: t.Optional[RetryPolicy] = None,
        read_only=False,
    ):
        super().__init__(
            entity_class,
            FirestoreValueCodec(),
            retry_policy=retry_policy if retry_policy is not None else RetryPolicy(is_transient_gcp_error),
            batch_size=batch_size,
            read_only=read_only,
        )
        if not collection_name:
            raise ConfigurationError("a Firestore collection name is required")
        if page_size < 1:
            raise ConfigurationError(f"page_size must be at least 1, got {page_size}")
        self.collection_name = collection_name
        self.page_size = page_size
        self._project = project
        self._credentials = credentials

    @classmethod
    def from_settings(
        cls,
        settings: FirestoreSettings,
        entity_class: t.Type[EntityT],
        *,
        credentials: t.Optional[Credentials] = None,
        retry_settings: t.Optional[RetrySettings] = None,
        read_only=False,
    ) -> "FirestoreDictionaryStore[EntityT]":
        retry_policy = (retry_settings or RetrySettings()).make_policy(is_transient_gcp_error)
        return cls(
            entity_class=entity_class,
            credentials=credentials,
            retry_policy=retry_policy,
            read_only=read_only,
            **settings.model_dump(),
        )

    def _connect(self) -> firestore.Client:
        project, credentials = self._project, self._credentials
        if os.getenv("FIRESTORE_EMULATOR_HOST") is not None:
            # We are in a testing context. Make sure the client's default args
            # work in this emulator scenario.
            if credentials is None:
                credentials = AnonymousCredentials()
            if project is None:
                project = "test"
        return firestore.Client(project=project, credentials=credentials)

    def _partition(self, partition_id: str):
        _check_document_id(partition_id, "partition_id")
        return self.connection.collection(self.collection_name).document(partition_id).collection(ENTITIES_COLLECTION)

    def _document(self, entity_id: str, partition_id: str):
        _check_document_id(entity_id, "entity_id")
        return self._partition(partition_id).document(entity_id)

    def _exists(self, entity_id: str, partition_id: str) -> bool:
        snapshot = self.retry_policy.execute(self._document(entity_id, partition_id).get)
        return snapshot.exists

    def _load(self, entity_id: str, partition_id: str) -> t.Optional[Document]:
        snapshot = self.retry_policy.execute(self._document(entity_id, partition_id).get)
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    def _store(self, document: Document):
        reference = self._document(document[ENTITY_ID], document[PARTITION_ID])
        self.retry_policy.execute(reference.set, document)

    def _store_batch(self, documents: t.List[Document]):
        batch = self.connection.batch()
        for document in documents:
            batch.set(self._document(document[ENTITY_ID], document[PARTITION_ID]), document)
        self.retry_policy.execute(batch.commit)

    def _remove(self, entity_id: str, partition_id: str):
        reference = self._document(entity_id, partition_id)
        try:
            self.retry_policy.execute(reference.delete, option=self.connection.write_option(exists=True))
        except NotFound as exc:
            raise OperationInvalidError(f"entity [{partition_id}/{entity_id}] does not exist.") from exc

    def _remove_batch(self, partition_id: str, entity_ids: t.List[str]):
        batch = self.connection.batch()
        for entity_id in entity_ids:
            batch.delete(self._document(entity_id, partition_id))
        self.retry_policy.execute(batch.commit)

    def _scan_partition(self, partition_id: str) -> t.Iterator[Document]:
        return (snapshot.to_dict() for snapshot in self._scan_snapshots(partition_id))

    def _scan_entity_ids(self, partition_id: str) -> t.Iterator[str]:
        return (snapshot.id for snapshot in self._scan_snapshots(partition_id))

    def _scan_snapshots(self, partition_id: str) -> t.Iterator[DocumentSnapshot]:
        query = self._partition(partition_id).order_by(FieldPath.document_id()).limit(self.page_size)
        return self._page_through(query)

    def _page_through(self, query: firestore.Query) -> t.Iterator[DocumentSnapshot]:
        """Yields the results of ``query`` one page at a time, retrying each page fetch on its own."""

        def fetch_page(page_query: firestore.Query) -> t.List[DocumentSnapshot]:
            return list(page_query.stream())

        last = None
        while True:
            page = self.retry_policy.execute(fetch_page, query if last is None else query.start_after(last))
            yield from page
            if len(page) < self.page_size:
                return
            last = page[-1]
