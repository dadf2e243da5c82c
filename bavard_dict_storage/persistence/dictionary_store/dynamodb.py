import os
import time
import typing as t
from contextlib import contextmanager

from loguru import logger

from bavard_dict_storage.utils import ImportExtraError


try:
    from botocore.exceptions import ClientError
except ImportError:
    raise ImportExtraError("aws", __name__)

from bavard_dict_storage.aws.errors import error_code, is_transient_aws_error
from bavard_dict_storage.aws.regions import create_client
from bavard_dict_storage.codec.base import ENTITY_ID, PARTITION_ID
from bavard_dict_storage.codec.dynamodb import DynamoDBAttributeCodec
from bavard_dict_storage.errors import ConfigurationError, OperationInvalidError, RetryableError
from bavard_dict_storage.persistence.dictionary_store.base import BaseDictionaryStore, Document
from bavard_dict_storage.retry import RetryingProxy, RetryPolicy
from bavard_dict_storage.settings import DynamoDBSettings, RetrySettings
from bavard_dict_storage.types.entity import EntityT


class DynamoDBDictionaryStore(BaseDictionaryStore[EntityT]):
    """
    A DynamoDB DAO for pydantic entities. Each entity is stored as one item, keyed by ``PartitionId`` (the hash key)
    and ``EntityId`` (the range key), with the entity's fields in the ``Entity`` map attribute. Listing a partition is a
    paginated ``Query`` on the hash key, and batch operations use ``BatchWriteItem``, 25 requests at a time.

    If ``auto_setup`` is enabled, the table is created on first use if it doesn't exist, and the client blocks, polling
    every ``poll_interval`` seconds, until the table is active.

    Region, endpoint, and credentials default to the ``AWS_REGION``, ``AWS_ENDPOINT``, ``AWS_ACCESS_KEY_ID``, and
    ``AWS_SECRET_ACCESS_KEY`` environment variables respectively. Credentials fall back to boto3's default credential
    chain.
    """

    def __init__(
        self,
        table_name: str,
        entity_class: t.Type[EntityT],
        *,
        region_name: t.Optional[str] = None,
        endpoint_url: t.Optional[str] = None,
        aws_access_key_id: t.Optional[str] = None,
        aws_secret_access_key: t.Optional[str] = None,
        auto_setup=True,
        read_capacity_units=10,
        write_capacity_units=10,
        batch_size=25,
        poll_interval=5.0,
        retry_policy: t.Optional[RetryPolicy] = None,
        read_only=False,
    ):
        super().__init__(
            entity_class,
            DynamoDBAttributeCodec(),
            retry_policy=retry_policy if retry_policy is not None else RetryPolicy(is_transient_aws_error),
            auto_setup=auto_setup,
            batch_size=batch_size,
            read_only=read_only,
        )
        if not table_name:
            raise ConfigurationError("a DynamoDB table name is required")
        self.table_name = table_name
        self.region_name = region_name or os.getenv("AWS_REGION")
        self.endpoint_url = endpoint_url or os.getenv("AWS_ENDPOINT")
        self._aws_access_key_id = aws_access_key_id or os.getenv("AWS_ACCESS_KEY_ID")
        self._aws_secret_access_key = aws_secret_access_key or os.getenv("AWS_SECRET_ACCESS_KEY")
        self.read_capacity_units = read_capacity_units
        self.write_capacity_units = write_capacity_units
        self.poll_interval = poll_interval

    @classmethod
    def from_settings(
        cls,
        settings: DynamoDBSettings,
        entity_class: t.Type[EntityT],
        *,
        retry_settings: t.Optional[RetrySettings] = None,
        read_only=False,
    ) -> "DynamoDBDictionaryStore[EntityT]":
        retry_policy = (retry_settings or RetrySettings()).make_policy(is_transient_aws_error)
        return cls(
            entity_class=entity_class,
            retry_policy=retry_policy,
            read_only=read_only,
            **settings.model_dump(),
        )

    def _connect(self) -> RetryingProxy:
        client = self.retry_policy.execute(
            create_client,
            "dynamodb",
            region_name=self.region_name,
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self._aws_access_key_id,
            aws_secret_access_key=self._aws_secret_access_key,
        )
        return RetryingProxy(client, self.retry_policy)

    def _setup(self, client: RetryingProxy):
        status = self._table_status(client)
        if status is None:
            logger.info(f"creating DynamoDB table {self.table_name}")
            try:
                client.create_table(
                    TableName=self.table_name,
                    AttributeDefinitions=[
                        {"AttributeName": ENTITY_ID, "AttributeType": "S"},
                        {"AttributeName": PARTITION_ID, "AttributeType": "S"},
                    ],
                    KeySchema=[
                        {"AttributeName": PARTITION_ID, "KeyType": "HASH"},
                        {"AttributeName": ENTITY_ID, "KeyType": "RANGE"},
                    ],
                    ProvisionedThroughput={
                        "ReadCapacityUnits": self.read_capacity_units,
                        "WriteCapacityUnits": self.write_capacity_units,
                    },
                )
            except ClientError as exc:
                # Someone else created the table in the meantime, which is fine.
                if error_code(exc) != "ResourceInUseException":
                    raise
        if status != "ACTIVE":
            self._wait_until_active(client)

    def _wait_until_active(self, client: RetryingProxy):
        while self._table_status(client) != "ACTIVE":
            time.sleep(self.poll_interval)
        logger.info(f"DynamoDB table {self.table_name} is active")

    def _table_status(self, client: RetryingProxy) -> t.Optional[str]:
        """The table's status, or ``None`` if it doesn't exist."""
        try:
            return client.describe_table(TableName=self.table_name)["Table"]["TableStatus"]
        except ClientError as exc:
            if error_code(exc) == "ResourceNotFoundException":
                return None
            raise

    @contextmanager
    def _translate_errors(self):
        try:
            yield
        except ClientError as exc:
            if error_code(exc) == "ResourceNotFoundException":
                raise OperationInvalidError(f"DynamoDB table [{self.table_name}] does not exist.") from exc
            raise

    def _key(self, entity_id: str, partition_id: str) -> Document:
        return self.codec.encode_key(entity_id, partition_id)

    def _exists(self, entity_id: str, partition_id: str) -> bool:
        with self._translate_errors():
            res = self.connection.get_item(
                TableName=self.table_name,
                Key=self._key(entity_id, partition_id),
                ProjectionExpression="#eid",
                ExpressionAttributeNames={"#eid": ENTITY_ID},
            )
        return "Item" in res

    def _load(self, entity_id: str, partition_id: str) -> t.Optional[Document]:
        with self._translate_errors():
            res = self.connection.get_item(TableName=self.table_name, Key=self._key(entity_id, partition_id))
        return res.get("Item")

    def _store(self, document: Document):
        with self._translate_errors():
            self.connection.put_item(TableName=self.table_name, Item=document)

    def _store_batch(self, documents: t.List[Document]):
        self._batch_write([{"PutRequest": {"Item": document}} for document in documents])

    def _remove(self, entity_id: str, partition_id: str):
        with self._translate_errors():
            try:
                self.connection.delete_item(
                    TableName=self.table_name,
                    Key=self._key(entity_id, partition_id),
                    ConditionExpression="attribute_exists(#eid)",
                    ExpressionAttributeNames={"#eid": ENTITY_ID},
                )
            except ClientError as exc:
                if error_code(exc) == "ConditionalCheckFailedException":
                    raise OperationInvalidError(f"entity [{partition_id}/{entity_id}] does not exist.") from exc
                raise

    def _remove_batch(self, partition_id: str, entity_ids: t.List[str]):
        self._batch_write([{"DeleteRequest": {"Key": self._key(entity_id, partition_id)}} for entity_id in entity_ids])

    def _batch_write(self, requests: t.List[Document]):
        """
        Sends one ``BatchWriteItem`` call. Any requests DynamoDB leaves unprocessed (e.g. because of throttling) are
        re-sent under the retry policy.
        """
        pending = {self.table_name: requests}

        def write_pending():
            nonlocal pending
            with self._translate_errors():
                res = self.connection.batch_write_item(RequestItems=pending)
            pending = res.get("UnprocessedItems") or {}
            if pending:
                num_left = sum(len(reqs) for reqs in pending.values())
                raise RetryableError(f"{num_left} batch write requests were left unprocessed")

        self.retry_policy.execute(write_pending)

    def _scan_partition(self, partition_id: str) -> t.Iterator[Document]:
        return self._query_partition(partition_id)

    def _scan_entity_ids(self, partition_id: str) -> t.Iterator[str]:
        for item in self._query_partition(partition_id, project_entity_id=True):
            yield self.codec.decode_key(item, ENTITY_ID)

    def _query_partition(self, partition_id: str, project_entity_id=False) -> t.Iterator[Document]:
        """Paginates over every item in the partition, yielding them in an iterator."""
        request = {
            "TableName": self.table_name,
            "KeyConditionExpression": "#pid = :pid",
            "ExpressionAttributeNames": {"#pid": PARTITION_ID},
            "ExpressionAttributeValues": {":pid": self.codec.string_value(partition_id)},
        }
        if project_entity_id:
            request["ProjectionExpression"] = "#eid"
            request["ExpressionAttributeNames"]["#eid"] = ENTITY_ID
        while True:
            with self._translate_errors():
                res = self.connection.query(**request)
            yield from res.get("Items", [])
            start_key = res.get("LastEvaluatedKey")
            if start_key is None:
                return
            request["ExclusiveStartKey"] = start_key
