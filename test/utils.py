import copy
import typing as t
from collections import Counter, defaultdict
from io import BytesIO

from botocore.exceptions import ClientError
from google.api_core.exceptions import NotFound


def client_error(code: str, operation: str, status=400) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": f"fake {code}"}, "ResponseMetadata": {"HTTPStatusCode": status}}, operation
    )


class FailureInjector:
    """
    Lets a test queue up exceptions for a fake client's methods. Each call to a method first pops and raises the next
    queued exception for that method, if there is one.
    """

    def __init__(self):
        self.failures: t.Dict[str, t.List[BaseException]] = defaultdict(list)
        self.calls = Counter()

    def fail(self, method: str, *errors: BaseException):
        self.failures[method].extend(errors)

    def _call(self, method: str):
        self.calls[method] += 1
        if self.failures[method]:
            raise self.failures[method].pop(0)


class FakeDynamoDBClient(FailureInjector):
    """
    An in-process stand-in for a boto3 DynamoDB low-level client, supporting the subset of the API the dictionary
    store uses. Items are keyed by ``(PartitionId, EntityId)``. Newly created tables report ``CREATING`` for
    ``activation_polls`` calls to ``describe_table`` before becoming ``ACTIVE``.
    """

    def __init__(self, activation_polls=1, page_size=10):
        super().__init__()
        self.tables: t.Dict[str, t.Dict[t.Tuple[str, str], dict]] = {}
        self.statuses: t.Dict[str, str] = {}
        self.created: t.Dict[str, dict] = {}
        self.batch_sizes: t.List[int] = []
        self.activation_polls = activation_polls
        self.page_size = page_size
        self.unprocessed_rounds = 0
        """How many upcoming batch writes should leave their last request unprocessed."""
        self.lose_create_race = False
        """When set, ``create_table`` creates the table but reports that someone else already had."""
        self._polls_left: t.Dict[str, int] = {}

    def add_table(self, name: str):
        self.tables[name] = {}
        self.statuses[name] = "ACTIVE"

    def describe_table(self, TableName: str):
        self._call("describe_table")
        if TableName not in self.tables:
            raise client_error("ResourceNotFoundException", "DescribeTable")
        if self.statuses[TableName] == "CREATING":
            if self._polls_left[TableName] > 0:
                self._polls_left[TableName] -= 1
            else:
                self.statuses[TableName] = "ACTIVE"
        return {"Table": {"TableName": TableName, "TableStatus": self.statuses[TableName]}}

    def create_table(self, TableName: str, **kwargs):
        self._call("create_table")
        if TableName in self.tables and not self.lose_create_race:
            raise client_error("ResourceInUseException", "CreateTable")
        self.tables[TableName] = {}
        self.statuses[TableName] = "CREATING"
        self._polls_left[TableName] = self.activation_polls
        self.created[TableName] = kwargs
        if self.lose_create_race:
            raise client_error("ResourceInUseException", "CreateTable")
        return {"TableDescription": {"TableName": TableName, "TableStatus": "CREATING"}}

    def get_item(self, TableName: str, Key: dict, ProjectionExpression=None, ExpressionAttributeNames=None):
        self._call("get_item")
        item = self._table(TableName, "GetItem").get(self._key(Key))
        if item is None:
            return {}
        return {"Item": self._project(item, ProjectionExpression)}

    def put_item(self, TableName: str, Item: dict):
        self._call("put_item")
        self._table(TableName, "PutItem")[self._key(Item)] = copy.deepcopy(Item)
        return {}

    def delete_item(self, TableName: str, Key: dict, ConditionExpression=None, ExpressionAttributeNames=None):
        self._call("delete_item")
        table = self._table(TableName, "DeleteItem")
        key = self._key(Key)
        if key not in table and ConditionExpression is not None:
            raise client_error("ConditionalCheckFailedException", "DeleteItem")
        table.pop(key, None)
        return {}

    def batch_write_item(self, RequestItems: t.Dict[str, t.List[dict]]):
        self._call("batch_write_item")
        unprocessed = {}
        for table_name, requests in RequestItems.items():
            if len(requests) > 25:
                raise client_error("ValidationException", "BatchWriteItem")
            table = self._table(table_name, "BatchWriteItem")
            self.batch_sizes.append(len(requests))
            if self.unprocessed_rounds > 0:
                self.unprocessed_rounds -= 1
                requests, unprocessed[table_name] = requests[:-1], requests[-1:]
            for request in requests:
                if "PutRequest" in request:
                    item = request["PutRequest"]["Item"]
                    table[self._key(item)] = copy.deepcopy(item)
                else:
                    table.pop(self._key(request["DeleteRequest"]["Key"]), None)
        return {"UnprocessedItems": unprocessed}

    def query(
        self,
        TableName: str,
        KeyConditionExpression: str,
        ExpressionAttributeNames: dict,
        ExpressionAttributeValues: dict,
        ProjectionExpression=None,
        ExclusiveStartKey=None,
    ):
        self._call("query")
        partition_id = ExpressionAttributeValues[":pid"]["S"]
        table = self._table(TableName, "Query")
        keys = sorted(key for key in table if key[0] == partition_id)
        if ExclusiveStartKey is not None:
            keys = [key for key in keys if key > self._key(ExclusiveStartKey)]
        page = keys[: self.page_size]
        res = {"Items": [self._project(table[key], ProjectionExpression) for key in page], "Count": len(page)}
        if len(keys) > self.page_size:
            last = table[page[-1]]
            res["LastEvaluatedKey"] = {"PartitionId": last["PartitionId"], "EntityId": last["EntityId"]}
        return res

    def items(self, table_name: str, partition_id: str) -> t.Dict[str, dict]:
        return {key[1]: item for key, item in self.tables[table_name].items() if key[0] == partition_id}

    def _table(self, name: str, operation: str) -> dict:
        if name not in self.tables:
            raise client_error("ResourceNotFoundException", operation)
        return self.tables[name]

    @staticmethod
    def _key(item: dict) -> t.Tuple[str, str]:
        return item["PartitionId"]["S"], item["EntityId"]["S"]

    @staticmethod
    def _project(item: dict, projection: t.Optional[str]) -> dict:
        if projection is None:
            return copy.deepcopy(item)
        return {"PartitionId": dict(item["PartitionId"]), "EntityId": dict(item["EntityId"])}


class FakeExistsOption:
    def __init__(self, exists: bool):
        self.exists = exists


class FakeDocumentSnapshot:
    def __init__(self, doc_id: str, data: t.Optional[dict]):
        self.id = doc_id
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> t.Optional[dict]:
        return copy.deepcopy(self._data)


class FakeDocumentReference:
    def __init__(self, client: "FakeFirestoreClient", path: t.Tuple[str, ...]):
        self._client = client
        self.path = path

    @property
    def id(self) -> str:
        return self.path[-1]

    def collection(self, name: str) -> "FakeCollectionReference":
        return FakeCollectionReference(self._client, self.path + (name,))

    def get(self) -> FakeDocumentSnapshot:
        self._client._call("get")
        return FakeDocumentSnapshot(self.id, self._client.documents.get(self.path))

    def set(self, data: dict):
        self._client._call("set")
        self._client.documents[self.path] = copy.deepcopy(data)

    def delete(self, option: t.Optional[FakeExistsOption] = None):
        self._client._call("delete")
        if option is not None and option.exists and self.path not in self._client.documents:
            raise NotFound(f"No document to update: {'/'.join(self.path)}")
        self._client.documents.pop(self.path, None)


class FakeQuery:
    """Supports ordering by document id only, which is the only ordering the dictionary store asks for."""

    def __init__(self, client: "FakeFirestoreClient", path: t.Tuple[str, ...], count=None, after=None):
        self._client = client
        self.path = path
        self._count = count
        self._after = after

    def order_by(self, field_path: str) -> "FakeQuery":
        return FakeQuery(self._client, self.path, self._count, self._after)

    def limit(self, count: int) -> "FakeQuery":
        return FakeQuery(self._client, self.path, count, self._after)

    def start_after(self, snapshot: FakeDocumentSnapshot) -> "FakeQuery":
        return FakeQuery(self._client, self.path, self._count, snapshot.id)

    def stream(self) -> t.Iterator[FakeDocumentSnapshot]:
        self._client._call("stream")
        paths = sorted(path for path in self._client.documents if path[:-1] == self.path)
        if self._after is not None:
            paths = [path for path in paths if path[-1] > self._after]
        if self._count is not None:
            paths = paths[: self._count]
        return iter([FakeDocumentSnapshot(path[-1], self._client.documents[path]) for path in paths])


class FakeCollectionReference(FakeQuery):
    def __init__(self, client: "FakeFirestoreClient", path: t.Tuple[str, ...]):
        super().__init__(client, path)

    def document(self, doc_id: str) -> FakeDocumentReference:
        return FakeDocumentReference(self._client, self.path + (doc_id,))


class FakeWriteBatch:
    def __init__(self, client: "FakeFirestoreClient"):
        self._client = client
        self._writes: t.List[t.Tuple[FakeDocumentReference, t.Optional[dict]]] = []

    def set(self, reference: FakeDocumentReference, data: dict):
        self._writes.append((reference, copy.deepcopy(data)))

    def delete(self, reference: FakeDocumentReference):
        self._writes.append((reference, None))

    def commit(self):
        self._client._call("commit")
        if len(self._writes) > 500:
            raise ValueError("a Firestore write batch can hold at most 500 writes")
        self._client.batch_sizes.append(len(self._writes))
        for reference, data in self._writes:
            if data is None:
                self._client.documents.pop(reference.path, None)
            else:
                self._client.documents[reference.path] = data


class FakeFirestoreClient(FailureInjector):
    """
    An in-process stand-in for a ``google.cloud.firestore.Client``, supporting the subset of the API the dictionary
    store uses. Documents are keyed by their full path, as a tuple.
    """

    def __init__(self):
        super().__init__()
        self.documents: t.Dict[t.Tuple[str, ...], dict] = {}
        self.batch_sizes: t.List[int] = []

    def collection(self, name: str) -> FakeCollectionReference:
        return FakeCollectionReference(self, (name,))

    def batch(self) -> FakeWriteBatch:
        return FakeWriteBatch(self)

    @staticmethod
    def write_option(exists: bool) -> FakeExistsOption:
        return FakeExistsOption(exists)


class FakeS3Client(FailureInjector):
    """An in-process stand-in for a boto3 S3 low-level client. ``list_objects_v2`` returns ``page_size`` keys a page."""

    def __init__(self, page_size=2):
        super().__init__()
        self.buckets: t.Dict[str, t.Dict[str, bytes]] = {}
        self.created: t.Dict[str, dict] = {}
        self.page_size = page_size

    def head_bucket(self, Bucket: str):
        self._call("head_bucket")
        if Bucket not in self.buckets:
            raise client_error("404", "HeadBucket", status=404)
        return {}

    def create_bucket(self, Bucket: str, **kwargs):
        self._call("create_bucket")
        if Bucket in self.buckets:
            raise client_error("BucketAlreadyOwnedByYou", "CreateBucket", status=409)
        self.buckets[Bucket] = {}
        self.created[Bucket] = kwargs
        return {}

    def head_object(self, Bucket: str, Key: str):
        self._call("head_object")
        if Key not in self._bucket(Bucket, "HeadObject"):
            raise client_error("404", "HeadObject", status=404)
        return {"ContentLength": len(self.buckets[Bucket][Key])}

    def put_object(self, Bucket: str, Key: str, Body: bytes):
        self._call("put_object")
        self._bucket(Bucket, "PutObject")[Key] = bytes(Body)
        return {}

    def get_object(self, Bucket: str, Key: str):
        self._call("get_object")
        bucket = self._bucket(Bucket, "GetObject")
        if Key not in bucket:
            raise client_error("NoSuchKey", "GetObject", status=404)
        return {"Body": BytesIO(bucket[Key])}

    def delete_object(self, Bucket: str, Key: str):
        self._call("delete_object")
        self._bucket(Bucket, "DeleteObject").pop(Key, None)
        return {}

    def list_objects_v2(self, Bucket: str, ContinuationToken: t.Optional[str] = None):
        self._call("list_objects_v2")
        keys = sorted(self._bucket(Bucket, "ListObjectsV2"))
        start = int(ContinuationToken or 0)
        page = keys[start : start + self.page_size]
        res = {"KeyCount": len(page), "IsTruncated": start + self.page_size < len(keys)}
        if page:
            res["Contents"] = [{"Key": key, "Size": len(self.buckets[Bucket][key])} for key in page]
        if res["IsTruncated"]:
            res["NextContinuationToken"] = str(start + self.page_size)
        return res

    def _bucket(self, name: str, operation: str) -> t.Dict[str, bytes]:
        if name not in self.buckets:
            raise client_error("NoSuchBucket", operation, status=404)
        return self.buckets[name]
