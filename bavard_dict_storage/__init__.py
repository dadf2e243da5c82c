"""
Persists `Pydantic <https://docs.pydantic.dev/>`_ models to partitioned key/attribute storage back-ends (Amazon
DynamoDB, Google Cloud Firestore, or in-memory), and binary blobs to Amazon S3. Entities are addressed by an
``(entity_id, partition_id)`` key, and every remote call is made under a retry policy which handles transient faults.
"""
