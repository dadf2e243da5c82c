"""
Contains methods for easily persisting `Pydantic <https://docs.pydantic.dev/>`_ data structures to and from
partitioned storage back-ends. Contains a base class for the store behavior, as well as subclasses which allow Amazon
DynamoDB, Google Cloud Firestore, or in-memory to be used as the storage back-end. Supports saving, retrieving,
checking, and deleting entities by key, listing or deleting a whole partition, and batched saves.
"""
