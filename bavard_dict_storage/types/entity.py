import typing as t

from pydantic import BaseModel


EntityT = t.TypeVar("EntityT", bound=BaseModel)  # used to help static type checking tools


class DictionaryStorageEntity(BaseModel, t.Generic[EntityT]):
    """
    The envelope an entity is persisted in. ``(partition_id, entity_id)`` is the entity's primary key. Entities that
    share a ``partition_id`` can be listed and deleted together.
    """

    entity_id: str
    """Uniquely identifies the entity within its partition."""

    partition_id: str
    """The partition the entity belongs to."""

    entity: EntityT
    """The application-defined pydantic model being stored."""
