"""
Data structures describing what gets persisted: the :class:`~bavard_dict_storage.types.entity.DictionaryStorageEntity`
envelope, and the per-type field metadata (see :func:`~bavard_dict_storage.types.metadata.get_type_metadata`) that the
attribute codecs use to translate entities to and from each back-end's native attribute representation.
"""
