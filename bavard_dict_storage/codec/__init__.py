"""
Attribute codecs translate the fields of a pydantic entity to and from a storage back-end's native attribute value
representation. There is one codec per back-end, all sharing the same document shape and conversion rules (see
:class:`~bavard_dict_storage.codec.base.AttributeCodec`).
"""
