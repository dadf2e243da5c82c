"""
Amazon Web Services back-ends: a DynamoDB dictionary store, and an S3 blob storage client, plus the region validation
and error classification they share. The features in this sub-package require the ``aws`` extra to be installed,
which can be installed in this way:

.. code-block::

   pip install bavard-dict-storage[aws]
"""
