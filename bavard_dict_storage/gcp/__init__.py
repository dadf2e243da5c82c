"""
Google Cloud Platform (GCP) support, i.e. classifying which Google API errors are transient. The features in this
sub-package require the ``gcp`` extra to be installed, which can be installed in this way:

.. code-block::

   pip install bavard-dict-storage[gcp]
"""
