import typing as t

from bavard_dict_storage.utils import ImportExtraError, require_non_empty


try:
    import boto3
except ImportError:
    raise ImportExtraError("aws", __name__)

from bavard_dict_storage.errors import ConfigurationError


def resolve_region(region_name: t.Optional[str], service_name: str, *, endpoint_url: t.Optional[str] = None) -> str:
    """
    Checks that ``region_name`` is a region ``service_name`` is available in, across all AWS partitions, and returns
    it. The check is made against the endpoint data bundled with botocore, so it makes no network calls. When a custom
    ``endpoint_url`` is in use (e.g. a local emulator), any non-empty region name is accepted.

    Raises
    ------
    ConfigurationError
        If ``region_name`` is missing, or is not a known region for the service.
    """
    if not region_name:
        raise ConfigurationError(f"an AWS region name is required to use {service_name}")
    if endpoint_url:
        return region_name
    session = boto3.session.Session()
    for partition in session.get_available_partitions():
        if region_name in session.get_available_regions(service_name, partition_name=partition):
            return region_name
    raise ConfigurationError(f"[{region_name}] is not a known AWS region for {service_name}.")


def create_client(
    service_name: str,
    *,
    region_name: t.Optional[str],
    endpoint_url: t.Optional[str] = None,
    aws_access_key_id: t.Optional[str] = None,
    aws_secret_access_key: t.Optional[str] = None,
):
    """
    Creates a low-level boto3 client for ``service_name`` in a validated region. Credentials that aren't given
    explicitly are resolved by boto3's default credential chain.
    """
    require_non_empty(service_name, "service_name")
    region_name = resolve_region(region_name, service_name, endpoint_url=endpoint_url)
    return boto3.client(
        service_name,
        region_name=region_name,
        endpoint_url=endpoint_url,
        aws_access_key_id=aws_access_key_id,
        aws_secret_access_key=aws_secret_access_key,
    )
