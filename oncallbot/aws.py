"""boto3 client construction shared by the store, secrets and scheduler adapters."""

from typing import Any

import boto3
from botocore.config import Config as BotoConfig

from oncallbot.config.schema import AwsConfig


def make_client(service_name: str, aws: AwsConfig | None = None, timeout_s: float = 30.0) -> Any:
    """Build a boto3 client honouring the configured region and endpoint."""
    aws = aws or AwsConfig()
    client_kwargs: dict[str, Any] = {
        "service_name": service_name,
        "config": BotoConfig(connect_timeout=timeout_s, read_timeout=timeout_s),
    }
    if aws.region:
        client_kwargs["region_name"] = aws.region
    if aws.endpoint_url:
        client_kwargs["endpoint_url"] = aws.endpoint_url
    return boto3.client(**client_kwargs)
