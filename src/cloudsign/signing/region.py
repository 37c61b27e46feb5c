"""
Service and region resolution for the SigV4 credential scope
"""

import re
from typing import Optional, Protocol, Tuple

from ..exceptions import MalformedRequestError
from .utils import parse_url

AWS_HOST_SUFFIXES = (".amazonaws.com", ".amazonaws.com.cn")

# Services such as IAM, STS (global endpoint) and Route 53 have no region label
GLOBAL_REGION = "us-east-1"

_REGION_PATTERN = re.compile(r"^[a-z]{2}(-gov|-iso[a-z]?)?-[a-z]+-\d+$")


class ServiceAndRegion(Protocol):
    """Supplies the service and region tokens of the credential scope."""

    def service(self) -> str:
        ...

    def region(self, host: str) -> str:
        ...


def split_aws_host(host: str) -> Tuple[str, Optional[str]]:
    """
    Split an AWS hostname into its service label and region label.

    Args:
        host: Hostname, optionally with a port

    Returns:
        tuple: ``(service, region)``; region is None for global endpoints

    Raises:
        MalformedRequestError: If the host is not an AWS endpoint
    """
    hostname = host.split(":", 1)[0].lower().rstrip(".")
    for suffix in AWS_HOST_SUFFIXES:
        if hostname.endswith(suffix):
            labels = hostname[:-len(suffix)].split(".")
            break
    else:
        raise MalformedRequestError(
            f"Only AWS endpoints are supported: {host}",
            details={"host": host}
        )

    if not labels or not labels[0]:
        raise MalformedRequestError(f"Cannot determine service from host: {host}", details={"host": host})

    region = next((label for label in labels[1:] if _REGION_PATTERN.match(label)), None)
    return labels[0], region


class AwsServiceAndRegion:
    """
    Parses ``<service>.<region>.amazonaws.com`` style hosts.

    The service comes from the configured endpoint; the region is parsed
    from each request's host, falling back to ``us-east-1`` for global
    services whose host carries no region.
    """

    def __init__(self, endpoint: str):
        if not endpoint:
            raise MalformedRequestError("Endpoint is required to resolve the service")
        host = parse_url(endpoint).host if "://" in endpoint else endpoint
        self._service, _ = split_aws_host(host)

    def service(self) -> str:
        return self._service

    def region(self, host: str) -> str:
        _, region = split_aws_host(host)
        return region or GLOBAL_REGION

    def __repr__(self) -> str:
        return f"AwsServiceAndRegion(service={self._service!r})"


class StaticServiceAndRegion:
    """Fixed service and region, for endpoints whose host cannot be parsed."""

    def __init__(self, service: str, region: str):
        if not service or not region:
            raise MalformedRequestError(
                "Both service and region are required",
                details={"service": service, "region": region}
            )
        self._service = service
        self._region = region

    def service(self) -> str:
        return self._service

    def region(self, host: str) -> str:
        return self._region

    def __repr__(self) -> str:
        return f"StaticServiceAndRegion(service={self._service!r}, region={self._region!r})"
