# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import Final

from .signers import SigV4SigningProperties

logger: Final = logging.getLogger(__name__)

DEFAULT_SERVICE: Final = "s3"
DEFAULT_REGION: Final = "us-east-1"


def service_and_region(host: str) -> tuple[str, str]:
    """Infer the signing service and region from an ``amazonaws.com`` host name.

    Recognized shapes::

        service.amazonaws.com                -> (service, us-east-1)
        service.region.amazonaws.com         -> (service, region)
        bucket.s3.amazonaws.com              -> (s3, us-east-1)
        bucket.s3-region.amazonaws.com       -> (s3, region)
        s3-region.amazonaws.com              -> (s3, region)
        name.region.service.amazonaws.com    -> (service, region)

    Anything else falls back to ``s3`` in ``us-east-1``. A ``:port`` suffix is
    ignored and the legacy ``external-1`` region maps to ``us-east-1``.
    """
    service, region = DEFAULT_SERVICE, DEFAULT_REGION
    parts = host.partition(":")[0].lower().split(".")

    if len(parts) == 4:
        if parts[1] == "s3":
            service = "s3"
        elif parts[1].startswith("s3-"):
            service, region = "s3", parts[1][3:]
        else:
            service, region = parts[0], parts[1]
    elif len(parts) == 5:
        service, region = parts[2], parts[1]
    elif parts[0].startswith("s3-"):
        region = parts[0][3:]
    else:
        service = parts[0]

    if region == "external-1":
        region = DEFAULT_REGION

    logger.debug(
        "Inferred service %s and region %s from host %s", service, region, host
    )
    return service, region


def infer_signing_properties(host: str) -> SigV4SigningProperties:
    """Build signing properties whose region and service are inferred from
    ``host``."""
    service, region = service_and_region(host)
    return SigV4SigningProperties(region=region, service=service)
