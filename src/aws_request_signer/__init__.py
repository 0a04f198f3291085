# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""AWS Request Signer applies AWS Signature Version 4 authentication to outbound
HTTP requests without sending the secret key over the wire."""

from __future__ import annotations

from ._endpoints import infer_signing_properties, service_and_region
from ._http import AWSRequest, Field, Fields, URI
from ._identity import AWSCredentialIdentity
from ._io import read_and_replace_body
from .signers import (
    SigningMetadata,
    SigV4Signer,
    SigV4SigningProperties,
    format_timestamp,
    timestamp_date,
)

__license__ = "Apache-2.0"
__version__ = "0.1.0"

__all__ = (
    "URI",
    "AWSCredentialIdentity",
    "AWSRequest",
    "Field",
    "Fields",
    "SigV4Signer",
    "SigV4SigningProperties",
    "SigningMetadata",
    "format_timestamp",
    "infer_signing_properties",
    "read_and_replace_body",
    "service_and_region",
    "timestamp_date",
)
