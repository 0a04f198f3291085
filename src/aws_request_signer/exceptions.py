# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0


class BaseAWSSDKException(Exception):
    """Top-level exception to capture signing-related errors."""


class MissingExpectedParameterException(BaseAWSSDKException, ValueError):
    """Signing requires specific signing properties, such as region and service, to
    be present."""


class InvalidSigningDateException(BaseAWSSDKException, ValueError):
    """The signing timestamp is not in the ``YYYYMMDDTHHMMSSZ`` format."""


class MalformedRequestException(BaseAWSSDKException, ValueError):
    """The request cannot be described as a signable destination."""


class UnreadableBodyException(BaseAWSSDKException, OSError):
    """The request body could not be read for hashing."""
