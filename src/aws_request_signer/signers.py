# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import datetime
import hmac
import logging
import re
from dataclasses import dataclass
from hashlib import sha256
from typing import Final, Required, TypedDict
from urllib.parse import parse_qsl, quote

from ._http import AWSRequest, Field, URI
from ._identity import AWSCredentialIdentity
from ._io import read_and_replace_body
from .exceptions import InvalidSigningDateException, MissingExpectedParameterException

logger: Final = logging.getLogger(__name__)

SIGV4_ALGORITHM: str = "AWS4-HMAC-SHA256"
SIGV4_TIMESTAMP_FORMAT: str = "%Y%m%dT%H%M%SZ"
SIGV4_REQUEST_TYPE: str = "aws4_request"
EMPTY_SHA256_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

DEFAULT_CONTENT_TYPE: str = "application/x-www-form-urlencoded; charset=utf-8"
DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}

DATE_HEADER: str = "X-Amz-Date"
CONTENT_SHA256_HEADER: str = "X-Amz-Content-Sha256"
SECURITY_TOKEN_HEADER: str = "X-Amz-Security-Token"
HEADERS_ALWAYS_SIGNED: tuple[str, ...] = ("content-type", "host")
SIGNED_HEADER_PREFIX: str = "x-amz-"

_TIMESTAMP_RE: Final = re.compile(r"\d{8}T\d{6}Z")


class SigV4SigningProperties(TypedDict, total=False):
    region: Required[str]
    service: Required[str]
    date: str
    sign_session_token: bool


@dataclass(kw_only=True)
class SigningMetadata:
    """Values accumulated while signing a single request.

    A new instance is created for every call to :py:meth:`SigV4Signer.sign`; it is
    never shared between requests.
    """

    algorithm: str = SIGV4_ALGORITHM
    timestamp: str = ""
    """Full signing timestamp, for example ``20110909T233600Z``."""

    region: str = ""
    service: str = ""

    credential_scope: str = ""
    """``<date>/<region>/<service>/aws4_request``, filled in by :py:meth:`scope`."""

    signed_headers: str = ""
    """Sorted, ``;`` joined header names, filled in by the canonical request."""

    sign_session_token: bool = False

    @property
    def date(self) -> str:
        return timestamp_date(self.timestamp)

    def scope(self) -> str:
        if not self.credential_scope:
            for name in ("region", "service"):
                if not getattr(self, name):
                    raise MissingExpectedParameterException(
                        f"Cannot build a credential scope without a {name}."
                    )
            # Scope format: <YYYYMMDD>/<AWS Region>/<AWS Service>/aws4_request
            self.credential_scope = (
                f"{self.date}/{self.region}/{self.service}/{SIGV4_REQUEST_TYPE}"
            )
        return self.credential_scope


def format_timestamp(when: datetime.datetime | None = None) -> str:
    """Format ``when`` (default: now) as a UTC ``YYYYMMDDTHHMMSSZ`` timestamp.

    Naive datetimes are assumed to already be in UTC.
    """
    if when is None:
        when = datetime.datetime.now(datetime.UTC)
    elif when.tzinfo is None:
        when = when.replace(tzinfo=datetime.UTC)
    return when.astimezone(datetime.UTC).strftime(SIGV4_TIMESTAMP_FORMAT)


def timestamp_date(timestamp: str) -> str:
    return timestamp[0:8]


class SigV4Signer:
    """Request signer for applying the AWS Signature Version 4 algorithm."""

    def sign(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        http_request: AWSRequest,
        identity: AWSCredentialIdentity,
    ) -> AWSRequest:
        """Generate and apply a SigV4 Signature to the supplied request.

        The request is modified in place and returned. ``Content-Type`` and
        ``X-Amz-Date`` are added when absent. ``X-Amz-Content-Sha256`` and
        ``Authorization`` are always set, and ``X-Amz-Security-Token`` is set when
        the identity carries a session token.

        :param signing_properties: SigV4SigningProperties to define signing primitives
            such as the target service, region, and date.
        :param http_request: An AWSRequest to sign prior to sending to the service.
        :param identity: A set of credentials representing an AWS Identity or role
            capacity.
        """
        self._validate_identity(identity=identity)
        new_signing_properties = self._normalize_signing_properties(
            signing_properties=signing_properties
        )
        sign_session_token = new_signing_properties.get("sign_session_token", False)

        request = self.prepare_request(
            request=http_request, signing_properties=new_signing_properties
        )
        if sign_session_token:
            self._apply_security_token(request=request, identity=identity)

        metadata = SigningMetadata(
            timestamp=self._resolve_timestamp(request=request),
            region=new_signing_properties["region"],
            service=new_signing_properties["service"],
            sign_session_token=sign_session_token,
        )

        # Construct core signing components
        hashed_canonical_request = self.hashed_canonical_request(
            request=request, metadata=metadata
        )
        string_to_sign = self.string_to_sign(
            hashed_canonical_request=hashed_canonical_request, metadata=metadata
        )
        signing_key = self.signing_key(
            secret_key=identity.secret_access_key,
            date=metadata.date,
            region=metadata.region,
            service=metadata.service,
        )
        signature = self.signature(
            signing_key=signing_key, string_to_sign=string_to_sign
        )

        authorization = self.generate_authorization_field(
            access_key_id=identity.access_key_id,
            signature=signature,
            metadata=metadata,
        )
        request.fields.set_field(authorization)

        if not sign_session_token:
            self._apply_security_token(request=request, identity=identity)

        return request

    def prepare_request(
        self, *, request: AWSRequest, signing_properties: SigV4SigningProperties
    ) -> AWSRequest:
        """Bring a request into a state that can be canonicalized.

        The path is made absolute (an empty path becomes ``/``), and ``Content-Type``
        and ``X-Amz-Date`` are applied only when the caller has not set them. No other
        field is touched. The request is modified in place and returned.
        """
        path = request.destination.path
        if not path:
            path = "/"
        elif not path.startswith("/"):
            path = f"/{path}"
        if path != request.destination.path:
            uri_dict = request.destination.to_dict()
            uri_dict.update({"path": path})
            request.destination = URI(**uri_dict)

        if "Content-Type" not in request.fields:
            request.fields.set_field(
                Field(name="Content-Type", values=[DEFAULT_CONTENT_TYPE])
            )
        if DATE_HEADER not in request.fields:
            date = signing_properties.get("date") or format_timestamp()
            request.fields.set_field(Field(name=DATE_HEADER, values=[date]))

        return request

    def generate_authorization_field(
        self, *, access_key_id: str, signature: str, metadata: SigningMetadata
    ) -> Field:
        """Generate the `Authorization` field.

        :param access_key_id:
            The access key of the identity used for signing.
        :param signature:
            Final hash of the SigV4 signing algorithm generated from the
            canonical request and string to sign.
        :param metadata:
            SigningMetadata holding the algorithm, credential scope and
            signed headers of this signing operation.
        """
        credential = f"{access_key_id}/{metadata.scope()}"
        auth_str = (
            f"{metadata.algorithm} Credential={credential}, "
            f"SignedHeaders={metadata.signed_headers}, Signature={signature}"
        )
        return Field(name="Authorization", values=[auth_str])

    def signing_key(
        self, *, secret_key: str, date: str, region: str, service: str
    ) -> bytes:
        """Derive the key used to sign the string to sign.

        In SigV4, a signing key is created that is scoped to a specific date, region
        and service. Each component is hashed with the result of the previous step,
        starting from the secret key. The key is derived fresh for every request.
        """

        # Components of Signing Key Calculation
        #
        # DateKey              = HMAC-SHA256("AWS4"+"<SecretAccessKey>", "<YYYYMMDD>")
        # DateRegionKey        = HMAC-SHA256(<DateKey>, "<aws-region>")
        # DateRegionServiceKey = HMAC-SHA256(<DateRegionKey>, "<aws-service>")
        # SigningKey = HMAC-SHA256(<DateRegionServiceKey>, "aws4_request")
        k_date = self._hash(key=f"AWS4{secret_key}".encode(), value=date)
        k_region = self._hash(key=k_date, value=region)
        k_service = self._hash(key=k_region, value=service)
        return self._hash(key=k_service, value=SIGV4_REQUEST_TYPE)

    def signature(self, *, signing_key: bytes, string_to_sign: str) -> str:
        """Sign the string to sign, returning 64 lower-case hex characters."""
        return self._hash(key=signing_key, value=string_to_sign).hex()

    def _hash(self, key: bytes, value: str) -> bytes:
        return hmac.new(key=key, msg=value.encode(), digestmod=sha256).digest()

    def _validate_identity(self, *, identity: AWSCredentialIdentity) -> None:
        """Perform runtime and expiration checks before attempting signing."""
        if not isinstance(identity, AWSCredentialIdentity):  # pyright: ignore
            raise ValueError(
                "Received unexpected value for identity parameter. Expected "
                f"AWSCredentialIdentity but received {type(identity)}."
            )
        elif identity.is_expired:
            raise ValueError(
                f"Provided identity expired at {identity.expiration}. Please "
                "refresh the credentials or update the expiration parameter."
            )

    def _normalize_signing_properties(
        self, *, signing_properties: SigV4SigningProperties
    ) -> SigV4SigningProperties:
        for name in ("region", "service"):
            if not signing_properties.get(name):
                raise MissingExpectedParameterException(
                    f"Cannot sign a request without a {name} in your "
                    f"signing_properties. Current value: {signing_properties.get(name)}"
                )
        # Create copy of signing properties to avoid mutating the original
        return SigV4SigningProperties(**signing_properties)

    def _apply_security_token(
        self, *, request: AWSRequest, identity: AWSCredentialIdentity
    ) -> None:
        if identity.session_token is not None:
            request.fields.set_field(
                Field(name=SECURITY_TOKEN_HEADER, values=[identity.session_token])
            )

    def _resolve_timestamp(self, *, request: AWSRequest) -> str:
        timestamp = request.fields[DATE_HEADER].as_string(delimiter=",").strip()
        if not _TIMESTAMP_RE.fullmatch(timestamp):
            raise InvalidSigningDateException(
                f"Expected {DATE_HEADER} in the format YYYYMMDDTHHMMSSZ. "
                f"Current value: {timestamp!r}"
            )
        return timestamp

    def canonical_request(
        self, *, request: AWSRequest, metadata: SigningMetadata
    ) -> str:
        """The canonical request is a standardized string laying out the components used
        in the SigV4 signing algorithm. This is useful to quickly compare inputs to find
        signature mismatches and unintended variances.

        The SigV4 specification defines the canonical request to be:
            <HTTPMethod>\n
            <CanonicalURI>\n
            <CanonicalQueryString>\n
            <CanonicalHeaders>\n
            <SignedHeaders>\n
            <HashedPayload>

        The payload hash is set on the request as ``X-Amz-Content-Sha256`` and signed
        with the other headers. The signed header names are stored on ``metadata``.
        The request body is read through :py:func:`read_and_replace_body`, so it
        remains available for sending.

        :param request:
            A prepared AWSRequest to use for generating a SigV4 signature.
        :param metadata:
            SigningMetadata for this signing operation.
        """
        canonical_payload = self._format_canonical_payload(request=request)
        request.fields.set_field(
            Field(name=CONTENT_SHA256_HEADER, values=[canonical_payload])
        )
        canonical_path = self._format_canonical_path(path=request.destination.path)
        canonical_query = self._format_canonical_query(query=request.destination.query)
        normalized_fields = self._normalize_signing_fields(
            request=request, metadata=metadata
        )
        canonical_fields = self._format_canonical_fields(fields=normalized_fields)
        metadata.signed_headers = ";".join(normalized_fields)
        logger.debug("Signed headers: %s", metadata.signed_headers)
        return (
            f"{request.method.upper()}\n"
            f"{canonical_path}\n"
            f"{canonical_query}\n"
            f"{canonical_fields}\n"
            f"{metadata.signed_headers}\n"
            f"{canonical_payload}"
        )

    def hashed_canonical_request(
        self, *, request: AWSRequest, metadata: SigningMetadata
    ) -> str:
        canonical_request = self.canonical_request(request=request, metadata=metadata)
        return sha256(canonical_request.encode()).hexdigest()

    def string_to_sign(
        self, *, hashed_canonical_request: str, metadata: SigningMetadata
    ) -> str:
        """The string to sign is the second step of our signing algorithm which
        concatenates the formal identifier of our signing algorithm, the signing
        DateTime, the scope of our credentials, and a hash of our previously generated
        canonical request. This is another checkpoint that can be used to ensure we're
        constructing our signature as intended.

        The SigV4 specification defines the string to sign as:
            Algorithm \n
            RequestDateTime \n
            CredentialScope  \n
            HashedCanonicalRequest

        :param hashed_canonical_request:
            Hex digest of the string generated by the `canonical_request` method.
        :param metadata:
            SigningMetadata holding the timestamp, region and service.
        """
        if not metadata.timestamp:
            raise MissingExpectedParameterException(
                "Cannot generate string_to_sign without a valid timestamp "
                f"in your signing metadata. Current value: {metadata.timestamp!r}"
            )
        string_to_sign = (
            f"{metadata.algorithm}\n"
            f"{metadata.timestamp}\n"
            f"{metadata.scope()}\n"
            f"{hashed_canonical_request}"
        )
        logger.debug("String to sign:\n%s", string_to_sign)
        return string_to_sign

    def _format_canonical_path(self, *, path: str | None) -> str:
        return path or "/"

    def _format_canonical_query(self, *, query: str | None) -> str:
        if not query:
            return ""

        query_params = parse_qsl(qs=query, keep_blank_values=True)
        query_parts = (
            (quote(string=key, safe=""), quote(string=value, safe=""))
            for key, value in query_params
        )
        # key-value pairs must be in sorted order for their encoded forms.
        return "&".join(f"{key}={value}" for key, value in sorted(query_parts))

    def _normalize_signing_fields(
        self, *, request: AWSRequest, metadata: SigningMetadata
    ) -> dict[str, str]:
        normalized_fields = {
            field.name.lower(): ",".join(value.strip() for value in field.values)
            for field in request.fields
            if self._is_signable_header(field.name.lower(), metadata=metadata)
        }
        if "host" not in normalized_fields:
            normalized_fields["host"] = self._normalize_host_field(
                uri=request.destination
            )

        return dict(sorted(normalized_fields.items()))

    def _is_signable_header(self, field_name: str, *, metadata: SigningMetadata):
        if field_name == SECURITY_TOKEN_HEADER.lower():
            return metadata.sign_session_token
        return field_name in HEADERS_ALWAYS_SIGNED or field_name.startswith(
            SIGNED_HEADER_PREFIX
        )

    def _normalize_host_field(self, *, uri: URI) -> str:
        if uri.port is None or DEFAULT_PORTS.get(uri.scheme) == uri.port:
            return uri.host
        return f"{uri.host}:{uri.port}"

    def _format_canonical_fields(self, *, fields: dict[str, str]) -> str:
        return "".join(
            f"{key}:{' '.join(value.split())}\n" for key, value in fields.items()
        )

    def _format_canonical_payload(self, *, request: AWSRequest) -> str:
        body = read_and_replace_body(request)
        if not body:
            return EMPTY_SHA256_HASH
        return sha256(body).hexdigest()
