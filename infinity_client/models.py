"""Internal data models for infinity-client.

All models use Pydantic v2 and are frozen: Settings is built once per data
source instance and Query once per execution, and neither changes while a
request is in flight.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Enumerations
# =============================================================================


class AuthMethod(str, Enum):
    """Authentication method configured on the data source."""

    NONE = "none"
    BASIC = "basicAuth"
    BEARER_TOKEN = "bearerToken"
    API_KEY = "apiKey"
    DIGEST = "digestAuth"
    OAUTH2 = "oauth2"
    FORWARD_OAUTH = "oauthPassThru"
    AWS = "aws"
    AZURE_BLOB = "azureBlob"
    ZCAP = "zcap"


class OAuth2Type(str, Enum):
    CLIENT_CREDENTIALS = "client_credentials"
    JWT = "jwt"
    OTHERS = "others"


class ApiKeyType(str, Enum):
    """Where the API key is placed on the request."""

    HEADER = "header"
    QUERY = "query"


class ProxyType(str, Enum):
    NONE = "none"
    ENV = "env"
    URL = "url"


class QueryType(str, Enum):
    JSON = "json"
    CSV = "csv"
    TSV = "tsv"
    XML = "xml"
    HTML = "html"
    GRAPHQL = "graphql"
    UQL = "uql"
    GROQ = "groq"


class QuerySource(str, Enum):
    URL = "url"
    INLINE = "inline"
    AZURE_BLOB = "azure-blob"


class BodyType(str, Enum):
    RAW = "raw"
    FORM_DATA = "form-data"
    FORM_URLENCODED = "x-www-form-urlencoded"
    GRAPHQL = "graphql"
    NONE = "none"


class MercuryOperation(str, Enum):
    """Operations understood by the Mercury client adapter."""

    REQUEST = "request"  # zCap-authorized HTTP request
    DOWNLOAD = "download"  # zCap download and decrypt of an EDV document


# =============================================================================
# Settings Models
# =============================================================================


class OAuth2Settings(BaseModel):
    """OAuth2 grant configuration (client credentials or JWT bearer)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    oauth2_type: OAuth2Type = Field(default=OAuth2Type.CLIENT_CREDENTIALS)
    client_id: str = ""
    client_secret: str = ""
    email: str = Field(default="", description="JWT issuer")
    private_key_id: str = ""
    private_key: str = Field(default="", description="PEM encoded RSA key for JWT signing")
    subject: str = ""
    token_url: str = ""
    scopes: list[str] = Field(default_factory=list)
    # 0 = auto detect, 1 = credentials in body, 2 = credentials in basic auth header
    auth_style: int = Field(default=0, ge=0, le=2)


class AWSSettings(BaseModel):
    """Static key configuration for AWS SigV4 request signing."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    region: str = ""
    service: str = ""
    access_key: str = ""
    secret_key: str = ""


class Settings(BaseModel):
    """Data source settings, including decrypted secure fields."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: str = Field(default="", description="Base URL prefixed to relative query URLs")
    auth_method: AuthMethod = Field(default=AuthMethod.NONE)

    # Legacy switches, folded into auth_method when it is not given explicitly
    basic_auth_enabled: bool = False
    forward_oauth_identity: bool = False

    username: str = ""
    password: str = ""
    bearer_token: str = ""
    api_key_key: str = ""
    api_key_value: str = ""
    api_key_type: ApiKeyType = Field(default=ApiKeyType.HEADER)
    oauth2: OAuth2Settings = Field(default_factory=OAuth2Settings)
    aws: AWSSettings = Field(default_factory=AWSSettings)

    tls_skip_verify: bool = False
    server_name: str = ""
    tls_client_auth: bool = False
    tls_client_cert: str = ""
    tls_client_key: str = ""
    tls_auth_with_ca_cert: bool = False
    tls_ca_cert: str = ""

    proxy_type: ProxyType = Field(default=ProxyType.ENV)
    proxy_url: str = ""
    timeout_in_seconds: int = Field(default=60, ge=0)

    custom_headers: dict[str, str] = Field(default_factory=dict)
    secure_query_fields: dict[str, str] = Field(
        default_factory=dict,
        description="Secrets referenced as ${__qs.<name>} in URLs and parameters",
    )
    allowed_hosts: list[str] = Field(default_factory=list)

    azure_blob_account_url: str = ""
    azure_blob_account_name: str = ""
    azure_blob_account_key: str = ""

    zcap_json_path: str = Field(default="", description="Target of a zCap download")
    zcap_operation: MercuryOperation = Field(default=MercuryOperation.DOWNLOAD)

    @model_validator(mode="before")
    @classmethod
    def resolve_legacy_auth(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("auth_method"):
            return data
        data = dict(data)
        data["auth_method"] = AuthMethod.NONE
        if data.get("basic_auth_enabled"):
            data["auth_method"] = AuthMethod.BASIC
        if data.get("forward_oauth_identity"):
            data["auth_method"] = AuthMethod.FORWARD_OAUTH
        return data


# =============================================================================
# Query Models
# =============================================================================


class KeyValuePair(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    key: str
    value: str = ""


class URLOptions(BaseModel):
    """Request options of a remote query."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str = "GET"
    params: list[KeyValuePair] = Field(default_factory=list)
    headers: list[KeyValuePair] = Field(default_factory=list)
    body_type: BodyType | None = None
    body: str = ""
    body_content_type: str = ""
    body_form: list[KeyValuePair] = Field(default_factory=list)
    body_graphql_query: str = ""
    body_graphql_variables: str = Field(default="", description="JSON object as text")


class Query(BaseModel):
    """One query execution.

    Column projection and frame options belong to the frame builder and are
    accepted but ignored here.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    ref_id: str = ""
    type: QueryType = Field(default=QueryType.JSON)
    source: QuerySource = Field(default=QuerySource.URL)
    url: str = ""
    data: str = Field(default="", description="Payload of inline sources")
    url_options: URLOptions = Field(default_factory=URLOptions)
    az_blob_container_name: str = ""
    az_blob_name: str = ""


# =============================================================================
# Derived Models
# =============================================================================


class ResolvedRequest(BaseModel):
    """A fully built request, either for sending or for display.

    Headers are ordered pairs so repeated headers survive.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str
    url: str
    headers: list[tuple[str, str]] = Field(default_factory=list)
    content: bytes | None = None


class QueryResult(BaseModel):
    """Outcome of a query: decoded payload plus HTTP-equivalent status."""

    model_config = ConfigDict(extra="forbid")

    data: Any = Field(default=None, description="Parsed JSON or raw text")
    status_code: int = Field(description="HTTP status (200 for inline, blob and zCap)")
    duration_ms: float = Field(default=0.0, description="Elapsed time of the network call")
    decode_error: str | None = Field(
        default=None, description="JSON decode failure; data then holds the raw text"
    )


class MercuryOutput(BaseModel):
    """Marker-framed stdout of the Mercury client adapter, split in two."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    content: bytes = Field(description="Log lines and EDV document content before the marker")
    data: bytes = Field(description="HTTP response or EDV stream after the marker")
