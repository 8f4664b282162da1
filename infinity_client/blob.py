"""Azure Blob Storage client built from static shared-key credentials.

Used instead of the HTTP transport for queries whose source is azure-blob.
"""

from __future__ import annotations

import base64
import binascii

import structlog
from azure.core.exceptions import AzureError
from azure.storage.blob import BlobServiceClient

from infinity_client.errors import BlobError, ConfigurationError
from infinity_client.models import Settings

logger = structlog.get_logger(__name__)

# "%s" is replaced with the account name
DEFAULT_ACCOUNT_URL = "https://%s.blob.core.windows.net/"


def account_url_for(settings: Settings) -> str:
    url = settings.azure_blob_account_url or DEFAULT_ACCOUNT_URL
    return url.replace("%s", settings.azure_blob_account_name)


def build_blob_client(settings: Settings) -> BlobServiceClient:
    """Build the shared-key blob client.

    Raises:
        ConfigurationError: On missing or malformed account credentials.
    """
    name = settings.azure_blob_account_name
    key = settings.azure_blob_account_key
    if not name or not key:
        raise ConfigurationError("invalid azure blob credentials. account name and key are required")
    try:
        base64.b64decode(key, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(f"invalid azure blob credentials. {e}") from e

    try:
        return BlobServiceClient(
            account_url=account_url_for(settings),
            credential={"account_name": name, "account_key": key},
        )
    except ValueError as e:
        raise ConfigurationError(f"invalid azure blob client. {e}") from e


def download_blob(client: BlobServiceClient, container_name: str, blob_name: str) -> bytes:
    """Download one blob in full.

    Raises:
        BlobError: On empty names (400) or any storage failure (500).
    """
    container_name = container_name.strip()
    blob_name = blob_name.strip()
    if not container_name or not blob_name:
        raise BlobError("invalid/empty container name/blob name", status_code=400)
    try:
        downloader = client.get_blob_client(container=container_name, blob=blob_name).download_blob()
        return downloader.readall()
    except AzureError as e:
        logger.error("error reading blob content", container=container_name, blob=blob_name, error=str(e))
        raise BlobError(f"error reading blob content. {e}") from e
