"""
Database credentials from HashiCorp Vault.

The ledger has exactly one secret: the PostgreSQL URL, stored in KV v2 at
'atelier/database' under the field 'url'. DATABASE_URL in the environment
skips Vault entirely (local development, CI).

Vault access uses AppRole and fails fast: missing configuration is a
ValueError, rejected credentials or an unreadable secret a PermissionError.
"""

import logging
import os

import hvac
from hvac.exceptions import InvalidPath, VaultError

logger = logging.getLogger(__name__)

DATABASE_SECRET_PATH = "atelier/database"
DATABASE_SECRET_FIELD = "url"

# Resolved once per process
_database_url: str | None = None


def _login() -> hvac.Client:
    """Authenticated hvac client from VAULT_* environment variables."""
    addr = os.getenv("VAULT_ADDR")
    role_id = os.getenv("VAULT_ROLE_ID")
    secret_id = os.getenv("VAULT_SECRET_ID")

    if not addr:
        raise ValueError("VAULT_ADDR environment variable is required")
    if not role_id or not secret_id:
        raise ValueError(
            "VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required"
        )

    client = hvac.Client(url=addr, namespace=os.getenv("VAULT_NAMESPACE") or None)
    try:
        client.auth.approle.login(role_id=role_id, secret_id=secret_id)
    except VaultError as e:
        logger.error("Vault AppRole login failed at %s: %s", addr, e)
        raise PermissionError(f"Vault authentication failed: {e}") from e

    if not client.is_authenticated():
        raise PermissionError("Vault authentication failed: token not accepted")
    return client


def read_database_url(client: hvac.Client) -> str:
    """
    Read the PostgreSQL URL secret.

    Raises:
        PermissionError: Secret missing or not readable with this role
        KeyError: Secret exists but has no 'url' field
    """
    try:
        response = client.secrets.kv.v2.read_secret_version(
            path=DATABASE_SECRET_PATH, raise_on_deleted_version=True
        )
    except InvalidPath as e:
        raise PermissionError(f"Secret '{DATABASE_SECRET_PATH}' not found in Vault") from e
    except VaultError as e:
        logger.error("Cannot read %s: %s", DATABASE_SECRET_PATH, e)
        raise PermissionError(f"Access denied to secret '{DATABASE_SECRET_PATH}'") from e

    data = response["data"]["data"]
    url = data.get(DATABASE_SECRET_FIELD)
    if not url:
        raise KeyError(
            f"Field '{DATABASE_SECRET_FIELD}' not found in secret '{DATABASE_SECRET_PATH}'"
        )
    return url


def get_database_url() -> str:
    """PostgreSQL URL: DATABASE_URL if set, else Vault (read once per process)."""
    override = os.getenv("DATABASE_URL")
    if override:
        return override

    global _database_url
    if _database_url is None:
        _database_url = read_database_url(_login())
        logger.info("Database URL loaded from Vault")
    return _database_url


def reset_cache() -> None:
    """Forget the cached URL, e.g. after credentials rotate."""
    global _database_url
    _database_url = None
