"""
API credential resolution for the embedding provider.

Credentials come from a priority-ordered list of providers. The default
order is the environment first, then the encrypted key stored in the
database.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Literal, Protocol, TypeAlias

from .config import ENV_API_KEY
from .errors import CredentialError
from .storage import StorageBackend

logger = logging.getLogger(__name__)

CredentialSource: TypeAlias = Literal["env", "store"]
Decryptor: TypeAlias = Callable[[str, str], str]


@dataclass(frozen=True)
class Credential:
    """A resolved API key and where it came from."""

    key: str
    source: CredentialSource

    def __repr__(self) -> str:
        return f"Credential(key='***', source={self.source!r})"


class CredentialProvider(Protocol):
    def get_credential(self) -> Credential | None:
        """Return a credential, or None when this provider has nothing configured."""


class EnvCredentialProvider:
    """Read the API key from an environment variable."""

    def __init__(self, env_var: str = ENV_API_KEY) -> None:
        self.env_var = env_var

    def get_credential(self) -> Credential | None:
        value = os.getenv(self.env_var)
        if value is None or not value.strip():
            return None
        return Credential(key=value.strip(), source="env")


class StoreCredentialProvider:
    """Read the encrypted API key from storage and decrypt it."""

    def __init__(
        self,
        storage: StorageBackend,
        decrypt: Decryptor,
        *,
        provider: str = "voyage",
    ) -> None:
        self.storage = storage
        self.decrypt = decrypt
        self.provider = provider

    def get_credential(self) -> Credential | None:
        record = self.storage.get_api_key(provider=self.provider)
        if record is None:
            return None
        if not record.is_valid:
            raise CredentialError(
                f"Stored {self.provider} API key is flagged invalid. "
                "Reconfigure the key before generating embeddings."
            )
        return Credential(
            key=self.decrypt(record.encrypted_key, record.nonce),
            source="store",
        )


class CredentialResolver:
    """Try each provider in order and return the first credential found."""

    def __init__(self, providers: list[CredentialProvider]) -> None:
        self.providers = list(providers)

    def resolve(self) -> Credential:
        for provider in self.providers:
            credential = provider.get_credential()
            if credential is not None:
                logger.debug("Embedding credential resolved from %s", credential.source)
                return credential
        raise CredentialError(
            f"Embedding API key not configured. Set {ENV_API_KEY} "
            "or store an API key in the database."
        )

    def is_configured(self) -> bool:
        try:
            self.resolve()
        except CredentialError:
            return False
        return True


def default_resolver(
    storage: StorageBackend | None = None,
    decrypt: Decryptor | None = None,
) -> CredentialResolver:
    """Environment first, then the stored key when storage and a decryptor are given."""
    providers: list[CredentialProvider] = [EnvCredentialProvider()]
    if storage is not None and decrypt is not None:
        providers.append(StoreCredentialProvider(storage, decrypt))
    return CredentialResolver(providers)
