"""
Producer API keys.

A key is a random SHA-256 hex token handed to the producer once. Only its
SHA-256 hash is stored, so a lost key cannot be recovered, only revoked and
replaced.
"""

import hashlib
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from .config import ADDRESS_PATTERN
from .logging_config import audit_log
from .util import format_instant, generate_token, mask_sensitive, utc_now


@dataclass(frozen=True)
class ApiKeyRecord:
    """Stored metadata for one key. Never contains the key itself."""
    producer_address: str
    created_at: str
    active: bool = True

    def to_dict(self) -> Dict[str, object]:
        return {
            "producerAddress": self.producer_address,
            "createdAt": self.created_at,
            "active": self.active,
        }


class ApiKeyStore(ABC):
    """
    Abstract interface for API key storage, keyed by key hash.

    Implementations must be safe for concurrent use.
    """

    @abstractmethod
    def get(self, key_hash: str) -> Optional[ApiKeyRecord]:
        pass

    @abstractmethod
    def put(self, key_hash: str, record: ApiKeyRecord) -> None:
        pass

    @abstractmethod
    def revoke(self, key_hash: str) -> bool:
        """
        Deactivate a key.

        Returns:
            True if the key existed, False otherwise
        """
        pass

    @abstractmethod
    def list_records(self) -> List[ApiKeyRecord]:
        pass


class InMemoryApiKeyStore(ApiKeyStore):
    """
    In-memory key store for development and testing.

    WARNING: Keys are lost on restart.
    """

    def __init__(self):
        self._records: Dict[str, ApiKeyRecord] = {}
        self._lock = threading.Lock()

    def get(self, key_hash: str) -> Optional[ApiKeyRecord]:
        with self._lock:
            return self._records.get(key_hash)

    def put(self, key_hash: str, record: ApiKeyRecord) -> None:
        with self._lock:
            self._records[key_hash] = record

    def revoke(self, key_hash: str) -> bool:
        with self._lock:
            record = self._records.get(key_hash)
            if record is None:
                return False
            self._records[key_hash] = replace(record, active=False)
            return True

    def list_records(self) -> List[ApiKeyRecord]:
        with self._lock:
            return list(self._records.values())


def is_valid_address(address: object) -> bool:
    return isinstance(address, str) and bool(ADDRESS_PATTERN.match(address))


class ApiKeyService:
    """Issues, checks and revokes producer API keys."""

    def __init__(self, store: Optional[ApiKeyStore] = None):
        self.store = store or InMemoryApiKeyStore()

    @staticmethod
    def hash_key(api_key: str) -> str:
        return hashlib.sha256(api_key.encode("utf-8")).hexdigest()

    def generate(self, producer_address: str) -> str:
        """
        Issue and store a new key for a producer.

        Raises:
            ValueError: producer_address is not a 0x-prefixed 20-byte hex address
        """
        if not is_valid_address(producer_address):
            raise ValueError("Valid Ethereum address required")

        seed = f"{producer_address}-{generate_token(32)}-{int(time.time() * 1000)}"
        api_key = hashlib.sha256(seed.encode("utf-8")).hexdigest()
        self.store.put(
            self.hash_key(api_key),
            ApiKeyRecord(producer_address=producer_address, created_at=format_instant(utc_now())),
        )
        audit_log.api_key_issued(producer_address)
        return api_key

    def authenticate(self, api_key: Optional[str]) -> Optional[str]:
        """Producer address for an active key, None otherwise."""
        if not api_key:
            return None
        record = self.store.get(self.hash_key(api_key))
        if record is None or not record.active:
            audit_log.security_event(
                "invalid_api_key", severity="medium", key=mask_sensitive(api_key),
            )
            return None
        return record.producer_address

    def revoke(self, api_key: str) -> bool:
        key_hash = self.hash_key(api_key)
        record = self.store.get(key_hash)
        if record is None or not self.store.revoke(key_hash):
            return False
        audit_log.api_key_revoked(record.producer_address)
        return True

    def list_keys(self) -> List[ApiKeyRecord]:
        """Metadata of every stored key, active or not."""
        return self.store.list_records()
