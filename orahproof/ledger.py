"""
Ledger gateway for orahproof.

The registry contract is an append-only store keyed by batch id. A producer
creates the record (with a fee); only the registry owner may mark it
verified, which also writes the proof hash. The core never talks to the
registry directly, only through a LedgerGateway:

    submit(batch_id, proof_hash)  -> SubmissionReceipt
    is_verified(batch_id)         -> bool
    get_record(batch_id)          -> Optional[LedgerRecord]

Every call may suspend. Failures are raised as LedgerError subclasses:

    LedgerRejectedError       registry refused (missing record, duplicate, revert)
    LedgerUnreachableError    network failure or receipt timeout
    LedgerAuthorizationError  gateway identity is not the registry owner
"""

import asyncio
import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .config import Settings
from .exceptions import (
    LedgerAuthorizationError,
    LedgerError,
    LedgerRejectedError,
    LedgerUnreachableError,
)

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

PROOF_MISSING_REASON = "Proof does not exist"
ALREADY_VERIFIED_REASON = "Proof already verified"
NOT_OWNER_REASON = "OwnableUnauthorizedAccount"


@dataclass(frozen=True)
class SubmissionReceipt:
    """Confirmation of an accepted submission."""
    transaction_ref: str
    confirmation_height: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionHash": self.transaction_ref,
            "blockNumber": self.confirmation_height,
        }


@dataclass(frozen=True)
class LedgerRecord:
    """A registry entry as stored on the ledger."""
    batch_id: str
    metadata_cid: str = ""
    self_did: str = ""
    producer: str = ZERO_ADDRESS
    verified: bool = False
    verification_fee: int = 0
    proof_hash: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "metadataCID": self.metadata_cid,
            "selfDID": self.self_did,
            "producer": self.producer,
            "verified": self.verified,
            "verificationFee": self.verification_fee,
            "proofHash": self.proof_hash,
        }


class LedgerGateway(ABC):
    """
    Abstract interface to the proof registry.

    Implementations must be safe to share between concurrent requests.
    Duplicate protection is the registry's job: a second submit for an
    already verified batch is rejected there.
    """

    @abstractmethod
    async def submit(self, batch_id: str, proof_hash: str) -> SubmissionReceipt:
        """
        Record proof_hash as the verification of batch_id.

        Raises:
            LedgerRejectedError, LedgerUnreachableError, LedgerAuthorizationError
        """
        pass

    @abstractmethod
    async def is_verified(self, batch_id: str) -> bool:
        """True if the batch exists and has been verified."""
        pass

    @abstractmethod
    async def get_record(self, batch_id: str) -> Optional[LedgerRecord]:
        """The registry entry, or None if the batch is not registered."""
        pass


class InMemoryLedgerGateway(LedgerGateway):
    """
    In-memory registry for development and testing.

    Models the registry's behaviour: records must be created before they can
    be verified, only the owner identity may verify, and a batch can be
    verified once. With ``auto_create`` a submit for an unknown batch creates
    the record first, standing in for the producer's own creation step.
    """

    def __init__(
        self,
        owner: str = "owner",
        caller: Optional[str] = None,
        auto_create: bool = False,
        start_height: int = 1,
    ):
        self.owner = owner
        self.caller = caller if caller is not None else owner
        self.auto_create = auto_create
        self.unreachable = False
        self._records: Dict[str, LedgerRecord] = {}
        self._height = start_height
        self._lock = threading.Lock()

    def create_proof(
        self,
        batch_id: str,
        metadata_cid: str = "",
        self_did: str = "",
        producer: str = ZERO_ADDRESS,
        verification_fee: int = 0,
    ) -> LedgerRecord:
        """Register a batch, as the producer does before verification."""
        if not batch_id:
            raise LedgerRejectedError("Batch ID cannot be empty")
        with self._lock:
            if batch_id in self._records:
                raise LedgerRejectedError("Proof already exists", detail=batch_id)
            record = LedgerRecord(
                batch_id=batch_id,
                metadata_cid=metadata_cid,
                self_did=self_did,
                producer=producer,
                verification_fee=verification_fee,
            )
            self._records[batch_id] = record
            return record

    def _check_reachable(self) -> None:
        if self.unreachable:
            raise LedgerUnreachableError("Ledger node unreachable")

    async def submit(self, batch_id: str, proof_hash: str) -> SubmissionReceipt:
        self._check_reachable()
        if self.caller != self.owner:
            raise LedgerAuthorizationError(
                "Backend wallet is not the contract owner. Only the contract owner can verify proofs.",
                detail=NOT_OWNER_REASON,
            )
        with self._lock:
            record = self._records.get(batch_id)
            if record is None:
                if not self.auto_create:
                    raise LedgerRejectedError(
                        f'Batch ID "{batch_id}" does not exist in the registry. '
                        "The product must be registered first.",
                        detail=PROOF_MISSING_REASON,
                    )
                record = LedgerRecord(batch_id=batch_id)
            if record.verified:
                raise LedgerRejectedError(
                    f'Batch ID "{batch_id}" is already verified',
                    detail=ALREADY_VERIFIED_REASON,
                )
            self._records[batch_id] = replace(record, verified=True, proof_hash=proof_hash)
            height = self._height
            self._height += 1

        tx_ref = "0x" + hashlib.sha256(f"{batch_id}:{proof_hash}:{height}".encode()).hexdigest()
        logger.debug("In-memory ledger verified %s at height %d", batch_id, height)
        return SubmissionReceipt(transaction_ref=tx_ref, confirmation_height=height)

    async def is_verified(self, batch_id: str) -> bool:
        self._check_reachable()
        with self._lock:
            record = self._records.get(batch_id)
        return record is not None and record.verified

    async def get_record(self, batch_id: str) -> Optional[LedgerRecord]:
        self._check_reachable()
        with self._lock:
            return self._records.get(batch_id)


# ============================================================
# web3 registry gateway
# ============================================================

_PROOF_COMPONENTS = [
    {"name": "batchId", "type": "string"},
    {"name": "metadataCID", "type": "string"},
    {"name": "selfDID", "type": "string"},
    {"name": "producer", "type": "address"},
    {"name": "verified", "type": "bool"},
    {"name": "verificationFee", "type": "uint256"},
    {"name": "proofHash", "type": "string"},
]

REGISTRY_ABI = [
    {
        "type": "function",
        "name": "verifyProof",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "batchId", "type": "string"},
            {"name": "proofHash", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "isProofVerified",
        "stateMutability": "view",
        "inputs": [{"name": "batchId", "type": "string"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "getProof",
        "stateMutability": "view",
        "inputs": [{"name": "batchId", "type": "string"}],
        "outputs": [{"name": "", "type": "tuple", "components": _PROOF_COMPONENTS}],
    },
]


def classify_web3_error(exc: BaseException, batch_id: Optional[str] = None) -> LedgerError:
    """Map a web3 / transport failure onto the ledger fault taxonomy."""
    message = str(exc)
    if NOT_OWNER_REASON in message or "caller is not the owner" in message:
        return LedgerAuthorizationError(
            "Backend wallet is not the contract owner. Only the contract owner can verify proofs.",
            detail=message,
        )
    if PROOF_MISSING_REASON in message:
        return LedgerRejectedError(
            f'Batch ID "{batch_id}" does not exist in the registry. '
            "The product must be registered first.",
            detail=message,
        )
    if isinstance(exc, ContractLogicError):
        return LedgerRejectedError(f"Registry rejected the call: {message}", detail=message)
    if isinstance(exc, (TimeExhausted, asyncio.TimeoutError, OSError)):
        return LedgerUnreachableError(f"Ledger node unreachable: {message}", detail=message)
    return LedgerRejectedError(f"Blockchain error: {message or type(exc).__name__}", detail=message)


class Web3LedgerGateway(LedgerGateway):
    """
    Gateway to the on-chain registry over JSON-RPC.

    Reads use eth_call; submit signs a verifyProof transaction with the
    backend key and waits for its receipt up to ``receipt_timeout`` seconds.
    """

    def __init__(
        self,
        rpc_url: str,
        registry_address: str,
        private_key: str,
        chain_id: Optional[int] = None,
        receipt_timeout: float = 120.0,
        w3: Optional[AsyncWeb3] = None,
    ):
        self.rpc_url = rpc_url
        self.registry_address = AsyncWeb3.to_checksum_address(registry_address)
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self._private_key = private_key
        self._w3 = w3
        self._contract = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Web3LedgerGateway":
        return cls(
            rpc_url=settings.effective_rpc_url,
            registry_address=settings.registry_address,
            private_key=settings.backend_private_key,
            chain_id=settings.network_info.chain_id,
            receipt_timeout=settings.receipt_timeout_seconds,
        )

    @property
    def w3(self) -> AsyncWeb3:
        if self._w3 is None:
            self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self.rpc_url))
        return self._w3

    @property
    def contract(self):
        if self._contract is None:
            self._contract = self.w3.eth.contract(address=self.registry_address, abi=REGISTRY_ABI)
        return self._contract

    async def submit(self, batch_id: str, proof_hash: str) -> SubmissionReceipt:
        try:
            account = self.w3.eth.account.from_key(self._private_key)
        except ValueError as e:
            raise LedgerAuthorizationError(
                "Backend signing key could not be loaded", detail=type(e).__name__,
            ) from e
        logger.info(
            "Submitting verification to registry %s: batch=%s proof=%s",
            self.registry_address, batch_id, proof_hash,
        )
        try:
            tx_params = {
                "from": account.address,
                "nonce": await self.w3.eth.get_transaction_count(account.address),
            }
            if self.chain_id is not None:
                tx_params["chainId"] = self.chain_id
            tx = await self.contract.functions.verifyProof(batch_id, proof_hash).build_transaction(tx_params)
            signed_tx = account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except (Web3Exception, asyncio.TimeoutError, OSError, ValueError) as e:
            raise classify_web3_error(e, batch_id) from e

        tx_ref = AsyncWeb3.to_hex(tx_hash)
        if receipt["status"] == 0:
            raise LedgerRejectedError("Transaction reverted on-chain", detail=tx_ref)

        logger.info("Verified on ledger: tx=%s block=%s", tx_ref, receipt["blockNumber"])
        return SubmissionReceipt(transaction_ref=tx_ref, confirmation_height=receipt["blockNumber"])

    async def is_verified(self, batch_id: str) -> bool:
        try:
            return bool(await self.contract.functions.isProofVerified(batch_id).call())
        except (Web3Exception, asyncio.TimeoutError, OSError, ValueError) as e:
            raise classify_web3_error(e, batch_id) from e

    async def get_record(self, batch_id: str) -> Optional[LedgerRecord]:
        try:
            raw = await self.contract.functions.getProof(batch_id).call()
        except (Web3Exception, asyncio.TimeoutError, OSError, ValueError) as e:
            if PROOF_MISSING_REASON in str(e):
                return None
            raise classify_web3_error(e, batch_id) from e

        batch, metadata_cid, self_did, producer, verified, fee, proof_hash = raw
        if not batch:
            return None
        return LedgerRecord(
            batch_id=batch,
            metadata_cid=metadata_cid,
            self_did=self_did,
            producer=producer,
            verified=bool(verified),
            verification_fee=int(fee),
            proof_hash=proof_hash,
        )


def get_ledger_gateway(settings: Settings) -> LedgerGateway:
    """Build the gateway selected by LEDGER_BACKEND."""
    if settings.ledger_backend == "web3":
        return Web3LedgerGateway.from_settings(settings)
    return InMemoryLedgerGateway(auto_create=True)
