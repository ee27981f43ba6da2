"""ProvenanceRecorder — wraps package metadata into a signed event chain.

The chain is created once per build and embedded verbatim as chain.json:

    genesis = sha256("ownable-chain" + public key + random nonce)
    event   = signed {"@context", "package", "network", "keywords"}
    id      = sha256(genesis + event hashes)

The account secret is pulled from a provider inside :meth:`record`, used to
derive the account and dropped; it is never logged or stored.
"""

import hashlib
import secrets
from typing import Callable

from app.models.project import ProjectDescriptor
from app.utils.logging import get_logger
from models.package import ProvenanceRecord
from pipeline.errors import ProvenanceError
from provenance.signer import Ed25519Signer, Signer, verify_event

logger = get_logger("provenance.recorder")

EVENT_CONTEXT = "package.json"


def package_reference(descriptor: ProjectDescriptor, binary_digest: str) -> str:
    """Reference to the packaged artifact: ``name@version#sha256:<digest>``."""
    return f"{descriptor.name}@{descriptor.version}#sha256:{binary_digest}"


class ProvenanceRecorder:
    """Create the signed provenance record of one build.

    Args:
        signer: Signing capability; defaults to :class:`Ed25519Signer`.
        network: Network tag stamped on the account and the event.
    """

    def __init__(self, signer: Signer | None = None, network: str = "T") -> None:
        self.signer = signer or Ed25519Signer()
        self.network = network

    def record(
        self,
        secret_provider: Callable[[], str],
        descriptor: ProjectDescriptor,
        package_ref: str,
    ) -> ProvenanceRecord:
        """Sign a single package event and return the chain.

        Raises:
            ProvenanceError: If the secret is empty or signing fails.
        """
        try:
            account = self._derive(secret_provider)
            genesis = hashlib.sha256(
                b"ownable-chain"
                + bytes.fromhex(account.public_key)
                + secrets.token_bytes(16)
            ).hexdigest()
            payload = {
                "@context": EVENT_CONTEXT,
                "package": package_ref,
                "network": self.network,
                "keywords": list(descriptor.keywords),
            }
            event = self.signer.sign_event(account, payload, genesis)
        except ProvenanceError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ProvenanceError(f"Failed to sign provenance event: {exc}") from exc

        chain_id = hashlib.sha256((genesis + event.hash).encode("ascii")).hexdigest()
        record = ProvenanceRecord(
            id=chain_id,
            network=self.network,
            account=account.address,
            genesis=genesis,
            events=(event,),
        )
        logger.info("provenance_recorded", chain_id=chain_id, account=account.address)
        return record

    def _derive(self, secret_provider: Callable[[], str]):
        secret = (secret_provider() or "").strip()
        if not secret:
            raise ProvenanceError("Seed phrase cannot be empty")
        try:
            return self.signer.derive_account(secret, self.network)
        except Exception as exc:  # noqa: BLE001
            raise ProvenanceError(f"Failed to derive account: {exc}") from exc


def verify_record(record: ProvenanceRecord) -> bool:
    """Check every signature, the hash links and the chain id."""
    previous = record.genesis
    for event in record.events:
        if event.previous != previous or not verify_event(event):
            return False
        previous = event.hash
    expected = hashlib.sha256(
        (record.genesis + "".join(e.hash for e in record.events)).encode("ascii")
    ).hexdigest()
    return expected == record.id


__all__ = ["ProvenanceRecorder", "package_reference", "verify_record", "EVENT_CONTEXT"]
