"""Locally generated signing identities.

Keys live only in process memory for the duration of one workflow run.
The secret is never logged and never part of repr().
"""

import logging
from dataclasses import dataclass, field

from stellar_sdk import Keypair, TransactionEnvelope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A labelled keypair owned by one workflow run."""

    label: str
    keypair: Keypair = field(repr=False, compare=False)

    @classmethod
    def generate(cls, label: str) -> "Identity":
        identity = cls(label=label, keypair=Keypair.random())
        logger.info(f"Created {label} identity: {identity.public_key}")
        return identity

    @classmethod
    def from_secret(cls, label: str, secret: str) -> "Identity":
        return cls(label=label, keypair=Keypair.from_secret(secret))

    @property
    def public_key(self) -> str:
        return self.keypair.public_key

    @property
    def secret(self) -> str:
        return self.keypair.secret

    def sign(self, envelope: TransactionEnvelope) -> TransactionEnvelope:
        envelope.sign(self.keypair)
        return envelope

    def sign_xdr(self, envelope_xdr: str, network_passphrase: str) -> str:
        """Sign a base64 transaction envelope produced elsewhere."""
        envelope = TransactionEnvelope.from_xdr(envelope_xdr, network_passphrase)
        envelope.sign(self.keypair)
        return envelope.to_xdr()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Identity):
            return NotImplemented
        return (self.label, self.public_key) == (other.label, other.public_key)

    def __hash__(self) -> int:
        return hash((self.label, self.public_key))

    def __str__(self) -> str:
        return f"{self.label} ({self.public_key})"
