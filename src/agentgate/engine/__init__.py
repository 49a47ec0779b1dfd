"""Protocol engines — signed updates, nonce reveals, cross-chain consumption."""

from agentgate.engine.commitments import NonceCommitmentStore
from agentgate.engine.cross_chain import CrossChainNonceLedger
from agentgate.engine.reveal_gate import NonceRevealGate
from agentgate.engine.update_authenticator import UpdateAuthenticator

__all__ = [
    "NonceCommitmentStore",
    "CrossChainNonceLedger",
    "NonceRevealGate",
    "UpdateAuthenticator",
]
