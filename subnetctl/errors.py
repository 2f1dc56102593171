"""Error taxonomy for subnet lifecycle operations."""

from __future__ import annotations


class SubnetError(Exception):
    """Base class for every error raised by subnetctl operations."""


class NotFoundError(SubnetError):
    """A referenced subnet, key, descriptor or transaction file is absent."""


class AlreadyExistsError(SubnetError):
    """Raised when creating something whose name is already taken."""


class AlreadyDeployedError(SubnetError):
    """The subnet already has state recorded for the target network."""


class AlreadyElasticError(SubnetError):
    """The subnet was already transformed to the elastic staking model."""


class NotDeployedError(SubnetError):
    """The operation needs a deployed (or elastic) subnet on the target network."""


class IncompatibleVersionError(SubnetError):
    """No safe pairing exists between the VM and the node runtime."""


class ArtifactUnreadableError(SubnetError):
    """A VM binary could not be inspected for its protocol version."""


class UnauthorizedSignerError(SubnetError):
    """The signer is not one of the transaction's required authorizers."""


class AlreadySignedError(SubnetError):
    """The signer already contributed a signature to the transaction."""


class InsufficientSignaturesError(SubnetError):
    """The transaction does not yet carry enough signatures to commit."""


class TransactionStateError(SubnetError):
    """The transaction file is in a state that does not allow the operation."""


class ExternalOperationError(SubnetError):
    """A collaborator (node control plane, key tool, publisher) failed.

    ``output`` carries whatever diagnostic text the collaborator produced so
    the CLI can show it verbatim.
    """

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output
