"""Error taxonomy for qctl.

Every failure the CLI knows how to report derives from ``QctlError``.
``ResourceAbsent`` is the only cluster outcome that callers treat as success.
"""

from __future__ import annotations


class QctlError(Exception):
    """Base class for qctl failures.

    ``remediation`` is an optional next-step hint rendered under the message.
    """

    def __init__(self, message: str, remediation: str = ""):
        super().__init__(message)
        self.message = message
        self.remediation = remediation


class ValidationError(QctlError):
    """Required configuration input is missing, unreadable or invalid."""


class RegistryParseError(QctlError):
    """The registry document could not be loaded into a NetworkConfig."""


class NotFoundError(QctlError):
    """A node or external-node identity is not present in the registry."""

    def __init__(
        self,
        kind: str,
        identity: str,
        known_identities: list[str] | None = None,
        remediation: str | None = None,
    ):
        self.kind = kind
        self.identity = identity
        self.known_identities = list(known_identities or [])
        if remediation is None:
            remediation = f"To list {kind}s run: qctl ls {kind.replace(' ', '')}"
        super().__init__(f"{kind} [{identity}] not found in config", remediation=remediation)


class DuplicateIdentityError(QctlError):
    """An add operation targeted an identity that is already in use."""

    def __init__(self, kind: str, identity: str):
        self.kind = kind
        self.identity = identity
        super().__init__(
            f"{kind} name [{identity}] exists, {kind} names must be unique",
        )


class ClusterError(QctlError):
    """The cluster resource controller reported a failure."""

    def __init__(self, message: str, command: list[str] | None = None, stderr: str = ""):
        super().__init__(message)
        self.command = list(command or [])
        self.stderr = stderr


class ResourceAbsent(ClusterError):
    """A cluster resource targeted for deletion or lookup does not exist."""


class ResourceQueryFailure(QctlError):
    """A derived value (enode URL, node-key address, tm key) could not be resolved."""


class AddressRewriteError(QctlError):
    """An enode URL did not contain the authority expected for rewriting."""


class KeyDirectoryIntegrityError(QctlError):
    """A hard delete found the key directory missing or still holding files."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(
            f"key directory [{path}] could not be removed: {reason}",
            remediation="Inspect the directory for unexpected files before removing it by hand.",
        )
