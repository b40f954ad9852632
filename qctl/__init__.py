"""qctl: manage Quorum node entries in a qubernetes network config."""

__version__ = "0.3.0"
