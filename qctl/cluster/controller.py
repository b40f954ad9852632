"""Contract between qctl's core and whatever owns the cluster resources."""

from __future__ import annotations

from typing import Protocol


class ClusterController(Protocol):
    """Owns compute, storage and network resources plus key-material stores.

    Delete methods return normally on success, raise ``ResourceAbsent`` when
    the target does not exist and ``ClusterError`` for any other failure.
    Lookups raise the same two errors.
    """

    def delete_deployment(self, identity: str) -> None: ...

    def delete_persistent_volume_claim(self, identity: str) -> None: ...

    def delete_service(self, identity: str) -> None: ...

    def get_config_value(self, resource_name: str, path: str | None = None) -> str:
        """Return a config map value at JSONPath ``path``, or the whole map as YAML."""
        ...

    def get_service_value(self, resource_name: str, path: str) -> str: ...

    def query_peer_descriptor_list(self) -> str:
        """Return the text of the generated permissioned-nodes list."""
        ...

    def exec_interactive_shell(self, pod_selector: str, container: str) -> int: ...
