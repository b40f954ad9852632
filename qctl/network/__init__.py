"""Network registry: the node and external-node entries of a qubernetes config.

This package provides:
- Models: typed node, external-node and genesis entries
- Store: YAML load/save of the whole registry document
- Registry: identity-checked CRUD with creation defaults
- Addresses: enode URL and key-material resolution
"""
