from __future__ import annotations

from typing import List, Protocol, Sequence, runtime_checkable


@runtime_checkable
class StateLookup(Protocol):
    """
    Read-only view of deployed resources used by the pipeline.
    Implementations raise LookupMissError for addresses they do not know.
    """

    def has_multiple_instances(self, address: str) -> bool:
        ...

    def list_instance_addresses(self, address: str) -> List[str]:
        ...

    def get_attribute_values(self, address: str, names: Sequence[str]) -> List[str]:
        ...
