from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..logging import get_logger
from ..util.errors import LookupMissError, SourceUnavailableError

LOG = get_logger(__name__)

SUPPORTED_STATE_VERSION = 4


def format_index_key(index_key: Any) -> str:
    if isinstance(index_key, bool) or not isinstance(index_key, (int, str)):
        raise ValueError(f"unsupported index key: {index_key!r}")
    if isinstance(index_key, int):
        return f"[{index_key}]"
    return f"[{json.dumps(index_key)}]"


def resource_address(resource: Mapping[str, Any]) -> str:
    parts: List[str] = []
    module = resource.get("module")
    if module:
        parts.append(str(module))
    if resource.get("mode") == "data":
        parts.append("data")
    parts.append(f"{resource.get('type')}.{resource.get('name')}")
    return ".".join(parts)


def format_attribute_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class StateIndex:
    """
    In-memory index over a Terraform state document.

    `instances` maps a resource address to its concrete instance addresses
    for resources created with count/for_each; `attributes` maps every
    concrete address (indexed or not) to its attribute values.
    """

    def __init__(
        self,
        instances: Optional[Mapping[str, Sequence[str]]] = None,
        attributes: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> None:
        self._instances: Dict[str, List[str]] = {k: list(v) for k, v in (instances or {}).items()}
        self._attributes: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (attributes or {}).items()}

    @classmethod
    def from_tfstate(cls, document: Mapping[str, Any]) -> StateIndex:
        version = document.get("version")
        if version != SUPPORTED_STATE_VERSION:
            raise SourceUnavailableError(
                f"Unsupported state version {version!r}; expected {SUPPORTED_STATE_VERSION}"
            )
        instances: Dict[str, List[str]] = {}
        attributes: Dict[str, Dict[str, Any]] = {}
        for resource in document.get("resources") or []:
            if not isinstance(resource, Mapping):
                continue
            base = resource_address(resource)
            for inst in resource.get("instances") or []:
                if not isinstance(inst, Mapping):
                    continue
                attrs = inst.get("attributes")
                attrs = dict(attrs) if isinstance(attrs, Mapping) else {}
                index_key = inst.get("index_key")
                if index_key is None:
                    attributes[base] = attrs
                    continue
                address = base + format_index_key(index_key)
                instances.setdefault(base, []).append(address)
                attributes[address] = attrs
        return cls(instances, attributes)

    def addresses(self) -> List[str]:
        return sorted(self._attributes)

    def has_multiple_instances(self, address: str) -> bool:
        return bool(self._instances.get(address))

    def list_instance_addresses(self, address: str) -> List[str]:
        found = self._instances.get(address)
        if not found:
            raise LookupMissError(address, "no instances recorded")
        return list(found)

    def get_attribute_values(self, address: str, names: Sequence[str]) -> List[str]:
        attrs = self._attributes.get(address)
        if attrs is None:
            raise LookupMissError(address)
        values: List[str] = []
        for name in names:
            if name not in attrs:
                LOG.warning("Attribute %s not found for resource %s", name, address)
                continue
            values.append(f"{name}: {format_attribute_value(attrs[name])}")
        return values


EMPTY_STATE = StateIndex()


def load_state(path: Path) -> StateIndex:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SourceUnavailableError(f"error reading tfstate file {path}: {e}") from e
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise SourceUnavailableError(f"error reading tfstate file {path}: {e}") from e
    if not isinstance(document, dict):
        raise SourceUnavailableError(f"error reading tfstate file {path}: top-level value must be an object")
    index = StateIndex.from_tfstate(document)
    LOG.info("Loaded state", extra={"state": str(path), "resources": len(index.addresses())})
    return index

