"""
Mapping Templates

Named column mappings (and optionally account mappings) that users save once
per bank layout and reuse on later runs. Storage goes through a small
key-value abstraction so the backend is not tied to one persistence mechanism.
"""
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .models import ColumnMapping, TemplateNotFoundError

TEMPLATES_KEY = "bank_mapping_templates"


# =============================================================================
# Key-value stores
# =============================================================================

class KeyValueStore(ABC):
    """Storage capability: a list of plain dicts per key"""

    @abstractmethod
    def load(self, key: str) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def save(self, key: str, items: List[Dict[str, Any]]) -> None:
        pass


class MemoryStore(KeyValueStore):
    def __init__(self):
        self._data: Dict[str, List[Dict[str, Any]]] = {}

    def load(self, key: str) -> List[Dict[str, Any]]:
        return [dict(item) for item in self._data.get(key, [])]

    def save(self, key: str, items: List[Dict[str, Any]]) -> None:
        self._data[key] = [dict(item) for item in items]


class JsonFileStore(KeyValueStore):
    """All keys live in one JSON document on disk."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            print(f"[WARN] Could not read template store {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, key: str) -> List[Dict[str, Any]]:
        items = self._read().get(key, [])
        return [item for item in items if isinstance(item, dict)]

    def save(self, key: str, items: List[Dict[str, Any]]) -> None:
        data = self._read()
        data[key] = items
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)


# =============================================================================
# Templates
# =============================================================================

@dataclass
class MappingTemplate:
    name: str
    column_mapping: ColumnMapping
    account_mapping: Dict[str, str] = field(default_factory=dict)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "column_mapping": self.column_mapping.to_dict(),
            "account_mapping": dict(self.account_mapping),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MappingTemplate":
        kwargs: Dict[str, Any] = {}
        if data.get("created_at"):
            kwargs["created_at"] = str(data["created_at"])
        return cls(
            name=str(data["name"]),
            column_mapping=ColumnMapping.from_dict(data.get("column_mapping") or data.get("mappings")),
            account_mapping={str(k): str(v) for k, v in (data.get("account_mapping") or {}).items()},
            **kwargs,
        )


class TemplateRepository:
    """CRUD over mapping templates, stored as one list under a single key."""

    def __init__(self, store: KeyValueStore, key: str = TEMPLATES_KEY):
        self.store = store
        self.key = key

    def list(self) -> List[MappingTemplate]:
        out: List[MappingTemplate] = []
        for item in self.store.load(self.key):
            try:
                out.append(MappingTemplate.from_dict(item))
            except (KeyError, TypeError, ValueError):
                print(f"[WARN] Skipping malformed template: {item!r}")
        return out

    def find(self, name: str) -> Optional[MappingTemplate]:
        for template in self.list():
            if template.name == name:
                return template
        return None

    def get(self, name: str) -> MappingTemplate:
        template = self.find(name)
        if template is None:
            raise TemplateNotFoundError(f"Template not found: {name}")
        return template

    def save(self, template: MappingTemplate) -> MappingTemplate:
        """Insert or replace by name"""
        templates = [t for t in self.list() if t.name != template.name]
        templates.append(template)
        templates.sort(key=lambda t: t.name.lower())
        self.store.save(self.key, [t.to_dict() for t in templates])
        return template

    def delete(self, name: str) -> None:
        templates = self.list()
        remaining = [t for t in templates if t.name != name]
        if len(remaining) == len(templates):
            raise TemplateNotFoundError(f"Template not found: {name}")
        self.store.save(self.key, [t.to_dict() for t in remaining])
