"""
Persistence of per-module, per-universe sub-stores.

Each (module_id, universe) pair owns one durable slot holding a JSON string.
The record carries a schema version so that older blobs can be loaded
against a newer field schema:

- unknown fields in a record are ignored by the caller (container)
- fields missing from a record take their declared defaults
- a record whose version is newer than the running schema is discarded

Loading never raises: a missing slot, malformed JSON or a record of the wrong
shape is logged and reported as absent, and the caller reseeds defaults.

Backends are tiny key/value interfaces; MemoryBackend is used for tests and
embedding, JsonDirectoryBackend keeps one file per slot on disk.
"""
from dataclasses import dataclass, field
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from twinstate.config import get_config
from twinstate.universe import Provenance, Universe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersistedState:
    """Immutable record of one universe's sub-store."""
    module_id: str
    universe: Universe
    values: Dict[str, Any]
    provenance: Dict[str, Provenance] = field(default_factory=dict)
    version: int = 1

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict."""
        return {
            'version': self.version,
            'module_id': self.module_id,
            'universe': self.universe.value,
            'values': self.values,
            'provenance': {name: p.value for name, p in self.provenance.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'PersistedState':
        """Import from dict. Raises KeyError/ValueError/TypeError on malformed input."""
        values = data['values']
        if not isinstance(values, dict):
            raise TypeError(f"'values' must be an object, got {type(values).__name__}")
        return cls(
            module_id=data['module_id'],
            universe=Universe(data['universe']),
            values=values,
            provenance={
                name: Provenance(p) for name, p in data.get('provenance', {}).items()
            },
            version=int(data.get('version', 1)),
        )


class MemoryBackend:
    """Slot storage in a dict."""

    def __init__(self):
        self.slots: Dict[str, str] = {}

    def read(self, slot: str) -> Optional[str]:
        return self.slots.get(slot)

    def write(self, slot: str, text: str) -> None:
        self.slots[slot] = text

    def delete(self, slot: str) -> None:
        self.slots.pop(slot, None)

    def list_slots(self) -> List[str]:
        return list(self.slots)


class JsonDirectoryBackend:
    """Slot storage as one <slot>.json file per slot in a directory."""

    def __init__(self, directory: Union[str, os.PathLike]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, slot: str) -> Path:
        return self.directory / f"{slot}.json"

    def read(self, slot: str) -> Optional[str]:
        path = self._path(slot)
        try:
            return path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read slot {slot!r} from {path}: {e}")
            return None

    def write(self, slot: str, text: str) -> None:
        path = self._path(slot)
        tmp = path.with_suffix('.json.tmp')
        tmp.write_text(text, encoding='utf-8')
        os.replace(tmp, path)

    def delete(self, slot: str) -> None:
        try:
            self._path(slot).unlink()
        except FileNotFoundError:
            pass

    def list_slots(self) -> List[str]:
        return sorted(p.stem for p in self.directory.glob('*.json'))


class PersistenceAdapter:
    """Serializes sub-stores to durable (module_id, universe) slots.

    Args:
        backend: Object with read/write/delete(slot). Defaults to MemoryBackend.
    """

    def __init__(self, backend=None):
        self.backend = backend if backend is not None else MemoryBackend()

    @staticmethod
    def slot_name(module_id: str, universe: Universe) -> str:
        """e.g. "S03_TARGET_STATE"."""
        return get_config().slot_template.format(
            module_id=module_id.upper(),
            universe=universe.value.upper(),
        )

    def save(
        self,
        module_id: str,
        universe: Universe,
        state_map: Mapping[str, Any],
        provenance: Optional[Mapping[str, Provenance]] = None,
    ) -> None:
        """Serialize state_map and write it to the slot.

        Write failures are logged; the in-memory state stays authoritative.
        """
        record = PersistedState(
            module_id=module_id,
            universe=universe,
            values=dict(state_map),
            provenance=dict(provenance or {}),
            version=get_config().schema_version,
        )
        slot = self.slot_name(module_id, universe)
        try:
            text = json.dumps(record.to_dict(), sort_keys=True)
            self.backend.write(slot, text)
        except (TypeError, ValueError, OSError) as e:
            logger.error(f"Error saving {slot}: {e}")
            return
        logger.debug(f"Saved {slot} ({len(record.values)} fields)")

    def load(self, module_id: str, universe: Universe) -> Optional[PersistedState]:
        """Read and deserialize a slot. Returns None when absent or unusable."""
        slot = self.slot_name(module_id, universe)
        try:
            text = self.backend.read(slot)
        except Exception as e:
            logger.warning(f"Could not read persisted state {slot}: {e}")
            return None
        if text is None:
            return None

        try:
            record = PersistedState.from_dict(json.loads(text))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Discarding malformed persisted state {slot}: {e}")
            return None

        if record.module_id != module_id or record.universe is not universe:
            logger.warning(
                f"Discarding persisted state {slot}: belongs to "
                f"{record.module_id}/{record.universe.value}"
            )
            return None

        if record.version > get_config().schema_version:
            logger.warning(
                f"Discarding persisted state {slot}: version {record.version} is newer "
                f"than supported version {get_config().schema_version}"
            )
            return None

        return record

    def clear(self, module_id: str, universe: Optional[Universe] = None) -> None:
        """Delete one universe's slot, or both when universe is None."""
        universes = [universe] if universe is not None else list(Universe)
        for u in universes:
            self.backend.delete(self.slot_name(module_id, u))
