# storage.py
# JSON file storage. One file per collection, each holding a list of records.
# There is no locking: concurrent writers may interleave.

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .errors import StorageError

log = logging.getLogger("rfpcloud.storage")

COLLECTIONS = ("rfps", "vendors", "proposals", "rfp_vendors", "inbound_emails", "outbox")

Record = Dict[str, Any]


class JsonStorage:
    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.files = {key: self.data_dir / f"{key}.json" for key in COLLECTIONS}
        for f in self.files.values():
            if not f.exists():
                f.write_text("[]")

    def read_json(self, key: str) -> List[Record]:
        p = self.files[key]
        try:
            return json.loads(p.read_text())
        except json.JSONDecodeError as e:
            # refuse to go on: the next write would replace the file with a partial list
            log.error("Collection file %s is not valid JSON: %s", p, e)
            raise StorageError(f"Collection {key} is unreadable; fix or restore {p.name}") from e

    def write_json(self, key: str, obj: Any):
        p = self.files[key]
        p.write_text(json.dumps(obj, indent=2, default=str))

    # --- record helpers ---

    def all(self, key: str) -> List[Record]:
        return self.read_json(key)

    def get(self, key: str, record_id: str) -> Optional[Record]:
        return next((x for x in self.read_json(key) if x.get("id") == record_id), None)

    def find(self, key: str, predicate: Optional[Callable[[Record], bool]] = None, **equals) -> List[Record]:
        rows = self.read_json(key)
        out = []
        for r in rows:
            if any(r.get(k) != v for k, v in equals.items()):
                continue
            if predicate is not None and not predicate(r):
                continue
            out.append(r)
        return out

    def find_one(self, key: str, **equals) -> Optional[Record]:
        found = self.find(key, **equals)
        return found[0] if found else None

    def insert(self, key: str, record: Record) -> Record:
        rows = self.read_json(key)
        rows.append(record)
        self.write_json(key, rows)
        return record

    def update(self, key: str, record_id: str, fields: Record) -> Optional[Record]:
        rows = self.read_json(key)
        for r in rows:
            if r.get("id") == record_id:
                r.update(fields)
                self.write_json(key, rows)
                return r
        return None

    def delete(self, key: str, record_id: str) -> bool:
        return self.delete_where(key, id=record_id) > 0

    def delete_where(self, key: str, **equals) -> int:
        rows = self.read_json(key)
        kept = [r for r in rows if any(r.get(k) != v for k, v in equals.items())]
        if len(kept) != len(rows):
            self.write_json(key, kept)
        return len(rows) - len(kept)
