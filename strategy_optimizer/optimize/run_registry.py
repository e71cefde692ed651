from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from strategy_optimizer.settings import get_settings

MANIFEST_NAME = "runs_manifest.jsonl"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def manifest_path(root: Optional[Path] = None) -> Path:
    base = Path(root) if root is not None else Path(get_settings().output_dir)
    return base / MANIFEST_NAME


def _append_record(path: Path, record: Dict[str, object]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, default=str) + "\n")


def record_run_event(
    run_id: str, status: str, *, root: Optional[Path] = None, **payload: object
) -> None:
    data: Dict[str, object] = {
        "run_id": run_id,
        "status": status,
        "ts": _utcnow().isoformat(),
    }
    data.update(payload)
    _append_record(manifest_path(root), data)


def load_runs(
    limit: int = 50, *, root: Optional[Path] = None
) -> List[Dict[str, object]]:
    path = manifest_path(root)
    if not path.exists():
        return []
    records: List[Dict[str, object]] = []
    with path.open(encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    # newest first; the manifest is append-only
    return records[::-1][:limit]


__all__ = ["record_run_event", "load_runs", "manifest_path", "MANIFEST_NAME"]
