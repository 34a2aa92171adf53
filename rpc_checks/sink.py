from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog


logger = structlog.get_logger(__name__)

DEFAULT_MERGED_FILENAME = "all.json"


def _write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


class ResultSink:
    """
    Per-chain JSON files plus the merged document covering every processed chain.

    The merged map is only written by write_merged(), once, at the end of a run.
    """

    def __init__(self, out_dir: Path, *, merged_filename: str = DEFAULT_MERGED_FILENAME):
        self.out_dir = Path(out_dir)
        self.merged_filename = merged_filename
        self._merged: dict[str, Any] = {}

    @property
    def merged(self) -> dict[str, Any]:
        return self._merged

    @property
    def merged_path(self) -> Path:
        return self.out_dir / self.merged_filename

    def path_for(self, chain_id: int | str) -> Path:
        filename = f"{chain_id}.json"
        if Path(filename).name != filename or filename.startswith("."):
            raise ValueError(f"chain id {chain_id!r} is not usable as a file name")
        return self.out_dir / filename

    def exists(self, chain_id: int | str) -> bool:
        return self.path_for(chain_id).is_file()

    def load(self, chain_id: int | str) -> Any:
        with open(self.path_for(chain_id), "r", encoding="utf-8") as f:
            return json.load(f)

    def write_chain(self, chain_id: int | str, record: dict[str, Any]) -> Path:
        path = self.path_for(chain_id)
        _write_json_atomic(path, record)
        logger.debug("chain_written", chain_id=str(chain_id), path=str(path))
        return path

    def add(self, chain_id: int | str, record: Any) -> None:
        key = str(chain_id)
        if not key:
            raise ValueError("chain id must not be empty")
        self._merged[key] = record

    def write_merged(self) -> Path:
        _write_json_atomic(self.merged_path, self._merged)
        logger.info("merged_written", path=str(self.merged_path), chains=len(self._merged))
        return self.merged_path
