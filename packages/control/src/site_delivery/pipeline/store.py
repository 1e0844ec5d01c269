from __future__ import annotations

from pathlib import Path

from site_delivery.core import RunNotFoundError, atomic_write_json, read_json

from .types import PipelineRun


class RunStore:
    """
    PipelineRun records as JSON under `root/<run_id>/run.json`.
    """

    RUN_FILE = "run.json"
    JOURNAL_FILE = "events.jsonl"

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def run_dir(self, run_id: str) -> Path:
        return self.root / run_id

    def journal_path(self, run_id: str) -> Path:
        return self.run_dir(run_id) / self.JOURNAL_FILE

    def save(self, run: PipelineRun) -> Path:
        path = self.run_dir(run.run_id) / self.RUN_FILE
        atomic_write_json(path, run.to_dict())
        return path

    def load(self, run_id: str) -> PipelineRun:
        path = self.run_dir(run_id) / self.RUN_FILE
        if not path.is_file():
            raise RunNotFoundError(f"Unknown run: {run_id}")
        return PipelineRun.from_dict(read_json(path))

    def run_ids(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            p.parent.name for p in self.root.glob(f"*/{self.RUN_FILE}") if p.is_file()
        )
