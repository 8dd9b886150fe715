import json
from pathlib import Path
from threading import Lock

from speechcoach.core.logging import DOMAIN_PRACTICE, get_domain_logger
from speechcoach.schemas.practice import PracticeSummary

logger = get_domain_logger(__name__, DOMAIN_PRACTICE)


class PracticeSummaryStore:
    """Latest finished practice run per session, kept in a JSON file under the runtime data dir."""

    def __init__(self, base_dir: str | Path, max_entries: int = 500):
        self.base = Path(base_dir)
        self.summary_file = self.base / "practice_summaries.json"
        self.max_entries = max_entries
        self._lock = Lock()

    def _read(self) -> list[dict]:
        if not self.summary_file.exists():
            return []
        try:
            payload = json.loads(self.summary_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Practice summary file is corrupt, starting over | path=%s", self.summary_file)
            return []
        return payload.get("summaries", []) if isinstance(payload, dict) else []

    def save(self, summary: PracticeSummary) -> None:
        """Record `summary`, replacing any earlier run of the same session."""
        with self._lock:
            entries = [entry for entry in self._read() if entry.get("session_id") != summary.session_id]
            entries.append(summary.model_dump(mode="json"))
            entries = entries[-self.max_entries :]
            self.base.mkdir(parents=True, exist_ok=True)
            self.summary_file.write_text(json.dumps({"summaries": entries}, indent=2), encoding="utf-8")

    def list_recent(self, limit: int = 20) -> list[PracticeSummary]:
        with self._lock:
            entries = self._read()
        recent = entries[-limit:] if limit > 0 else []
        return [PracticeSummary.model_validate(entry) for entry in reversed(recent)]
