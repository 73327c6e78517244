import asyncio
import json
import logging
import os
from datetime import datetime
from typing import Optional

from cardscan.services.scanner.models import CycleReport, Resolved, Unresolved

logger = logging.getLogger(__name__)

SCAN_LOG_DIR = os.path.join("data", "scan_logs")


class ScanLogger:
    """Appends one JSON line per finished capture cycle."""

    def __init__(self, base_dir: str = SCAN_LOG_DIR):
        self.base_dir = base_dir
        self.log_file = os.path.join(self.base_dir, 'scan_log.jsonl')
        os.makedirs(self.base_dir, exist_ok=True)

    def build_entry(self, report: CycleReport, mode: str) -> dict:
        matched_name: Optional[str] = None
        error: Optional[str] = None
        if isinstance(report.outcome, Resolved):
            matched_name = report.outcome.card.name
        elif isinstance(report.outcome, Unresolved):
            error = report.outcome.detail or report.outcome.reason
        elif not report.ok:
            error = report.message

        candidate = report.candidate.model_dump(mode='json', exclude_none=True) if report.candidate else None
        return {
            "timestamp": datetime.now().isoformat(),
            "mode": mode,
            "status": report.status.value,
            "success": report.ok,
            "candidate": candidate,
            "matched_name": matched_name,
            "error": error,
        }

    async def log_cycle(self, report: CycleReport, mode: str):
        entry = self.build_entry(report, mode)
        # IO operations
        await asyncio.to_thread(self._write_log, entry)

    def _write_log(self, entry: dict):
        try:
            with open(self.log_file, 'a', encoding='utf-8') as f:
                f.write(json.dumps(entry) + '\n')
        except Exception as e:
            logger.error(f"Failed to write scan log: {e}")
