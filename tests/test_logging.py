from __future__ import annotations

import json
import logging
from pathlib import Path

from orthomatrix.logging import configure_logging, get_logger


def test_json_log_file_records_skip_decisions(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "run.jsonl"
    configure_logging(verbose=True, log_file=log_file)

    logger = get_logger("core.merging")
    logger.info("Rejecting singleton cluster %d (%d sequences)", 7, 2)
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert logger.name == "orthomatrix.core.merging"
    payload = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert payload["level"] == "INFO"
    assert payload["message"] == "Rejecting singleton cluster 7 (2 sequences)"

    configure_logging(quiet=True)
    assert logging.getLogger().level == logging.ERROR
