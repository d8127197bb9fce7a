from __future__ import annotations
import json
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import numpy as np


def _jsonable(x: Any) -> Any:
    if isinstance(x, np.ndarray):
        return x.tolist()
    if isinstance(x, (np.floating, np.integer, np.bool_)):
        return x.item()
    if isinstance(x, (list, tuple)):
        return [_jsonable(v) for v in x]
    if isinstance(x, dict):
        return {str(k): _jsonable(v) for k, v in x.items()}
    return x


class JsonRunLogger:
    """
    Logger muy simple en formato JSONL (una línea por evento) para trazabilidad de solves.
    Con log_dir=None no escribe a disco y sólo guarda los eventos en memoria (`records`).
    """
    def __init__(self, log_dir: Optional[str] = "logs", run_name: str = "run"):
        self.path: Optional[str] = None
        if log_dir is not None:
            os.makedirs(log_dir, exist_ok=True)
            ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
            self.path = os.path.join(log_dir, f"{run_name}-{ts}.jsonl")
        self.t0 = time.time()
        self.records: list[Dict[str, Any]] = []

    def log(self, event: str, **payload: Any) -> Dict[str, Any]:
        rec = {
            "event": event,
            "utc": datetime.now(timezone.utc).isoformat(),
            "elapsed_sec": round(time.time() - self.t0, 3),
            **_jsonable(payload),
        }
        self.records.append(rec)
        if self.path is not None:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(rec, ensure_ascii=False) + "\n")
        return rec


def log_event(run_logger: Optional[JsonRunLogger], event: str, **payload: Any) -> None:
    """No-op si no hay logger (los solvers lo reciben opcionalmente)."""
    if run_logger is not None:
        run_logger.log(event, **payload)
