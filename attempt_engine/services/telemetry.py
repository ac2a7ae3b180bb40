# FILE: attempt_engine/services/telemetry.py
"""
Attempt lifecycle telemetry (rotated JSONL)

- Stores summary-only events (attempt started, submitted, auto-submitted,
  anti-cheat syncs) to disk, append-only.
- Rotates daily on the local date of TELEMETRY_TIMEZONE; timestamps stay UTC.
- Keeps a small in-memory tail and per-event counters for /health.
"""
from __future__ import annotations

import json
import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Any, Deque, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from attempt_engine.config import get_settings

logger = logging.getLogger(__name__)

_MAX_IN_MEMORY_EVENTS = 200
_recent_events: Deque[Dict[str, Any]] = deque(maxlen=_MAX_IN_MEMORY_EVENTS)
_counters: Dict[str, int] = defaultdict(int)


@dataclass(frozen=True)
class TelemetryConfig:
    enabled: bool
    rotation: str
    tz_name: str
    retention_days: int
    logs_dir: Path


def _get_config() -> TelemetryConfig:
    settings = get_settings()
    return TelemetryConfig(
        enabled=settings.telemetry_enabled,
        rotation=settings.telemetry_rotation.strip().lower(),
        tz_name=settings.telemetry_timezone.strip(),
        retention_days=settings.telemetry_retention_days,
        logs_dir=Path(settings.logs_dir),
    )


def _resolve_tz(tz_name: str) -> tzinfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Invalid TELEMETRY_TIMEZONE=%s; falling back to UTC", tz_name)
        return timezone.utc


def _telemetry_dir(cfg: TelemetryConfig) -> Path:
    d = cfg.logs_dir / "telemetry"
    d.mkdir(parents=True, exist_ok=True)
    return d


def _event_file_path(cfg: TelemetryConfig, now_utc: datetime) -> Path:
    local_dt = now_utc.astimezone(_resolve_tz(cfg.tz_name))
    date_str = local_dt.date().isoformat()

    if cfg.rotation != "daily":
        logger.warning("Unsupported TELEMETRY_ROTATION=%s; using daily", cfg.rotation)

    return _telemetry_dir(cfg) / f"events-{date_str}.jsonl"


def _prune_old_files(cfg: TelemetryConfig) -> None:
    """Delete rotated files older than retention_days"""
    cutoff = datetime.now(timezone.utc) - timedelta(days=max(cfg.retention_days, 1))

    for p in _telemetry_dir(cfg).glob("events-*.jsonl"):
        date_part = p.name.replace("events-", "").replace(".jsonl", "")
        try:
            file_date = datetime.fromisoformat(date_part).replace(tzinfo=timezone.utc)
        except ValueError:
            logger.debug("Skipping unrecognised telemetry file %s", p.name)
            continue

        if file_date < cutoff:
            try:
                p.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not prune %s: %s", p, e)


def init_telemetry() -> None:
    """Create the telemetry dir and apply retention"""
    cfg = _get_config()
    if not cfg.enabled:
        logger.info("Telemetry disabled")
        return

    _telemetry_dir(cfg)
    _prune_old_files(cfg)
    logger.info(
        "Telemetry initialized (rotation=%s tz=%s retention_days=%s dir=%s)",
        cfg.rotation,
        cfg.tz_name,
        cfg.retention_days,
        str(cfg.logs_dir),
    )


def record_event(event: str, **fields: Any) -> None:
    """Record a summary-only event; a failed write is logged, never raised"""
    cfg = _get_config()
    if not cfg.enabled:
        return

    now_utc = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "ts": now_utc.isoformat(),
        "event": event,
        "tz": cfg.tz_name,
        **fields,
    }

    _recent_events.append(payload)
    _counters[event] += 1

    path = _event_file_path(cfg, now_utc)
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    except OSError as e:
        logger.warning("Failed to write telemetry event to %s: %s", str(path), e)


def get_telemetry_summary() -> Dict[str, Any]:
    """In-memory summary; does not scan the JSONL files"""
    cfg = _get_config()
    return {
        "enabled": cfg.enabled,
        "rotation": cfg.rotation,
        "timezone": cfg.tz_name,
        "retention_days": cfg.retention_days,
        "total_events_in_memory": len(_recent_events),
        "counters_in_memory": dict(_counters),
        "recent_events": list(_recent_events)[-10:],
    }
