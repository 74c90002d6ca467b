# Persistence Module - Local durable store and remote stats sinks
import json
import os
from typing import Dict, Optional

import requests

from posture_coach import config
from posture_coach import logger
from posture_coach.models import DailyStats


# ============================================================================
# LOCAL DURABLE STORE
# ============================================================================

def storage_key(date_key: str) -> str:
    return f"{config.STATS_STORAGE_PREFIX}{date_key}"


def parse_stats(date_key: str, raw: Optional[dict]) -> DailyStats:
    """Build DailyStats from a stored mapping, zero-filling missing fields"""
    raw = raw or {}
    return DailyStats(
        date_key=date_key,
        total_ms=raw.get("total_ms") or 0,
        good_ms=raw.get("good_ms") or 0,
        bad_ms=raw.get("bad_ms") or 0,
        longest_good_streak_ms=raw.get("longest_good_streak_ms") or 0,
        alert_count=raw.get("alert_count") or 0
    )


class MemoryStatsStore:
    """Keyed stats storage kept in process memory"""

    def __init__(self):
        self.items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str):
        self.items[key] = value

    def load(self, date_key: str) -> Optional[DailyStats]:
        raw = self.get_item(storage_key(date_key))
        if raw is None:
            return None
        try:
            return parse_stats(date_key, json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.log_warning("Stored Stats Unreadable, Resetting", {"date_key": date_key, "error": str(e)})
            return None

    def save(self, stats: DailyStats):
        self.set_item(storage_key(stats.date_key), stats.model_dump_json())


class LocalStatsStore(MemoryStatsStore):
    """
    JSON file keyed by "stats:<date_key>"

    The whole file is rewritten on every save through a temp file + rename.
    """

    def __init__(self, path: str = None):
        super().__init__()
        self.path = path or config.LOCAL_STATS_PATH
        self.items = self._read_file()

    def _read_file(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
            return {k: v for k, v in data.items() if isinstance(v, str)}
        except (OSError, ValueError) as e:
            logger.log_error("Local Stats File Unreadable", e, {"path": self.path})
            return {}

    def set_item(self, key: str, value: str):
        self.items[key] = value
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(self.items, fh, indent=2)
        os.replace(tmp_path, self.path)


# ============================================================================
# REMOTE SINKS
# ============================================================================

class NullPersistenceSink:
    """Stand-in used when the session is not authenticated"""
    enabled = False

    def upsert_daily_stats(self, subject_id, date_key, total_ms, good_ms, bad_ms,
                           longest_streak_ms, alert_count) -> bool:
        return True

    def fetch_daily_stats(self, subject_id, date_key) -> Optional[DailyStats]:
        return None


class HttpStatsSink:
    """
    Pushes snapshots to the stats service over HTTP

    The service identifies the subject from the Bearer token, so
    `subject_id` is only used for logging here.
    """
    enabled = True

    def __init__(self, token: str, base_url: str = None, timeout: float = None):
        self.token = token
        self.base_url = (base_url or config.REMOTE_API_BASE_URL).rstrip("/")
        self.timeout = config.REMOTE_TIMEOUT_SECONDS if timeout is None else timeout

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def upsert_daily_stats(self, subject_id, date_key, total_ms, good_ms, bad_ms,
                           longest_streak_ms, alert_count) -> bool:
        payload = {
            "date_key": date_key,
            "total_ms": int(total_ms),
            "good_ms": int(good_ms),
            "bad_ms": int(bad_ms),
            "streak_ms": int(longest_streak_ms),
            "alerts": int(alert_count)
        }
        try:
            response = requests.post(
                f"{self.base_url}/stats/update",
                json=payload,
                headers=self._headers(),
                timeout=self.timeout
            )
            if response.status_code != 200:
                logger.log_warning("Stats Push Rejected", {
                    "subject_id": subject_id,
                    "status": response.status_code,
                    "response": response.text[:200]
                })
                return False
            return True
        except requests.RequestException as e:
            logger.log_error("Stats Push Failed", e, {"subject_id": subject_id, "date_key": date_key})
            return False

    def fetch_daily_stats(self, subject_id, date_key) -> Optional[DailyStats]:
        try:
            response = requests.get(
                f"{self.base_url}/stats/{date_key}",
                headers=self._headers(),
                timeout=self.timeout
            )
            if response.status_code == 404:
                return None
            if response.status_code != 200:
                logger.log_warning("Stats Fetch Rejected", {
                    "subject_id": subject_id,
                    "status": response.status_code
                })
                return None
            data = response.json()
            return parse_stats(date_key, {
                "total_ms": data.get("total_ms"),
                "good_ms": data.get("good_ms"),
                "bad_ms": data.get("bad_ms"),
                "longest_good_streak_ms": data.get("longest_streak_ms"),
                "alert_count": data.get("alert_count")
            })
        except (requests.RequestException, ValueError) as e:
            logger.log_error("Stats Fetch Failed", e, {"subject_id": subject_id, "date_key": date_key})
            return None


class DatabaseStatsSink:
    """Writes snapshots straight into the stats database"""
    enabled = True

    def upsert_daily_stats(self, subject_id, date_key, total_ms, good_ms, bad_ms,
                           longest_streak_ms, alert_count) -> bool:
        from posture_coach import database
        return database.upsert_daily_stats(
            subject_id, date_key, total_ms, good_ms, bad_ms, longest_streak_ms, alert_count
        )

    def fetch_daily_stats(self, subject_id, date_key) -> Optional[DailyStats]:
        from posture_coach import database
        row = database.fetch_daily_stats(subject_id, date_key)
        if row is None:
            return None
        return parse_stats(date_key, {
            "total_ms": row["total_ms"],
            "good_ms": row["good_ms"],
            "bad_ms": row["bad_ms"],
            "longest_good_streak_ms": row["longest_streak_ms"],
            "alert_count": row["alert_count"]
        })
