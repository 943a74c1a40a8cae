import json
import uuid
from typing import Optional

from eip_picker.allocator import RunStatus


LATEST_KEY = "status:latest"

METRIC_KEYS = ("total_runs", "completed_runs", "failed_runs")


def run_key(run_id: str) -> str:
    return f"run:{run_id}"


class StatusStore:
    """Run snapshots in Redis, keyed by run id.

    status:latest points at whichever run wrote last, so GET /status keeps
    its last-run-wins view while each run stays readable on its own.
    """

    def __init__(self, redis_conn, ttl: int = 86400):
        self.redis = redis_conn
        self.ttl = ttl

    def new_run(self, region: str = "") -> RunStatus:
        status = RunStatus(uuid.uuid4().hex, region)
        self.save(status)
        return status

    def save(self, status: RunStatus):
        self.redis.setex(run_key(status.run_id), self.ttl, json.dumps(status.to_dict()))
        self.redis.set(LATEST_KEY, status.run_id)

    def get(self, run_id: str) -> Optional[dict]:
        raw = self.redis.get(run_key(run_id))
        if not raw:
            return None
        return json.loads(raw)

    def latest(self) -> dict:
        run_id = self.redis.get(LATEST_KEY)
        snapshot = self.get(run_id) if run_id else None
        if snapshot is None:
            return RunStatus().to_dict()
        return snapshot

    def incr(self, name: str):
        self.redis.incr(f"metrics:{name}")

    def metrics(self) -> dict:
        return {
            name: int(self.redis.get(f"metrics:{name}") or 0)
            for name in METRIC_KEYS
        }
