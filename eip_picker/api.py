import json
import time
import logging
import traceback
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from redis import Redis
from rq import Queue

from eip_picker.allocator import DONE, FAILED, RunStatus, run_allocation
from eip_picker.config import (
    ACCEPTED_PREFIXES,
    TARGET_COUNT,
    BATCH_SIZE,
    BATCH_PAUSE_SECONDS,
    MAX_BATCHES,
    RELEASE_SURPLUS,
    SUPPORTED_REGIONS,
    MAX_REQUESTS_PER_MINUTE,
    ALLOWED_ORIGINS,
    API_KEY,
    REDIS_URL,
    STATUS_TTL_SECONDS,
)
from eip_picker.provider import ProviderClient, ProviderError
from eip_picker.store import StatusStore

# -----------------------------
# Logging Setup
# -----------------------------
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("eip_picker")

# -----------------------------
# Redis Setup
# -----------------------------
redis_conn = Redis.from_url(REDIS_URL, decode_responses=True)
store = StatusStore(redis_conn, ttl=STATUS_TTL_SECONDS)

# rq pickles job payloads, so the queue needs raw bytes
queue = Queue("allocations", connection=Redis.from_url(REDIS_URL))

FAILED_JOB_TTL_SECONDS = 60

# -----------------------------
# FastAPI App
# -----------------------------
app = FastAPI(title="Elastic IP Picker API")

origins = (
    [o.strip() for o in ALLOWED_ORIGINS.split(",")]
    if ALLOWED_ORIGINS != "*"
    else ["*"]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------
# Rate Limiter (In-Memory)
# -----------------------------
_rate_limit_store = {}


def check_rate_limit(client_ip: str):
    now = time.time()
    window = 60
    requests = _rate_limit_store.setdefault(client_ip, [])

    while requests and requests[0] <= now - window:
        requests.pop(0)

    if len(requests) >= MAX_REQUESTS_PER_MINUTE:
        return False

    requests.append(now)
    return True


# -----------------------------
# Models
# -----------------------------
class CredentialsRequest(BaseModel):
    accessKeyId: Optional[str] = None
    secretAccessKey: Optional[str] = None
    region: Optional[str] = None


# -----------------------------
# Helpers
# -----------------------------
def check_api_key(request: Request):
    if not API_KEY:
        return True

    key = request.headers.get("x-api-key")
    if not key:
        auth = request.headers.get("authorization", "")
        if auth.lower().startswith("bearer "):
            key = auth.split(None, 1)[1].strip()

    return key == API_KEY


def guard_request(req: CredentialsRequest, request: Request, rate_limited: bool = True):
    if not check_api_key(request):
        raise HTTPException(status_code=401, detail="Invalid API key")

    if not req.accessKeyId or not req.secretAccessKey or not req.region:
        raise HTTPException(status_code=400, detail="Missing AWS credentials or region.")

    if rate_limited:
        client_ip = request.client.host if request.client else "unknown"
        if not check_rate_limit(client_ip):
            raise HTTPException(status_code=429, detail="Rate limit exceeded")


# -----------------------------
# Allocation Run
# -----------------------------
def run_allocation_job(run_id: str, access_key_id: str, secret_access_key: str, region: str):
    snapshot = store.get(run_id)
    status = RunStatus.from_dict(snapshot) if snapshot else RunStatus(run_id, region)

    store.incr("total_runs")
    try:
        provider = ProviderClient(access_key_id, secret_access_key, region)
        run_allocation(
            provider,
            status,
            ACCEPTED_PREFIXES,
            target=TARGET_COUNT,
            batch_size=BATCH_SIZE,
            pause_seconds=BATCH_PAUSE_SECONDS,
            max_batches=MAX_BATCHES,
            release_surplus=RELEASE_SURPLUS,
            on_update=store.save,
        )
    except Exception as e:
        # the run may have failed before the loop could publish it
        if status.state != FAILED:
            status.state = FAILED
            status.error = str(e)
            store.save(status)
        store.incr("failed_runs")
        raise

    if status.state == DONE:
        store.incr("completed_runs")

    return status.to_dict()


# -----------------------------
# Routes
# -----------------------------
@app.post("/allocate")
def allocate(req: CredentialsRequest, request: Request):
    guard_request(req, request)

    status = store.new_run(req.region)

    logger.info(json.dumps({
        "event": "allocation_requested",
        "run_id": status.run_id,
        "region": req.region,
    }))

    try:
        return run_allocation_job(status.run_id, req.accessKeyId, req.secretAccessKey, req.region)
    except Exception:
        logger.error("Error during IP allocation: %s", traceback.format_exc())
        raise HTTPException(status_code=500, detail="Failed to allocate IPs.")


@app.get("/status")
def get_status():
    return store.latest()


@app.post("/runs")
def enqueue_run(req: CredentialsRequest, request: Request):
    guard_request(req, request)

    status = store.new_run(req.region)

    # No job timeout: a run only ends at the quota or at MAX_BATCHES.
    # The job arguments carry credentials, so the job is dropped as soon as it
    # finishes; progress lives in run:<id>.
    job = queue.enqueue(
        run_allocation_job,
        status.run_id,
        req.accessKeyId,
        req.secretAccessKey,
        req.region,
        job_timeout=-1,
        result_ttl=0,
        failure_ttl=FAILED_JOB_TTL_SECONDS,
    )

    logger.info(json.dumps({
        "event": "run_enqueued",
        "run_id": status.run_id,
        "job_id": job.id,
        "region": req.region,
    }))

    return {"runId": status.run_id, "jobId": job.id}


@app.get("/runs/{run_id}")
def get_run(run_id: str):
    snapshot = store.get(run_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return snapshot


@app.post("/addresses")
def list_addresses(req: CredentialsRequest, request: Request):
    guard_request(req, request, rate_limited=False)

    provider = ProviderClient(req.accessKeyId, req.secretAccessKey, req.region)
    try:
        addresses = provider.describe()
    except ProviderError:
        raise HTTPException(status_code=502, detail="Failed to describe addresses.")

    return [
        {"publicIp": a.ip, "allocationId": a.handle}
        for a in addresses
    ]


@app.get("/regions")
def regions():
    return {"regions": list(SUPPORTED_REGIONS)}


@app.get("/metrics")
def metrics():
    return store.metrics()


@app.get("/health")
def health():
    return {"status": "ok"}
