import json
import time
import logging
from typing import Callable, Iterable, List, Optional, Set

from eip_picker.config import ip_accepted
from eip_picker.provider import Address, ProviderError


logger = logging.getLogger("eip_picker.allocator")


PENDING = "pending"
RUNNING = "running"
DONE = "done"
INCOMPLETE = "incomplete"
FAILED = "failed"


class RunStatus:
    """Progress of one allocation run.

    Every ip in allocated or released is also in created, and the two
    never overlap. seen is internal and never serialized.
    """

    def __init__(self, run_id: str = "", region: str = ""):
        self.run_id = run_id
        self.region = region
        self.state = PENDING
        self.error: Optional[str] = None
        self.batches = 0
        self.created: List[str] = []
        self.allocated: List[str] = []
        self.released: List[str] = []
        self.seen: Set[str] = set()

    def reset(self):
        self.state = RUNNING
        self.error = None
        self.batches = 0
        self.created = []
        self.allocated = []
        self.released = []
        self.seen = set()

    def to_dict(self) -> dict:
        return {
            "runId": self.run_id,
            "region": self.region,
            "state": self.state,
            "batches": self.batches,
            "error": self.error,
            "createdIPs": list(self.created),
            "allocatedIPs": list(self.allocated),
            "releasedIPs": list(self.released),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RunStatus":
        status = cls(data.get("runId", ""), data.get("region", ""))
        status.state = data.get("state", PENDING)
        status.error = data.get("error")
        status.batches = data.get("batches", 0)
        status.created = list(data.get("createdIPs", []))
        status.allocated = list(data.get("allocatedIPs", []))
        status.released = list(data.get("releasedIPs", []))
        status.seen = set(status.created)
        return status


def _release_quietly(provider, address: Address):
    try:
        provider.release(address)
    except ProviderError:
        # already logged by the provider; the address may still be held
        pass


def acquire_batch(provider, status: RunStatus, batch_size: int) -> List[Address]:
    """Make batch_size allocation attempts and return the new addresses.

    Failed attempts and duplicates both use up an attempt. Duplicates are
    released straight away and never recorded twice.
    """
    batch: List[Address] = []

    for _ in range(batch_size):
        try:
            address = provider.allocate()
        except ProviderError:
            continue

        if address.ip in status.seen:
            logger.info("Duplicate IP detected: %s. Releasing...", address.ip)
            _release_quietly(provider, address)
            continue

        status.seen.add(address.ip)
        status.created.append(address.ip)
        batch.append(address)

    return batch


def classify_batch(
    provider,
    status: RunStatus,
    batch: List[Address],
    prefixes: Iterable[str],
    target: int,
    release_surplus: bool = False,
):
    """Keep batch members with an accepted prefix, release the rest.

    Stops once target addresses are held. Anything left in the batch at
    that point stays allocated and unrecorded unless release_surplus is set.
    """
    for index, address in enumerate(batch):
        if ip_accepted(address.ip, prefixes):
            status.allocated.append(address.ip)
            logger.info("Allocated IP: %s", address.ip)
        else:
            _release_quietly(provider, address)
            status.released.append(address.ip)

        if len(status.allocated) >= target:
            surplus = batch[index + 1:]
            if surplus and release_surplus:
                for extra in surplus:
                    _release_quietly(provider, extra)
                    status.released.append(extra.ip)
            elif surplus:
                logger.warning(
                    "Quota met mid-batch, leaving %d IP(s) allocated: %s",
                    len(surplus), ", ".join(a.ip for a in surplus),
                )
            break


def run_allocation(
    provider,
    status: RunStatus,
    prefixes: Iterable[str],
    target: int = 5,
    batch_size: int = 5,
    pause_seconds: float = 60,
    max_batches: int = 0,
    release_surplus: bool = False,
    on_update: Optional[Callable[[RunStatus], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunStatus:
    """Allocate in batches until target accepted addresses are held.

    With max_batches == 0 there is no bound on the number of batches.
    """
    prefixes = tuple(prefixes)

    def publish():
        if on_update is not None:
            on_update(status)

    status.reset()
    publish()

    logger.info(json.dumps({
        "event": "run_started",
        "run_id": status.run_id,
        "region": status.region,
        "target": target,
    }))

    try:
        while len(status.allocated) < target:
            batch = acquire_batch(provider, status, batch_size)
            publish()

            classify_batch(provider, status, batch, prefixes, target, release_surplus)
            status.batches += 1
            publish()

            if len(status.allocated) >= target:
                break

            if max_batches and status.batches >= max_batches:
                status.state = INCOMPLETE
                break

            logger.info("Waiting %s seconds before processing the next batch...", pause_seconds)
            sleep(pause_seconds)
    except Exception as e:
        status.state = FAILED
        status.error = str(e)
        publish()
        raise

    if status.state != INCOMPLETE:
        status.state = DONE
    publish()

    logger.info(json.dumps({
        "event": "run_finished",
        "run_id": status.run_id,
        "state": status.state,
        "batches": status.batches,
        "created": len(status.created),
        "allocated": len(status.allocated),
        "released": len(status.released),
    }))

    return status
