import logging

from redis import Redis
from rq import Worker, Queue

from eip_picker.config import REDIS_URL

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("eip_picker.worker")

listen = ["allocations"]
redis_conn = Redis.from_url(REDIS_URL)


def main():
    queues = [Queue(name, connection=redis_conn) for name in listen]
    logger.info("Allocation worker listening on queues: %s", ", ".join(listen))
    worker = Worker(queues, connection=redis_conn)
    worker.work()


if __name__ == "__main__":
    main()
