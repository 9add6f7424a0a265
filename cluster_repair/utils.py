# utils.py
# Helpers shared by every stage module: logging setup, AWS throttling backoff, the stage()
# banner/annotation context manager and the best-effort fan-out used by restart, the
# /etc/hosts update and the gluster remount.

import logging
import random
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager

import botocore.exceptions

from cluster_repair.errors import FatalRecoveryError, PartialOperationError, RecoveryError
from cluster_repair.models import NodeOutcome

logger = logging.getLogger(__name__)


def setup_logging(level="INFO", stream=None):
    """
    Configure root logging for a run. Diagnostics go to stderr so stdout stays clean.
    threadName is in the format because the fan-out workers log from pool threads.
    """
    logging.basicConfig(
        stream=stream or sys.stderr,
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(process)d - %(threadName)s - %(levelname)s - %(message)s',
        force=True  # Python 3.8+ only
    )
    # boto3/paramiko are very chatty at INFO
    for noisy in ("botocore", "boto3", "urllib3", "paramiko"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


## AWS returns RequestLimitExceeded when too many API calls hit the account at once (start and
## describe calls are issued once per instance). Those calls are wrapped here with exponential
## backoff as AWS recommends. Any other ClientError is raised straight away.
def retry_with_backoff(func, *args, max_retries=5, base_delay=1, max_delay=10, **kwargs):
    last_error = None
    for attempt in range(max_retries):
        try:
            return func(*args, **kwargs)
        except botocore.exceptions.ClientError as e:
            if 'RequestLimitExceeded' not in str(e):
                raise
            last_error = e
            delay = min(max_delay, base_delay * (2 ** attempt)) + random.uniform(0, 1)
            logger.warning(f"[Retry {attempt + 1}] RequestLimitExceeded. Retrying in {delay:.2f}s...")
            time.sleep(delay)
    raise last_error


@contextmanager
def stage(name):
    """
    Log the start/end banner of a pipeline stage and stamp the stage name on any
    RecoveryError (or FatalRecoveryError) escaping from it.
    """
    logger.info(f"*** {name}...")
    try:
        yield
    except (RecoveryError, FatalRecoveryError) as e:
        if e.stage is None:
            e.stage = name
        raise
    logger.info("*** success")


def fan_out(func, nodes, max_workers=8, label="operation"):
    """
    Run func(node) for every node on a thread pool and wait for all of them.

    func returns a NodeOutcome. An exception raised by func is recorded as a failed
    NodeOutcome for that node, it never stops the other nodes from being attempted.

    Returns: list of NodeOutcome in the same order as `nodes`.
    """
    nodes = list(nodes)
    if not nodes:
        return []

    outcomes = [None] * len(nodes)
    workers = max(1, min(max_workers, len(nodes)))

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=label) as executor:
        future_map = {executor.submit(func, node): index for index, node in enumerate(nodes)}

        for future in as_completed(future_map):
            index = future_map[future]
            node = nodes[index]
            try:
                outcome = future.result()
            except Exception as e:
                logger.error(f"[{label}] {node.name}: {e}")
                outcome = NodeOutcome(node.name, False, str(e))
            outcomes[index] = outcome

    return outcomes


def raise_for_failures(outcomes, operation):
    """Raise PartialOperationError naming every failed node; return the outcomes otherwise."""
    failed = [(outcome.node, outcome.detail) for outcome in outcomes if not outcome.ok]
    if failed:
        raise PartialOperationError(operation, failed)
    return outcomes
