# gluster.py
# Gluster side of the repair: find the volume name, wait for `gluster peer status` to see the
# restarted ec2 nodes again, then remount the volume on those nodes.

import logging
import time

from cluster_repair.errors import ConvergenceTimeoutError, RemoteExecutionError, VolumeDiscoveryError
from cluster_repair.models import NodeOutcome
from cluster_repair.utils import fan_out, raise_for_failures

logger = logging.getLogger(__name__)

DISCONNECTED = "(Disconnected)"

# `gluster vol info` is used rather than `vol status`, which can hang while instances are
# bouncing up and down. Line 2 is "Volume Name: <vol>".
VOLUME_INFO_CMD = "gluster volume info | head -n2 | tail -n1"
PEER_STATUS_CMD = "gluster peer status"


def normalize_volume_name(volume):
    return volume.strip().lstrip("/") if volume else volume


def get_volume_name(executor, node):
    """
    Read the gluster volume name on `node`. Assumes the cluster has exactly one volume.
    """
    logger.info("getting the gluster volume name...")
    result = executor.run(node, VOLUME_INFO_CMD)
    if not result.ok:
        raise RemoteExecutionError(
            f"'{VOLUME_INFO_CMD}' on {node.name} failed with exit status {result.exit_status}", node=node.name
        )

    line = result.stdout.strip()
    if not line:
        raise VolumeDiscoveryError(f"'gluster vol info' output is empty on {node.name}")

    volume = normalize_volume_name(line.split(": ", 1)[-1])
    if not volume:
        raise VolumeDiscoveryError(f"could not parse a volume name from {line!r}")
    logger.info(f"gluster volume: {volume}")
    return volume


def count_disconnected(peer_status_output):
    return sum(1 for line in peer_status_output.splitlines() if DISCONNECTED in line)


def wait_for_convergence(executor, node, max_attempts=5, poll_interval=3, sleep=time.sleep):
    """
    Poll `gluster peer status` on `node` until no peer is reported "(Disconnected)".

    Sleeps poll_interval between attempts (never after the last one). A poll whose command
    fails counts as an unconverged attempt.

    Returns: number of polls it took.
    Raises ConvergenceTimeoutError after max_attempts unconverged polls.
    """
    logger.info("waiting for gluster to reconnect to ec2 instances...")
    disconnected = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = executor.run(node, PEER_STATUS_CMD)
        except RemoteExecutionError as e:
            logger.warning(f"[Attempt {attempt}/{max_attempts}] peer status on {node.name} could not be run: {e}")
            result = None

        if result is not None and result.ok:
            disconnected = count_disconnected(result.stdout)
            if disconnected == 0:
                logger.info(f"all gluster peers connected after {attempt} attempt(s)")
                return attempt
            logger.info(f"[Attempt {attempt}/{max_attempts}] {disconnected} peer(s) still disconnected")
        elif result is not None:
            logger.warning(
                f"[Attempt {attempt}/{max_attempts}] '{PEER_STATUS_CMD}' exited {result.exit_status} on {node.name}"
            )

        if attempt < max_attempts:
            sleep(poll_interval)

    raise ConvergenceTimeoutError(
        f"'{PEER_STATUS_CMD}' not showing all nodes connected after {max_attempts} tries",
        attempts=max_attempts,
        disconnected=disconnected,
    )


def build_mount_command(node, volume, mount_path="/mnt/vol"):
    return f"sudo mount -t glusterfs {node.name}:/{volume} {mount_path}"


def remount(executor, nodes, volume, mount_path="/mnt/vol", already_mounted_codes=(32,), max_workers=8):
    """
    Mount the gluster volume on every node in `nodes` (the restarted ec2 instances).

    An exit status in already_mounted_codes (mount's 32 by default) is success, so running
    this twice is harmless. Every node is attempted before failures are reported.

    Returns: list of NodeOutcome in node order.
    Raises PartialOperationError naming the nodes whose mount failed.
    """
    volume = normalize_volume_name(volume)
    logger.info(f"remounting gluster volume \"{volume}\" on ec2 instances...")

    def _mount(node):
        cmd = build_mount_command(node, volume, mount_path)
        result = executor.run(node, cmd)
        if result.ok:
            logger.info(f"{node.name}: {volume} mounted on {mount_path}")
            return NodeOutcome(node.name, True)
        if result.exit_status in already_mounted_codes:
            logger.info(f"{node.name}: {volume} already mounted on {mount_path}")
            return NodeOutcome(node.name, True, "already mounted")
        detail = f"'{cmd}' exited {result.exit_status}: {(result.stderr or result.stdout).strip()}"
        logger.error(f"{node.name}: {detail}")
        return NodeOutcome(node.name, False, detail)

    outcomes = fan_out(_mount, nodes, max_workers=max_workers, label="remount")
    return raise_for_failures(outcomes, "remount")
