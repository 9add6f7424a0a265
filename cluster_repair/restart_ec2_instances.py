# restart_ec2_instances.py
# Restart stopped ec2 instances and capture the public ips they come back with.
#
# restart() is a best-effort fan-out: every instance gets its own start_instances call and a
# failure on one does not stop the others, the failures are reported together at the end.
# resolve_addresses() is all-or-nothing: the ips are zipped positionally with the /etc/hosts
# aliases later on, so a single missing ip makes the whole list unusable.
#
# Only call restart() on instances that are known to be stopped.

import logging

import botocore.exceptions

from cluster_repair.errors import AddressResolutionError, InventoryError
from cluster_repair.models import AddressAssignment, NodeOutcome
from cluster_repair.utils import fan_out, raise_for_failures, retry_with_backoff

logger = logging.getLogger(__name__)


def _require_ids(instances):
    missing = [node.name for node in instances if not node.instance_id]
    if missing:
        raise InventoryError(f"ec2 instance(s) without an instance id: {', '.join(missing)}")


def restart(ec2_client, instances, max_workers=8):
    """
    Issue start_instances for every ec2 node in `instances`.

    Returns: list of NodeOutcome in instance order when every start succeeded.
    Raises PartialOperationError naming the nodes that could not be started, after all
    nodes have been attempted.
    """
    _require_ids(instances)
    logger.info(f"starting ec2 instances based on ids: {' '.join(instances.ids)}")

    def _start(node):
        try:
            retry_with_backoff(ec2_client.start_instances, InstanceIds=[node.instance_id])
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
            logger.error(f"failed to start ec2 instance {node.instance_id} ({node.name}): {e}")
            return NodeOutcome(node.name, False, f"failed to start ec2 instance {node.instance_id}: {e}")
        logger.info(f"start requested for {node.instance_id} ({node.name})")
        return NodeOutcome(node.name, True)

    outcomes = fan_out(_start, instances, max_workers=max_workers, label="restart")
    return raise_for_failures(outcomes, "restart")


def _extract_public_ip(describe_resp):
    for reservation in describe_resp.get("Reservations", []):
        for instance in reservation.get("Instances", []):
            ip = instance.get("PublicIpAddress")
            if ip:
                return ip
    return None


def wait_until_running(ec2_client, instance_ids):
    """Block on the boto3 instance_running waiter for all ids."""
    logger.info("Waiting for all instances to be in running state...")
    try:
        ec2_client.get_waiter('instance_running').wait(InstanceIds=list(instance_ids))
    except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
        # WaiterError is a BotoCoreError, as are transport errors like EndpointConnectionError
        raise AddressResolutionError(f"ec2 instances did not reach the running state: {e}")


def resolve_addresses(ec2_client, instances, wait_for_running=True):
    """
    Look up the new public ip of every ec2 node, one describe_instances call per id.

    Returns: AddressAssignment ordered like `instances`.
    Raises AddressResolutionError on the first id whose lookup fails or whose public ip is
    empty.
    """
    _require_ids(instances)
    ids = instances.ids
    logger.info(f"getting new ips for ec2 instances based on ids: {' '.join(ids)}")

    if wait_for_running:
        wait_until_running(ec2_client, ids)

    pairs = []
    for instance_id in ids:
        try:
            response = retry_with_backoff(ec2_client.describe_instances, InstanceIds=[instance_id])
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
            raise AddressResolutionError(
                f"failed to get ec2 instance's external ip for id {instance_id}: {e}", instance_id=instance_id
            )

        ip = _extract_public_ip(response)
        if not ip:
            raise AddressResolutionError(
                f"ec2 instance's public ip is empty for id {instance_id}", instance_id=instance_id
            )
        logger.info(f"{instance_id} -> {ip}")
        pairs.append((instance_id, ip))

    return AddressAssignment(pairs)
