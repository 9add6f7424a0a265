# master_script.py
# Repairs the hybrid gce + aws gluster cluster when 1 or more ec2 instances have stopped.
#
# Stages, each one a hard gate (a failure stops everything after it):
#   1. list the gce and ec2 instances matching the filter
#   2. find the gluster volume name (unless it was passed in)
#   3. restart the ec2 instances and capture their new public ips
#   4. map the ec2 /etc/hosts aliases to the new ips
#   5. sanity check all of the above
#   6. update /etc/hosts on every instance, in both the aws and gce cluster
#   7. wait for `gluster peer status` to see the new ips
#   8. remount the gluster volume on the restarted ec2 instances
#
# Usage:
#   fix-ec2 <instance-filter> [gluster-vol]      eg. fix-ec2 jcope gv0
#
# The stopped instances are assumed to be ec2. Only one repair may run against a cluster at a
# time.

import argparse
import logging
import sys
import time
from dataclasses import dataclass

from cluster_repair import alias_mapper, etc_hosts, gluster, restart_ec2_instances, sanity_check
from cluster_repair.config import load_settings
from cluster_repair.errors import (
    AuthenticationSuspectedError,
    ConfigurationError,
    FatalRecoveryError,
    InventoryError,
    RecoveryError,
)
from cluster_repair.inventory import load_provider
from cluster_repair.models import AWS, GCE
from cluster_repair.remote_exec import RemoteExecutor
from cluster_repair.utils import setup_logging, stage

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_FATAL = 3

DESCRIPTION = """
Restart stopped EC2 instances of a hybrid GCE/AWS gluster cluster, point /etc/hosts
on every instance at their new public ips, wait for the gluster peers to reconnect
and remount the gluster volume on the restarted instances. Pass the volume name when
the cluster has more than one gluster volume.
"""


@dataclass(frozen=True)
class RecoveryReport:
    gce: object
    aws: object
    assignment: object
    binding: object
    volume: str
    polls: int


def run_recovery(instance_filter, volume=None, settings=None, gce_inventory=None, aws_inventory=None,
                 ec2_client=None, executor=None, sleep=time.sleep):
    """
    Run one repair pass for the instances matching `instance_filter`.

    The collaborators (inventories, ec2 client, remote executor) are built from `settings`
    unless they are passed in.

    Returns: RecoveryReport
    Raises the RecoveryError of the first stage that failed, or AuthenticationSuspectedError.
    """
    if not instance_filter or not instance_filter.strip():
        raise ConfigurationError("Missing required instance-filter value", stage="arguments")
    instance_filter = instance_filter.strip()
    settings = settings or load_settings()

    with stage("loading providers"):
        if gce_inventory is None:
            gce_inventory = load_provider(GCE)(settings)
        if aws_inventory is None:
            aws_inventory = load_provider(AWS)(settings)
        if ec2_client is None:
            ec2_client = aws_inventory.client
        if executor is None:
            executor = RemoteExecutor(settings)

    with stage("getting gce instance info"):
        gce = gce_inventory.get_instance_info(instance_filter, "NAMES", "ZONES", "PUBLIC_IPS")
        if not gce:
            raise InventoryError(f"no gce instances match {instance_filter!r}")
        representative = gce.first()  # used to ssh into a gce instance
        logger.info(f"representative gce node: {representative.name} ({representative.zone})")

    if volume:
        volume = gluster.normalize_volume_name(volume)
    else:
        with stage("getting the gluster volume name"):
            volume = gluster.get_volume_name(executor, representative)

    with stage("getting aws instance info"):
        # no PUBLIC_IPS: the instances may be stopped
        aws = aws_inventory.get_instance_info(instance_filter, "NAMES", "IDS")
        if not aws:
            raise InventoryError(f"no aws ec2 instances match {instance_filter!r}")

    with stage(f"starting ec2 instances based on ids: {' '.join(aws.ids)}"):
        restart_ec2_instances.restart(ec2_client, aws, max_workers=settings.max_workers)

    with stage("getting new ips for ec2 instances"):
        assignment = restart_ec2_instances.resolve_addresses(
            ec2_client, aws, wait_for_running=settings.wait_for_running
        )

    with stage("mapping aws ec2 /etc/hosts aliases to their new ips"):
        aliases = alias_mapper.discover_aliases(
            executor, representative, prefix=settings.ec2_host_alias, hosts_file=settings.hosts_file
        )
        binding = alias_mapper.bind(aliases, assignment.addresses)

    with stage("internal sanity check on gce and aws variables"):
        sanity_check.validate(gce, aws, assignment, binding)

    aws = aws.with_addresses(assignment)

    with stage(f"updating {settings.hosts_file} on gce and ec2 instances"):
        etc_hosts.propagate(
            executor, binding, gce, aws, hosts_file=settings.hosts_file, max_workers=settings.max_workers
        )

    with stage("waiting for gluster to reconnect to ec2 instances"):
        polls = gluster.wait_for_convergence(
            executor,
            representative,
            max_attempts=settings.gluster_max_tries,
            poll_interval=settings.gluster_poll_interval,
            sleep=sleep,
        )

    with stage(f"remounting gluster volume \"{volume}\" on ec2 instances"):
        gluster.remount(
            executor,
            aws,
            volume,
            mount_path=settings.mount_path,
            already_mounted_codes=settings.already_mounted_codes,
            max_workers=settings.max_workers,
        )

    logger.info(
        "repair complete: " + ", ".join(f"{alias}={address}" for alias, address in binding.items())
    )
    return RecoveryReport(gce, aws, assignment, binding, volume, polls)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="fix-ec2",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="example: fix-ec2 jcope gv0",
    )
    parser.add_argument(
        "instance_filter",
        nargs="?",
        help="name or pattern uniquely identifying the target instance(s) across all providers",
    )
    parser.add_argument(
        "volume",
        nargs="?",
        help="gluster volume name (no leading \"/\"); required if there is more than one gluster volume",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"configuration error: {e}")
        return EXIT_CONFIG

    setup_logging(settings.log_level)

    try:
        run_recovery(args.instance_filter, args.volume, settings=settings)
    except ConfigurationError as e:
        logger.error(f"[{e.stage}] configuration error: {e}")
        return EXIT_CONFIG
    except AuthenticationSuspectedError as e:
        logger.critical(f"[{e.stage}] error: {e} (aws session looks unauthenticated, not retrying)")
        return EXIT_FATAL
    except FatalRecoveryError as e:
        logger.critical(f"[{e.stage}] fatal error: {e}")
        return EXIT_FATAL
    except RecoveryError as e:
        logger.error(f"[{e.stage}] error: {e}")
        return EXIT_FAILURE

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
