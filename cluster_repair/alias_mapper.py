# alias_mapper.py
# Pair each ec2 alias found in /etc/hosts with its instance's new public ip.
#
# The ec2 aliases ("aws-node1", "aws-node2", ...) are not an attribute of the instance, they
# only exist in the hosts files. They are read from one healthy gce node and zipped, in file
# order, with the new ips. The same alias -> ip pairs are then written everywhere, which is
# what keeps every node in both providers consistent.

import logging

from cluster_repair.errors import AliasDiscoveryError, RemoteExecutionError
from cluster_repair.models import AliasBinding

logger = logging.getLogger(__name__)


def parse_aliases(hosts_text, prefix):
    """
    Return the aliases starting with `prefix`, in the order their lines appear.

    Each line is "<ip> <alias> [more names...]"; the first name on a line that matches the
    prefix is taken. Comments are skipped and repeated aliases keep their first position.
    """
    aliases = []
    for line in hosts_text.splitlines():
        line = line.split("#", 1)[0].strip()
        if not line:
            continue
        names = line.split()[1:]
        for name in names:
            if name.startswith(prefix):
                if name not in aliases:
                    aliases.append(name)
                break
    return aliases


def discover_aliases(executor, node, prefix="aws-node", hosts_file="/etc/hosts"):
    """grep the representative node's hosts file for the ec2 alias prefix."""
    cmd = f"grep {prefix} {hosts_file}"
    logger.info(f"mapping aws ec2 {hosts_file} aliases on {node.name}...")

    result = executor.run(node, cmd)
    # grep exits 1 when nothing matched, anything above that is a real error
    if result.exit_status > 1:
        raise RemoteExecutionError(
            f"'{cmd}' on {node.name} failed with exit status {result.exit_status}: {result.stderr.strip()}",
            node=node.name,
        )

    aliases = parse_aliases(result.stdout, prefix)
    if not aliases:
        raise AliasDiscoveryError(f"no aws alias matching {prefix} found in {hosts_file} on {node.name}")

    logger.info(f"found aliases: {' '.join(aliases)}")
    return aliases


def bind(aliases, addresses):
    """
    Zip aliases with addresses positionally.

    Raises CountMismatchError when the two lists differ in length; a silent mis-pairing
    would point every node's hosts file at the wrong machines.
    """
    binding = AliasBinding.from_lists(aliases, addresses)
    for alias, address in binding.items():
        logger.info(f"  {alias} -> {address}")
    return binding
