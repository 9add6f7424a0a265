# etc_hosts.py
# Push the alias -> new ip binding into /etc/hosts on every node of both providers.
#
# One sed command carries every pair (one -e expression per alias) and that same command is
# run once on each node, so a hosts file is never left with only some aliases updated. A node
# whose hosts file does not mention an alias is fine: sed simply makes no change for it.

import logging

from cluster_repair.models import NodeOutcome
from cluster_repair.utils import fan_out, raise_for_failures

logger = logging.getLogger(__name__)

# characters with a meaning inside a sed BRE, or in the replacement, plus the s/// delimiter
_SED_PATTERN_SPECIAL = set("\\/.*[]^$")
_SED_REPLACEMENT_SPECIAL = set("\\/&")


def _sed_escape(text, special=_SED_PATTERN_SPECIAL):
    return "".join("\\" + char if char in special else char for char in text)


def build_sed_expression(alias, address):
    """
    sed expression replacing the address field (first column) of the line that has `alias`
    as a whole whitespace separated name.

    Commented out lines, and aliases that only appear in a trailing comment, are left alone.
    Leading indentation on the matched line is kept.
    """
    match = f"^[[:space:]]*[^#[:space:]][^#]*[[:space:]]{_sed_escape(alias)}\\([[:space:]]\\|$\\)"
    replacement = _sed_escape(address, _SED_REPLACEMENT_SPECIAL)
    return f"-e '/{match}/s/^\\([[:space:]]*\\)[^[:space:]]*/\\1{replacement}/'"


def build_update_command(binding, hosts_file="/etc/hosts"):
    expressions = " ".join(build_sed_expression(alias, address) for alias, address in binding.items())
    return f"sudo sed -i {expressions} {hosts_file}"


def propagate(executor, binding, gce, aws, hosts_file="/etc/hosts", max_workers=8):
    """
    Apply the composite sed command to every gce node and every ec2 node.

    Returns: list of NodeOutcome (gce nodes first, then aws nodes).
    Raises PartialOperationError naming each node where the command could not be run or
    exited non-zero. Nodes that did succeed keep their updated hosts file.
    """
    cmd = build_update_command(binding, hosts_file)
    logger.info(f"updating {hosts_file} on {len(gce)} gce and {len(aws)} ec2 instances...")
    logger.debug(f"hosts update command: {cmd}")

    def _update(node):
        result = executor.run(node, cmd)
        if not result.ok:
            detail = f"'{cmd}' exited {result.exit_status}: {(result.stderr or result.stdout).strip()}"
            logger.error(f"[{node.provider}] {node.name}: {detail}")
            return NodeOutcome(node.name, False, detail)
        logger.info(f"[{node.provider}] {node.name}: {hosts_file} updated")
        return NodeOutcome(node.name, True)

    nodes = list(gce) + list(aws)
    outcomes = fan_out(_update, nodes, max_workers=max_workers, label="etc-hosts")
    return raise_for_failures(outcomes, f"{hosts_file} update")
