# models.py
# Value objects passed between the stages of a repair run.
#
# Nothing here is mutated after construction. A stage that "changes" something (eg. the ec2
# nodes getting new public ips) returns a new object instead.

from dataclasses import dataclass, replace

from cluster_repair.errors import CountMismatchError, InventoryError

GCE = "gce"
AWS = "aws"
PROVIDERS = (GCE, AWS)


@dataclass(frozen=True)
class Node:
    name: str
    provider: str
    zone: str = None          # gce only, needed by `gcloud compute ssh`
    instance_id: str = None   # aws only, needed by start/describe
    public_address: str = None

    @property
    def ssh_host(self):
        """Host used to reach an ec2 node over ssh: its public ip when known, else its name."""
        return self.public_address or self.name


@dataclass(frozen=True)
class InstanceSet:
    """
    Ordered, provider scoped list of nodes as returned by the inventory for one filter.

    The order is the provider's listing order and is never changed; the ec2 ids, the new
    ips and the /etc/hosts aliases are later zipped positionally against it.
    """

    provider: str
    nodes: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))

    def __len__(self):
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)

    def __bool__(self):
        return bool(self.nodes)

    @property
    def names(self):
        return [node.name for node in self.nodes]

    @property
    def zones(self):
        return [node.zone for node in self.nodes if node.zone]

    @property
    def ids(self):
        return [node.instance_id for node in self.nodes if node.instance_id]

    @property
    def public_ips(self):
        return [node.public_address for node in self.nodes if node.public_address]

    def first(self):
        """The representative node: the first one listed."""
        if not self.nodes:
            raise InventoryError(f"no {self.provider} instances to pick a representative node from")
        return self.nodes[0]

    def with_addresses(self, assignment):
        """Return a copy whose nodes carry the public ips from an AddressAssignment."""
        nodes = []
        for node in self.nodes:
            if node.instance_id in assignment:
                node = replace(node, public_address=assignment[node.instance_id])
            nodes.append(node)
        return InstanceSet(self.provider, nodes)


@dataclass(frozen=True)
class AddressAssignment:
    """ec2 instance id -> new public ip, in the same order as the originating InstanceSet."""

    pairs: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "pairs", tuple(self.pairs))

    def __len__(self):
        return len(self.pairs)

    def __contains__(self, instance_id):
        return any(iid == instance_id for iid, _ in self.pairs)

    def __getitem__(self, instance_id):
        for iid, address in self.pairs:
            if iid == instance_id:
                return address
        raise KeyError(instance_id)

    @property
    def ids(self):
        return [iid for iid, _ in self.pairs]

    @property
    def addresses(self):
        return [address for _, address in self.pairs]

    def items(self):
        return list(self.pairs)


@dataclass(frozen=True)
class AliasBinding:
    """/etc/hosts alias -> public ip. Built only by alias_mapper.bind()."""

    pairs: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "pairs", tuple(self.pairs))

    def __len__(self):
        return len(self.pairs)

    @property
    def aliases(self):
        return [alias for alias, _ in self.pairs]

    @property
    def addresses(self):
        return [address for _, address in self.pairs]

    def items(self):
        return list(self.pairs)

    def as_dict(self):
        return dict(self.pairs)

    @classmethod
    def from_lists(cls, aliases, addresses):
        aliases = list(aliases)
        addresses = list(addresses)
        if len(aliases) != len(addresses):
            raise CountMismatchError(
                f"num of aws aliases in /etc/hosts ({len(aliases)}) != num of new ips ({len(addresses)})"
            )
        return cls(tuple(zip(aliases, addresses)))


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command on one node, as returned by the remote execution gateway."""

    exit_status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self):
        return self.exit_status == 0


@dataclass(frozen=True)
class NodeOutcome:
    """Per-node result of a fan-out (restart, hosts update, mount)."""

    node: str
    ok: bool
    detail: str = ""
