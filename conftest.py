import threading
import types

import botocore.exceptions
import pytest

from cluster_repair.config import Settings
from cluster_repair.models import AWS, GCE, CommandResult, InstanceSet, Node


# ---------------------------------------------------------------------
# Fake remote executor: records every (node, command) and answers from a handler
# ---------------------------------------------------------------------
class FakeExecutor:
    """
    handler(node, command) returns a CommandResult, or an Exception instance which is raised.
    Default handler: every command succeeds with empty output.
    """

    def __init__(self, handler=None):
        self.handler = handler or (lambda node, command: CommandResult(0))
        self.calls = []
        self._lock = threading.Lock()

    def run(self, node, command):
        with self._lock:
            self.calls.append((node.name, command))
        result = self.handler(node, command)
        if isinstance(result, Exception):
            raise result
        return result

    def commands_for(self, name):
        return [command for node, command in self.calls if node == name]

    def nodes_called(self):
        return [node for node, _ in self.calls]


def client_error(code="InvalidInstanceID.NotFound", operation="StartInstances"):
    return botocore.exceptions.ClientError({"Error": {"Code": code, "Message": f"synthetic {code}"}}, operation)


# ---------------------------------------------------------------------
# Fake EC2 client: just enough of boto3's ec2 client for the repair modules
# ---------------------------------------------------------------------
class FakeEC2Client:

    def __init__(self, addresses=None, fail_start=(), fail_describe=(), pages=None):
        self.addresses = dict(addresses or {})
        self.fail_start = set(fail_start)
        self.fail_describe = set(fail_describe)
        self.pages = pages or []
        self.started = []
        self.described = []
        self.waited = []
        self.paginate_kwargs = None
        self._lock = threading.Lock()

    def start_instances(self, InstanceIds):
        with self._lock:
            self.started.extend(InstanceIds)
        for iid in InstanceIds:
            if iid in self.fail_start:
                raise client_error("IncorrectInstanceState", "StartInstances")
        return {"StartingInstances": [{"InstanceId": iid} for iid in InstanceIds]}

    def describe_instances(self, InstanceIds):
        self.described.extend(InstanceIds)
        iid = InstanceIds[0]
        if iid in self.fail_describe:
            raise client_error("InvalidInstanceID.NotFound", "DescribeInstances")
        instance = {"InstanceId": iid}
        if self.addresses.get(iid):
            instance["PublicIpAddress"] = self.addresses[iid]
        return {"Reservations": [{"Instances": [instance]}]}

    def get_paginator(self, name):
        assert name == "describe_instances"

        def paginate(**kwargs):
            self.paginate_kwargs = kwargs
            return iter(self.pages)

        return types.SimpleNamespace(paginate=paginate)

    def get_waiter(self, name):
        assert name == "instance_running"
        return types.SimpleNamespace(wait=lambda **kwargs: self.waited.append(kwargs))


@pytest.fixture
def settings():
    return Settings(gce_project="demo-project", max_workers=4, gluster_poll_interval=0)


@pytest.fixture
def gce_set():
    return InstanceSet(GCE, [
        Node("jcope-gce-1", GCE, zone="us-central1-a", public_address="35.1.1.1"),
    ])


@pytest.fixture
def aws_set():
    return InstanceSet(AWS, [
        Node("jcope-aws-1", AWS, instance_id="i-1"),
        Node("jcope-aws-2", AWS, instance_id="i-2"),
    ])


@pytest.fixture
def fake_executor():
    return FakeExecutor()
