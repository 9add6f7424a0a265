import types

import botocore.exceptions
import pytest
from google.api_core.exceptions import Forbidden
from google.auth.exceptions import DefaultCredentialsError, RefreshError

from conftest import FakeEC2Client, client_error
from cluster_repair import inventory
from cluster_repair.config import Settings
from cluster_repair.errors import AuthenticationSuspectedError, ConfigurationError, InventoryError
from cluster_repair.inventory import EC2Inventory, GCEInventory, load_provider
from cluster_repair.models import AWS, GCE


def _ec2_instance(iid, name=None, ip=None, zone="us-east-1a"):
    instance = {"InstanceId": iid, "Placement": {"AvailabilityZone": zone}}
    if name is not None:
        instance["Tags"] = [{"Key": "Owner", "Value": "jcope"}, {"Key": "Name", "Value": name}]
    if ip:
        instance["PublicIpAddress"] = ip
    return instance


def _gce_instance(name, iid, ip=None):
    access_configs = [types.SimpleNamespace(nat_i_p=ip)] if ip else []
    return types.SimpleNamespace(
        name=name,
        id=iid,
        network_interfaces=[types.SimpleNamespace(access_configs=access_configs)],
    )


class FakeInstancesClient:

    def __init__(self, zones=None, error=None):
        self.zones = zones or []
        self.error = error
        self.kwargs = None

    def aggregated_list(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return iter(self.zones)


@pytest.mark.parametrize("name, expected", [("aws", EC2Inventory), ("GCE", GCEInventory), (" Aws ", EC2Inventory)])
def test_load_provider(name, expected):
    assert load_provider(name) is expected


@pytest.mark.parametrize("name", ["azure", "", None])
def test_load_provider_unsupported(name):
    with pytest.raises(ConfigurationError):
        load_provider(name)


def test_ec2_inventory_keeps_listing_order():
    pages = [
        {"Reservations": [{"Instances": [_ec2_instance("i-1", "jcope-aws-1")]}]},
        {"Reservations": [{"Instances": [_ec2_instance("i-2", "jcope-aws-2", ip="54.0.0.2")]}]},
    ]
    client = FakeEC2Client(pages=pages)

    aws = EC2Inventory(Settings(), client=client).get_instance_info("jcope", "NAMES", "IDS")

    assert aws.provider == AWS
    assert aws.names == ["jcope-aws-1", "jcope-aws-2"]
    assert aws.ids == ["i-1", "i-2"]
    # PUBLIC_IPS was not requested
    assert aws.public_ips == []
    assert aws.zones == []
    filters = client.paginate_kwargs["Filters"]
    assert {"Name": "tag:Name", "Values": ["*jcope*"]} in filters


def test_ec2_inventory_missing_name_tag_is_placeholder():
    client = FakeEC2Client(pages=[{"Reservations": [{"Instances": [_ec2_instance("i-1")]}]}])

    aws = EC2Inventory(Settings(), client=client).get_instance_info("jcope", "NAMES", "IDS")

    assert aws.names == ["None"]


def test_ec2_inventory_api_error():
    client = FakeEC2Client()

    def failing_paginator(name):
        raise client_error("InternalError", "DescribeInstances")

    client.get_paginator = failing_paginator

    with pytest.raises(InventoryError, match="failed to get aws instance info"):
        EC2Inventory(Settings(), client=client).get_instance_info("jcope", "NAMES", "IDS")


def test_unknown_field():
    with pytest.raises(ConfigurationError, match="BOGUS"):
        EC2Inventory(Settings(), client=FakeEC2Client()).get_instance_info("jcope", "NAMES", "BOGUS")


def test_missing_filter():
    with pytest.raises(ConfigurationError, match="instance-filter"):
        EC2Inventory(Settings(), client=FakeEC2Client()).get_instance_info("  ", "NAMES")


def test_gce_inventory():
    client = FakeInstancesClient(zones=[
        ("zones/us-central1-a", types.SimpleNamespace(instances=[
            _gce_instance("jcope-gce-1", 101, ip="35.1.1.1"),
            _gce_instance("jcope-gce-2", 102),
        ])),
        ("zones/europe-west1-b", types.SimpleNamespace(instances=[])),
        ("zones/us-east1-c", types.SimpleNamespace(instances=[_gce_instance("jcope-gce-3", 103, ip="35.1.1.3")])),
    ])

    gce = GCEInventory(Settings(gce_project="demo-project"), client=client).get_instance_info(
        "jcope", "NAMES", "ZONES", "PUBLIC_IPS"
    )

    assert gce.provider == GCE
    assert gce.names == ["jcope-gce-1", "jcope-gce-2", "jcope-gce-3"]
    assert gce.zones == ["us-central1-a", "us-central1-a", "us-east1-c"]
    assert gce.public_ips == ["35.1.1.1", "35.1.1.3"]
    assert gce.ids == []
    assert client.kwargs == {"project": "demo-project", "filter": 'name eq ".*jcope.*"'}


def test_gce_inventory_requires_project():
    with pytest.raises(ConfigurationError, match="GCE_PROJECT"):
        GCEInventory(Settings(), client=FakeInstancesClient())


def test_gce_inventory_api_error():
    client = FakeInstancesClient(error=Forbidden("compute.instances.list denied"))

    with pytest.raises(InventoryError, match="failed to get gce instance info"):
        GCEInventory(Settings(gce_project="demo-project"), client=client).get_instance_info("jcope", "NAMES")


@pytest.mark.parametrize("error", [
    client_error("AuthFailure", "DescribeInstances"),
    client_error("RequestExpired", "DescribeInstances"),
    botocore.exceptions.NoCredentialsError(),
])
def test_ec2_inventory_unauthenticated_session(error):
    client = FakeEC2Client()

    def failing_paginator(name):
        raise error

    client.get_paginator = failing_paginator

    with pytest.raises(AuthenticationSuspectedError, match="re-login to AWS CLI"):
        EC2Inventory(Settings(), client=client).get_instance_info("jcope", "NAMES", "IDS")


def test_ec2_inventory_transport_error():
    client = FakeEC2Client()

    def failing_paginator(name):
        raise botocore.exceptions.EndpointConnectionError(endpoint_url="https://ec2.us-east-1.amazonaws.com")

    client.get_paginator = failing_paginator

    with pytest.raises(InventoryError, match="failed to get aws instance info"):
        EC2Inventory(Settings(), client=client).get_instance_info("jcope", "NAMES", "IDS")


def test_gce_inventory_expired_credentials():
    client = FakeInstancesClient(error=RefreshError("Reauthentication is needed"))

    with pytest.raises(InventoryError, match="Reauthentication is needed"):
        GCEInventory(Settings(gce_project="demo-project"), client=client).get_instance_info("jcope", "NAMES")


def test_gce_inventory_without_default_credentials(monkeypatch):
    def no_credentials():
        raise DefaultCredentialsError("Could not automatically determine credentials")

    monkeypatch.setattr(inventory.compute_v1, "InstancesClient", no_credentials)

    with pytest.raises(InventoryError, match="could not create a gce instances client"):
        GCEInventory(Settings(gce_project="demo-project"))
