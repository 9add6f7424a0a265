import pytest

from cluster_repair.errors import AuthenticationSuspectedError, RecoveryError, ValidationError
from cluster_repair.models import AWS, GCE, AddressAssignment, AliasBinding, InstanceSet, Node
from cluster_repair.sanity_check import validate


def _assignment():
    return AddressAssignment([("i-1", "10.0.0.5"), ("i-2", "10.0.0.6")])


def _binding():
    return AliasBinding.from_lists(["aws-node1", "aws-node2"], ["10.0.0.5", "10.0.0.6"])


def test_validate_passes(gce_set, aws_set):
    validate(gce_set, aws_set, _assignment(), _binding())


def test_empty_gce_set(aws_set):
    with pytest.raises(ValidationError, match="at least 1 gce instance"):
        validate(InstanceSet(GCE, []), aws_set, _assignment(), _binding())


def test_gce_names_and_zones_must_match(aws_set):
    gce = InstanceSet(GCE, [
        Node("gce-1", GCE, zone="us-central1-a"),
        Node("gce-2", GCE),
    ])
    with pytest.raises(ValidationError, match=r"num of gce instances \(2\) to = num of gce zones \(1\)"):
        validate(gce, aws_set, _assignment(), _binding())


def test_empty_aws_set(gce_set):
    with pytest.raises(ValidationError, match="at least 1 aws ec2 instance"):
        validate(gce_set, InstanceSet(AWS, []), _assignment(), _binding())


def test_placeholder_name_is_fatal_not_a_validation_error(gce_set):
    aws = InstanceSet(AWS, [
        Node("None", AWS, instance_id="i-1"),
        Node("None", AWS, instance_id="i-2"),
    ])
    with pytest.raises(AuthenticationSuspectedError) as excinfo:
        validate(gce_set, aws, _assignment(), _binding())

    assert not isinstance(excinfo.value, RecoveryError)


def test_aws_counts_must_agree(gce_set):
    aws = InstanceSet(AWS, [
        Node("jcope-aws-1", AWS, instance_id="i-1"),
        Node("jcope-aws-2", AWS, instance_id="i-2"),
        Node("jcope-aws-3", AWS, instance_id="i-3"),
    ])
    with pytest.raises(ValidationError, match="to be the same"):
        validate(gce_set, aws, _assignment(), _binding())


def test_aws_id_missing(gce_set):
    aws = InstanceSet(AWS, [
        Node("jcope-aws-1", AWS, instance_id="i-1"),
        Node("jcope-aws-2", AWS),
    ])
    with pytest.raises(ValidationError):
        validate(gce_set, aws, _assignment(), _binding())


def test_binding_size_must_agree(gce_set, aws_set):
    binding = AliasBinding.from_lists(["aws-node1"], ["10.0.0.5"])
    with pytest.raises(ValidationError):
        validate(gce_set, aws_set, _assignment(), binding)
