# inventory.py
# Provider inventory clients.
#
# Both clients answer the same question: "which instances match this filter?" and return an
# InstanceSet of typed Nodes. Callers ask only for the attributes they need, eg. the ec2 lookup
# before a restart asks for NAMES and IDS but not PUBLIC_IPS since a stopped instance has none.
#
# Usage:
#   inventory = load_provider("gce")(settings)
#   gce = inventory.get_instance_info("jcope", "NAMES", "ZONES", "PUBLIC_IPS")

import logging

import boto3
import botocore.exceptions
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import compute_v1

from cluster_repair.errors import AuthenticationSuspectedError, ConfigurationError, InventoryError
from cluster_repair.models import AWS, GCE, PROVIDERS, InstanceSet, Node
from cluster_repair.utils import retry_with_backoff

logger = logging.getLogger(__name__)

FIELDS = ("NAMES", "ZONES", "IDS", "PUBLIC_IPS")

# terminated instances linger in describe_instances for a while; never treat them as cluster nodes
EC2_LIVE_STATES = ["pending", "running", "stopping", "stopped"]

# describe_instances error codes that mean the aws session is not authenticated
EC2_AUTH_ERROR_CODES = ("AuthFailure", "UnauthorizedOperation", "ExpiredToken", "RequestExpired",
                        "InvalidClientTokenId")


def _check_fields(fields):
    fields = tuple(field.upper() for field in fields) or FIELDS
    unknown = [field for field in fields if field not in FIELDS]
    if unknown:
        raise ConfigurationError(f"unknown instance info field(s): {', '.join(unknown)} (expected {', '.join(FIELDS)})")
    return fields


def _check_filter(instance_filter):
    if not instance_filter or not str(instance_filter).strip():
        raise ConfigurationError("Missing required instance-filter value")
    return str(instance_filter).strip()


def get_ec2_client(settings):
    """EC2 client for the configured account/region. Empty credentials fall back to the boto3 chain."""
    try:
        session = boto3.Session(
            aws_access_key_id=settings.aws_access_key,
            aws_secret_access_key=settings.aws_secret_key,
            region_name=settings.region_name
        )
        return session.client('ec2')
    except botocore.exceptions.BotoCoreError as e:
        # eg. NoRegionError when region_name is not set anywhere
        raise ConfigurationError(f"could not create an EC2 client: {e}")


def _tag_value(instance, key):
    for tag in instance.get('Tags') or []:
        if tag.get('Key') == key:
            return tag.get('Value')
    return None


class EC2Inventory:
    provider = AWS

    def __init__(self, settings, client=None):
        self.settings = settings
        self.client = client if client is not None else get_ec2_client(settings)

    def get_instance_info(self, instance_filter, *fields):
        instance_filter = _check_filter(instance_filter)
        fields = _check_fields(fields)
        filters = [
            {'Name': 'tag:Name', 'Values': [f'*{instance_filter}*']},
            {'Name': 'instance-state-name', 'Values': EC2_LIVE_STATES},
        ]

        logger.info(f"[inventory] describing ec2 instances matching {instance_filter!r}...")
        nodes = []
        try:
            paginator = self.client.get_paginator('describe_instances')
            pages = retry_with_backoff(lambda: list(paginator.paginate(Filters=filters)))
        except botocore.exceptions.NoCredentialsError as e:
            raise AuthenticationSuspectedError(f"re-login to AWS CLI -- {e}")
        except botocore.exceptions.ClientError as e:
            if e.response.get('Error', {}).get('Code') in EC2_AUTH_ERROR_CODES:
                raise AuthenticationSuspectedError(f"re-login to AWS CLI -- {e}")
            raise InventoryError(f"failed to get aws instance info: {e}")
        except botocore.exceptions.BotoCoreError as e:
            raise InventoryError(f"failed to get aws instance info: {e}")

        for page in pages:
            for reservation in page.get('Reservations', []):
                for instance in reservation.get('Instances', []):
                    # a missing Name tag is rendered as the literal "None", like the aws cli text
                    # output, and sanity_check treats that as a logged out session. The tag:Name
                    # filter above never returns an untagged instance, so an unauthenticated
                    # session is reported by the auth error codes instead.
                    name = str(_tag_value(instance, 'Name'))
                    placement = instance.get('Placement') or {}
                    nodes.append(Node(
                        name=name,
                        provider=AWS,
                        zone=placement.get('AvailabilityZone') if 'ZONES' in fields else None,
                        instance_id=instance.get('InstanceId') if 'IDS' in fields else None,
                        public_address=instance.get('PublicIpAddress') if 'PUBLIC_IPS' in fields else None,
                    ))

        logger.info(f"[inventory] found {len(nodes)} ec2 instance(s): {' '.join(node.name for node in nodes)}")
        return InstanceSet(AWS, nodes)


def _gce_public_ip(instance):
    for interface in instance.network_interfaces:
        for access_config in interface.access_configs:
            if access_config.nat_i_p:
                return access_config.nat_i_p
    return None


class GCEInventory:
    provider = GCE

    def __init__(self, settings, client=None):
        if not settings.gce_project:
            raise ConfigurationError("GCE_PROJECT is not set in environment")
        self.settings = settings
        if client is None:
            try:
                client = compute_v1.InstancesClient()
            except GoogleAuthError as e:
                # eg. DefaultCredentialsError when gcloud application-default credentials are missing
                raise InventoryError(f"could not create a gce instances client: {e}")
        self.client = client

    def get_instance_info(self, instance_filter, *fields):
        instance_filter = _check_filter(instance_filter)
        fields = _check_fields(fields)

        logger.info(f"[inventory] listing gce instances matching {instance_filter!r}...")
        nodes = []
        try:
            result = self.client.aggregated_list(
                project=self.settings.gce_project,
                filter=f'name eq ".*{instance_filter}.*"',
            )
            for zone_key, response in result:
                if not response.instances:
                    continue
                zone = zone_key.split("/")[-1]
                for instance in response.instances:
                    nodes.append(Node(
                        name=instance.name,
                        provider=GCE,
                        zone=zone if 'ZONES' in fields else None,
                        instance_id=str(instance.id) if 'IDS' in fields else None,
                        public_address=_gce_public_ip(instance) if 'PUBLIC_IPS' in fields else None,
                    ))
        except (GoogleAPIError, GoogleAuthError) as e:
            raise InventoryError(f"failed to get gce instance info: {e}")

        logger.info(f"[inventory] found {len(nodes)} gce instance(s): {' '.join(node.name for node in nodes)}")
        return InstanceSet(GCE, nodes)


INVENTORIES = {
    AWS: EC2Inventory,
    GCE: GCEInventory,
}


def load_provider(provider):
    """Return the inventory class for "aws" or "gce" (any case)."""
    if not provider:
        raise ConfigurationError("Missing required cloud-provider value")
    provider = str(provider).strip().lower()
    if provider not in PROVIDERS:
        raise ConfigurationError(f"Provider must be either aws or gce, got {provider!r}")
    return INVENTORIES[provider]
