# sanity_check.py
# One consistency checkpoint between discovery and the first /etc/hosts write.

import logging

from cluster_repair.errors import AuthenticationSuspectedError, ValidationError

logger = logging.getLogger(__name__)

# what describe_instances gives back for the Name when the aws session is logged out
PLACEHOLDER_NAME = "None"


def validate(gce, aws, assignment, binding):
    """
    Assert that the gce/aws instance sets, the new ec2 ips and the alias binding agree.

    Raises ValidationError on any size mismatch, and AuthenticationSuspectedError (fatal,
    not a ValidationError) when an ec2 name is the placeholder value.
    """
    logger.info("internal sanity check on gce and aws variables...")

    # gce
    gce_names, gce_zones = gce.names, gce.zones
    if len(gce_names) == 0:
        raise ValidationError("must have at least 1 gce instance")
    if len(gce_names) != len(gce_zones):
        raise ValidationError(
            f"expect num of gce instances ({len(gce_names)}) to = num of gce zones ({len(gce_zones)})\n"
            f"    gce-names: {' '.join(gce_names)}\n"
            f"    gce-zones: {' '.join(gce_zones)}"
        )

    # aws
    aws_names, aws_ids = aws.names, aws.ids
    aws_ips = assignment.addresses
    aliases = binding.aliases
    if len(aws_names) == 0:
        raise ValidationError("must have at least 1 aws ec2 instance")
    if any(PLACEHOLDER_NAME in name for name in aws_names):
        raise AuthenticationSuspectedError("re-login to AWS CLI -- ec2 instances are not being found")
    if not (len(aws_names) == len(aws_ids) == len(aws_ips) == len(binding)):
        raise ValidationError(
            f"expect num of aws instances ({len(aws_names)}), num of aws ids ({len(aws_ids)}), "
            f"num of aws ips ({len(aws_ips)}), and num aws /etc/hosts aliases ({len(binding)}) to be the same\n"
            f"    aws-names  : {' '.join(aws_names)}\n"
            f"    aws-ids    : {' '.join(aws_ids)}\n"
            f"    aws-ips    : {' '.join(aws_ips)}\n"
            f"    aws-aliases: {' '.join(aliases)}"
        )
