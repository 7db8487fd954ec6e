"""Resolve the account-specific values a new stack needs: DNS zone, AMI and network."""

import logging

from pttops.config import read_shared_config
from pttops.errors import LookupFailedError

logger = logging.getLogger(__name__)

VOLUME_SIZE = 50
INSTANCE_NAME = "orion-ptt-system"


def lookup_zone_id(route53, domain):
    """Hosted zone id for `domain`, without the /hostedzone/ prefix."""
    wanted = domain.rstrip(".") + "."
    paginator = route53.get_paginator("list_hosted_zones")
    for page in paginator.paginate():
        for zone in page.get("HostedZones", []):
            if zone.get("Name") == wanted:
                return zone["Id"].removeprefix("/hostedzone/")
    raise LookupFailedError(f"no hosted zone found for domain {domain}")


def lookup_ami_id(ec2, name_pattern, owner):
    """Newest image owned by `owner` whose name matches `name_pattern`."""
    resp = ec2.describe_images(
        Owners=[owner],
        Filters=[{"Name": "name", "Values": [name_pattern]}],
    )
    images = resp.get("Images", [])
    if not images:
        raise LookupFailedError(f"no AMI matching {name_pattern!r} owned by {owner}")
    # CreationDate is ISO 8601, so string order is time order
    newest = max(images, key=lambda img: img.get("CreationDate", ""))
    logger.debug(f"Using AMI {newest['ImageId']} ({newest.get('Name', '')})")
    return newest["ImageId"]


def lookup_network(ec2, subnet_ids):
    """(vpc_id, subnet_id) of the first visible subnet listed in `subnet_ids`."""
    wanted = set(subnet_ids)
    if not wanted:
        raise LookupFailedError("shared config lists no subnet_ids")
    resp = ec2.describe_subnets()
    for subnet in resp.get("Subnets", []):
        if subnet["SubnetId"] in wanted:
            return subnet["VpcId"], subnet["SubnetId"]
    raise LookupFailedError(f"none of the subnets {sorted(wanted)} exist in this account")


def build_stack_parameters(config, session):
    """The fixed creation parameter set for an Orion PTT System stack."""
    ec2 = session.client("ec2")
    route53 = session.client("route53")

    shared = read_shared_config(config.shared_config)
    vpc_id, subnet_id = lookup_network(ec2, shared["subnet_ids"])
    ami_id = lookup_ami_id(ec2, config.ami_name, config.ami_owner)
    zone_id = lookup_zone_id(route53, config.dns_domain)

    return {
        "ExistingVpcID": vpc_id,
        "ExistingPublicSubnet": subnet_id,
        "KeyName": config.key_name,
        "AmiId": ami_id,
        "InstanceType": config.instance_type,
        "VolumeSize": str(VOLUME_SIZE),
        "InstanceName": INSTANCE_NAME,
        "CreateDNS": "true",
        "CreateDNSZoneID": zone_id,
        "CreateDNSDomain": config.dns_domain,
    }
