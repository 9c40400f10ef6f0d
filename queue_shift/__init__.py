import logging
from typing import List, Optional

import botocore.session
from botocore.exceptions import ProfileNotFound

from .errors import ParameterParseFailed

__version__ = "0.3.0"

log = logging.getLogger(__name__)


def available_regions(session, service: str = "sqs") -> List[str]:
    """ Every region ``service`` is offered in, across all partitions
    """
    regions = []
    for partition in session.get_available_partitions():
        regions.extend(session.get_available_regions(service, partition_name=partition))
    return regions


def get_boto_session(region_name: Optional[str] = None,
                     profile: Optional[str] = None):
    """ Get botocore.session for a named profile with region_name configured

    Raises ParameterParseFailed when the profile is unknown or the region is
    not one the queue service runs in.
    """
    if profile is not None and profile not in botocore.session.Session().available_profiles:
        raise ParameterParseFailed(f"Unknown AWS profile: {profile}")

    session = botocore.session.Session(profile=profile)
    try:
        _region = session.get_config_variable("region")
    except ProfileNotFound as e:
        raise ParameterParseFailed(f"Unknown AWS profile: {profile}") from e

    if region_name is not None:
        if region_name not in available_regions(session):
            raise ParameterParseFailed(f"Unknown AWS region: {region_name}")
        _region = region_name

    if _region is None:
        raise ParameterParseFailed("Region name is not supplied and default can not be found")

    session.set_config_variable("region", _region)
    log.debug("Using profile %s in region %s", profile, _region)

    return session


def make_sqs_client(session=None, region_name=None, profile=None):
    """ Create low level SQS client, building the session when one is not supplied.
    """
    if session is None:
        session = get_boto_session(region_name=region_name, profile=profile)

    region_name = session.get_config_variable("region")

    try:
        return session.create_client("sqs", region_name=region_name)
    except ProfileNotFound as e:
        raise ParameterParseFailed(f"Unknown AWS profile: {profile}") from e
