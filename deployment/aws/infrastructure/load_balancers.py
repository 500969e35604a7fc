"""Application load balancer discovery."""
import logging
from typing import List, Dict, Any, Optional

from botocore.exceptions import ClientError

from promoter.config.promotion import EnvironmentConfig

logger = logging.getLogger(__name__)


class LoadBalancerLocator:
    """Find the public endpoint of an environment."""

    def __init__(self, elbv2_client):
        self.elbv2_client = elbv2_client

    def _list_load_balancers(self) -> List[Dict[str, Any]]:
        paginator = self.elbv2_client.get_paginator('describe_load_balancers')
        load_balancers = []
        for page in paginator.paginate():
            load_balancers.extend(page.get('LoadBalancers', []))
        return load_balancers

    def find_dns_name(self, name: str) -> Optional[str]:
        """DNS name of the load balancer called ``name``.

        An exact name match wins; otherwise the first load balancer whose name
        contains ``name`` is used.
        """
        try:
            load_balancers = self._list_load_balancers()
        except ClientError as e:
            logger.error(f"Could not list load balancers: {e}")
            return None

        exact = [lb for lb in load_balancers if lb.get('LoadBalancerName') == name]
        partial = [lb for lb in load_balancers if name in lb.get('LoadBalancerName', '')]
        for candidates in (exact, partial):
            if candidates:
                dns_name = candidates[0].get('DNSName')
                logger.debug(f"Load balancer {candidates[0]['LoadBalancerName']} -> {dns_name}")
                return dns_name

        logger.warning(f"No load balancer matching '{name}'")
        return None

    def endpoint_for(self, environment: EnvironmentConfig) -> Optional[str]:
        """Base URL for probing ``environment``, or None when it cannot be found."""
        if environment.endpoint:
            return environment.endpoint.rstrip('/')

        dns_name = self.find_dns_name(environment.load_balancer_name)
        if not dns_name:
            return None
        return f"http://{dns_name}"
