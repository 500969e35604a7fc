"""AWS client management."""
import boto3
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class AWSClientManager:
    """Creates and caches one boto3 client per AWS service.

    Region, profile and endpoint come from the settings handed in by the
    caller, so two managers with different settings never share clients.
    """

    def __init__(self, region: str, profile: Optional[str] = None,
                 endpoint_url: Optional[str] = None):
        self.region = region
        self.profile = profile
        self.endpoint_url = endpoint_url
        self._clients: Dict[str, Any] = {}
        self._session = None

        logger.debug(f"Initializing AWSClientManager")
        logger.debug(f"  Region: {self.region}")
        logger.debug(f"  Profile: {self.profile}")
        logger.debug(f"  Endpoint: {self.endpoint_url}")

    @classmethod
    def from_settings(cls, settings) -> "AWSClientManager":
        return cls(
            region=settings.aws_region,
            profile=settings.aws_profile,
            endpoint_url=settings.aws_endpoint_url,
        )

    def _get_session(self) -> boto3.Session:
        if self._session is None:
            if self.profile:
                # Named profile, e.g. for SSO
                self._session = boto3.Session(profile_name=self.profile, region_name=self.region)
            else:
                self._session = boto3.Session(region_name=self.region)
        return self._session

    def get_client(self, service_name: str) -> Any:
        """Get or create an AWS service client."""
        if service_name in self._clients:
            return self._clients[service_name]

        client_kwargs = {
            'region_name': self.region
        }
        if self.endpoint_url:
            client_kwargs['endpoint_url'] = self.endpoint_url

        try:
            client = self._get_session().client(service_name, **client_kwargs)
            self._clients[service_name] = client
            logger.debug(f"Created {service_name} client")
            return client
        except Exception as e:
            logger.error(f"Error creating {service_name} client: {str(e)}")
            raise

    def clear_clients(self):
        """Clear all cached clients."""
        self._clients.clear()
        logger.debug("Cleared all AWS clients")

    def ecs(self):
        """Get the ECS client."""
        return self.get_client('ecs')

    def ecr(self):
        """Get the ECR client."""
        return self.get_client('ecr')

    def elbv2(self):
        """Get the Elastic Load Balancing v2 client."""
        return self.get_client('elbv2')

    def sts(self):
        """Get the STS client."""
        return self.get_client('sts')
