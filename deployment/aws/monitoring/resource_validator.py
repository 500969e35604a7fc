"""
Pre-promotion prerequisite validation.

Validates local tooling, AWS credentials and the target ECS services before a
promotion starts, to catch issues early and provide helpful error messages.
"""
import json
import logging
import shutil
from typing import Any, Callable, Dict, Iterable, Optional

from botocore.exceptions import ClientError, NoCredentialsError

from promoter.config.promotion import EnvironmentConfig
from promoter.exceptions import PrerequisiteError

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ("docker",)


class ResourceValidator:
    """Validate tools, credentials and services before deployment."""

    def __init__(self, sts_client, ecs_client=None,
                 which: Callable[[str], Optional[str]] = shutil.which):
        self.sts_client = sts_client
        self.ecs_client = ecs_client
        self.which = which
        self.validation_results: Dict[str, Any] = {
            'valid': True,
            'warnings': [],
            'errors': [],
            'checks': {}
        }

    def _fail(self, check: str, error: str) -> bool:
        self.validation_results['valid'] = False
        self.validation_results['errors'].append(error)
        self.validation_results['checks'][check] = {'status': 'error', 'error': error}
        return False

    def validate_tools(self, tools: Iterable[str] = REQUIRED_TOOLS) -> bool:
        """Check that required command line tools are on PATH."""
        ok = True
        for tool in tools:
            path = self.which(tool)
            if path:
                self.validation_results['checks'][f'tool_{tool}'] = {'status': 'valid', 'path': path}
            else:
                ok = self._fail(f'tool_{tool}', f"{tool} is not installed. Please install {tool} first.")
        return ok

    def validate_credentials(self) -> bool:
        """Validate AWS credentials and basic access."""
        try:
            identity = self.sts_client.get_caller_identity()

            self.validation_results['checks']['credentials'] = {
                'status': 'valid',
                'account_id': identity['Account'],
                'user_arn': identity['Arn'],
                'region': self.sts_client.meta.region_name,
            }
            return True

        except NoCredentialsError:
            return self._fail(
                'credentials',
                "AWS credentials not configured. Please run 'aws configure' or set environment variables.")

        except ClientError as e:
            return self._fail('credentials', f"AWS credentials invalid: {e.response['Error']['Message']}")

    def validate_services(self, environments: Iterable[EnvironmentConfig]) -> bool:
        """Check that every environment's cluster has an ACTIVE service."""
        if self.ecs_client is None:
            self.validation_results['checks']['services'] = {'status': 'skipped'}
            return True

        ok = True
        for env in environments:
            check = f'service_{env.name}'
            try:
                response = self.ecs_client.describe_services(cluster=env.cluster, services=[env.service])
            except ClientError as e:
                ok = self._fail(check, f"{env.name}: cannot describe {env.service}: {e}")
                continue

            active = [s for s in response.get('services', []) if s.get('status') == 'ACTIVE']
            if active:
                self.validation_results['checks'][check] = {
                    'status': 'valid',
                    'cluster': env.cluster,
                    'service': env.service,
                }
            else:
                ok = self._fail(check, f"{env.name}: service {env.service} not found in {env.cluster}")
        return ok

    def validate_prerequisites(self, environments: Iterable[EnvironmentConfig] = ()) -> bool:
        """Run all validation checks for promotion prerequisites."""
        logger.info("🔍 Validating promotion prerequisites...")
        self.validate_tools()
        if self.validate_credentials():
            logger.info("✅ AWS credentials valid")
            self.validate_services(environments)
        return self.validation_results['valid']

    def raise_for_errors(self) -> None:
        if not self.validation_results['valid']:
            raise PrerequisiteError("; ".join(self.validation_results['errors']))

    def get_validation_report(self, format: str = 'text') -> str:
        """Get validation report in specified format."""
        if format == 'json':
            return json.dumps(self.validation_results, indent=2)

        elif format == 'text':
            report = []
            report.append("Promotion Prerequisite Report")
            report.append("=" * 40)
            report.append(f"Overall Status: {'✅ VALID' if self.validation_results['valid'] else '❌ INVALID'}")
            report.append("")

            for name, check in self.validation_results['checks'].items():
                if check['status'] == 'valid':
                    if name == 'credentials':
                        report.append(
                            f"✅ Credentials: account {check['account_id']} in region {check['region']}")
                    else:
                        report.append(f"✅ {name.replace('_', ' ')}: OK")
                elif check['status'] == 'skipped':
                    report.append(f"⏭️ {name.replace('_', ' ')}: skipped")
                else:
                    report.append(f"❌ {name.replace('_', ' ')}: {check.get('error', 'Check failed')}")

            if self.validation_results['errors']:
                report.append("")
                report.append("Errors:")
                for error in self.validation_results['errors']:
                    report.append(f"  ❌ {error}")

            return "\n".join(report)

        else:
            raise ValueError(f"Unsupported format: {format}")
