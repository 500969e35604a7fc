# cli.py
import functools
import json
import logging
import sys

import click

from promoter.config import build_promotion_config, get_settings
from promoter.exceptions import HealthCheckError, PromotionError

# Configure logging
logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def handle_errors(func):
    """Turn promoter errors into their CLI exit codes."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PromotionError as e:
            click.echo(f"❌ {e}", err=True)
            sys.exit(e.exit_code)
    return wrapper


def _load_config():
    return build_promotion_config(get_settings())


def _clients():
    from deployment.aws.utils.aws_clients import AWSClientManager
    return AWSClientManager.from_settings(get_settings())


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """Build once and promote the image through dev, qa, perf, uat and prod"""
    level = logging.DEBUG if verbose else get_settings().log_level
    logging.basicConfig(level=level, format=LOG_FORMAT)


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    click.echo("Current Configuration:")
    click.echo(f"  AWS Region: {settings.aws_region}")
    click.echo(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    click.echo(f"  ECR Repository: {settings.ecr_repository}")
    click.echo(f"  Container Name: {settings.container_name}")
    click.echo(f"  Environments: {', '.join(settings.environments)}")
    click.echo(f"  Stabilization Timeout: {settings.stabilization_timeout}s")
    click.echo(f"  Health Probes: {settings.health_attempts} x {settings.health_retry_delay:g}s")
    click.echo(f"  Max Parallel Environments: {settings.max_parallel_environments}")
    click.echo(f"  Ledger: {settings.ledger_path}")


@cli.command()
@handle_errors
def plan():
    """Show the order environments are promoted in"""
    config = _load_config()
    for index, wave in enumerate(config.waves(), start=1):
        click.echo(f"Wave {index}:")
        for name in wave:
            env = config.environment(name)
            upstream = ", ".join(env.depends_on) or "-"
            click.echo(f"  {name}: {env.cluster}/{env.service} (after: {upstream}, "
                       f"latency < {env.latency_ceiling:g}s)")


@cli.command()
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text")
@handle_errors
def preflight(output_format):
    """Check docker, AWS credentials and the target services"""
    from deployment.aws.monitoring.resource_validator import ResourceValidator

    config = _load_config()
    clients = _clients()
    validator = ResourceValidator(clients.sts(), clients.ecs())
    validator.validate_prerequisites(config.environments)
    click.echo(validator.get_validation_report(output_format))
    validator.raise_for_errors()


@cli.command()
@click.option("--event-name", envvar="GITHUB_EVENT_NAME", required=True,
              help="push, pull_request or workflow_dispatch")
@click.option("--ref", envvar="GITHUB_REF", default=None)
@click.option("--base-ref", envvar="GITHUB_BASE_REF", default=None)
@click.option("--changed-file", "changed_files", multiple=True,
              help="Path changed by the event; repeat for each file")
def check_trigger(event_name, ref, base_ref, changed_files):
    """Exit 0 when the event should start a promotion, 1 otherwise"""
    from deployment.aws.monitoring.summary_report import write_github_output
    from deployment.aws.orchestration.triggers import TriggerPolicy

    settings = get_settings()
    policy = TriggerPolicy(branch=settings.trigger_branch, paths=tuple(settings.trigger_paths))
    should_run = policy.should_run(event_name, ref=ref, base_ref=base_ref,
                                   changed_files=list(changed_files) or None)
    write_github_output("should_run", str(should_run).lower())
    click.echo("run" if should_run else "skip")
    sys.exit(0 if should_run else 1)


@cli.command()
@click.option("--commit-sha", envvar="GITHUB_SHA", required=True, help="Commit to build")
@click.option("--skip-build", is_flag=True, help="Only verify an already published image")
@handle_errors
def build(commit_sha, skip_build):
    """Build the image and publish it under the full and short commit hash"""
    from deployment.aws.orchestration.promote import create_orchestrator

    orchestrator = create_orchestrator(_load_config(), _clients())
    artifact, result = orchestrator.build(commit_sha, skip_build=skip_build)
    if not result.succeeded:
        click.echo(f"❌ {result.message}", err=True)
        sys.exit(result.exit_code)
    click.echo(f"image={artifact.image_uri}")


@cli.command()
@click.option("--commit-sha", envvar="GITHUB_SHA", required=True, help="Commit to promote")
@click.option("--skip-build", is_flag=True, help="Promote an already published image")
@handle_errors
def promote(commit_sha, skip_build):
    """Build once and promote through every environment"""
    from deployment.aws.monitoring.summary_report import prune_expired
    from deployment.aws.orchestration.promote import create_orchestrator

    config = _load_config()
    prune_expired(config.summary_dir, config.summary_retention_days)
    orchestrator = create_orchestrator(config, _clients())
    result = orchestrator.run(commit_sha, skip_build=skip_build)

    click.echo(f"{result.build.name}: {result.build.status.value} {result.build.message}")
    for name, stage in result.environments.items():
        click.echo(f"{name}: {stage.status.value} {stage.message}")
    sys.exit(result.exit_code)


@cli.command()
@click.option("--environment", "-e", required=True, help="Environment to validate")
@click.option("--settle/--no-settle", default=True, help="Wait before the first probe")
@handle_errors
def validate(environment, settle):
    """Run the health checks against an environment as it runs now"""
    from deployment.aws.orchestration.promote import create_environment_promoter

    promoter = create_environment_promoter(_load_config(), _clients())
    verdict = promoter.validate(environment, settle=settle)
    for check in verdict.checks:
        mark = "⏭️" if check.skipped else ("✅" if check.passed else "❌")
        click.echo(f"{mark} {check.name}: {check.detail}")
    if not verdict.healthy:
        raise HealthCheckError(verdict, environment)


@cli.command()
@click.option("--environment", "-e", default=None, help="Only show one environment")
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text")
@handle_errors
def history(environment, output_format):
    """List deployment records, newest first"""
    from deployment.aws.state.state_manager import StateManager

    records = StateManager(get_settings().ledger_path).history(environment)
    if output_format == "json":
        click.echo(json.dumps([r.to_dict() for r in records], indent=2))
        return

    if not records:
        click.echo("No deployments recorded")
        return
    for record in records:
        marker = "*" if record.is_current else " "
        extra = f" (rollback of {record.rollback_of[:8]})" if record.rollback_of else ""
        click.echo(f"{marker} {record.record_id[:8]} {record.environment:<5} {record.status:<8} "
                   f"{record.image} {record.created_at}{extra}")


@cli.command()
@click.option("--environment", "-e", required=True, help="Environment to roll back")
@click.option("--record-id", default=None, help="Record to return to (default: the previous one)")
@click.option("--dry-run/--execute", default=True, help="Only show what would be applied")
@handle_errors
def rollback(environment, record_id, dry_run):
    """Re-apply the task definition of an earlier deployment"""
    from deployment.aws.infrastructure.ecs_services import ECSServiceDeployer
    from deployment.aws.state.rollback_manager import RollbackManager
    from deployment.aws.state.state_manager import StateManager

    config = _load_config()
    manager = RollbackManager(
        config,
        StateManager(config.ledger_path),
        ECSServiceDeployer(_clients().ecs()),
    )
    results = manager.execute_rollback(environment, record_id=record_id, dry_run=dry_run)
    plan = results["plan"]
    if dry_run:
        click.echo(f"Would roll {environment} back to {plan['target_image']}")
        click.echo(f"  task definition: {plan['target_task_definition']}")
        click.echo(f"  current: {plan['current_task_definition']}")
    else:
        click.echo(f"✅ {environment} rolled back to {plan['target_image']}")


@cli.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None,
              help="Write the combined report to a file")
@click.option("--prune/--no-prune", default=True, help="Delete summaries past retention first")
def summarize(output, prune):
    """Combine the retained test results summaries"""
    from deployment.aws.monitoring import summary_report

    settings = get_settings()
    if prune:
        summary_report.prune_expired(settings.summary_dir, settings.summary_retention_days)
    report = summary_report.aggregate(settings.summary_dir)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(report)
        click.echo(f"Wrote {output}")
    else:
        click.echo(report, nl=False)
    summary_report.append_step_summary(report)


if __name__ == "__main__":
    cli()
