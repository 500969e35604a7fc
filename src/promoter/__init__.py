"""
Promotion tooling for ECS-hosted applications.

Contains the CLI, settings, shared models and error types used by the
build, promotion, validation and rollback stages under ``deployment.aws``.
"""
