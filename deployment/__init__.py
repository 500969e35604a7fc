"""
Deployment components for the promotion chain.

This module contains the AWS-facing pieces:
- Image build and publication to ECR
- ECS task definition rendering, service updates and stability waits
- Health validation, test result summaries and the deployment ledger
"""
