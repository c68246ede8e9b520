"""
Pure helpers for naming, IAM documents and task definitions. Testable without
the Pulumi runtime.

Used by the service component (container_definitions, secret_value_from,
assume_role_policy, bucket_access_policy, scaling_resource_id,
request_count_label) and by every component for provider-safe names
(short_name). No Pulumi types: the components call these inside
``Output.apply`` once values are known.
"""

import json
from typing import Any, Mapping, Sequence


def short_name(
    prefix: str,
    max_len: int = 24,
) -> str:
    """
    Produce a provider-safe resource name from a prefix.

    Load balancer and target group names allow only alphanumerics and
    hyphens, at most 32 characters, and Pulumi auto-naming appends an 8
    character suffix. This replaces other characters with hyphens, truncates
    to ``max_len`` and strips hyphens left dangling at either end.

    Args:
        prefix: Base name (e.g. from the component name).
        max_len: Maximum length before the auto-naming suffix.

    Returns:
        Sanitized name (e.g. "web-prod-alb").
    """
    cleaned = "".join(c if c.isalnum() or c == "-" else "-" for c in prefix)
    return cleaned[:max_len].strip("-")


def secret_value_from(
    secret_arn: str,
    key: str,
) -> str:
    """
    Reference to one JSON key of a Secrets Manager secret, as ECS expects it
    in ``secrets[].valueFrom`` (``<arn>:<json-key>:<version-stage>:<version-id>``).
    """
    return f"{secret_arn}:{key}::"


def container_definitions(
    name: str,
    image: str,
    port: int,
    environment: Mapping[str, Any],
    secrets: Mapping[str, str],
    log_group: str,
    region: str,
) -> str:
    """
    Render the container definitions JSON for a single-container task.

    Args:
        name: Container name; also the load balancer target.
        image: Image URI.
        port: Container port, published over TCP.
        environment: Plain environment variables. Values are stringified.
        secrets: Environment variable name to ``valueFrom`` reference.
        log_group: CloudWatch log group for the awslogs driver.
        region: Region of the log group.
    """
    definition = {
        "name": name,
        "image": image,
        "essential": True,
        "portMappings": [{"containerPort": port, "protocol": "tcp"}],
        "environment": [
            {"name": key, "value": str(value)} for key, value in environment.items()
        ],
        "secrets": [
            {"name": key, "valueFrom": value_from} for key, value_from in secrets.items()
        ],
        "logConfiguration": {
            "logDriver": "awslogs",
            "options": {
                "awslogs-group": log_group,
                "awslogs-region": region,
                "awslogs-stream-prefix": name,
            },
        },
    }
    return json.dumps([definition])


def assume_role_policy(
    service: str = "ecs-tasks.amazonaws.com",
) -> str:
    """Trust policy letting ``service`` assume a role."""
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"Service": service},
                    "Action": "sts:AssumeRole",
                }
            ],
        }
    )


def bucket_access_policy(
    bucket_arn: str,
    actions: Sequence[str],
) -> str:
    """
    Identity policy granting ``actions`` on a bucket and every object in it.

    Bucket-level actions (GetBucket*, List*) need the bucket ARN, object-level
    ones need ``<arn>/*``; both are listed so one statement covers either.
    """
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Action": list(actions),
                    "Resource": [bucket_arn, f"{bucket_arn}/*"],
                }
            ],
        }
    )


def secrets_read_policy(
    secret_arns: Sequence[str],
) -> str:
    """Identity policy letting the task execution role read the given secrets."""
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Action": [
                        "secretsmanager:GetSecretValue",
                        "secretsmanager:DescribeSecret",
                    ],
                    "Resource": sorted(set(secret_arns)),
                }
            ],
        }
    )


def scaling_resource_id(
    cluster_name: str,
    service_name: str,
) -> str:
    """Application Auto Scaling resource ID of an ECS service."""
    return f"service/{cluster_name}/{service_name}"


def request_count_label(
    load_balancer_arn_suffix: str,
    target_group_arn_suffix: str,
) -> str:
    """Resource label for the ALBRequestCountPerTarget predefined metric."""
    return f"{load_balancer_arn_suffix}/{target_group_arn_suffix}"
