"""
AWS compute: ECS cluster, Fargate service behind an HTTPS load balancer,
autoscaling, task roles and the bucket the service writes to.

Plain environment bindings of the ``ManagedService`` are resolved from the
registry (database and cache hostnames). Private bindings that are key
references into a managed secret become ECS ``secrets`` entries, so the task
definition only ever holds ``valueFrom`` ARNs; any plaintext private binding
is passed as a Pulumi secret. The load balancer gets its own security group,
open on the listener port; the tasks' group (the service's network identity)
admits only the load balancer on the container port.
"""

import pulumi
import pulumi_aws as aws

from composer.descriptors import (
    ComputeCluster,
    ManagedService,
    ObjectStore,
    ScalingController,
)
from composer.secrets import SecretKeyRef
from components._helpers import (
    assume_role_policy,
    bucket_access_policy,
    container_definitions,
    request_count_label,
    scaling_resource_id,
    secret_value_from,
    secrets_read_policy,
    short_name,
)
from components.registry import OutputRegistry

ID: str = "composer:aws:ServiceInfra"

EXECUTION_ROLE_POLICY_ARN = (
    "arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy"
)

# Scaling metric of a ScalingPolicy -> predefined Application Auto Scaling metric.
PREDEFINED_METRICS: dict[str, str] = {
    "cpu_utilization": "ECSServiceAverageCPUUtilization",
    "requests_per_target": "ALBRequestCountPerTarget",
}


class ServiceInfra(pulumi.ComponentResource):
    """
    Fargate service with an HTTPS application load balancer and target
    tracking autoscaling.

    Resources: s3.Bucket, ecs.Cluster, cloudwatch.LogGroup, iam.Role (task and
    execution), iam.RolePolicy, iam.RolePolicyAttachment, ec2.SecurityGroup
    (load balancer), ec2.SecurityGroupRule, lb.LoadBalancer, lb.TargetGroup,
    lb.Listener, ecs.TaskDefinition, ecs.Service, appautoscaling.Target,
    appautoscaling.Policy.
    """

    def __init__(
        self,
        name: str,
        cluster: ComputeCluster,
        bucket: ObjectStore,
        service: ManagedService,
        scaling: ScalingController,
        registry: OutputRegistry,
    ):
        """
        Create the cluster, the service and everything it is wired to.

        Args:
            name: Pulumi resource name prefix.
            cluster: Compute cluster descriptor.
            bucket: Object store the service is granted access to.
            service: Service descriptor (container, endpoint, bindings, grants).
            scaling: Scaling controller bound to ``service``.
            registry: Must already hold the network, the service boundary,
                the data tier and the certificate. Receives ``arn`` for the
                cluster and bucket, ``load_balancer_dns`` for the service.

        Outputs (set on self, registered for the component):
            load_balancer_dns: Public DNS name of the load balancer (the
                distribution's origin).
            bucket_name: Name of the bucket.
        """
        super().__init__(ID, name)

        child_opts = pulumi.ResourceOptions(parent=self)
        vpc_id = registry.get(cluster.network, "vpc_id")
        alb_name = short_name(f"{name}-alb")

        self.bucket = aws.s3.Bucket(resource_name=f"{name}-bucket", opts=child_opts)
        registry.register(bucket.name, arn=self.bucket.arn)

        self.cluster = aws.ecs.Cluster(resource_name=f"{name}-cluster", opts=child_opts)
        registry.register(cluster.name, arn=self.cluster.arn)

        log_group = aws.cloudwatch.LogGroup(
            resource_name=f"{name}-logs",
            retention_in_days=30,
            opts=child_opts,
        )

        # Split private bindings into secret references and plaintext values.
        secret_refs: dict[str, pulumi.Output[str]] = {}
        secret_arns: list[pulumi.Output[str]] = []
        environment = {
            key: registry.resolve(value) for key, value in service.environment
        }
        for key, secret in service.secrets:
            value = secret.reveal()
            if isinstance(value, SecretKeyRef):
                arn = pulumi.Output.from_input(
                    registry.get(value.handle.resource, "secret_arn")
                )
                secret_arns.append(arn)
                secret_refs[key] = arn.apply(
                    lambda a, k=value.key: secret_value_from(a, k)
                )
            else:
                environment[key] = pulumi.Output.secret(value)

        execution_role = aws.iam.Role(
            resource_name=f"{name}-execution",
            assume_role_policy=assume_role_policy(),
            opts=child_opts,
        )
        aws.iam.RolePolicyAttachment(
            resource_name=f"{name}-execution",
            role=execution_role.name,
            policy_arn=EXECUTION_ROLE_POLICY_ARN,
            opts=child_opts,
        )
        if secret_arns:
            aws.iam.RolePolicy(
                resource_name=f"{name}-execution-secrets",
                role=execution_role.id,
                policy=pulumi.Output.all(*secret_arns).apply(secrets_read_policy),
                opts=child_opts,
            )

        task_role = aws.iam.Role(
            resource_name=f"{name}-task",
            assume_role_policy=assume_role_policy(),
            opts=child_opts,
        )
        for grant in service.grants:
            aws.iam.RolePolicy(
                resource_name=f"{name}-task-{grant.bucket}",
                role=task_role.id,
                policy=pulumi.Output.from_input(registry.get(grant.bucket, "arn")).apply(
                    lambda arn, actions=grant.actions: bucket_access_policy(arn, actions)
                ),
                opts=child_opts,
            )

        endpoint = service.endpoint
        lb_group = aws.ec2.SecurityGroup(
            resource_name=f"{name}-alb",
            vpc_id=vpc_id,
            description="Security group for the service load balancer",
            ingress=[
                aws.ec2.SecurityGroupIngressArgs(
                    protocol="tcp",
                    from_port=endpoint.listener_port,
                    to_port=endpoint.listener_port,
                    cidr_blocks=["0.0.0.0/0"],
                )
            ],
            egress=[
                aws.ec2.SecurityGroupEgressArgs(
                    protocol="-1", from_port=0, to_port=0, cidr_blocks=["0.0.0.0/0"]
                )
            ],
            opts=child_opts,
        )
        task_group_id = registry.get(service.network_identity, "id")
        aws.ec2.SecurityGroupRule(
            resource_name=f"{name}-alb-to-tasks",
            type="ingress",
            security_group_id=task_group_id,
            source_security_group_id=lb_group.id,
            protocol="tcp",
            from_port=endpoint.target_port,
            to_port=endpoint.target_port,
            opts=child_opts,
        )

        self.load_balancer = aws.lb.LoadBalancer(
            resource_name=alb_name,
            load_balancer_type="application",
            internal=not endpoint.public,
            security_groups=[lb_group.id],
            subnets=registry.get(cluster.network, "public_subnet_ids"),
            opts=child_opts,
        )
        target_group = aws.lb.TargetGroup(
            resource_name=short_name(f"{name}-tg"),
            port=endpoint.target_port,
            protocol="HTTP",
            target_type="ip",
            vpc_id=vpc_id,
            health_check=aws.lb.TargetGroupHealthCheckArgs(
                path=endpoint.health_check.path,
                protocol=endpoint.health_check.protocol,
            ),
            opts=child_opts,
        )
        listener = aws.lb.Listener(
            resource_name=f"{name}-https",
            load_balancer_arn=self.load_balancer.arn,
            port=endpoint.listener_port,
            protocol=endpoint.protocol,
            ssl_policy="ELBSecurityPolicy-TLS13-1-2-2021-06",
            certificate_arn=registry.get(endpoint.certificate, "arn"),
            default_actions=[
                aws.lb.ListenerDefaultActionArgs(
                    type="forward",
                    target_group_arn=target_group.arn,
                )
            ],
            opts=child_opts,
        )

        region = aws.get_region_output().name
        definitions = pulumi.Output.all(
            environment=pulumi.Output.all(**environment),
            secrets=pulumi.Output.all(**secret_refs),
            log_group=log_group.name,
            region=region,
        ).apply(
            lambda args: container_definitions(
                name=service.container_name,
                image=service.image,
                port=endpoint.target_port,
                environment=dict(args["environment"] or {}),
                secrets=dict(args["secrets"] or {}),
                log_group=args["log_group"],
                region=args["region"],
            )
        )
        task_definition = aws.ecs.TaskDefinition(
            resource_name=f"{name}-task",
            family=f"{name}-{service.name}",
            cpu=str(service.cpu),
            memory=str(service.memory),
            network_mode="awsvpc",
            requires_compatibilities=["FARGATE"],
            execution_role_arn=execution_role.arn,
            task_role_arn=task_role.arn,
            container_definitions=definitions,
            opts=child_opts,
        )

        self.service = aws.ecs.Service(
            resource_name=f"{name}-service",
            cluster=self.cluster.arn,
            task_definition=task_definition.arn,
            desired_count=service.desired_count,
            launch_type="FARGATE",
            health_check_grace_period_seconds=60,
            network_configuration=aws.ecs.ServiceNetworkConfigurationArgs(
                subnets=registry.get(cluster.network, "private_subnet_ids"),
                security_groups=[task_group_id],
                assign_public_ip=False,
            ),
            load_balancers=[
                aws.ecs.ServiceLoadBalancerArgs(
                    target_group_arn=target_group.arn,
                    container_name=service.container_name,
                    container_port=endpoint.target_port,
                )
            ],
            opts=pulumi.ResourceOptions(parent=self, depends_on=[listener]),
        )

        scaling_target = aws.appautoscaling.Target(
            resource_name=f"{name}-scaling",
            min_capacity=scaling.min_capacity,
            max_capacity=scaling.max_capacity,
            resource_id=pulumi.Output.all(self.cluster.name, self.service.name).apply(
                lambda names: scaling_resource_id(*names)
            ),
            scalable_dimension="ecs:service:DesiredCount",
            service_namespace="ecs",
            opts=child_opts,
        )
        label = pulumi.Output.all(
            self.load_balancer.arn_suffix, target_group.arn_suffix
        ).apply(lambda suffixes: request_count_label(*suffixes))
        for policy in scaling.policies:
            metric = PREDEFINED_METRICS[policy.metric]
            aws.appautoscaling.Policy(
                resource_name=f"{name}-{policy.name}",
                policy_type="TargetTrackingScaling",
                resource_id=scaling_target.resource_id,
                scalable_dimension=scaling_target.scalable_dimension,
                service_namespace=scaling_target.service_namespace,
                target_tracking_scaling_policy_configuration=aws.appautoscaling.PolicyTargetTrackingScalingPolicyConfigurationArgs(
                    target_value=policy.target_value,
                    predefined_metric_specification=aws.appautoscaling.PolicyTargetTrackingScalingPolicyConfigurationPredefinedMetricSpecificationArgs(
                        predefined_metric_type=metric,
                        resource_label=(
                            label if metric == "ALBRequestCountPerTarget" else None
                        ),
                    ),
                ),
                opts=child_opts,
            )

        registry.register(service.name, load_balancer_dns=self.load_balancer.dns_name)
        pulumi.log.info(
            f"{name}: {service.desired_count} task(s), scaling "
            f"[{scaling.min_capacity}, {scaling.max_capacity}] on "
            f"{', '.join(p.name for p in scaling.policies)}",
            resource=self,
        )

        self.load_balancer_dns: pulumi.Output[str] = self.load_balancer.dns_name
        self.bucket_name: pulumi.Output[str] = self.bucket.id
        self.register_outputs(
            {
                "load_balancer_dns": self.load_balancer_dns,
                "bucket_name": self.bucket_name,
            }
        )
