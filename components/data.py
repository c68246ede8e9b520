"""
AWS data tier: Aurora MySQL cluster and Redis replication group.

Both live in the private subnets behind the security groups created for
their boundaries. The Aurora master password is generated and kept by RDS in
Secrets Manager (``manage_master_user_password``); only the secret's ARN is
registered, so the service can reference the username and password keys
without ever seeing them.
"""

import pulumi
import pulumi_aws as aws

from composer.descriptors import CacheCluster, RelationalCluster
from components.registry import OutputRegistry

ID: str = "composer:aws:DataTierInfra"

MASTER_USERNAME = "admin"


class DataTierInfra(pulumi.ComponentResource):
    """
    Aurora MySQL cluster (one writer, N readers) and a Redis replication group.

    Resources: rds.SubnetGroup, rds.Cluster, rds.ClusterInstance,
    elasticache.SubnetGroup, elasticache.ReplicationGroup.
    """

    def __init__(
        self,
        name: str,
        database: RelationalCluster,
        cache: CacheCluster,
        registry: OutputRegistry,
    ):
        """
        Create the database and cache clusters.

        Args:
            name: Pulumi resource name prefix.
            database: Relational cluster descriptor.
            cache: Cache cluster descriptor.
            registry: Must already hold the network and both boundaries.
                Receives ``endpoint`` and ``secret_arn`` for the database and
                ``endpoint`` for the cache.
        """
        super().__init__(ID, name)

        child_opts = pulumi.ResourceOptions(parent=self)

        db_subnets = aws.rds.SubnetGroup(
            resource_name=f"{name}-db",
            subnet_ids=registry.get(database.network, "private_subnet_ids"),
            opts=child_opts,
        )
        self.cluster = aws.rds.Cluster(
            resource_name=f"{name}-db",
            engine=database.engine,
            engine_version=database.engine_version,
            database_name=database.database_name,
            master_username=MASTER_USERNAME,
            manage_master_user_password=True,
            port=database.port,
            db_subnet_group_name=db_subnets.name,
            vpc_security_group_ids=[registry.get(database.security_boundary, "id")],
            storage_encrypted=True,
            final_snapshot_identifier=f"{name}-db-final",
            opts=child_opts,
        )

        # Writer first, so it gets the lowest promotion tier.
        for tier, instance in enumerate(database.instances):
            aws.rds.ClusterInstance(
                resource_name=f"{name}-db-{instance.name}",
                cluster_identifier=self.cluster.id,
                instance_class=instance.instance_class,
                engine=self.cluster.engine,
                engine_version=self.cluster.engine_version,
                db_subnet_group_name=db_subnets.name,
                promotion_tier=tier,
                opts=child_opts,
            )

        secret_arn = self.cluster.master_user_secrets.apply(
            lambda secrets: secrets[0].secret_arn
        )
        registry.register(
            database.name,
            endpoint=self.cluster.endpoint,
            secret_arn=secret_arn,
        )

        cache_subnets = aws.elasticache.SubnetGroup(
            resource_name=f"{name}-cache",
            subnet_ids=registry.get(cache.network, "private_subnet_ids"),
            opts=child_opts,
        )
        self.cache = aws.elasticache.ReplicationGroup(
            resource_name=f"{name}-cache",
            description=f"Redis cache for {name}",
            engine=cache.engine,
            engine_version=cache.engine_version,
            node_type=cache.node_type,
            num_cache_clusters=cache.node_count,
            automatic_failover_enabled=cache.node_count > 1,
            port=cache.port,
            subnet_group_name=cache_subnets.name,
            security_group_ids=[registry.get(cache.security_boundary, "id")],
            opts=child_opts,
        )
        registry.register(cache.name, endpoint=self.cache.primary_endpoint_address)

        pulumi.log.info(
            f"{name}: {database.engine} with {len(database.readers)} reader(s), "
            f"{cache.engine} with {cache.node_count} node(s)",
            resource=self,
        )

        self.database_endpoint: pulumi.Output[str] = self.cluster.endpoint
        self.cache_endpoint: pulumi.Output[str] = self.cache.primary_endpoint_address
        self.register_outputs(
            {
                "database_endpoint": self.database_endpoint,
                "cache_endpoint": self.cache_endpoint,
            }
        )
