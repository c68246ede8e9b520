"""
AWS networking: VPC, subnet tiers, NAT egress and security groups.

This component realizes the ``NetworkTopology`` and every ``SecurityBoundary``
of a sealed graph. Public subnets route to an internet gateway; each private
subnet routes to the NAT gateway chosen by the topology, or nowhere when the
topology declares none. Security groups keep the default allow-all egress of
their boundary. Ingress rules are created only after every group exists,
since a rule's source is another group.
"""

import pulumi
import pulumi_aws as aws

from composer.descriptors import NetworkTopology, SecurityBoundary, SubnetTier
from components.registry import OutputRegistry

ID: str = "composer:aws:NetworkInfra"

ALLOW_ALL_EGRESS = aws.ec2.SecurityGroupEgressArgs(
    protocol="-1",
    from_port=0,
    to_port=0,
    cidr_blocks=["0.0.0.0/0"],
)


class NetworkInfra(pulumi.ComponentResource):
    """
    VPC with public and private subnets per zone plus one security group per
    boundary.

    Resources: Vpc, InternetGateway, Subnet, RouteTable, RouteTableAssociation,
    Eip, NatGateway, SecurityGroup, SecurityGroupRule.
    """

    def __init__(
        self,
        name: str,
        topology: NetworkTopology,
        boundaries: list[SecurityBoundary],
        registry: OutputRegistry,
    ):
        """
        Create the network and its security groups.

        Args:
            name: Pulumi resource name prefix.
            topology: Network descriptor (address space, subnets, NAT count).
            boundaries: Every security boundary of the graph, rules final.
            registry: Receives ``vpc_id``, ``public_subnet_ids`` and
                ``private_subnet_ids`` for the topology and ``id`` for each
                boundary.
        """
        super().__init__(ID, name)

        child_opts = pulumi.ResourceOptions(parent=self)

        self.vpc = aws.ec2.Vpc(
            resource_name=f"{name}-vpc",
            cidr_block=topology.cidr,
            enable_dns_hostnames=True,
            enable_dns_support=True,
            opts=child_opts,
        )
        igw = aws.ec2.InternetGateway(
            resource_name=f"{name}-igw",
            vpc_id=self.vpc.id,
            opts=child_opts,
        )
        zones = aws.get_availability_zones_output(state="available")

        subnets: dict[str, aws.ec2.Subnet] = {}
        for subnet in topology.subnets:
            subnets[subnet.name] = aws.ec2.Subnet(
                resource_name=f"{name}-{subnet.name}",
                vpc_id=self.vpc.id,
                cidr_block=subnet.cidr,
                availability_zone=zones.names.apply(
                    lambda names, i=subnet.zone_index: names[i]
                ),
                map_public_ip_on_launch=subnet.tier is SubnetTier.PUBLIC,
                tags={"Name": f"{name}-{subnet.name}", "tier": subnet.tier.value},
                opts=child_opts,
            )

        public_table = aws.ec2.RouteTable(
            resource_name=f"{name}-public",
            vpc_id=self.vpc.id,
            routes=[
                aws.ec2.RouteTableRouteArgs(cidr_block="0.0.0.0/0", gateway_id=igw.id)
            ],
            opts=child_opts,
        )

        # NAT gateways sit in the public subnets of the first zones.
        public = topology.subnets_in(SubnetTier.PUBLIC)
        nat_gateways = []
        for index in range(topology.nat_gateways):
            eip = aws.ec2.Eip(
                resource_name=f"{name}-nat-{index}",
                domain="vpc",
                opts=child_opts,
            )
            nat_gateways.append(
                aws.ec2.NatGateway(
                    resource_name=f"{name}-nat-{index}",
                    allocation_id=eip.id,
                    subnet_id=subnets[public[index].name].id,
                    opts=pulumi.ResourceOptions(parent=self, depends_on=[igw]),
                )
            )

        for subnet in topology.subnets:
            if subnet.tier is SubnetTier.PUBLIC:
                table = public_table
            else:
                gateway = topology.egress_gateway_for(subnet)
                routes = []
                if gateway is not None:
                    routes.append(
                        aws.ec2.RouteTableRouteArgs(
                            cidr_block="0.0.0.0/0",
                            nat_gateway_id=nat_gateways[gateway].id,
                        )
                    )
                table = aws.ec2.RouteTable(
                    resource_name=f"{name}-{subnet.name}",
                    vpc_id=self.vpc.id,
                    routes=routes,
                    opts=child_opts,
                )
            aws.ec2.RouteTableAssociation(
                resource_name=f"{name}-{subnet.name}",
                subnet_id=subnets[subnet.name].id,
                route_table_id=table.id,
                opts=child_opts,
            )

        registry.register(
            topology.name,
            vpc_id=self.vpc.id,
            public_subnet_ids=[subnets[s.name].id for s in public],
            private_subnet_ids=[
                subnets[s.name].id for s in topology.subnets_in(SubnetTier.PRIVATE)
            ],
        )

        groups: dict[str, aws.ec2.SecurityGroup] = {}
        for boundary in boundaries:
            groups[boundary.name] = aws.ec2.SecurityGroup(
                resource_name=f"{name}-{boundary.name}",
                vpc_id=self.vpc.id,
                description=boundary.description,
                egress=[ALLOW_ALL_EGRESS] if boundary.allow_all_egress else [],
                opts=child_opts,
            )
            registry.register(boundary.name, id=groups[boundary.name].id)

        for boundary in boundaries:
            for rule in boundary.rules:
                aws.ec2.SecurityGroupRule(
                    resource_name=f"{name}-{boundary.name}-from-{rule.source}-{rule.port}",
                    type="ingress",
                    security_group_id=groups[boundary.name].id,
                    source_security_group_id=groups[rule.source].id,
                    protocol=rule.protocol,
                    from_port=rule.port,
                    to_port=rule.port,
                    description=f"Granted by {rule.granted_by}",
                    opts=child_opts,
                )
        pulumi.log.info(
            f"{name}: {len(topology.subnets)} subnets, {topology.nat_gateways} NAT "
            f"gateway(s), {len(groups)} security groups",
            resource=self,
        )

        self.vpc_id: pulumi.Output[str] = self.vpc.id
        self.register_outputs({"vpc_id": self.vpc_id})
