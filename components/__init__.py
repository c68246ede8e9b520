"""
AWS realization of a composed resource graph.

Each tier is encapsulated in its own ComponentResource. Use from the Pulumi
entrypoint (``__main__.py``) in graph build order, passing one shared
``OutputRegistry`` so later tiers can resolve attribute references of earlier
ones:

- **NetworkInfra**: VPC, subnet tiers, NAT egress, every security group and
  its ingress rules.
- **DataTierInfra**: Aurora MySQL cluster and Redis replication group;
  registers their endpoints and the managed credential secret.
- **CertificateInfra**: ACM certificate with DNS validation in the zone.
- **ServiceInfra**: ECS Fargate service behind an HTTPS load balancer, with
  autoscaling, IAM roles and the bucket it may read and write.
- **EdgeInfra**: WAF web ACL, CloudFront distribution and Route53 aliases.
"""

from components.data import DataTierInfra
from components.edge import EdgeInfra
from components.network import NetworkInfra
from components.registry import OutputRegistry
from components.service import ServiceInfra
from components.tls import CertificateInfra

__all__ = [
    "CertificateInfra",
    "DataTierInfra",
    "EdgeInfra",
    "NetworkInfra",
    "OutputRegistry",
    "ServiceInfra",
]
