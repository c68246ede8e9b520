"""
AWS edge: WAFv2 web ACL, CloudFront distribution and Route53 alias records.

The distribution fronts the service's load balancer. Origin requests go over
HTTPS only, even though the load balancer would also accept HTTP, and viewers
are redirected to HTTPS. The web ACL is attached by ARN; its managed rule
groups are evaluated in priority order and each publishes its own CloudWatch
metric. Alias A records point every bound name at the distribution.
"""

import pulumi
import pulumi_aws as aws

from composer.descriptors import DnsRecord, EdgeDistribution, WebFirewallPolicy
from components.registry import OutputRegistry

ID: str = "composer:aws:EdgeInfra"


def _visibility(metric_name: str) -> dict:
    return {
        "cloudwatch_metrics_enabled": True,
        "metric_name": metric_name,
        "sampled_requests_enabled": True,
    }


class EdgeInfra(pulumi.ComponentResource):
    """
    Web ACL + CloudFront distribution + DNS aliases.

    Resources: wafv2.WebAcl, cloudfront.Distribution, route53.Record.
    """

    def __init__(
        self,
        name: str,
        firewall: WebFirewallPolicy,
        distribution: EdgeDistribution,
        records: list[DnsRecord],
        registry: OutputRegistry,
    ):
        """
        Create the web ACL, the distribution and the alias records.

        Args:
            name: Pulumi resource name prefix.
            firewall: Firewall policy descriptor.
            distribution: Distribution descriptor; its origin, certificate and
                policy must already be realized.
            records: Alias records pointing at the distribution.
            registry: Receives ``arn`` for the policy and ``domain_name`` /
                ``hosted_zone_id`` for the distribution.

        Outputs (set on self, registered for the component):
            distribution_domain_name: CloudFront FQDN.
            url: HTTPS URL of the first bound domain.
        """
        super().__init__(ID, name)

        child_opts = pulumi.ResourceOptions(parent=self)

        rules = [
            aws.wafv2.WebAclRuleArgs(
                name=rule.name,
                priority=rule.priority,
                override_action=aws.wafv2.WebAclRuleOverrideActionArgs(
                    none=aws.wafv2.WebAclRuleOverrideActionNoneArgs(),
                ),
                statement=aws.wafv2.WebAclRuleStatementArgs(
                    managed_rule_group_statement=aws.wafv2.WebAclRuleStatementManagedRuleGroupStatementArgs(
                        name=rule.name,
                        vendor_name=rule.vendor,
                    ),
                ),
                visibility_config=aws.wafv2.WebAclRuleVisibilityConfigArgs(
                    **_visibility(rule.metric_name)
                ),
            )
            for rule in firewall.rules
        ]
        default_action = aws.wafv2.WebAclDefaultActionArgs(
            allow=aws.wafv2.WebAclDefaultActionAllowArgs()
            if firewall.default_action == "allow"
            else None,
            block=aws.wafv2.WebAclDefaultActionBlockArgs()
            if firewall.default_action == "block"
            else None,
        )
        self.web_acl = aws.wafv2.WebAcl(
            resource_name=f"{name}-{firewall.name}",
            scope=firewall.scope,
            default_action=default_action,
            rules=rules,
            visibility_config=aws.wafv2.WebAclVisibilityConfigArgs(
                **_visibility(firewall.metric_name)
            ),
            opts=child_opts,
        )
        registry.register(firewall.name, arn=self.web_acl.arn)

        origin_id = f"{distribution.origin}-origin"
        origins = [
            aws.cloudfront.DistributionOriginArgs(
                domain_name=registry.resolve(distribution.origin_hostname),
                origin_id=origin_id,
                custom_origin_config=aws.cloudfront.DistributionOriginCustomOriginConfigArgs(
                    http_port=distribution.origin_http_port,
                    https_port=distribution.origin_https_port,
                    origin_protocol_policy=distribution.origin_protocol_policy,
                    origin_ssl_protocols=["TLSv1.2"],
                ),
            )
        ]

        # ForwardedValues is required by the API when not using a cache policy.
        forwarded_values = aws.cloudfront.DistributionDefaultCacheBehaviorForwardedValuesArgs(
            query_string=True,
            headers=["Host"],
            cookies=aws.cloudfront.DistributionDefaultCacheBehaviorForwardedValuesCookiesArgs(
                forward="all",
            ),
        )
        default_cache_behavior = aws.cloudfront.DistributionDefaultCacheBehaviorArgs(
            target_origin_id=origin_id,
            viewer_protocol_policy=distribution.viewer_protocol_policy,
            allowed_methods=list(distribution.allowed_methods),
            cached_methods=list(distribution.cached_methods),
            compress=True,
            forwarded_values=forwarded_values,
        )
        restrictions = aws.cloudfront.DistributionRestrictionsArgs(
            geo_restriction=aws.cloudfront.DistributionRestrictionsGeoRestrictionArgs(
                restriction_type="none",
            ),
        )
        viewer_certificate = aws.cloudfront.DistributionViewerCertificateArgs(
            acm_certificate_arn=registry.get(distribution.certificate, "arn"),
            ssl_support_method="sni-only",
            minimum_protocol_version="TLSv1.2_2021",
        )

        self.distribution = aws.cloudfront.Distribution(
            resource_name=f"{name}-cdn",
            enabled=True,
            aliases=list(distribution.domain_names),
            origins=origins,
            default_cache_behavior=default_cache_behavior,
            restrictions=restrictions,
            viewer_certificate=viewer_certificate,
            web_acl_id=registry.get(distribution.firewall_policy, "arn"),
            opts=child_opts,
        )
        registry.register(
            distribution.name,
            domain_name=self.distribution.domain_name,
            hosted_zone_id=self.distribution.hosted_zone_id,
        )

        for record in records:
            aws.route53.Record(
                resource_name=f"{name}-{record.name}",
                zone_id=record.zone_id,
                name=record.record_name,
                type=record.record_type,
                aliases=[
                    aws.route53.RecordAliasArgs(
                        name=registry.resolve(record.alias_target),
                        zone_id=registry.resolve(record.alias_zone_id),
                        evaluate_target_health=False,
                    )
                ],
                opts=child_opts,
            )
        pulumi.log.info(
            f"{name}: {len(firewall.rules)} managed rule groups, "
            f"{len(records)} alias record(s) for {', '.join(distribution.domain_names)}",
            resource=self,
        )

        self.distribution_domain_name: pulumi.Output[str] = self.distribution.domain_name
        self.url: pulumi.Output[str] = pulumi.Output.concat(
            "https://", distribution.domain_names[0]
        )
        self.register_outputs(
            {
                "distribution_domain_name": self.distribution_domain_name,
                "url": self.url,
            }
        )
