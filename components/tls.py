"""
AWS Certificate Manager certificate validated through Route53.

One certificate serves both the load balancer listener and the CloudFront
distribution. CloudFront only accepts certificates from us-east-1, so the
stack is expected to run there (``__main__`` warns otherwise).
"""

import pulumi
import pulumi_aws as aws

from composer.descriptors import TlsCertificate
from components.registry import OutputRegistry

ID: str = "composer:aws:CertificateInfra"


class CertificateInfra(pulumi.ComponentResource):
    """
    ACM certificate plus the DNS records that prove domain ownership.

    Resources: acm.Certificate, route53.Record (one per distinct validation
    name), acm.CertificateValidation.
    """

    def __init__(
        self,
        name: str,
        certificate: TlsCertificate,
        registry: OutputRegistry,
    ):
        """
        Request the certificate and wait for it to validate.

        Args:
            name: Pulumi resource name prefix.
            certificate: Certificate descriptor (domains and zone).
            registry: Receives ``arn`` of the validated certificate.
        """
        super().__init__(ID, name)

        child_opts = pulumi.ResourceOptions(parent=self)

        self.certificate = aws.acm.Certificate(
            resource_name=f"{name}-cert",
            domain_name=certificate.domain_name,
            subject_alternative_names=list(certificate.subject_alternative_names),
            validation_method=certificate.validation_method,
            opts=child_opts,
        )

        # The apex and its wildcard share one validation record.
        fqdns = []
        for index, domain in enumerate(certificate.validation_domains):
            option = self.certificate.domain_validation_options.apply(
                lambda options, d=domain: next(o for o in options if o.domain_name == d)
            )
            record = aws.route53.Record(
                resource_name=f"{name}-validation-{index}",
                zone_id=certificate.zone_id,
                name=option.apply(lambda o: o.resource_record_name),
                type=option.apply(lambda o: o.resource_record_type),
                records=[option.apply(lambda o: o.resource_record_value)],
                ttl=60,
                allow_overwrite=True,
                opts=child_opts,
            )
            fqdns.append(record.fqdn)

        # Issuance waits and timeouts are reported by the provider, not retried here.
        validation = aws.acm.CertificateValidation(
            resource_name=f"{name}-validation",
            certificate_arn=self.certificate.arn,
            validation_record_fqdns=fqdns,
            opts=child_opts,
        )
        registry.register(certificate.name, arn=validation.certificate_arn)

        self.certificate_arn: pulumi.Output[str] = validation.certificate_arn
        self.register_outputs({"certificate_arn": self.certificate_arn})
