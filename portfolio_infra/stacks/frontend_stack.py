from aws_cdk import (
    Stack,
    RemovalPolicy,
    CfnOutput,
    aws_s3 as s3,
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
    aws_apigateway as apigateway,
    aws_certificatemanager as acm,
    aws_route53 as route53,
    aws_route53_targets as targets,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.iam_policies import cloudfront_oac_statements


class FrontendStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig,
                 api: apigateway.IRestApi, web_acl_arn: str = None, **kwargs):
        super().__init__(scope, construct_id, **kwargs)

        # Static site bucket (private, served through CloudFront only)
        self.site_bucket = s3.Bucket(self, "WebsiteBucket",
            versioned=True,
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            removal_policy=RemovalPolicy.RETAIN,
        )

        oac = cloudfront.CfnOriginAccessControl(self, "OAC",
            origin_access_control_config=cloudfront.CfnOriginAccessControl.OriginAccessControlConfigProperty(
                name=config.name("site-oac"),
                description="OAC for photographer portfolio",
                origin_access_control_origin_type="s3",
                signing_behavior="always",
                signing_protocol="sigv4",
            )
        )

        # Custom domain
        certificate = None
        domain_names = None
        zone = None
        if config.site_domain and config.hosted_zone_id:
            zone = route53.HostedZone.from_hosted_zone_attributes(self, "HostedZone",
                hosted_zone_id=config.hosted_zone_id,
                zone_name=config.domain,
            )
            certificate = acm.Certificate(self, "SiteCertificate",
                domain_name=config.site_domain,
                validation=acm.CertificateValidation.from_dns(zone),
            )
            domain_names = [config.site_domain]

        # Shared by the default and /images/* behaviors, so it is a single origin
        site_origin = origins.S3BucketOrigin.with_bucket_defaults(self.site_bucket)

        self.distribution = cloudfront.Distribution(self, "Distribution",
            default_behavior=cloudfront.BehaviorOptions(
                origin=site_origin,
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                cache_policy=cloudfront.CachePolicy.CACHING_OPTIMIZED,
                response_headers_policy=cloudfront.ResponseHeadersPolicy.SECURITY_HEADERS,
            ),
            additional_behaviors={
                "/api/*": cloudfront.BehaviorOptions(
                    origin=origins.RestApiOrigin(api),
                    viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.HTTPS_ONLY,
                    cache_policy=cloudfront.CachePolicy.CACHING_DISABLED,
                    allowed_methods=cloudfront.AllowedMethods.ALLOW_ALL,
                ),
                "/images/*": cloudfront.BehaviorOptions(
                    origin=site_origin,
                    viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.HTTPS_ONLY,
                    cache_policy=cloudfront.CachePolicy.CACHING_OPTIMIZED,
                    compress=True,
                ),
            },
            default_root_object="index.html",
            error_responses=[cloudfront.ErrorResponse(
                http_status=404,
                response_http_status=200,
                response_page_path="/index.html",
            )],
            domain_names=domain_names,
            certificate=certificate,
            web_acl_id=web_acl_arn,
        )

        # Attach the OAC to the S3 origin
        cfn_distribution = self.distribution.node.default_child
        cfn_distribution.add_property_override(
            "DistributionConfig.Origins.0.OriginAccessControlId", oac.attr_id
        )
        cfn_distribution.add_property_override(
            "DistributionConfig.Origins.0.S3OriginConfig.OriginAccessIdentity", ""
        )

        for statement in cloudfront_oac_statements(self, self.site_bucket.bucket_arn,
                                                   self.distribution.distribution_id):
            self.site_bucket.add_to_resource_policy(statement)

        if zone is not None:
            route53.ARecord(self, "SiteAliasRecord",
                zone=zone,
                record_name=config.site_domain,
                target=route53.RecordTarget.from_alias(targets.CloudFrontTarget(self.distribution)),
            )

        # Outputs for CI/CD
        CfnOutput(self, "DistributionDomainName", value=self.distribution.distribution_domain_name,
                  description="CloudFront distribution domain name")
        CfnOutput(self, "WebsiteBucketName", value=self.site_bucket.bucket_name,
                  description="S3 bucket for website hosting")
        CfnOutput(self, "DistributionId", value=self.distribution.distribution_id,
                  description="CloudFront distribution ID for invalidation")
