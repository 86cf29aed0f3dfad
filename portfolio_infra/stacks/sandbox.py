"""Pieces shared by the single-stack sandbox environments."""

from aws_cdk import (
    Stack,
    CfnOutput,
    RemovalPolicy,
    aws_s3 as s3,
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
    aws_apigateway as apigateway,
    aws_certificatemanager as acm,
    aws_route53 as route53,
    aws_route53_targets as targets,
)

CORS_HEADERS = '''CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
}
'''


def throwaway_bucket(scope: Stack, construct_id: str, bucket_name: str, **kwargs) -> s3.Bucket:
    return s3.Bucket(scope, construct_id,
        bucket_name=bucket_name,
        block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
        enforce_ssl=True,
        removal_policy=RemovalPolicy.DESTROY,
        auto_delete_objects=True,
        **kwargs
    )


def zone_name(domain: str) -> str:
    return ".".join(domain.split(".")[-2:])


def site_distribution(scope: Stack, construct_id: str, bucket: s3.IBucket, api: apigateway.IRestApi,
                      comment: str, domain: str = None, hosted_zone_id: str = None,
                      web_acl_id: str = None) -> cloudfront.Distribution:
    """Bucket-backed distribution with /api/* routed to the REST API and an optional alias."""
    zone = certificate = None
    if domain and hosted_zone_id:
        zone = route53.HostedZone.from_hosted_zone_attributes(scope, "HostedZone",
            hosted_zone_id=hosted_zone_id,
            zone_name=zone_name(domain),
        )
        certificate = acm.Certificate(scope, "Certificate",
            domain_name=domain,
            validation=acm.CertificateValidation.from_dns(zone),
        )

    distribution = cloudfront.Distribution(scope, construct_id,
        comment=comment,
        default_behavior=cloudfront.BehaviorOptions(
            origin=origins.S3BucketOrigin.with_origin_access_control(bucket),
            viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
            cache_policy=cloudfront.CachePolicy.CACHING_OPTIMIZED,
            compress=True,
        ),
        additional_behaviors={
            "/api/*": cloudfront.BehaviorOptions(
                origin=origins.RestApiOrigin(api),
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.HTTPS_ONLY,
                cache_policy=cloudfront.CachePolicy.CACHING_DISABLED,
                allowed_methods=cloudfront.AllowedMethods.ALLOW_ALL,
            ),
        },
        domain_names=[domain] if certificate else None,
        certificate=certificate,
        web_acl_id=web_acl_id,
        price_class=cloudfront.PriceClass.PRICE_CLASS_100,
        minimum_protocol_version=cloudfront.SecurityPolicyProtocol.TLS_V1_2_2021,
    )

    if zone is not None:
        route53.ARecord(scope, "AliasRecord",
            zone=zone,
            record_name=domain,
            target=route53.RecordTarget.from_alias(targets.CloudFrontTarget(distribution)),
        )
        CfnOutput(scope, "WebsiteUrl", value=f"https://{domain}", description="Website URL")
    return distribution
