from aws_cdk import (
    Stack,
    Duration,
    CfnOutput,
    RemovalPolicy,
    aws_s3 as s3,
    aws_lambda as lambda_,
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.functions import python_function
from portfolio_infra.iam_policies import image_processing_role

TRANSFORM_PARAMS = ("w", "h", "q", "f", "fit", "auto")


class ImageOptimizationStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig,
                 source_bucket: s3.IBucket, **kwargs):
        super().__init__(scope, construct_id, **kwargs)
        env_name = config.environment

        # Processed images are a cache and can always be regenerated
        self.processed_bucket = s3.Bucket(self, "ProcessedImagesBucket",
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.RETAIN,
            lifecycle_rules=[s3.LifecycleRule(id="DeleteProcessedImages", expiration=Duration.days(30))],
        )

        layers = None
        if config.pillow_layer_arn:
            layers = [lambda_.LayerVersion.from_layer_version_arn(self, "PillowLayer", config.pillow_layer_arn)]

        self.image_function = python_function(self, "ImageOptimizationFunction", "image_optimization",
            role=image_processing_role(self, "ImageProcessingRole",
                                       source_bucket.bucket_arn, self.processed_bucket.bucket_arn),
            memory_size=1024,
            layers=layers,
            environment={
                "SOURCE_BUCKET": source_bucket.bucket_name,
                "PROCESSED_BUCKET": self.processed_bucket.bucket_name,
                "ENABLE_WEBP": "true",
                "ENABLE_AVIF": "true",
                "MAX_WIDTH": "2048",
                "MAX_HEIGHT": "2048",
                "QUALITY": "85",
            },
        )

        self.function_url = self.image_function.add_function_url(
            auth_type=lambda_.FunctionUrlAuthType.NONE,
            cors=lambda_.FunctionUrlCorsOptions(
                allow_credentials=False,
                allowed_headers=["*"],
                allowed_methods=[lambda_.HttpMethod.GET, lambda_.HttpMethod.HEAD],
                allowed_origins=["*"],
                max_age=Duration.days(1),
            ),
        )

        cache_policy = cloudfront.CachePolicy(self, "ImageCachePolicy",
            cache_policy_name=f"ImageOptimization-{env_name}",
            comment="Cache policy for optimized images",
            default_ttl=Duration.days(7),
            max_ttl=Duration.days(365),
            min_ttl=Duration.seconds(0),
            header_behavior=cloudfront.CacheHeaderBehavior.allow_list("Accept"),
            query_string_behavior=cloudfront.CacheQueryStringBehavior.allow_list(*TRANSFORM_PARAMS),
            enable_accept_encoding_gzip=True,
            enable_accept_encoding_brotli=True,
        )

        self.distribution = cloudfront.Distribution(self, "ImageDistribution",
            comment=f"Image optimization distribution - {env_name}",
            default_behavior=cloudfront.BehaviorOptions(
                origin=origins.FunctionUrlOrigin(self.function_url),
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.HTTPS_ONLY,
                cache_policy=cache_policy,
                compress=True,
                allowed_methods=cloudfront.AllowedMethods.ALLOW_GET_HEAD_OPTIONS,
            ),
            additional_behaviors={
                "/processed/*": cloudfront.BehaviorOptions(
                    origin=origins.S3BucketOrigin.with_origin_access_control(self.processed_bucket),
                    viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.HTTPS_ONLY,
                    cache_policy=cloudfront.CachePolicy.CACHING_OPTIMIZED,
                    compress=True,
                ),
            },
            price_class=cloudfront.PriceClass.PRICE_CLASS_100,
            enable_ipv6=True,
            http_version=cloudfront.HttpVersion.HTTP2_AND_3,
        )

        prefix = f"ImageOptimization-{env_name}"
        CfnOutput(self, "ImageDistributionDomain", value=self.distribution.distribution_domain_name,
                  description="Image optimization CloudFront domain", export_name=f"{prefix}-Domain")
        CfnOutput(self, "ImageFunctionUrl", value=self.function_url.url,
                  description="Image optimization function URL", export_name=f"{prefix}-FunctionUrl")
        CfnOutput(self, "ProcessedBucketName", value=self.processed_bucket.bucket_name,
                  description="Processed images S3 bucket", export_name=f"{prefix}-ProcessedBucket")
