import pytest
from aws_cdk import assertions

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.stacks.enhanced_waf_stack import EnhancedWAFStack
from portfolio_infra.stacks.frontend_stack import FrontendStack
from portfolio_infra.stacks.backend_stack import BackendStack
from portfolio_infra.stacks.image_optimization_stack import ImageOptimizationStack
from portfolio_infra.stacks.infrastructure_stack import InfrastructureStack
from portfolio_infra.stacks.seo_automation_stack import SEOAutomationStack
from tests.conftest import load_handler

Match = assertions.Match


class TestEnhancedWAFStack:

    @pytest.fixture
    def stack(self, app, env):
        config = DeploymentConfig(environment="production", domain="example.com",
                                  admin_allowed_ips=["203.0.113.10/32"])
        return EnhancedWAFStack(app, "TestWAF", config, env=env)

    @pytest.fixture
    def template(self, stack):
        return assertions.Template.from_stack(stack)

    def test_rule_priorities_are_unique_and_ordered(self, stack):
        priorities = [rule.priority for rule in stack.rules]
        assert priorities == [1, 2, 3, 5, 10, 15, 20, 25, 30, 35]

    def test_web_acl(self, template):
        template.has_resource_properties("AWS::WAFv2::WebACL", {
            "Name": "portfolio-waf-production",
            "Scope": "CLOUDFRONT",
            "DefaultAction": {"Allow": {}},
            "Rules": Match.array_with([
                Match.object_like({
                    "Name": "GeoBlockRule",
                    "Statement": {"GeoMatchStatement": {"CountryCodes": ["CN", "RU", "KP", "IR"]}},
                }),
                Match.object_like({"Name": "AdminPathProtection", "Priority": 15}),
                Match.object_like({
                    "Name": "APIRateLimit",
                    "Statement": {"RateBasedStatement": Match.object_like({"Limit": 500})},
                }),
            ]),
        })

    def test_admin_ip_set(self, template):
        template.has_resource_properties("AWS::WAFv2::IPSet", {
            "Name": "portfolio-admin-ips-production",
            "Addresses": ["203.0.113.10/32"],
            "IPAddressVersion": "IPV4",
        })

    def test_logging_uses_waf_log_group_and_redacts_headers(self, template):
        template.has_resource_properties("AWS::Logs::LogGroup", {
            "LogGroupName": "aws-waf-logs-portfolio-production",
            "RetentionInDays": 30,
        })
        template.has_resource_properties("AWS::WAFv2::LoggingConfiguration", {
            "RedactedFields": [
                {"SingleHeader": {"Name": "authorization"}},
                {"SingleHeader": {"Name": "cookie"}},
            ],
        })

    def test_alarms(self, template):
        template.has_resource_properties("AWS::CloudWatch::Alarm", {
            "AlarmName": "Portfolio-WAF-HighBlockedRequests-production",
            "Namespace": "AWS/WAFV2",
            "Threshold": 100,
            "EvaluationPeriods": 2,
        })
        template.has_resource_properties("AWS::CloudWatch::Alarm", {
            "AlarmName": "Portfolio-AdminAccess-production",
            "Threshold": 10,
        })

    def test_exports(self, template):
        template.has_output("WebACLArn", {"Export": {"Name": "Portfolio-WAF-ARN-production"}})
        template.has_output("WAFLogGroupName", {"Export": {"Name": "Portfolio-WAF-LogGroup-production"}})


def test_waf_placeholder_ip_without_allow_list(app, env):
    template = assertions.Template.from_stack(EnhancedWAFStack(app, "DefaultWAF", DeploymentConfig(), env=env))
    template.has_resource_properties("AWS::WAFv2::IPSet", {"Addresses": ["127.0.0.1/32"]})


class TestImageOptimizationStack:

    @pytest.fixture
    def template(self, app, config, env):
        infrastructure = InfrastructureStack(app, "ImgInfrastructure", config, env=env)
        stack = ImageOptimizationStack(app, "TestImages", config, infrastructure.bucket, env=env)
        return assertions.Template.from_stack(stack)

    def test_function_and_url(self, template):
        template.has_resource_properties("AWS::Lambda::Function", {
            "MemorySize": 1024,
            "Environment": {"Variables": Match.object_like({
                "ENABLE_WEBP": "true",
                "MAX_WIDTH": "2048",
                "QUALITY": "85",
            })},
        })
        template.has_resource_properties("AWS::Lambda::Url", {
            "AuthType": "NONE",
            "Cors": Match.object_like({"AllowMethods": ["GET", "HEAD"]}),
        })

    def test_processed_bucket_expires_objects(self, template):
        template.has_resource_properties("AWS::S3::Bucket", {
            "LifecycleConfiguration": {"Rules": [Match.object_like({"ExpirationInDays": 30})]},
        })

    def test_cache_policy_keys_on_transform_params(self, template):
        template.has_resource_properties("AWS::CloudFront::CachePolicy", {
            "CachePolicyConfig": Match.object_like({
                "Name": "ImageOptimization-staging",
                "ParametersInCacheKeyAndForwardedToOrigin": Match.object_like({
                    "HeadersConfig": {"HeaderBehavior": "whitelist", "Headers": ["Accept"]},
                    "QueryStringsConfig": {
                        "QueryStringBehavior": "whitelist",
                        "QueryStrings": ["w", "h", "q", "f", "fit", "auto"],
                    },
                }),
            }),
        })

    def test_distribution(self, template):
        template.has_resource_properties("AWS::CloudFront::Distribution", {
            "DistributionConfig": Match.object_like({
                "PriceClass": "PriceClass_100",
                "HttpVersion": "http2and3",
                "IPV6Enabled": True,
                "CacheBehaviors": [Match.object_like({"PathPattern": "/processed/*"})],
            }),
        })

    def test_processed_behavior_matches_handler_keys(self, template):
        images = load_handler("image_optimization")
        processed_key = images.cache_key("portfolio/a.jpg", images.parse_params({"w": "800"}), "webp")
        (distribution,) = template.find_resources("AWS::CloudFront::Distribution").values()
        (behavior,) = distribution["Properties"]["DistributionConfig"]["CacheBehaviors"]
        assert processed_key.startswith(behavior["PathPattern"].strip("/*") + "/")

    def test_no_pillow_layer_by_default(self, template):
        template.has_resource_properties("AWS::Lambda::Function", {
            "MemorySize": 1024,
            "Layers": Match.absent(),
        })


class TestSEOAutomationStack:

    @pytest.fixture
    def template(self, app, config, env):
        infrastructure = InfrastructureStack(app, "SeoInfrastructure", config, env=env)
        backend = BackendStack(app, "SeoBackend", config, infrastructure.table, infrastructure.bucket, env=env)
        frontend = FrontendStack(app, "SeoFrontend", config, backend.api, env=env)
        stack = SEOAutomationStack(app, "TestSEO", config, infrastructure.table, frontend.site_bucket, env=env)
        return assertions.Template.from_stack(stack)

    @pytest.mark.parametrize("handler, memory", [
        ("meta_generator.handler", 512),
        ("sitemap_generator.handler", 1024),
        ("robots_generator.handler", 256),
    ])
    def test_functions(self, template, handler, memory):
        template.has_resource_properties("AWS::Lambda::Function", {
            "Handler": handler,
            "MemorySize": memory,
        })

    def test_routes(self, template):
        for path in ("seo", "meta", "{proxy+}", "sitemap", "robots"):
            template.has_resource_properties("AWS::ApiGateway::Resource", {"PathPart": path})

    def test_daily_schedules(self, template):
        template.has_resource_properties("AWS::Events::Rule", {"ScheduleExpression": "cron(0 2 * * ? *)"})
        template.has_resource_properties("AWS::Events::Rule", {"ScheduleExpression": "cron(0 3 * * ? *)"})

    def test_error_alarms(self, template):
        template.resource_count_is("AWS::CloudWatch::Alarm", 2)

    def test_api_url_export(self, template):
        template.has_output("SEOApiUrl", {"Export": {"Name": "PhotographyPortfolio-staging-SEOApiUrl"}})
