import json

import pytest
from aws_cdk import assertions

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.stacks.backend_stack import BackendStack
from portfolio_infra.stacks.frontend_stack import FrontendStack
from portfolio_infra.stacks.infrastructure_stack import InfrastructureStack

Match = assertions.Match


@pytest.fixture
def infrastructure(app, config, env):
    return InfrastructureStack(app, "TestInfrastructure", config, env=env)


@pytest.fixture
def backend(app, config, env, infrastructure):
    return BackendStack(app, "TestBackend", config, infrastructure.table, infrastructure.bucket, env=env)


class TestInfrastructureStack:

    @pytest.fixture
    def template(self, infrastructure):
        return assertions.Template.from_stack(infrastructure)

    def test_table_keys_and_indexes(self, template):
        template.has_resource_properties("AWS::DynamoDB::Table", {
            "KeySchema": [
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
            "PointInTimeRecoverySpecification": {"PointInTimeRecoveryEnabled": True},
            "DeletionProtectionEnabled": True,
            "GlobalSecondaryIndexes": [
                Match.object_like({"IndexName": "GSI1"}),
                Match.object_like({"IndexName": "GSI2"}),
            ],
        })

    def test_table_is_retained(self, template):
        template.has_resource("AWS::DynamoDB::Table", {
            "DeletionPolicy": "Retain",
            "UpdateReplacePolicy": "Retain",
        })

    def test_media_bucket_is_private_and_versioned(self, template):
        template.has_resource_properties("AWS::S3::Bucket", {
            "VersioningConfiguration": {"Status": "Enabled"},
            "PublicAccessBlockConfiguration": {
                "BlockPublicAcls": True,
                "BlockPublicPolicy": True,
                "IgnorePublicAcls": True,
                "RestrictPublicBuckets": True,
            },
        })

    def test_user_pool_requires_totp(self, template):
        template.has_resource_properties("AWS::Cognito::UserPool", {
            "MfaConfiguration": "ON",
            "EnabledMfas": ["SOFTWARE_TOKEN_MFA"],
            "Policies": {"PasswordPolicy": Match.object_like({"MinimumLength": 12})},
            "AdminCreateUserConfig": {"AllowAdminCreateUserOnly": True},
        })

    def test_user_pool_client_has_no_secret(self, template):
        template.has_resource_properties("AWS::Cognito::UserPoolClient", {
            "GenerateSecret": False,
            "PreventUserExistenceErrors": "ENABLED",
        })

    def test_web_acl_rules(self, template):
        template.has_resource_properties("AWS::WAFv2::WebACL", {
            "Scope": "CLOUDFRONT",
            "Rules": [
                Match.object_like({"Name": "AWSManagedRulesCommonRuleSet", "Priority": 1}),
                Match.object_like({
                    "Name": "RateLimitRule",
                    "Priority": 2,
                    "Statement": {"RateBasedStatement": {"Limit": 2000, "AggregateKeyType": "IP"}},
                }),
                Match.object_like({"Name": "AWSManagedRulesKnownBadInputsRuleSet", "Priority": 3}),
            ],
        })

    def test_billing_alarm_notifies_topic(self, template):
        template.has_resource_properties("AWS::CloudWatch::Alarm", {
            "AlarmName": "Portfolio-MonthlyBilling-staging",
            "Namespace": "AWS/Billing",
            "Threshold": 50,
            "AlarmActions": Match.any_value(),
        })

    def test_ssm_parameters(self, template):
        template.resource_count_is("AWS::SSM::Parameter", 5)
        template.has_resource_properties("AWS::SSM::Parameter", {
            "Name": "/portfolio/staging/dynamodb/table-name",
        })

    def test_no_cross_account_role_by_default(self, template):
        roles = template.find_resources("AWS::IAM::Role")
        assert not any("sts:ExternalId" in json.dumps(role) for role in roles.values())

    def test_outputs(self, template):
        for output in ("TableName", "BucketName", "UserPoolId", "UserPoolClientId", "WebAclArn"):
            template.has_output(output, {})


def test_cross_account_role(app, env):
    config = DeploymentConfig(trusted_account_id="210987654321")
    template = assertions.Template.from_stack(InfrastructureStack(app, "WithTrust", config, env=env))
    template.has_resource_properties("AWS::IAM::Role", {
        "MaxSessionDuration": 3600,
        "AssumeRolePolicyDocument": {
            "Statement": [Match.object_like({
                "Condition": {"StringEquals": {"sts:ExternalId": "portfolio-deployment-staging"}},
            })],
        },
    })


class TestBackendStack:

    @pytest.fixture
    def template(self, backend):
        return assertions.Template.from_stack(backend)

    def test_api_function(self, template):
        template.has_resource_properties("AWS::Lambda::Function", {
            "Handler": "index.handler",
            "Runtime": "python3.12",
            "MemorySize": 512,
            "Environment": {"Variables": Match.object_like({"ENVIRONMENT": "staging"})},
        })
        template.has_resource_properties("AWS::Lambda::Function", {
            "MemorySize": 1024,
            "Timeout": 60,
        })

    def test_rest_api_routes(self, template):
        template.has_resource_properties("AWS::ApiGateway::RestApi", {
            "Name": "Photography Portfolio API",
        })
        for path in ("api", "projects", "{id}", "carousel", "health", "images"):
            template.has_resource_properties("AWS::ApiGateway::Resource", {"PathPart": path})
        template.has_resource_properties("AWS::ApiGateway::Method", {"HttpMethod": "POST"})

    def test_api_gateway_account_is_not_managed_here(self, template):
        template.resource_count_is("AWS::ApiGateway::Account", 0)

    def test_usage_alarms(self, template):
        template.has_resource_properties("AWS::CloudWatch::Alarm", {
            "AlarmName": "Portfolio-DynamoDB-HighUsage",
            "Threshold": 1000,
        })
        template.has_resource_properties("AWS::CloudWatch::Alarm", {
            "AlarmName": "Portfolio-Lambda-HighInvocations",
            "Threshold": 10000,
        })

    def test_role_scoped_to_table_and_bucket(self, template):
        template.has_resource_properties("AWS::IAM::Role", {
            "Policies": Match.array_with([
                Match.object_like({"PolicyName": "DynamoDBAccess"}),
                Match.object_like({"PolicyName": "S3Access"}),
            ]),
        })


class TestFrontendStack:

    @pytest.fixture
    def frontend(self, app, config, env, backend, infrastructure):
        return FrontendStack(app, "TestFrontend", config, backend.api,
                             web_acl_arn=infrastructure.web_acl.attr_arn, env=env)

    @pytest.fixture
    def template(self, frontend):
        return assertions.Template.from_stack(frontend)

    def test_distribution_behaviors(self, template):
        template.has_resource_properties("AWS::CloudFront::Distribution", {
            "DistributionConfig": Match.object_like({
                "DefaultRootObject": "index.html",
                "WebACLId": Match.any_value(),
                "CacheBehaviors": Match.array_with([
                    Match.object_like({"PathPattern": "/api/*"}),
                    Match.object_like({"PathPattern": "/images/*"}),
                ]),
                "CustomErrorResponses": [{
                    "ErrorCode": 404,
                    "ResponseCode": 200,
                    "ResponsePagePath": "/index.html",
                }],
            }),
        })

    def test_origin_access_control(self, template):
        template.has_resource_properties("AWS::CloudFront::OriginAccessControl", {
            "OriginAccessControlConfig": Match.object_like({
                "Name": "portfolio-site-oac-staging",
                "SigningBehavior": "always",
            }),
        })

    def test_bucket_policy_denies_other_readers(self, template):
        template.has_resource_properties("AWS::S3::BucketPolicy", {
            "PolicyDocument": {
                "Statement": Match.array_with([
                    Match.object_like({"Sid": "AllowCloudFrontServicePrincipal", "Effect": "Allow"}),
                    Match.object_like({"Sid": "DenyDirectAccess", "Effect": "Deny", "Action": "s3:GetObject"}),
                ]),
            },
        })

    def test_no_custom_domain_without_zone(self, template):
        template.resource_count_is("AWS::Route53::RecordSet", 0)
        template.resource_count_is("AWS::CertificateManager::Certificate", 0)


def test_frontend_custom_domain(app, production_config, env):
    infrastructure = InfrastructureStack(app, "ProdInfrastructure", production_config, env=env)
    backend = BackendStack(app, "ProdBackend", production_config, infrastructure.table,
                           infrastructure.bucket, env=env)
    template = assertions.Template.from_stack(
        FrontendStack(app, "ProdFrontend", production_config, backend.api, env=env))
    template.has_resource_properties("AWS::CertificateManager::Certificate", {"DomainName": "example.com"})
    template.has_resource_properties("AWS::Route53::RecordSet", {"Name": "example.com.", "Type": "A"})
    template.has_resource_properties("AWS::CloudFront::Distribution", {
        "DistributionConfig": Match.object_like({"Aliases": ["example.com"]}),
    })
