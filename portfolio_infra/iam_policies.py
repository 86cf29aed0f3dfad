from aws_cdk import (
    Duration,
    Stack,
    aws_iam as iam,
)

BASIC_EXECUTION = "service-role/AWSLambdaBasicExecutionRole"


def lambda_role(scope: Stack, construct_id: str, statements: dict, description: str = None) -> iam.Role:
    """Lambda role with basic execution plus one inline policy per entry of ``statements``."""
    return iam.Role(scope, construct_id,
        assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
        description=description,
        managed_policies=[iam.ManagedPolicy.from_aws_managed_policy_name(BASIC_EXECUTION)],
        inline_policies={
            name: iam.PolicyDocument(statements=list(stmts))
            for name, stmts in statements.items()
        },
    )


def table_access(table_arn: str, actions: list) -> iam.PolicyStatement:
    return iam.PolicyStatement(
        actions=actions,
        resources=[table_arn, f"{table_arn}/index/*"],
    )


def objects_access(bucket_arn: str, actions: list) -> iam.PolicyStatement:
    return iam.PolicyStatement(actions=actions, resources=[f"{bucket_arn}/*"])


def admin_lambda_role(scope: Stack, construct_id: str, table_arn: str, bucket_arn: str, environment: str) -> iam.Role:
    """Admin API role: full item access and object management in the stack region."""
    region = {"StringEquals": {"aws:RequestedRegion": scope.region}}
    return lambda_role(scope, construct_id, {
        "DynamoDBFullAccess": [iam.PolicyStatement(
            sid="DynamoDBFullAccess",
            actions=["dynamodb:GetItem", "dynamodb:PutItem", "dynamodb:Query", "dynamodb:UpdateItem",
                     "dynamodb:DeleteItem", "dynamodb:BatchGetItem", "dynamodb:BatchWriteItem",
                     "dynamodb:Scan"],
            resources=[table_arn, f"{table_arn}/index/*"],
            conditions=region,
        )],
        "S3AdminAccess": [iam.PolicyStatement(
            sid="S3AdminAccess",
            actions=["s3:GetObject", "s3:PutObject", "s3:DeleteObject", "s3:GetObjectVersion",
                     "s3:ListBucket"],
            resources=[bucket_arn, f"{bucket_arn}/*"],
            conditions=region,
        )],
    }, description=f"Admin Lambda execution role - {environment}")


def cognito_admin_policy(user_pool_arn: str) -> iam.PolicyDocument:
    return iam.PolicyDocument(statements=[
        iam.PolicyStatement(
            sid="CognitoAdminAccess",
            actions=["cognito-idp:AdminGetUser", "cognito-idp:AdminListGroupsForUser",
                     "cognito-idp:AdminUpdateUserAttributes"],
            resources=[user_pool_arn],
        ),
    ])


def api_gateway_logging_role(scope: Stack, construct_id: str) -> iam.Role:
    """Account-level role API Gateway uses to push execution logs."""
    return iam.Role(scope, construct_id,
        assumed_by=iam.ServicePrincipal("apigateway.amazonaws.com"),
        description="API Gateway CloudWatch logging role",
        inline_policies={"CloudWatchLogs": iam.PolicyDocument(statements=[
            iam.PolicyStatement(
                actions=["logs:CreateLogGroup", "logs:CreateLogStream", "logs:DescribeLogGroups",
                         "logs:DescribeLogStreams", "logs:PutLogEvents", "logs:GetLogEvents",
                         "logs:FilterLogEvents"],
                resources=[f"arn:aws:logs:{scope.region}:{scope.account}:*"],
            ),
        ])},
    )


def dynamodb_resource_policy(table_arn: str, allowed_principal_arns: list,
                             leading_keys=("PROJECT", "CAROUSEL", "CONFIG")) -> iam.PolicyDocument:
    """Table resource policy limiting item access to known principals and key prefixes."""
    resources = [table_arn, f"{table_arn}/index/*"]
    return iam.PolicyDocument(statements=[
        iam.PolicyStatement(
            sid="AllowSpecificPrincipals",
            principals=[iam.ArnPrincipal(arn) for arn in allowed_principal_arns],
            actions=["dynamodb:GetItem", "dynamodb:Query", "dynamodb:PutItem", "dynamodb:UpdateItem"],
            resources=resources,
            conditions={"ForAllValues:StringEquals": {"dynamodb:LeadingKeys": list(leading_keys)}},
        ),
        iam.PolicyStatement(
            sid="DenyUnauthorizedAccess",
            effect=iam.Effect.DENY,
            principals=[iam.AnyPrincipal()],
            actions=["dynamodb:GetItem", "dynamodb:Query", "dynamodb:PutItem", "dynamodb:UpdateItem",
                     "dynamodb:DeleteItem", "dynamodb:Scan"],
            resources=resources,
            conditions={"StringNotEquals": {"aws:PrincipalArn": list(allowed_principal_arns)}},
        ),
    ])


def image_processing_role(scope: Stack, construct_id: str, source_bucket_arn: str, processed_bucket_arn: str) -> iam.Role:
    return lambda_role(scope, construct_id, {
        "S3Access": [
            objects_access(source_bucket_arn, ["s3:GetObject", "s3:GetObjectVersion"]),
            objects_access(processed_bucket_arn, ["s3:GetObject", "s3:PutObject"]),
            # Lets missing keys surface as 404 rather than 403
            iam.PolicyStatement(actions=["s3:ListBucket"],
                                resources=[source_bucket_arn, processed_bucket_arn]),
        ],
    }, description="Image processing Lambda execution role")


def cloudfront_oac_statements(scope: Stack, bucket_arn: str, distribution_id: str) -> list:
    """Allow reads from one distribution and deny every other principal."""
    source_arn = f"arn:aws:cloudfront::{scope.account}:distribution/{distribution_id}"
    return [
        iam.PolicyStatement(
            sid="AllowCloudFrontServicePrincipal",
            principals=[iam.ServicePrincipal("cloudfront.amazonaws.com")],
            actions=["s3:GetObject"],
            resources=[f"{bucket_arn}/*"],
            conditions={"StringEquals": {"AWS:SourceArn": source_arn}},
        ),
        iam.PolicyStatement(
            sid="DenyDirectAccess",
            effect=iam.Effect.DENY,
            principals=[iam.AnyPrincipal()],
            actions=["s3:GetObject"],
            resources=[f"{bucket_arn}/*"],
            conditions={"StringNotEquals": {"AWS:SourceArn": source_arn}},
        ),
    ]


def security_monitoring_role(scope: Stack, construct_id: str, topic_arn: str) -> iam.Role:
    return lambda_role(scope, construct_id, {
        "SecurityMonitoring": [
            iam.PolicyStatement(
                sid="CloudWatchMetrics",
                actions=["cloudwatch:PutMetricData"],
                resources=["*"],
                conditions={"StringEquals": {"cloudwatch:namespace": "Portfolio/Security"}},
            ),
            iam.PolicyStatement(sid="SNSPublish", actions=["sns:Publish"], resources=[topic_arn]),
        ],
    }, description="Security monitoring and alerting role")


def cross_account_deployment_role(scope: Stack, trusted_account_id: str, environment: str) -> iam.Role:
    """Role assumed by a CI/CD account to publish the site and Lambda code."""
    return iam.Role(scope, "CrossAccountDeploymentRole",
        assumed_by=iam.AccountPrincipal(trusted_account_id),
        description=f"Cross-account deployment role for {environment}",
        external_ids=[f"portfolio-deployment-{environment}"],
        max_session_duration=Duration.hours(1),
        inline_policies={"DeploymentAccess": iam.PolicyDocument(statements=[
            iam.PolicyStatement(
                sid="S3DeploymentAccess",
                actions=["s3:PutObject", "s3:DeleteObject", "s3:ListBucket"],
                resources=[f"arn:aws:s3:::portfolio-{environment}-*",
                           f"arn:aws:s3:::portfolio-{environment}-*/*"],
                conditions={"StringEquals": {"aws:RequestedRegion": scope.region}},
            ),
            iam.PolicyStatement(
                sid="CloudFrontInvalidation",
                actions=["cloudfront:CreateInvalidation", "cloudfront:GetInvalidation"],
                resources=[f"arn:aws:cloudfront::{scope.account}:distribution/*"],
            ),
            iam.PolicyStatement(
                sid="LambdaDeployment",
                actions=["lambda:UpdateFunctionCode", "lambda:UpdateFunctionConfiguration",
                         "lambda:PublishVersion"],
                resources=[f"arn:aws:lambda:{scope.region}:{scope.account}:function:portfolio-*"],
            ),
        ])},
    )
