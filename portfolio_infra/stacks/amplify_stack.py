from aws_cdk import (
    Stack,
    CfnOutput,
    SecretValue,
    aws_iam as iam,
    aws_ssm as ssm,
    aws_amplify as amplify,
)
from constructs import Construct

from portfolio_infra.config import DeploymentConfig

BUILD_SPEC = """version: 1
applications:
  - appRoot: frontend
    frontend:
      phases:
        preBuild:
          commands:
            - npm ci
        build:
          commands:
            - export DEPLOYMENT_TARGET=amplify
            - npm run build
      artifacts:
        baseDirectory: .next
        files:
          - '**/*'
      cache:
        paths:
          - node_modules/**/*
          - .next/cache/**/*
"""


def environment_variables(config: DeploymentConfig) -> dict:
    """Build-time variables for the Next.js frontend."""
    production = config.is_production
    return {
        "AMPLIFY_MONOREPO_APP_ROOT": "frontend",
        "AMPLIFY_DIFF_DEPLOY": "false",
        "NEXT_PUBLIC_ENVIRONMENT": config.environment,
        "DEPLOYMENT_TARGET": "amplify",
        "NEXT_PUBLIC_API_URL": config.api_url,
        "NEXT_PUBLIC_IMAGE_DOMAIN": config.image_url,
        "NEXT_PUBLIC_SITE_URL": config.site_url,
        "NEXT_PUBLIC_ENABLE_ANALYTICS": "true" if production else "false",
        "NEXT_PUBLIC_ENABLE_ADMIN": "false" if production else "true",
        "NEXT_PUBLIC_DEBUG": "false" if production else "true",
        "NEXT_PUBLIC_SITE_NAME": "Photography Portfolio",
        "NEXT_PUBLIC_SITE_DESCRIPTION": "Professional photography portfolio showcasing stunning visual stories",
    }


class AmplifyStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, config: DeploymentConfig, **kwargs):
        super().__init__(scope, construct_id, **kwargs)
        if not config.repository_url:
            raise ValueError("AmplifyStack requires a repository URL (-c repository_url=...)")
        env_name = config.environment

        role = iam.Role(self, "AmplifyRole",
            assumed_by=iam.ServicePrincipal("amplify.amazonaws.com"),
            managed_policies=[iam.ManagedPolicy.from_aws_managed_policy_name("AdministratorAccess-Amplify")],
        )

        self.app = amplify.CfnApp(self, "AmplifyApp",
            name=f"photography-portfolio-{env_name}",
            description=f"Photography portfolio website - {env_name} environment",
            repository=config.repository_url,
            access_token=SecretValue.secrets_manager(config.access_token_secret).unsafe_unwrap(),
            iam_service_role=role.role_arn,
            build_spec=BUILD_SPEC,
            platform="WEB_COMPUTE",
            environment_variables=[
                amplify.CfnApp.EnvironmentVariableProperty(name=name, value=value)
                for name, value in environment_variables(config).items()
            ],
            custom_rules=[amplify.CfnApp.CustomRuleProperty(source="/<*>", target="/index.html", status="404-200")],
        )

        self.branch_name = "main" if config.is_production else env_name
        amplify.CfnBranch(self, "AmplifyBranch",
            app_id=self.app.attr_app_id,
            branch_name=self.branch_name,
            description=f"{env_name} environment branch",
            enable_auto_build=True,
            enable_performance_mode=config.is_production,
            environment_variables=[
                amplify.CfnBranch.EnvironmentVariableProperty(name="NEXT_PUBLIC_ENVIRONMENT", value=env_name),
            ],
        )

        if config.domain:
            amplify.CfnDomain(self, "AmplifyDomain",
                app_id=self.app.attr_app_id,
                domain_name=config.domain,
                enable_auto_sub_domain=False,
                sub_domain_settings=[amplify.CfnDomain.SubDomainSettingProperty(
                    branch_name=self.branch_name,
                    prefix="" if config.is_production else env_name,
                )],
            )
            CfnOutput(self, "AmplifyDomainUrl", value=f"https://{config.site_domain}", description="Amplify app domain URL")

        ssm.StringParameter(self, "AmplifyAppIdParameter",
            parameter_name=f"/portfolio/{env_name}/amplify/app-id",
            string_value=self.app.attr_app_id,
            description="Amplify App ID",
        )

        prefix = f"PhotographyPortfolio-{env_name}"
        CfnOutput(self, "AmplifyAppId", value=self.app.attr_app_id, description="Amplify App ID",
                  export_name=f"{prefix}-AmplifyAppId")
        CfnOutput(self, "AmplifyAppUrl", value=f"https://{self.branch_name}.{self.app.attr_default_domain}",
                  description="Amplify app URL", export_name=f"{prefix}-AmplifyAppUrl")
        CfnOutput(self, "AmplifyConsoleUrl",
                  value=f"https://console.aws.amazon.com/amplify/home?region={self.region}#/{self.app.attr_app_id}",
                  description="Amplify console URL")
