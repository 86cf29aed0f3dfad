"""Stack wiring for each deployment phase and sandbox variant."""

import logging

import aws_cdk as cdk

from portfolio_infra.config import DeploymentConfig
from portfolio_infra.stacks.amplify_stack import AmplifyStack
from portfolio_infra.stacks.backend_stack import BackendStack
from portfolio_infra.stacks.backup_recovery_stack import BackupRecoveryStack
from portfolio_infra.stacks.cost_optimization_stack import CostOptimizationStack
from portfolio_infra.stacks.dev_stack import DevStack
from portfolio_infra.stacks.enhanced_dev_stack import EnhancedDevStack
from portfolio_infra.stacks.enhanced_waf_stack import EnhancedWAFStack
from portfolio_infra.stacks.frontend_stack import FrontendStack
from portfolio_infra.stacks.image_optimization_stack import ImageOptimizationStack
from portfolio_infra.stacks.infrastructure_stack import InfrastructureStack
from portfolio_infra.stacks.lean_testing_stack import LeanTestingStack
from portfolio_infra.stacks.monitoring_stack import MonitoringStack
from portfolio_infra.stacks.security_logging_stack import SecurityLoggingStack
from portfolio_infra.stacks.security_monitoring_stack import SecurityMonitoringStack
from portfolio_infra.stacks.seo_automation_stack import SEOAutomationStack

logger = logging.getLogger(__name__)

SANDBOXES = {
    "dev": ("PortfolioDevStack", DevStack),
    "enhanced": ("PortfolioEnhancedStack", EnhancedDevStack),
    "lean": ("PortfolioLeanTestingStack", LeanTestingStack),
}


def stack_id(name: str, config: DeploymentConfig) -> str:
    return f"PhotographyPortfolio{name}-{config.environment}"


def build_sandbox(app: cdk.App, config: DeploymentConfig, env: cdk.Environment) -> cdk.Stack:
    construct_id, stack_class = SANDBOXES[config.variant]
    logger.info("Creating sandbox stack %s", construct_id)
    return stack_class(app, construct_id, config, env=env)


def build_portfolio(app: cdk.App, config: DeploymentConfig, env: cdk.Environment) -> dict:
    """Instantiate every stack the configured phase includes, keyed by short name."""
    stacks = {}

    def add(name, stack_class, *args, **kwargs):
        logger.info("Creating %s", stack_id(name, config))
        stacks[name] = stack_class(app, stack_id(name, config), config, *args, env=env, **kwargs)
        return stacks[name]

    infrastructure = add("Infrastructure", InfrastructureStack)
    backend = add("Backend", BackendStack, infrastructure.table, infrastructure.bucket)

    if config.phase == "minimal":
        add("Frontend", FrontendStack, backend.api, web_acl_arn=infrastructure.web_acl.attr_arn)
        return stacks

    waf = add("EnhancedWAF", EnhancedWAFStack)
    frontend = add("Frontend", FrontendStack, backend.api, web_acl_arn=waf.web_acl.attr_arn)
    images = add("ImageOptimization", ImageOptimizationStack, infrastructure.bucket)
    seo = add("SEOAutomation", SEOAutomationStack, infrastructure.table, frontend.site_bucket)
    add("CostOptimization", CostOptimizationStack)

    if config.phase == "enhanced":
        return stacks

    add("Monitoring", MonitoringStack,
        api_function=backend.api_function,
        distribution_id=frontend.distribution.distribution_id,
        table_name=infrastructure.table.table_name,
        image_function=images.image_function,
        seo_function=seo.meta_function,
    )
    security = add("SecurityMonitoring", SecurityMonitoringStack,
        api_function=backend.api_function,
        distribution_id=frontend.distribution.distribution_id,
    )
    add("SecurityLogging", SecurityLoggingStack,
        alert_topic=security.alerts_topic,
        waf_log_group=waf.log_group,
    )
    add("BackupRecovery", BackupRecoveryStack, infrastructure.table, infrastructure.bucket)
    if config.repository_url:
        add("Amplify", AmplifyStack)
    else:
        logger.info("No repository_url in context, skipping Amplify hosting")
    return stacks


def tag_all(app: cdk.App, config: DeploymentConfig) -> None:
    tags = cdk.Tags.of(app)
    tags.add("Project", "PhotographyPortfolio")
    tags.add("Environment", config.environment)
    tags.add("ManagedBy", "CDK")
