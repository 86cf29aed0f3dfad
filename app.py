#!/usr/bin/env python3
import logging

import aws_cdk as cdk
from cdk_nag import AwsSolutionsChecks

from portfolio_infra.config import DeploymentConfig, aws_environment
from portfolio_infra.deployment import build_portfolio, build_sandbox, tag_all

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("portfolio")

app = cdk.App()

# Environment
config = DeploymentConfig.from_context(app.node)
env = aws_environment()
logger.info("Synthesizing variant=%s phase=%s environment=%s",
            config.variant, config.phase, config.environment)

# Stacks
if config.variant == "portfolio":
    build_portfolio(app, config, env)
else:
    build_sandbox(app, config, env)

tag_all(app, config)
if config.enable_nag:
    cdk.Aspects.of(app).add(AwsSolutionsChecks(verbose=True))

app.synth()
