import os

from aws_cdk import (
    Duration,
    aws_lambda as lambda_,
)
from constructs import Construct

LAMBDAS_DIR = os.path.join(os.path.dirname(__file__), "lambdas")
RUNTIME = lambda_.Runtime.PYTHON_3_12


def asset_code(name: str) -> lambda_.Code:
    """Code for a handler package under portfolio_infra/lambdas/<name>."""
    path = os.path.join(LAMBDAS_DIR, name)
    if not os.path.isdir(path):
        raise FileNotFoundError(f"Lambda source directory not found: {path}")
    return lambda_.Code.from_asset(path, exclude=["__pycache__", "*.pyc"])


def python_function(scope: Construct, construct_id: str, name: str, handler: str = "index.handler",
                    timeout: Duration = None, **kwargs) -> lambda_.Function:
    return lambda_.Function(scope, construct_id,
        runtime=RUNTIME,
        handler=handler,
        code=asset_code(name),
        timeout=timeout or Duration.seconds(30),
        **kwargs
    )


def inline_function(scope: Construct, construct_id: str, source: str,
                    timeout: Duration = None, **kwargs) -> lambda_.Function:
    return lambda_.Function(scope, construct_id,
        runtime=RUNTIME,
        handler="index.handler",
        code=lambda_.Code.from_inline(source),
        timeout=timeout or Duration.seconds(30),
        **kwargs
    )
