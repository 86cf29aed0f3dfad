"""
Pytest configuration and fixtures for the portfolio infrastructure tests.
"""

import importlib.util
import os
from unittest.mock import MagicMock

import aws_cdk as cdk
import pytest
from botocore.exceptions import ClientError

# Handlers create boto3 clients at import time
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from portfolio_infra.config import DeploymentConfig  # noqa: E402

LAMBDAS_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "portfolio_infra", "lambdas")
TEST_ENV = cdk.Environment(account="123456789012", region="us-east-1")


def load_handler(name, module="index"):
    """Import portfolio_infra/lambdas/<name>/<module>.py under a unique module name."""
    path = os.path.join(LAMBDAS_DIR, name, f"{module}.py")
    spec = importlib.util.spec_from_file_location(f"handler_{name}_{module}", path)
    loaded = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(loaded)
    return loaded


def client_error(code, operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": f"{code} raised"}}, operation)


@pytest.fixture
def app():
    return cdk.App()


@pytest.fixture
def env():
    return TEST_ENV


@pytest.fixture
def config():
    return DeploymentConfig(environment="staging", phase="enterprise", alert_email="ops@example.com")


@pytest.fixture
def production_config():
    return DeploymentConfig(environment="production", phase="enterprise", domain="example.com",
                            hosted_zone_id="Z123456ABCDEFG", alert_email="ops@example.com")


@pytest.fixture
def mock_s3_client():
    client = MagicMock()
    client.put_object = MagicMock(return_value={})
    client.get_object = MagicMock(return_value={"Body": MagicMock(read=lambda: b"data")})
    return client


@pytest.fixture
def mock_dynamodb_table():
    table = MagicMock()
    table.query = MagicMock(return_value={"Items": []})
    table.put_item = MagicMock(return_value={})
    return table


@pytest.fixture
def mock_dynamodb_resource(mock_dynamodb_table):
    resource = MagicMock()
    resource.Table = MagicMock(return_value=mock_dynamodb_table)
    return resource


@pytest.fixture
def mock_sns_client():
    client = MagicMock()
    client.publish = MagicMock(return_value={"MessageId": "msg-1"})
    return client
