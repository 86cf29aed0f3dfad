import aws_cdk as cdk
import pytest

from portfolio_infra.config import DeploymentConfig, aws_environment, budget_limit_for


def context_app(**context):
    return cdk.App(context=context)


class TestDeploymentConfig:

    def test_defaults_from_empty_context(self):
        config = DeploymentConfig.from_context(context_app().node)
        assert config.environment == "staging"
        assert config.phase == "enhanced"
        assert config.variant == "portfolio"
        assert config.backup_region == "us-west-2"
        assert config.enable_nag is False

    def test_reads_context_values(self):
        config = DeploymentConfig.from_context(context_app(
            environment="production",
            phase="minimal",
            domain="example.com",
            hostedZoneId="Z123",
            admin_allowed_ips="1.2.3.4/32, 5.6.7.8/32",
            nag="true",
        ).node)
        assert config.environment == "production"
        assert config.phase == "minimal"
        assert config.hosted_zone_id == "Z123"
        assert config.admin_allowed_ips == ["1.2.3.4/32", "5.6.7.8/32"]
        assert config.enable_nag is True

    @pytest.mark.parametrize("field, value", [
        ("environment", "qa"),
        ("phase", "platinum"),
        ("variant", "huge"),
    ])
    def test_rejects_unknown_values(self, field, value):
        with pytest.raises(ValueError):
            DeploymentConfig(**{field: value})

    def test_budget_limits_by_phase(self):
        assert DeploymentConfig(phase="minimal").budget_limit == 20
        assert DeploymentConfig(phase="enhanced").budget_limit == 60
        assert DeploymentConfig(phase="enterprise").budget_limit == 120
        assert budget_limit_for("unknown") == 60

    def test_production_urls_use_apex_domain(self):
        config = DeploymentConfig(environment="production", domain="example.com")
        assert config.site_domain == "example.com"
        assert config.site_url == "https://example.com"
        assert config.image_url == "https://images.example.com"
        assert config.api_url == "https://api.example.com"

    def test_staging_urls_are_prefixed(self):
        config = DeploymentConfig(environment="staging", domain="example.com")
        assert config.site_domain == "staging.example.com"
        assert config.site_url == "https://staging.example.com"
        assert config.image_url == "https://images-staging.example.com"

    def test_no_domain(self):
        config = DeploymentConfig()
        assert config.site_domain is None
        assert config.site_url == "https://staging.example.com"

    def test_name_helper(self):
        assert DeploymentConfig(environment="production").name("site-oac") == "portfolio-site-oac-production"

    def test_backup_region_must_differ(self):
        config = DeploymentConfig(backup_region="us-east-1")
        with pytest.raises(ValueError):
            config.check_backup_region("us-east-1")
        config.check_backup_region("eu-west-1")
        config.check_backup_region(cdk.Aws.REGION)


def test_aws_environment_reads_cdk_defaults(monkeypatch):
    monkeypatch.setenv("CDK_DEFAULT_ACCOUNT", "111111111111")
    monkeypatch.delenv("CDK_DEFAULT_REGION", raising=False)
    env = aws_environment()
    assert env.account == "111111111111"
    assert env.region == "us-east-1"
