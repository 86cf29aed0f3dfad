import os
from dataclasses import dataclass, field
from typing import List, Optional

import aws_cdk as cdk
from constructs import Node

ENVIRONMENTS = ("staging", "production")
PHASES = ("minimal", "enhanced", "enterprise")
VARIANTS = ("portfolio", "dev", "enhanced", "lean")

BUDGET_LIMITS = {
    "minimal": 20,
    "enhanced": 60,
    "enterprise": 120,
}
DEFAULT_BUDGET_LIMIT = 60


def budget_limit_for(phase: str) -> int:
    return BUDGET_LIMITS.get(phase, DEFAULT_BUDGET_LIMIT)


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _as_list(value) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return list(value)


@dataclass
class DeploymentConfig:
    environment: str = "staging"
    phase: str = "enhanced"
    variant: str = "portfolio"
    domain: Optional[str] = None
    hosted_zone_id: Optional[str] = None
    alert_email: Optional[str] = None
    admin_allowed_ips: List[str] = field(default_factory=list)
    backup_region: str = "us-west-2"
    slack_webhook_url: Optional[str] = None
    repository_url: Optional[str] = None
    access_token_secret: str = "portfolio/github-token"
    trusted_account_id: Optional[str] = None
    pillow_layer_arn: Optional[str] = None
    enable_nag: bool = False

    def __post_init__(self):
        if self.environment not in ENVIRONMENTS:
            raise ValueError(
                f"Invalid environment '{self.environment}', use one of: {', '.join(ENVIRONMENTS)}"
            )
        if self.phase not in PHASES:
            raise ValueError(
                f"Invalid phase '{self.phase}', use one of: {', '.join(PHASES)}"
            )
        if self.variant not in VARIANTS:
            raise ValueError(
                f"Invalid variant '{self.variant}', use one of: {', '.join(VARIANTS)}"
            )

    @classmethod
    def from_context(cls, node: Node) -> "DeploymentConfig":
        """Read deployment settings from CDK context (-c key=value)."""
        ctx = node.try_get_context
        return cls(
            environment=ctx("environment") or os.getenv("ENVIRONMENT") or "staging",
            phase=ctx("phase") or os.getenv("DEPLOYMENT_PHASE") or "enhanced",
            variant=ctx("variant") or "portfolio",
            domain=ctx("domain"),
            hosted_zone_id=ctx("hosted_zone_id") or ctx("hostedZoneId"),
            alert_email=ctx("alert_email"),
            admin_allowed_ips=_as_list(ctx("admin_allowed_ips")),
            backup_region=ctx("backup_region") or "us-west-2",
            slack_webhook_url=ctx("slack_webhook_url"),
            repository_url=ctx("repository_url"),
            access_token_secret=ctx("access_token_secret") or "portfolio/github-token",
            trusted_account_id=ctx("trusted_account_id"),
            pillow_layer_arn=ctx("pillow_layer_arn"),
            enable_nag=_as_bool(ctx("nag")),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def budget_limit(self) -> int:
        return budget_limit_for(self.phase)

    @property
    def site_domain(self) -> Optional[str]:
        if not self.domain:
            return None
        if self.is_production:
            return self.domain
        return f"{self.environment}.{self.domain}"

    @property
    def site_url(self) -> str:
        base = self.domain or "example.com"
        prefix = "" if self.is_production else f"{self.environment}."
        return f"https://{prefix}{base}"

    @property
    def image_url(self) -> str:
        base = self.domain or "example.com"
        suffix = "" if self.is_production else f"-{self.environment}"
        return f"https://images{suffix}.{base}"

    @property
    def api_url(self) -> str:
        base = self.domain or "example.com"
        suffix = "" if self.is_production else f"-{self.environment}"
        return f"https://api{suffix}.{base}"

    def name(self, prefix: str) -> str:
        return f"portfolio-{prefix}-{self.environment}"

    def check_backup_region(self, primary_region: Optional[str]) -> None:
        if primary_region and not cdk.Token.is_unresolved(primary_region) \
                and primary_region == self.backup_region:
            raise ValueError(
                f"Backup region must differ from primary region ({primary_region})"
            )


def aws_environment() -> cdk.Environment:
    return cdk.Environment(
        account=os.getenv('CDK_DEFAULT_ACCOUNT'),
        region=os.getenv('CDK_DEFAULT_REGION') or 'us-east-1'
    )
