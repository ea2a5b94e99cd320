"""Deployment context shared by every declaration unit."""

from dataclasses import dataclass

import aws_cdk as cdk
from constructs import Construct


@dataclass(frozen=True)
class DeploymentContext:
    """Account, region and partition the workshop is deployed into.

    Values may be CDK tokens when the stack is environment-agnostic; they are
    only ever interpolated into strings, which CDK resolves at synth time.
    """

    account: str
    region: str
    partition: str = "aws"

    @classmethod
    def of(cls, scope: Construct) -> "DeploymentContext":
        """Build the context from the stack that owns ``scope``."""
        stack = cdk.Stack.of(scope)
        return cls(account=stack.account, region=stack.region, partition=stack.partition)

    def arn(self, service: str, resource: str) -> str:
        return f"arn:{self.partition}:{service}:{self.region}:{self.account}:{resource}"

    def workgroup_arn(self, workgroup_name: str) -> str:
        return self.arn("athena", f"workgroup/{workgroup_name}")

    @property
    def console_login_url(self) -> str:
        return f"https://{self.account}.signin.aws.amazon.com/console"

    def secret_console_url(self, secret_name: str) -> str:
        return (
            "https://console.aws.amazon.com/secretsmanager/home"
            f"?region={self.region}#/secret?name={secret_name}"
        )
