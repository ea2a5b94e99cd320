#!/usr/bin/env python3
"""Print the console login details of a deployed Athena workshop."""

import json
import os
import sys
from typing import Dict, List

import boto3
from botocore.exceptions import ClientError

# Colors for terminal output
GREEN = "\033[0;32m"
BLUE = "\033[0;34m"
YELLOW = "\033[1;33m"
CYAN = "\033[0;36m"
RED = "\033[0;31m"
BOLD = "\033[1m"
NC = "\033[0m"  # No Color

DEFAULT_STACK_NAME = "AmazonAthenaExplorationStack"
PASSWORD_SECRET_NAME = "/athenaworkshopuser/password"
WORKSHOP_USERS = ["userA", "userB"]


def get_region() -> str:
    return os.environ.get("AWS_REGION") or os.environ.get("CDK_DEFAULT_REGION", "us-east-1")


def get_cloudformation_client():
    """Create CloudFormation client for the workshop region."""
    return boto3.client("cloudformation", region_name=get_region())


def get_secretsmanager_client():
    """Create Secrets Manager client for the workshop region."""
    return boto3.client("secretsmanager", region_name=get_region())


def get_stack_outputs(stack_name: str) -> Dict[str, str]:
    """Return the top level outputs of ``stack_name`` keyed by output name."""
    response = get_cloudformation_client().describe_stacks(StackName=stack_name)
    stacks = response.get("Stacks", [])
    if not stacks:
        return {}
    return {
        output["OutputKey"]: output["OutputValue"]
        for output in stacks[0].get("Outputs", [])
    }


def get_workshop_password(secret_name: str = PASSWORD_SECRET_NAME) -> str:
    """Read the generated console password of the workshop users."""
    response = get_secretsmanager_client().get_secret_value(SecretId=secret_name)
    return json.loads(response["SecretString"])["password"]


def print_login_details(outputs: Dict[str, str], users: List[str], password: str):
    """Print login URL, users and password."""
    print(f"{BOLD}{CYAN}{'=' * 80}{NC}")
    print(f"{BOLD}{BLUE} Athena Workshop Login{NC}")
    print(f"{BOLD}{CYAN}{'=' * 80}{NC}\n")

    print(f"  Console:  {GREEN}{outputs.get('ConsoleLogin', 'n/a')}{NC}")
    print(f"  Bucket:   {outputs.get('S3Bucket', 'n/a')}")
    print(f"  Users:    {', '.join(users)}")
    print(f"  Password: {YELLOW}{password}{NC}\n")

    secret_url = outputs.get("ConsolePassword")
    if secret_url:
        print(f"{BLUE}Password is also available at:{NC} {secret_url}\n")


def main():
    """Main entry point."""
    stack_name = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_STACK_NAME

    print(f"{BLUE} Looking up stack {stack_name} in {get_region()}...{NC}\n")

    try:
        outputs = get_stack_outputs(stack_name)
        password = get_workshop_password()
    except ClientError as e:
        print(f"{RED}[ERROR] {e.response['Error']['Code']}: {e.response['Error'].get('Message', '')}{NC}")
        print(f"\n{BLUE}Troubleshooting:{NC}")
        print("  - Is the stack deployed? (cdk deploy)")
        print("  - Are AWS credentials configured? (aws sts get-caller-identity)")
        print("  - Is AWS_REGION set to the workshop region?")
        sys.exit(1)

    if not outputs:
        print(f"{YELLOW}[WARN]  Stack {stack_name} has no outputs{NC}")
        sys.exit(1)

    print_login_details(outputs, WORKSHOP_USERS, password)


if __name__ == "__main__":
    main()
