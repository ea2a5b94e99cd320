#!/usr/bin/env python3
"""CDK app entry point for the Amazon Athena workshop."""

import os
import aws_cdk as cdk
from stacks.exploration_stack import AthenaExplorationStack


app = cdk.App()

stack_name = app.node.try_get_context("stack_name") or "AmazonAthenaExplorationStack"

# Instantiate the main stack
stack = AthenaExplorationStack(
    app,
    stack_name,
    env=cdk.Environment(
        account=os.getenv("CDK_DEFAULT_ACCOUNT"),
        region=os.getenv("CDK_DEFAULT_REGION", "us-east-1"),  # Default to us-east-1
    ),
    description="Amazon Athena Workshop - exploration and federated query labs",
)
cdk.Tags.of(stack).add("project", "athena-workshop")

app.synth()
