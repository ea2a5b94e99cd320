"""IAM policy bundles for the workshop users."""

from typing import List

from aws_cdk import aws_iam as iam

# Read and catalog actions every workshop user needs
GENERAL_ACTIONS = [
    "s3:Put*",
    "s3:Get*",
    "s3:List*",
    "glue:*",
    "cloudwatch:*",
    "athena:ListNamedQueries",
    "athena:ListWorkGroups",
    "athena:GetExecutionEngine",
    "athena:GetExecutionEngines",
    "athena:GetNamespace",
    "athena:GetCatalogs",
    "athena:GetNamespaces",
    "athena:GetTables",
    "athena:GetTable",
]

QUERY_ACTIONS = [
    "athena:StartQueryExecution",
    "athena:GetQueryResults",
    "athena:DeleteNamedQuery",
    "athena:GetNamedQuery",
    "athena:ListQueryExecutions",
    "athena:StopQueryExecution",
    "athena:GetQueryResultsStream",
    "athena:ListNamedQueries",
    "athena:CreateNamedQuery",
    "athena:GetQueryExecution",
    "athena:BatchGetNamedQuery",
    "athena:BatchGetQueryExecution",
]

WORKGROUP_LIFECYCLE_ACTIONS = [
    "athena:DeleteWorkGroup",
    "athena:UpdateWorkGroup",
    "athena:GetWorkGroup",
    "athena:CreateWorkGroup",
]


def policy_name(workgroup_name: str) -> str:
    """Name of the policy scoped to ``workgroup_name``, e.g. ``Athena-WorkgroupA-Policy``."""
    suffix = workgroup_name[0].upper() + workgroup_name[1:]
    return f"Athena-{suffix}-Policy"


def workgroup_user_statements(workgroup_arn: str) -> List[iam.PolicyStatement]:
    """Statements letting a user run queries in a single workgroup.

    Only the general read/catalog statement uses a wildcard resource; the
    query and lifecycle statements are restricted to the one workgroup ARN.
    """
    return [
        iam.PolicyStatement(
            effect=iam.Effect.ALLOW,
            actions=list(GENERAL_ACTIONS),
            resources=["*"],
        ),
        iam.PolicyStatement(
            effect=iam.Effect.ALLOW,
            actions=list(QUERY_ACTIONS),
            resources=[workgroup_arn],
        ),
        iam.PolicyStatement(
            effect=iam.Effect.ALLOW,
            actions=list(WORKGROUP_LIFECYCLE_ACTIONS),
            resources=[workgroup_arn],
        ),
    ]
