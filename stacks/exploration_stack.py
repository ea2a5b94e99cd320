"""CDK stack for the Amazon Athena exploration workshop."""

from typing import Optional

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_athena as athena,
    aws_iam as iam,
    aws_s3 as s3,
    aws_secretsmanager as secretsmanager,
    CfnOutput,
    RemovalPolicy,
)

from stacks.config import WorkshopConfig
from stacks.context import DeploymentContext
from stacks.dependency_graph import DependencyGraph
from stacks.federation import FederationWorkshopResources
from stacks.named_queries import BASICS_QUERIES, NAMED_QUERY_DATABASE
from stacks.networking import WorkshopNetwork
from stacks.policies import policy_name, workgroup_user_statements
from stacks.workgroups import ExplorationWorkGroups

WORKSHOP_BUCKET_ID = "AthenaWorkShopBucket"
WORKGROUPS_ID = "WorkGroups"
NETWORK_ID = "WorkshopVPC"
FEDERATION_ID = "FederationResources"
PASSWORD_SECRET_ID = "LabsUserPassword"


class AthenaExplorationStack(cdk.Stack):
    """Workshop bucket, workgroups, named queries and lab users.

    The networking nested stack and the federation resources are composed in
    as well, so one ``cdk deploy`` provisions the whole workshop.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: Optional[WorkshopConfig] = None,
        **kwargs,
    ) -> None:
        """Initialise the exploration stack.

        Args:
            scope: The scope in which this stack is defined.
            construct_id: The scoped construct ID.
            config: Workshop configuration, read from CDK context when omitted.
            **kwargs: Additional stack properties.
        """
        super().__init__(scope, construct_id, **kwargs)

        self.config = config or WorkshopConfig.from_context(self.node)
        self.deployment = DeploymentContext.of(self)
        self.graph = DependencyGraph(construct_id)

        # Bucket for query results and lab data
        self.workshop_bucket = self.graph.declare(
            WORKSHOP_BUCKET_ID,
            s3.Bucket(
                self,
                WORKSHOP_BUCKET_ID,
                bucket_name=f"{self.config.bucket_prefix}-{self.deployment.account}",
                removal_policy=RemovalPolicy.DESTROY,
                auto_delete_objects=True,
            ),
        )

        self.network = self.graph.declare(
            NETWORK_ID,
            WorkshopNetwork(
                self,
                NETWORK_ID,
                deployment=self.deployment,
                config=self.config.network,
                parent_graph=self.graph,
            ),
        )

        self.workgroups = self.graph.declare(
            WORKGROUPS_ID,
            ExplorationWorkGroups(
                self,
                WORKGROUPS_ID,
                deployment=self.deployment,
                results_bucket_name=self.workshop_bucket.bucket_name,
                workgroups=self.config.workgroups,
                parent_graph=self.graph,
            ),
        )
        self.graph.depends_on(WORKGROUPS_ID, WORKSHOP_BUCKET_ID)

        self.federation = None
        if self.config.federation_enabled:
            self.federation = self.graph.declare(
                FEDERATION_ID,
                FederationWorkshopResources(
                    self,
                    FEDERATION_ID,
                    deployment=self.deployment,
                    network=self.network,
                    config=self.config.federation,
                    parent_graph=self.graph,
                ),
            )

        # Athena named queries
        self.named_queries = {}
        for query in BASICS_QUERIES:
            self.named_queries[query.table_name] = self.graph.declare(
                query.construct_id,
                athena.CfnNamedQuery(
                    self,
                    query.construct_id,
                    database=NAMED_QUERY_DATABASE,
                    description=query.description,
                    name=query.name,
                    query_string=query.query_string(self.workshop_bucket.bucket_name),
                ),
            )
            self.graph.depends_on(query.construct_id, WORKSHOP_BUCKET_ID)

        # Console password shared by the lab users
        self.labs_user_password = self.graph.declare(
            PASSWORD_SECRET_ID,
            secretsmanager.Secret(
                self,
                PASSWORD_SECRET_ID,
                description="Athena Workshop User Password",
                secret_name=self.config.password_secret_name,
                generate_secret_string=secretsmanager.SecretStringGenerator(
                    secret_string_template="{}",
                    generate_string_key="password",
                    password_length=self.config.password_length,
                ),
            ),
        )

        self.users = {}
        self.user_policies = {}
        for user_name, workgroup_name in self.config.user_workgroups:
            self._create_user(user_name, workgroup_name)

        self.graph.apply()

        # Stack outputs
        CfnOutput(
            self,
            "S3Bucket",
            value=self.workshop_bucket.bucket_name,
            description="S3 bucket",
        )

        CfnOutput(
            self,
            "ConsoleLogin",
            value=self.deployment.console_login_url,
            description="LoginUrl",
        )

        CfnOutput(
            self,
            "ConsolePassword",
            value=self.deployment.secret_console_url(self.config.password_secret_name),
            description="AWS Secrets URL to find the generated password for User A and User B",
        )

    def _create_user(self, user_name: str, workgroup_name: str) -> None:
        user = self.graph.declare(
            user_name,
            iam.User(
                self,
                user_name,
                user_name=user_name,
                password=self.labs_user_password.secret_value_from_json("password"),
                password_reset_required=False,
            ),
        )

        name = policy_name(workgroup_name)
        policy = self.graph.declare(
            name,
            iam.Policy(
                self,
                name,
                policy_name=name,
                statements=workgroup_user_statements(self.workgroups.arn(workgroup_name)),
            ),
        )
        policy.attach_to_user(user)
        self.graph.depends_on(name, WORKGROUPS_ID)

        self.users[user_name] = user
        self.user_policies[user_name] = policy
