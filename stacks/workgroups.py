"""Athena workgroups used by the exploration labs."""

from typing import Dict, Optional, Sequence

from constructs import Construct
from aws_cdk import (
    aws_athena as athena,
    CfnOutput,
)

from stacks.config import DEFAULT_WORKGROUPS, WorkgroupConfig
from stacks.context import DeploymentContext
from stacks.dependency_graph import DependencyGraph


class ExplorationWorkGroups(Construct):
    """Independent workgroups writing query results to the same bucket.

    Every workgroup is created with ``recursive_delete_option`` so that
    destroying the stack also drops its saved queries and query history.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        deployment: DeploymentContext,
        results_bucket_name: str,
        workgroups: Sequence[WorkgroupConfig] = DEFAULT_WORKGROUPS,
        parent_graph: Optional[DependencyGraph] = None,
    ) -> None:
        super().__init__(scope, construct_id)

        self.deployment = deployment
        self.graph = DependencyGraph(construct_id, parent=parent_graph)
        self.output_location = f"s3://{results_bucket_name}/"
        self.workgroups: Dict[str, athena.CfnWorkGroup] = {}

        for config in workgroups:
            workgroup = self.graph.declare(
                config.construct_id,
                athena.CfnWorkGroup(
                    self,
                    config.construct_id,
                    name=config.name,
                    recursive_delete_option=config.recursive_delete,
                    work_group_configuration=self._configuration(config),
                ),
            )
            self.workgroups[config.name] = workgroup
            CfnOutput(self, config.output_id, value=workgroup.ref)

        self.graph.apply()

    def _configuration(
        self, config: WorkgroupConfig
    ) -> athena.CfnWorkGroup.WorkGroupConfigurationProperty:
        engine_version = None
        if config.engine_version:
            engine_version = athena.CfnWorkGroup.EngineVersionProperty(
                selected_engine_version=config.engine_version
            )
        return athena.CfnWorkGroup.WorkGroupConfigurationProperty(
            enforce_work_group_configuration=config.enforce_configuration,
            engine_version=engine_version,
            publish_cloud_watch_metrics_enabled=config.publish_metrics,
            result_configuration=athena.CfnWorkGroup.ResultConfigurationProperty(
                output_location=self.output_location,
            ),
        )

    def __getitem__(self, name: str) -> athena.CfnWorkGroup:
        return self.workgroups[name]

    def arn(self, name: str) -> str:
        """ARN of the workgroup called ``name``."""
        return self.deployment.workgroup_arn(self.workgroups[name].name)
