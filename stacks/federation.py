"""Data sources and connectors for the Athena federated query labs."""

import json
from typing import List, Optional

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_athena as athena,
    aws_dynamodb as dynamodb,
    aws_ec2 as ec2,
    aws_elasticache as elasticache,
    aws_emr as emr,
    aws_glue as glue,
    aws_rds as rds,
    aws_s3 as s3,
    aws_sam as sam,
    aws_secretsmanager as secretsmanager,
    CfnOutput,
    RemovalPolicy,
)

from stacks.config import (
    ATHENA_ENGINE_V3,
    ConnectorConfig,
    FederationConfig,
    FleetConfig,
)
from stacks.context import DeploymentContext
from stacks.dependency_graph import DependencyGraph
from stacks.networking import WorkshopNetwork


class FederationWorkshopResources(Construct):
    """Aurora, DynamoDB, Redis and HBase sources plus their Athena connectors.

    A text analytics UDF handler is deployed alongside the connectors for the
    user defined function lab.

    The data sources and connectors are placed in the workshop VPC. Aurora, Redis and the MySQL
    connector use the workshop security group, EMR and the Redis connector
    use the EMR security group.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        deployment: DeploymentContext,
        network: WorkshopNetwork,
        config: Optional[FederationConfig] = None,
        parent_graph: Optional[DependencyGraph] = None,
    ) -> None:
        """Initialise the federation resources.

        Args:
            scope: The scope in which these resources are defined.
            construct_id: The scoped construct ID.
            deployment: Account and region the workshop is deployed into.
            network: Workshop VPC and security groups.
            config: Resource settings, defaults to ``FederationConfig()``.
            parent_graph: Dependency graph of the enclosing unit.
        """
        super().__init__(scope, construct_id)

        self.deployment = deployment
        self.network = network
        self.config = config or FederationConfig()
        self.graph = DependencyGraph(construct_id, parent=parent_graph)

        self._create_spill_bucket()
        self._create_workgroup()
        self._create_aurora_cluster()
        self._create_tables()
        self._create_cache_cluster()
        self._create_emr_cluster()
        self._create_glue_database()
        self._create_udf_handler()
        self._create_connectors()

        self.graph.apply()

        CfnOutput(self, "S3BucketName", value=self.s3_bucket.bucket_name)
        CfnOutput(self, "V3WorkGroup", value=self.workgroup.ref)
        CfnOutput(
            self,
            "AuroraClusterEndpoint",
            value=self.aurora_cluster.cluster_endpoint.socket_address,
            description="Writer endpoint of the Aurora MySQL cluster",
        )

    @property
    def subnet_ids(self) -> List[str]:
        return self.network.public_subnet_ids

    def _create_spill_bucket(self) -> None:
        self.s3_bucket = self.graph.declare(
            "S3Bucket",
            s3.Bucket(
                self,
                "S3Bucket",
                bucket_name=f"{self.config.bucket_prefix}-{self.deployment.account}",
                removal_policy=RemovalPolicy.DESTROY,
                auto_delete_objects=True,
                access_control=s3.BucketAccessControl.BUCKET_OWNER_FULL_CONTROL,
            ),
        )

    def _create_workgroup(self) -> None:
        self.workgroup = self.graph.declare(
            "V3EngineWorkGroup",
            athena.CfnWorkGroup(
                self,
                "V3EngineWorkGroup",
                name=self.config.workgroup_name,
                recursive_delete_option=True,
                work_group_configuration=athena.CfnWorkGroup.WorkGroupConfigurationProperty(
                    enforce_work_group_configuration=True,
                    engine_version=athena.CfnWorkGroup.EngineVersionProperty(
                        selected_engine_version=ATHENA_ENGINE_V3
                    ),
                    publish_cloud_watch_metrics_enabled=True,
                    result_configuration=athena.CfnWorkGroup.ResultConfigurationProperty(
                        output_location=f"s3://{self.s3_bucket.bucket_name}/"
                    ),
                ),
            ),
        )
        self.graph.depends_on("V3EngineWorkGroup", "S3Bucket")

    def _create_aurora_cluster(self) -> None:
        db = self.config.database
        engine = rds.DatabaseClusterEngine.aurora_mysql(
            version=rds.AuroraMysqlEngineVersion.VER_3_07_1
        )

        self.aurora_secret = self.graph.declare(
            "AuroraUserPassword",
            secretsmanager.Secret(
                self,
                "AuroraUserPassword",
                description="Athena Workshop User Password",
                secret_name=db.secret_name,
                generate_secret_string=secretsmanager.SecretStringGenerator(
                    secret_string_template=json.dumps({"username": db.username}),
                    generate_string_key="password",
                    password_length=db.password_length,
                    exclude_characters=db.exclude_characters,
                ),
            ),
        )

        instance_parameter_group = self.graph.declare(
            "DBParameterGroup",
            rds.ParameterGroup(
                self,
                "DBParameterGroup",
                description="Workshop Aurora instance parameter group",
                engine=engine,
                parameters={"max_connections": str(db.max_connections)},
            ),
        )
        self.graph.declare(
            "DBClusterParameterGroup",
            rds.ParameterGroup(
                self,
                "DBClusterParameterGroup",
                description="Workshop Aurora cluster parameter group",
                engine=engine,
                parameters={
                    "time_zone": db.time_zone,
                    "binlog_format": db.binlog_format,
                    "binlog_checksum": db.binlog_checksum,
                },
            ),
        )
        self.graph.declare(
            "DBSubnetGroup",
            rds.SubnetGroup(
                self,
                "DBSubnetGroup",
                vpc=self.network.vpc,
                description="Workshop Aurora subnet group",
                vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
            ),
        )

        self.aurora_cluster = self.graph.declare(
            "AuroraCluster",
            rds.DatabaseCluster(
                self,
                "AuroraCluster",
                engine=engine,
                writer=rds.ClusterInstance.provisioned(
                    "writer",
                    publicly_accessible=False,
                    instance_type=ec2.InstanceType.of(
                        ec2.InstanceClass.R7G, ec2.InstanceSize.LARGE
                    ),
                    instance_identifier=db.database_name,
                    parameter_group=instance_parameter_group,
                ),
                credentials=rds.Credentials.from_secret(self.aurora_secret),
                default_database_name=db.database_name,
                vpc=self.network.vpc,
                subnet_group=self.graph.resolve("DBSubnetGroup"),
                parameter_group=self.graph.resolve("DBClusterParameterGroup"),
                security_groups=[self.network.workshop_security_group],
            ),
        )
        self.graph.depends_on(
            "AuroraCluster", "DBClusterParameterGroup", "DBParameterGroup", "DBSubnetGroup"
        )

    def _create_tables(self) -> None:
        self.tables = {}
        for table in self.config.tables:
            sort_key = None
            if table.sort_key:
                sort_key = dynamodb.Attribute(
                    name=table.sort_key, type=dynamodb.AttributeType.NUMBER
                )
            self.tables[table.table_name] = self.graph.declare(
                table.construct_id,
                dynamodb.Table(
                    self,
                    table.construct_id,
                    table_name=table.table_name,
                    partition_key=dynamodb.Attribute(
                        name=table.partition_key, type=dynamodb.AttributeType.NUMBER
                    ),
                    sort_key=sort_key,
                    billing_mode=dynamodb.BillingMode.PROVISIONED,
                    read_capacity=table.read_capacity,
                    write_capacity=table.write_capacity,
                    removal_policy=RemovalPolicy.DESTROY,
                ),
            )

    def _create_cache_cluster(self) -> None:
        cache = self.config.cache

        cache_subnet_group = self.graph.declare(
            "CacheSubnetGroup",
            elasticache.CfnSubnetGroup(
                self,
                "CacheSubnetGroup",
                description="Cache subnet group",
                subnet_ids=self.subnet_ids,
            ),
        )
        self.cache_cluster = self.graph.declare(
            "ElasticacheCluster",
            elasticache.CfnCacheCluster(
                self,
                "ElasticacheCluster",
                engine=cache.engine,
                cache_node_type=cache.node_type,
                num_cache_nodes=cache.num_nodes,
                cache_subnet_group_name=cache_subnet_group.ref,
                vpc_security_group_ids=[
                    self.network.workshop_security_group.security_group_id
                ],
            ),
        )
        self.graph.depends_on("ElasticacheCluster", "CacheSubnetGroup")

    def _create_emr_cluster(self) -> None:
        emr_config = self.config.emr
        emr_group_id = self.network.emr_security_group.security_group_id

        self.emr_cluster = self.graph.declare(
            "EMRCluster",
            emr.CfnCluster(
                self,
                "EMRCluster",
                name=emr_config.name,
                release_label=emr_config.release_label,
                instances=emr.CfnCluster.JobFlowInstancesConfigProperty(
                    master_instance_fleet=_instance_fleet(emr_config.master_fleet),
                    core_instance_fleet=_instance_fleet(emr_config.core_fleet),
                    termination_protected=False,
                    ec2_subnet_ids=self.subnet_ids,
                    additional_master_security_groups=[emr_group_id],
                    additional_slave_security_groups=[emr_group_id],
                ),
                job_flow_role=emr_config.job_flow_role,
                service_role=emr_config.service_role,
                visible_to_all_users=True,
                applications=[
                    emr.CfnCluster.ApplicationProperty(name=name)
                    for name in emr_config.applications
                ],
                log_uri=f"s3://{self.s3_bucket.bucket_name}/{emr_config.log_prefix}",
            ),
        )
        self.graph.depends_on("EMRCluster", "S3Bucket")

    def _create_glue_database(self) -> None:
        name = self.config.glue_database_name
        self.glue_database = self.graph.declare(
            "GlueDatabaseRedis",
            glue.CfnDatabase(
                self,
                "GlueDatabaseRedis",
                catalog_id=self.deployment.account,
                database_input=glue.CfnDatabase.DatabaseInputProperty(
                    name=name,
                    description=f"Database to hold tables for {name} data",
                    location_uri="s3://fake-bucket?redis-db-flag=redis-db-flag",
                ),
            ),
        )

    def _create_udf_handler(self) -> None:
        udf = self.config.udf_handler
        self.udf_handler = self.graph.declare(
            udf.construct_id,
            sam.CfnApplication(
                self,
                udf.construct_id,
                location=sam.CfnApplication.ApplicationLocationProperty(
                    application_id=udf.application_id,
                    semantic_version=udf.semantic_version,
                ),
            ),
        )

    def _create_connectors(self) -> None:
        subnet_ids = cdk.Fn.join(",", self.subnet_ids)

        redis = self.config.redis_connector
        self.redis_connector = self._connector(
            redis,
            {
                "SecretNameOrPrefix": "redis",
                "AthenaCatalogName": "redis",
                "SecurityGroupIds": self.network.emr_security_group.security_group_id,
                "SubnetIds": subnet_ids,
            },
        )

        mysql = self.config.mysql_connector
        db = self.config.database
        connection_string = cdk.Fn.join(
            "",
            [
                "mysql://jdbc:mysql://",
                self.aurora_cluster.cluster_endpoint.socket_address,
                f"/{db.database_name}?${{{db.secret_name}}}",
            ],
        )
        self.mysql_connector = self._connector(
            mysql,
            {
                "LambdaFunctionName": "mysql",
                "DefaultConnectionString": connection_string,
                "SecretNamePrefix": db.secret_name,
                "SecurityGroupIds": self.network.workshop_security_group.security_group_id,
                "SubnetIds": subnet_ids,
            },
        )
        self.graph.depends_on(mysql.construct_id, "AuroraCluster", "AuroraUserPassword")

    def _connector(self, connector: ConnectorConfig, parameters: dict) -> sam.CfnApplication:
        application = self.graph.declare(
            connector.construct_id,
            sam.CfnApplication(
                self,
                connector.construct_id,
                location=sam.CfnApplication.ApplicationLocationProperty(
                    application_id=connector.application_id,
                    semantic_version=connector.semantic_version,
                ),
                parameters={
                    **parameters,
                    "SpillBucket": self.s3_bucket.bucket_name,
                    "SpillPrefix": connector.spill_prefix,
                    "LambdaTimeout": str(connector.timeout_seconds),
                    "LambdaMemory": str(connector.memory_mb),
                    "DisableSpillEncryption": "false",
                },
            ),
        )
        self.graph.depends_on(connector.construct_id, "S3Bucket")
        return application


def _instance_fleet(fleet: FleetConfig) -> emr.CfnCluster.InstanceFleetConfigProperty:
    return emr.CfnCluster.InstanceFleetConfigProperty(
        name=fleet.name,
        instance_type_configs=[
            emr.CfnCluster.InstanceTypeConfigProperty(
                instance_type=instance.instance_type,
                weighted_capacity=instance.weighted_capacity,
                bid_price_as_percentage_of_on_demand_price=instance.bid_price_percent,
            )
            for instance in fleet.instance_types
        ],
        target_on_demand_capacity=fleet.on_demand_capacity,
        target_spot_capacity=fleet.spot_capacity or None,
    )
