"""CDK tests for the federated query resources."""

import json

import aws_cdk as cdk
from aws_cdk.assertions import Template, Match
import pytest

from stacks.context import DeploymentContext
from stacks.federation import FederationWorkshopResources
from stacks.networking import WorkshopNetwork

ENV = cdk.Environment(account="123456789012", region="us-east-1")


@pytest.fixture(scope="module")
def federation():
    """Create the federation resources next to a workshop network."""
    app = cdk.App()
    stack = cdk.Stack(app, "TestFederationStack", env=ENV)
    deployment = DeploymentContext.of(stack)
    network = WorkshopNetwork(stack, "WorkshopVPC", deployment=deployment)
    return FederationWorkshopResources(
        stack, "Federation", deployment=deployment, network=network
    )


@pytest.fixture(scope="module")
def stack(federation):
    return cdk.Stack.of(federation)


@pytest.fixture(scope="module")
def template(stack):
    """Return the parent stack's CloudFormation template."""
    return Template.from_stack(stack)


def _logical_id(stack, construct):
    return stack.get_logical_id(construct.node.default_child)


def _single(template, resource_type, properties):
    resources = template.find_resources(
        resource_type, {"Properties": Match.object_like(properties)}
    )
    assert len(resources) == 1
    return list(resources.values())[0]


def test_spill_bucket(template):
    """Verify the spill bucket name and teardown policy."""
    template.has_resource(
        "AWS::S3::Bucket",
        {
            "Properties": Match.object_like(
                {"BucketName": "athena-federation-workshop-123456789012"}
            ),
            "DeletionPolicy": "Delete",
        },
    )


def test_v3_engine_workgroup(template):
    """Verify the engine version 3 workgroup writes to the spill bucket."""
    workgroup = _single(template, "AWS::Athena::WorkGroup", {"Name": "V3EngineWorkGroup"})
    configuration = workgroup["Properties"]["WorkGroupConfiguration"]
    assert configuration["EngineVersion"]["SelectedEngineVersion"] == "Athena engine version 3"
    assert workgroup["Properties"]["RecursiveDeleteOption"] is True


def test_aurora_secret(template):
    """Verify the generated credential with its excluded characters."""
    template.has_resource_properties(
        "AWS::SecretsManager::Secret",
        {
            "Name": "AthenaJdbcFederation",
            "GenerateSecretString": {
                "SecretStringTemplate": '{"username": "master"}',
                "GenerateStringKey": "password",
                "PasswordLength": 32,
                "ExcludeCharacters": '"@/\\',
            },
        },
    )


def test_aurora_parameter_groups(template):
    """Verify the instance and cluster parameters."""
    template.has_resource_properties(
        "AWS::RDS::DBParameterGroup",
        {"Parameters": {"max_connections": "300"}},
    )
    template.has_resource_properties(
        "AWS::RDS::DBClusterParameterGroup",
        {
            "Parameters": {
                "time_zone": "Asia/Taipei",
                "binlog_format": "ROW",
                "binlog_checksum": "NONE",
            }
        },
    )


def test_aurora_cluster_single_writer(federation, stack, template):
    """Verify the Aurora MySQL cluster and its single writer instance."""
    template.resource_count_is("AWS::RDS::DBCluster", 1)
    template.has_resource_properties(
        "AWS::RDS::DBCluster",
        {"Engine": "aurora-mysql", "DatabaseName": "sales"},
    )
    template.resource_count_is("AWS::RDS::DBInstance", 1)
    template.has_resource_properties(
        "AWS::RDS::DBInstance",
        {
            "DBInstanceClass": "db.r7g.large",
            "DBInstanceIdentifier": "sales",
            "PubliclyAccessible": False,
        },
    )

    cluster_id = _logical_id(stack, federation.aurora_cluster)
    depends_on = template.to_json()["Resources"][cluster_id]["DependsOn"]
    for construct in ("DBClusterParameterGroup", "DBSubnetGroup"):
        target = federation.graph.resolve(construct).node.default_child
        assert stack.get_logical_id(target) in depends_on


def test_dynamodb_tables(template):
    """Verify the provisioned tables and their keys."""
    template.resource_count_is("AWS::DynamoDB::Table", 2)
    for table_name in ("part", "partsupp"):
        template.has_resource(
            "AWS::DynamoDB::Table",
            {
                "Properties": Match.object_like(
                    {
                        "TableName": table_name,
                        "ProvisionedThroughput": {
                            "ReadCapacityUnits": 50,
                            "WriteCapacityUnits": 200,
                        },
                    }
                ),
                "DeletionPolicy": "Delete",
            },
        )
    template.has_resource_properties(
        "AWS::DynamoDB::Table",
        {
            "TableName": "partsupp",
            "KeySchema": [
                {"AttributeName": "ps_partkey", "KeyType": "HASH"},
                {"AttributeName": "ps_suppkey", "KeyType": "RANGE"},
            ],
        },
    )


def test_cache_cluster(federation, stack, template):
    """Verify the Redis cluster spans the network's subnets."""
    template.has_resource_properties(
        "AWS::ElastiCache::CacheCluster",
        {"Engine": "redis", "CacheNodeType": "cache.t2.micro", "NumCacheNodes": 1},
    )
    subnet_group = template.find_resources("AWS::ElastiCache::SubnetGroup")
    assert len(subnet_group) == 1
    assert len(list(subnet_group.values())[0]["Properties"]["SubnetIds"]) == 3

    subnet_group_id = list(subnet_group)[0]
    cluster_id = stack.get_logical_id(federation.cache_cluster)
    assert subnet_group_id in template.to_json()["Resources"][cluster_id]["DependsOn"]


def test_emr_cluster_fleets(template):
    """Verify on-demand master capacity and mixed core capacity."""
    emr = _single(template, "AWS::EMR::Cluster", {"Name": "EMR-Hbase-Cluster"})
    properties = emr["Properties"]
    assert properties["ReleaseLabel"] == "emr-5.28.0"
    assert [a["Name"] for a in properties["Applications"]] == [
        "Hadoop",
        "Hbase",
        "Livy",
        "Hive",
        "Tez",
    ]

    instances = properties["Instances"]
    assert instances["TerminationProtected"] is False
    assert instances["MasterInstanceFleet"]["TargetOnDemandCapacity"] == 1
    assert "TargetSpotCapacity" not in instances["MasterInstanceFleet"]

    core = instances["CoreInstanceFleet"]
    assert core["TargetOnDemandCapacity"] == 8
    assert core["TargetSpotCapacity"] == 1
    assert [c["InstanceType"] for c in core["InstanceTypeConfigs"]] == [
        "m4.xlarge",
        "r4.xlarge",
        "r5.xlarge",
    ]
    assert all(c["WeightedCapacity"] == 4 for c in core["InstanceTypeConfigs"])


def test_glue_database(template):
    """Verify the catalog entry for the Redis tables."""
    template.has_resource_properties(
        "AWS::Glue::Database",
        {"CatalogId": "123456789012", "DatabaseInput": {"Name": "redis"}},
    )


def test_connector_applications(template):
    """Verify both connectors are sized and spill to the bucket."""
    template.resource_count_is("AWS::Serverless::Application", 3)
    for application, prefix in (
        ("AthenaRedisConnector", "athena-spill-redis"),
        ("AthenaMySQLConnector", "athena-spill-mysql"),
    ):
        template.has_resource_properties(
            "AWS::Serverless::Application",
            {
                "Location": {
                    "ApplicationId": (
                        "arn:aws:serverlessrepo:us-east-1:292517598671:applications/"
                        + application
                    ),
                    "SemanticVersion": "2022.10.1",
                },
                "Parameters": {
                    "SpillPrefix": prefix,
                    "LambdaTimeout": "900",
                    "LambdaMemory": "3008",
                    "DisableSpillEncryption": "false",
                },
            },
        )


def test_udf_handler_application(federation, stack, template):
    """Verify the text analytics UDF handler is deployed without parameters."""
    resource = template.to_json()["Resources"][stack.get_logical_id(federation.udf_handler)]

    assert resource["Properties"]["Location"] == {
        "ApplicationId": (
            "arn:aws:serverlessrepo:us-east-1:912625584728:applications/TextAnalyticsUDFHandler"
        ),
        "SemanticVersion": "0.4.1",
    }
    assert "Parameters" not in resource["Properties"]


def test_mysql_connector_depends_on_cluster(federation, stack, template):
    """Verify the connection string embeds the cluster endpoint and is ordered after it."""
    mysql = federation.mysql_connector
    resource = template.to_json()["Resources"][stack.get_logical_id(mysql)]

    cluster_id = _logical_id(stack, federation.aurora_cluster)
    assert cluster_id in resource["DependsOn"]

    connection_string = resource["Properties"]["Parameters"]["DefaultConnectionString"]
    parts = connection_string["Fn::Join"][1]
    assert parts[0] == "mysql://jdbc:mysql://"
    assert parts[-1] == "/sales?${AthenaJdbcFederation}"
    assert cluster_id in json.dumps(parts)


def test_identifiers_unique(federation):
    """Verify descriptor identifiers are unique within the unit."""
    ids = federation.graph.descriptor_ids
    assert len(ids) == len(set(ids))
    federation.graph.validate()
