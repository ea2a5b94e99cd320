"""CDK tests for the top level Athena exploration stack."""

import json
from dataclasses import replace

import aws_cdk as cdk
from aws_cdk.assertions import Template, Match
import pytest

from stacks.config import WorkshopConfig
from stacks.exploration_stack import AthenaExplorationStack

ENV = cdk.Environment(account="123456789012", region="us-east-1")


def _stack(config=None, context=None):
    app = cdk.App(context=context)
    return AthenaExplorationStack(app, "TestExplorationStack", config=config, env=ENV)


@pytest.fixture(scope="module")
def stack():
    """Create the exploration stack with default configuration."""
    return _stack()


@pytest.fixture(scope="module")
def template(stack):
    """Return the stack's CloudFormation template."""
    return Template.from_stack(stack)


def _policy(template, name):
    resources = template.find_resources(
        "AWS::IAM::Policy",
        {"Properties": Match.object_like({"PolicyName": name})},
    )
    assert len(resources) == 1
    return list(resources.values())[0]["Properties"]


def test_workshop_bucket(template):
    """Verify the workshop bucket name and teardown policy."""
    template.has_resource(
        "AWS::S3::Bucket",
        {
            "Properties": Match.object_like({"BucketName": "athena-workshop-123456789012"}),
            "DeletionPolicy": "Delete",
        },
    )


def test_network_nested_stack(template):
    """Verify the networking resources live in a nested stack."""
    template.resource_count_is("AWS::CloudFormation::Stack", 1)
    template.resource_count_is("AWS::EC2::VPC", 0)


def test_workgroups_depend_on_bucket(stack, template):
    """Verify the workgroups write to the workshop bucket and are created after it."""
    bucket_id = stack.get_logical_id(stack.workshop_bucket.node.default_child)
    resources = template.to_json()["Resources"]

    for name in ("workgroupA", "workgroupB", "AmazonAthenaIcebergPreview"):
        workgroup_id = stack.get_logical_id(stack.workgroups[name])
        assert bucket_id in resources[workgroup_id]["DependsOn"]
        configuration = resources[workgroup_id]["Properties"]["WorkGroupConfiguration"]
        assert configuration["ResultConfiguration"]["OutputLocation"] == {
            "Fn::Join": ["", ["s3://", {"Ref": bucket_id}, "/"]]
        }


def test_named_queries(template):
    """Verify the CREATE TABLE named queries and their locations."""
    queries = template.find_resources("AWS::Athena::NamedQuery")
    assert len(queries) == 4

    by_name = {q["Properties"]["Name"]: q["Properties"] for q in queries.values()}
    assert sorted(by_name) == [
        "Athena_create_customers_csv",
        "Athena_create_customers_parquet",
        "Athena_create_sales_csv",
        "Athena_create_sales_parquet",
    ]

    customers = by_name["Athena_create_customers_csv"]
    assert customers["Database"] == "default"
    assert customers["Description"] == "Create table customers_csv"
    query = json.dumps(customers["QueryString"])
    assert "CREATE EXTERNAL TABLE customers_csv" in query
    assert "/basics/csv/customers/" in query
    assert "skip.header.line.count" in query

    parquet = json.dumps(by_name["Athena_create_sales_parquet"]["QueryString"])
    assert "STORED AS PARQUET" in parquet
    assert "/basics/parquet/sales/" in parquet


def test_labs_user_password(template):
    """Verify the generated console password secret."""
    template.has_resource_properties(
        "AWS::SecretsManager::Secret",
        {
            "Name": "/athenaworkshopuser/password",
            "GenerateSecretString": {
                "SecretStringTemplate": "{}",
                "GenerateStringKey": "password",
                "PasswordLength": 30,
            },
        },
    )


def test_users(template):
    """Verify both lab users can log in without a password reset."""
    template.resource_count_is("AWS::IAM::User", 2)
    for user_name in ("userA", "userB"):
        template.has_resource_properties(
            "AWS::IAM::User",
            {
                "UserName": user_name,
                "LoginProfile": {"PasswordResetRequired": False},
            },
        )


def test_policy_bundles_scoped_to_own_workgroup(stack, template):
    """Verify each policy bundle only references its own workgroup."""
    for user_name, own, other in (
        ("userA", "workgroupA", "workgroupB"),
        ("userB", "workgroupB", "workgroupA"),
    ):
        name = f"Athena-{own[0].upper()}{own[1:]}-Policy"
        policy = _policy(template, name)

        statements = policy["PolicyDocument"]["Statement"]
        assert len(statements) == 3
        assert statements[0]["Resource"] == "*"
        assert "glue:*" in statements[0]["Action"]
        assert "athena:StartQueryExecution" in statements[1]["Action"]
        assert "athena:CreateWorkGroup" in statements[2]["Action"]

        document = json.dumps(policy["PolicyDocument"])
        assert f"workgroup/{own}" in document
        assert other not in document
        assert "AmazonAthenaIcebergPreview" not in document

        user_id = stack.get_logical_id(stack.users[user_name].node.default_child)
        assert policy["Users"] == [{"Ref": user_id}]


def test_stack_outputs(template):
    """Verify the bucket, console login and password outputs."""
    template.has_output("S3Bucket", {"Description": "S3 bucket"})
    template.has_output(
        "ConsoleLogin",
        {"Value": "https://123456789012.signin.aws.amazon.com/console"},
    )
    template.has_output(
        "ConsolePassword",
        {
            "Value": (
                "https://console.aws.amazon.com/secretsmanager/home"
                "?region=us-east-1#/secret?name=/athenaworkshopuser/password"
            )
        },
    )


def test_federation_included_by_default(template):
    """Verify the federation resources are part of the default deployment."""
    template.resource_count_is("AWS::RDS::DBCluster", 1)
    template.resource_count_is("AWS::EMR::Cluster", 1)
    template.resource_count_is("AWS::Serverless::Application", 3)


def test_federation_can_be_disabled():
    """Verify federation_enabled=False leaves out the federation resources."""
    stack = _stack(config=replace(WorkshopConfig(), federation_enabled=False))
    template = Template.from_stack(stack)

    assert stack.federation is None
    template.resource_count_is("AWS::RDS::DBCluster", 0)
    template.resource_count_is("AWS::EMR::Cluster", 0)
    template.resource_count_is("AWS::Athena::WorkGroup", 3)


def test_context_overrides():
    """Verify configuration is read from CDK context when not passed in."""
    stack = _stack(context={"federation_enabled": "false", "subnet_count": "2"})
    template = Template.from_stack(stack.network)

    assert stack.config.federation_enabled is False
    template.resource_count_is("AWS::EC2::Subnet", 2)


def test_declaration_pass_is_deterministic(template):
    """Verify identical inputs synthesise an identical template."""
    again = Template.from_stack(_stack())

    assert again.to_json() == template.to_json()


def test_identifiers_unique(stack):
    """Verify descriptor identifiers are unique within the top level unit."""
    ids = stack.graph.descriptor_ids
    assert len(ids) == len(set(ids))
    assert stack.graph.validate()
    stack.graph.validate_tree()
