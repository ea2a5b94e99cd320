"""Configuration for the Athena workshop stacks.

Every resource kind has a frozen dataclass listing the fields the stacks
recognise, with the workshop defaults. ``WorkshopConfig.from_context`` reads
the handful of values that may be overridden with ``cdk --context``.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional, Tuple

from constructs import Node

from stacks.dependency_graph import DeclarationError

ATHENA_ENGINE_V3 = "Athena engine version 3"
CONNECTOR_VERSION = "2022.10.1"
CONNECTOR_PUBLISHER_ARN = "arn:aws:serverlessrepo:us-east-1:292517598671:applications"
UDF_HANDLER_PUBLISHER_ARN = "arn:aws:serverlessrepo:us-east-1:912625584728:applications"

# Context keys accepted by the app
CONTEXT_VPC_CIDR = "vpc_cidr"
CONTEXT_SUBNET_COUNT = "subnet_count"
CONTEXT_FEDERATION_ENABLED = "federation_enabled"

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


class ConfigurationError(DeclarationError):
    """Raised when a configuration value is missing or malformed."""


@dataclass(frozen=True)
class NetworkConfig:
    """Workshop VPC layout: one public subnet per availability zone."""

    cidr: str = "10.0.0.0/16"
    subnet_count: int = 3
    subnet_cidr_mask: int = 20
    acl_rule_number: int = 99

    def __post_init__(self) -> None:
        if self.subnet_count < 1:
            raise ConfigurationError(
                f"subnet_count must be at least 1, got {self.subnet_count}"
            )


@dataclass(frozen=True)
class WorkgroupConfig:
    name: str
    construct_id: str
    output_id: str
    engine_version: Optional[str] = None
    enforce_configuration: bool = False
    publish_metrics: bool = True
    recursive_delete: bool = True


DEFAULT_WORKGROUPS = (
    WorkgroupConfig(name="workgroupA", construct_id="workgroupA", output_id="AthenaWorkGroupA"),
    WorkgroupConfig(name="workgroupB", construct_id="workgroupB", output_id="AthenaWorkGroupB"),
    WorkgroupConfig(
        name="AmazonAthenaIcebergPreview",
        construct_id="workgroupIcebergPreview",
        output_id="AthenaWorkGroupIcebergPreview",
        engine_version=ATHENA_ENGINE_V3,
        enforce_configuration=True,
    ),
)


@dataclass(frozen=True)
class DatabaseConfig:
    """Aurora MySQL cluster backing the JDBC federation lab."""

    database_name: str = "sales"
    secret_name: str = "AthenaJdbcFederation"
    username: str = "master"
    password_length: int = 32
    exclude_characters: str = '"@/\\'
    max_connections: int = 300
    time_zone: str = "Asia/Taipei"
    binlog_format: str = "ROW"
    binlog_checksum: str = "NONE"


@dataclass(frozen=True)
class TableConfig:
    construct_id: str
    table_name: str
    partition_key: str
    sort_key: Optional[str] = None
    read_capacity: int = 50
    write_capacity: int = 200


DEFAULT_TABLES = (
    TableConfig(construct_id="DDBPartTable", table_name="part", partition_key="p_partkey"),
    TableConfig(
        construct_id="DDBPartSuppTable",
        table_name="partsupp",
        partition_key="ps_partkey",
        sort_key="ps_suppkey",
    ),
)


@dataclass(frozen=True)
class CacheConfig:
    engine: str = "redis"
    node_type: str = "cache.t2.micro"
    num_nodes: int = 1


@dataclass(frozen=True)
class InstanceTypeConfig:
    instance_type: str
    weighted_capacity: Optional[int] = None
    bid_price_percent: Optional[float] = None


@dataclass(frozen=True)
class FleetConfig:
    name: str
    instance_types: Tuple[InstanceTypeConfig, ...]
    on_demand_capacity: int
    spot_capacity: int = 0


def _core_instance_type(instance_type: str) -> InstanceTypeConfig:
    return InstanceTypeConfig(
        instance_type=instance_type, weighted_capacity=4, bid_price_percent=100
    )


@dataclass(frozen=True)
class EmrConfig:
    """EMR cluster mixing on-demand and spot capacity in its core fleet."""

    name: str = "EMR-Hbase-Cluster"
    release_label: str = "emr-5.28.0"
    master_fleet: FleetConfig = FleetConfig(
        name="master",
        instance_types=(InstanceTypeConfig(instance_type="m5.xlarge"),),
        on_demand_capacity=1,
    )
    core_fleet: FleetConfig = FleetConfig(
        name="core",
        instance_types=(
            _core_instance_type("m4.xlarge"),
            _core_instance_type("r4.xlarge"),
            _core_instance_type("r5.xlarge"),
        ),
        on_demand_capacity=8,
        spot_capacity=1,
    )
    applications: Tuple[str, ...] = ("Hadoop", "Hbase", "Livy", "Hive", "Tez")
    job_flow_role: str = "EMR_EC2_DefaultRole"
    service_role: str = "EMR_DefaultRole"
    log_prefix: str = "elasticmapreduce/"


@dataclass(frozen=True)
class ConnectorConfig:
    """Serverless Application Repository connector and its sizing."""

    construct_id: str
    application_name: str
    spill_prefix: str
    semantic_version: str = CONNECTOR_VERSION
    timeout_seconds: int = 900
    memory_mb: int = 3008

    @property
    def application_id(self) -> str:
        return f"{CONNECTOR_PUBLISHER_ARN}/{self.application_name}"


@dataclass(frozen=True)
class UdfHandlerConfig:
    """Serverless Application Repository function used as an Athena UDF."""

    construct_id: str = "TextAnalyticsUdfHandlerApplication"
    application_name: str = "TextAnalyticsUDFHandler"
    semantic_version: str = "0.4.1"

    @property
    def application_id(self) -> str:
        return f"{UDF_HANDLER_PUBLISHER_ARN}/{self.application_name}"


@dataclass(frozen=True)
class FederationConfig:
    bucket_prefix: str = "athena-federation-workshop"
    workgroup_name: str = "V3EngineWorkGroup"
    database: DatabaseConfig = DatabaseConfig()
    tables: Tuple[TableConfig, ...] = DEFAULT_TABLES
    cache: CacheConfig = CacheConfig()
    emr: EmrConfig = EmrConfig()
    glue_database_name: str = "redis"
    redis_connector: ConnectorConfig = ConnectorConfig(
        construct_id="RedisServerlessApplication",
        application_name="AthenaRedisConnector",
        spill_prefix="athena-spill-redis",
    )
    mysql_connector: ConnectorConfig = ConnectorConfig(
        construct_id="MySqlServerlessApplication",
        application_name="AthenaMySQLConnector",
        spill_prefix="athena-spill-mysql",
    )
    udf_handler: UdfHandlerConfig = UdfHandlerConfig()


@dataclass(frozen=True)
class WorkshopConfig:
    """Top level configuration for ``AthenaExplorationStack``."""

    bucket_prefix: str = "athena-workshop"
    password_secret_name: str = "/athenaworkshopuser/password"
    password_length: int = 30
    network: NetworkConfig = NetworkConfig()
    workgroups: Tuple[WorkgroupConfig, ...] = DEFAULT_WORKGROUPS
    user_workgroups: Tuple[Tuple[str, str], ...] = (
        ("userA", "workgroupA"),
        ("userB", "workgroupB"),
    )
    federation_enabled: bool = True
    federation: FederationConfig = FederationConfig()

    @classmethod
    def from_context(cls, node: Node) -> "WorkshopConfig":
        """Apply ``cdk --context`` overrides on top of the defaults."""
        config = cls()

        network = config.network
        cidr = node.try_get_context(CONTEXT_VPC_CIDR)
        if cidr:
            network = replace(network, cidr=str(cidr))
        subnet_count = node.try_get_context(CONTEXT_SUBNET_COUNT)
        if subnet_count is not None:
            network = replace(
                network, subnet_count=_to_int(CONTEXT_SUBNET_COUNT, subnet_count)
            )

        federation_enabled = node.try_get_context(CONTEXT_FEDERATION_ENABLED)
        if federation_enabled is None:
            federation_enabled = config.federation_enabled

        return replace(
            config,
            network=network,
            federation_enabled=_to_bool(CONTEXT_FEDERATION_ENABLED, federation_enabled),
        )


def _to_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Context value {key!r} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Context value {key!r} must be an integer, got {value!r}"
        ) from e


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Context value {key!r} must be a boolean, got {value!r}")
