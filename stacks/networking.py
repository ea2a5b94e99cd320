"""Nested stack with the workshop VPC, network ACL and security groups."""

from typing import List, Optional

import aws_cdk as cdk
from constructs import Construct
from aws_cdk import (
    aws_ec2 as ec2,
    aws_iam as iam,
    Annotations,
    CfnOutput,
)

from stacks.config import ConfigurationError, NetworkConfig
from stacks.context import DeploymentContext
from stacks.dependency_graph import DependencyGraph

# Port numbers opened on the workshop security group
MYSQL_PORT = 3306
HTTPS_PORT = 443


class WorkshopNetwork(cdk.NestedStack):
    """Isolated VPC with public subnets and the two workshop security groups.

    ``emr_security_group`` lets its members talk to each other on any TCP
    port. ``workshop_security_group`` is used by the databases, endpoints and
    connectors and admits everything coming from the EMR group.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        deployment: DeploymentContext,
        config: Optional[NetworkConfig] = None,
        parent_graph: Optional[DependencyGraph] = None,
        **kwargs,
    ) -> None:
        """Initialise the networking nested stack.

        Args:
            scope: The scope in which this stack is defined.
            construct_id: The scoped construct ID.
            deployment: Account and region the workshop is deployed into.
            config: VPC layout, defaults to ``NetworkConfig()``.
            parent_graph: Dependency graph of the enclosing unit.
            **kwargs: Additional nested stack properties.
        """
        super().__init__(scope, construct_id, **kwargs)

        self.deployment = deployment
        self.config = config or NetworkConfig()
        self.graph = DependencyGraph(construct_id, parent=parent_graph)
        declare = self.graph.declare

        self.vpc = declare(
            "VPC",
            ec2.Vpc(
                self,
                "VPC",
                ip_addresses=ec2.IpAddresses.cidr(self.config.cidr),
                max_azs=self.config.subnet_count,
                nat_gateways=0,
                enable_dns_support=True,
                enable_dns_hostnames=True,
                create_internet_gateway=True,
                subnet_configuration=[
                    ec2.SubnetConfiguration(
                        name="PublicSubnet",
                        subnet_type=ec2.SubnetType.PUBLIC,
                        cidr_mask=self.config.subnet_cidr_mask,
                    ),
                ],
            ),
        )
        if len(self.vpc.public_subnets) != self.config.subnet_count:
            raise ConfigurationError(
                f"subnet_count is {self.config.subnet_count} but only "
                f"{len(self.vpc.public_subnets)} availability zones are available; "
                "synthesise with an explicit account and region or lower subnet_count"
            )

        # Wide open ACL, the workshop relies on security groups only
        network_acl = declare(
            "NetworkAcl",
            ec2.NetworkAcl(
                self,
                "NetworkAcl",
                vpc=self.vpc,
                subnet_selection=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
            ),
        )
        network_acl.add_entry(
            "InPublicAllowAll",
            cidr=ec2.AclCidr.any_ipv4(),
            rule_number=self.config.acl_rule_number,
            traffic=ec2.AclTraffic.all_traffic(),
            direction=ec2.TrafficDirection.INGRESS,
            rule_action=ec2.Action.ALLOW,
        )
        network_acl.add_entry(
            "OutPublicAllowAll",
            cidr=ec2.AclCidr.any_ipv4(),
            rule_number=self.config.acl_rule_number,
            traffic=ec2.AclTraffic.all_traffic(),
            direction=ec2.TrafficDirection.EGRESS,
            rule_action=ec2.Action.ALLOW,
        )

        self.emr_security_group = declare(
            "EMRSecurityGroup",
            ec2.SecurityGroup(
                self,
                "EMRSecurityGroup",
                vpc=self.vpc,
                allow_all_outbound=True,
                security_group_name="EMRSecurityGroup",
                description="EMR cluster and Redis connector",
            ),
        )

        # The group id only exists once the group is created, so the
        # self-referencing rule is a separate resource
        declare(
            "EMRSecurityGroupIngress",
            ec2.CfnSecurityGroupIngress(
                self,
                "EMRSecurityGroupIngress",
                ip_protocol="tcp",
                from_port=0,
                to_port=65535,
                source_security_group_id=self.emr_security_group.security_group_id,
                group_id=self.emr_security_group.security_group_id,
            ),
        )
        self.graph.depends_on("EMRSecurityGroupIngress", "EMRSecurityGroup")

        self.workshop_security_group = declare(
            "WorkshopSecurityGroup",
            ec2.SecurityGroup(
                self,
                "WorkshopSecurityGroup",
                vpc=self.vpc,
                allow_all_outbound=True,
                security_group_name="WorkshopSecurityGroup",
                description="Aurora, Redis, VPC endpoints and connectors",
            ),
        )
        self._add_ingress("WorkshopSecurityGroup", ec2.Peer.any_ipv4(), ec2.Port.tcp(MYSQL_PORT))
        self._add_ingress("WorkshopSecurityGroup", ec2.Peer.any_ipv4(), ec2.Port.tcp(HTTPS_PORT))
        self._add_ingress("WorkshopSecurityGroup", self.emr_security_group, ec2.Port.all_traffic())

        Annotations.of(self).add_info(
            "Workshop security groups admit MySQL and HTTPS from any IPv4 address"
        )

        public_subnets = ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC)

        s3_endpoint = declare(
            "S3VPCEndpoint",
            self.vpc.add_gateway_endpoint(
                "S3VPCEndpoint",
                service=ec2.GatewayVpcEndpointAwsService.S3,
                subnets=[public_subnets],
            ),
        )
        s3_endpoint.add_to_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                principals=[iam.AnyPrincipal()],
                actions=["*"],
                resources=["*"],
            )
        )

        declare(
            "GlueVPCEndpoint",
            self.vpc.add_interface_endpoint(
                "GlueVPCEndpoint",
                service=ec2.InterfaceVpcEndpointService(self._service_name("glue")),
                subnets=public_subnets,
                security_groups=[self.workshop_security_group],
                private_dns_enabled=True,
            ),
        )
        declare(
            "SecretsManagerVPCEndpoint",
            self.vpc.add_interface_endpoint(
                "SecretsManagerVPCEndpoint",
                service=ec2.InterfaceVpcEndpointService(
                    self._service_name("secretsmanager"), HTTPS_PORT
                ),
                subnets=public_subnets,
                security_groups=[self.workshop_security_group],
                private_dns_enabled=True,
            ),
        )
        self.graph.depends_on("GlueVPCEndpoint", "WorkshopSecurityGroup")
        self.graph.depends_on("SecretsManagerVPCEndpoint", "WorkshopSecurityGroup")

        self.graph.apply()

        # Stack outputs
        CfnOutput(self, "VPCId", value=self.vpc.vpc_id)
        for index, subnet_id in enumerate(self.public_subnet_ids, start=1):
            CfnOutput(self, f"PublicSubnet{index}Id", value=subnet_id)
        CfnOutput(
            self,
            "WorkshopSecurityGroupId",
            value=self.workshop_security_group.security_group_id,
        )
        CfnOutput(
            self,
            "EMRSecurityGroupId",
            value=self.emr_security_group.security_group_id,
        )

    def _add_ingress(self, group_id: str, peer: ec2.IPeer, port: ec2.Port) -> None:
        """Add an ingress rule, ordering the group after a declared peer group."""
        self.graph.resolve(group_id).add_ingress_rule(peer, port)
        peer_id = self.graph.find(peer)
        if peer_id is not None and peer_id != group_id:
            self.graph.depends_on(group_id, peer_id)

    def _service_name(self, service: str) -> str:
        return f"com.amazonaws.{self.deployment.region}.{service}"

    @property
    def public_subnet_ids(self) -> List[str]:
        return [subnet.subnet_id for subnet in self.vpc.public_subnets]
