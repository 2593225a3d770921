"""
Service and topology models — what gets rendered into compose files.

ServiceDescriptor is one compose service (the CA or a peer).
NetworkTopology derives the per-peer addressing: deterministic ports
(``base + index * stride`` per port family) and the gossip bootstrap
graph (peer0 → peer1, or itself when alone; everyone else → peer0).
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PortFamily(BaseModel):
    """One family of ports: node ``i`` listens on ``base + i * stride``."""

    base: int
    stride: int = 1

    def port_for(self, index: int) -> int:
        return self.base + index * self.stride


class PortScheme(BaseModel):
    """Independent port families for peers."""

    peer: PortFamily = Field(default_factory=lambda: PortFamily(base=7051, stride=1000))
    chaincode: PortFamily = Field(default_factory=lambda: PortFamily(base=7052, stride=1000))
    operations: PortFamily = Field(default_factory=lambda: PortFamily(base=9443, stride=1))


class PeerNode(BaseModel):
    """Addressing of a single peer in the topology."""

    index: int
    name: str           # peer0
    host: str           # peer0.org1.example.com
    peer_port: int
    chaincode_port: int
    operations_port: int
    gossip_bootstrap: str

    @property
    def address(self) -> str:
        return f"{self.host}:{self.peer_port}"


class NetworkTopology(BaseModel):
    """N peers of one organization domain."""

    domain: str
    node_count: int
    ports: PortScheme = Field(default_factory=PortScheme)

    def host(self, index: int) -> str:
        return f"peer{index}.{self.domain}"

    def bootstrap_index(self, index: int) -> int:
        """Index of the node that *index* uses as gossip seed."""
        if index == 0:
            return 1 if self.node_count > 1 else 0
        return 0

    def node(self, index: int) -> PeerNode:
        if not 0 <= index < self.node_count:
            raise IndexError(f"peer index {index} outside 0..{self.node_count - 1}")
        seed = self.bootstrap_index(index)
        return PeerNode(
            index=index,
            name=f"peer{index}",
            host=self.host(index),
            peer_port=self.ports.peer.port_for(index),
            chaincode_port=self.ports.chaincode.port_for(index),
            operations_port=self.ports.operations.port_for(index),
            gossip_bootstrap=f"{self.host(seed)}:{self.ports.peer.port_for(seed)}",
        )

    def nodes(self) -> list[PeerNode]:
        return [self.node(i) for i in range(self.node_count)]

    def published_ports(self) -> list[int]:
        """Every host port the peers publish (peer + operations)."""
        ports: list[int] = []
        for node in self.nodes():
            ports.extend([node.peer_port, node.operations_port])
        return ports

    def all_ports(self) -> list[int]:
        """Every port any peer listens on, across all families."""
        ports: list[int] = []
        for node in self.nodes():
            ports.extend([node.peer_port, node.chaincode_port, node.operations_port])
        return ports


class ServiceDescriptor(BaseModel):
    """One compose service."""

    name: str
    image: str
    container_name: str = ""
    ports: list[str] = Field(default_factory=list)
    environment: dict[str, str] = Field(default_factory=dict)
    volumes: list[str] = Field(default_factory=list)
    networks: list[str] = Field(default_factory=list)
    command: str = ""
    working_dir: str = ""
    labels: dict[str, str] = Field(default_factory=dict)

    def to_compose(self) -> dict:
        """Compose-file mapping for this service (empty fields omitted)."""
        spec: dict = {}
        if self.container_name:
            spec["container_name"] = self.container_name
        spec["image"] = self.image
        if self.labels:
            spec["labels"] = dict(self.labels)
        if self.environment:
            spec["environment"] = [f"{k}={v}" for k, v in self.environment.items()]
        if self.volumes:
            spec["volumes"] = list(self.volumes)
        if self.working_dir:
            spec["working_dir"] = self.working_dir
        if self.command:
            spec["command"] = self.command
        if self.ports:
            spec["ports"] = list(self.ports)
        if self.networks:
            spec["networks"] = list(self.networks)
        return spec
