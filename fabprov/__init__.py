"""fabprov — provision a single-organization Hyperledger Fabric peer network."""

__version__ = "0.1.0"
