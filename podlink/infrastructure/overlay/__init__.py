"""Peer-to-peer overlay adapters (experimental p2p transport)."""
