"""
Transport layer: dialers, HTTP plumbing over them, retry policy and dispatch.

This package exposes:
- streams: DuplexStream, DialBackend and DialTransport bridging httpx to a Dialer
- dialers: unix, direct tcp and proxied tcp dialers
- proxy: proxy dialer registry (python-socks)
- policy: retry/backoff policy
- http: RequestDispatcher (URL templating, API-version override, retries)
- connection: Connection value
"""

__all__ = ["streams", "dialers", "proxy", "policy", "http", "connection"]
