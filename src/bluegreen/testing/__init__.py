"""Public testing utilities for bluegreen.

Provides in-memory proxy, container runtime and certificate collaborators
plus a mock HTTP transport, for tests and dry runs without Docker.
"""

from bluegreen.testing.fakes import FakeCertificates, FakeProxy, FakeRuntime, health_transport

__all__ = ["FakeCertificates", "FakeProxy", "FakeRuntime", "health_transport"]
