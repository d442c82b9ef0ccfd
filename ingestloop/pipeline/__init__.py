"""Pipeline module for ingestloop."""

from ingestloop.pipeline.guards import PreflightGuards

__all__ = ["PreflightGuards"]
