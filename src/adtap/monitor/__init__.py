"""In-context monitor: capabilities, detectors, channel and host aggregator.

PUBLIC API:
  - Summary: Per-load observation record
  - MonitorContext: State threaded through every capability and detector
  - ExecutionContext: Surfaces of a monitored context
  - Injector: Installs the monitor into a context
  - HostAggregator: Host-side sink of the event channel
"""

from adtap.monitor.aggregator import HostAggregator, SummaryView
from adtap.monitor.channel import EventChannel
from adtap.monitor.context import ExecutionContext, MonitorContext, Surface
from adtap.monitor.injector import Injector, Probe
from adtap.monitor.summary import Summary

__all__ = [
    "EventChannel",
    "ExecutionContext",
    "HostAggregator",
    "Injector",
    "MonitorContext",
    "Probe",
    "Summary",
    "SummaryView",
    "Surface",
]
