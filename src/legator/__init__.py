"""
Legator — coordination substrate for autonomous infrastructure agents.

An object-store-backed event bus through which agents publish findings
and subscribe to each other's output, plus a periodic anomaly detector
that mines run history for behavioural drift.
"""

__version__ = "0.9.0"
