"""
netsentry: host network anomaly detector.
Normalizes captured system events into key=value logs and runs windowed detection rules over them.
"""

__version__ = "0.1.0"
