"""
Relay Command Agent

Polls a central endpoint for operator commands aimed at the
TCP-serial relay service and executes them on the local device.
"""

__version__ = "1.3.0"
