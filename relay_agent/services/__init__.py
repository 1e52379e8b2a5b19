"""
Relay Agent Services

- command - Polls the command endpoint and controls the relay service
"""
