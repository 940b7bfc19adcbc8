"""
Error taxonomy for the dialog gateway.

Validation failures are not exceptions: the Validator returns an Invalid
verdict and the engine re-prompts. Everything below is raised.
"""
from typing import List, Optional


class GatewayError(Exception):
    pass


# --- configuration / graph defects (fail at startup, or log + generic END at runtime)

class ConfigurationError(GatewayError):
    pass


class GraphError(ConfigurationError):
    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Menu graph failed validation: " + "; ".join(self.problems))


class UnknownNode(ConfigurationError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Unknown menu node: {node_id}")


class UnknownValidationType(ConfigurationError):
    def __init__(self, vtype: str):
        self.vtype = vtype
        super().__init__(f"Unknown validation type: {vtype}")


class MissingParameter(ConfigurationError):
    def __init__(self, operation: str, name: str):
        self.operation = operation
        self.name = name
        super().__init__(f"Missing parameter '{name}' for operation {operation}")


# --- dialog flow

class InvalidChoice(GatewayError):
    def __init__(self, node_id: str, choice: str):
        self.node_id = node_id
        self.choice = choice
        super().__init__(f"Invalid choice {choice!r} at node {node_id}")


# --- security

class LockedOut(GatewayError):
    def __init__(self, attempts: int, message: Optional[str] = None):
        self.attempts = attempts
        super().__init__(message or f"Maximum PIN attempts reached ({attempts})")


# --- session store

class SessionBusy(GatewayError):
    """Another request for the same session key holds the lock."""


class StoreUnavailable(GatewayError):
    pass


# --- backend transport

class TransportError(GatewayError):
    pass


class EnvelopeError(TransportError):
    """Reply could not be decrypted or parsed under the request's key/iv."""
