from .auth import LoginRequest, LoginResponse, LogoutResponse, MeResponse, OperatorIdentity
from .git import (
    ConnectRequest,
    DeployScriptResponse,
    DeployTriggerResponse,
    DeploymentLogResponse,
    DeploymentSummary,
    DisconnectResponse,
    ExecutorReport,
    LinkResponse,
    UpdateRequest,
    WebhookResponse,
    WebhookSecretResponse,
)

__all__ = [
    "LoginRequest",
    "LoginResponse",
    "LogoutResponse",
    "MeResponse",
    "OperatorIdentity",
    "ConnectRequest",
    "DeployScriptResponse",
    "DeployTriggerResponse",
    "DeploymentLogResponse",
    "DeploymentSummary",
    "DisconnectResponse",
    "ExecutorReport",
    "LinkResponse",
    "UpdateRequest",
    "WebhookResponse",
    "WebhookSecretResponse",
]
