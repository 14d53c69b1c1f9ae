from __future__ import annotations


class GitDeployError(Exception):
    """Base class for errors raised by the deployment control plane."""


class ValidationError(GitDeployError):
    """Input to connect/update/trigger calls is malformed."""


class ConflictError(GitDeployError):
    """The site is already linked, or a deployment is already in flight."""


class AuthorizationError(GitDeployError):
    """The acting operator has no rights over the owning site."""


class SecretMismatchError(GitDeployError):
    """Webhook secret in the request does not match the link's secret."""


class NotFoundError(GitDeployError):
    """Unknown repository link, deployment or site."""


class ExecutionFailure(GitDeployError):
    """The executor could not be launched for a deployment.

    Never surfaced to the caller that created the deployment; the message is
    written onto the record with ``status=failed``.
    """
