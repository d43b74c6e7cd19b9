from readiness_controller.k8s.client import (
    AlreadyExistsError,
    ApiError,
    ConflictError,
    KubeClient,
    KubeConfigError,
    NotFoundError,
)
from readiness_controller.k8s.retry import retry_on_conflict

__all__ = [
    "AlreadyExistsError",
    "ApiError",
    "ConflictError",
    "KubeClient",
    "KubeConfigError",
    "NotFoundError",
    "retry_on_conflict",
]
