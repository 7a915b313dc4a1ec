"""Sandbox boundary: sanitization, environment detection, limits, readiness, launching."""

from sandbox_batch.sandbox.container_launcher import (
    ContainerCommandResult,
    ContainerLauncher,
    ContainerLauncherConfig,
)
from sandbox_batch.sandbox.environment import (
    ContainerDetection,
    detect_container,
    is_running_in_container,
    is_runtime_available,
    runtime_not_running_message,
)
from sandbox_batch.sandbox.images import SUGGESTED_IMAGES, SuggestedImage, render_suggested_images
from sandbox_batch.sandbox.readiness import ReadinessTimeoutError, wait_for_ready
from sandbox_batch.sandbox.resource_limits import (
    IMAGE_DEFAULTS,
    ResourceFlags,
    ResourceLimitConfig,
    ResourceLimitResolver,
    ResourceLimitSpec,
    compute_resource_limits,
)
from sandbox_batch.sandbox.sanitization import (
    ContainerId,
    ImageName,
    SanitizedValue,
    ShellCommand,
    sanitize_container_id,
    sanitize_image_name,
    sanitize_shell_command,
)

__all__ = [
    "IMAGE_DEFAULTS",
    "SUGGESTED_IMAGES",
    "ContainerCommandResult",
    "ContainerDetection",
    "ContainerId",
    "ContainerLauncher",
    "ContainerLauncherConfig",
    "ImageName",
    "ReadinessTimeoutError",
    "ResourceFlags",
    "ResourceLimitConfig",
    "ResourceLimitResolver",
    "ResourceLimitSpec",
    "SanitizedValue",
    "ShellCommand",
    "SuggestedImage",
    "compute_resource_limits",
    "detect_container",
    "is_running_in_container",
    "is_runtime_available",
    "render_suggested_images",
    "runtime_not_running_message",
    "sanitize_container_id",
    "sanitize_image_name",
    "sanitize_shell_command",
    "wait_for_ready",
]
