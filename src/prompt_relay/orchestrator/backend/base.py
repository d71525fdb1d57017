"""Backend adapter interface for translating requests into CLI invocations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from prompt_relay.orchestrator.models import BackendName, Invocation, RequestSpec

logger = logging.getLogger(__name__)


class BackendCapability(str, Enum):
    """Optional request fields a backend may honour."""

    SYSTEM_PROMPT = "system_prompt"
    APPEND_SYSTEM_PROMPT = "append_system_prompt"
    ALLOWED_TOOLS = "allowed_tools"
    DISALLOWED_TOOLS = "disallowed_tools"
    SKIP_PERMISSIONS = "skip_permissions"
    SETTINGS = "settings"
    MCP_CONFIG = "mcp_config"
    SESSION_ID = "session_id"
    CONTINUE_SESSION = "continue_session"
    RESUME_SESSION = "resume_session"
    PARTIAL_MESSAGES = "include_partial_messages"


@dataclass(frozen=True, slots=True)
class BackendDescriptor:
    """Static description of one backend variant."""

    name: BackendName
    command: str
    default_model: str
    native: frozenset[BackendCapability]
    approximated: frozenset[BackendCapability] = frozenset()

    def supports(self, capability: BackendCapability) -> bool:
        return capability in self.native or capability in self.approximated


class BackendAdapter(Protocol):
    """Protocol implemented by per-backend argument dialects."""

    descriptor: BackendDescriptor

    @property
    def default_model(self) -> str:
        """Model used when the request does not name one."""

    def build_invocation(self, spec: RequestSpec) -> Invocation:
        """Map a request to a command line; the prompt is always the last argument."""


def requested_capabilities(spec: RequestSpec) -> set[BackendCapability]:
    """Return the optional fields a request actually sets."""

    requested: set[BackendCapability] = set()
    if spec.system_prompt:
        requested.add(BackendCapability.SYSTEM_PROMPT)
    if spec.append_system_prompt:
        requested.add(BackendCapability.APPEND_SYSTEM_PROMPT)
    if spec.allowed_tools:
        requested.add(BackendCapability.ALLOWED_TOOLS)
    if spec.disallowed_tools:
        requested.add(BackendCapability.DISALLOWED_TOOLS)
    if spec.skip_permissions:
        requested.add(BackendCapability.SKIP_PERMISSIONS)
    if spec.settings:
        requested.add(BackendCapability.SETTINGS)
    if spec.mcp_config:
        requested.add(BackendCapability.MCP_CONFIG)
    if spec.session_id:
        requested.add(BackendCapability.SESSION_ID)
    if spec.continue_session:
        requested.add(BackendCapability.CONTINUE_SESSION)
    if spec.resume_session:
        requested.add(BackendCapability.RESUME_SESSION)
    if spec.include_partial_messages:
        requested.add(BackendCapability.PARTIAL_MESSAGES)
    return requested


def log_ignored_fields(descriptor: BackendDescriptor, spec: RequestSpec) -> None:
    ignored = sorted(
        capability.value
        for capability in requested_capabilities(spec)
        if not descriptor.supports(capability)
    )
    if ignored:
        logger.debug(
            "Backend ignores unsupported fields: backend=%s fields=%s",
            descriptor.name.value,
            ",".join(ignored),
        )
