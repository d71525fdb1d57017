"""Primary and fallback backend selection for one request."""

from __future__ import annotations

from dataclasses import dataclass

from prompt_relay.config import RelaySettings
from prompt_relay.orchestrator.models import BackendName, RequestSpec


@dataclass(frozen=True, slots=True)
class BackendRoute:
    """Resolved execution order; ``fallback`` is None when not eligible."""

    primary: BackendName
    fallback: BackendName | None

    def describe(self) -> str:
        fallback = self.fallback.value if self.fallback is not None else "disabled"
        return f"primary={self.primary.value} fallback={fallback}"


def resolve_route(spec: RequestSpec, settings: RelaySettings) -> BackendRoute:
    """Pick the requested backend or the default, and at most one fallback."""

    primary = spec.backend or BackendName(settings.default_backend)
    eligible = settings.fallback_enabled and not spec.disable_fallback
    return BackendRoute(primary=primary, fallback=primary.other if eligible else None)
