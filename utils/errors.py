from __future__ import annotations

import json
import traceback
import uuid
from dataclasses import asdict, dataclass
from typing import Any


class SynthesisError(Exception):
    """Base class for failures raised by the synthesis pipeline.

    ``step`` is filled in by the workflow with the state the pipeline was in
    when the error surfaced.
    """

    kind = "unknown"

    def __init__(self, message: str = "", *, step: str | None = None) -> None:
        super().__init__(message)
        self.step = step


class ValidationError(SynthesisError):
    """Scenario input rejected before any network call."""

    kind = "validation"


class ProviderError(SynthesisError):
    """Generic failure from the generative-model provider."""

    kind = "provider"

    def __init__(
        self,
        message: str = "",
        *,
        provider_id: str | None = None,
        status: int | None = None,
        step: str | None = None,
    ) -> None:
        super().__init__(message, step=step)
        self.provider_id = provider_id
        self.status = status


class ProviderQuotaError(ProviderError):
    """Provider answered with a rate-limit or quota signal."""

    kind = "quota"


class MalformedResponseError(SynthesisError):
    """Model text could not be repaired into JSON.

    ``cleaned_text`` holds the best-effort repaired text for diagnostics.
    """

    kind = "malformed"

    def __init__(self, message: str = "", *, cleaned_text: str = "", step: str | None = None) -> None:
        super().__init__(message, step=step)
        self.cleaned_text = cleaned_text


class IdentityResolutionError(SynthesisError):
    """A model-referenced candidate identity is unknown or ambiguous."""

    kind = "identity"

    def __init__(self, message: str = "", *, identity: str | None = None, step: str | None = None) -> None:
        super().__init__(message, step=step)
        self.identity = identity


class PersistenceError(SynthesisError):
    """Backend rejected the synthetic race write."""

    kind = "persistence"


class BackendError(SynthesisError):
    """Non-2xx answer from the relational backend REST interface."""

    kind = "backend"

    def __init__(self, message: str = "", *, status: int | None = None, step: str | None = None) -> None:
        super().__init__(message, step=step)
        self.status = status


class WorkflowBusyError(SynthesisError):
    """A generation or persistence call is already in flight."""

    kind = "busy"


@dataclass(frozen=True)
class SafeError:
    kind: str
    step: str | None
    user_message: str
    tech_message: str
    severity: str
    traceback: str | None
    support_id: str
    context: dict[str, Any]


KIND_MESSAGES = {
    "validation": "Inputs are incomplete. Enter a scenario name and select an AI provider.",
    "quota": "The AI provider quota or rate limit was reached. Wait a few minutes or choose another provider, then generate again.",
    "provider": "The AI provider did not return a scenario. Try again or choose another provider.",
    "malformed": "The AI response was not in the expected format. Generate the preview again.",
    "identity": "Some candidates in the AI response could not be matched to the race candidates.",
    "persistence": "The synthetic race could not be saved. Your preview is kept; try saving again.",
    "backend": "The election data service did not accept the request. Try again later.",
    "busy": "A scenario is already being generated or saved. Wait for it to finish.",
    "unknown": "An unexpected error occurred. Please try again.",
}

MAX_CHARS = 2000


def classify_provider_error(exc: Exception) -> str:
    """Map provider SDK and HTTP exceptions to canonical kinds."""
    name = exc.__class__.__name__.lower()
    msg = str(exc).lower()
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if status == 429 or "429" in msg:
        return "rate_limit"
    if "rate" in name or "rate" in msg and "limit" in msg:
        return "rate_limit"
    if "quota" in name or "quota" in msg or "billing" in msg or "insufficient_quota" in msg:
        return "quota"
    if "timeout" in name or "timed" in msg:
        return "timeout"
    if "auth" in name or "unauthorized" in msg or "api key" in msg:
        return "auth"
    if isinstance(exc, (ValueError, KeyError, TypeError)) or "validation" in name:
        return "validation"
    return "transient"


def is_quota_kind(kind: str) -> bool:
    return kind in {"rate_limit", "quota"}


def classify(exc: Exception) -> str:
    if isinstance(exc, SynthesisError):
        return exc.kind
    return "unknown"


def user_message(exc: Exception) -> str:
    """Return actionable text for *exc*.

    Provider and persistence failures carry the upstream message verbatim after
    the generic hint.
    """
    kind = classify(exc)
    base = KIND_MESSAGES.get(kind, KIND_MESSAGES["unknown"])
    if kind in {"provider", "quota", "persistence"} and str(exc):
        return f"{base} ({exc})"
    return base


def make_safe_error(exc: Exception, *, step: str | None = None, run_id: str | None = None) -> SafeError:
    kind = classify(exc)
    tech_message = str(exc).strip().replace("\n", " ")[:MAX_CHARS]
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))[:MAX_CHARS]
    context: dict[str, Any] = {}
    if run_id:
        context["run_id"] = run_id
    if isinstance(exc, ProviderError) and exc.provider_id:
        context["provider_id"] = exc.provider_id
    if isinstance(exc, MalformedResponseError) and exc.cleaned_text:
        context["cleaned_head"] = exc.cleaned_text[:256]
    if isinstance(exc, IdentityResolutionError) and exc.identity:
        context["identity"] = exc.identity
    return SafeError(
        kind=kind,
        step=step or getattr(exc, "step", None),
        user_message=user_message(exc),
        tech_message=tech_message,
        severity="persistent" if kind == "quota" else "transient",
        traceback=tb or None,
        support_id=uuid.uuid4().hex[:8],
        context=context,
    )


def as_json(safe: SafeError) -> bytes:
    return json.dumps(asdict(safe), ensure_ascii=False).encode("utf-8")
