"""Session-scoped driver for one synthetic race scenario.

Steps run strictly in sequence; blocking collaborators are called through
``asyncio.to_thread`` so the session task is never blocked. Every generation
is tagged with a token and a result whose token is no longer current is
discarded rather than applied.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from core.backend import BackendClient
from core.baselines import CountyBaselineAggregator, RestBaselineSource
from core.identity import Candidate, IdentityReconciler
from core.model_gateway import ModelGateway
from core.normalizer import normalize
from core.persistence import PersistenceAdapter
from core.prompt_compiler import compile_prompt
from core.response_parser import parse_synthesis_response
from core.schemas import RaceInfo, ScenarioInput, SyntheticPreview
from utils import telemetry
from utils.config import load_config
from utils.errors import SafeError, SynthesisError, ValidationError, WorkflowBusyError, make_safe_error
from utils.logging import configure as configure_logging, log_step_failure, logger


class WorkflowState(str, Enum):
    INPUT = "input"
    COMPILING = "compiling"
    AWAITING_MODEL = "awaiting_model"
    PARSING = "parsing"
    RECONCILING = "reconciling"
    PREVIEW_READY = "preview_ready"
    PERSISTING = "persisting"
    SAVED = "saved"
    FAILED = "failed"


IN_FLIGHT = frozenset(
    {
        WorkflowState.COMPILING,
        WorkflowState.AWAITING_MODEL,
        WorkflowState.PARSING,
        WorkflowState.RECONCILING,
        WorkflowState.PERSISTING,
    }
)


def validate_scenario(scenario: ScenarioInput) -> None:
    if not scenario.name.strip():
        raise ValidationError("Please enter a scenario name")
    if not scenario.model_provider_id.strip():
        raise ValidationError("Please select an AI provider")


class SyntheticRaceWorkflow:
    def __init__(
        self,
        aggregator: CountyBaselineAggregator,
        gateway: ModelGateway,
        persistence: PersistenceAdapter,
    ) -> None:
        self.aggregator = aggregator
        self.gateway = gateway
        self.persistence = persistence
        self.state = WorkflowState.INPUT
        self.scenario: Optional[ScenarioInput] = None
        self.race: Optional[RaceInfo] = None
        self.candidates: tuple = ()
        self.preview: Optional[SyntheticPreview] = None
        self.failure: Optional[SafeError] = None
        self.saved_id: Optional[str] = None
        self._busy = False
        self._token = 0
        self._run_id: Optional[str] = None

    @classmethod
    def from_config(cls, cfg: Dict[str, Any] | None = None) -> "SyntheticRaceWorkflow":
        cfg = cfg or load_config()
        telemetry.configure(cfg)
        configure_logging(cfg)
        client = BackendClient.from_config(cfg)
        tables = (cfg.get("backend") or {}).get("tables") or {}
        return cls(
            CountyBaselineAggregator(RestBaselineSource(client, tables.get("race_results", "e_race_results"))),
            ModelGateway.from_config(cfg),
            PersistenceAdapter.from_config(cfg, client),
        )

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def in_flight(self) -> bool:
        return self._busy and self.state in IN_FLIGHT

    @property
    def token(self) -> int:
        return self._token

    def _current(self, token: int) -> bool:
        return token == self._token

    def _enter(self, state: WorkflowState, token: int) -> None:
        if self._current(token):
            logger.info("workflow_state token=%d %s -> %s", token, self.state.value, state.value)
            self.state = state

    def _fail(self, exc: Exception, step: WorkflowState, token: int) -> None:
        if isinstance(exc, SynthesisError) and exc.step is None:
            exc.step = step.value
        self.failure = make_safe_error(exc, step=step.value, run_id=self._run_id)
        self.state = WorkflowState.FAILED
        log_step_failure(step.value, token, exc)
        telemetry.log_event(
            {
                "event": "persist_failed" if step is WorkflowState.PERSISTING else "generation_failed",
                "run_id": self._run_id,
                "step": step.value,
                "kind": self.failure.kind,
                "support_id": self.failure.support_id,
            }
        )

    async def generate(
        self,
        scenario: ScenarioInput,
        race: RaceInfo,
        candidates: Sequence[Candidate],
    ) -> Optional[SyntheticPreview]:
        """Run the pipeline up to a reviewable preview.

        Returns ``None`` when the run was superseded by :meth:`abandon` before
        it finished. Errors are recorded in :attr:`failure` and re-raised.
        """
        if self._busy:
            raise WorkflowBusyError("A scenario is already being generated or saved")
        validate_scenario(scenario)
        reconciler = IdentityReconciler(candidates)

        self._token += 1
        token = self._token
        self._busy = True
        self._run_id = uuid.uuid4().hex[:12]
        self.scenario, self.race, self.candidates = scenario, race, reconciler.candidates
        self.preview = self.failure = self.saved_id = None
        t0 = time.monotonic()
        telemetry.log_event(
            {
                "event": "generation_started",
                "run_id": self._run_id,
                "race_id": race.race_id,
                "provider_id": scenario.model_provider_id,
                "candidates": len(reconciler.candidates),
            }
        )
        step = WorkflowState.COMPILING
        try:
            self._enter(step, token)
            baselines = await asyncio.to_thread(self.aggregator.fetch, race.race_id)
            if not self._current(token):
                return self._discard(token, step)
            prompt = compile_prompt(race, reconciler.candidates, baselines, scenario)

            step = WorkflowState.AWAITING_MODEL
            self._enter(step, token)
            response = await asyncio.to_thread(self.gateway.execute, prompt, scenario.model_provider_id)
            if not self._current(token):
                return self._discard(token, step)

            step = WorkflowState.PARSING
            self._enter(step, token)
            parsed = parse_synthesis_response(response.text)

            step = WorkflowState.RECONCILING
            self._enter(step, token)
            preview = normalize(parsed, scenario, reconciler, baselines, provider_model=response.model)
        except Exception as exc:
            if not self._current(token):
                logger.info("workflow_stale_error token=%d step=%s error=%s", token, step.value, exc)
                return None
            self._fail(exc, step, token)
            raise
        finally:
            if self._current(token):
                self._busy = False

        self.preview = preview
        self.state = WorkflowState.PREVIEW_READY
        telemetry.log_event(
            {
                "event": "generation_succeeded",
                "run_id": self._run_id,
                "candidates": len(preview.candidates),
                "counties": len(preview.county_changes),
                "warnings": len(preview.warnings),
                "elapsed_s": round(time.monotonic() - t0, 3),
            }
        )
        return preview

    def _discard(self, token: int, step: WorkflowState) -> None:
        logger.info("workflow_stale_result token=%d current=%d step=%s", token, self._token, step.value)
        return None

    async def confirm(self, user_id: str | None = None) -> Optional[str]:
        """Persist the current preview and return the new synthetic race id.

        A rejected write leaves the preview in place so the user can retry
        without regenerating.
        """
        if self._busy:
            raise WorkflowBusyError("A scenario is already being generated or saved")
        if self.preview is None or self.state not in (WorkflowState.PREVIEW_READY, WorkflowState.FAILED):
            raise ValidationError("There is no preview to save")

        token = self._token
        self._busy = True
        self._enter(WorkflowState.PERSISTING, token)
        try:
            new_id = await asyncio.to_thread(self.persistence.save, self.preview, self.race, user_id)
        except Exception as exc:
            if not self._current(token):
                return None
            self._fail(exc, WorkflowState.PERSISTING, token)
            raise
        finally:
            if self._current(token):
                self._busy = False
        if not self._current(token):
            return None

        self.saved_id = new_id
        self.failure = None
        self.state = WorkflowState.SAVED
        telemetry.log_event({"event": "persist_succeeded", "run_id": self._run_id, "synthetic_race_id": new_id})
        return new_id

    def back(self) -> None:
        """Leave the preview and return to input, keeping scenario and candidates."""
        if self._busy:
            raise WorkflowBusyError("A scenario is already being generated or saved")
        self.preview = None
        self.failure = None
        self.state = WorkflowState.INPUT

    def abandon(self) -> None:
        """Discard the current run; anything still in flight becomes stale."""
        self._token += 1
        self._busy = False
        self.preview = None
        self.failure = None
        self.state = WorkflowState.INPUT
        telemetry.log_event({"event": "generation_discarded", "run_id": self._run_id})
