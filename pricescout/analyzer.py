"""Price analysis pipeline orchestration.

Role:
    Runs one analysis per caller action as an ordered list of steps over an
    AnalysisContext. A step that raises stops the run, so a request that fails
    validation never reaches the gateway.

Step contracts:
    Validation:
        Reads payload; sets request (ManualAnalysisRequest | QuotationAnalysisRequest).
    Prompt Build:
        Reads request; sets prompts (system + user message).
    Gateway Call:
        Reads prompts; sets completion (raw reply text). One outbound POST.
    Decode:
        Reads completion; sets result (QuotationAnalysis | UnparsedAnalysis).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from .config import Settings
from .decoder import decode_analysis
from .gateway_client import ChatCompletionClient
from .models import AnalysisRequest, AnalysisResult, UnparsedAnalysis
from .normalizer import PromptPair, build_prompts, validate_request
from .step_runner import PipelineStep, StepRunner

logger = logging.getLogger("pricescout.analyzer")


@dataclass
class AnalysisContext:
    """Mutable state shared by the pipeline steps for one analysis run."""
    payload: Any
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    request: Optional[AnalysisRequest] = None
    prompts: Optional[PromptPair] = None
    completion: Optional[str] = None
    result: Optional[AnalysisResult] = None


class QuotationAnalyzer:
    """Validates, prompts, calls the gateway, and decodes one analysis request."""

    def __init__(self, settings: Settings, http_client: httpx.Client) -> None:
        """Purpose: Wire the gateway client and the ordered pipeline steps.
        Inputs/Outputs: Inputs are Settings and an httpx.Client; no return value.
        Side Effects / State: Builds a ChatCompletionClient and a StepRunner.
        Dependencies: normalizer, gateway_client, decoder, step_runner.
        Failure Modes: None at construction.
        If Removed: /analyze-quotation has nothing to run.
        Testing Notes: Construct with a MockTransport client and call run().
        """
        self._settings = settings
        self._gateway = ChatCompletionClient(settings, http_client)
        self._runner = StepRunner(
            [
                PipelineStep("Validation", self._validate),
                PipelineStep("Prompt Build", self._build_prompts),
                PipelineStep("Gateway Call", self._call_gateway),
                PipelineStep("Decode", self._decode),
            ]
        )

    def run(self, payload: Any) -> AnalysisContext:
        """Purpose: Execute the full pipeline for one decoded request body.
        Inputs/Outputs: Input is the JSON body; output is the finished AnalysisContext
            whose result is always set on success.
        Side Effects / State: At most one gateway POST; logs each step.
        Dependencies: StepRunner.run.
        Failure Modes: Propagates ValidationError, ServiceUnavailable, RateLimited,
            QuotaExceeded, and UpstreamError from the failing step.
        If Removed: No analysis endpoint.
        Testing Notes: Invalid payloads must leave the transport untouched.
        """
        context = AnalysisContext(payload=payload)
        self._runner.run(context, run_id=context.run_id)
        if isinstance(context.result, UnparsedAnalysis):
            logger.info("run=%s result=unparsed", context.run_id)
        else:
            logger.info(
                "run=%s result=parsed mode=%s comparisons=%d",
                context.run_id,
                context.request.mode,
                len(context.result.market_comparisons),
            )
        return context

    def _validate(self, context: AnalysisContext) -> None:
        """Purpose: Turn the raw JSON body into a mode-specific request.
        Inputs/Outputs: Input is AnalysisContext; sets context.request.
        Side Effects / State: Logs mode and location for the run.
        Dependencies: normalizer.validate_request.
        Failure Modes: ValidationError stops the run before any gateway call.
        If Removed: Unchecked input flows into the prompts.
        Testing Notes: A bad payload must leave upstream.gateway_calls empty.
        """
        # Every later step reads context.request.
        context.request = validate_request(context.payload)
        logger.info(
            "run=%s mode=%s location=%s",
            context.run_id,
            context.request.mode,
            context.request.location,
        )

    def _build_prompts(self, context: AnalysisContext) -> None:
        """Purpose: Render the system prompt and user message for the request.
        Inputs/Outputs: Input is AnalysisContext; sets context.prompts.
        Side Effects / State: Reads prompt templates through the cached loader.
        Dependencies: normalizer.build_prompts, Settings.prompts_dir.
        Failure Modes: FileNotFoundError if a template is missing.
        If Removed: The gateway call has no messages to send.
        Testing Notes: Check the mode's template lands in the system message.
        """
        context.prompts = build_prompts(context.request, self._settings.prompts_dir)
        logger.debug("run=%s user_message_length=%d", context.run_id, len(context.prompts.user))

    def _call_gateway(self, context: AnalysisContext) -> None:
        """Purpose: Send the prompt pair to the AI gateway once.
        Inputs/Outputs: Input is AnalysisContext; sets context.completion (None when
            the envelope carried no text).
        Side Effects / State: Exactly one outbound POST.
        Dependencies: ChatCompletionClient.complete.
        Failure Modes: ServiceUnavailable, RateLimited, QuotaExceeded, UpstreamError.
        If Removed: No reply to decode.
        Testing Notes: Count upstream.gateway_calls after a run.
        """
        context.completion = self._gateway.complete(context.prompts.as_messages())

    def _decode(self, context: AnalysisContext) -> None:
        """Purpose: Decode the completion into a typed analysis or raw fallback.
        Inputs/Outputs: Input is AnalysisContext; sets context.result.
        Side Effects / State: None.
        Dependencies: decoder.decode_analysis.
        Failure Modes: None; decode_analysis never raises.
        If Removed: The endpoint has no result to return.
        Testing Notes: A prose reply must end as UnparsedAnalysis.
        """
        context.result = decode_analysis(context.completion)
