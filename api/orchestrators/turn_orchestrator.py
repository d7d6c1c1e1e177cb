"""Turn Orchestrator using LangGraph for the WorkerBank assistant.

This module runs one chat turn through a linear graph of stages:

    01_file_extractor -> 02_normalizer -> 03_context_enhancer
        -> 04_intent_resolver -> 05_response_rewriter -> 06_assembler

Each stage depends on the previous one, so they run strictly in sequence.
Configuration and input errors are raised before the graph starts. Extraction
and intent detection errors end the turn; context enhancement, rewriting and
assembly degrade and record the failure in ``TurnState.errors``.

Backend handles are injected once at startup and the graph is compiled once,
without a checkpointer. Everything a turn produces lives in its TurnState,
so one orchestrator serves concurrent turns.
"""

import time
from typing import Any, Dict

import structlog
from langgraph.graph import END, StateGraph

from api.errors import ConfigurationError, ExtractionFailure
from api.pipeline.assembler import assemble_response
from api.pipeline.context_enhancer import enhance_context
from api.pipeline.intent_resolver import resolve_intent, select_intent_query
from api.pipeline.normalizer import ensure_query_or_file, normalize_query
from api.pipeline.rewriter import rewrite_response
from api.schemas.turn_state import TurnState
from api.uploads import validate_upload
from libs.common.settings import Settings

logger = structlog.get_logger(__name__)


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


class TurnOrchestrator:
    """Runs chat turns against injected generative, intent and file-analysis clients."""

    def __init__(self, settings: Settings, llm: Any, intent_client: Any, extractor: Any):
        self.settings = settings
        self.llm = llm
        self.intent_client = intent_client
        self.extractor = extractor
        self.graph = self._build_graph()

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        graph = StateGraph(TurnState)

        graph.add_node("01_file_extractor", self._extract_file_node)
        graph.add_node("02_normalizer", self._normalize_node)
        graph.add_node("03_context_enhancer", self._enhance_context_node)
        graph.add_node("04_intent_resolver", self._resolve_intent_node)
        graph.add_node("05_response_rewriter", self._rewrite_node)
        graph.add_node("06_assembler", self._assemble_node)

        graph.set_entry_point("01_file_extractor")
        graph.add_edge("01_file_extractor", "02_normalizer")
        graph.add_edge("02_normalizer", "03_context_enhancer")
        graph.add_edge("03_context_enhancer", "04_intent_resolver")
        graph.add_edge("04_intent_resolver", "05_response_rewriter")
        graph.add_edge("05_response_rewriter", "06_assembler")
        graph.add_edge("06_assembler", END)

        return graph.compile()

    def check_configuration(self) -> None:
        """
        Raises:
            ConfigurationError: If any required agent identifier is unset
        """
        missing = self.settings.missing_dialogflow_settings()
        if missing:
            logger.error("Missing required configuration", missing=missing)
            raise ConfigurationError(missing)

    def validate_input(self, state: TurnState) -> TurnState:
        """
        Raises:
            InvalidInput: If there is no query and no file, or the file is rejected
        """
        upload = state.upload
        if upload is not None:
            upload = validate_upload(upload, self.settings.max_upload_bytes)
        ensure_query_or_file(state.raw_query, upload is not None)
        return state.model_copy(update={"upload": upload})

    async def _extract_file_node(self, state: TurnState) -> Dict[str, Any]:
        """01_file_extractor: describe the attached file, if any."""
        if state.upload is None:
            return {"file_fragment": None}

        start_time = time.time()
        try:
            result = await self.extractor.extract(state.upload.data, state.upload.mime_type)
        except Exception as e:
            logger.error(
                "01_file_extractor failed",
                error=str(e),
                mime_type=state.upload.mime_type,
                trace_id=state.trace_id,
            )
            raise ExtractionFailure(detail=str(e)) from e

        duration_ms = _elapsed_ms(start_time)
        logger.info(
            "01_file_extractor completed",
            mime_type=state.upload.mime_type,
            fragment_length=len(result.fragment),
            duration_ms=duration_ms,
            trace_id=state.trace_id,
        )
        return {
            "file_fragment": result.fragment,
            "node_timings": {**state.node_timings, "01_file_extractor": duration_ms},
        }

    async def _normalize_node(self, state: TurnState) -> Dict[str, Any]:
        """02_normalizer: fold the file fragment into the query."""
        return {"normalized_query": normalize_query(state.raw_query, state.file_fragment)}

    async def _enhance_context_node(self, state: TurnState) -> Dict[str, Any]:
        """03_context_enhancer: derive context and the enhanced query from history."""
        start_time = time.time()
        context = await enhance_context(self.llm, state.normalized_query, state.history, self.settings)
        duration_ms = _elapsed_ms(start_time)

        errors = state.errors
        if context.degraded:
            errors = [*errors, "context_enhancement: fallback context used"]

        logger.info(
            "03_context_enhancer completed",
            degraded=context.degraded,
            enhancement_applied=context.enhanced_query not in (None, state.normalized_query),
            duration_ms=duration_ms,
            trace_id=state.trace_id,
        )
        return {
            "context": context,
            "errors": errors,
            "node_timings": {**state.node_timings, "03_context_enhancer": duration_ms},
        }

    async def _resolve_intent_node(self, state: TurnState) -> Dict[str, Any]:
        """04_intent_resolver: submit the query to the agent."""
        start_time = time.time()
        intent_query = select_intent_query(
            state.normalized_query,
            state.context,
            self.settings.use_enhanced_query_for_intent_detection,
        )
        reply = await resolve_intent(
            self.intent_client,
            state.session_id,
            intent_query,
            self.settings.language_code,
        )
        duration_ms = _elapsed_ms(start_time)
        logger.info(
            "04_intent_resolver completed",
            used_enhanced_query=intent_query != state.normalized_query,
            duration_ms=duration_ms,
            trace_id=state.trace_id,
        )
        return {
            "intent_query": intent_query,
            "agent_reply": reply.agent_reply,
            "agent_envelope": reply.envelope,
            "node_timings": {**state.node_timings, "04_intent_resolver": duration_ms},
        }

    async def _rewrite_node(self, state: TurnState) -> Dict[str, Any]:
        """05_response_rewriter: rewrite the agent reply for the user."""
        start_time = time.time()
        result = await rewrite_response(
            self.llm,
            state.normalized_query,
            state.context,
            state.agent_reply or "",
            self.settings,
        )
        duration_ms = _elapsed_ms(start_time)

        errors = state.errors
        if not result.rewritten:
            errors = [*errors, f"rewrite: {result.error}"]

        logger.info(
            "05_response_rewriter completed",
            rewritten=result.rewritten,
            duration_ms=duration_ms,
            trace_id=state.trace_id,
        )
        return {
            "rewritten_reply": result.text,
            "rewrite_applied": result.rewritten,
            "errors": errors,
            "node_timings": {**state.node_timings, "05_response_rewriter": duration_ms},
        }

    async def _assemble_node(self, state: TurnState) -> Dict[str, Any]:
        """06_assembler: build the canonical response."""
        response, assembly_errors = assemble_response(
            agent_reply=state.agent_reply or "",
            rewritten_reply=state.rewritten_reply or "",
            session_id=state.session_id,
            envelope=state.agent_envelope,
        )
        return {"response": response, "errors": [*state.errors, *assembly_errors]}

    async def run_turn(self, state: TurnState) -> TurnState:
        """
        Run one turn through the pipeline.

        Raises:
            ConfigurationError: Before any backend call, if configuration is incomplete
            InvalidInput: Before any backend call, if the input is rejected
            ExtractionFailure: If the file could not be analyzed
            IntentDetectionFailure: If the agent call failed
        """
        self.check_configuration()
        state = self.validate_input(state)

        logger.info(
            "Starting turn orchestration",
            trace_id=state.trace_id,
            session_id=state.session_id,
            query_preview=state.raw_query[:100],
            history_length=len(state.history),
            has_file=state.upload is not None,
        )

        result = await self.graph.ainvoke(state)

        # LangGraph returns the channel values as a dict
        if isinstance(result, dict):
            result = state.model_copy(update=result)

        logger.info(
            "Turn orchestration completed",
            trace_id=state.trace_id,
            recovered_errors=result.errors,
            node_timings=result.node_timings,
        )
        return result
