"""
Dialogue Orchestrator - Per-turn pipeline behind a command interface

Responsibilities:
- Transcript -> ConversationState -> ContextDecision + VariationStrategy -> prompt
- Next proactive inquiry from the caller's freshness map
- Verdict on a model reply (accept or regenerate)
- Reject unknown commands with IllegalCommand

NOT responsible for:
- Model calls, retrieval, persistence
- Serializing turns of one conversation (caller)

Design principles:
- Ephemeral per call (no conversation state held between calls)
- Thin orchestration layer (logic lives in the engines)
- Engines injected, defaults built from one CoreConfig
"""

import logging
from typing import Optional, Union

from companion.commands import Command, PrepareTurn, RequestInquiry, ReviewReply
from companion.config import CoreConfig
from companion.contracts import StructuredSoothingReply
from companion.core.context_optimizer import ContextOptimizer
from companion.core.inquiry_context import build_inquiry_context, generate_inquiry_summary
from companion.core.inquiry_engine import InquiryEngine
from companion.core.response_variation import ResponseVariationSelector
from companion.core.state_extractor import ConversationStateExtractor
from companion.results import IllegalCommand, InquiryResult, ReplyVerdict, TurnResult
from companion.utils.helpers import resolve_language
from companion.utils.output_validator import missing_parts, parse_structured_reply
from companion.utils.prompt_builder import PromptBuilder, PromptInput
from companion.utils.section_labels import SECTION_ORDER

logger = logging.getLogger(__name__)

Result = Union[TurnResult, InquiryResult, ReplyVerdict, IllegalCommand]


class DialogueOrchestrator:
    """
    Runs one command at a time over caller-supplied inputs.

    Args:
        config: Shared configuration for default engines
        extractor, optimizer, selector, builder, inquiry_engine:
            Optional engine instances (defaults built from config)

    Raises:
        TypeError: If an injected engine lacks its required method
    """

    def __init__(
        self,
        config: Optional[CoreConfig] = None,
        extractor=None,
        optimizer=None,
        selector=None,
        builder=None,
        inquiry_engine=None,
    ):
        self.config = config or CoreConfig()
        self.extractor = extractor or ConversationStateExtractor(self.config)
        self.optimizer = optimizer or ContextOptimizer(self.config)
        self.selector = selector or ResponseVariationSelector(self.config)
        self.builder = builder or PromptBuilder(self.selector)
        self.inquiry_engine = inquiry_engine or InquiryEngine(self.config)

        self._validate_modules()
        logger.info("Dialogue Orchestrator initialized")

    def _validate_modules(self):
        """Validate engine interfaces"""
        required = (
            (self.extractor, "extractor", ("extract",)),
            (self.optimizer, "optimizer", ("optimize", "build_context_block")),
            (self.selector, "selector", ("select_variation_strategy", "generate_variation_instructions")),
            (self.builder, "builder", ("build",)),
            (self.inquiry_engine, "inquiry_engine", ("identify_data_gaps", "prioritize_data_gaps", "inquiry_template")),
        )
        for module, name, methods in required:
            for method in methods:
                if not callable(getattr(module, method, None)):
                    raise TypeError(f"{name} must have callable {method}() method")

    def handle(self, command: Command) -> Result:
        """
        Dispatch a command.

        Returns:
            TurnResult | InquiryResult | ReplyVerdict, or IllegalCommand
            for anything that is not a known command

        Raises:
            TypeError / ValueError: Propagated from the engines when the
            command carries malformed inputs
        """
        if isinstance(command, PrepareTurn):
            return self._prepare_turn(command)
        if isinstance(command, RequestInquiry):
            return self._request_inquiry(command)
        if isinstance(command, ReviewReply):
            return self._review_reply(command)

        command_type = type(command).__name__
        logger.warning(f"Rejected unknown command: {command_type}")
        return IllegalCommand(
            reason=f"Unknown command type: {command_type}",
            command_type=command_type,
        )

    def _prepare_turn(self, command: PrepareTurn) -> TurnResult:
        language = resolve_language(command.language, self.config.default_language)

        state = self.extractor.extract(command.transcript, health_focus=command.health_focus)
        decision = self.optimizer.optimize(
            state,
            health_focus=command.health_focus,
            evidence_candidates=command.evidence,
            language=language,
        )
        context_block = self.optimizer.build_context_block(decision)

        selector = self.selector
        if command.seed is not None:
            selector = ResponseVariationSelector(self.config, seed=command.seed)
        strategy = selector.select_variation_strategy(
            state,
            language=language,
            evidence_available=bool(decision.filtered_evidence),
        )

        inquiry_summary = command.inquiry_summary
        if not inquiry_summary and command.inquiry_records:
            inquiry_summary = generate_inquiry_summary(
                build_inquiry_context(command.inquiry_records), language
            )

        prompt = self.builder.build(PromptInput(
            conversation_state=state,
            ai_settings=command.ai_settings,
            persona_context=command.persona_context,
            personality=command.personality,
            health_focus=command.health_focus,
            inquiry_summary=inquiry_summary,
            memory_context=command.memory_context,
            playbook_context=command.playbook_context,
            context_block=context_block,
            language=language,
            variation_strategy=strategy,
        ))

        debug = {
            "turn_count": state.turn_count,
            "context_summary": decision.context_summary,
            "include_full_health_context": decision.include_full_health_context,
            "include_health_reminder": decision.include_health_reminder,
            "evidence_offered": [evidence.title for evidence in decision.filtered_evidence],
            "excluded_titles": list(decision.excluded_titles),
            "format_style": strategy.format_style.value,
            "citation_style": strategy.citation_style.value,
            "should_mention_health_context": strategy.should_mention_health_context,
            "endearment": strategy.endearment,
            "language": language,
        }
        logger.info(
            f"Prepared turn {state.turn_count}: format={strategy.format_style.value}, "
            f"citation={strategy.citation_style.value}, evidence={len(decision.filtered_evidence)}"
        )

        return TurnResult(
            prompt=prompt,
            state=state,
            decision=decision,
            strategy=strategy,
            context_block=context_block,
            debug=debug,
        )

    def _request_inquiry(self, command: RequestInquiry) -> InquiryResult:
        gaps = self.inquiry_engine.identify_data_gaps(
            command.recent_data,
            stale_threshold_hours=command.stale_threshold_hours,
            now=command.now,
            language=command.language,
        )
        ranked = self.inquiry_engine.prioritize_data_gaps(gaps)

        question = None
        for gap in ranked:
            question = self.inquiry_engine.inquiry_template(gap, command.language)
            if question is not None:
                break

        logger.info(f"Inquiry: {len(ranked)} gap(s), question={question.id if question else None}")
        return InquiryResult(question=question, gaps=tuple(ranked))

    def _review_reply(self, command: ReviewReply) -> ReplyVerdict:
        reply = command.reply
        if not isinstance(reply, StructuredSoothingReply):
            reply = parse_structured_reply(reply)

        if reply is None:
            logger.info("Reply could not be parsed, regenerate")
            return ReplyVerdict(
                valid=False,
                missing_parts=[section.value for section in SECTION_ORDER],
                reply=None,
            )

        missing = missing_parts(reply)
        if missing:
            logger.info(f"Reply missing parts {missing}, regenerate")
        return ReplyVerdict(valid=not missing, missing_parts=missing, reply=reply)
