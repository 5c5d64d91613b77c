"""Core request orchestration: classify, override, dispatch, stream.

Architectural role:
    Provides the single execution entrypoint used by the HTTP and CLI layers to
    turn one user request into an ordered stream of progress events.

Control-flow model:
    1. Emit `thought` "Analyzing user intent...".
    2. Classify via the intent port. Any failure degrades to `general_query`
       with the request text as argument.
    3. Apply the file override (`routing_types.apply_file_override`).
    4. Look the tool up in the dispatch table and run its handler.

Dispatch table:
    Every handler has the signature `(scratchpad, request, argument, emit)`. The
    table is checked against `Tool` when the engine is built, so a tool without a
    handler fails at construction instead of at request time.

Error handling strategy:
    - `PreconditionError`: message emitted verbatim as one `error` event.
    - Any other exception: logged, then one `error` event naming the tool.
    - `StreamClosedError`: the consumer is gone; emission stops silently.
    `run` itself never raises.

Side effects:
    Handlers write the session scratchpad passed in by the caller. Nothing else
    is shared between requests.
"""

import logging
from contextlib import aclosing
from typing import Awaitable, Callable

from synapse.analysis.csv_parser import PandasTabularParser
from synapse.analysis.tabular import analyze_table
from synapse.core.events import EventKind, EventSink, Emitter
from synapse.core.ports import IntentClassifier, SearchProvider, TabularParser, TextGenerator
from synapse.core.request import AgentRequest
from synapse.core.routing_types import CSV_MEDIA_TYPE, PDF_MEDIA_TYPE, IntentDecision, Tool, apply_file_override
from synapse.core.scratchpad import ExtractedTable, Scratchpad
from synapse.drafting.offer_letter import draft_offer_letter
from synapse.exceptions import GenerationError, PreconditionError, StreamClosedError
from synapse.extraction.optical import build_optical_extractor
from synapse.extraction.pipeline import ExtractionPipeline
from synapse.llm.service import LLMTextGenerator
from synapse.nlp.intent_router import IntentRouter
from synapse.prompting.prompt_builder import (
    GENERAL_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    build_summary_prompt,
)
from synapse.retrieval.web.web_module import WebSearchModule
from synapse.verification.claims import build_table_payload, verify_claims


logger = logging.getLogger(__name__)

Handler = Callable[[Scratchpad, AgentRequest, str, Emitter], Awaitable[None]]

WEB_SEARCH_MAX_RESULTS = 5


def format_search_result(query: str, snippet: str, url: str) -> str:
    text = f"**Web Search Result for:** *{query}*\n\n{snippet}"
    if url:
        text += f"\n\n**Source:** [{url}]({url})"
    return text


class Engine:
    """Orchestration engine bound to one set of capability ports."""

    def __init__(
        self,
        classifier: IntentClassifier,
        generator: TextGenerator,
        search: SearchProvider,
        tabular_parser: TabularParser,
        extraction: ExtractionPipeline,
    ) -> None:
        self.classifier = classifier
        self.generator = generator
        self.search = search
        self.tabular_parser = tabular_parser
        self.extraction = extraction

        self.handlers: dict[Tool, Handler] = {
            Tool.EXTRACT_PDF_TEXT: self._extract_document,
            Tool.RUN_OCR: self._extract_document,
            Tool.EXTRACT_CSV_DATA: self._extract_csv,
            Tool.ANALYZE_DATA: self._analyze_data,
            Tool.GENERATE_OFFER_LETTER: self._generate_offer_letter,
            Tool.VERIFY_CLAIMS: self._verify_claims,
            Tool.WEB_SEARCH: self._web_search,
            Tool.GENERAL_QUERY: self._general_query,
        }

        missing = [tool.value for tool in Tool if tool not in self.handlers]
        if missing:
            raise RuntimeError(f"No handler registered for tools: {', '.join(missing)}")

    # ============================================================
    # ENTRYPOINT
    # ============================================================

    async def run(self, request: AgentRequest, scratchpad: Scratchpad, sink: EventSink) -> None:
        """Process one request, streaming events into `sink`.

        Args:
            request: User text and/or uploaded document.
            scratchpad: Session state read and written by the handlers.
            sink: Destination for progress events.

        Returns:
            None. Outcomes are communicated only through events.
        """
        emit = Emitter(sink)
        tool = Tool.GENERAL_QUERY

        try:
            await emit.thought("Analyzing user intent...")
            decision = await self._classify(request, emit)

            decision, overridden = apply_file_override(
                decision,
                request.file is not None,
                request.media_type,
                request.message,
            )
            if overridden:
                await emit.thought("\nFile detected. Overriding intent to perform file extraction.")

            tool = decision.selected_tool
            logger.info("Dispatching tool=%s overridden=%s", tool.value, overridden)

            await emit.thought(f"\nIntent detected: **{tool.value}**. Executing primary action...")
            await self.handlers[tool](scratchpad, request, decision.argument, emit)

        except StreamClosedError:
            logger.info("Event sink closed during %s; stopping", tool.value)
        except PreconditionError as exc:
            await self._emit_error(emit, str(exc))
        except Exception as exc:
            logger.exception("Tool %s failed", tool.value)
            await self._emit_error(emit, f"A critical error occurred during **{tool.value}**: {exc}")

    async def _classify(self, request: AgentRequest, emit: Emitter) -> IntentDecision:
        try:
            return await self.classifier.classify(request.message, request.media_type)
        except Exception as exc:
            logger.warning("Intent detection failed (%s); falling back to general_query", exc)
            await emit.thought("\nIntent detection failed. Falling back to a general response.")
            return IntentDecision(Tool.GENERAL_QUERY, request.message)

    async def _emit_error(self, emit: Emitter, message: str) -> None:
        try:
            await emit.error(message)
        except StreamClosedError:
            logger.info("Event sink closed before error could be delivered")

    async def _stream_generation(self, prompt: str, system_prompt: str, emit: Emitter) -> str:
        parts: list[str] = []
        stream = self.generator.generate_text_stream(prompt, system_prompt=system_prompt)
        async with aclosing(stream):
            async for chunk in stream:
                if not chunk:
                    continue
                parts.append(chunk)
                await emit.text(chunk)

        text = "".join(parts)
        if not text.strip():
            raise GenerationError("Model returned an empty response.")
        return text

    # ============================================================
    # HANDLERS
    # ============================================================

    async def _extract_document(
        self, scratchpad: Scratchpad, request: AgentRequest, argument: str, emit: Emitter
    ) -> None:
        if request.file is None:
            raise PreconditionError("PDF/Image file is required for extraction.")

        kind = "PDF" if request.media_type == PDF_MEDIA_TYPE else "document"
        await emit.thought(f"\nExtracting text from {kind}...")

        text = await self.extraction.extract(request.file.data, request.file.media_type, emit)
        scratchpad.store_text(text)

        await emit.thought("\nExtraction complete. Generating summary...")
        summary = await self._stream_generation(
            build_summary_prompt(text, argument or request.message),
            SUMMARY_SYSTEM_PROMPT,
            emit,
        )
        await emit.final_output(summary)

    async def _extract_csv(
        self, scratchpad: Scratchpad, request: AgentRequest, argument: str, emit: Emitter
    ) -> None:
        if request.file is None or request.media_type != CSV_MEDIA_TYPE:
            raise PreconditionError("CSV file is required for data parsing.")

        await emit.thought("\nParsing CSV data...")
        table = await self.tabular_parser.parse(request.file.data)
        scratchpad.store_table(table)

        await emit.thought(f"\nCSV parsed. Found {len(table.rows)} records. Analyzing trends...")
        await self._run_analysis(table, argument or request.message, emit)

    async def _analyze_data(
        self, scratchpad: Scratchpad, request: AgentRequest, argument: str, emit: Emitter
    ) -> None:
        table = scratchpad.require_table(
            "No dataset found in the workspace. Please upload a CSV file first."
        )
        await emit.thought("\nDataset loaded. Running requested analysis...")
        await self._run_analysis(table, argument or request.message, emit)

    async def _run_analysis(self, table: ExtractedTable, query: str, emit: Emitter) -> None:
        narrative, chart = await analyze_table(table.rows, table.schema, query, self.generator, emit)
        await emit.emit(EventKind.CHART, chart)
        await emit.final_output(narrative)

    async def _generate_offer_letter(
        self, scratchpad: Scratchpad, request: AgentRequest, argument: str, emit: Emitter
    ) -> None:
        resume_text = scratchpad.require_text(
            "Resume text is not available. Please upload a PDF resume first."
        )
        await emit.thought("\nGenerating offer letter draft...")

        letter = await draft_offer_letter(resume_text, argument or request.message, self.generator)
        draft = letter.to_draft()
        scratchpad.store_draft(draft)

        message = (
            f"Offer letter drafted for **{letter.name}**. Review the HTML preview below "
            "and click 'Send Email' to finalize."
        )
        await emit.emit(EventKind.EMAIL_PREVIEW, {**draft.to_dict(), "message": message})
        await emit.final_output(message)

    async def _verify_claims(
        self, scratchpad: Scratchpad, request: AgentRequest, argument: str, emit: Emitter
    ) -> None:
        document_text = scratchpad.require_text(
            "Document text is not available for claim verification. Please upload a PDF first."
        )
        await emit.thought("\nStarting claim verification process...")

        rows = await verify_claims(
            document_text,
            argument or request.message,
            self.generator,
            self.search,
            emit,
        )

        await emit.emit(EventKind.TABLE, build_table_payload(rows))
        await emit.final_output("Verification complete. Table streamed above.")

    async def _web_search(
        self, scratchpad: Scratchpad, request: AgentRequest, argument: str, emit: Emitter
    ) -> None:
        query = argument.strip() or request.message
        if not query:
            raise PreconditionError("Please tell me what to search the web for.")

        await emit.thought(f'\nSearching the web for: "{query}"')
        result = await self.search.search(query, WEB_SEARCH_MAX_RESULTS)

        text = format_search_result(query, result.snippet, result.url)
        await emit.text(text)
        await emit.final_output(text)

    async def _general_query(
        self, scratchpad: Scratchpad, request: AgentRequest, argument: str, emit: Emitter
    ) -> None:
        prompt = request.message or argument.strip()
        if not prompt:
            raise PreconditionError("Please enter a message.")

        await emit.thought("\nExecuting general conversational response...")
        response = await self._stream_generation(prompt, GENERAL_SYSTEM_PROMPT, emit)
        await emit.final_output(response)


def build_engine() -> Engine:
    """Wire the engine to the default adapters configured from the environment."""
    generator = LLMTextGenerator()
    return Engine(
        classifier=IntentRouter(generator),
        generator=generator,
        search=WebSearchModule(),
        tabular_parser=PandasTabularParser(),
        extraction=ExtractionPipeline(build_optical_extractor(), generator),
    )
