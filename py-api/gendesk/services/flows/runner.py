"""Executes flow actions: balance checks, backend calls, history records and step changes."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from gendesk.errors import BackendError, InsufficientBalance, InvalidTransition, StorageLimitExceeded
from gendesk.models import (
    DEFAULT_CHILD_AGE,
    STUDENT_DOC_TYPES_INTERACTIVE,
    STUDENT_DOC_TYPES_STANDARD,
    ChatMessage,
    DocumentType,
    WebSource,
)
from gendesk.services import costs
from gendesk.services.account_repository import AccountRepository
from gendesk.services.backend_client import GenerationBackend, UploadedFile
from gendesk.services.flows.board import FlowBoard
from gendesk.services.flows.catalog import FLOWS
from gendesk.services.flows.wizard import FlowDefinition, FlowState, fail, move, require_step
from gendesk.services.history_service import new_generation_record, record_generation
from gendesk.services.quota_ledger import debit, ensure_balance
from gendesk.utils.text import extract_text_from_upload, page_count, token_count

_LOGGER = logging.getLogger(__name__)

SECTION_DELAY_SECONDS = float(os.getenv("SECTION_DELAY_SECONDS", "1.0"))

Handler = Callable[[FlowBoard, FlowState, str, Dict[str, Any], List[UploadedFile]], None]


def text_metrics(text: str) -> Dict[str, Any]:
    if not text:
        return {"tokenCount": 0, "pageCount": 0}
    return {"tokenCount": token_count(text), "pageCount": page_count(text)}


def _excerpt(text: str, limit: int = 40) -> str:
    return f"{(text or '')[:limit]}..."


def _field(data: Dict[str, Any], name: str) -> str:
    value = data.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidTransition(f"Field '{name}' is required.", field=name)
    return value


def _sources(raw: Any) -> Optional[List[WebSource]]:
    if not isinstance(raw, list):
        return None
    return [WebSource(uri=s["uri"], title=s.get("title", "")) for s in raw if isinstance(s, dict) and s.get("uri")]


class FlowRunner:
    """Runs the generator's flows against one repository and one backend.

    Every paid action debits the account before the backend is contacted,
    so an insufficient balance is rejected with no remote call. Backend
    failures never escape an action: they move the flow back to its input
    step with the error message attached.
    """

    def __init__(
        self,
        repo: AccountRepository,
        backend: GenerationBackend,
        *,
        section_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repo = repo
        self.backend = backend
        self.section_delay = SECTION_DELAY_SECONDS if section_delay is None else section_delay
        self.sleep = sleep
        self._handlers: Dict[Tuple[str, str], Handler] = {
            ("astrology", "select"): self._astrology_select,
            ("astrology", "natal"): self._astrology_natal,
            ("astrology", "horoscope"): self._astrology_horoscope,
            ("book_writing", "plan"): self._book_plan,
            ("book_writing", "generate"): self._book_generate,
            ("personal_analysis", "submit"): self._personal_analysis,
            ("document_analysis", "submit"): self._document_analysis,
            ("consultation", "select"): self._consultation_select,
            ("consultation", "message"): self._consultation_message,
            ("tutor", "select"): self._tutor_select,
            ("tutor", "message"): self._tutor_message,
            ("file_task", "submit"): self._file_task,
            ("business", "swot"): self._business_swot,
            ("business", "proposal"): self._business_proposal,
            ("business", "plan"): self._business_plan,
            ("business", "generate"): self._business_generate,
            ("business", "marketing"): self._business_marketing,
            ("creative", "rewrite"): self._creative_rewrite,
            ("creative", "script"): self._creative_script,
            ("creative", "audio_topic"): self._creative_audio_topic,
            ("creative", "audio_script"): self._creative_audio_script,
            ("science", "plan"): self._science_plan,
            ("science", "generate"): self._science_generate,
            ("science_file", "submit"): self._science_file,
            ("code", "analyze"): self._code_analyze,
            ("code", "generate"): self._code_generate,
            ("code", "cancel"): self._code_cancel,
            ("thesis", "submit"): self._thesis,
            ("analysis", "submit"): self._analysis,
            ("forecasting", "submit"): self._forecasting,
        }

    # -- public API -------------------------------------------------------

    def actions(self, flow: str) -> List[str]:
        return [action for name, action in self._handlers if name == flow]

    def navigate(self, board: FlowBoard, doc_type: str, age: Optional[int] = None) -> None:
        """Select a document type, resetting every flow.

        Student types take the given age (default 12); other types ignore it.
        """
        try:
            selected = DocumentType(doc_type)
        except ValueError:
            raise InvalidTransition(f"Unknown document type: {doc_type}", docType=doc_type)
        if selected in STUDENT_DOC_TYPES_STANDARD or selected in STUDENT_DOC_TYPES_INTERACTIVE:
            board.select(doc_type, age if age is not None else DEFAULT_CHILD_AGE)
        else:
            board.select(doc_type)

    def start(self, board: FlowBoard, code: str, flow: str) -> FlowState:
        """Reset all flows and enter ``flow`` at the step its document type begins with."""
        definition = self._definition(flow)
        doc_type = board.doc_type if board.doc_type in definition.doc_types else definition.doc_types[0]
        board.select(doc_type)

        account = self.repo.require(code)
        try:
            ensure_balance(account, definition.min_cost(doc_type))
        except InsufficientBalance as e:
            board.error = e.message
            raise

        state = board.state(flow)
        move(definition, state, definition.entry_step(doc_type))
        return state

    def perform(
        self,
        board: FlowBoard,
        code: str,
        flow: str,
        action: str,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Sequence[UploadedFile]] = None,
    ) -> FlowState:
        self._definition(flow)
        handler = self._handlers.get((flow, action))
        if handler is None:
            raise InvalidTransition(f"Unknown action '{action}' for the {flow} flow.", flow=flow)
        state = board.state(flow)
        board.error = None
        board.error_code = None
        handler(board, state, code, dict(data or {}), list(files or []))
        return state

    def generate_standard(
        self, board: FlowBoard, code: str, topic: str, age: Optional[int] = None
    ) -> Optional[Dict[str, Any]]:
        """Single-shot generation for the standard student document types.

        A backend failure is left on the board as its error and ``None`` is
        returned; the debit is not refunded.
        """
        if board.doc_type not in {t.value for t in STUDENT_DOC_TYPES_STANDARD}:
            raise InvalidTransition(f"'{board.doc_type}' is handled by a guided flow.", docType=board.doc_type)
        if not topic or not topic.strip():
            raise InvalidTransition("Field 'topic' is required.", field="topic")
        if age is not None:
            board.age = age

        self._charge(code, costs.STANDARD_TEXT)
        board.loading, board.result, board.error, board.notice = True, None, None, None
        board.error_code = None
        board.progress = "Writing the text..."
        doc_type = board.doc_type
        try:
            response = self.backend.call("generateText", {"docType": doc_type, "topic": topic, "age": board.age})
        except BackendError as e:
            _LOGGER.warning("Standard generation failed for %s: %s", code, e.message)
            board.error = e.message
            board.error_code = e.code
            return None
        finally:
            board.loading = False
            board.progress = ""

        result = self._result(doc_type, response)
        result.update(self._record(code, doc_type, topic, result["text"]))
        board.result = result
        board.notice = result.get("notice")
        return result

    # -- shared machinery -------------------------------------------------

    def _definition(self, flow: str) -> FlowDefinition:
        if flow not in FLOWS:
            raise InvalidTransition(f"Unknown flow: {flow}", flow=flow)
        return FLOWS[flow]

    def _charge(self, code: str, cost: int) -> None:
        self.repo.transact(code, lambda account: debit(account, cost), check_storage=False)

    def _begin(self, board: FlowBoard, state: FlowState, to_step: str, progress: str) -> None:
        move(FLOWS[state.flow], state, to_step)
        state.progress = progress
        board.loading = True
        board.result = None
        board.notice = None
        board.progress = progress

    def _set_progress(self, board: FlowBoard, state: FlowState, progress: str) -> None:
        state.progress = progress
        if board.is_current(state):
            board.progress = progress

    def _end(self, board: FlowBoard, state: FlowState) -> None:
        state.progress = ""
        if board.is_current(state):
            board.loading = False
            board.progress = ""

    def _fail(self, board: FlowBoard, state: FlowState, input_step: str, error: BackendError) -> None:
        _LOGGER.warning("Flow %s failed at %s: %s", state.flow, state.step, error.message)
        fail(state, input_step, error.message, error.code)
        if board.is_current(state):
            board.error = error.message
            board.error_code = error.code

    def _reject(self, board: FlowBoard, state: FlowState, input_step: str, message: str) -> None:
        fail(state, input_step, message)
        board.error = message
        raise InvalidTransition(message, flow=state.flow, step=input_step)

    def _result(self, doc_type: str, response: Any, **extra: Any) -> Dict[str, Any]:
        body = response if isinstance(response, dict) else {"text": str(response or "")}
        text = body.get("text") or ""
        result: Dict[str, Any] = {"docType": body.get("docType") or doc_type, "text": text, "uniqueness": body.get("uniqueness", 0)}
        metrics = text_metrics(text)
        result["tokenCount"] = body.get("tokenCount", metrics["tokenCount"])
        result["pageCount"] = body.get("pageCount", metrics["pageCount"])
        if body.get("sources"):
            result["sources"] = body["sources"]
        if body.get("plan"):
            result["plan"] = body["plan"]
        result.update(extra)
        return result

    def _record(self, code: str, doc_type: str, title: str, text: str) -> Dict[str, Any]:
        """Store the generation in history; a full storage quota only produces a notice."""
        record = new_generation_record(doc_type, title, text)
        try:
            self.repo.transact(code, lambda account: record_generation(account, record))
        except StorageLimitExceeded as e:
            _LOGGER.warning("Generation for %s not saved to history: %s", code, e.message)
            return {"saved": False, "notice": e.message}
        return {"saved": True, "generationId": record.id}

    def _complete(self, board: FlowBoard, state: FlowState, code: str, result: Dict[str, Any], title: str) -> None:
        result.update(self._record(code, result["docType"], title, result["text"]))
        if not board.is_current(state):
            _LOGGER.info("Flow %s was reset while generating; dropping the result", state.flow)
            return
        move(FLOWS[state.flow], state, "completed")
        board.result = result
        board.notice = result.get("notice")

    def _run_single(
        self,
        board: FlowBoard,
        state: FlowState,
        code: str,
        *,
        input_step: str,
        cost: int,
        operation: str,
        payload: Dict[str, Any],
        doc_type: str,
        title: str,
        progress: str,
        files: Optional[List[UploadedFile]] = None,
    ) -> None:
        require_step(FLOWS[state.flow], state, input_step)
        self._charge(code, cost)
        self._begin(board, state, "generating", progress)
        try:
            response = self.backend.call(operation, payload, files or None)
        except BackendError as e:
            self._fail(board, state, input_step, e)
            return
        finally:
            self._end(board, state)
        self._complete(board, state, code, self._result(doc_type, response), title)

    def _request_plan(
        self,
        board: FlowBoard,
        state: FlowState,
        code: str,
        *,
        input_step: str,
        cost: int,
        operation: str,
        payload: Dict[str, Any],
        items_key: str,
        context: Dict[str, Any],
        progress: str,
        files: Optional[List[UploadedFile]] = None,
    ) -> None:
        require_step(FLOWS[state.flow], state, input_step)
        self._charge(code, cost)
        self._begin(board, state, "generating_plan", progress)
        try:
            plan = self.backend.call(operation, payload, files or None)
            if not isinstance(plan, dict) or not isinstance(plan.get(items_key), list):
                raise BackendError(f"The generated plan has no {items_key}.")
        except BackendError as e:
            self._fail(board, state, input_step, e)
            return
        finally:
            self._end(board, state)

        state.plan = {"title": plan.get("title", ""), items_key: plan[items_key]}
        state.context.update(context)
        move(FLOWS[state.flow], state, "plan_review")

    def _run_sections(
        self,
        board: FlowBoard,
        state: FlowState,
        code: str,
        data: Dict[str, Any],
        *,
        items_key: str,
        generating_step: str,
        operation: str,
        payload_fn: Callable[[Dict[str, Any], str], Dict[str, Any]],
        heading_fn: Callable[[int, Dict[str, Any], str], str],
        doc_type: str,
        label: str,
    ) -> None:
        """Generate a reviewed plan section by section.

        The whole cost (one generation per section) is debited before the
        first call and is not refunded if a later section fails.
        """
        require_step(FLOWS[state.flow], state, "plan_review")
        plan = data.get("plan") or state.plan
        if not isinstance(plan, dict) or not isinstance(plan.get(items_key), list) or not plan[items_key]:
            self._reject(board, state, "plan_review", "The plan is missing or empty.")
        if not all(isinstance(item, dict) for item in plan[items_key]):
            self._reject(board, state, "plan_review", f"Every {label} in the plan must be an object.")
        state.plan = {"title": plan.get("title", ""), items_key: list(plan[items_key])}
        items = state.plan[items_key]
        plan_title = state.plan["title"]

        self._charge(code, costs.sections_cost(items))
        self._begin(board, state, generating_step, f"Preparing the {label}s...")
        text = f"# {plan_title}\n\n"
        try:
            for index, item in enumerate(items):
                self._set_progress(
                    board, state, f'Writing {label} {index + 1}/{len(items)}: "{item.get("title", "")}"...'
                )
                response = self.backend.call(operation, payload_fn(item, plan_title))
                section_text = response.get("text", "") if isinstance(response, dict) else str(response or "")
                text += heading_fn(index, item, section_text)
                if index < len(items) - 1:
                    self.sleep(self.section_delay)
        except BackendError as e:
            self._fail(board, state, "plan_review", e)
            return
        finally:
            self._end(board, state)

        result = {"docType": doc_type, "text": text, "uniqueness": 0, **text_metrics(text), "plan": state.plan}
        self._complete(board, state, code, result, plan_title)

    def _chat_message(
        self,
        board: FlowBoard,
        state: FlowState,
        code: str,
        data: Dict[str, Any],
        *,
        operation: str,
        chat_context: Dict[str, Any],
    ) -> None:
        require_step(FLOWS[state.flow], state, "chatting")
        text = _field(data, "text")
        self._charge(code, costs.CHAT_MESSAGE)
        messages: List[Dict[str, Any]] = state.context.setdefault("messages", [])
        history = list(messages)
        messages.append(ChatMessage(role="user", text=text).to_dict())
        board.loading = True
        try:
            response = self.backend.call(
                operation, {"chatContext": {**chat_context, "history": history}, "message": text}
            )
        except BackendError as e:
            _LOGGER.warning("Chat in flow %s failed: %s", state.flow, e.message)
            messages.append(ChatMessage(role="model", text=f"Error: {e.message}").to_dict())
            state.error, state.error_code = e.message, e.code
            if board.is_current(state):
                board.error = e.message
            return
        finally:
            if board.is_current(state):
                board.loading = False

        body = response if isinstance(response, dict) else {"text": str(response or "")}
        reply = ChatMessage(role="model", text=body.get("text", ""), sources=_sources(body.get("sources")))
        messages.append(reply.to_dict())
        state.error = state.error_code = None

    # -- astrology --------------------------------------------------------

    def _astrology_select(self, board, state, code, data, files) -> None:
        require_step(FLOWS["astrology"], state, "selection")
        kind = data.get("type")
        if kind == "natal":
            account = self.repo.require(code)
            if account.generations < costs.NATAL_CHART:
                message = f"A natal chart requires {costs.NATAL_CHART} generations."
                state.error = board.error = message
                raise InsufficientBalance(required=costs.NATAL_CHART, available=account.generations)
            move(FLOWS["astrology"], state, "natal_form")
        elif kind == "horoscope":
            move(FLOWS["astrology"], state, "horoscope_form")
        else:
            raise InvalidTransition("Choose 'natal' or 'horoscope'.", flow="astrology")

    def _astrology_natal(self, board, state, code, data, files) -> None:
        payload = {"date": _field(data, "date"), "time": _field(data, "time"), "place": _field(data, "place")}
        self._run_single(
            board, state, code,
            input_step="natal_form",
            cost=costs.NATAL_CHART,
            operation="generateNatalChart",
            payload=payload,
            doc_type=DocumentType.ASTROLOGY.value,
            title="Natal chart",
            progress="Building the chart...",
        )

    def _astrology_horoscope(self, board, state, code, data, files) -> None:
        self._run_single(
            board, state, code,
            input_step="horoscope_form",
            cost=costs.HOROSCOPE,
            operation="generateHoroscope",
            payload={"date": _field(data, "date")},
            doc_type=DocumentType.ASTROLOGY.value,
            title="Horoscope",
            progress="Preparing the forecast...",
        )

    # -- book writing -----------------------------------------------------

    def _book_plan(self, board, state, code, data, files) -> None:
        request = {
            "genre": _field(data, "genre"),
            "style": _field(data, "style"),
            "chaptersCount": int(data.get("chaptersCount") or 5),
            "userPrompt": _field(data, "userPrompt"),
            "readerAge": int(data.get("readerAge") or 18),
        }
        self._request_plan(
            board, state, code,
            input_step="form",
            cost=costs.BOOK_PLAN,
            operation="generateBookPlan",
            payload=request,
            items_key="chapters",
            context={"genre": request["genre"], "style": request["style"], "readerAge": request["readerAge"]},
            progress="Outlining your book...",
        )

    def _book_generate(self, board, state, code, data, files) -> None:
        context = state.context
        self._run_sections(
            board, state, code, data,
            items_key="chapters",
            generating_step="generating_chapters",
            operation="generateSingleChapter",
            payload_fn=lambda chapter, title: {
                "chapter": chapter,
                "bookTitle": title,
                "genre": context.get("genre"),
                "style": context.get("style"),
                "readerAge": context.get("readerAge"),
            },
            heading_fn=lambda index, chapter, text: f"## {chapter.get('title', '')}\n\n{text}\n\n",
            doc_type=DocumentType.BOOK_WRITING.value,
            label="chapter",
        )

    # -- single-shot flows ------------------------------------------------

    def _personal_analysis(self, board, state, code, data, files) -> None:
        request = {"gender": data.get("gender") or "female", "userPrompt": _field(data, "userPrompt")}
        self._run_single(
            board, state, code,
            input_step="form",
            cost=costs.PERSONAL_ANALYSIS,
            operation="generatePersonalAnalysis",
            payload=request,
            doc_type=DocumentType.PERSONAL_ANALYSIS.value,
            title=f'Analysis: "{_excerpt(request["userPrompt"])}"',
            progress="Running the personal analysis...",
        )

    def _document_analysis(self, board, state, code, data, files) -> None:
        if not files:
            self._reject(board, state, "upload_form", "Attach at least one document.")
        prompt = data.get("prompt") or ""
        self._run_single(
            board, state, code,
            input_step="upload_form",
            cost=costs.DOCUMENT_ANALYSIS,
            operation="analyzeUserDocuments",
            payload={"prompt": prompt},
            doc_type=DocumentType.DOCUMENT_ANALYSIS.value,
            title=f'Document analysis: "{_excerpt(prompt)}"',
            progress="Uploading files...",
            files=files,
        )

    def _file_task(self, board, state, code, data, files) -> None:
        if not files:
            self._reject(board, state, "upload_form", "Attach at least one file with the task.")
        prompt = data.get("prompt") or ""
        doc_type = board.doc_type
        self._run_single(
            board, state, code,
            input_step="upload_form",
            cost=costs.file_task_cost(doc_type),
            operation="solveTaskFromFiles",
            payload={"prompt": prompt, "docType": doc_type},
            doc_type=doc_type,
            title=f"{doc_type}: {prompt or 'Files without a topic'}",
            progress="Uploading files...",
            files=files,
        )

    def _science_file(self, board, state, code, data, files) -> None:
        if not files:
            self._reject(board, state, "upload_form", "Attach at least one file with the materials.")
        prompt = data.get("prompt") or ""
        doc_type = board.doc_type
        self._run_single(
            board, state, code,
            input_step="upload_form",
            cost=costs.SCIENCE_FILE_TASK,
            operation="analyzeScienceTaskFromFiles",
            payload={"prompt": prompt, "docType": doc_type},
            doc_type=doc_type,
            title=f"{doc_type}: {prompt or 'File analysis'}",
            progress="Analyzing your research materials...",
            files=files,
        )

    def _analysis(self, board, state, code, data, files) -> None:
        prompt = data.get("prompt") or ""
        if not files and not prompt:
            self._reject(board, state, "upload_form", "Attach files or describe what to analyze.")
        doc_type = board.doc_type
        fallback = files[0].name if files else "Analysis"
        self._run_single(
            board, state, code,
            input_step="upload_form",
            cost=costs.analysis_cost(doc_type),
            operation="performAnalysis",
            payload={"prompt": prompt, "docType": doc_type},
            doc_type=doc_type,
            title=f"{doc_type}: {prompt or fallback}",
            progress="Running the analysis...",
            files=files,
        )

    def _forecasting(self, board, state, code, data, files) -> None:
        prompt = _field(data, "prompt")
        self._run_single(
            board, state, code,
            input_step="form",
            cost=costs.FORECASTING,
            operation="generateForecasting",
            payload={"prompt": prompt},
            doc_type=DocumentType.FORECASTING.value,
            title=f"Forecast: {_excerpt(prompt)}",
            progress="Collecting data for the forecast...",
        )

    # -- chats ------------------------------------------------------------

    def _consultation_select(self, board, state, code, data, files) -> None:
        require_step(FLOWS["consultation"], state, "selection")
        specialist = data.get("specialist")
        if not isinstance(specialist, dict) or not specialist.get("name"):
            raise InvalidTransition("Choose a specialist.", flow="consultation")
        greeting = f'Hello! I am your virtual assistant in the role of "{specialist["name"].lower()}". How can I help?'
        state.context = {"specialist": specialist, "messages": [ChatMessage(role="model", text=greeting).to_dict()]}
        move(FLOWS["consultation"], state, "chatting")

    def _consultation_message(self, board, state, code, data, files) -> None:
        self._chat_message(
            board, state, code, data,
            operation="sendSpecialistMessage",
            chat_context={"specialist": state.context.get("specialist")},
        )

    def _tutor_select(self, board, state, code, data, files) -> None:
        require_step(FLOWS["tutor"], state, "subject_selection")
        subject = _field(data, "subject")
        intro = (
            f'Hi! I am your personal tutor in "{subject}". Nice to meet you!\n\n'
            "Ask me anything about the subject, ask me to explain difficult material or to help "
            "with your homework. We will work through everything together, step by step.\n\n"
            "Where shall we start?"
        )
        state.context = {
            "subject": subject,
            "age": board.age,
            "messages": [ChatMessage(role="model", text=intro).to_dict()],
        }
        move(FLOWS["tutor"], state, "chatting")

    def _tutor_message(self, board, state, code, data, files) -> None:
        self._chat_message(
            board, state, code, data,
            operation="sendTutorMessage",
            chat_context={"subject": state.context.get("subject"), "age": state.context.get("age")},
        )

    # -- business ---------------------------------------------------------

    def _business_swot(self, board, state, code, data, files) -> None:
        description = _field(data, "description")
        self._run_single(
            board, state, code,
            input_step="swot_form",
            cost=costs.SWOT_ANALYSIS,
            operation="generateSwotAnalysis",
            payload={"description": description},
            doc_type=DocumentType.SWOT_ANALYSIS.value,
            title=f"SWOT: {_excerpt(description, 50)}",
            progress="Running the SWOT analysis...",
        )

    def _business_proposal(self, board, state, code, data, files) -> None:
        request = {"product": _field(data, "product"), "client": _field(data, "client"), "goals": data.get("goals", "")}
        self._run_single(
            board, state, code,
            input_step="proposal_form",
            cost=costs.COMMERCIAL_PROPOSAL,
            operation="generateCommercialProposal",
            payload=request,
            doc_type=DocumentType.COMMERCIAL_PROPOSAL.value,
            title=f"Proposal for: {request['client']}",
            progress="Drafting the commercial proposal...",
        )

    def _business_plan(self, board, state, code, data, files) -> None:
        request = {
            "idea": _field(data, "idea"),
            "industry": _field(data, "industry"),
            "sectionsCount": int(data.get("sectionsCount") or 5),
        }
        self._request_plan(
            board, state, code,
            input_step="business_plan_form",
            cost=costs.BUSINESS_PLAN_OUTLINE,
            operation="generateBusinessPlan",
            payload=request,
            items_key="sections",
            context={"industry": request["industry"]},
            progress="Structuring the business plan...",
        )

    def _business_generate(self, board, state, code, data, files) -> None:
        industry = state.context.get("industry")
        self._run_sections(
            board, state, code, data,
            items_key="sections",
            generating_step="generating",
            operation="generateSingleBusinessSection",
            payload_fn=lambda section, title: {"section": section, "planTitle": title, "industry": industry},
            heading_fn=lambda index, section, text: f"## {index + 1}. {section.get('title', '')}\n\n{text}\n\n",
            doc_type=DocumentType.BUSINESS_PLAN.value,
            label="section",
        )

    def _business_marketing(self, board, state, code, data, files) -> None:
        request = {
            "copyType": _field(data, "copyType"),
            "product": _field(data, "product"),
            "audience": data.get("audience", ""),
            "tone": data.get("tone", ""),
            "details": data.get("details", ""),
        }
        self._run_single(
            board, state, code,
            input_step="marketing_form",
            cost=costs.MARKETING_COPY,
            operation="generateMarketingCopy",
            payload=request,
            doc_type=DocumentType.MARKETING_COPY.value,
            title=f"{request['copyType']}: {request['product']}",
            progress="Writing the marketing copy...",
        )

    # -- creative ---------------------------------------------------------

    def _creative_rewrite(self, board, state, code, data, files) -> None:
        original = data.get("originalText") or ""
        if not original and not files:
            self._reject(board, state, "rewriting_form", "Paste the text or attach a file to rewrite.")
        request = {"originalText": original, "goal": _field(data, "goal")}
        for optional in ("style", "instructions"):
            if data.get(optional):
                request[optional] = data[optional]
        self._run_single(
            board, state, code,
            input_step="rewriting_form",
            cost=costs.rewriting_cost(original, bool(files)),
            operation="rewriteText",
            payload=request,
            doc_type=DocumentType.TEXT_REWRITING.value,
            title=f"Text rewriting (goal: {request['goal']})",
            progress="Reworking your text...",
            files=files[:1],
        )

    def _creative_script(self, board, state, code, data, files) -> None:
        prompt = data.get("prompt") or ""
        doc_type = board.doc_type
        self._run_single(
            board, state, code,
            input_step="script_upload_form",
            cost=costs.SCRIPT_ANALYSIS,
            operation="analyzeCreativeTaskFromFiles",
            payload={"text": data.get("text") or "", "prompt": prompt, "docType": doc_type},
            doc_type=doc_type,
            title=f"{doc_type}: {prompt or 'Materials analysis'}",
            progress="Uploading files...",
            files=files,
        )

    def _creative_audio_topic(self, board, state, code, data, files) -> None:
        require_step(FLOWS["creative"], state, "audio_script_topic")
        topic = _field(data, "topic")
        try:
            duration = float(data.get("duration"))
        except (TypeError, ValueError):
            raise InvalidTransition("Field 'duration' must be a number of minutes.", field="duration")
        if duration <= 0:
            raise InvalidTransition("Field 'duration' must be positive.", field="duration")
        state.context = {"topic": topic, "duration": duration}
        move(FLOWS["creative"], state, "audio_script_config")

    def _creative_audio_script(self, board, state, code, data, files) -> None:
        require_step(FLOWS["creative"], state, "audio_script_config")
        topic = state.context.get("topic")
        duration = state.context.get("duration")
        if not topic or not duration:
            self._reject(board, state, "audio_script_topic", "The topic or duration is missing.")
        request = {
            "topic": topic,
            "duration": duration,
            "format": data.get("format") or "monologue",
            "type": data.get("type") or "podcast",
            "voice1": _field(data, "voice1"),
        }
        if data.get("voice2"):
            request["voice2"] = data["voice2"]
        self._run_single(
            board, state, code,
            input_step="audio_script_config",
            cost=costs.audio_script_cost(duration),
            operation="generateAudioScript",
            payload=request,
            doc_type=DocumentType.AUDIO_SCRIPT.value,
            title=f"Audio script: {_excerpt(topic)}",
            progress="Writing your audio script...",
        )

    # -- science ----------------------------------------------------------

    def _science_plan(self, board, state, code, data, files) -> None:
        request = {
            "topic": _field(data, "topic"),
            "hypothesis": data.get("hypothesis", ""),
            "field": _field(data, "field"),
            "sectionsCount": int(data.get("sectionsCount") or 5),
        }
        is_grant = board.doc_type == DocumentType.GRANT_PROPOSAL.value
        self._request_plan(
            board, state, code,
            input_step="article_form",
            cost=costs.ARTICLE_PLAN,
            operation="generateGrantPlan" if is_grant else "generateArticlePlan",
            payload=request,
            items_key="sections",
            context={"field": request["field"]},
            progress="Structuring the grant proposal..." if is_grant else "Structuring the article...",
            files=files[:1] if is_grant else None,
        )

    def _science_generate(self, board, state, code, data, files) -> None:
        field = state.context.get("field")
        self._run_sections(
            board, state, code, data,
            items_key="sections",
            generating_step="generating",
            operation="generateSingleArticleSection",
            payload_fn=lambda section, title: {"section": section, "planTitle": title, "field": field},
            heading_fn=lambda index, section, text: f"## {index + 1}. {section.get('title', '')}\n\n{text}\n\n",
            doc_type=board.doc_type,
            label="section",
        )

    # -- code -------------------------------------------------------------

    def _code_analyze(self, board, state, code, data, files) -> None:
        require_step(FLOWS["code"], state, "form")
        request = {"language": _field(data, "language"), "taskDescription": _field(data, "taskDescription")}
        self._charge(code, costs.CODE_ANALYSIS)
        self._begin(board, state, "analyzing", "Analyzing your task...")
        try:
            analysis = self.backend.call("analyzeCodeTask", request)
            if not isinstance(analysis, dict):
                raise BackendError("The code analysis has an unexpected format.")
        except BackendError as e:
            self._fail(board, state, "form", e)
            return
        finally:
            self._end(board, state)

        try:
            analysis_cost = max(1, int(analysis.get("cost") or 1))
        except (TypeError, ValueError):
            analysis_cost = 1
        state.context = {"request": request, "analysis": {**analysis, "cost": analysis_cost}}
        move(FLOWS["code"], state, "review")

    def _code_generate(self, board, state, code, data, files) -> None:
        require_step(FLOWS["code"], state, "review")
        request = state.context.get("request")
        analysis = state.context.get("analysis")
        if not request or not analysis:
            self._reject(board, state, "form", "The code analysis is missing.")
        self._charge(code, analysis["cost"])
        self._begin(board, state, "generating", "Generating code...")
        try:
            response = self.backend.call("generateCode", request)
        except BackendError as e:
            self._fail(board, state, "review", e)
            return
        finally:
            self._end(board, state)
        title = f"Code ({request['language']}): {_excerpt(request['taskDescription'])}"
        self._complete(board, state, code, self._result(DocumentType.CODE_GENERATION.value, response), title)

    def _code_cancel(self, board, state, code, data, files) -> None:
        require_step(FLOWS["code"], state, "review")
        state.context = {}
        move(FLOWS["code"], state, "form")

    # -- thesis -----------------------------------------------------------

    def _thesis(self, board, state, code, data, files) -> None:
        require_step(FLOWS["thesis"], state, "form")
        topic = _field(data, "topic")
        field = data.get("field") or ""
        sections = [s for s in data.get("sections") or [] if isinstance(s, dict)]
        cost = costs.thesis_cost(sections)
        has_own_content = any(s.get("contentType") in ("text", "file") for s in sections)
        if cost == 0 and not has_own_content:
            self._reject(board, state, "form", "Choose at least one section to generate or add your own content.")

        self._charge(code, cost)
        self._begin(board, state, "generating", "Starting work on your thesis...")
        to_generate = [s for s in sections if s.get("contentType") == "generate"]
        generated: Dict[str, str] = {}
        try:
            if to_generate:
                self._set_progress(board, state, "Generating sections...")
                response = self.backend.call(
                    "generateThesisSections", {"topic": topic, "field": field, "sections": to_generate}
                )
                if isinstance(response, list):
                    generated = {str(item.get("id")): item.get("text", "") for item in response if isinstance(item, dict)}
        except BackendError as e:
            self._fail(board, state, "form", e)
            return
        finally:
            self._end(board, state)

        uploads = {upload.name: upload for upload in files}
        text = f"# Thesis\n## Topic: {topic}\n\n"
        for section in sections:
            kind = section.get("contentType")
            if kind == "skip":
                continue
            text += f"\n\n### {section.get('title', '')}\n\n"
            section_id = str(section.get("id"))
            if section_id in generated:
                text += generated[section_id]
            elif kind == "text":
                text += section.get("content") or ""
            elif kind == "file" and section.get("fileName"):
                text += self._file_section(uploads.get(section["fileName"]), section["fileName"])

        result = {"docType": DocumentType.THESIS.value, "text": text, "uniqueness": 0, **text_metrics(text)}
        self._complete(board, state, code, result, f"Thesis: {topic}")

    @staticmethod
    def _file_section(upload: Optional[UploadedFile], name: str) -> str:
        if upload is not None:
            extracted = extract_text_from_upload(upload.content, upload.name, upload.mime_type)
            if extracted:
                return extracted
        return f"[Contents of the file {name} will be inserted here]"
