"""Wrapper utilities around the OpenAI client, plus a prompt-based generation backend."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

from openai import APIError, AuthenticationError, OpenAI, RateLimitError

from gendesk.errors import BackendError, InvalidCredentialError, QuotaExceededError
from gendesk.services.backend_client import GenerationBackend, UploadedFile
from gendesk.utils.text import extract_text_from_upload

_LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")


def get_openai_client() -> OpenAI:
    """Instantiate an OpenAI client using the configured API key."""
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY environment variable is not set")
    return OpenAI(api_key=api_key)


def create_response(
    client: OpenAI,
    prompt: str,
    *,
    model: Optional[str] = None,
    max_output_tokens: int = 4000,
):
    """Invoke the Responses API with shared defaults."""
    return client.responses.create(
        model=model or DEFAULT_MODEL,
        input=prompt,
        max_output_tokens=max_output_tokens,
    )


# Operations whose reply is a JSON plan rather than free text.
PLAN_OPERATIONS = {
    "generateBookPlan": "chapters",
    "generateBusinessPlan": "sections",
    "generateArticlePlan": "sections",
    "generateGrantPlan": "sections",
}

TASK_LINES = {
    "generateText": "Write a {docType} on the topic \"{topic}\" for a reader aged {age}.",
    "generateNatalChart": "Compose a natal chart reading for a person born on {date} at {time} in {place}.",
    "generateHoroscope": "Write a horoscope for a person born on {date}.",
    "generateSingleChapter": "Write the chapter below of the book \"{bookTitle}\" ({genre}, {style} style, readers aged {readerAge}).",
    "generateSingleBusinessSection": "Write the section below of the business plan \"{planTitle}\" for the {industry} industry.",
    "generateSingleArticleSection": "Write the section below of the academic article \"{planTitle}\" in the field of {field}.",
    "generatePersonalAnalysis": "Write a personal analysis for a {gender} reader. Their request: {userPrompt}",
    "generateSwotAnalysis": "Prepare a SWOT analysis for: {description}",
    "generateCommercialProposal": "Write a commercial proposal for {product} addressed to {client}. Goals: {goals}",
    "generateMarketingCopy": "Write a {copyType} for {product}, audience {audience}, tone {tone}. Details: {details}",
    "rewriteText": "Rewrite the text below. Goal: {goal}.",
    "generateAudioScript": "Write a {duration}-minute {format} audio script ({type}) on: {topic}",
    "generateCode": "Write {language} code for the task: {taskDescription}",
    "generateForecasting": "Prepare a grounded forecast for: {prompt}",
    "solveTaskFromFiles": "Solve the task ({docType}) from the attached materials. {prompt}",
    "analyzeScienceTaskFromFiles": "Carry out the research task ({docType}) from the attached materials. {prompt}",
    "analyzeCreativeTaskFromFiles": "Analyze the creative materials ({docType}). {prompt}",
    "analyzeUserDocuments": "Analyze the attached documents. {prompt}",
    "performAnalysis": "Carry out the analysis ({docType}) of the attached materials. {prompt}",
}


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return ""


class OpenAIGenerationBackend(GenerationBackend):
    """Serves backend operations directly with the OpenAI Responses API."""

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None) -> None:
        self._client = client
        self.model = model

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            try:
                self._client = get_openai_client()
            except RuntimeError as e:
                raise InvalidCredentialError(str(e)) from e
        return self._client

    def call(self, operation: str, payload: Dict[str, Any], files: Optional[List[UploadedFile]] = None) -> Any:
        prompt = self.build_prompt(operation, payload, files or [])
        text = self._complete(operation, prompt)

        if operation in PLAN_OPERATIONS:
            return self._parse_plan(operation, text)
        if operation == "analyzeCodeTask":
            return self._parse_json(operation, text)
        if operation == "generateThesisSections":
            return self._parse_json(operation, text)
        if operation in ("sendMessage", "sendSpecialistMessage", "sendTutorMessage"):
            return {"text": text, "sources": []}
        return {"docType": payload.get("docType", ""), "text": text}

    def build_prompt(self, operation: str, payload: Dict[str, Any], files: List[UploadedFile]) -> str:
        prompt_lines: List[str] = ["You are a professional writer and analyst. Answer in Markdown.", ""]

        if operation in PLAN_OPERATIONS:
            key = PLAN_OPERATIONS[operation]
            prompt_lines.append(
                f"Create a plan for the request below. Reply ONLY with JSON of the form "
                f'{{"title": str, "{key}": [{{"title": str, "description": str, "generationPrompt": str}}]}}.'
            )
            prompt_lines.append(json.dumps(payload, ensure_ascii=False))
        elif operation == "analyzeCodeTask":
            prompt_lines.append(
                'Assess the coding task below. Reply ONLY with JSON {"plan": str, "complexity": str, "cost": int}, '
                "where cost is 1 for simple, 2 for medium and 3 for complex tasks."
            )
            prompt_lines.append(json.dumps(payload, ensure_ascii=False))
        elif operation == "generateThesisSections":
            prompt_lines.append(
                f"Write the thesis sections listed below for the topic \"{payload.get('topic', '')}\" "
                f"in the field of {payload.get('field', '')}. Reply ONLY with a JSON array of "
                '{"id": str, "text": str}, one entry per section, about 500 words per requested page.'
            )
            prompt_lines.append(json.dumps(payload.get("sections", []), ensure_ascii=False))
        elif operation in ("sendMessage", "sendSpecialistMessage", "sendTutorMessage"):
            prompt_lines.extend(self._chat_lines(operation, payload))
        else:
            template = TASK_LINES.get(operation)
            if template is None:
                raise BackendError(f"Unsupported operation: {operation}")
            prompt_lines.append(template.format_map(_Defaults(payload)))
            for key in ("chapter", "section"):
                if isinstance(payload.get(key), dict):
                    prompt_lines.append(payload[key].get("generationPrompt") or payload[key].get("description", ""))
            if payload.get("originalText"):
                prompt_lines.extend(["", "TEXT:", payload["originalText"]])
            if payload.get("text") and operation == "analyzeCreativeTaskFromFiles":
                prompt_lines.extend(["", "TEXT:", payload["text"]])

        for upload in files:
            excerpt = extract_text_from_upload(upload.content, upload.name, upload.mime_type)
            prompt_lines.append("")
            prompt_lines.append(f"ATTACHED FILE {upload.name}:")
            prompt_lines.append(excerpt or f"({upload.mime_type}, contents not readable as text)")

        return "\n".join(prompt_lines)

    @staticmethod
    def _chat_lines(operation: str, payload: Dict[str, Any]) -> List[str]:
        context = payload.get("chatContext") or {}
        lines: List[str] = []
        if operation == "sendSpecialistMessage":
            specialist = context.get("specialist") or {}
            lines.append(specialist.get("systemInstruction") or f"You are {specialist.get('name', 'a specialist')}.")
        elif operation == "sendTutorMessage":
            lines.append(
                f"You are a patient tutor in {context.get('subject', 'school subjects')} "
                f"for a student aged {context.get('age', '')}. Explain step by step."
            )
        else:
            lines.append(f"You are the personal assistant {context.get('assistant', 'mirra').capitalize()}.")

        history = context.get("history") or []
        if history:
            lines.append("")
            lines.append("CONVERSATION HISTORY:")
            for message in history[-20:]:
                lines.append(f"{message.get('role', 'user').upper()}: {message.get('text', '')[:500]}")

        attachment = payload.get("attachment")
        if attachment:
            lines.extend(["", f"SHARED DOCUMENT \"{attachment.get('title', '')}\":", attachment.get("text", "")])

        lines.extend(["", f"USER: {payload.get('message', '')}"])
        return lines

    def _complete(self, operation: str, prompt: str) -> str:
        try:
            completion = create_response(self.client, prompt, model=self.model)
        except RateLimitError as e:
            _LOGGER.warning("OpenAI quota exhausted during %s", operation)
            raise QuotaExceededError(str(e), status=429) from e
        except AuthenticationError as e:
            raise InvalidCredentialError(str(e), status=401) from e
        except APIError as e:
            _LOGGER.exception("OpenAI API error during %s", operation)
            raise BackendError("Upstream OpenAI request failed.") from e

        return (getattr(completion, "output_text", None) or "").strip()

    @staticmethod
    def _parse_json(operation: str, text: str) -> Any:
        cleaned = text.strip()
        if cleaned.startswith("```"):
            cleaned = cleaned.strip("`")
            if cleaned.lower().startswith("json"):
                cleaned = cleaned[4:]
        try:
            return json.loads(cleaned)
        except ValueError as e:
            raise BackendError(f"Could not parse the {operation} reply") from e

    def _parse_plan(self, operation: str, text: str) -> Dict[str, Any]:
        plan = self._parse_json(operation, text)
        key = PLAN_OPERATIONS[operation]
        if not isinstance(plan, dict) or not isinstance(plan.get(key), list):
            raise BackendError(f"The {operation} reply has no {key}")
        return plan
