"""Domain records persisted in the account map.

Records serialize to the camelCase layout the browser client reads, and
optional fields are omitted rather than written as null so that a
load/save cycle reproduces the stored bytes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

CHAT_HISTORY_LIMIT = 50
GENERATION_HISTORY_LIMIT = 20
FAVORITES_LIMIT = 2
DEFAULT_STORAGE_LIMIT_BYTES = 1 * 1024 * 1024  # 1 MiB

ASSISTANTS = ("mirra", "dary")
ASSISTANT_SETTINGS = ("internetEnabled", "memoryEnabled")


class DocumentType(str, Enum):
    # Student types
    COMPOSITION = "composition"
    SUMMARY = "summary"
    ABSTRACT = "abstract"
    REPORT = "report"
    ESSAY = "essay"
    REVIEW = "review"
    CHARACTER_PROFILE = "character_profile"
    TEXT_ANALYSIS = "text_analysis"
    TUTOR = "tutor"
    DO_HOMEWORK = "do_homework"
    SOLVE_CONTROL_WORK = "solve_control_work"

    # Advanced types
    SCIENTIFIC_RESEARCH = "scientific_research"
    THESIS = "thesis"
    TECH_IMPROVEMENT = "tech_improvement"
    BOOK_WRITING = "book_writing"
    ASTROLOGY = "astrology"
    PERSONAL_ANALYSIS = "personal_analysis"
    DOCUMENT_ANALYSIS = "document_analysis"
    CONSULTATION = "consultation"
    ACADEMIC_ARTICLE = "academic_article"
    GRANT_PROPOSAL = "grant_proposal"
    FORECASTING = "forecasting"

    # Business types
    SWOT_ANALYSIS = "swot_analysis"
    COMMERCIAL_PROPOSAL = "commercial_proposal"
    BUSINESS_PLAN = "business_plan"
    MARKETING_COPY = "marketing_copy"

    # Creative types
    TEXT_REWRITING = "text_rewriting"
    SCRIPT = "script"
    AUDIO_SCRIPT = "audio_script"

    # Code types
    CODE_GENERATION = "code_generation"

    # Analysis types
    ANALYSIS_SHORT = "analysis_short"
    ANALYSIS_VERIFY = "analysis_verify"


STUDENT_DOC_TYPES_STANDARD = (
    DocumentType.COMPOSITION,
    DocumentType.SUMMARY,
    DocumentType.ABSTRACT,
    DocumentType.REPORT,
    DocumentType.ESSAY,
    DocumentType.REVIEW,
    DocumentType.CHARACTER_PROFILE,
    DocumentType.TEXT_ANALYSIS,
)

STUDENT_DOC_TYPES_INTERACTIVE = (
    DocumentType.TUTOR,
    DocumentType.DO_HOMEWORK,
    DocumentType.SOLVE_CONTROL_WORK,
)

CHILDREN_AGES = tuple(range(6, 19))
DEFAULT_CHILD_AGE = 12


def serialized_size(payload: Dict[str, Any]) -> int:
    """Byte size of the compact UTF-8 JSON encoding of ``payload``."""
    return len(dumps(payload).encode("utf-8"))


def dumps(payload: Any) -> str:
    """Compact JSON encoding used for storage and size accounting."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


@dataclass
class WebSource:
    uri: str
    title: str

    def to_dict(self) -> Dict[str, Any]:
        return {"uri": self.uri, "title": self.title}


@dataclass
class ChatMessage:
    role: str  # "user" | "model"
    text: str
    sources: Optional[List[WebSource]] = None
    timestamp: Optional[int] = None
    shared_generation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role, "text": self.text}
        if self.sources is not None:
            data["sources"] = [source.to_dict() for source in self.sources]
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        if self.shared_generation_id is not None:
            data["sharedGenerationId"] = self.shared_generation_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        sources = data.get("sources")
        return cls(
            role=data["role"],
            text=data["text"],
            sources=[WebSource(s["uri"], s["title"]) for s in sources] if sources is not None else None,
            timestamp=data.get("timestamp"),
            shared_generation_id=data.get("sharedGenerationId"),
        )


@dataclass(frozen=True)
class GenerationRecord:
    id: str
    timestamp: int
    doc_type: str
    title: str
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "docType": self.doc_type,
            "title": self.title,
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationRecord":
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            doc_type=data["docType"],
            title=data["title"],
            text=data["text"],
        )


@dataclass(frozen=True)
class FavoriteService:
    doc_type: str
    age: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"docType": self.doc_type}
        if self.age is not None:
            data["age"] = self.age
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FavoriteService":
        return cls(doc_type=data["docType"], age=data.get("age"))


@dataclass(frozen=True)
class AssistantSettings:
    internet_enabled: bool = True
    memory_enabled: bool = True

    def to_dict(self) -> Dict[str, bool]:
        return {"internetEnabled": self.internet_enabled, "memoryEnabled": self.memory_enabled}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssistantSettings":
        return cls(
            internet_enabled=bool(data.get("internetEnabled", True)),
            memory_enabled=bool(data.get("memoryEnabled", True)),
        )

    def toggled(self, setting: str) -> "AssistantSettings":
        if setting == "internetEnabled":
            return replace(self, internet_enabled=not self.internet_enabled)
        if setting == "memoryEnabled":
            return replace(self, memory_enabled=not self.memory_enabled)
        raise ValueError(f"Unknown assistant setting: {setting}")


@dataclass
class Account:
    """One prepaid account, keyed by its access code in the account map."""

    generations: int = 0
    referrer_code: Optional[str] = None
    generation_history: List[GenerationRecord] = field(default_factory=list)
    favorite_services: List[FavoriteService] = field(default_factory=list)
    max_storage_size: int = DEFAULT_STORAGE_LIMIT_BYTES
    has_mirra: bool = False
    mirra_chat_history: List[ChatMessage] = field(default_factory=list)
    mirra_settings: AssistantSettings = field(default_factory=AssistantSettings)
    has_dary: bool = False
    dary_chat_history: List[ChatMessage] = field(default_factory=list)
    dary_settings: AssistantSettings = field(default_factory=AssistantSettings)

    def has_assistant(self, assistant: str) -> bool:
        return self.has_mirra if assistant == "mirra" else self.has_dary

    def chat_history(self, assistant: str) -> List[ChatMessage]:
        return self.mirra_chat_history if assistant == "mirra" else self.dary_chat_history

    def settings(self, assistant: str) -> AssistantSettings:
        return self.mirra_settings if assistant == "mirra" else self.dary_settings

    def with_chat_history(self, assistant: str, history: List[ChatMessage]) -> "Account":
        if assistant == "mirra":
            return replace(self, mirra_chat_history=history)
        return replace(self, dary_chat_history=history)

    def with_settings(self, assistant: str, settings: AssistantSettings) -> "Account":
        if assistant == "mirra":
            return replace(self, mirra_settings=settings)
        return replace(self, dary_settings=settings)

    def with_assistant(self, assistant: str) -> "Account":
        if assistant == "mirra":
            return replace(self, has_mirra=True)
        return replace(self, has_dary=True)

    def find_generation(self, generation_id: str) -> Optional[GenerationRecord]:
        return next((record for record in self.generation_history if record.id == generation_id), None)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"generations": self.generations}
        if self.referrer_code is not None:
            data["referrerCode"] = self.referrer_code
        data.update(
            {
                "generationHistory": [record.to_dict() for record in self.generation_history],
                "favoriteServices": [favorite.to_dict() for favorite in self.favorite_services],
                "maxStorageSize": self.max_storage_size,
                "hasMirra": self.has_mirra,
                "mirraChatHistory": [message.to_dict() for message in self.mirra_chat_history],
                "mirraSettings": self.mirra_settings.to_dict(),
                "hasDary": self.has_dary,
                "daryChatHistory": [message.to_dict() for message in self.dary_chat_history],
                "darySettings": self.dary_settings.to_dict(),
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        """Build an account from an already-normalized record (see account_migrations)."""
        return cls(
            generations=data["generations"],
            referrer_code=data.get("referrerCode"),
            generation_history=[GenerationRecord.from_dict(r) for r in data["generationHistory"]],
            favorite_services=[FavoriteService.from_dict(f) for f in data["favoriteServices"]],
            max_storage_size=data["maxStorageSize"],
            has_mirra=data["hasMirra"],
            mirra_chat_history=[ChatMessage.from_dict(m) for m in data["mirraChatHistory"]],
            mirra_settings=AssistantSettings.from_dict(data["mirraSettings"]),
            has_dary=data["hasDary"],
            dary_chat_history=[ChatMessage.from_dict(m) for m in data["daryChatHistory"]],
            dary_settings=AssistantSettings.from_dict(data["darySettings"]),
        )

    def data_size(self) -> int:
        return serialized_size(self.to_dict())


@dataclass(frozen=True)
class GenerationPackage:
    key: str
    name: str
    generations: int
    price: str

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "name": self.name, "generations": self.generations, "price": self.price}


PRICING_PACKAGES = (
    GenerationPackage("starter", "Starter", 10, "$1"),
    GenerationPackage("advanced", "Advanced", 200, "$15"),
    GenerationPackage("expert", "Expert", 1000, "$60"),
)


def find_package(key: str) -> Optional[GenerationPackage]:
    return next((pkg for pkg in PRICING_PACKAGES if pkg.key == key), None)
