"""Step/transition tables of every generation flow."""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from gendesk.models import DocumentType as D
from gendesk.services.flows.wizard import IDLE_STEP, FlowDefinition, Phase

C = Phase.CONFIGURING
R = Phase.REVIEWING
G = Phase.GENERATING
F = Phase.COMPLETED


def _edges(*pairs: Tuple[str, Iterable[str]]) -> Dict[str, FrozenSet[str]]:
    return {source: frozenset(targets) for source, targets in pairs}


def _single_shot(name: str, form: str, doc_types: Tuple[str, ...], min_cost: int) -> FlowDefinition:
    """Form -> generating -> completed, falling back to the form on failure."""
    return FlowDefinition(
        name=name,
        steps={form: C, "generating": G, "completed": F},
        transitions=_edges(
            (IDLE_STEP, [form]),
            (form, ["generating"]),
            ("generating", ["completed", form]),
        ),
        entry_steps={"*": form},
        min_costs={"*": min_cost},
        doc_types=doc_types,
    )


def _chat(name: str, selection: str, doc_type: str) -> FlowDefinition:
    return FlowDefinition(
        name=name,
        steps={selection: C, "chatting": C},
        transitions=_edges(
            (IDLE_STEP, [selection]),
            (selection, ["chatting"]),
        ),
        entry_steps={"*": selection},
        min_costs={"*": 1},
        doc_types=(doc_type,),
    )


ASTROLOGY = FlowDefinition(
    name="astrology",
    steps={"selection": C, "natal_form": C, "horoscope_form": C, "generating": G, "completed": F},
    transitions=_edges(
        (IDLE_STEP, ["selection"]),
        ("selection", ["natal_form", "horoscope_form"]),
        ("natal_form", ["generating"]),
        ("horoscope_form", ["generating"]),
        ("generating", ["completed", "natal_form", "horoscope_form"]),
    ),
    entry_steps={"*": "selection"},
    min_costs={"*": 1},
    doc_types=(D.ASTROLOGY.value,),
)

BOOK_WRITING = FlowDefinition(
    name="book_writing",
    steps={"form": C, "generating_plan": G, "plan_review": R, "generating_chapters": G, "completed": F},
    transitions=_edges(
        (IDLE_STEP, ["form"]),
        ("form", ["generating_plan"]),
        ("generating_plan", ["plan_review", "form"]),
        ("plan_review", ["generating_chapters"]),
        ("generating_chapters", ["completed", "plan_review"]),
    ),
    entry_steps={"*": "form"},
    min_costs={"*": 1},
    doc_types=(D.BOOK_WRITING.value,),
)

PERSONAL_ANALYSIS = _single_shot("personal_analysis", "form", (D.PERSONAL_ANALYSIS.value,), 1)
DOCUMENT_ANALYSIS = _single_shot("document_analysis", "upload_form", (D.DOCUMENT_ANALYSIS.value,), 2)
CONSULTATION = _chat("consultation", "selection", D.CONSULTATION.value)
TUTOR = _chat("tutor", "subject_selection", D.TUTOR.value)
FILE_TASK = _single_shot(
    "file_task", "upload_form", (D.DO_HOMEWORK.value, D.SOLVE_CONTROL_WORK.value), 1
)
SCIENCE_FILE = _single_shot(
    "science_file", "upload_form", (D.SCIENTIFIC_RESEARCH.value, D.TECH_IMPROVEMENT.value), 2
)
THESIS = _single_shot("thesis", "form", (D.THESIS.value,), 1)
ANALYSIS = _single_shot("analysis", "upload_form", (D.ANALYSIS_SHORT.value, D.ANALYSIS_VERIFY.value), 2)
FORECASTING = _single_shot("forecasting", "form", (D.FORECASTING.value,), 3)

BUSINESS = FlowDefinition(
    name="business",
    steps={
        "swot_form": C,
        "proposal_form": C,
        "business_plan_form": C,
        "marketing_form": C,
        "generating_plan": G,
        "plan_review": R,
        "generating": G,
        "completed": F,
    },
    transitions=_edges(
        (IDLE_STEP, ["swot_form", "proposal_form", "business_plan_form", "marketing_form"]),
        ("swot_form", ["generating"]),
        ("proposal_form", ["generating"]),
        ("marketing_form", ["generating"]),
        ("business_plan_form", ["generating_plan"]),
        ("generating_plan", ["plan_review", "business_plan_form"]),
        ("plan_review", ["generating"]),
        ("generating", ["completed", "swot_form", "proposal_form", "marketing_form", "plan_review"]),
    ),
    entry_steps={
        "*": "swot_form",
        D.SWOT_ANALYSIS.value: "swot_form",
        D.COMMERCIAL_PROPOSAL.value: "proposal_form",
        D.BUSINESS_PLAN.value: "business_plan_form",
        D.MARKETING_COPY.value: "marketing_form",
    },
    min_costs={"*": 1},
    doc_types=(
        D.SWOT_ANALYSIS.value,
        D.COMMERCIAL_PROPOSAL.value,
        D.BUSINESS_PLAN.value,
        D.MARKETING_COPY.value,
    ),
)

CREATIVE = FlowDefinition(
    name="creative",
    steps={
        "rewriting_form": C,
        "script_upload_form": C,
        "audio_script_topic": C,
        "audio_script_config": C,
        "generating": G,
        "completed": F,
    },
    transitions=_edges(
        (IDLE_STEP, ["rewriting_form", "script_upload_form", "audio_script_topic"]),
        ("rewriting_form", ["generating"]),
        ("script_upload_form", ["generating"]),
        ("audio_script_topic", ["audio_script_config"]),
        ("audio_script_config", ["generating", "audio_script_topic"]),
        ("generating", ["completed", "rewriting_form", "script_upload_form", "audio_script_config"]),
    ),
    entry_steps={
        "*": "rewriting_form",
        D.TEXT_REWRITING.value: "rewriting_form",
        D.SCRIPT.value: "script_upload_form",
        D.AUDIO_SCRIPT.value: "audio_script_topic",
    },
    min_costs={"*": 1, D.SCRIPT.value: 2, D.AUDIO_SCRIPT.value: 2},
    doc_types=(D.TEXT_REWRITING.value, D.SCRIPT.value, D.AUDIO_SCRIPT.value),
)

SCIENCE = FlowDefinition(
    name="science",
    steps={"article_form": C, "generating_plan": G, "plan_review": R, "generating": G, "completed": F},
    transitions=_edges(
        (IDLE_STEP, ["article_form"]),
        ("article_form", ["generating_plan"]),
        ("generating_plan", ["plan_review", "article_form"]),
        ("plan_review", ["generating"]),
        ("generating", ["completed", "plan_review"]),
    ),
    entry_steps={"*": "article_form"},
    min_costs={"*": 1},
    doc_types=(D.ACADEMIC_ARTICLE.value, D.GRANT_PROPOSAL.value),
)

CODE = FlowDefinition(
    name="code",
    steps={"form": C, "analyzing": G, "review": R, "generating": G, "completed": F},
    transitions=_edges(
        (IDLE_STEP, ["form"]),
        ("form", ["analyzing"]),
        ("analyzing", ["review", "form"]),
        ("review", ["generating", "form"]),
        ("generating", ["completed", "review"]),
    ),
    entry_steps={"*": "form"},
    min_costs={"*": 1},
    doc_types=(D.CODE_GENERATION.value,),
)

FLOWS: Dict[str, FlowDefinition] = {
    definition.name: definition
    for definition in (
        ASTROLOGY,
        BOOK_WRITING,
        PERSONAL_ANALYSIS,
        DOCUMENT_ANALYSIS,
        CONSULTATION,
        TUTOR,
        FILE_TASK,
        BUSINESS,
        CREATIVE,
        SCIENCE,
        SCIENCE_FILE,
        CODE,
        THESIS,
        ANALYSIS,
        FORECASTING,
    )
}

FLOW_BY_DOC_TYPE: Dict[str, str] = {
    doc_type: definition.name for definition in FLOWS.values() for doc_type in definition.doc_types
}


def flow_for(doc_type: str) -> Optional[FlowDefinition]:
    """Flow handling ``doc_type``, or None for standard single-shot student types."""
    name = FLOW_BY_DOC_TYPE.get(doc_type)
    return FLOWS[name] if name else None
