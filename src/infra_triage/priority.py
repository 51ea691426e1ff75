"""Report priority classification: keyword tiers with optional remote assist."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Sequence

from .errors import DegradedInputError
from .llm_provider import LLMProvider, get_provider
from .models import PRIORITY_LEVELS, Priority

_log = logging.getLogger(__name__)

URGENTE_KEYWORDS = [
    "hospital",
    "centro de saúde",
    "centro de saude",
    "idoso",
    "lar",
    "lares",
    "criança",
    "crianca",
    "escola",
    "creche",
    "farmácia",
    "farmacia",
    "bomba de água",
    "bomba de agua",
    "diálise",
    "dialise",
    "ventilador",
    "oxigénio",
    "oxigenio",
    "estrada nacional",
    "acesso hospital",
    "ip",
    "ic",
    "poste caído",
    "poste caido",
    "poste partido",
    "fio caído",
    "fio caido",
    "cabo caído",
    "cabo caido",
    "risco elétrico",
    "risco eletrico",
]

IMPORTANTE_KEYWORDS = [
    "empresa",
    "comércio",
    "comercio",
    "loja",
    "restaurante",
    "abrigo",
    "supermercado",
    "edifício",
    "edificio",
    "bombeiros",
    "quartel",
    "municipal",
    "ponte",
    "acesso",
]

# Keywords up to this length must stand alone ("ic" is a road class, not
# the tail of "electricity"); longer ones may be followed by plural endings.
_WHOLE_WORD_MAX_LEN = 3

REMOTE_INSTRUCTIONS = (
    "Classifica a prioridade deste reporte de infraestrutura danificada em Portugal. "
    "Responde APENAS com uma palavra: urgente, importante ou normal.\n"
    "urgente = hospitais, centros de saúde, lares de idosos, escolas, creches, farmácias, "
    "bombas de água, equipamento médico, postes caídos/partidos, fios/cabos caídos, risco elétrico, "
    "estradas nacionais e itinerários principais\n"
    "importante = empresas, comércio, abrigos, supermercados, edifícios públicos, bombeiros, pontes\n"
    "normal = residências comuns"
)


def normalize_text(value: str) -> str:
    return " ".join(value.casefold().split())


def _contains_keyword(text: str, keyword: str) -> bool:
    term = normalize_text(keyword)
    if not term:
        return False
    pattern = r"(?<!\w)" + re.escape(term)
    if len(term) <= _WHOLE_WORD_MAX_LEN:
        pattern += r"(?![^\W\d_])"
    return re.search(pattern, text) is not None


def _first_match(text: str, keywords: Sequence[str]) -> str | None:
    for keyword in keywords:
        if _contains_keyword(text, keyword):
            return keyword
    return None


def classification_text(description: str | None, report_type: str, street: str | None) -> str:
    return normalize_text(" ".join(part for part in (description, report_type, street) if part))


class PriorityClassifier(ABC):
    @abstractmethod
    def classify(self, description: str | None, report_type: str, street: str | None = None) -> Priority:
        """Return the urgency tier; never raises."""


class DeterministicPriorityClassifier(PriorityClassifier):
    """First keyword hit in the highest tier decides; no scoring."""

    def __init__(
        self,
        urgente_keywords: Sequence[str] = URGENTE_KEYWORDS,
        importante_keywords: Sequence[str] = IMPORTANTE_KEYWORDS,
    ) -> None:
        self._tiers: list[tuple[Priority, Sequence[str]]] = [
            ("urgente", urgente_keywords),
            ("importante", importante_keywords),
        ]

    def explain(self, description: str | None, report_type: str, street: str | None = None) -> tuple[Priority, str | None]:
        text = classification_text(description, report_type, street)
        for priority, keywords in self._tiers:
            hit = _first_match(text, keywords)
            if hit is not None:
                return priority, hit
        return "normal", None

    def classify(self, description: str | None, report_type: str, street: str | None = None) -> Priority:
        priority, _ = self.explain(description, report_type, street)
        return priority


class RemotePriorityClassifier(PriorityClassifier):
    """Ask a remote label provider; any failure yields the deterministic tier."""

    def __init__(
        self,
        provider: LLMProvider,
        *,
        timeout: float,
        fallback: PriorityClassifier | None = None,
    ) -> None:
        self._provider = provider
        self._timeout = timeout
        self._fallback = fallback or DeterministicPriorityClassifier()

    def classify(self, description: str | None, report_type: str, street: str | None = None) -> Priority:
        prompt = "\n".join(
            line
            for line in (
                f"Descrição: {description}" if description else "",
                f"Tipo: {report_type}",
                f"Rua: {street}" if street else "",
            )
            if line
        )
        try:
            label = self._provider.classify_label(
                instructions=REMOTE_INSTRUCTIONS,
                text=prompt,
                labels=PRIORITY_LEVELS,
                timeout=self._timeout,
            )
        except DegradedInputError as exc:
            _log.warning("Remote priority unavailable, using keywords: %s", exc)
            return self._fallback.classify(description, report_type, street)
        except Exception:
            _log.exception("Remote priority provider failed unexpectedly, using keywords")
            return self._fallback.classify(description, report_type, street)

        if label not in PRIORITY_LEVELS:
            _log.warning("Remote priority returned unexpected label %r, using keywords", label)
            return self._fallback.classify(description, report_type, street)
        return label


def build_priority_classifier(
    flags: dict[str, Any],
    *,
    timeout: float,
    provider: LLMProvider | None = None,
) -> PriorityClassifier:
    deterministic = DeterministicPriorityClassifier()
    if not flags.get("ai_priority_enabled", False):
        return deterministic
    try:
        remote = provider or get_provider()
    except ValueError as exc:
        _log.warning("AI priority enabled but provider unavailable: %s", exc)
        return deterministic
    return RemotePriorityClassifier(remote, timeout=timeout, fallback=deterministic)
