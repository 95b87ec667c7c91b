"""
Locale-agnostic detection of controls that name the transcript feature.
"""

import unicodedata
from typing import Optional

# Stems and terms for "transcript" (and, for CJK, subtitle/caption) per locale.
# Add a locale by adding its stem here.
RAW_TRANSCRIPT_STEMS = (
    # en, fr, es, pt, nl, ca: transcript, transcription, transcripcion, transcricao
    "transcri",
    # it: trascrizione
    "trascri",
    # de, sv, da, no, tr, hu, ro: transkript, transkription, transkripcio
    "transkri",
    # pl: transkrypcja
    "transkryp",
    # cs, sk: prepis
    "prepis",
    # fi: tekstitys
    "tekstitys",
    # ru, uk, bg: транскрипция, расшифровка, стенограмма
    "транскрип",
    "расшифров",
    "стенограм",
    # el: απομαγνητοφώνηση
    "απομαγνητοφων",
    # ja
    "文字起こし",
    "トランスクリプト",
    # zh
    "转录",
    "轉錄",
    "文字记录",
    "文字紀錄",
    "字幕",
    # ko
    "스크립트",
    "자막",
)


def normalize_label(value: str) -> str:
    """Canonically decompose, drop combining marks, lowercase."""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.lower()


# Stems go through the same normalization as the labels they are compared with
TRANSCRIPT_STEMS = tuple(normalize_label(stem) for stem in RAW_TRANSCRIPT_STEMS)


def matches_transcript_label(text: Optional[str], label: Optional[str] = None) -> bool:
    """
    Decide whether an element's visible text or accessible label names the
    transcript feature.

    Args:
        text: Visible text of the element
        label: Accessible label (aria-label) of the element

    Returns:
        True when any locale stem occurs in the combined string. Never raises.
    """
    parts = [part for part in (text, label) if isinstance(part, str) and part]
    if not parts:
        return False

    combined = " ".join(parts)

    try:
        haystack = normalize_label(combined)
        return any(stem in haystack for stem in TRANSCRIPT_STEMS)
    except (TypeError, ValueError):
        lowered = combined.lower()
        return any(stem.lower() in lowered for stem in RAW_TRANSCRIPT_STEMS)
