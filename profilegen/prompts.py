"""
Prompt templates and builders for the three pipeline tasks.

Templates are plain strings with `[Insert ... Here]` placeholders; builders fill
them in a single pass and return a PromptPair. Nothing here performs I/O.
"""

import json
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from profilegen.models import ProfileData, PromptPair, RenderOptions

# ============================================================================
# REFORMULATE
# ============================================================================

REFORMULATE_SYSTEM_PROMPT = """You are an expert assistant in analysing and structuring professional information.

Your task is to:
1. Analyse the information provided by the user
2. Identify and organise the content into relevant sections
3. Rewrite every section in clear, coherent, professional prose
4. Return ONLY a valid JSON object with exactly this structure:

{
  "sections": [
    {"header": "Section name", "text": "Reformulated content..."},
    {"header": "Another section", "text": "More content..."}
  ]
}

Recognised sections (include ONLY those backed by information in the input):
[Insert Section Catalogue Here]

IMPORTANT RULES:
- DO NOT add information that is not present in the original text
- DO NOT omit important information from the original text
- KEEP every date, name, figure and title accurate
- Return ONLY the JSON object, with no text before or after it
- Make sure the JSON is valid and parseable"""

REFORMULATE_USER_PROMPT = """Analyse the following text extracted from a PDF and organise it into structured sections. Return ONLY valid JSON in the specified format:

---
[Insert Extracted Text Here]
---
[Insert Secondary Source Here]
Remember: return ONLY the JSON object, nothing else."""

SECONDARY_SOURCE_BLOCK = """
Additional source (published articles). Summarise it in a "Featured Articles" section:
---
[Insert Secondary Text Here]
---
"""

BASE_SECTION_CATALOGUE = [
    "About me / Professional profile",
    "Work experience",
    "Education",
    "Skills",
    "Certifications",
    "Projects",
    "Languages",
    "Awards and recognition",
]
FEATURED_ARTICLES_SECTION = "Featured articles (only from the additional source)"

# ============================================================================
# AUGMENT
# ============================================================================

AUGMENT_SYSTEM_PROMPT = """You are an assistant that enriches structured professional profiles.

You receive the current profile as JSON and an instruction from its owner.

RULES:
- The existing sections are an immutable baseline: keep every one of them, in the same order, with the same header and text
- Only ADD sections. If the instruction asks to change existing content, add a complementary section that carries the change instead of rewriting the original
- Never create a section whose header duplicates an existing header
- DO NOT invent facts the instruction does not provide
- Return the COMPLETE merged document, not a diff, as ONLY a valid JSON object:

{
  "sections": [
    {"header": "Section name", "text": "Content..."}
  ]
}"""

AUGMENT_USER_PROMPT = """Current profile (JSON):
[Insert Profile JSON Here]

Existing headers (do not repeat them): [Insert Header List Here]

Owner instruction:
---
[Insert Instructions Here]
---

Return ONLY the complete JSON object."""

# ============================================================================
# RENDER
# ============================================================================

RENDER_SYSTEM_PROMPT = """You are a senior front-end designer who builds personal profile pages.

OUTPUT CONTRACT:
- Return ONE self-contained HTML fragment and nothing else (no explanations, no markdown)
- DO NOT include <html>, <head>, <body> or <!DOCTYPE> tags
- DO NOT include <script> tags, inline event handlers or external stylesheets/<link> tags
- Style ONLY with Tailwind CSS utility classes (no <style> blocks, no style attributes)
- The root element MUST declare both a background colour class (bg-*) and a text colour class (text-*) with sufficient contrast
- Use semantic elements (<header>, <main>, <section>, <h1>-<h3>, <p>, <ul>) and a responsive layout
- Render every section of the profile; do not invent content

PALETTE:
[Insert Palette Guidance Here]"""

RENDER_CREATE_PROMPT = """Create the profile page for [Insert Display Name Here] from this structured profile:

[Insert Profile JSON Here]

[Insert Instructions Block Here]
Return ONLY the HTML fragment."""

RENDER_REVISE_PROMPT = """Revise the existing profile page for [Insert Display Name Here].

Current HTML fragment:
---
[Insert Previous Markup Here]
---

Structured profile (source of truth for the content):
[Insert Profile JSON Here]

[Insert Instructions Block Here]
Keep the existing structure and layout unless the instructions ask for a change, and make sure every section of the profile is present.
Return ONLY the revised HTML fragment."""

INSTRUCTIONS_BLOCK = """Additional instructions from the owner (they take precedence over the default styling):
---
[Insert Instructions Here]
---
"""

NO_INSTRUCTIONS_REVISE = "No new instructions were given: preserve the current design and only fix content drift.\n"

# ============================================================================
# PALETTE INTENT DETECTION
# ============================================================================

# keyword -> Tailwind colour family (English and Spanish)
EXPLICIT_COLOURS = {
    "red": "red", "rojo": "red", "roja": "red",
    "orange": "orange", "naranja": "orange",
    "amber": "amber", "gold": "amber", "golden": "amber", "dorado": "amber",
    "yellow": "yellow", "amarillo": "yellow",
    "lime": "lime",
    "green": "green", "verde": "green",
    "emerald": "emerald", "esmeralda": "emerald",
    "teal": "teal", "turquoise": "teal", "turquesa": "teal",
    "cyan": "cyan", "cian": "cyan",
    "sky": "sky", "celeste": "sky",
    "blue": "blue", "azul": "blue", "navy": "blue",
    "indigo": "indigo", "índigo": "indigo",
    "violet": "violet", "violeta": "violet",
    "purple": "purple", "morado": "purple", "morada": "purple", "lila": "purple",
    "fuchsia": "fuchsia", "magenta": "fuchsia", "fucsia": "fuchsia",
    "pink": "pink", "rosa": "pink", "rosado": "pink",
    "rose": "rose",
    "gray": "gray", "grey": "gray", "gris": "gray",
    "black": "zinc", "negro": "zinc", "negra": "zinc",
    "brown": "stone", "marrón": "stone", "marron": "stone",
    "slate": "slate",
}

CREATIVE_CUES = (
    "design", "designer", "creative", "artist", "art director", "illustrat", "photograph",
    "music", "fashion", "film", "animation", "writer", "copywrit", "brand", "marketing",
    "diseño", "diseñador", "diseñadora", "creativ", "artista", "ilustra", "fotograf",
    "música", "moda", "escritor", "escritora",
)
TECHNICAL_CUES = (
    "engineer", "software", "developer", "data", "cloud", "devops", "security", "backend",
    "infrastructure", "analyst", "finance", "consult", "legal", "research", "scientist",
    "ingenier", "desarrollador", "desarrolladora", "datos", "finanzas", "consultor",
    "investigador", "abogad",
)
DARK_CUES = ("dark", "oscuro", "oscura", "night", "noche")

_WORD_RE = re.compile(r"[\wáéíóúñü]+", re.IGNORECASE)


@dataclass
class PaletteIntent:
    source: str  # explicit | creative | technical | default
    family: str
    dark: bool = False

    def guidance(self) -> str:
        if self.source == "explicit":
            base = (f"The owner asked for a {self.family} colour family: build the palette around Tailwind "
                    f"{self.family}-* shades and ignore the tone heuristics.")
        elif self.source == "creative":
            base = ("The profile reads as creative: use a warm, saturated palette "
                    "(amber/orange/rose accents on a light warm background such as bg-amber-50 or bg-orange-50).")
        else:
            base = ("The profile reads as professional/technical: use a neutral, cool palette "
                    "(slate/sky/indigo accents on bg-white, bg-slate-50 or bg-slate-900).")
        if self.dark:
            base += " Prefer a dark background (e.g. bg-slate-900 or bg-zinc-900) with light text (text-slate-100)."
        return base


def _first_explicit_colour(instructions: str) -> Optional[str]:
    for word in _WORD_RE.findall(instructions.lower()):
        if word in EXPLICIT_COLOURS:
            return EXPLICIT_COLOURS[word]
    return None


def _count_cues(text: str, cues: Tuple[str, ...]) -> int:
    return sum(text.count(cue) for cue in cues)


def detect_palette_intent(profile: ProfileData, instructions: Optional[str] = None) -> PaletteIntent:
    """
    Explicit colour in the owner's instructions wins; otherwise the tone of the
    profile picks warm (creative) or cool (technical / default) colours.
    """
    instructions_lower = (instructions or "").lower()
    dark = any(cue in instructions_lower for cue in DARK_CUES)

    explicit = _first_explicit_colour(instructions_lower)
    if explicit:
        return PaletteIntent("explicit", explicit, dark)

    corpus = " ".join(f"{s.header} {s.text}" for s in profile.sections).lower()
    creative = _count_cues(corpus, CREATIVE_CUES)
    technical = _count_cues(corpus, TECHNICAL_CUES)

    if creative > technical:
        return PaletteIntent("creative", "amber", dark)
    if technical:
        return PaletteIntent("technical", "slate", dark)
    return PaletteIntent("default", "slate", dark)


# ============================================================================
# BUILDERS
# ============================================================================

PLACEHOLDER_PATTERN = re.compile(r"\[Insert [^\[\]]+ Here\]")


def fill_template(template: str, values: Dict[str, str]) -> str:
    """
    Substitutes `[Insert ... Here]` placeholders in a single pass, so text that
    was just inserted is never scanned for further placeholders.
    Unknown placeholders are left as they are.
    """
    return PLACEHOLDER_PATTERN.sub(lambda m: values.get(m.group(0), m.group(0)), template)


def _profile_json(profile: ProfileData) -> str:
    return json.dumps(profile.model_dump(), ensure_ascii=False, indent=2)


def build_reformulate_prompt(extracted_text: str, secondary_text: Optional[str] = None) -> PromptPair:
    catalogue: List[str] = list(BASE_SECTION_CATALOGUE)
    secondary_block = ""
    if secondary_text and secondary_text.strip():
        catalogue.append(FEATURED_ARTICLES_SECTION)
        secondary_block = SECONDARY_SOURCE_BLOCK.replace("[Insert Secondary Text Here]", secondary_text.strip())

    system_prompt = REFORMULATE_SYSTEM_PROMPT.replace(
        "[Insert Section Catalogue Here]", "\n".join(f"- {item}" for item in catalogue)
    )
    user_prompt = fill_template(REFORMULATE_USER_PROMPT, {
        "[Insert Extracted Text Here]": extracted_text.strip(),
        "[Insert Secondary Source Here]": secondary_block,
    })
    return PromptPair(system_prompt, user_prompt)


def build_augment_prompt(profile: ProfileData, instructions: str) -> PromptPair:
    headers = ", ".join(json.dumps(h, ensure_ascii=False) for h in profile.headers())
    user_prompt = fill_template(AUGMENT_USER_PROMPT, {
        "[Insert Profile JSON Here]": _profile_json(profile),
        "[Insert Header List Here]": headers,
        "[Insert Instructions Here]": instructions.strip(),
    })
    return PromptPair(AUGMENT_SYSTEM_PROMPT, user_prompt)


def build_render_prompt(profile: ProfileData, options: Optional[RenderOptions] = None) -> PromptPair:
    options = options or RenderOptions()
    instructions = (options.additional_instructions or "").strip()
    intent = detect_palette_intent(profile, instructions)

    system_prompt = RENDER_SYSTEM_PROMPT.replace("[Insert Palette Guidance Here]", intent.guidance())

    if instructions:
        instructions_block = INSTRUCTIONS_BLOCK.replace("[Insert Instructions Here]", instructions)
    elif options.previous_markup:
        instructions_block = NO_INSTRUCTIONS_REVISE
    else:
        instructions_block = ""

    template = RENDER_REVISE_PROMPT if options.previous_markup else RENDER_CREATE_PROMPT
    user_prompt = fill_template(template, {
        "[Insert Display Name Here]": (options.username or "this professional").strip(),
        "[Insert Previous Markup Here]": (options.previous_markup or "").strip(),
        "[Insert Profile JSON Here]": _profile_json(profile),
        "[Insert Instructions Block Here]": instructions_block,
    })
    return PromptPair(system_prompt, user_prompt)
