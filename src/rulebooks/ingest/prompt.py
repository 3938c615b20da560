"""Instruction template for single-page rulebook extraction."""
from __future__ import annotations

PAGE_EXTRACTION_PROMPT = """You are a document-structure extraction system.

Input:
1. ONE page of a board game rulebook, supplied as a single-page PDF.
2. An integer PAGE_INDEX (1-based): the position of this page inside the original file.

Goal: turn the page into plain text tuned for retrieval. Every passage must carry the name
of the section it belongs to, so any quote taken from the output can be attributed to a
named section without another lookup.

Hard rules:
- Do NOT paraphrase. Keep the wording of the page verbatim.
- Correct OCR mistakes only when the correction is unambiguous.
- Do NOT invent headings or section names.
- Keep the reading order. In multi-column layouts read top to bottom inside a column,
  left column first.
- Output plain text only: no JSON, no Markdown, no commentary, no code fences.
- The PAGE_INDEX you output MUST equal the PAGE_INDEX provided below.
- Ignore page numbers printed on the page itself; use only the provided PAGE_INDEX.

Required output layout (exact):

PAGE_INDEX: <PAGE_INDEX>

SECTION_PATH_INFERRED: <Top Level> > <Subsection> > <Subsection if applicable>
HEADINGS_ON_PAGE:
- <Heading 1>
- <Heading 2>

---

[SECTION: <section path for this block>]
<verbatim paragraph or rule text>

[SECTION: <section path for this block>]
<next paragraph, list or rule text>

Instructions:

1. HEADINGS_ON_PAGE lists every visible heading on the page, top to bottom.
   When the page has none, write a single line "- NONE".

2. SECTION_PATH_INFERRED is the most specific section path governing most of the page,
   joined with " > " (for example "SETUP > PREPARE THE BOARD"). When no reliable heading
   context exists, write "SECTION_PATH_INFERRED: UNKNOWN".

3. Split the content into logical blocks (paragraphs, bullet lists, numbered lists, short
   rule statements). Put a "[SECTION: ...]" tag before EVERY block. When a new heading
   starts mid-page, use the new path for the blocks that follow it. Without any headings
   use "[SECTION: UNKNOWN]".

4. Bullets start with "- ". Numbered items start with "1. ", "2. " and so on.

5. Simple tables: one row per line, columns separated by "|". Complex tables go between
   "[TABLE]" and "[/TABLE]" markers, row by row, keeping each column's meaning.

6. Inline icons or symbols become bracketed labels such as "[ICON: sun]",
   "[ICON: shield]" or "[ICON: unknown]". Use the page's own legend name when the page
   defines the icon; never guess a meaning."""


def build_prompt_for_page(page_number: int) -> str:
    """Return the full extraction prompt for ``page_number``."""

    return (
        f"{PAGE_EXTRACTION_PROMPT}\n\n---\n\n"
        f"Provided value:\nPAGE_INDEX = {page_number}\n\n"
        "Now output the page in the exact required layout."
    )
