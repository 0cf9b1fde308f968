"""
PDF text extraction (PyMuPDF).
"""

import logging
import re
from typing import Dict, List

import fitz  # PyMuPDF

from profilegen.errors import ExtractionError

logger = logging.getLogger(__name__)

URL_RE = re.compile(r'((?:https?://|www\.)[a-zA-Z0-9./?=&_%#~+-]+)')


def find_urls_in_text(text: str) -> List[str]:
    """Finds URLs written as plain text."""
    return URL_RE.findall(text)


def _embed_links(full_text: str, link_details: List[Dict[str, str]]) -> str:
    """Writes each link target right after its anchor text so the LLM can see it."""
    # Longest anchors first so a short anchor never splits a longer one
    sorted_links = sorted(link_details, key=lambda d: len(d['text'] or ''), reverse=True)
    embedded_text = full_text

    for ld in sorted_links:
        text = ld.get('text') or ''
        url = ld.get('url') or ''
        if not text or not url or text.strip() == url.strip():
            continue

        idx = embedded_text.find(text)
        if idx != -1:
            after_idx = idx + len(text)
            snippet_after = embedded_text[after_idx:after_idx + len(url) + 5]
            if url not in snippet_after:
                embedded_text = embedded_text[:after_idx] + f" ({url})" + embedded_text[after_idx:]

    return embedded_text


def extract_text(pdf_bytes: bytes) -> str:
    """
    Extracts the text of a PDF with embedded link targets.
    Raises ExtractionError when the document cannot be opened or holds no text.
    """
    if not pdf_bytes:
        raise ExtractionError("Empty upload: no PDF bytes received")

    logger.info(f"📄 Starting PDF parsing ({len(pdf_bytes)} bytes)")
    full_text = ""
    link_details: List[Dict[str, str]] = []

    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        logger.error(f"❌ Could not open PDF: {e}")
        raise ExtractionError(f"Could not read the PDF: {e}") from e

    try:
        logger.info(f"✅ PDF opened successfully. Pages: {len(doc)}")
        for page_num in range(len(doc)):
            page = doc[page_num]
            page_text = page.get_text("text")
            full_text += page_text + "\n"
            logger.debug(f"  Page {page_num + 1}: Extracted {len(page_text)} characters")

            for link in page.get_links():
                if link.get('kind') == fitz.LINK_URI:
                    url = link.get('uri', '').strip()
                    if url:
                        clickable_text = page.get_textbox(link['from']).strip()
                        link_details.append({'text': clickable_text or url, 'url': url})
    except Exception as e:
        logger.error(f"❌ Error parsing PDF: {e}", exc_info=True)
        raise ExtractionError(f"Error reading the PDF: {e}") from e
    finally:
        doc.close()

    seen_urls = {ld['url'] for ld in link_details}
    for url in find_urls_in_text(full_text):
        url = url.strip()
        if url not in seen_urls:
            seen_urls.add(url)
            link_details.append({'text': url, 'url': url})

    text = _embed_links(full_text, link_details).strip()
    if not text:
        logger.warning("⚠️  PDF contained no extractable text")
        raise ExtractionError("No text could be extracted from the PDF")

    logger.info(f"✅ PDF parsing complete. Text length: {len(text)} characters, links found: {len(link_details)}")
    return text
