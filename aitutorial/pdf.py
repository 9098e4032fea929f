# =============================================================================
# PDF Processing Module
# =============================================================================
# This module turns PDFs into text for the rest of the pipeline.
#   - Digital PDFs have a text layer: pypdf extracts it page by page (fast path)
#   - Scanned PDFs don't: every page is rendered to an image with PyMuPDF and
#     transcribed by a vision model (slow, paid fallback)
# Tables found in the extracted text can be rewritten as Markdown, which an
# LLM reads more reliably than column-aligned text.

import base64
import re

import fitz
from pypdf import PdfReader

from aitutorial.config import resolve_path
from aitutorial.run_tracker import log


DIGITAL_MIN_CHARS = 100
SHORT_TEXT_CHARS = 50

TRANSCRIBE_PROMPT = (
    "Transcribe all text on this page in reading order. "
    "Render tables as Markdown tables and preserve every value."
)


def _pdf_path(path):
    pdf_path = resolve_path(path)
    if not pdf_path.exists():
        raise FileNotFoundError(f"PDF file not found: {pdf_path}")
    return pdf_path


def extract_digital_pdf(path):
    """
    Extract the text layer of a PDF with pypdf.

    Args:
        path: Path to the PDF

    Returns:
        list: {'page_num', 'text'} per page, page numbers starting at 1

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    reader = PdfReader(str(_pdf_path(path)))
    return [
        {'page_num': i, 'text': page.extract_text() or ''}
        for i, page in enumerate(reader.pages, 1)
    ]


def render_pdf_pages(path, dpi=150):
    """Render every page to PNG bytes with PyMuPDF."""
    images = []
    with fitz.open(str(_pdf_path(path))) as document:
        for page in document:
            images.append(page.get_pixmap(dpi=dpi).tobytes("png"))
    return images


def transcribe_page_image(client, image_bytes, model, prompt=TRANSCRIBE_PROMPT, max_tokens=1500):
    """Send one page image to a vision model and return its transcription."""
    data_url = "data:image/png;base64," + base64.b64encode(image_bytes).decode('ascii')

    response = client.chat.completions.create(
        model=model,
        messages=[{
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": data_url}},
            ],
        }],
        max_completion_tokens=max_tokens,
    )

    return (response.choices[0].message.content or "").strip()


def extract_scanned_pdf(path, client, model, dpi=150, logger=None):
    """
    Transcribe every page of a PDF that has no text layer.

    Returns:
        list: {'page_num', 'text'} per page
    """
    pages = []
    for i, image in enumerate(render_pdf_pages(path, dpi), 1):
        log(f"  Transcribing page {i} with {model}...", logger)
        pages.append({'page_num': i, 'text': transcribe_page_image(client, image, model)})
    return pages


def _join_pages(pages):
    return "\n\n".join(p['text'].strip() for p in pages if p['text'].strip())


def process_pdf(path, client=None, config=None, logger=None):
    """
    Extract a PDF's text with the best available method.

    The text layer is tried first. When it holds fewer than
    pdf.digital_min_chars characters the PDF is treated as scanned and the
    pages are transcribed by the vision model instead.

    Args:
        path: Path to the PDF
        client: OpenAI client, needed only for the vision fallback
        config: Configuration dictionary ('pdf' section)
        logger: Optional logger

    Returns:
        dict: {'text', 'pages', 'method' ('digital' or 'vision'), 'confidence', 'warnings'}

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the fallback is needed but no client was given
    """
    settings = (config or {}).get('pdf', {})
    min_chars = settings.get('digital_min_chars', DIGITAL_MIN_CHARS)
    warnings = []

    pages = extract_digital_pdf(path)
    text = _join_pages(pages)

    if len(text) >= min_chars:
        method, confidence = 'digital', 0.95
        log(f"Digital extraction successful: {len(pages)} pages, {len(text)} chars", logger)
    else:
        if client is None:
            raise ValueError(
                f"{path} has no usable text layer and no LLM client was given for the vision fallback"
            )
        log(f"Text layer has only {len(text)} chars, transcribing pages instead", logger, level='warning')

        pages = extract_scanned_pdf(
            path, client,
            settings.get('vision_model', 'gpt-4o'),
            settings.get('dpi', 150),
            logger,
        )
        text = _join_pages(pages)
        method, confidence = 'vision', 0.70
        warnings.append("Vision transcription used - may contain errors")

    if len(text) < SHORT_TEXT_CHARS:
        warnings.append("Very short text extracted - possible failure")
        confidence *= 0.5

    return {
        'text': text,
        'pages': pages,
        'method': method,
        'confidence': confidence,
        'warnings': warnings,
    }


# =============================================================================
# Tables
# =============================================================================

def split_table_row(line):
    """Cells of a text line, split on tabs or runs of two or more spaces."""
    return [cell.strip() for cell in re.split(r'\t|\s{2,}', line.strip()) if cell.strip()]


def table_to_markdown(headers, rows):
    """
    Format a table as Markdown.

    Example:
        table_to_markdown(['Q', 'Revenue'], [['Q1', '10']]) ->
        '| Q | Revenue |\\n| --- | --- |\\n| Q1 | 10 |'
    """
    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    lines += ["| " + " | ".join(row) + " |" for row in rows]
    return "\n".join(lines)


def extract_tables(text, min_columns=2, min_rows=2):
    """
    Find column-aligned tables in extracted text.

    A table is a run of consecutive lines that split into the same number
    of cells (at least min_columns). The first line is the header.

    Args:
        text: Extracted PDF text
        min_columns: Fewest cells a line needs to count as a table row
        min_rows: Fewest lines (header included) a table needs

    Returns:
        list: {'headers', 'rows', 'markdown'} per table, in document order
    """
    tables = []
    run = []

    def close_run():
        if len(run) >= min_rows:
            headers, rows = run[0], run[1:]
            tables.append({
                'headers': headers,
                'rows': rows,
                'markdown': table_to_markdown(headers, rows),
            })

    for line in text.splitlines():
        cells = split_table_row(line)
        if len(cells) >= min_columns and (not run or len(cells) == len(run[0])):
            run.append(cells)
            continue

        close_run()
        run = [cells] if len(cells) >= min_columns else []

    close_run()

    return tables
