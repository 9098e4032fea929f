# =============================================================================
# Chunking Module
# =============================================================================
# This module splits documents into smaller chunks before they are indexed.
# It contains the simple strategies used in the demonstrations (paragraphs,
# sentences, fixed windows), separator-aware "semantic" chunking, HTML
# structure-aware chunking, and a small production-style pipeline that wraps
# chunks with metadata, filters tiny chunks and caches repeated documents.

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone

from bs4 import BeautifulSoup

from aitutorial.config import resolve_path
from aitutorial.run_tracker import log


# Separators tried in order when looking for a natural split point
SEMANTIC_SEPARATORS = ["\n\n", "\n", ". ", " "]

REQUIRED_METADATA = ('source', 'chunk_id', 'created_at')


# =============================================================================
# Chunk with metadata
# =============================================================================

@dataclass
class DocumentChunk:
    """
    A chunk of text together with its metadata.

    The metadata must always contain 'source', 'chunk_id' and 'created_at'.
    Use DocumentChunk.from_document() to get the standard metadata filled in.
    """
    content: str
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        missing = [key for key in REQUIRED_METADATA if key not in self.metadata]
        if missing:
            raise ValueError(f"Missing metadata: {', '.join(missing)}")

    @classmethod
    def from_document(cls, content, source, chunk_index, total_chunks, extra_metadata=None):
        """
        Create a chunk with the standard metadata.

        Args:
            content: The chunk text
            source: Where the text came from (e.g. "docs/api-guide.md")
            chunk_index: Position of this chunk within its document
            total_chunks: Number of chunks the document was split into
            extra_metadata: Optional dict with document_type, author,
                            last_modified, section, language

        Returns:
            DocumentChunk: The new chunk

        Example:
            DocumentChunk.from_document("Hello world", "notes.md", 0, 1)
            -> metadata['chunk_id'] == "notes.md_0"
        """
        extra = extra_metadata or {}

        metadata = {
            # Required
            'source': source,
            'chunk_id': f"{source}_{chunk_index}",
            'created_at': datetime.now(timezone.utc).isoformat(),

            # Position within the document
            'chunk_index': chunk_index,
            'total_chunks': total_chunks,

            # Domain-specific
            'document_type': extra.get('document_type'),
            'author': extra.get('author'),
            'last_modified': extra.get('last_modified'),
            'section': extra.get('section'),
            'language': extra.get('language') or 'en',

            # Quality signals
            'word_count': len(content.split()),
            'char_count': len(content),
        }

        return cls(content=content, metadata=metadata)

    def to_dict(self):
        return {'content': self.content, 'metadata': dict(self.metadata)}


# =============================================================================
# Simple strategies
# =============================================================================

def split_paragraphs(text):
    """
    Split text on blank lines. Each non-empty paragraph becomes a document.

    Args:
        text: The text to split

    Returns:
        list: Stripped, non-empty paragraphs
    """
    return [p.strip() for p in text.split("\n\n") if p.strip()]


def split_sentences(text):
    """Split text on periods, dropping empty pieces."""
    return [s.strip() for s in text.split(".") if s.strip()]


def fixed_size_chunking(text, chunk_size=500, overlap=50):
    """
    Fixed-size character windows with overlap.

    Each window starts chunk_size - overlap characters after the previous one,
    so neighbouring chunks share 'overlap' characters of context.

    Args:
        text: The text to split
        chunk_size: Window size in characters
        overlap: Characters shared between neighbouring windows

    Returns:
        list: The chunks (the last one may be shorter)

    Raises:
        ValueError: If chunk_size <= 0 or overlap >= chunk_size
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be between 0 and chunk_size - 1")

    chunks = []
    step = chunk_size - overlap
    start = 0

    while start < len(text):
        chunks.append(text[start:start + chunk_size])
        start += step

    return chunks


def window_chunking(text, chunk_size=200):
    """
    Non-overlapping character windows, stripped, empties dropped.

    Args:
        text: The text to split
        chunk_size: Window size in characters

    Returns:
        list: The chunks
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    windows = (text[i:i + chunk_size] for i in range(0, len(text), chunk_size))
    return [w.strip() for w in windows if w.strip()]


def semantic_chunking(text, chunk_size=1000, chunk_overlap=200):
    """
    Split text at natural boundaries (paragraphs, lines, sentences, words).

    From the current position we look for the last separator inside the next
    chunk_size characters, trying paragraph breaks first and single spaces
    last. The chunk ends just after that separator; if no separator is found
    we hard-split at chunk_size. The next chunk starts chunk_overlap
    characters before the split, but never at or before the current position.

    Args:
        text: The text to split
        chunk_size: Target chunk size in characters
        chunk_overlap: Characters of context repeated at the start of the next chunk

    Returns:
        list: The chunks, in document order

    Example:
        semantic_chunking("First para.\\n\\nSecond para.", chunk_size=15, chunk_overlap=0)
        -> ["First para.\\n\\n", "Second para."]
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if chunk_overlap < 0:
        raise ValueError("chunk_overlap must not be negative")

    chunks = []
    position = 0

    while position < len(text):
        limit = position + chunk_size

        # The rest of the text fits in one chunk
        if limit >= len(text):
            chunks.append(text[position:])
            break

        split = limit
        for separator in SEMANTIC_SEPARATORS:
            # Separator must start after the current position and within the window
            found = text.rfind(separator, position + 1, limit + len(separator))
            if found != -1:
                split = found + len(separator)
                break

        chunks.append(text[position:split])

        next_position = split - chunk_overlap
        position = next_position if next_position > position else split

    return chunks


def structure_aware_chunking(html):
    """
    Chunk an HTML page by its structure.

    Headers (h1-h3) maintain a heading path such as "API > Authentication".
    Each paragraph or list item becomes one chunk prefixed with that path,
    so the chunk keeps the context of the section it came from.

    Args:
        html: The HTML source

    Returns:
        list: Chunk dictionaries, each containing:
            - content: "<heading path>\\n\\n<element text>"
            - metadata: {'section_path': ..., 'element_type': 'p' or 'li'}
    """
    soup = BeautifulSoup(html, "lxml")
    chunks = []
    heading_path = []

    for element in soup.find_all(['h1', 'h2', 'h3', 'p', 'li']):
        tag = element.name.lower()
        text = element.get_text()

        if tag in ('h1', 'h2', 'h3'):
            level = int(tag[1])
            heading_path = heading_path[:level - 1]
            heading_path.append(text)
        else:
            section_path = " > ".join(heading_path)
            chunks.append({
                'content': f"{section_path}\n\n{text}",
                'metadata': {
                    'section_path': section_path,
                    'element_type': tag,
                },
            })

    return chunks


# =============================================================================
# Production pipeline
# =============================================================================

class ChunkingPipeline:
    """
    End-to-end chunking: split, wrap with metadata, filter, cache.

    Args:
        strategy: "semantic", "structure_aware", "fixed" or "paragraph"
        min_words: Chunks with fewer words than this are dropped
        chunk_size: Characters per chunk for "semantic" and "fixed"
                    (default: that strategy's own default)
        overlap: Characters repeated between neighbouring chunks, used as
                 chunk_overlap by "semantic" and overlap by "fixed"
    """

    STRATEGIES = ('semantic', 'structure_aware', 'fixed', 'paragraph')

    def __init__(self, strategy="semantic", min_words=20, chunk_size=None, overlap=None):
        if strategy not in self.STRATEGIES:
            raise ValueError(
                f"Unknown chunking strategy: {strategy}. Choose from {', '.join(self.STRATEGIES)}"
            )
        self.strategy = strategy
        self.min_words = min_words
        self.chunk_size = chunk_size
        self.overlap = overlap
        self._cache = {}

    @classmethod
    def from_config(cls, config):
        """Create a pipeline from the 'chunking' section of the config."""
        settings = config.get('chunking', {})
        return cls(
            strategy=settings.get('strategy', 'semantic'),
            min_words=settings.get('min_words', 20),
            chunk_size=settings.get('chunk_size'),
            overlap=settings.get('overlap'),
        )

    def _size_kwargs(self, overlap_name):
        kwargs = {}
        if self.chunk_size is not None:
            kwargs['chunk_size'] = self.chunk_size
        if self.overlap is not None:
            kwargs[overlap_name] = self.overlap
        return kwargs

    def _split(self, content):
        if self.strategy == 'semantic':
            return semantic_chunking(content, **self._size_kwargs('chunk_overlap'))
        if self.strategy == 'structure_aware':
            return [chunk['content'] for chunk in structure_aware_chunking(content)]
        if self.strategy == 'fixed':
            return fixed_size_chunking(content, **self._size_kwargs('overlap'))
        return split_paragraphs(content)

    def process_document(self, content, source, metadata=None):
        """
        Turn one document into filtered DocumentChunk objects.

        Identical documents (same MD5 of the content) are only processed once.

        Args:
            content: The document text (or HTML for structure_aware)
            source: Source name used for chunk ids
            metadata: Optional extra metadata for every chunk

        Returns:
            list: DocumentChunk objects with at least min_words words
        """
        doc_hash = hashlib.md5(content.encode('utf-8')).hexdigest()
        if doc_hash in self._cache:
            return self._cache[doc_hash]

        raw_chunks = self._split(content)
        chunks = [
            DocumentChunk.from_document(text, source, i, len(raw_chunks), metadata)
            for i, text in enumerate(raw_chunks)
        ]

        filtered = [c for c in chunks if c.metadata['word_count'] >= self.min_words]

        self._cache[doc_hash] = filtered
        return filtered

    def process_batch(self, documents, batch_size=100):
        """
        Process (content, source) pairs, yielding chunks in batches.

        Args:
            documents: Iterable of (content, source) tuples
            batch_size: Yield once at least this many chunks are collected

        Yields:
            list: A batch of DocumentChunk objects (the last one may be smaller)
        """
        batch = []

        for content, source in documents:
            batch.extend(self.process_document(content, source))

            if len(batch) >= batch_size:
                yield batch
                batch = []

        if batch:
            yield batch


# =============================================================================
# Config-driven helpers used by the CLI
# =============================================================================

def load_corpus(path):
    """
    Read a UTF-8 text file.

    Args:
        path: Path to the file (relative paths are resolved from the project root)

    Returns:
        str: The file contents

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    file_path = resolve_path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Corpus file not found: {file_path}")

    with open(file_path, 'r', encoding='utf-8') as f:
        return f.read()


def chunk_text(text, config, logger=None):
    """
    Split text using the strategy named in config['chunking'].

    Args:
        text: The text to split
        config: Configuration dictionary with chunking settings
        logger: Optional logger for tracking progress

    Returns:
        list: Chunk strings (structure_aware returns chunk dictionaries)

    Raises:
        ValueError: If the strategy is unknown
    """
    settings = config.get('chunking', {})
    strategy = settings.get('strategy', 'paragraph')
    chunk_size = settings.get('chunk_size', 500)
    overlap = settings.get('overlap', 50)

    if strategy == 'paragraph':
        chunks = split_paragraphs(text)
    elif strategy == 'sentence':
        chunks = split_sentences(text)
    elif strategy == 'fixed':
        chunks = fixed_size_chunking(text, chunk_size, overlap)
    elif strategy == 'window':
        chunks = window_chunking(text, chunk_size)
    elif strategy == 'semantic':
        chunks = semantic_chunking(text, chunk_size, overlap)
    elif strategy == 'structure_aware':
        chunks = structure_aware_chunking(text)
    else:
        raise ValueError(f"Unknown chunking strategy: {strategy}")

    log(f"Chunked text with '{strategy}' strategy: {len(chunks)} chunks", logger)

    return chunks
