"""
Query Optimizer — pure text transforms for knowledge-base retrieval.

- preprocess: normalize a raw user query into the densest retrieval signal
- extract_key_terms / find_synonyms / expand: broaden a query that matched poorly
- diagnostics: side-effect-free record of one retrieval attempt

Expansion is a recall heuristic. It broadens the retrieval surface; it does
not promise better answers.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

MAX_QUERY_CHARS = 150
MAX_KEY_TERMS = 5
MAX_PARTIAL_SYNONYMS = 3

_WHITESPACE = re.compile(r"\s+")

# A question word followed by 1-20 words and a question mark.
_QUESTION_CLAUSE = re.compile(
    r"\b(?:what|how|who|when|where|why|can|could|should|is|are|was|were|will|do|does)"
    r"(?:\s+\w+){1,20}\?",
    re.IGNORECASE,
)

_FILLERS = re.compile(
    r"\b(?:um|uh|like|you know|I mean|just|basically|actually|literally|so|very|"
    r"really|quite|I think|I guess|maybe|perhaps|well|right)\b",
    re.IGNORECASE,
)

_TERM_SPLIT = re.compile(r"[\s.,;:!?()'\"–—]+")
_NUMERIC = re.compile(r"^\d+$")

STOP_WORDS = frozenset(
    """
    a an the and or but is are was were be been being have has had do does did
    will would shall should may might must can could to for of about with by at
    from up down in out on off over under again further then once here there
    when where why how all any both each few more most other some such no nor
    not only own same so than too very s t just don don't now i me my myself we
    our ours ourselves you you're you've you'll you'd your yours yourself
    yourselves he him his himself she she's her hers herself it it's its itself
    they them their theirs themselves what which who whom this that that'll
    these those am because until while if else as
    """.split()
)

SYNONYMS: dict[str, list[str]] = {
    "information": ["data", "details", "facts", "knowledge"],
    "important": ["significant", "crucial", "essential", "key"],
    "issue": ["problem", "concern", "matter", "trouble"],
    "create": ["build", "develop", "make", "produce"],
    "change": ["modify", "alter", "adjust", "transform"],
    "report": ["document", "record", "account", "analysis"],
    "result": ["outcome", "effect", "consequence", "output"],
    "process": ["procedure", "method", "system", "approach"],
    "increase": ["grow", "rise", "expand", "improve"],
    "decrease": ["reduce", "decline", "drop", "lower"],
    "feature": ["function", "capability", "characteristic", "aspect"],
    "error": ["mistake", "bug", "fault", "defect"],
    "user": ["customer", "client", "person", "individual"],
    "data": ["information", "statistics", "facts", "figures"],
    "interface": ["ui", "display", "screen", "layout"],
    "question": ["query", "inquiry", "request", "prompt"],
    "example": ["instance", "case", "sample", "illustration"],
    "explain": ["describe", "clarify", "elaborate", "detail"],
    "help": ["assist", "support", "aid", "guidance"],
    "project": ["task", "assignment", "undertaking", "venture"],
}


def preprocess(raw_query: str) -> str:
    """Normalize a query for knowledge-base matching.

    A question clause inside the text wins outright. Otherwise filler words
    are dropped, the text is cut to 150 characters and given a trailing "?"
    unless it already ends in "?" or ".".
    """
    if not raw_query or not isinstance(raw_query, str):
        return ""

    query = _WHITESPACE.sub(" ", raw_query.strip())

    match = _QUESTION_CLAUSE.search(query)
    if match:
        return match.group(0)

    query = _FILLERS.sub("", query)
    query = _WHITESPACE.sub(" ", query).strip()
    query = query[:MAX_QUERY_CHARS]
    if not query.endswith(("?", ".")):
        query += "?"
    return query


def extract_key_terms(query: str) -> list[str]:
    """Up to five distinct content words, in first-seen order."""
    if not query:
        return []
    terms: list[str] = []
    for word in _TERM_SPLIT.split(query.lower()):
        if word in STOP_WORDS or len(word) <= 3 or _NUMERIC.match(word):
            continue
        if word not in terms:
            terms.append(word)
    return terms[:MAX_KEY_TERMS]


def find_synonyms(term: str) -> list[str]:
    """Exact table hit first, else up to three synonyms from partial matches."""
    if term in SYNONYMS:
        return list(SYNONYMS[term])
    found: list[str] = []
    for key, synonyms in SYNONYMS.items():
        if key in term or term in key:
            found.extend(synonyms)
    return found[:MAX_PARTIAL_SYNONYMS]


def expand(query: str) -> str:
    """Broaden a query with synonyms of its key terms."""
    if not query or not isinstance(query, str):
        return ""

    expanded = query
    terms = extract_key_terms(query)
    if terms:
        pieces = []
        for term in terms:
            synonyms = find_synonyms(term)
            pieces.append(f"{term} ({' '.join(synonyms)})" if synonyms else term)
        expanded = f"{query} | Additional context: {', '.join(pieces)}"

    return f"Find information related to: {expanded}"


@dataclass(frozen=True)
class QueryDiagnostics:
    original_length: int
    processed_length: int
    query_changed: bool
    response_length: int
    citation_count: int
    successful: bool
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def as_dict(self) -> dict:
        return asdict(self)


def diagnostics(
    original: str, processed: str, response_text: str | None, citations: list | None
) -> QueryDiagnostics:
    response_length = len(response_text or "")
    return QueryDiagnostics(
        original_length=len(original),
        processed_length=len(processed),
        query_changed=original != processed,
        response_length=response_length,
        citation_count=len(citations or []),
        successful=response_length > 100,
    )
