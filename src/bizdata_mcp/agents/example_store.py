"""
Persistent store of translated Jira queries used as few-shot examples.

The file holds a JSON array of ``{prompt, jql, timestamp}`` objects, most
recent first. Failures to read or write the file are logged and the store
keeps working in memory.
"""

import json
import logging
import os
import re
import tempfile
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

MAX_EXAMPLES = 50
DUPLICATE_THRESHOLD = 0.95

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")

DEFAULT_EXAMPLES = [
    ("Show me open bugs", "project = SCRUM AND issuetype = Bug AND statusCategory != Done ORDER BY created DESC"),
    ("Tasks assigned to me", "project = SCRUM AND issuetype = Task AND assignee = currentUser() ORDER BY updated DESC"),
    ("Issues created this week", "project = SCRUM AND created >= startOfWeek() ORDER BY created DESC"),
]


def tokenize(text: str) -> List[str]:
    """Lowercase alphanumeric runs longer than two characters, duplicates kept."""
    return [token for token in TOKEN_PATTERN.findall((text or "").lower()) if len(token) > 2]


def similarity(a: str, b: str) -> float:
    """
    Share of the tokens of ``a`` that overlap some token of ``b``.

    Two tokens overlap when one contains the other. The count is divided by
    the larger token list, so the measure is not symmetric:
    ``similarity("cat", "category cats")`` is 0.5, the reverse is 1.0.
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return 0.0

    matched = sum(
        1 for t in tokens_a if any(t in u or u in t for u in tokens_b)
    )
    return matched / max(len(tokens_a), len(tokens_b))


@dataclass
class Example:
    prompt: str
    jql: str
    timestamp: int

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Example"]:
        if not isinstance(data, dict):
            return None
        prompt = data.get("prompt")
        jql = data.get("jql")
        if not isinstance(prompt, str) or not isinstance(jql, str) or not prompt.strip() or not jql.strip():
            return None
        timestamp = data.get("timestamp")
        if not isinstance(timestamp, (int, float)):
            timestamp = 0
        return cls(prompt=prompt, jql=jql, timestamp=int(timestamp))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ExampleStore:
    """
    Bounded, de-duplicated, most-recent-first list of prompt/query pairs.

    Writes are synchronous and replace the file atomically; concurrent
    writers are last-writer-wins.
    """

    def __init__(
        self,
        path: str,
        max_examples: int = MAX_EXAMPLES,
        duplicate_threshold: float = DUPLICATE_THRESHOLD,
    ):
        """
        Load the store from disk, seeding defaults when there is nothing to load.

        Args:
            path: JSON file backing the store
            max_examples: Capacity; oldest entries are dropped beyond it
            duplicate_threshold: Prompt similarity above which an entry is a duplicate
        """
        self.path = path
        self.max_examples = max_examples
        self.duplicate_threshold = duplicate_threshold
        self._examples: List[Example] = self._load()

    def __len__(self) -> int:
        return len(self._examples)

    def all_examples(self) -> List[Example]:
        return list(self._examples)

    def add_example(self, prompt: str, jql: str) -> bool:
        """
        Record a successful translation.

        Returns:
            True if the pair was stored, False if it duplicates an existing one
        """
        if not prompt or not prompt.strip() or not jql or not jql.strip():
            logger.info("Ignoring example with empty prompt or query")
            return False

        reason = self._duplicate_reason(prompt, jql, self._examples)
        if reason:
            logger.info("Skipping example '%s': %s", prompt, reason)
            return False

        self._examples.insert(0, Example(prompt=prompt.strip(), jql=jql.strip(), timestamp=_now_ms()))
        del self._examples[self.max_examples:]
        self._save()
        logger.info("Stored example '%s' (%d total)", prompt, len(self._examples))
        return True

    def get_similar_examples(
        self, prompt: str, limit: int = 5, min_score: float = 0.0
    ) -> List[Example]:
        """
        Examples ranked by relevance to ``prompt``.

        The score of an example is its best similarity to either its prompt
        or its query. Ties keep the more recent example first.
        """
        scored = []
        for index, example in enumerate(self._examples):
            score = max(similarity(prompt, example.prompt), similarity(prompt, example.jql))
            if score > min_score:
                scored.append((score, index, example))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [example for _, _, example in scored[:limit]]

    def _duplicate_reason(self, prompt: str, jql: str, existing: List[Example]) -> Optional[str]:
        normalized_jql = jql.strip().lower()
        for example in existing:
            if example.jql.strip().lower() == normalized_jql:
                return f"same query as '{example.prompt}'"
            if similarity(prompt, example.prompt) > self.duplicate_threshold:
                return f"prompt too similar to '{example.prompt}'"
        return None

    def _dedupe(self, examples: List[Example]) -> List[Example]:
        kept: List[Example] = []
        for example in examples:
            if not self._duplicate_reason(example.prompt, example.jql, kept):
                kept.append(example)
        return kept[: self.max_examples]

    def _seed(self) -> List[Example]:
        now = _now_ms()
        return [
            Example(prompt=prompt, jql=jql, timestamp=now - offset)
            for offset, (prompt, jql) in enumerate(DEFAULT_EXAMPLES)
        ]

    def _load(self) -> List[Example]:
        if not os.path.exists(self.path):
            examples = self._seed()
            self._write(examples)
            return examples

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                content = f.read()
            raw = json.loads(content) if content.strip() else []
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Could not read examples from %s: %s", self.path, exc)
            return self._seed()

        if not isinstance(raw, list):
            logger.error("Examples file %s does not hold a list, using defaults", self.path)
            return self._seed()

        examples = [example for example in map(Example.from_dict, raw) if example is not None]
        if not examples:
            examples = self._seed()
            self._write(examples)
            return examples

        examples.sort(key=lambda example: example.timestamp, reverse=True)
        deduped = self._dedupe(examples)
        if len(deduped) != len(raw):
            logger.info("Removed %d duplicate or invalid examples", len(raw) - len(deduped))
            self._write(deduped)
        return deduped

    def _save(self) -> None:
        self._write(self._examples)

    def _write(self, examples: List[Example]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=directory, suffix=".tmp", delete=False
            ) as f:
                tmp_path = f.name
                json.dump([example.to_dict() for example in examples], f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.error("Could not write examples to %s: %s", self.path, exc)
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
