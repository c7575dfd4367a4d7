"""
Name <-> id translation for the anonymization layer.

Free-text names and student numbers in a user message are swapped for stable
ids before retrieval, and ids in a model response are swapped back for
display names. The lookup index lives in a NameIndexCache owned by the
translator and is keyed by the anonymizer seed and the roster version, so a
seed change or roster re-import rebuilds it on the next call.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional

from ..database.cache import NameIndexCache
from ..database.store import RecordStore
from .interpreter import RuleBasedQueryInterpreter


logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.6
SEARCH_THRESHOLD = 0.3
PLACEHOLDER_PATTERN = re.compile(r"\[Student Name\]\s*", re.IGNORECASE)


class AnonymizedIdentity(NamedTuple):
    first_name: str
    last_name: str
    student_id: str


# (student id, seed) -> fictional identity; deterministic for a given seed
Anonymizer = Callable[[str, str], AnonymizedIdentity]


@dataclass
class StudentNameMapping:
    student_id: str
    name: str
    student_number: str
    first_name: str = ""
    last_name: str = ""


@dataclass
class NameIndex:
    """Lookup tables built from one roster snapshot."""
    by_id: Dict[str, StudentNameMapping] = field(default_factory=dict)
    name_to_id: Dict[str, str] = field(default_factory=dict)
    anonymized_to_id: Dict[str, str] = field(default_factory=dict)
    display_names: Dict[str, str] = field(default_factory=dict)


@dataclass
class NameTranslation:
    original_name: str
    student_id: str
    student_name: str


@dataclass
class TranslationResult:
    translated_message: str
    translations: List[NameTranslation] = field(default_factory=list)


def name_similarity(query: str, target: str) -> float:
    """
    1.0 for equal strings, 0.8 when one contains the other, otherwise the
    share of query words that prefix-match some target word.
    """
    query = query.lower().strip()
    target = target.lower().strip()
    if query == target:
        return 1.0
    if query in target or target in query:
        return 0.8

    query_words = [w for w in query.split() if len(w) > 1]
    target_words = [w for w in target.split() if len(w) > 1]
    if not query_words:
        return 0.0
    matching = sum(
        1 for q in query_words
        if any(t.startswith(q) or q.startswith(t) for t in target_words)
    )
    return matching / len(query_words)


class StudentNameTranslator:

    def __init__(
        self,
        store: RecordStore,
        cache: Optional[NameIndexCache] = None,
        anonymizer: Optional[Anonymizer] = None,
        seed: Optional[str] = None,
    ):
        self.store = store
        self.cache = cache or NameIndexCache()
        self.anonymizer = anonymizer
        self.seed = seed
        self.interpreter = RuleBasedQueryInterpreter()

    def set_anonymizer(self, anonymizer: Optional[Anonymizer], seed: Optional[str] = None) -> None:
        self.anonymizer = anonymizer
        self.seed = seed

    async def _invalidation_key(self) -> str:
        seed = self.seed if self.anonymizer else None
        return NameIndexCache.make_invalidation_key(seed, await self.store.roster_version())

    async def get_index(self) -> NameIndex:
        key = await self._invalidation_key()
        index = await self.cache.get(key)
        if index is None:
            index = await self._build_index()
            await self.cache.set(key, index)
        return index

    async def _build_index(self) -> NameIndex:
        students = await self.store.get_students()
        index = NameIndex()

        for student in students:
            first = (student.first_name or "").strip()
            last = (student.last_name or "").strip()
            full = f"{first} {last}".strip()
            mapping = StudentNameMapping(
                student_id=student.id,
                name=full,
                student_number=student.student_number or student.id,
                first_name=first,
                last_name=last,
            )
            index.by_id[student.id] = mapping
            index.display_names[student.id] = full

            if full:
                index.name_to_id[full.lower()] = student.id
            if first and last:
                index.name_to_id[f"{first.lower()} {last.lower()[0]}"] = student.id
                index.name_to_id[f"{last.lower()}, {first.lower()}"] = student.id
            if student.student_number:
                index.name_to_id[student.student_number] = student.id

            if self.anonymizer:
                fake = self.anonymizer(student.id, self.seed or "")
                fake_full = f"{fake.first_name} {fake.last_name}"
                index.anonymized_to_id[fake_full.lower()] = student.id
                index.anonymized_to_id[f"{fake.last_name}, {fake.first_name}".lower()] = student.id
                index.anonymized_to_id[fake.student_id.lower()] = student.id
                index.display_names[student.id] = fake_full

        logger.info(
            f"Built name index for {len(students)} students",
            extra={"anonymized_entries": len(index.anonymized_to_id)},
        )
        return index

    @staticmethod
    def _best_match(query: str, candidates: Dict[str, str]) -> Optional[str]:
        """Student id of the highest-scoring candidate name above the threshold."""
        best_id, best_score = None, MATCH_THRESHOLD
        for name, student_id in candidates.items():
            score = name_similarity(query, name)
            if score > best_score:
                best_id, best_score = student_id, score
        return best_id

    async def find_student_by_name(self, name_query: str) -> Optional[StudentNameMapping]:
        """
        Exact lookups first (anonymized names, then real names and student
        numbers), then fuzzy matching in the same order.
        """
        index = await self.get_index()
        query = name_query.lower().strip()
        if not query:
            return None

        student_id = index.anonymized_to_id.get(query) or index.name_to_id.get(query)
        if student_id is None and index.anonymized_to_id:
            student_id = self._best_match(query, index.anonymized_to_id)
        if student_id is None:
            real_names = {m.name.lower(): m.student_id for m in index.by_id.values() if m.name}
            student_id = self._best_match(query, real_names)

        return index.by_id.get(student_id) if student_id else None

    async def get_name_by_id(self, student_id: str) -> Optional[str]:
        index = await self.get_index()
        return index.display_names.get(student_id)

    async def get_id_by_name(self, name: str) -> Optional[str]:
        mapping = await self.find_student_by_name(name)
        return mapping.student_id if mapping else None

    async def search_students_by_name(self, query: str, limit: int = 10) -> List[StudentNameMapping]:
        if not query or len(query) < 2:
            return []

        index = await self.get_index()
        query = query.lower().strip()
        scored = []
        for mapping in index.by_id.values():
            name = mapping.name.lower()
            score = name_similarity(query, name)
            if score > SEARCH_THRESHOLD or query in name:
                scored.append((score, mapping))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [mapping for _, mapping in scored[:limit]]

    async def translate_names_to_ids(self, message: str) -> TranslationResult:
        """Replace every recognizable student name or number with "Student <id>"."""
        result = TranslationResult(translated_message=message)

        for candidate in self.interpreter.extract_identifiers(message):
            mapping = await self.find_student_by_name(candidate)
            if mapping is None:
                logger.debug(f"No student found for '{candidate}'")
                continue

            replacement = f"Student {mapping.student_id}"
            translated = result.translated_message
            for form in (f'"{candidate}"', f"'{candidate}'", candidate):
                if form in translated:
                    result.translated_message = translated.replace(form, replacement, 1)
                    break
            else:
                continue

            result.translations.append(NameTranslation(
                original_name=candidate,
                student_id=mapping.student_id,
                student_name=mapping.name,
            ))

        logger.info(f"Translated {len(result.translations)} student names to ids")
        return result

    async def translate_ids_to_names(self, text: str) -> str:
        """
        Replace known ids with display names (anonymized names when an
        anonymizer is configured). "[ID: x]", "(ID: x)", "Student x" and bare
        ids are recognized; leftover "[Student Name]" placeholders are removed.
        """
        index = await self.get_index()
        if index.display_names:
            ids = sorted(index.display_names, key=len, reverse=True)
            id_group = "|".join(re.escape(i) for i in ids)
            pattern = re.compile(
                rf"\[(?:Student )?ID:\s*({id_group})\]"
                rf"|\(ID:\s*({id_group})\)"
                rf"|\bStudent\s+({id_group})(?![\w-])"
                rf"|(?<![\w-])({id_group})(?![\w-])"
            )

            def replace(match: re.Match) -> str:
                student_id = next(group for group in match.groups() if group)
                return index.display_names.get(student_id) or match.group(0)

            text = pattern.sub(replace, text)

        return PLACEHOLDER_PATTERN.sub("", text)
