"""Living summaries: category classification, linking and consolidation."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from llm.extraction import MemoryExtractor
from memory.errors import UnknownCategoryError
from memory.memory_manager import require_memory
from memory.schemas import (
    SUMMARY_CATEGORIES,
    LivingSummaryRecord,
    MemoryRecord,
    MemorySummaryLinkRecord,
    utc_now,
)
from memory.stores.sql_store import SQLStore, log_event
from memory.types.extraction import MIN_CATEGORY_RELEVANCE, CategoryClassification
from memory.types.results import ConsolidationResult

logger = logging.getLogger("mind.summaries")

_CATEGORY_DESCRIPTIONS = {
    "personality": "your identity, self-story, personal traits, and core values",
    "goals": "aspirations, objectives, and things you are working toward",
    "relationships": "key people in your life, family, friends, and social connections",
    "projects": "active work, tasks, and projects you are working on",
    "interests": "hobbies, passions, things you enjoy, and entertainment preferences",
    "wellbeing": "your health, mood, emotional patterns, and physical/mental wellness",
    "commitments": "promises, obligations, and things you owe to others or are owed",
    "significant_dates": "birthdays, anniversaries, and other dates that matter to you",
}

_FAMILY = r"(?:wife|husband|spouse|partner|son|daughter|child|children|mother|father|parent|sibling|brother|sister|family)"

_IDENTITY_PATTERNS = [
    re.compile(r"the user'?s? name is", re.IGNORECASE),
    re.compile(r"user is named", re.IGNORECASE),
    re.compile(rf"user'?s? {_FAMILY} is (?:named )?", re.IGNORECASE),
    re.compile(r"the user is \d+ years? old", re.IGNORECASE),
    re.compile(r"the user works at", re.IGNORECASE),
    re.compile(r"the user (?:is|has|works|lives)", re.IGNORECASE),
    re.compile(r"\bmy name is\b", re.IGNORECASE),
]

_MONTHS = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)

_DATE_PATTERNS = [
    re.compile(r"\bbirthdays?\b", re.IGNORECASE),
    re.compile(r"\banniversar(?:y|ies)\b", re.IGNORECASE),
    re.compile(r"\bpassed away\b", re.IGNORECASE),
    re.compile(r"\bthe day (?:we|i|they|she|he)\b", re.IGNORECASE),
    re.compile(rf"\b{_MONTHS}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?\b", re.IGNORECASE),
    re.compile(rf"\b\d{{1,2}}(?:st|nd|rd|th)?\s+(?:of\s+)?{_MONTHS}\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}/\d{1,2}(?:/\d{2,4})?\b"),
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
]


def category_description(category: str) -> str:
    if category not in SUMMARY_CATEGORIES:
        raise UnknownCategoryError(category)
    return _CATEGORY_DESCRIPTIONS[category]


def summary_to_dict(row: LivingSummaryRecord) -> dict[str, Any]:
    return {
        "id": row.id,
        "category": row.category,
        "content": row.content,
        "version": row.version,
        "memory_count": row.memory_count,
        "last_memory_at": row.last_memory_at,
        "staleness_score": row.staleness_score,
        "last_update_model": row.last_update_model,
        "last_updated_at": row.last_updated_at,
    }


def _check_category(category: str) -> None:
    if category not in SUMMARY_CATEGORIES:
        raise UnknownCategoryError(category)


class LivingSummaries:
    """Maintains one versioned prose summary per category.

    Links from memories to categories are the pending-work queue;
    ``consolidate`` drains a category's queue into its summary. At most one
    consolidation per category should run at a time; concurrent runs resolve
    as last writer wins on the content.
    """

    def __init__(
        self,
        sql_store: SQLStore,
        extractor: MemoryExtractor | None = None,
        user_names: Sequence[str] = (),
        staleness_increment: float = 0.1,
        max_batch: int = 20,
    ) -> None:
        self.sql_store = sql_store
        self.extractor = extractor
        self.staleness_increment = staleness_increment
        self.max_batch = max_batch
        self.identity_patterns = list(_IDENTITY_PATTERNS)
        for name in user_names:
            escaped = re.escape(name.strip())
            if not escaped:
                continue
            self.identity_patterns.extend(
                [
                    re.compile(rf"\b{escaped}'?s?\s+{_FAMILY}", re.IGNORECASE),
                    re.compile(rf"\b{escaped}\s+(?:is|has|works|lives|created|built|developed)\b", re.IGNORECASE),
                    re.compile(rf"\b{escaped}\s+works\s+(?:at|for|on)\b", re.IGNORECASE),
                ]
            )
        self.ensure_categories()

    def ensure_categories(self) -> None:
        """Seed one empty summary row per category (idempotent)."""
        with self.sql_store.session() as sess:
            present = set(sess.scalars(select(LivingSummaryRecord.category)).all())
            for category in SUMMARY_CATEGORIES:
                if category in present:
                    continue
                try:
                    with sess.begin_nested():
                        sess.add(LivingSummaryRecord(category=category))
                except IntegrityError:
                    logger.debug("Summary row for %s seeded concurrently", category)

    # --- classification ---------------------------------------------------

    def is_identity_content(self, content: str) -> bool:
        return any(pattern.search(content) for pattern in self.identity_patterns)

    @staticmethod
    def is_significant_date_content(content: str) -> bool:
        return any(pattern.search(content) for pattern in _DATE_PATTERNS)

    def classify(self, content: str) -> list[CategoryClassification]:
        """Categories a memory touches; identity and date language is never dropped."""
        found: dict[str, CategoryClassification] = {}
        raw_items = self.extractor.classify_categories(content) if self.extractor else []
        for raw in raw_items:
            try:
                item = CategoryClassification.model_validate(raw)
            except ValidationError:
                logger.debug("Dropped category classification %r", raw)
                continue
            if item.relevance < MIN_CATEGORY_RELEVANCE:
                continue
            current = found.get(item.category)
            if current is None or item.relevance > current.relevance:
                found[item.category] = item

        if "personality" not in found and self.is_identity_content(content):
            found["personality"] = CategoryClassification(
                category="personality", relevance=1.0, reason="identity content"
            )
        if "significant_dates" not in found and self.is_significant_date_content(content):
            found["significant_dates"] = CategoryClassification(
                category="significant_dates", relevance=0.9, reason="significant date language"
            )
        return list(found.values())

    def link_memory(
        self, memory_id: str, classifications: Sequence[CategoryClassification]
    ) -> list[str]:
        """Upsert memory/category links; each new link makes its summary staler."""
        linked: list[str] = []
        with self.sql_store.session() as sess:
            require_memory(sess, memory_id)
            for item in classifications:
                if item.relevance < MIN_CATEGORY_RELEVANCE:
                    continue
                if self._upsert_link(sess, memory_id, item.category, item.relevance):
                    summary = self._summary_row(sess, item.category, lock=True)
                    summary.staleness_score = min(1.0, summary.staleness_score + self.staleness_increment)
                linked.append(item.category)
        return linked

    def classify_and_link(self, memory_id: str, content: str) -> list[str]:
        return self.link_memory(memory_id, self.classify(content))

    @staticmethod
    def _upsert_link(sess: Session, memory_id: str, category: str, relevance: float) -> bool:
        """Return True when a new link row was created."""
        stmt = select(MemorySummaryLinkRecord).where(
            MemorySummaryLinkRecord.memory_id == memory_id,
            MemorySummaryLinkRecord.summary_category == category,
        )
        link = sess.scalars(stmt).first()
        if link is not None:
            link.relevance_score = relevance
            return False
        try:
            with sess.begin_nested():
                sess.add(
                    MemorySummaryLinkRecord(
                        memory_id=memory_id, summary_category=category, relevance_score=relevance
                    )
                )
        except IntegrityError:
            sess.scalars(stmt).one().relevance_score = relevance
            return False
        return True

    # --- reads ------------------------------------------------------------

    def get_summary(self, category: str) -> dict[str, Any]:
        _check_category(category)
        with self.sql_store.session() as sess:
            return summary_to_dict(self._summary_row(sess, category))

    def get_all_summaries(self) -> list[dict[str, Any]]:
        with self.sql_store.session() as sess:
            rows = sess.scalars(select(LivingSummaryRecord).order_by(LivingSummaryRecord.category)).all()
            return [summary_to_dict(row) for row in rows]

    def get_non_empty_summaries(self) -> list[dict[str, Any]]:
        with self.sql_store.session() as sess:
            rows = sess.scalars(
                select(LivingSummaryRecord)
                .where(LivingSummaryRecord.content != "")
                .order_by(LivingSummaryRecord.last_updated_at.desc())
            ).all()
            return [summary_to_dict(row) for row in rows]

    def get_unincorporated_memories(self, category: str, limit: int = 20) -> list[dict[str, Any]]:
        """Pending memories for a category, most relevant then most recent first."""
        _check_category(category)
        with self.sql_store.session() as sess:
            rows = sess.execute(
                select(
                    MemorySummaryLinkRecord.memory_id,
                    MemoryRecord.content,
                    MemorySummaryLinkRecord.relevance_score,
                    MemoryRecord.created_at,
                )
                .join(MemoryRecord, MemoryRecord.id == MemorySummaryLinkRecord.memory_id)
                .where(
                    MemorySummaryLinkRecord.summary_category == category,
                    MemorySummaryLinkRecord.incorporated.is_(False),
                )
                .order_by(MemorySummaryLinkRecord.relevance_score.desc(), MemoryRecord.created_at.desc())
                .limit(limit)
            ).all()
            return [
                {"memory_id": memory_id, "content": content, "relevance": relevance, "created_at": created_at}
                for memory_id, content, relevance, created_at in rows
            ]

    def has_pending(self, category: str) -> bool:
        return bool(self.get_unincorporated_memories(category, limit=1))

    def pending_categories(self) -> list[str]:
        with self.sql_store.session() as sess:
            found = set(
                sess.scalars(
                    select(MemorySummaryLinkRecord.summary_category)
                    .where(MemorySummaryLinkRecord.incorporated.is_(False))
                    .distinct()
                ).all()
            )
        return [category for category in SUMMARY_CATEGORIES if category in found]

    # --- consolidation ----------------------------------------------------

    @staticmethod
    def build_prompt(category: str, current_content: str, memories: Sequence[dict[str, Any]]) -> str:
        existing = f"Current summary:\n{current_content}\n\n" if current_content else "No existing summary yet.\n\n"
        numbered = "\n".join(f"{i}. {item['content']}" for i, item in enumerate(memories, start=1))
        return (
            f"{existing}New memories to incorporate:\n{numbered}\n\n"
            f'Generate the updated summary for "{category}". Return ONLY the summary text, no preamble.'
        )

    def consolidate(self, category: str) -> ConsolidationResult:
        """Fold pending memories into the category summary.

        Nothing changes when there is nothing pending or generation fails;
        otherwise the new text, version bump, staleness reset and link
        stamping land in one transaction.
        """
        summary = self.get_summary(category)
        pending = self.get_unincorporated_memories(category, limit=self.max_batch)
        if not pending:
            return ConsolidationResult(category=category, summary=summary)
        if self.extractor is None:
            logger.warning("No summary generator configured; %s stays stale", category)
            return ConsolidationResult(category=category, summary=summary)

        prompt = self.build_prompt(category, summary["content"], pending)
        text = self.extractor.generate_summary(prompt, category_description(category))
        if not text:
            logger.warning("Summary generation for %s returned nothing; will retry later", category)
            return ConsolidationResult(category=category, summary=summary)

        memory_ids = [item["memory_id"] for item in pending]
        now = utc_now()
        with self.sql_store.session() as sess:
            row = self._summary_row(sess, category, lock=True)
            row.content = text
            row.version += 1
            row.staleness_score = 0.0
            row.last_update_model = self.extractor.model_name
            row.last_updated_at = now
            sess.execute(
                update(MemorySummaryLinkRecord)
                .where(
                    MemorySummaryLinkRecord.summary_category == category,
                    MemorySummaryLinkRecord.memory_id.in_(memory_ids),
                    MemorySummaryLinkRecord.incorporated.is_(False),
                )
                .values(incorporated=True, incorporated_at=now, incorporated_version=row.version)
                .execution_options(synchronize_session=False)
            )
            incorporated = (
                select(MemorySummaryLinkRecord.memory_id)
                .where(
                    MemorySummaryLinkRecord.summary_category == category,
                    MemorySummaryLinkRecord.incorporated.is_(True),
                )
            )
            row.memory_count = sess.scalar(
                select(func.count())
                .select_from(MemorySummaryLinkRecord)
                .where(
                    MemorySummaryLinkRecord.summary_category == category,
                    MemorySummaryLinkRecord.incorporated.is_(True),
                )
            ) or 0
            row.last_memory_at = sess.scalar(
                select(func.max(MemoryRecord.created_at)).where(MemoryRecord.id.in_(incorporated))
            )
            log_event(
                sess,
                "summary_consolidated",
                category=category,
                version=row.version,
                memories_processed=len(memory_ids),
            )
            sess.flush()
            updated = summary_to_dict(row)

        logger.info("Consolidated %d memories into %s (version %d)", len(memory_ids), category, updated["version"])
        return ConsolidationResult(category=category, summary=updated, memories_processed=len(memory_ids))

    generate_summary = consolidate

    def summary_stats(self) -> dict[str, Any]:
        with self.sql_store.session() as sess:
            categories = sess.scalar(select(func.count()).select_from(LivingSummaryRecord)) or 0
            with_content = sess.scalar(
                select(func.count()).select_from(LivingSummaryRecord).where(LivingSummaryRecord.content != "")
            ) or 0
            incorporated = sess.scalar(
                select(func.count())
                .select_from(MemorySummaryLinkRecord)
                .where(MemorySummaryLinkRecord.incorporated.is_(True))
            ) or 0
            pending = sess.scalar(
                select(func.count())
                .select_from(MemorySummaryLinkRecord)
                .where(MemorySummaryLinkRecord.incorporated.is_(False))
            ) or 0
            avg_staleness = sess.scalar(select(func.avg(LivingSummaryRecord.staleness_score)))
        return {
            "categories": categories,
            "with_content": with_content,
            "total_memories_linked": incorporated,
            "pending_memories": pending,
            "average_staleness": float(avg_staleness or 0.0),
        }

    @staticmethod
    def _summary_row(sess: Session, category: str, lock: bool = False) -> LivingSummaryRecord:
        stmt = select(LivingSummaryRecord).where(LivingSummaryRecord.category == category)
        if lock:
            stmt = stmt.with_for_update()
        row = sess.scalars(stmt).first()
        if row is None:
            raise UnknownCategoryError(category)
        return row
