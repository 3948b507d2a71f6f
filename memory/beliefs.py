"""Belief lifecycle: extraction, dedup, evidence and conflict tracking."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from llm.extraction import MemoryExtractor
from memory.errors import (
    BeliefNotFoundError,
    ConflictAlreadyResolvedError,
    ConflictNotFoundError,
)
from memory.memory_manager import require_memory
from memory.schemas import (
    BELIEF_STATUSES,
    BELIEF_TYPES,
    CONFLICT_TYPES,
    EVIDENCE_TYPES,
    RESOLUTIONS,
    BeliefConflictRecord,
    BeliefEvidenceRecord,
    BeliefRecord,
    EntityRecord,
    MemoryRecord,
    utc_now,
)
from memory.stores.sql_store import SQLStore, log_event
from memory.types.extraction import ConflictCandidate, ExtractedBelief
from memory.types.results import BeliefExtractionResult

logger = logging.getLogger("mind.beliefs")

_TYPE_DESCRIPTIONS = {
    "value": "Core values and principles",
    "preference": "Personal preferences",
    "self_knowledge": "Self-understanding and traits",
    "prediction": "Expectations and predictions",
    "about_person": "Beliefs about other people",
    "about_project": "Beliefs about work and projects",
    "about_world": "General world beliefs",
    "should": "Normative beliefs (what should be)",
}


def belief_type_description(belief_type: str) -> str:
    if belief_type not in _TYPE_DESCRIPTIONS:
        raise ValueError(f"Unknown belief type: {belief_type}")
    return _TYPE_DESCRIPTIONS[belief_type]


def normalize_content(content: str) -> str:
    return content.strip().casefold()


def pair_key(belief_a_id: str, belief_b_id: str) -> str:
    low, high = sorted((belief_a_id, belief_b_id))
    return f"{low}|{high}"


def belief_to_dict(row: BeliefRecord) -> dict[str, Any]:
    return {
        "id": row.id,
        "content": row.content,
        "belief_type": row.belief_type,
        "related_entity_id": row.related_entity_id,
        "confidence": row.confidence,
        "source_memory_count": row.source_memory_count,
        "reinforcement_count": row.reinforcement_count,
        "status": row.status,
        "superseded_by": row.superseded_by,
        "extracted_by_model": row.extracted_by_model,
        "first_extracted_at": row.first_extracted_at,
        "last_reinforced_at": row.last_reinforced_at,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


def conflict_to_dict(row: BeliefConflictRecord) -> dict[str, Any]:
    return {
        "id": row.id,
        "belief_a_id": row.belief_a_id,
        "belief_b_id": row.belief_b_id,
        "conflict_type": row.conflict_type,
        "conflict_description": row.conflict_description,
        "resolution_status": row.resolution_status,
        "resolution_notes": row.resolution_notes,
        "detected_at": row.detected_at,
        "resolved_at": row.resolved_at,
    }


def _require_belief(sess: Session, belief_id: str, lock: bool = False) -> BeliefRecord:
    row = sess.get(BeliefRecord, belief_id, with_for_update=lock)
    if row is None:
        raise BeliefNotFoundError(belief_id)
    return row


class BeliefLifecycle:
    """Owns every belief state transition.

    Matching is exact on trimmed, case-folded content within one belief type;
    paraphrases become separate beliefs.
    """

    def __init__(
        self,
        sql_store: SQLStore,
        extractor: MemoryExtractor | None = None,
        match_boost: float = 0.05,
    ) -> None:
        self.sql_store = sql_store
        self.extractor = extractor
        self.match_boost = match_boost

    # --- extraction -------------------------------------------------------

    def extract_candidates(self, content: str) -> list[ExtractedBelief]:
        """Ask the extractor for candidates and keep only the valid ones."""
        if self.extractor is None:
            return []
        candidates: list[ExtractedBelief] = []
        for raw in self.extractor.extract_beliefs(content):
            try:
                candidates.append(ExtractedBelief.model_validate(raw))
            except ValidationError as exc:
                logger.debug("Dropped belief candidate %r: %s", raw, exc.errors()[0]["msg"])
        return candidates

    def process_memory(self, memory_id: str, content: str) -> BeliefExtractionResult:
        """Create or reinforce beliefs for one memory and record new conflicts."""
        with self.sql_store.session() as sess:
            require_memory(sess, memory_id)

        result = BeliefExtractionResult()
        for candidate in self.extract_candidates(content):
            created_id: str | None = None
            with self.sql_store.session() as sess:
                match = self._find_match(sess, candidate.content, candidate.belief_type, lock=True)
                if match is not None:
                    self._reinforce(sess, match, self.match_boost)
                    self._link_evidence(sess, match, memory_id, candidate.confidence, "supports")
                    result.reinforced.append(belief_to_dict(match))
                else:
                    belief = self._create(
                        sess,
                        content=candidate.content,
                        belief_type=candidate.belief_type,
                        confidence=candidate.confidence,
                        related_entity_id=self._resolve_entity(sess, candidate.entity_name),
                    )
                    self._link_evidence(sess, belief, memory_id, candidate.confidence, "supports")
                    created_id = belief.id
            if created_id is not None:
                # Conflict detection calls the extractor, so it runs outside the write transaction.
                result.conflicts.extend(self.detect_conflicts(created_id))
                result.created.append(self.get_belief(created_id))

        if result.created or result.reinforced:
            logger.info(
                "Memory %s: %d beliefs created, %d reinforced, %d conflicts",
                memory_id,
                len(result.created),
                len(result.reinforced),
                len(result.conflicts),
            )
        return result

    # --- CRUD -------------------------------------------------------------

    def create_belief(
        self,
        content: str,
        belief_type: str,
        confidence: float = 0.5,
        related_entity_id: str | None = None,
    ) -> dict[str, Any]:
        with self.sql_store.session() as sess:
            row = self._create(sess, content, belief_type, confidence, related_entity_id)
            return belief_to_dict(row)

    def get_belief(self, belief_id: str) -> dict[str, Any]:
        with self.sql_store.session() as sess:
            return belief_to_dict(_require_belief(sess, belief_id))

    def find_matching_belief(self, content: str, belief_type: str) -> dict[str, Any] | None:
        """Active belief of the same type with identical normalized content."""
        with self.sql_store.session() as sess:
            row = self._find_match(sess, content, belief_type)
            return belief_to_dict(row) if row is not None else None

    def reinforce_belief(self, belief_id: str, boost: float = 0.1) -> dict[str, Any]:
        with self.sql_store.session() as sess:
            row = _require_belief(sess, belief_id, lock=True)
            self._reinforce(sess, row, boost)
            return belief_to_dict(row)

    def supersede_belief(self, old_belief_id: str, new_belief_id: str) -> dict[str, Any]:
        if old_belief_id == new_belief_id:
            raise ValueError("A belief cannot supersede itself.")
        with self.sql_store.session() as sess:
            old = _require_belief(sess, old_belief_id, lock=True)
            _require_belief(sess, new_belief_id)
            old.status = "superseded"
            old.superseded_by = new_belief_id
            sess.flush()
            return belief_to_dict(old)

    def link_evidence(
        self,
        belief_id: str,
        memory_id: str,
        support_strength: float = 0.5,
        evidence_type: str = "supports",
    ) -> dict[str, Any]:
        """Upsert the (belief, memory) evidence row and recount the belief's sources."""
        with self.sql_store.session() as sess:
            belief = _require_belief(sess, belief_id, lock=True)
            require_memory(sess, memory_id)
            evidence = self._link_evidence(sess, belief, memory_id, support_strength, evidence_type)
            return {
                "id": evidence.id,
                "belief_id": belief_id,
                "memory_id": memory_id,
                "support_strength": evidence.support_strength,
                "evidence_type": evidence.evidence_type,
                "extracted_at": evidence.extracted_at,
            }

    def get_belief_evidence(self, belief_id: str) -> list[dict[str, Any]]:
        with self.sql_store.session() as sess:
            _require_belief(sess, belief_id)
            rows = sess.execute(
                select(BeliefEvidenceRecord, MemoryRecord.content)
                .join(MemoryRecord, MemoryRecord.id == BeliefEvidenceRecord.memory_id)
                .where(BeliefEvidenceRecord.belief_id == belief_id)
                .order_by(BeliefEvidenceRecord.support_strength.desc())
            ).all()
            return [
                {
                    "id": evidence.id,
                    "belief_id": evidence.belief_id,
                    "memory_id": evidence.memory_id,
                    "memory_content": content,
                    "support_strength": evidence.support_strength,
                    "evidence_type": evidence.evidence_type,
                    "extracted_at": evidence.extracted_at,
                }
                for evidence, content in rows
            ]

    def get_all_beliefs(
        self,
        belief_type: str | None = None,
        status: str | None = "active",
        min_confidence: float | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """List beliefs, strongest first; ``status=None`` lists every status."""
        with self.sql_store.session() as sess:
            stmt = select(BeliefRecord)
            if belief_type is not None:
                stmt = stmt.where(BeliefRecord.belief_type == belief_type)
            if status is not None:
                stmt = stmt.where(BeliefRecord.status == status)
            if min_confidence is not None:
                stmt = stmt.where(BeliefRecord.confidence >= min_confidence)
            stmt = stmt.order_by(
                BeliefRecord.confidence.desc(), BeliefRecord.reinforcement_count.desc()
            ).limit(limit)
            return [belief_to_dict(row) for row in sess.scalars(stmt).all()]

    def get_beliefs_by_type(self, belief_type: str) -> list[dict[str, Any]]:
        if belief_type not in BELIEF_TYPES:
            raise ValueError(f"Unknown belief type: {belief_type}")
        return self.get_all_beliefs(belief_type=belief_type)

    def get_beliefs_by_entity(self, entity_id: str) -> list[dict[str, Any]]:
        with self.sql_store.session() as sess:
            rows = sess.scalars(
                select(BeliefRecord)
                .where(
                    BeliefRecord.related_entity_id == entity_id,
                    BeliefRecord.status == "active",
                )
                .order_by(BeliefRecord.confidence.desc())
            ).all()
            return [belief_to_dict(row) for row in rows]

    # --- conflicts --------------------------------------------------------

    def detect_conflicts(self, belief_id: str) -> list[dict[str, Any]]:
        """Compare one belief against the other active beliefs of its type in one call."""
        with self.sql_store.session() as sess:
            belief = _require_belief(sess, belief_id)
            content, belief_type = belief.content, belief.belief_type
            others = [
                {"id": row.id, "content": row.content}
                for row in sess.scalars(
                    select(BeliefRecord).where(
                        BeliefRecord.belief_type == belief_type,
                        BeliefRecord.status == "active",
                        BeliefRecord.id != belief_id,
                    )
                ).all()
            ]
        if not others or self.extractor is None:
            return []

        compared = {item["id"] for item in others}
        recorded: list[dict[str, Any]] = []
        for raw in self.extractor.detect_conflicts(content, others, belief_type):
            try:
                candidate = ConflictCandidate.model_validate(raw)
            except ValidationError:
                logger.debug("Dropped conflict candidate %r", raw)
                continue
            if candidate.existing_belief_id not in compared:
                logger.debug("Conflict names belief %s outside the compared set", candidate.existing_belief_id)
                continue
            # The older belief is A, the newly created one B.
            conflict = self.record_conflict(
                candidate.existing_belief_id,
                belief_id,
                candidate.conflict_type,
                candidate.description or None,
            )
            if conflict is not None:
                recorded.append(conflict)
        return recorded

    def record_conflict(
        self,
        belief_a_id: str,
        belief_b_id: str,
        conflict_type: str,
        description: str | None = None,
    ) -> dict[str, Any] | None:
        """Record a conflict and flip both active beliefs to ``conflicted`` atomically.

        Returns None when the unordered pair already has a conflict row.
        """
        if conflict_type not in CONFLICT_TYPES:
            raise ValueError(f"Unknown conflict type: {conflict_type}")
        if belief_a_id == belief_b_id:
            raise ValueError("A belief cannot conflict with itself.")
        key = pair_key(belief_a_id, belief_b_id)
        with self.sql_store.session() as sess:
            belief_a = _require_belief(sess, belief_a_id, lock=True)
            belief_b = _require_belief(sess, belief_b_id, lock=True)
            exists = sess.scalar(
                select(BeliefConflictRecord.id).where(BeliefConflictRecord.pair_key == key)
            )
            if exists is not None:
                return None
            try:
                with sess.begin_nested():
                    conflict = BeliefConflictRecord(
                        belief_a_id=belief_a_id,
                        belief_b_id=belief_b_id,
                        pair_key=key,
                        conflict_type=conflict_type,
                        conflict_description=description,
                    )
                    sess.add(conflict)
            except IntegrityError:
                return None
            for belief in (belief_a, belief_b):
                if belief.status == "active":
                    belief.status = "conflicted"
            log_event(
                sess,
                "belief_conflict_detected",
                conflict_id=conflict.id,
                belief_a_id=belief_a_id,
                belief_b_id=belief_b_id,
                conflict_type=conflict_type,
            )
            sess.flush()
            logger.info("Conflict %s (%s) between %s and %s", conflict.id, conflict_type, belief_a_id, belief_b_id)
            return conflict_to_dict(conflict)

    def get_conflict(self, conflict_id: str) -> dict[str, Any]:
        with self.sql_store.session() as sess:
            row = sess.get(BeliefConflictRecord, conflict_id)
            if row is None:
                raise ConflictNotFoundError(conflict_id)
            return conflict_to_dict(row)

    def get_unresolved_conflicts(self) -> list[dict[str, Any]]:
        belief_a = aliased(BeliefRecord)
        belief_b = aliased(BeliefRecord)
        with self.sql_store.session() as sess:
            rows = sess.execute(
                select(BeliefConflictRecord, belief_a.content, belief_b.content)
                .join(belief_a, belief_a.id == BeliefConflictRecord.belief_a_id)
                .join(belief_b, belief_b.id == BeliefConflictRecord.belief_b_id)
                .where(BeliefConflictRecord.resolution_status == "unresolved")
                .order_by(BeliefConflictRecord.detected_at.desc())
            ).all()
            results = []
            for conflict, content_a, content_b in rows:
                item = conflict_to_dict(conflict)
                item["belief_a_content"] = content_a
                item["belief_b_content"] = content_b
                results.append(item)
            return results

    def resolve_conflict(
        self, conflict_id: str, resolution: str, notes: str | None = None
    ) -> dict[str, Any]:
        """Move an unresolved conflict to a terminal resolution.

        ``belief_a_active``/``belief_b_active`` supersede the loser,
        ``both_valid`` reactivates both, ``merged`` and ``user_resolved`` only
        close the conflict.
        """
        if resolution not in RESOLUTIONS:
            raise ValueError(f"Unknown resolution: {resolution}")
        with self.sql_store.session() as sess:
            conflict = sess.get(BeliefConflictRecord, conflict_id, with_for_update=True)
            if conflict is None:
                raise ConflictNotFoundError(conflict_id)
            if conflict.resolution_status != "unresolved":
                raise ConflictAlreadyResolvedError(conflict_id, conflict.resolution_status)

            belief_a = _require_belief(sess, conflict.belief_a_id, lock=True)
            belief_b = _require_belief(sess, conflict.belief_b_id, lock=True)
            if resolution == "belief_a_active":
                self._pick_winner(belief_a, belief_b)
            elif resolution == "belief_b_active":
                self._pick_winner(belief_b, belief_a)
            elif resolution == "both_valid":
                belief_a.status = "active"
                belief_b.status = "active"

            conflict.resolution_status = resolution
            conflict.resolution_notes = notes
            conflict.resolved_at = utc_now()
            log_event(
                sess,
                "belief_conflict_resolved",
                conflict_id=conflict_id,
                resolution=resolution,
            )
            sess.flush()
            logger.info("Conflict %s resolved as %s", conflict_id, resolution)
            return conflict_to_dict(conflict)

    def belief_stats(self) -> dict[str, Any]:
        with self.sql_store.session() as sess:
            status_rows = sess.execute(
                select(BeliefRecord.status, func.count()).group_by(BeliefRecord.status)
            ).all()
            type_rows = sess.execute(
                select(BeliefRecord.belief_type, func.count())
                .where(BeliefRecord.status == "active")
                .group_by(BeliefRecord.belief_type)
            ).all()
            avg_confidence = sess.scalar(select(func.avg(BeliefRecord.confidence)))
            unresolved = sess.scalar(
                select(func.count())
                .select_from(BeliefConflictRecord)
                .where(BeliefConflictRecord.resolution_status == "unresolved")
            )
        by_status = {status: 0 for status in BELIEF_STATUSES}
        by_status.update({status: int(count) for status, count in status_rows})
        return {
            "total": sum(by_status.values()),
            **by_status,
            "by_type": {belief_type: int(count) for belief_type, count in type_rows},
            "average_confidence": float(avg_confidence or 0.0),
            "unresolved_conflicts": int(unresolved or 0),
        }

    # --- internals --------------------------------------------------------

    def _create(
        self,
        sess: Session,
        content: str,
        belief_type: str,
        confidence: float,
        related_entity_id: str | None,
    ) -> BeliefRecord:
        if belief_type not in BELIEF_TYPES:
            raise ValueError(f"Unknown belief type: {belief_type}")
        if not content.strip():
            raise ValueError("Belief content must not be empty.")
        row = BeliefRecord(
            content=content.strip(),
            normalized_content=normalize_content(content),
            belief_type=belief_type,
            confidence=max(0.0, min(1.0, confidence)),
            related_entity_id=related_entity_id,
            extracted_by_model=self.extractor.model_name if self.extractor else None,
        )
        sess.add(row)
        sess.flush()
        log_event(sess, "belief_created", belief_id=row.id, belief_type=belief_type)
        return row

    @staticmethod
    def _find_match(
        sess: Session, content: str, belief_type: str, lock: bool = False
    ) -> BeliefRecord | None:
        stmt = select(BeliefRecord).where(
            BeliefRecord.belief_type == belief_type,
            BeliefRecord.status == "active",
            BeliefRecord.normalized_content == normalize_content(content),
        )
        if lock:
            stmt = stmt.with_for_update()
        return sess.scalars(stmt.order_by(BeliefRecord.created_at).limit(1)).first()

    @staticmethod
    def _reinforce(sess: Session, row: BeliefRecord, boost: float) -> None:
        row.confidence = min(1.0, row.confidence + boost)
        row.reinforcement_count += 1
        row.last_reinforced_at = utc_now()
        log_event(sess, "belief_reinforced", belief_id=row.id, confidence=row.confidence)
        sess.flush()

    @staticmethod
    def _link_evidence(
        sess: Session,
        belief: BeliefRecord,
        memory_id: str,
        support_strength: float,
        evidence_type: str,
    ) -> BeliefEvidenceRecord:
        if evidence_type not in EVIDENCE_TYPES:
            raise ValueError(f"Unknown evidence type: {evidence_type}")
        strength = max(0.0, min(1.0, support_strength))
        stmt = select(BeliefEvidenceRecord).where(
            BeliefEvidenceRecord.belief_id == belief.id,
            BeliefEvidenceRecord.memory_id == memory_id,
        )
        evidence = sess.scalars(stmt).first()
        if evidence is None:
            try:
                with sess.begin_nested():
                    evidence = BeliefEvidenceRecord(
                        belief_id=belief.id,
                        memory_id=memory_id,
                        support_strength=strength,
                        evidence_type=evidence_type,
                    )
                    sess.add(evidence)
            except IntegrityError:
                evidence = sess.scalars(stmt).one()
        evidence.support_strength = strength
        evidence.evidence_type = evidence_type
        sess.flush()
        belief.source_memory_count = sess.scalar(
            select(func.count())
            .select_from(BeliefEvidenceRecord)
            .where(BeliefEvidenceRecord.belief_id == belief.id)
        ) or 0
        return evidence

    @staticmethod
    def _resolve_entity(sess: Session, entity_name: str | None) -> str | None:
        if not entity_name:
            return None
        needle = entity_name.strip().lower()
        return sess.scalar(
            select(EntityRecord.id)
            .where(
                EntityRecord.is_merged.is_(False),
                or_(
                    func.lower(EntityRecord.name) == needle,
                    func.lower(EntityRecord.canonical_name) == needle,
                ),
            )
            .order_by(EntityRecord.mention_count.desc())
            .limit(1)
        )

    @staticmethod
    def _pick_winner(winner: BeliefRecord, loser: BeliefRecord) -> None:
        winner.status = "active"
        winner.superseded_by = None
        loser.status = "superseded"
        loser.superseded_by = winner.id
