"""
Preference learning and persona scoring.

Like/dislike feedback is turned into per-tag learned weights, and candidates
are scored against a persona's curated recipe with the learned weights taking
precedence over the curated ones.
"""

import math
import threading
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from loguru import logger

from .config import Settings, get_settings
from .errors import UnknownPersonaError
from .models import (
    Candidate,
    FeatureSnapshot,
    LearnedWeight,
    MatchLabel,
    MatchResult,
    Persona,
    normalize_tags,
)
from .recipes import DEFAULT_PERSONA_ID, all_recipes
from .store import InMemory, Store

# Multipliers applied to the effective weight of a matched tag.
POSITIVE_MULTIPLIER = 20
NEGATIVE_MULTIPLIER = 20
RED_FLAG_MULTIPLIER = 30
LEARNED_MULTIPLIER = 15

BASELINE_SCORE = 50
NO_MATCH_REASON = "no specific criteria matched"

# Used when a curated tag has no explicit weight in its recipe.
CATEGORY_DEFAULTS = {"positive": 0.5, "negative": -0.3, "red_flag": -0.5}

Scorable = Union[FeatureSnapshot, Candidate, Iterable[str]]


def _features_of(target: Scorable) -> FeatureSnapshot:
    if isinstance(target, Candidate):
        return target.features
    if isinstance(target, FeatureSnapshot):
        return target
    return FeatureSnapshot(tags=list(target))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class PreferenceEngine:
    """Scores candidates for one user and learns from their feedback.

    Parameters
    ----------
    store : Store, optional
        Persistence for personas and learned weights. Defaults to ``InMemory``.
    settings : Settings, optional
        Supplies the label and triage thresholds.
    personas : list of Persona, optional
        Personas to register. When omitted, personas are loaded from the store
        and the built-in recipes are seeded if the store has none.
    active_persona : str, optional
        Initially active persona id.

    Notes
    -----
    All mutable state sits behind one lock. Readers copy what they need under
    the lock and compute outside it, so scoring a feed can run alongside
    feedback bursts without lost updates.
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        settings: Optional[Settings] = None,
        personas: Optional[List[Persona]] = None,
        active_persona: Optional[str] = None,
    ):
        self.store = store if store is not None else InMemory()
        self.settings = settings or get_settings()
        self._lock = threading.RLock()
        self._personas: Dict[str, Persona] = {}
        self._learned: Dict[str, Dict[str, LearnedWeight]] = {}

        if personas is None:
            personas = self.store.load_personas()
            if not personas:
                personas = all_recipes()
                for persona in personas:
                    self.store.save_persona(persona)
        for persona in personas:
            self._personas[persona.id] = persona

        for weight in self.store.load_learned_weights():
            self._learned.setdefault(weight.persona_id, {})[weight.tag] = weight

        if active_persona is None:
            active_persona = (
                DEFAULT_PERSONA_ID
                if DEFAULT_PERSONA_ID in self._personas
                else next(iter(self._personas), None)
            )
        if active_persona not in self._personas:
            raise UnknownPersonaError(f"Unknown persona: {active_persona}")
        self._active_id = active_persona

    # --- Personas ---

    @property
    def active_persona(self) -> Persona:
        with self._lock:
            return self._personas[self._active_id]

    @property
    def active_persona_id(self) -> str:
        with self._lock:
            return self._active_id

    def personas(self) -> List[Persona]:
        with self._lock:
            return list(self._personas.values())

    def get_persona(self, persona_id: Optional[str] = None) -> Persona:
        with self._lock:
            persona_id = persona_id or self._active_id
            try:
                return self._personas[persona_id]
            except KeyError:
                raise UnknownPersonaError(f"Unknown persona: {persona_id}") from None

    def switch_persona(self, persona_id: str) -> Persona:
        """Atomically makes ``persona_id`` the active persona."""
        with self._lock:
            persona = self.get_persona(persona_id)
            self._active_id = persona.id
        logger.info(f"Active persona switched to {persona.id}")
        return persona

    def create_persona(self, persona: Persona) -> Persona:
        with self._lock:
            self._personas[persona.id] = persona
            self.store.save_persona(persona)
        return persona

    def persona_summary(self, persona_id: Optional[str] = None) -> str:
        persona = self.get_persona(persona_id)
        lines = [f"Persona: {persona.name}. {persona.description}".strip()]
        if persona.positive_tags:
            lines.append("Looks for: " + ", ".join(persona.positive_tags[:8]))
        if persona.red_flag_tags:
            lines.append("Red flags: " + ", ".join(persona.red_flag_tags))
        return "\n".join(lines)

    # --- Learned weights ---

    def record_feedback(
        self, persona_id: Optional[str], tags: Iterable[str], is_like: bool
    ) -> List[LearnedWeight]:
        """Counts one like or dislike for every tag and recomputes its weight.

        Parameters
        ----------
        persona_id : str or None
            Persona the feedback applies to; ``None`` means the active one.
        tags : Iterable[str]
            Tags carried by the liked or disliked entity. Duplicates count once.
        is_like : bool
            True for a like, False for a dislike.

        Returns
        -------
        List[LearnedWeight]
            Copies of the updated weights.
        """
        tags = normalize_tags(tags)
        with self._lock:
            persona = self.get_persona(persona_id)
            table = self._learned.setdefault(persona.id, {})
            updated = []
            for tag in tags:
                weight = table.get(tag) or LearnedWeight(persona_id=persona.id, tag=tag)
                if is_like:
                    weight.like_count += 1
                else:
                    weight.dislike_count += 1
                table[tag] = weight.recompute()
                updated.append(weight.model_copy())
            for weight in updated:
                self.store.upsert_learned_weight(weight)
        if updated:
            logger.debug(
                f"Recorded {'like' if is_like else 'dislike'} for {persona.id}: "
                f"{', '.join(tags)}"
            )
        return updated

    def learned_weight(self, tag: str, persona_id: Optional[str] = None) -> Optional[LearnedWeight]:
        with self._lock:
            persona_id = persona_id or self._active_id
            weight = self._learned.get(persona_id, {}).get(tag)
            return weight.model_copy() if weight else None

    def learned_weights(self, persona_id: Optional[str] = None) -> List[LearnedWeight]:
        with self._lock:
            persona_id = persona_id or self._active_id
            return [w.model_copy() for w in self._learned.get(persona_id, {}).values()]

    def top_learned_weights(
        self, persona_id: Optional[str] = None, limit: int = 10
    ) -> List[LearnedWeight]:
        """Strongest learned signals first, by absolute weight then sample size."""
        weights = self.learned_weights(persona_id)
        weights.sort(key=lambda w: (abs(w.weight), w.like_count + w.dislike_count), reverse=True)
        return weights[:limit]

    def clear_learned_weights(self, persona_id: Optional[str] = None) -> int:
        with self._lock:
            persona_id = persona_id or self._active_id
            self._learned.pop(persona_id, None)
            removed = self.store.delete_learned_weights(persona_id)
        logger.info(f"Cleared {removed} learned weights for {persona_id}")
        return removed

    def effective_weight(self, tag: str, persona_id: Optional[str] = None) -> Optional[float]:
        """Learned weight if one exists, else the curated or category default weight."""
        persona = self.get_persona(persona_id)
        learned = self.learned_weight(tag, persona.id)
        if learned is not None:
            return learned.weight
        category = persona.category_of(tag)
        if category is None:
            return None
        return persona.weights.get(tag, CATEGORY_DEFAULTS[category])

    # --- Scoring ---

    def label_for(self, score: int) -> MatchLabel:
        if score >= self.settings.strong_pass_threshold:
            return MatchLabel.STRONG_PASS
        if score >= self.settings.soft_pass_threshold:
            return MatchLabel.SOFT_PASS
        if score >= self.settings.borderline_threshold:
            return MatchLabel.BORDERLINE
        return MatchLabel.PASS

    def score(self, target: Scorable, persona_id: Optional[str] = None) -> MatchResult:
        """Scores a feature snapshot against a persona.

        Never raises on degenerate input: a snapshot that matches nothing
        scores the neutral baseline with an explanatory reason.
        """
        features = _features_of(target)
        with self._lock:
            persona = self.get_persona(persona_id)
            learned = {
                tag: w.weight for tag, w in self._learned.get(persona.id, {}).items()
            }

        total = float(BASELINE_SCORE)
        reasons = []
        matched = {"positive": [], "negative": [], "red_flag": [], "learned": []}
        known = 0

        for tag in features.tags:
            categories = persona.categories_of(tag)
            if not categories:
                weight = learned.get(tag)
                if weight:
                    total += weight * LEARNED_MULTIPLIER
                    matched["learned"].append(tag)
                    reasons.append(f"learned preference: {tag} ({weight:+.2f})")
                if weight is not None:
                    known += 1
                continue

            known += 1
            # Each tag set is evaluated on its own.
            for category in categories:
                weight = learned.get(tag, persona.weights.get(tag, CATEGORY_DEFAULTS[category]))
                matched[category].append(tag)
                if category == "positive":
                    total += weight * POSITIVE_MULTIPLIER
                    reasons.append(f"matches positive signal: {tag}")
                elif category == "negative":
                    total += weight * NEGATIVE_MULTIPLIER
                    reasons.append(f"matches negative signal: {tag}")
                else:
                    total += weight * RED_FLAG_MULTIPLIER
                    reasons.append(f"red flag: {tag}")

        if not reasons:
            reasons.append(NO_MATCH_REASON)

        score = min(100, max(0, _round_half_up(total)))
        confidence = round(100 * known / len(features.tags)) if features.tags else 0
        return MatchResult(
            score=score,
            label=self.label_for(score),
            reasons=reasons,
            persona_id=persona.id,
            matched_positive=matched["positive"],
            matched_negative=matched["negative"],
            matched_red_flags=matched["red_flag"],
            matched_learned=matched["learned"],
            confidence=confidence,
        )

    def rank(
        self, candidates: Sequence[Candidate], persona_id: Optional[str] = None
    ) -> List[Tuple[Candidate, MatchResult]]:
        """Candidates with their results, best score first."""
        scored = [(c, self.score(c, persona_id)) for c in candidates]
        scored.sort(key=lambda pair: pair[1].score, reverse=True)
        return scored

    def check_alerts(
        self,
        candidates: Sequence[Candidate],
        threshold: Optional[int] = None,
        persona_id: Optional[str] = None,
    ) -> List[Tuple[Candidate, MatchResult]]:
        """Candidates scoring at or above the alert threshold."""
        threshold = self.settings.alert_threshold if threshold is None else threshold
        return [pair for pair in self.rank(candidates, persona_id) if pair[1].score >= threshold]

    def triage(
        self,
        candidates: Sequence[Candidate],
        like_threshold: Optional[int] = None,
        dislike_threshold: Optional[int] = None,
        persona_id: Optional[str] = None,
    ) -> Dict[str, List[Tuple[Candidate, MatchResult]]]:
        """Splits candidates into auto-like, auto-dislike and manual review buckets."""
        like_at = self.settings.auto_like_threshold if like_threshold is None else like_threshold
        dislike_at = (
            self.settings.auto_dislike_threshold if dislike_threshold is None else dislike_threshold
        )
        buckets = {"like": [], "dislike": [], "review": []}
        for candidate, result in self.rank(candidates, persona_id):
            if result.score >= like_at:
                buckets["like"].append((candidate, result))
            elif result.score <= dislike_at:
                buckets["dislike"].append((candidate, result))
            else:
                buckets["review"].append((candidate, result))
        return buckets

    def suggest_datapoints(
        self,
        tags: Iterable[str],
        is_like: bool,
        persona_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[str]:
        """Tags that best justify a like (strongest positive) or dislike (most negative)."""
        tags = normalize_tags(tags)
        weighted = []
        for tag in tags:
            weight = self.effective_weight(tag, persona_id)
            if weight is None:
                continue
            if (is_like and weight > 0) or (not is_like and weight < 0):
                weighted.append((tag, weight))
        weighted.sort(key=lambda pair: pair[1], reverse=is_like)
        suggestions = [tag for tag, _ in weighted[:limit]]
        return suggestions or tags[:limit]
