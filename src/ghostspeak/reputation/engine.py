"""Reputation engine — computes Ghost Scores and applies job outcomes.

Score model (additive point budget, clamped to [0, max_score]):
  success rate    rate% × 3                 up to 300
  average rating  rating / 5 × 200          up to 200
  experience      2 per completed job       up to 200
  response time   banded                    up to 150
  completion time banded                    up to 100
  admin verified  flat                      +25
  integration     flat                      +25

Invariants enforced:
- score, tier and tags are recomputed after every applied event.
- Rolling averages divide by the post-increment completed-job count.
- Input records are never mutated; every operation returns a new record.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from typing import Iterable, Optional

from ghostspeak.errors import ValidationError
from ghostspeak.models.reputation import (
    ReputationRecord,
    ReputationTag,
    ReputationTier,
    ScoreInputs,
)
from ghostspeak.policy.resolver import PolicyResolver, TimeBand


class ReputationEngine:
    """Derives score, tier and tags from a subject's performance history."""

    def __init__(self, resolver: PolicyResolver) -> None:
        self._resolver = resolver

    # ------------------------------------------------------------------
    # Pure derivations
    # ------------------------------------------------------------------

    def compute_score(self, inputs: ScoreInputs) -> int:
        """Compute a Ghost Score from raw metrics, clamped to [0, max_score]."""
        max_rating, rating_points = self._resolver.rating_scale()
        per_job, experience_cap = self._resolver.experience_points()
        admin_bonus, integration_bonus = self._resolver.verification_bonuses()

        points = inputs.success_rate * self._resolver.success_rate_multiplier()
        points += inputs.average_rating / max_rating * rating_points
        points += min(inputs.completed_jobs * per_job, experience_cap)
        points += _band_points(
            inputs.response_time_seconds, self._resolver.response_time_bands(),
        )
        points += _band_points(
            inputs.completion_time_seconds, self._resolver.completion_time_bands(),
        )
        if inputs.admin_verified:
            points += admin_bonus
        if inputs.has_integration:
            points += integration_bonus

        return max(0, min(self._resolver.max_score(), int(points)))

    def determine_tier(self, score: int) -> ReputationTier:
        """Map a score onto its tier. Lower bounds are inclusive."""
        floors = self._resolver.reputation_tier_floors()
        for tier in (ReputationTier.PLATINUM, ReputationTier.GOLD, ReputationTier.SILVER):
            if score >= floors[tier.value]:
                return tier
        return ReputationTier.BRONZE

    def determine_tags(self, record: ReputationRecord) -> frozenset[ReputationTag]:
        """Evaluate every tag rule independently against the record."""
        t = self._resolver.tag_thresholds()
        tags = set()
        if record.admin_verified:
            tags.add(ReputationTag.VERIFIED)
        if record.total_jobs < t.newcomer_below_jobs:
            tags.add(ReputationTag.NEWCOMER)
        elif record.total_jobs >= t.experienced_min_jobs:
            tags.add(ReputationTag.EXPERIENCED)
        if record.success_rate >= t.high_performer_rate:
            tags.add(ReputationTag.HIGH_PERFORMER)
        if record.success_rate >= t.reliable_rate and record.total_jobs >= t.reliable_min_jobs:
            tags.add(ReputationTag.RELIABLE)
        if record.score >= t.trusted_min_score and record.admin_verified:
            tags.add(ReputationTag.TRUSTED)
        return frozenset(tags)

    @staticmethod
    def score_inputs(record: ReputationRecord) -> ScoreInputs:
        return ScoreInputs(
            success_rate=record.success_rate,
            average_rating=record.average_rating,
            completed_jobs=record.completed_jobs,
            response_time_seconds=record.response_time_seconds,
            completion_time_seconds=record.completion_time_seconds,
            admin_verified=record.admin_verified,
            has_integration=record.integration_events > 0,
        )

    # ------------------------------------------------------------------
    # Event application
    # ------------------------------------------------------------------

    def new_record(self, subject: str, now: Optional[datetime] = None) -> ReputationRecord:
        """Create the first-activity record for a subject."""
        if not subject:
            raise ValidationError("Subject is required")
        if now is None:
            now = datetime.now(timezone.utc)
        return self._recompute(ReputationRecord(subject=subject), now)

    def apply_job_completion(
        self,
        record: ReputationRecord,
        rating: float,
        amount: int,
        response_time_seconds: int,
        completion_time_seconds: int,
        now: Optional[datetime] = None,
    ) -> ReputationRecord:
        """Record a completed job and recompute derived fields.

        Averages use the post-increment completed count as divisor:
            avg' = (avg × (n' - 1) + sample) / n'
        """
        max_rating, _ = self._resolver.rating_scale()
        if not 0.0 <= rating <= max_rating:
            raise ValidationError(f"Rating must be in [0, {max_rating}], got {rating}")
        if amount < 0:
            raise ValidationError("Amount must be non-negative")
        if response_time_seconds < 0 or completion_time_seconds < 0:
            raise ValidationError("Durations must be non-negative")
        if now is None:
            now = datetime.now(timezone.utc)

        total_jobs = record.total_jobs + 1
        completed = record.completed_jobs + 1
        prior = completed - 1
        total_earnings = record.total_earnings + amount

        updated = dataclasses.replace(
            record,
            total_jobs=total_jobs,
            completed_jobs=completed,
            average_rating=(record.average_rating * prior + rating) / completed,
            response_time_seconds=(
                record.response_time_seconds * prior + response_time_seconds
            ) // completed,
            completion_time_seconds=(
                record.completion_time_seconds * prior + completion_time_seconds
            ) // completed,
            success_rate=completed / total_jobs * 100.0,
            total_earnings=total_earnings,
            average_earnings=total_earnings // completed,
        )
        return self._recompute(updated, now)

    def apply_job_failure(
        self,
        record: ReputationRecord,
        now: Optional[datetime] = None,
    ) -> ReputationRecord:
        """Record a failed job. Only the job counters and success rate move."""
        if now is None:
            now = datetime.now(timezone.utc)
        total_jobs = record.total_jobs + 1
        updated = dataclasses.replace(
            record,
            total_jobs=total_jobs,
            failed_jobs=record.failed_jobs + 1,
            success_rate=record.completed_jobs / total_jobs * 100.0,
        )
        return self._recompute(updated, now)

    def apply_integration_event(
        self,
        record: ReputationRecord,
        amount: int = 0,
        now: Optional[datetime] = None,
    ) -> ReputationRecord:
        """Record a third-party integration event (payment facilitator webhook)."""
        if amount < 0:
            raise ValidationError("Amount must be non-negative")
        if now is None:
            now = datetime.now(timezone.utc)
        updated = dataclasses.replace(
            record,
            integration_events=record.integration_events + 1,
            integration_revenue=record.integration_revenue + amount,
            last_integration_sync=now,
        )
        return self._recompute(updated, now)

    def apply_admin_verification(
        self,
        record: ReputationRecord,
        now: Optional[datetime] = None,
    ) -> ReputationRecord:
        if now is None:
            now = datetime.now(timezone.utc)
        updated = dataclasses.replace(record, admin_verified=True, verified_at=now)
        return self._recompute(updated, now)

    @staticmethod
    def leaderboard(
        records: Iterable[ReputationRecord],
        limit: int = 10,
    ) -> list[ReputationRecord]:
        """Highest scores first; ties broken by completed jobs, then subject."""
        if limit < 1:
            raise ValidationError("Limit must be at least 1")
        ranked = sorted(
            records,
            key=lambda r: (-r.score, -r.completed_jobs, r.subject),
        )
        return ranked[:limit]

    def _recompute(self, record: ReputationRecord, now: datetime) -> ReputationRecord:
        score = self.compute_score(self.score_inputs(record))
        scored = dataclasses.replace(
            record,
            score=score,
            tier=self.determine_tier(score),
            updated_at=now,
        )
        return dataclasses.replace(scored, tags=self.determine_tags(scored))


def _band_points(seconds: int, bands: list[TimeBand]) -> float:
    for band in bands:
        if seconds <= band.max_seconds:
            return band.points
    return 0.0
