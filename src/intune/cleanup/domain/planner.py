"""Action planning: exclusions and the per-run cap.

Candidates are processed in input order. Exclusions are checked before
the cap, so an excluded device never consumes a slot.
"""

import logging
from collections.abc import Sequence

from .entities import (
    CandidateSource,
    ClassifiedCandidate,
    CleanupPlan,
    ExclusionEntry,
    RequestedAction,
    SkipReason,
    SkippedEntry,
)
from .errors import InvalidArgumentError

logger = logging.getLogger(__name__)


class ActionPlanner:
    """Decides which candidates a run will act on."""

    def plan(
        self,
        candidates: Sequence[ClassifiedCandidate],
        exclusions: Sequence[ExclusionEntry],
        max_count: int,
        requested_action: RequestedAction,
    ) -> CleanupPlan:
        """Split candidates into planned and skipped.

        Per candidate, in order:
            1. any matching exclusion   -> skipped (Excluded)
            2. max_count already planned -> skipped (MaxCountReached)
            3. Retire on a directory object -> skipped (ActionNotApplicable)
            4. otherwise planned

        Raises:
            InvalidArgumentError: If max_count is negative
        """
        if max_count < 0:
            raise InvalidArgumentError("max_count", max_count, "must be >= 0")

        active_exclusions = [e for e in exclusions if not e.is_empty]
        plan = CleanupPlan(candidates=list(candidates))

        for candidate in candidates:
            if any(entry.matches(candidate) for entry in active_exclusions):
                plan.skipped.append(SkippedEntry(candidate, SkipReason.EXCLUDED))
                continue

            if len(plan.planned) >= max_count:
                plan.skipped.append(SkippedEntry(candidate, SkipReason.MAX_COUNT_REACHED))
                continue

            if (
                requested_action == RequestedAction.RETIRE
                and candidate.source != CandidateSource.MANAGED_DEVICE
            ):
                plan.skipped.append(
                    SkippedEntry(candidate, SkipReason.ACTION_NOT_APPLICABLE)
                )
                continue

            plan.planned.append(candidate)

        logger.info(
            f"Planned {len(plan.planned)} of {len(plan.candidates)} candidate(s) "
            f"for {requested_action.value}; {len(plan.skipped)} skipped"
        )
        return plan
