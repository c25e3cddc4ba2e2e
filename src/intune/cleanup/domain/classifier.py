"""Stale and duplicate device classification.

Five detection passes run in a fixed order. The first pass to flag a
device creates its candidate; later passes only append reason codes.
Directory-only devices live in a separate id namespace and never merge
with managed-device candidates.
"""

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Optional

from .entities import (
    CandidateSource,
    ClassifiedCandidate,
    DeviceRecord,
    DirectoryDeviceRecord,
    ReasonCode,
    RecommendedAction,
    SourceRecord,
)
from .errors import InvalidArgumentError

logger = logging.getLogger(__name__)

FAILED_ENROLLMENT_STATES = frozenset({"failed", "notContacted"})
UNKNOWN_MANAGEMENT_AGENT = "unknown"

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC so comparisons never mix kinds."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_stale(value: Optional[datetime], cutoff: datetime) -> bool:
    """Absent means never seen, which is stale for any threshold."""
    value = _as_utc(value)
    return value is None or value < cutoff


def _sync_sort_key(device: DeviceRecord) -> tuple[bool, datetime]:
    synced = _as_utc(device.last_sync_time)
    return (synced is not None, synced or _OLDEST)


class DeviceLifecycleClassifier:
    """Flags stale, failed, orphaned, duplicate and directory-only devices.

    The classifier is a pure function of its inputs plus the clock, which
    can be injected for deterministic tests.

    Example:
        classifier = DeviceLifecycleClassifier()
        candidates = classifier.classify(managed, directory, stale_days=90,
                                         duplicate_threshold=1)
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def classify(
        self,
        managed_devices: Sequence[DeviceRecord],
        directory_devices: Optional[Sequence[DirectoryDeviceRecord]],
        stale_days: int,
        duplicate_threshold: int,
    ) -> list[ClassifiedCandidate]:
        """Run all detection passes.

        Args:
            managed_devices: Managed device snapshot
            directory_devices: Directory device snapshot, or None to skip pass 5
            stale_days: Inactivity threshold in days (>= 0)
            duplicate_threshold: Largest group size left untouched (>= 1)

        Returns:
            Candidates in order of first discovery, one per device id

        Raises:
            InvalidArgumentError: On a negative stale_days or a
                duplicate_threshold below 1
        """
        if stale_days < 0:
            raise InvalidArgumentError("stale_days", stale_days, "must be >= 0")
        if duplicate_threshold < 1:
            raise InvalidArgumentError(
                "duplicate_threshold", duplicate_threshold, "must be >= 1"
            )

        try:
            cutoff = _as_utc(self._clock()) - timedelta(days=stale_days)
        except OverflowError:
            # Threshold reaches past datetime.min: only never-seen devices qualify
            cutoff = _OLDEST
        candidates: dict[tuple[CandidateSource, str], ClassifiedCandidate] = {}

        def flag(
            record: SourceRecord,
            reason: ReasonCode,
            action: RecommendedAction,
            source: CandidateSource = CandidateSource.MANAGED_DEVICE,
        ) -> None:
            existing = candidates.get((source, record.id))
            if existing is None:
                existing = ClassifiedCandidate(
                    record=record,
                    source=source,
                    recommended_action=action,
                )
                candidates[(source, record.id)] = existing
            existing.add_reason(reason)

        # Pass 1: last sync older than the cutoff, or never synced
        for device in managed_devices:
            if _is_stale(device.last_sync_time, cutoff):
                flag(device, ReasonCode.LAST_SYNC_STALE, RecommendedAction.RETIRE_OR_DELETE)

        # Pass 2: failed/pending enrollment or unknown management agent
        for device in managed_devices:
            if (
                device.enrollment_state in FAILED_ENROLLMENT_STATES
                or device.management_agent == UNKNOWN_MANAGEMENT_AGENT
            ):
                flag(device, ReasonCode.FAILED_ENROLLMENT, RecommendedAction.DELETE)

        # Pass 3: no owning user
        for device in managed_devices:
            if not device.has_user:
                flag(device, ReasonCode.NO_USER, RecommendedAction.DELETE)

        # Pass 4: duplicate registrations beyond the allowed group size
        duplicates = self._find_duplicates(managed_devices, duplicate_threshold)
        for device in managed_devices:
            if device.id in duplicates:
                flag(device, ReasonCode.DUPLICATE_REGISTRATION, RecommendedAction.DELETE)

        # Pass 5: directory objects with no managed counterpart
        if directory_devices:
            linked = {
                d.directory_id.lower() for d in managed_devices if d.directory_id
            }
            for device in directory_devices:
                if device.id.lower() in linked:
                    continue
                if _is_stale(device.last_activity_time, cutoff):
                    flag(
                        device,
                        ReasonCode.DIRECTORY_STALE,
                        RecommendedAction.DELETE,
                        source=CandidateSource.DIRECTORY_DEVICE,
                    )

        result = list(candidates.values())
        logger.info(
            f"Classified {len(result)} candidate(s) from {len(managed_devices)} managed "
            f"and {len(directory_devices or [])} directory device(s)"
        )
        return result

    @staticmethod
    def _find_duplicates(
        managed_devices: Sequence[DeviceRecord],
        duplicate_threshold: int,
    ) -> set[str]:
        """Ids ranked beyond duplicate_threshold within their group.

        Groups are ranked newest sync first. Never-synced devices rank
        oldest; ties keep input order (sorted() is stable under reverse).
        """
        groups: dict[str, list[DeviceRecord]] = {}
        for device in managed_devices:
            if device.has_user:
                groups.setdefault(device.duplicate_group_key, []).append(device)

        flagged: set[str] = set()
        for key, members in groups.items():
            if len(members) <= duplicate_threshold:
                continue
            ranked = sorted(members, key=_sync_sort_key, reverse=True)
            extras = ranked[duplicate_threshold:]
            logger.debug(
                f"Duplicate group {key!r}: {len(members)} devices, flagging {len(extras)}"
            )
            flagged.update(device.id for device in extras)
        return flagged
