"""Field mapper adapter for transforming Graph payloads into domain records.

This adapter implements IFieldMapper and encapsulates every quirk of the
Graph device schemas, so the classifier only ever sees clean records.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from ..domain.entities import DeviceRecord, DirectoryDeviceRecord
from ..domain.ports import IFieldMapper

logger = logging.getLogger(__name__)

EMPTY_GUID = "00000000-0000-0000-0000-000000000000"

# Graph uses up to 7 fractional digits; datetime accepts at most 6
_FRACTION = re.compile(r"(\.\d{6})\d+")

# deviceRegistrationState values that mean the enrollment is pending or broken,
# expressed in enrollmentState terms
REGISTRATION_STATE_MAP = {
    "approvalPending": "notContacted",
    "notRegisteredPendingEnrollment": "notContacted",
    "revoked": "failed",
    "keyConflict": "failed",
    "certificateReset": "failed",
}


def parse_graph_timestamp(value: Any) -> Optional[datetime]:
    """Parse a Graph ISO 8601 timestamp into an aware UTC datetime.

    Returns None for missing values, unparseable values and the
    "0001-01-01T00:00:00Z" placeholder Graph reports for never-synced
    devices. Callers treat None as "never", the conservative reading.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(r"\1", text)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Unparseable timestamp treated as absent: {value!r}")
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    if parsed.year <= 1:
        return None
    return parsed.astimezone(timezone.utc)


def _text(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    return str(value).strip() if value is not None else ""


def _enrollment_state(raw: dict[str, Any]) -> str:
    """enrollmentState when present, else the mapped deviceRegistrationState.

    v1.0 managedDevice has no enrollmentState.
    """
    state = _text(raw, "enrollmentState")
    if state:
        return state
    registration = _text(raw, "deviceRegistrationState")
    return REGISTRATION_STATE_MAP.get(registration, registration)


class GraphFieldMapper(IFieldMapper):
    """Maps Intune managedDevice and Entra ID device payloads to records.

    This class handles:
    - camelCase Graph properties to snake_case record fields
    - Timestamp parsing (7-digit fractions, Z suffix, never-synced sentinel)
    - Blank/all-zero GUIDs for unlinked directory IDs
    - Serial numbers from physicalIds for directory objects
    """

    def map_managed_device(self, raw: dict[str, Any]) -> DeviceRecord:
        device_id = _text(raw, "id")
        if not device_id:
            raise ValueError("Managed device payload has no id")

        directory_id = _text(raw, "azureADDeviceId")
        if not directory_id or directory_id == EMPTY_GUID:
            directory_id = None

        return DeviceRecord(
            id=device_id,
            display_name=_text(raw, "deviceName"),
            directory_id=directory_id,
            user_principal_name=_text(raw, "userPrincipalName"),
            serial_number=_text(raw, "serialNumber"),
            last_sync_time=parse_graph_timestamp(raw.get("lastSyncDateTime")),
            enrollment_state=_enrollment_state(raw),
            management_agent=_text(raw, "managementAgent"),
            operating_system=_text(raw, "operatingSystem"),
            raw_data=raw,
        )

    def map_directory_device(self, raw: dict[str, Any]) -> DirectoryDeviceRecord:
        object_id = _text(raw, "id")
        device_id = _text(raw, "deviceId") or object_id
        if not device_id:
            raise ValueError("Directory device payload has no id or deviceId")

        return DirectoryDeviceRecord(
            id=device_id,
            object_id=object_id or None,
            display_name=_text(raw, "displayName"),
            serial_number=_text(raw, "serialNumber") or self._serial_from_physical_ids(raw),
            operating_system=_text(raw, "operatingSystem"),
            approximate_last_sign_in=parse_graph_timestamp(
                raw.get("approximateLastSignInDateTime")
            ),
            registration_time=parse_graph_timestamp(raw.get("registrationDateTime")),
            created_time=parse_graph_timestamp(raw.get("createdDateTime")),
            raw_data=raw,
        )

    @staticmethod
    def _serial_from_physical_ids(raw: dict[str, Any]) -> str:
        """Extract the serial from Autopilot physicalIds ("[ZTDID]:...", "[SerialNumber]:...")."""
        for entry in raw.get("physicalIds") or []:
            text = str(entry)
            if text.startswith("[SerialNumber]:"):
                return text.split(":", 1)[1].strip()
        return ""
