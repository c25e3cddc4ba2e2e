#!/usr/bin/env python3
"""Device inventory reads from Microsoft Graph.

DeviceInventory fetches the two device collections the cleanup workflow
needs:

    - Intune managed devices: /deviceManagement/managedDevices
    - Entra ID device objects: /devices

The separation of concerns means:
    - GraphClient handles: HTTP, auth, pagination, throttling, retries
    - DeviceInventory handles: endpoints and $select field lists

Example:
    async with GraphClient(token_manager) as client:
        inventory = DeviceInventory(client)
        managed = await inventory.fetch_managed_devices()
"""
import logging

from .client import (
    DIRECTORY_DEVICES_PAGINATION,
    MANAGED_DEVICES_PAGINATION,
    GraphClient,
)

logger = logging.getLogger(__name__)


class DeviceInventory:
    """Read-only access to managed and directory device collections.

    Attributes:
        client: GraphClient instance for API communication
    """

    MANAGED_DEVICES_ENDPOINT = "/deviceManagement/managedDevices"
    DIRECTORY_DEVICES_ENDPOINT = "/devices"

    MANAGED_DEVICE_FIELDS = [
        "id",
        "azureADDeviceId",
        "deviceName",
        "userPrincipalName",
        "serialNumber",
        "lastSyncDateTime",
        "enrolledDateTime",
        "deviceEnrollmentType",
        "deviceRegistrationState",
        "managementAgent",
        "managementState",
        "complianceState",
        "operatingSystem",
        "osVersion",
        "model",
        "manufacturer",
    ]

    DIRECTORY_DEVICE_FIELDS = [
        "id",
        "deviceId",
        "displayName",
        "operatingSystem",
        "approximateLastSignInDateTime",
        "registrationDateTime",
        "createdDateTime",
        "accountEnabled",
        "physicalIds",
    ]

    def __init__(self, client: GraphClient):
        self.client = client

    async def fetch_managed_devices(self) -> list[dict]:
        """Fetch every Intune managed device."""
        devices = await self.client.fetch_all(
            self.MANAGED_DEVICES_ENDPOINT,
            config=MANAGED_DEVICES_PAGINATION,
            params={"$select": ",".join(self.MANAGED_DEVICE_FIELDS)},
        )
        logger.info(f"Fetched {len(devices)} managed devices")
        return devices

    async def fetch_directory_devices(self) -> list[dict]:
        """Fetch every Entra ID device object."""
        devices = await self.client.fetch_all(
            self.DIRECTORY_DEVICES_ENDPOINT,
            config=DIRECTORY_DEVICES_PAGINATION,
            params={"$select": ",".join(self.DIRECTORY_DEVICE_FIELDS)},
        )
        logger.info(f"Fetched {len(devices)} directory devices")
        return devices
