#!/usr/bin/env python3
"""Device Management Operations for Microsoft Graph.

DeviceManager handles the WRITE operations used by cleanup:

    - Retire a managed device (removes company data, keeps the record)
    - Delete a managed device record from Intune
    - Delete an Entra ID device object

Read operations remain in DeviceInventory.

API Details:
    - POST   /deviceManagement/managedDevices/{id}/retire  -> 204
    - DELETE /deviceManagement/managedDevices/{id}         -> 204
    - DELETE /devices/{id}                                 -> 204

Example:
    async with GraphClient(token_manager) as client:
        manager = DeviceManager(client)
        await manager.retire_device("0f1e...")
"""
import logging

from .client import GraphClient
from .exceptions import ValidationError

logger = logging.getLogger(__name__)


class DeviceManager:
    """Retire and delete operations on managed and directory devices.

    Attributes:
        client: GraphClient instance for API communication
    """

    MANAGED_DEVICES_ENDPOINT = "/deviceManagement/managedDevices"
    DIRECTORY_DEVICES_ENDPOINT = "/devices"

    def __init__(self, client: GraphClient):
        self.client = client

    @staticmethod
    def _validate_id(device_id: str) -> None:
        if not device_id or not device_id.strip():
            raise ValidationError(
                "A device ID is required",
                field="device_id",
            )

    async def retire_device(self, device_id: str, *, dry_run: bool = False) -> bool:
        """Retire a managed device.

        Args:
            device_id: Intune managed device ID
            dry_run: If True, log the call without executing it

        Returns:
            True when the request was sent, False for a dry run
        """
        self._validate_id(device_id)
        if dry_run:
            logger.info(f"[WhatIf] Would retire managed device {device_id}")
            return False

        logger.info(f"Retiring managed device {device_id}")
        await self.client.post(f"{self.MANAGED_DEVICES_ENDPOINT}/{device_id}/retire")
        return True

    async def delete_managed_device(self, device_id: str, *, dry_run: bool = False) -> bool:
        """Delete an Intune managed device record."""
        self._validate_id(device_id)
        if dry_run:
            logger.info(f"[WhatIf] Would delete managed device {device_id}")
            return False

        logger.info(f"Deleting managed device {device_id}")
        await self.client.delete(f"{self.MANAGED_DEVICES_ENDPOINT}/{device_id}")
        return True

    async def delete_directory_device(self, object_id: str, *, dry_run: bool = False) -> bool:
        """Delete an Entra ID device object by its object ID."""
        self._validate_id(object_id)
        if dry_run:
            logger.info(f"[WhatIf] Would delete directory device {object_id}")
            return False

        logger.info(f"Deleting directory device {object_id}")
        await self.client.delete(f"{self.DIRECTORY_DEVICES_ENDPOINT}/{object_id}")
        return True
