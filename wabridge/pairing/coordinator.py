"""Pairing coordinator - drives a number from pending to online."""

import asyncio

from loguru import logger

from wabridge.errors import InvalidRequest, NotFound
from wabridge.pairing.backend import PairingBackend
from wabridge.registry.store import SessionRegistry
from wabridge.registry.types import ChannelRecord, ChannelStatus
from wabridge.transport.base import (
    NUMBER_DELETED,
    QR,
    READY,
    STATUS_UPDATE,
    Event,
    Transport,
)


class PairingCoordinator:
    """
    Runs the pairing state machine on top of the registry.

    Handles:
    - Validating start requests and creating pending records
    - Sending the credential to the requester
    - Waiting for the backend handshake and flipping the record online
    - Explicit status changes and deletions, broadcast to every observer
    """

    def __init__(
        self,
        registry: SessionRegistry,
        transport: Transport,
        backend: PairingBackend,
    ):
        self.registry = registry
        self.transport = transport
        self.backend = backend

        # In-flight handshakes by identity
        self._handshakes: dict[str, asyncio.Task] = {}

    @property
    def pending_identities(self) -> list[str]:
        return list(self._handshakes)

    def start_pairing(
        self,
        requester: str,
        display_name: str,
        identity: str,
        registered_by: str = "",
    ) -> ChannelRecord:
        """Register a new number and start its handshake.

        Args:
            requester: Observer id that asked for pairing; receives the QR.
            display_name: Label shown on the dashboard.
            identity: Phone number.
            registered_by: Operator who started pairing.

        Raises:
            InvalidRequest: name or phone missing.
            DuplicateIdentity: phone already registered.
        """
        display_name = (display_name or "").strip()
        identity = (identity or "").strip()
        if not display_name or not identity:
            raise InvalidRequest("Name and phone are required")

        record = self.registry.insert(ChannelRecord(
            identity=identity,
            display_name=display_name,
            registered_by=registered_by or "",
            status=ChannelStatus.PENDING,
        ))
        logger.info(f"Pairing started for {identity} ({display_name}) by {registered_by or 'unknown'}")

        qr = self.backend.issue_credential(identity)
        self.transport.emit_to(requester, Event(QR, {"number": identity, "qr": qr}))

        self._handshakes[identity] = asyncio.create_task(self._await_link(identity))
        return record

    def set_status(self, identity: str, status: str | ChannelStatus) -> ChannelRecord:
        """Set any status on an existing number and broadcast it.

        Raises:
            InvalidRequest: unknown status value.
            NotFound: number not registered.
        """
        try:
            new_status = ChannelStatus(status)
        except ValueError:
            allowed = ", ".join(s.value for s in ChannelStatus)
            raise InvalidRequest(f"Invalid status '{status}'. Allowed: {allowed}")

        record = self.registry.update_status(identity, new_status)
        logger.info(f"Status of {identity} set to {new_status.value}")
        self.transport.broadcast(Event(STATUS_UPDATE, {"number": record.to_dict()}))
        return record

    def delete_channel(self, identity: str) -> ChannelRecord:
        """Remove a number, cancelling its handshake if one is running.

        Raises:
            NotFound: number not registered.
        """
        record = self.registry.remove(identity)
        task = self._handshakes.pop(identity, None)
        if task and not task.done():
            task.cancel()
            logger.debug(f"Cancelled pending handshake for {identity}")
        logger.info(f"Number deleted: {identity}")
        self.transport.broadcast(Event(NUMBER_DELETED, {"id": identity}))
        return record

    def reissue_credential(self, identity: str) -> str:
        """Return a fresh credential for a registered number."""
        if self.registry.find(identity) is None:
            raise NotFound(identity)
        return self.backend.issue_credential(identity)

    def confirm_link(self, identity: str) -> None:
        """Complete a handshake that is waiting on an external trigger."""
        if not self.backend.confirm(identity):
            raise NotFound(identity, "No pending link for number")

    def resume_pending(self) -> list[str]:
        """Start handshakes for pending numbers that have none, e.g. after a reload.

        No credential is sent; dashboards fetch one through
        ``reissue_credential``. Must be called from a running event loop.
        """
        resumed = []
        for record in self.registry.list():
            if record.status is not ChannelStatus.PENDING or record.identity in self._handshakes:
                continue
            self._handshakes[record.identity] = asyncio.create_task(self._await_link(record.identity))
            resumed.append(record.identity)
        if resumed:
            logger.info(f"Resumed pairing for {len(resumed)} pending numbers")
        return resumed

    async def shutdown(self) -> None:
        """Cancel every in-flight handshake."""
        tasks = list(self._handshakes.values())
        self._handshakes.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _await_link(self, identity: str) -> None:
        """Wait for the handshake, then bring the number online."""
        task = asyncio.current_task()
        try:
            await self.backend.wait_until_linked(identity)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Pairing handshake failed for {identity}: {e}")
            return
        finally:
            if self._handshakes.get(identity) is task:
                del self._handshakes[identity]

        try:
            record = self.registry.update_status(identity, ChannelStatus.ONLINE)
        except NotFound:
            logger.debug(f"Number {identity} removed before linking, nothing to do")
            return
        except Exception as e:
            logger.error(f"Could not bring {identity} online: {e}")
            return

        logger.info(f"Number {identity} is online")
        self.transport.broadcast(Event(READY, {"number": record.to_dict()}))
