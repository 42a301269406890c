"""Pairing backends: issue credentials and report when a device has linked."""

import asyncio
from abc import ABC, abstractmethod
from urllib.parse import quote

DEFAULT_QR_URL_TEMPLATE = "https://placehold.co/256x256.png?text=QR+para+{number}"


class PairingBackend(ABC):
    """
    The handshake behind a pairing session.

    A real multi-device backend would render the QR payload returned by the
    messaging platform and resolve ``wait_until_linked`` once the phone
    scans it.
    """

    def __init__(self, qr_url_template: str = DEFAULT_QR_URL_TEMPLATE):
        self.qr_url_template = qr_url_template

    def issue_credential(self, identity: str) -> str:
        """Return a reference to a scannable code for ``identity``."""
        return self.qr_url_template.format(number=quote(identity, safe=""))

    @abstractmethod
    async def wait_until_linked(self, identity: str) -> None:
        """Return once the device for ``identity`` has linked.

        Raises if the handshake fails. Must be cancellable.
        """
        pass

    def confirm(self, identity: str) -> bool:
        """Complete a waiting handshake from outside. Returns False if none."""
        return False


class TimerPairingBackend(PairingBackend):
    """Treats every handshake as completing after a fixed delay."""

    def __init__(
        self,
        delay_seconds: float = 8.0,
        qr_url_template: str = DEFAULT_QR_URL_TEMPLATE,
    ):
        super().__init__(qr_url_template)
        self.delay_seconds = delay_seconds

    async def wait_until_linked(self, identity: str) -> None:
        await asyncio.sleep(self.delay_seconds)


class ManualPairingBackend(PairingBackend):
    """Handshakes complete only when ``confirm`` (or ``fail``) is called."""

    def __init__(self, qr_url_template: str = DEFAULT_QR_URL_TEMPLATE):
        super().__init__(qr_url_template)
        self._waiters: dict[str, asyncio.Future] = {}

    def is_waiting(self, identity: str) -> bool:
        future = self._waiters.get(identity)
        return future is not None and not future.done()

    async def wait_until_linked(self, identity: str) -> None:
        future = asyncio.get_running_loop().create_future()
        self._waiters[identity] = future
        try:
            await future
        finally:
            if self._waiters.get(identity) is future:
                del self._waiters[identity]

    def confirm(self, identity: str) -> bool:
        if not self.is_waiting(identity):
            return False
        self._waiters[identity].set_result(None)
        return True

    def fail(self, identity: str, error: Exception) -> bool:
        """Abort a waiting handshake with ``error``."""
        if not self.is_waiting(identity):
            return False
        self._waiters[identity].set_exception(error)
        return True
