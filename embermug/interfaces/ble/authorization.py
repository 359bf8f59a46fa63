"""Write authorization, capability probing and per-command write verification.

Some mugs accept writes at the transport level but silently ignore them
until a device secret key is established, which only works on mugs that were
enrolled through the vendor app. The client cannot detect this precondition
directly, so it probes: a perturbed LED color is written and read back, and
every later setter re-reads the field it wrote.
"""

import secrets
from typing import Callable, Optional, TypeVar

from embermug.interfaces.ble import utils
from embermug.interfaces.ble.codec import decode_color, encode_color, is_zero_key
from embermug.interfaces.ble.constants import (
    BLEConfig,
    ERROR_ECHO_UNREADABLE,
    ERROR_READ_ONLY,
    ERROR_UNEXPECTED_DISCONNECT,
    ERROR_WRITE_NOT_APPLIED,
    UDSK_LENGTH,
    Field,
    logger,
)
from embermug.interfaces.ble.exceptions import (
    CharacteristicMissing,
    UnexpectedDisconnect,
    WriteNotApplied,
    WriteRejected,
)
from embermug.interfaces.ble.transport import FieldTransport
from embermug.models import RGBAColor

T = TypeVar("T")

_REENROLL_HINT = (
    "Writes will probably be ignored. Re-enroll the mug in the vendor app, "
    "then forget it in your Bluetooth settings and pair again."
)


def perturb_color(color: RGBAColor) -> RGBAColor:
    """Return `color` with the red channel moved by one step."""
    red = color.r + 1 if color.r < 255 else color.r - 1
    return RGBAColor(red, color.g, color.b, color.a)


class WriteVerificationGate:
    """Negotiates and checks write access for one session's transport."""

    def __init__(
        self,
        transport: FieldTransport,
        settle_delay: float = BLEConfig.WRITE_SETTLE_DELAY,
        is_live: Optional[Callable[[], bool]] = None,
    ):
        self.transport = transport
        self.settle_delay = settle_delay
        self.is_live = is_live or (lambda: True)

    async def enable(self) -> bool:
        """
        Make sure a user device secret key is stored on the mug.

        Returns True when a key was already present or the freshly written key
        reads back non-zero. Any other outcome is read-only mode: it is logged
        and reported as False, never raised.
        """
        if Field.UDSK not in self.transport.registry:
            logger.debug("Mug has no secret key characteristic; no authorization needed")
            return True

        current = await self.transport.read(Field.UDSK)
        if not is_zero_key(current):
            logger.debug("Secret key already present; write authorization granted")
            return True

        logger.debug("No secret key stored, writing a fresh one")
        try:
            await self.transport.write(
                Field.UDSK,
                secrets.token_bytes(UDSK_LENGTH),
                timeout=BLEConfig.AUTH_WRITE_TIMEOUT,
            )
        except (WriteRejected, CharacteristicMissing) as e:
            logger.warning("Could not store a secret key (%s). %s", e, _REENROLL_HINT)
            return False

        readback = await self.transport.read(Field.UDSK)
        if is_zero_key(readback):
            logger.warning("Secret key did not stick. %s", _REENROLL_HINT)
            return False
        logger.info("Write authorization enabled")
        return True

    async def probe(self) -> bool:
        """
        Check whether the mug actually applies writes.

        Nudges the LED red channel by one and reads it back. The original
        color is restored whatever the outcome. A mug without a readable LED
        color cannot be probed and is assumed writable.
        """
        if Field.LED_COLOR not in self.transport.registry:
            logger.debug("No LED color characteristic; skipping write probe")
            return True
        original = decode_color(await self.transport.read(Field.LED_COLOR))
        if original is None:
            logger.debug("LED color unreadable; skipping write probe")
            return True

        probe_color = perturb_color(original)
        functional = False
        try:
            await self.transport.write(Field.LED_COLOR, encode_color(probe_color))
            await utils._sleep(self.settle_delay)
            echoed = decode_color(await self.transport.read(Field.LED_COLOR))
            functional = echoed is not None and echoed.same_rgb(probe_color)
        except (WriteRejected, CharacteristicMissing) as e:
            logger.debug("Write probe failed: %s", e)
        finally:
            await self._restore_color(original)

        if functional:
            logger.debug("Write probe succeeded")
        else:
            logger.warning("Mug ignored the probe write. %s", _REENROLL_HINT)
        return functional

    async def _restore_color(self, color: RGBAColor) -> None:
        try:
            await self.transport.write(Field.LED_COLOR, encode_color(color))
        except (WriteRejected, CharacteristicMissing) as e:
            logger.debug("Could not restore LED color after probe: %s", e)

    @staticmethod
    def ensure_writable(writes_functional: bool) -> None:
        """Raise WriteNotApplied up front when the probe found writes ignored."""
        if not writes_functional:
            raise WriteNotApplied(ERROR_READ_ONLY)

    async def write_verified(
        self,
        field: Field,
        data: bytes,
        decode: Callable[[Optional[bytes]], Optional[T]],
        matches: Callable[[T], bool],
        label: str,
        expected: object,
    ) -> T:
        """
        Write `data`, wait, re-read `field` and return the decoded echo.

        Only an echo that decodes and disagrees with `expected` counts as the
        mug ignoring the write. A failed read-back is retried once.

        Raises:
            CharacteristicMissing: `field` is absent on this mug.
            WriteRejected: The transport failed, or the echo could not be read.
            WriteNotApplied: The echo does not satisfy `matches`.
            UnexpectedDisconnect: The link went away before the echo was read.
        """
        await self.transport.write(field, data)
        await utils._sleep(self.settle_delay)
        echoed = None
        for _ in range(2):
            self._ensure_live(label)
            echoed = decode(await self.transport.read(field))
            if echoed is not None:
                break
            logger.debug("%s echo could not be read", label)
        self._ensure_live(label)
        if echoed is None:
            raise WriteRejected(ERROR_ECHO_UNREADABLE.format(label))
        if not matches(echoed):
            logger.debug("%s echo mismatch: expected %s, got %s", label, expected, echoed)
            raise WriteNotApplied(ERROR_WRITE_NOT_APPLIED.format(label, expected, echoed))
        return echoed

    def _ensure_live(self, label: str) -> None:
        if not self.is_live():
            logger.debug("Link lost while confirming %s", label)
            raise UnexpectedDisconnect(ERROR_UNEXPECTED_DISCONNECT)
