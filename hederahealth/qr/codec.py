"""
qr.codec
~~~~~~~~

Encrypted patient QR codes.

A :class:`PatientQRCodec` stamps a :class:`PatientIdentity` with the current
time and the schema version, seals the canonical JSON form with AES‑GCM and
renders the resulting token as a PNG data URL.  Scanners hand the token back
to :meth:`PatientQRCodec.decode` or :meth:`PatientQRCodec.validate`.

The codec keeps no state besides its key and options, so a single instance
can be shared between threads.
"""

from __future__ import annotations

import base64
import io
import json
import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Union

import qrcode
from PIL import Image
from qrcode.exceptions import DataOverflowError
from qrcode.image.pil import PilImage

from ..config import settings
from ..errors import DecodeError, EncodingError
from ..security import crypto
from .models import (
    EXPIRED,
    INCOMPLETE_DATA,
    INVALID_DATA,
    PatientIdentity,
    PatientQRData,
    QRCodeOptions,
    QRValidation,
)

logger = logging.getLogger(__name__)

_ERROR_CORRECTION = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}

IdentityLike = Union[PatientIdentity, Mapping[str, Any]]


def _as_identity(identity: IdentityLike) -> PatientIdentity:
    if isinstance(identity, PatientIdentity):
        return identity
    return PatientIdentity.from_mapping(identity)


def render_data_url(data: str, options: QRCodeOptions) -> str:
    """
    Render *data* as a QR code and return it as a ``data:image/png`` URL.

    Each module is drawn as a whole number of pixels and the symbol is
    centred on a light square of ``options.size`` pixels.  A symbol that
    needs more than ``options.size`` pixels at one pixel per module is
    returned at that natural size rather than shrunk.

    Raises :class:`EncodingError` if the symbol cannot be built with the
    requested options.
    """
    level = _ERROR_CORRECTION.get(str(options.error_correction).upper())
    if level is None:
        raise EncodingError(f"unknown error correction level: {options.error_correction!r}")
    if options.size <= 0:
        raise EncodingError(f"size must be positive, got {options.size}")
    if options.margin < 0:
        raise EncodingError(f"margin must not be negative, got {options.margin}")

    qr = qrcode.QRCode(
        error_correction=level,
        box_size=1,
        border=options.margin,
        image_factory=PilImage,
    )
    try:
        qr.add_data(data)
        qr.make(fit=True)
        qr.box_size = max(1, options.size // (qr.modules_count + 2 * options.margin))
        symbol = qr.make_image(fill_color=options.dark, back_color=options.light).get_image()
        symbol = symbol.convert("RGB")
        if symbol.width < options.size:
            image = Image.new("RGB", (options.size, options.size), options.light)
            offset = (options.size - symbol.width) // 2
            image.paste(symbol, (offset, offset))
        else:
            image = symbol
        buf = io.BytesIO()
        image.save(buf, format="PNG")
    except DataOverflowError as exc:
        raise EncodingError(
            f"payload of {len(data)} characters does not fit a QR code at level "
            f"{options.error_correction}"
        ) from exc
    except ValueError as exc:
        # PIL rejects unknown colour specifiers with ValueError
        raise EncodingError(str(exc)) from exc
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


class PatientQRCodec:
    """
    Seal, render, decode and validate patient QR payloads.

    Parameters
    ----------
    key : bytes
        32‑byte AES key, usually from :func:`hederahealth.security.load_key`.
    clock : callable, optional
        Returns the current time in seconds; defaults to :func:`time.time`.
    options : QRCodeOptions, optional
        Rendering defaults merged with per-call options.
    max_age : float
        Seconds after which a payload is reported as expired.
    """

    def __init__(
        self,
        key: bytes,
        clock: Callable[[], float] = time.time,
        options: Optional[QRCodeOptions] = None,
        max_age: float = settings.QR_MAX_AGE_SECONDS,
    ):
        self._key = key
        self._clock = clock
        self.options = options or QRCodeOptions()
        self.max_age = max_age

    @classmethod
    def from_settings(cls, secret: str | None = None) -> "PatientQRCodec":
        """Build a codec keyed from the environment (see :func:`crypto.load_key`)."""
        return cls(crypto.load_key(secret))

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def stamp(self, identity: IdentityLike) -> PatientQRData:
        return PatientQRData(
            identity=_as_identity(identity),
            timestamp=self._now_ms(),
            version=settings.QR_SCHEMA_VERSION,
        )

    # ------------------------------------------------------------------ #
    # Sealing
    # ------------------------------------------------------------------ #

    def seal_payload(self, payload: PatientQRData) -> str:
        """Seal an already stamped payload; the timestamp is kept as is."""
        canonical = json.dumps(
            payload.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )
        return crypto.seal(canonical.encode("utf-8"), self._key)

    def seal(self, identity: IdentityLike) -> str:
        """Stamp *identity* and return the opaque token placed in the QR code."""
        return self.seal_payload(self.stamp(identity))

    # ------------------------------------------------------------------ #
    # Rendering
    # ------------------------------------------------------------------ #

    def _options(self, options: Optional[QRCodeOptions], **overrides) -> QRCodeOptions:
        return (options or self.options).merged(**overrides)

    def encode(self, identity: IdentityLike, options: Optional[QRCodeOptions] = None) -> str:
        """Seal *identity* and render it as a PNG data URL."""
        return render_data_url(self.seal(identity), self._options(options))

    def encode_text(self, text: str, options: Optional[QRCodeOptions] = None) -> str:
        """Render plain, unencrypted text; used for demo and USSD codes."""
        return render_data_url(text, self._options(options))

    def encode_multiple(self, identity: IdentityLike) -> Dict[str, str]:
        """
        Render the same payload at every size of ``QR_MULTIPLE_SIZES``.

        The payload is stamped once, so all sizes carry the same timestamp.
        """
        payload = self.stamp(identity)
        return {
            name: render_data_url(self.seal_payload(payload), self._options(None, size=size))
            for name, size in settings.QR_MULTIPLE_SIZES.items()
        }

    # ------------------------------------------------------------------ #
    # Decoding
    # ------------------------------------------------------------------ #

    def decode(self, token: str) -> PatientQRData:
        """
        Decrypt and parse a scanned token.

        Raises :class:`DecodeError` (reason ``"corrupt"``) on any failure.
        """
        if not token:
            raise DecodeError("corrupt")
        plaintext = crypto.unseal(token.strip(), self._key)
        try:
            data = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecodeError("corrupt") from exc
        return PatientQRData.from_dict(data)

    def validate(self, token: str) -> QRValidation:
        """Decode *token* and check it is complete and not expired."""
        try:
            data = self.decode(token)
        except DecodeError as exc:
            logger.warning("Rejected QR payload: %s", exc.reason)
            return QRValidation(is_valid=False, error=INVALID_DATA)

        identity = data.identity
        if not (identity.patient_id and identity.nom and identity.prenom):
            return QRValidation(is_valid=False, data=data, error=INCOMPLETE_DATA)

        age_ms = self._now_ms() - data.timestamp
        if age_ms > self.max_age * 1000:
            return QRValidation(is_valid=False, data=data, error=EXPIRED)

        return QRValidation(is_valid=True, data=data)
