"""
Data carried by patient QR codes.

Field names are snake_case in Python; the serialized form keeps the camelCase
keys used by the scanning apps (``patientId``, ``dateNaissance`` ...).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from ..config import settings
from ..errors import DecodeError

# python attribute -> JSON key
_IDENTITY_KEYS = (
    ("patient_id", "patientId"),
    ("nom", "nom"),
    ("prenom", "prenom"),
    ("hopital", "hopital"),
    ("date_naissance", "dateNaissance"),
    ("groupe_sanguin", "groupeSanguin"),
)


@dataclass(frozen=True)
class PatientIdentity:
    """Minimal data identifying a patient for QR-based lookup."""

    patient_id: str
    nom: str
    prenom: str
    hopital: str
    date_naissance: Optional[str] = None
    groupe_sanguin: Optional[str] = None
    allergies: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        if isinstance(self.allergies, str):
            object.__setattr__(self, "allergies", (self.allergies,))
        elif self.allergies is not None and not isinstance(self.allergies, tuple):
            object.__setattr__(self, "allergies", tuple(self.allergies))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PatientIdentity":
        """Build an identity from a mapping using either key style."""
        kwargs = {}
        for attr, key in _IDENTITY_KEYS:
            value = data.get(key, data.get(attr))
            if value is not None:
                kwargs[attr] = value
        missing = [key for attr, key in _IDENTITY_KEYS[:4] if attr not in kwargs]
        if missing:
            raise ValueError(f"missing patient fields: {', '.join(missing)}")
        kwargs["allergies"] = data.get("allergies")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for attr, key in _IDENTITY_KEYS:
            value = getattr(self, attr)
            if value is not None:
                out[key] = value
        if self.allergies is not None:
            out["allergies"] = list(self.allergies)
        return out


@dataclass(frozen=True)
class PatientQRData:
    """A stamped patient payload, as found inside a QR code."""

    identity: PatientIdentity
    timestamp: int  # milliseconds since the epoch
    version: str = settings.QR_SCHEMA_VERSION

    @property
    def patient_id(self) -> str:
        return self.identity.patient_id

    def to_dict(self) -> Dict[str, Any]:
        out = self.identity.to_dict()
        out["timestamp"] = self.timestamp
        out["version"] = self.version
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "PatientQRData":
        """
        Parse a decoded JSON document.

        Missing name fields are kept as empty strings so that validation can
        report them; wrong types are treated as corruption.
        """
        if not isinstance(data, dict):
            raise DecodeError("corrupt")
        timestamp = data.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise DecodeError("corrupt")
        for _, key in _IDENTITY_KEYS:
            if key in data and data[key] is not None and not isinstance(data[key], str):
                raise DecodeError("corrupt")
        allergies = data.get("allergies")
        if allergies is not None and (
            not isinstance(allergies, list) or not all(isinstance(a, str) for a in allergies)
        ):
            raise DecodeError("corrupt")

        identity = PatientIdentity(
            patient_id=data.get("patientId") or "",
            nom=data.get("nom") or "",
            prenom=data.get("prenom") or "",
            hopital=data.get("hopital") or "",
            date_naissance=data.get("dateNaissance"),
            groupe_sanguin=data.get("groupeSanguin"),
            allergies=allergies,
        )
        return cls(
            identity=identity,
            timestamp=timestamp,
            version=str(data.get("version", "")),
        )


@dataclass(frozen=True)
class QRCodeOptions:
    size: int = settings.QR_DEFAULT_SIZE
    margin: int = settings.QR_DEFAULT_MARGIN
    dark: str = settings.QR_DEFAULT_DARK_COLOR
    light: str = settings.QR_DEFAULT_LIGHT_COLOR
    error_correction: str = settings.QR_DEFAULT_ERROR_CORRECTION

    def merged(self, **overrides) -> "QRCodeOptions":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


@dataclass(frozen=True)
class QRValidation:
    is_valid: bool
    data: Optional[PatientQRData] = None
    error: Optional[str] = None


# Reasons reported by PatientQRCodec.validate
INVALID_DATA = "invalid or corrupted data"
INCOMPLETE_DATA = "incomplete patient data"
EXPIRED = "expired"

__all__ = [
    "PatientIdentity",
    "PatientQRData",
    "QRCodeOptions",
    "QRValidation",
    "INVALID_DATA",
    "INCOMPLETE_DATA",
    "EXPIRED",
]
