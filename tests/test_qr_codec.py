import base64
import io

import pytest
import qrcode
from PIL import Image

from hederahealth.config import settings
from hederahealth.errors import DecodeError, EncodingError
from hederahealth.qr import PatientIdentity, PatientQRCodec, PatientQRData, QRCodeOptions
from hederahealth.qr.models import EXPIRED, INCOMPLETE_DATA, INVALID_DATA

from .conftest import NOW, TEST_KEY

PNG_PREFIX = "data:image/png;base64,"
HOUR = 60 * 60


def _png_size(data_url):
    png = base64.b64decode(data_url[len(PNG_PREFIX):])
    assert png[:8] == b"\x89PNG\r\n\x1a\n"
    width = int.from_bytes(png[16:20], "big")
    height = int.from_bytes(png[20:24], "big")
    return width, height


def _expected_matrix(data, options):
    qr = qrcode.QRCode(
        error_correction=getattr(qrcode.constants, f"ERROR_CORRECT_{options.error_correction}"),
        border=options.margin,
    )
    qr.add_data(data)
    qr.make(fit=True)
    return qr.get_matrix()


def _assert_image_holds(data_url, data, options):
    """Sample the PNG once per module and compare with the expected symbol."""
    matrix = _expected_matrix(data, options)
    modules = len(matrix)
    image = Image.open(io.BytesIO(base64.b64decode(data_url[len(PNG_PREFIX):]))).convert("RGB")
    assert image.width == image.height >= modules
    box = max(1, options.size // modules)
    offset = max(0, (options.size - modules * box) // 2)
    for r, row in enumerate(matrix):
        for c, dark in enumerate(row):
            pixel = image.getpixel((offset + c * box + box // 2, offset + r * box + box // 2))
            assert (pixel == (0, 0, 0)) == dark, f"module ({r}, {c})"
    return image


def test_seal_then_validate_roundtrip(codec, identity):
    result = codec.validate(codec.seal(identity))
    assert result.is_valid is True
    assert result.error is None
    assert result.data.identity == identity
    assert result.data.timestamp == int(NOW * 1000)
    assert result.data.version == "1.0"


def test_example_scenario(codec):
    token = codec.seal(
        {"patientId": "BJ20250001", "nom": "KOSSOU", "prenom": "Adjoa", "hopital": "chu-mel"}
    )
    data = codec.decode(token)
    assert data.patient_id == "BJ20250001"
    assert data.identity.allergies is None
    assert codec.validate(token).is_valid is True


@pytest.mark.parametrize("token", ["", "not-json-or-encrypted"])
def test_validate_rejects_garbage(codec, token):
    result = codec.validate(token)
    assert result.is_valid is False
    assert result.error == INVALID_DATA
    assert result.data is None


def test_decode_garbage_raises(codec):
    with pytest.raises(DecodeError) as exc:
        codec.decode("not-json-or-encrypted")
    assert exc.value.reason == "corrupt"


def test_decode_with_other_key_is_corrupt(codec, identity):
    other = PatientQRCodec(bytes(32), clock=lambda: NOW)
    with pytest.raises(DecodeError):
        other.decode(codec.seal(identity))


def test_expired_payload(codec, identity):
    stale = PatientQRData(identity=identity, timestamp=int((NOW - 25 * HOUR) * 1000))
    result = codec.validate(codec.seal_payload(stale))
    assert result.is_valid is False
    assert result.error == EXPIRED
    assert result.data == stale


def test_recent_payload_passes(codec, identity):
    recent = PatientQRData(identity=identity, timestamp=int((NOW - HOUR) * 1000))
    assert codec.validate(codec.seal_payload(recent)).is_valid is True


def test_expiry_follows_the_clock(codec, identity, clock):
    token = codec.seal(identity)
    clock.advance(24 * HOUR)
    assert codec.validate(token).is_valid is True
    clock.advance(1)
    assert codec.validate(token).error == EXPIRED


def test_incomplete_payload(codec):
    empty_name = PatientIdentity(patient_id="BJ20250001", nom="", prenom="Adjoa", hopital="chu-mel")
    result = codec.validate(codec.seal(empty_name))
    assert result.is_valid is False
    assert result.error == INCOMPLETE_DATA


def test_seal_does_not_accept_missing_fields(codec):
    with pytest.raises(ValueError):
        codec.seal({"patientId": "BJ20250001", "nom": "KOSSOU"})


def test_encode_returns_png_data_url(codec, identity):
    url = codec.encode(identity)
    assert url.startswith(PNG_PREFIX)
    assert _png_size(url) == (256, 256)


def test_encode_with_custom_options(codec, identity):
    options = QRCodeOptions(size=512, dark="#00D4AA", light="#FFFFFF", error_correction="H")
    url = codec.encode(identity, options)
    assert _png_size(url) == (512, 512)


def test_encode_multiple_sizes(codec, identity):
    sizes = codec.encode_multiple(identity)
    assert set(sizes) == {"small", "medium", "large"}
    assert _png_size(sizes["small"]) == (128, 128)
    assert _png_size(sizes["medium"]) == (256, 256)
    assert _png_size(sizes["large"]) == (512, 512)


def test_encode_multiple_stamps_once(codec, identity, monkeypatch):
    sealed = []
    original = codec.seal_payload

    def spy(payload):
        sealed.append(payload)
        return original(payload)

    monkeypatch.setattr(codec, "seal_payload", spy)
    codec.encode_multiple(identity)
    assert len(sealed) == len(settings.QR_MULTIPLE_SIZES)
    assert len({p.timestamp for p in sealed}) == 1


def test_encode_text(codec):
    assert codec.encode_text("*789*BJ20250001#").startswith(PNG_PREFIX)


def test_encode_payload_too_large(codec, identity):
    huge = PatientIdentity(
        patient_id="BJ20250001",
        nom="KOSSOU",
        prenom="Adjoa",
        hopital="chu-mel",
        allergies=[f"allergy number {i:04d}" for i in range(150)],
    )
    with pytest.raises(EncodingError):
        codec.encode(huge, QRCodeOptions(error_correction="H"))


@pytest.mark.parametrize(
    "options",
    [
        QRCodeOptions(error_correction="Z"),
        QRCodeOptions(size=0),
        QRCodeOptions(margin=-1),
        QRCodeOptions(light="not-a-colour"),
    ],
)
def test_encode_bad_options(codec, identity, options):
    with pytest.raises(EncodingError):
        codec.encode(identity, options)


def test_from_settings(monkeypatch, identity):
    monkeypatch.setenv(settings.QR_SECRET_ENV_VAR, TEST_KEY.hex())
    codec = PatientQRCodec.from_settings()
    other = PatientQRCodec(TEST_KEY)
    assert other.validate(codec.seal(identity)).is_valid is True


def test_encode_multiple_images_hold_the_token(codec, identity, monkeypatch):
    tokens = []
    original = codec.seal_payload

    def spy(payload):
        tokens.append(original(payload))
        return tokens[-1]

    monkeypatch.setattr(codec, "seal_payload", spy)
    images = codec.encode_multiple(identity)
    for (name, size), token in zip(settings.QR_MULTIPLE_SIZES.items(), tokens):
        image = _assert_image_holds(images[name], token, QRCodeOptions(size=size))
        assert image.size == (size, size)


def test_encode_holds_token_with_long_allergy_list(codec, monkeypatch):
    crowded = PatientIdentity(
        patient_id="BJ20250001",
        nom="KOSSOU",
        prenom="Adjoa",
        hopital="chu-mel",
        allergies=[f"allergy number {i:02d}" for i in range(25)],
    )
    tokens = []
    original = codec.seal

    def spy(identity):
        tokens.append(original(identity))
        return tokens[-1]

    monkeypatch.setattr(codec, "seal", spy)
    options = QRCodeOptions(size=128)
    _assert_image_holds(codec.encode(crowded, options), tokens[0], options)


def test_small_size_never_shrinks_the_symbol(codec):
    options = QRCodeOptions(size=64)
    text = "x" * 600
    image = _assert_image_holds(codec.encode_text(text, options), text, options)
    assert image.width == len(_expected_matrix(text, options))
    assert image.width > 64


def test_symbol_is_padded_to_the_requested_size(codec):
    options = QRCodeOptions(size=130)
    text = "*789*BJ20250001#"
    image = _assert_image_holds(codec.encode_text(text, options), text, options)
    assert image.size == (130, 130)
