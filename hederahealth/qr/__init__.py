"""Patient QR codes: sealed payloads rendered as PNG data URLs."""

from .codec import PatientQRCodec, render_data_url
from .models import PatientIdentity, PatientQRData, QRCodeOptions, QRValidation
