import pytest

from hederahealth.qr import PatientIdentity, PatientQRCodec
from hederahealth.records import FileRegistry, KeyValueStore

TEST_KEY = bytes(range(32))
NOW = 1_760_000_000.0  # seconds


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codec(clock):
    return PatientQRCodec(TEST_KEY, clock=clock)


@pytest.fixture
def identity():
    return PatientIdentity(
        patient_id="BJ20250001",
        nom="KOSSOU",
        prenom="Adjoa",
        hopital="chu-mel",
        date_naissance="1990-05-12",
        groupe_sanguin="A+",
        allergies=["Pénicilline"],
    )


@pytest.fixture
def store():
    s = KeyValueStore.in_memory()
    yield s
    s.close()


@pytest.fixture
def registry(store, clock):
    return FileRegistry(store, clock=clock)
