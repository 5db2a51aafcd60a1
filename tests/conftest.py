import pytest


@pytest.fixture(autouse=True)
def app_settings(monkeypatch):
    monkeypatch.setenv("APP_URL", "https://admin.example.com/")
    monkeypatch.setenv("APP_NAME", "StartupMatching")
    monkeypatch.delenv("EMAIL_ENDPOINT_URL", raising=False)
    monkeypatch.delenv("BULK_INVITE_URL", raising=False)


@pytest.fixture
def expert_row():
    return {
        "email": "kim@example.com",
        "name": "Kim",
        "phone": "010-1234-5678",
        "role": "expert",
    }


@pytest.fixture
def organization_row():
    return {
        "email": "lee@corp.example.com",
        "name": "Lee",
        "phone": "01087654321",
        "role": "organization",
        "organization_name": "주식회사 테크노",
        "position": "인사팀장",
    }
