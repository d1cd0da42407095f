import pytest

from smartvisitor.models.schemas import CreateGuestRequest
from smartvisitor.utils.exceptions import InvalidIdentifierError, NotFoundError
from smartvisitor.utils.validators import IdentifierValidator


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("f0:f5:bd:54:36:a8", "F0:F5:BD:54:36:A8"),
        ("F0-F5-BD-54-36-A8", "F0:F5:BD:54:36:A8"),
        ("f0f5.bd54.36a8", "F0:F5:BD:54:36:A8"),
        (" F0F5BD5436A8 ", "F0:F5:BD:54:36:A8"),
        ("not-a-mac", "NOT-A-MAC"),
    ],
)
def test_normalize_mac(raw, expected):
    assert IdentifierValidator.normalize_mac(raw) == expected


@pytest.mark.parametrize("value", [0, -3, "abc", None, True])
def test_require_id_rejects(value):
    with pytest.raises(InvalidIdentifierError):
        IdentifierValidator.require_id(value, "guestId")


def test_require_id_coerces_strings():
    assert IdentifierValidator.require_id("12", "guestId") == 12


def test_require_tag():
    assert IdentifierValidator.require_tag("  ABC  ") == "ABC"
    with pytest.raises(InvalidIdentifierError):
        IdentifierValidator.require_tag("   ")


def test_parse_guest_csv(services):
    data = (
        "\ufeffname,email,phone,vip\n"
        "Willem van Leunen,willem@example.com,,TRUE\n"
        ",nobody@example.com,,\n"
        "Sanne de Vries,,0612345678,nee\n"
    ).encode("utf-8")

    rows, skipped = services.guests.parse_guest_csv(data)

    assert skipped == 1
    assert rows == [
        {"name": "Willem van Leunen", "email": "willem@example.com", "phone": None, "vip": True},
        {"name": "Sanne de Vries", "email": None, "phone": "0612345678", "vip": False},
    ]


def test_parse_guest_csv_rejects_binary(services):
    with pytest.raises(InvalidIdentifierError):
        services.guests.parse_guest_csv(b"\xff\xfe\x00garbage")


def test_import_into_missing_project(services):
    with pytest.raises(NotFoundError):
        services.guests.import_guests_from_csv(999, b"name\nAlice\n")


def test_project_detail_lists_guests_and_scanners(services, seed):
    services.guests.create_guest(seed["project"], CreateGuestRequest(name="  Ada  ", vip=True))

    detail = services.guests.get_project_detail(seed["project"])

    assert detail.project.name == "Lowlands 2025"
    assert [g.name for g in detail.guests] == ["Ada", "Sanne de Vries", "Willem van Leunen"]
    assert {s.name for s in detail.scanners} == {"Entrance", "Backstage"}


def test_recent_bindings_limit_is_clamped(services, seed, monkeypatch):
    seen = []
    monkeypatch.setattr(services.store, "recent_bindings", lambda limit: seen.append(limit) or [])

    services.guests.recent_bindings(0)
    services.guests.recent_bindings(10_000)

    assert seen == [1, 500]
