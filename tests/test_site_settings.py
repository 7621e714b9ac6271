from __future__ import annotations

from conftest import FakeBackend, make_product
from craftshop.constants import DEFAULT_SITE_SETTINGS
from craftshop.services.dashboard import dashboard_stats
from craftshop.services.site_settings import SiteSettingsService, merge_with_defaults, settings_from_form


def test_merge_keeps_defaults_and_ignores_unknown_keys() -> None:
    merged = merge_with_defaults({"heroTitle": "Hello", "bogus": "x", "socialLinks": {"facebook": "fb", "myspace": "m"}})

    assert merged["heroTitle"] == "Hello"
    assert merged["companyName"] == DEFAULT_SITE_SETTINGS["companyName"]
    assert "bogus" not in merged
    assert merged["socialLinks"] == {**DEFAULT_SITE_SETTINGS["socialLinks"], "facebook": "fb"}
    # defaults are not mutated
    assert DEFAULT_SITE_SETTINGS["heroTitle"] != "Hello"


def test_settings_from_form_folds_dotted_keys() -> None:
    values = settings_from_form({"companyName": " Loops ", "socialLinks.instagram": "https://ig.test/loops"})
    assert values["companyName"] == "Loops"
    assert values["socialLinks"]["instagram"] == "https://ig.test/loops"
    assert values["socialLinks"]["twitter"] == DEFAULT_SITE_SETTINGS["socialLinks"]["twitter"]


def test_offline_defaults_are_written_locally(storage, offline_backend) -> None:
    site = SiteSettingsService(storage, offline_backend)
    assert site.get_site_settings() == DEFAULT_SITE_SETTINGS
    assert storage.get_dict("siteSettings") == DEFAULT_SITE_SETTINGS


def test_offline_save_round_trip(storage, offline_backend) -> None:
    site = SiteSettingsService(storage, offline_backend)
    site.save_site_settings({"heroTitle": "Spring drop"})
    assert site.get_site_settings()["heroTitle"] == "Spring drop"


def test_save_upserts_single_backend_row(storage, fake_backend: FakeBackend, backend) -> None:
    site = SiteSettingsService(storage, backend)
    site.save_site_settings({"heroTitle": "One"})
    site.save_site_settings({"heroTitle": "Two"})

    [row] = fake_backend.rows("settings")
    assert row["key"] == "siteSettings"
    assert row["value"]["heroTitle"] == "Two"

    storage.remove_item("siteSettings")
    assert site.get_site_settings()["heroTitle"] == "Two"


def test_dashboard_stats() -> None:
    orders = [
        {"order_number": "A", "total": 100.1, "status": "Processing", "date": "2025-01-01"},
        {"order_number": "B", "total": 50.2, "status": "Shipped", "date": "2025-03-01"},
        {"order_number": "C", "total": 0.3, "status": "Processing", "date": "2025-02-01"},
    ]
    products = [make_product(str(i)) for i in range(7)]

    stats = dashboard_stats(orders, products, recent=2)

    assert stats["total_orders"] == 3
    assert stats["total_products"] == 7
    assert stats["total_revenue"] == 150.6
    assert stats["pending_orders"] == 2
    assert [o["order_number"] for o in stats["recent_orders"]] == ["B", "C"]
    assert len(stats["recent_products"]) == 2


def test_dashboard_stats_empty() -> None:
    stats = dashboard_stats([], [])
    assert stats["total_revenue"] == 0
    assert stats["recent_orders"] == []
