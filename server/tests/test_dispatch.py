import pytest

from apexdispatch.services.dispatch import DispatchRouter, resolve_region

CHANNELS = {
    "Москва": "@apexclean_moscow",
    "Санкт-Петербург": "@apexclean_spb",
    "Казань": "@apexclean_kazan",
}


def test_resolves_region_case_insensitively():
    router = DispatchRouter(CHANNELS, "Москва")
    assert router.resolve("г. КАЗАНЬ, ул. Баумана 1") == "Казань"
    assert router.channel_for("Казань") == "@apexclean_kazan"


def test_unmatched_or_empty_address_falls_back_to_default():
    router = DispatchRouter(CHANNELS, "Москва")
    assert router.resolve("Новосибирск, Красный проспект 10") == "Москва"
    assert router.resolve("") == "Москва"
    assert router.resolve(None) == "Москва"


def test_first_configured_region_wins_when_several_match():
    address = "Казань, Москва-Сити"
    assert resolve_region(address, ["Москва", "Казань"], "Москва") == "Москва"
    assert resolve_region(address, ["Казань", "Москва"], "Москва") == "Казань"


def test_resolution_is_deterministic():
    router = DispatchRouter(CHANNELS, "Москва")
    first = router.resolve("Санкт-Петербург, Невский 1")
    assert all(router.resolve("Санкт-Петербург, Невский 1") == first for _ in range(5))


def test_unknown_region_uses_default_channel():
    router = DispatchRouter(CHANNELS, "Москва")
    assert router.channel_for("Тверь") == "@apexclean_moscow"


def test_default_region_must_have_a_channel():
    with pytest.raises(ValueError):
        DispatchRouter(CHANNELS, "Тверь")
