import pytest

from magnetico.stats import Counter, Stats, get_instance


def test_get_instance_is_singleton():
    first = get_instance()
    second = get_instance()
    assert first is second
    assert isinstance(first.extensions, dict)


def test_collect_counts_all_counters():
    stats = Stats()
    stats.inc_bootstrap()
    stats.inc_udp_error(True)
    stats.inc_udp_error(False)
    stats.inc_rt_clearing()
    stats.inc_non_utf8()
    stats.inc_db_error(False)
    stats.inc_db_error(True)
    stats.inc_leech(bytes(8))

    counters = stats.collect()
    assert len(counters) == 9
    assert all(counter.value == 1 for counter in counters)


def test_singleton_collect_includes_extension():
    stats = get_instance()
    stats.inc_leech(bytes(8))
    assert len(stats.collect()) >= 9


def test_udp_error_routing():
    stats = Stats()
    stats.inc_udp_error(True)
    stats.inc_udp_error(True)
    stats.inc_udp_error(False)
    assert stats.write_error.value == 2
    assert stats.read_error.value == 1


def test_db_error_routing():
    stats = Stats()
    stats.inc_db_error(True)
    assert stats.add_error.value == 1
    assert stats.check_error.value == 0


def test_leech_extension_name():
    stats = Stats()
    stats.inc_leech(bytes(8))
    stats.inc_leech(bytes(8))
    assert list(stats.extensions) == ["_0_0_0_0_0_0_0_0_"]
    counter = stats.extensions["_0_0_0_0_0_0_0_0_"]
    assert counter.name == "magnetico_extension_0_0_0_0_0_0_0_0_"
    assert counter.value == 2
    assert stats.mse_encryption.value == 2


def test_leech_distinct_sets():
    stats = Stats()
    stats.inc_leech(bytes(8))
    stats.inc_leech(bytes([0, 0, 0, 0, 0, 16, 0, 5]))
    assert sorted(stats.extensions) == ["_0_0_0_0_0_0_0_0_", "_0_0_0_0_0_16_0_5_"]


def test_leech_wrong_length():
    with pytest.raises(ValueError):
        Stats().inc_leech(b"\x00\x01")


def test_render_text_format():
    stats = Stats()
    stats.inc_bootstrap()
    text = stats.render()
    assert "# TYPE magnetico_bootstrap counter\n" in text
    assert "magnetico_bootstrap 1\n" in text
    assert "magnetico_read_error 0\n" in text
    assert text.endswith("\n")


def test_counter_inc():
    counter = Counter("magnetico_test", "test counter")
    counter.inc()
    counter.inc()
    assert counter.value == 2