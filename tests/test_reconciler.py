from unittest.mock import MagicMock

import pytest

from volumemanager.controller.reconciler import (
    ReconciliationEngine,
    aces_equal,
    build_target_set,
    normalize_ace,
)
from volumemanager.errors import RestResponseError, TransportError
from volumemanager.models import Interval, VolumeInstance


def observed(*names):
    return [VolumeInstance.observed(name, f"/mnt/{name}") for name in names]


@pytest.fixture
def engine(cluster, session):
    return ReconciliationEngine(cluster, session, logger=MagicMock())


def test_empty_inventory_creates_whole_window(engine, make_spec, now):
    """A day group with retention 1 and ahead 2 yields yesterday through the day after tomorrow."""
    batch = engine.prepare([make_spec()], [], config_reloaded=False, now=now)

    assert [v.name for v in batch.create] == [
        "foo_20261017",
        "foo_20261018",
        "foo_20261019",
        "foo_20261020",
    ]
    assert batch.purge == []
    assert batch.ace_mod == []


@pytest.mark.parametrize("retention,ahead", [(0, 0), (1, 2), (7, 0), (30, 5)])
def test_create_list_size_matches_window(engine, make_spec, now, retention, ahead):
    spec = make_spec(retention=retention, ahead=ahead)
    batch = engine.prepare([spec], [], config_reloaded=False, now=now)
    assert len(batch.create) == retention + ahead + 1


def test_created_instances_carry_group_attributes(engine, make_spec, now):
    spec = make_spec(ace_enabled=True, read_ace="g:a", write_ace="g:b", permission="750", schedule=4)
    batch = engine.prepare([spec], [], config_reloaded=False, now=now)

    today = next(v for v in batch.create if v.name == "foo_20261018")
    assert today.path == "/data/foo/2026/10/18"
    assert today.owner == "appuser"
    assert today.group == "appgroup"
    assert today.permission == "750"
    assert today.schedule == 4
    assert today.ace_enabled
    assert (today.read_ace, today.write_ace) == ("g:a", "g:b")


def test_existing_volumes_are_not_created(engine, make_spec, now):
    batch = engine.prepare([make_spec()], observed("foo_20261018", "foo_20261019"), config_reloaded=False, now=now)
    assert [v.name for v in batch.create] == ["foo_20261017", "foo_20261020"]
    assert batch.purge == []


def test_volume_older_than_window_is_purged(engine, make_spec, now):
    batch = engine.prepare([make_spec()], observed("foo_20261008"), config_reloaded=False, now=now)
    assert [v.name for v in batch.purge] == ["foo_20261008"]
    assert batch.purge[0].path == "/mnt/foo_20261008"


def test_volume_ahead_of_window_is_skipped(engine, make_spec, now):
    batch = engine.prepare([make_spec()], observed("foo_20261130"), config_reloaded=False, now=now)
    assert batch.purge == []
    assert batch.ace_mod == []


def test_monthly_purge_uses_period_start(engine, make_spec, now):
    spec = make_spec(interval=Interval.MONTH, retention=2, ahead=1)
    batch = engine.prepare([spec], observed("foo_20260701", "foo_20270101"), config_reloaded=False, now=now)
    assert [v.name for v in batch.purge] == ["foo_20260701"]


def test_forever_retention_never_purges(engine, cluster, make_spec, now):
    spec = make_spec(retention=0, ahead=1)
    batch = engine.prepare([spec], observed("foo_19990101", "foo_20200615"), config_reloaded=True, now=now)

    assert batch.purge == []
    assert batch.ace_mod == []
    cluster.get_volume_access_policy.assert_not_called()


def test_forever_retention_checks_aces_of_old_volumes(engine, cluster, make_spec, now):
    spec = make_spec(retention=0, ahead=0, ace_enabled=True, read_ace="g:a", write_ace="g:a")
    cluster.get_volume_access_policy.return_value = ("g:old", "g:a")

    batch = engine.prepare([spec], observed("foo_20200615"), config_reloaded=True, now=now)

    assert batch.purge == []
    assert [v.name for v in batch.ace_mod] == ["foo_20200615"]
    assert batch.ace_mod[0].path == "/data/foo/2020/06/15"
    cluster.get_volume_access_policy.assert_called_once_with("foo_20200615")


def test_untracked_volumes_are_ignored(engine, cluster, make_spec, now):
    spec = make_spec(ace_enabled=True, read_ace="g:a", write_ace="g:a")
    inventory = observed("bar_20200101", "foobar_20200101", "mapr.cluster.root", "foo_extra_20200101")

    batch = engine.prepare([spec], inventory, config_reloaded=True, now=now)

    untracked = {"bar_20200101", "foobar_20200101", "mapr.cluster.root", "foo_extra_20200101"}
    listed = {v.name for v in batch.create + batch.purge + batch.ace_mod}
    assert not listed & untracked
    cluster.get_volume_access_policy.assert_not_called()


def test_volume_without_date_suffix_is_not_purged(engine, make_spec, now):
    batch = engine.prepare([make_spec()], observed("foo"), config_reloaded=False, now=now)
    assert batch.purge == []


def test_none_interval_yields_one_static_volume(engine, make_spec, now):
    spec = make_spec(name="static", interval=Interval.NONE, retention=0, ahead=0, path_format="/data/static")
    batch = engine.prepare([spec], [], config_reloaded=False, now=now)
    assert [(v.name, v.path) for v in batch.create] == [("static", "/data/static")]


def test_none_interval_with_nonzero_window_does_not_crash(engine, make_spec, now):
    spec = make_spec(name="static", interval=Interval.NONE, retention=3, ahead=2, path_format="/data/static")
    batch = engine.prepare([spec], observed("static_20200101"), config_reloaded=False, now=now)
    assert [v.name for v in batch.create] == ["static"]
    assert batch.purge == []


def test_later_spec_with_same_name_wins(make_spec, now):
    first = make_spec(owner="first", retention=0, ahead=0)
    second = make_spec(owner="second", retention=0, ahead=0)
    targets = build_target_set([first, second], now)
    assert list(targets) == ["foo_20261018"]
    assert targets["foo_20261018"].owner == "second"


def test_prepare_is_idempotent(engine, make_spec, now):
    specs = [make_spec(), make_spec(name="bar", interval=Interval.MONTH, retention=0, ahead=1)]
    inventory = observed("foo_20261001", "foo_20261018", "bar_20250101", "other_1")

    first = engine.prepare(specs, inventory, config_reloaded=False, now=now)
    second = engine.prepare(specs, inventory, config_reloaded=False, now=now)

    assert first == second


def test_aces_checked_only_after_reload(engine, cluster, make_spec, now):
    spec = make_spec(ace_enabled=True, read_ace="g:a", write_ace="g:a")
    cluster.get_volume_access_policy.return_value = ("g:other", "g:other")

    batch = engine.prepare([spec], observed("foo_20261018"), config_reloaded=False, now=now)

    assert batch.ace_mod == []
    cluster.get_volume_access_policy.assert_not_called()


def test_ace_comparison_ignores_whitespace(engine, cluster, make_spec, now):
    spec = make_spec(ace_enabled=True, read_ace="g:a&u:b", write_ace="g:a | g:b")
    cluster.get_volume_access_policy.return_value = ("g:a & u:b", "g:a|g:b")

    batch = engine.prepare([spec], observed("foo_20261018"), config_reloaded=True, now=now)

    assert batch.ace_mod == []


def test_changed_ace_is_scheduled_for_modification(engine, cluster, make_spec, now):
    spec = make_spec(ace_enabled=True, read_ace="g:a & u:b", write_ace="g:a")
    cluster.get_volume_access_policy.return_value = ("g:a | u:b", "g:a")

    batch = engine.prepare([spec], observed("foo_20261018"), config_reloaded=True, now=now)

    assert [v.name for v in batch.ace_mod] == ["foo_20261018"]
    assert batch.ace_mod[0].read_ace == "g:a & u:b"


def test_failed_ace_readback_forces_modification(engine, cluster, session, make_spec, now):
    spec = make_spec(ace_enabled=True, read_ace="g:a", write_ace="g:a")
    cluster.get_volume_access_policy.side_effect = TransportError("connection refused")

    batch = engine.prepare([spec], observed("foo_20261018"), config_reloaded=True, now=now)

    assert [v.name for v in batch.ace_mod] == ["foo_20261018"]
    assert session.endpoint == "node-b"
    assert session.failure_count == 1
    cluster.raise_alarm.assert_called_once()


def test_rejected_ace_readback_forces_modification(engine, cluster, session, make_spec, now):
    spec = make_spec(ace_enabled=True, read_ace="g:a", write_ace="g:a")
    cluster.get_volume_access_policy.side_effect = RestResponseError("no such volume")

    batch = engine.prepare([spec], observed("foo_20261018"), config_reloaded=True, now=now)

    assert [v.name for v in batch.ace_mod] == ["foo_20261018"]
    assert session.endpoint == "node-a"


def test_ace_readback_is_throttled(cluster, session, make_spec, now):
    sleep = MagicMock()
    engine = ReconciliationEngine(cluster, session, throttle_interval=0.5, logger=MagicMock(), sleep=sleep)
    spec = make_spec(ace_enabled=True, read_ace="", write_ace="")

    engine.prepare([spec], observed("foo_20261017", "foo_20261018"), config_reloaded=True, now=now)

    assert sleep.call_count == 2
    sleep.assert_called_with(0.5)


def test_normalize_ace():
    assert normalize_ace(" g:a &\tu:b\n") == "g:a&u:b"
    assert aces_equal("a & b", "a&b")
    assert not aces_equal("a & b", "a | b")
    assert not aces_equal("G:a", "g:a")


def test_dry_run_readback_failure_raises_no_alarm(cluster, session, make_spec, now):
    engine = ReconciliationEngine(cluster, session, logger=MagicMock(), dry_run=True)
    spec = make_spec(ace_enabled=True, read_ace="g:a", write_ace="g:a")
    cluster.get_volume_access_policy.side_effect = TransportError("connection refused")

    batch = engine.prepare([spec], observed("foo_20261017", "foo_20261018"), config_reloaded=True, now=now)

    assert [v.name for v in batch.ace_mod] == ["foo_20261017", "foo_20261018"]
    assert session.failure_count == 0
    cluster.raise_alarm.assert_not_called()
