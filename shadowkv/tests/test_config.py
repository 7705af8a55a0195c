import pytest

from shadowkv import db
from shadowkv.db import get_conn, get_settings, open_helper
from shadowkv.repository.kvs_repo import KVS


@pytest.fixture()
def yaml_cfg(tmp_path, monkeypatch):
    """Redirect config.yaml lookups to a temp project root."""
    monkeypatch.setattr(db, "_PROJECT_ROOT", str(tmp_path))
    for var in ("KVS_DEVELOPER", "KVS_SLOW_QUERY", "KVS_DIE_ON_ERROR"):
        monkeypatch.delenv(var, raising=False)

    def write(text: str):
        (tmp_path / "config.yaml").write_text(text, encoding="utf-8")

    return write


def test_defaults_without_config(yaml_cfg, tmp_db_path):
    s = get_settings()
    assert s.db_path == tmp_db_path
    assert s.developer is False
    assert s.slow_query == 0.0
    assert s.die_on_error is False


def test_yaml_values(yaml_cfg):
    yaml_cfg("developer: true\nslow_query: 0.5\ndie_on_error: false\n")
    s = get_settings()
    assert s.developer is True
    assert s.slow_query == 0.5


def test_env_overrides_yaml(yaml_cfg, monkeypatch):
    yaml_cfg("developer: true\nslow_query: 0.5\n")
    monkeypatch.setenv("KVS_DEVELOPER", "no")
    monkeypatch.setenv("KVS_SLOW_QUERY", "-1")
    monkeypatch.setenv("KVS_DIE_ON_ERROR", "yes")
    s = get_settings()
    assert s.developer is False
    assert s.slow_query == -1.0
    assert s.die_on_error is True


def test_malformed_yaml_is_ignored(yaml_cfg):
    yaml_cfg("developer: [unclosed\n")
    assert get_settings().developer is False


def test_test_db_path_used_under_pytest(yaml_cfg, monkeypatch, tmp_path):
    target = tmp_path / "sub" / "t.db"
    yaml_cfg(f"db_path: /nonexistent/prod.db\ntest_db_path: {target}\n")
    monkeypatch.delenv("KVS_DB_PATH")
    assert db.get_db_path() == str(target)
    assert target.parent.is_dir()


def test_open_helper_uses_settings(yaml_cfg, tmp_db_path):
    yaml_cfg("developer: true\nslow_query: 2\n")
    with open_helper() as helper:
        assert helper.developer_mode is True
        assert helper.slow_query == 2.0
        rid = KVS(helper, "kvs_record", "owner_id", 3).insert({"uk1": "cfg"})
    with get_conn() as conn:
        row = conn.execute("SELECT owner_id FROM kvs_record WHERE id=?", (rid,)).fetchone()
    assert row["owner_id"] == 3
