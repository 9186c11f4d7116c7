"""설정 로드 테스트"""

import json

import pytest
from pydantic import ValidationError

from dm_migration.config import (
    DMSettings,
    MigrationSettings,
    MySQLSettings,
    RunSettings,
    load_tables_config,
    parse_extra_params,
)


class TestExtraParams:

    def test_numbers_converted(self):
        assert parse_extra_params("login_timeout=10&offset=-5&mode=fast") == {
            "login_timeout": 10,
            "offset": -5,
            "mode": "fast",
        }

    def test_malformed_parts_skipped(self):
        assert parse_extra_params("a=1&&flag& b = x ") == {"a": 1, "b": "x"}

    def test_value_may_contain_equals(self):
        assert parse_extra_params("init_command=SET a=1") == {"init_command": "SET a=1"}

    def test_empty(self):
        assert parse_extra_params(None) == {}


class TestDMSettings:

    def test_connect_kwargs(self):
        settings = DMSettings(user="SYSDBA", password="secret", schema_name="APP", extra="login_timeout=10")
        assert settings.to_connect_kwargs() == {
            "user": "SYSDBA",
            "password": "secret",
            "server": "127.0.0.1",
            "port": 5236,
            "schema": "APP",
            "login_timeout": 10,
        }

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("DM_HOST", "dm.internal")
        monkeypatch.setenv("DM_SCHEMA_NAME", "SALES")
        settings = DMSettings()
        assert settings.host == "dm.internal"
        assert settings.schema_name == "SALES"


class TestMySQLSettings:

    @pytest.mark.parametrize("version, charset", [(5, "utf8"), (8, "utf8mb4")])
    def test_charset_by_version(self, version, charset):
        assert MySQLSettings(version=version).charset == charset

    def test_to_dict(self):
        settings = MySQLSettings(user="app", password="pw", database="target", version=8, extra="read_timeout=30")
        params = settings.to_dict()
        assert params["db"] == "target"
        assert params["charset"] == "utf8mb4"
        assert params["read_timeout"] == 30
        assert params["port"] == 3306

    def test_pool_defaults(self):
        settings = MySQLSettings()
        assert (settings.max_open_conns, settings.max_idle_conns, settings.conn_max_lifetime) == (20, 10, 600)


class TestRunSettings:

    def test_defaults(self):
        settings = RunSettings()
        assert settings.workers == 4
        assert settings.batch_size == 2000
        assert settings.table_timeout == 1800
        assert settings.tables_config == "./config/tables.json"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("MIGRATE_WORKERS", "8")
        assert RunSettings().workers == 8

    def test_workers_must_be_positive(self):
        with pytest.raises(ValidationError):
            RunSettings(workers=0)


class TestMigrationSettings:

    def test_missing_fields(self):
        settings = MigrationSettings(
            source=DMSettings(user="SYSDBA"),
            target=MySQLSettings(password="pw"),
        )
        assert settings.missing_fields() == ["dm-pass", "dm-schema", "mysql-db"]
        assert settings.missing_fields(include_target=False) == ["dm-pass", "dm-schema"]

    def test_overrides_ignore_none(self):
        base = MigrationSettings(source=DMSettings(user="a", password="b", schema_name="S"))

        updated = base.with_overrides(
            source={"host": "10.0.0.1", "user": None},
            target={"version": 8},
            run={"workers": 2, "batch_size": None},
        )

        assert updated.source.host == "10.0.0.1"
        assert updated.source.user == "a"
        assert updated.target.version == 8
        assert updated.run.workers == 2
        assert updated.run.batch_size == 2000
        # 원본은 변경되지 않음
        assert base.source.host == "127.0.0.1"

    def test_frozen(self):
        settings = MigrationSettings()
        with pytest.raises(ValidationError):
            settings.run.workers = 10


class TestTablesConfig:

    def test_json(self, tmp_path):
        path = tmp_path / "tables.json"
        path.write_text(json.dumps({"tables": ["ORDERS", "USERS"]}), encoding="utf-8")
        assert load_tables_config(path).tables == ["ORDERS", "USERS"]

    @pytest.mark.parametrize("suffix", [".yaml", ".yml"])
    def test_yaml(self, tmp_path, suffix):
        path = tmp_path / f"tables{suffix}"
        path.write_text("tables:\n  - ORDERS\n  - USERS\n", encoding="utf-8")
        assert load_tables_config(path).tables == ["ORDERS", "USERS"]

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "tables.yaml"
        path.write_text("", encoding="utf-8")
        assert load_tables_config(path).tables == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_tables_config(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "tables.json"
        path.write_text("{tables: [", encoding="utf-8")
        with pytest.raises(ValueError):
            load_tables_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "tables.yaml"
        path.write_text("tables: [ORDERS\n  - : :", encoding="utf-8")
        with pytest.raises(ValueError):
            load_tables_config(path)


class TestOverrideValidation:

    @pytest.mark.parametrize("run", [{"workers": 0}, {"batch_size": -5}, {"max_retries": 0}])
    def test_invalid_run_override_rejected(self, run):
        with pytest.raises(ValidationError):
            MigrationSettings().with_overrides(run=run)

    def test_invalid_port_override_rejected(self):
        with pytest.raises(ValidationError):
            MigrationSettings().with_overrides(target={"port": "not-a-port"})

    def test_override_values_coerced(self):
        updated = MigrationSettings().with_overrides(source={"port": "5237"})
        assert updated.source.port == 5237
