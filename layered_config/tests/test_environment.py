"""
Tests for environment variable bindings
"""

import pytest

from layered_config import EnvBinding, EnvironmentSource
from layered_config.environment import coerce


class TestEnvBinding:

    def test_variable_derived_from_key(self):
        assert EnvBinding("db.port").variable == "DB_PORT"

    def test_explicit_variable(self):
        assert EnvBinding("db.port", "POSTGRES_PORT").variable == "POSTGRES_PORT"


class TestCoerce:

    @pytest.mark.parametrize("raw,kind,expected", [
        ("text", "str", "text"),
        (" 42 ", "int", 42),
        ("1.5", "float", 1.5),
        ("YES", "bool", True),
        ("off", "bool", False),
        ("a, b,,c", "list", ["a", "b", "c"]),
    ])
    def test_kinds(self, raw, kind, expected):
        assert coerce(raw, kind) == expected

    @pytest.mark.parametrize("raw,kind", [("abc", "int"), ("maybe", "bool"), ("x", "uuid")])
    def test_invalid(self, raw, kind):
        with pytest.raises(ValueError):
            coerce(raw, kind)


class TestEnvironmentSource:

    def test_default_bindings(self):
        source = EnvironmentSource(environ={})

        assert source.resolve() == {"environment": "development", "log_level": "INFO"}

    def test_reads_snapshot(self):
        source = EnvironmentSource(
            [EnvBinding("server.port", "PORT", kind="int", default=3000)],
            environ={"PORT": "8080"},
        )

        assert source.resolve() == {"server.port": 8080}

    def test_empty_variable_uses_default(self):
        source = EnvironmentSource([EnvBinding("server.port", "PORT", kind="int", default=3000)], environ={"PORT": ""})

        assert source.value("server.port") == 3000

    def test_unparseable_variable_uses_default(self):
        source = EnvironmentSource([EnvBinding("debug", "DEBUG", kind="bool", default=False)], environ={"DEBUG": "maybe"})

        assert source.value("debug") is False

    def test_snapshot_taken_once(self):
        environ = {"PORT": "8080"}
        source = EnvironmentSource([EnvBinding("server.port", "PORT", kind="int")], environ=environ)

        environ["PORT"] = "9090"

        assert source.value("server.port") == 8080

    def test_reads_process_environment_by_default(self, monkeypatch):
        monkeypatch.setenv("LAYERED_TEST_REGION", "eu-west-1")

        source = EnvironmentSource([EnvBinding("region", "LAYERED_TEST_REGION")])

        assert source.value("region") == "eu-west-1"

    def test_add_binding_replaces_same_key(self):
        source = EnvironmentSource([EnvBinding("region", "REGION")], environ={"AWS_REGION": "us-east-1"})

        source.add_binding(EnvBinding("region", "AWS_REGION"))

        assert len(source.bindings) == 1
        assert source.value("region") == "us-east-1"

    def test_sensitive_keys(self):
        source = EnvironmentSource([
            EnvBinding("db.host", "DB_HOST"),
            EnvBinding("db.password", "DB_PASSWORD", sensitive=True),
        ], environ={})

        assert source.sensitive_keys() == ["db.password"]
