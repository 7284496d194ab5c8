"""
Tests for aggregated validation and the reusable validators
"""

import pytest

from layered_config import (
    ConfigValidationError,
    InvalidValueError,
    KeyStore,
    MissingRequiredKeyError,
    ValidationPipeline,
    is_port,
    is_positive_int,
    matches,
    min_length,
    one_of,
)


class TestValidationPipeline:

    def setup_method(self):
        self.store = KeyStore()
        self.pipeline = ValidationPipeline(self.store)

    def test_clean_pass_changes_nothing(self):
        self.pipeline.require_key("db.host")
        self.store.set("db.host", "localhost")
        before = len(self.store.journal)

        report = self.pipeline.validate_all()

        assert report.valid
        assert report.checked_keys == ["db.host"]
        assert len(self.store.journal) == before
        assert self.store.get("db.host") == "localhost"

    def test_all_failures_reported_together(self):
        self.pipeline.require_key("a")
        self.pipeline.require_key("b")
        self.pipeline.require_key("c", is_port)
        self.store.set("c", "nope", validate=False)

        with pytest.raises(ConfigValidationError) as exc_info:
            self.pipeline.validate_all()

        error = exc_info.value
        assert len(error.failures) == 3
        assert error.missing_keys == ["a", "b"]
        assert error.invalid_keys == ["c"]
        assert "a" in error.message and "b" in error.message and "c" in error.message

    def test_missing_password_named(self):
        self.pipeline.require_key("db.host")
        self.pipeline.require_key("db.password")
        self.store.set("db.host", "localhost")

        with pytest.raises(ConfigValidationError) as exc_info:
            self.pipeline.validate_all()

        assert len(exc_info.value.failures) == 1
        assert isinstance(exc_info.value.failures[0], MissingRequiredKeyError)
        assert exc_info.value.missing_keys == ["db.password"]

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_values_count_as_missing(self, value):
        self.pipeline.require_key("api.token")
        self.store.set("api.token", value)

        failures = self.pipeline.collect_failures()

        assert [type(f) for f in failures] == [MissingRequiredKeyError]

    def test_required_key_found_through_nested_value(self):
        self.pipeline.require_key("db.password")
        self.store.set("db", {"password": "s3cret"})

        assert self.pipeline.validate_all().valid

    def test_optional_validated_key_checked_when_present(self):
        self.store.add_validator("port", is_port)

        assert self.pipeline.collect_failures() == []

        self.store.set("port", 0, validate=False)
        failures = self.pipeline.collect_failures()

        assert len(failures) == 1
        assert isinstance(failures[0], InvalidValueError)
        assert failures[0].key == "port"

    def test_validator_exception_reported_as_invalid(self):
        self.pipeline.require_key("ratio", lambda v: 1 / v > 0)
        self.store.set("ratio", 0, validate=False)

        with pytest.raises(ConfigValidationError) as exc_info:
            self.pipeline.validate_all()

        assert exc_info.value.invalid_keys == ["ratio"]

    def test_collect_failures_does_not_raise(self):
        self.pipeline.require_key("a")

        assert len(self.pipeline.collect_failures()) == 1

    def test_check_reports_without_raising(self):
        self.pipeline.require_key("a")
        self.pipeline.require_key("port", is_port)
        self.store.set("port", 8080)

        report = self.pipeline.check()

        assert report.valid is False
        assert report.checked_keys == ["a", "port"]
        assert [type(f) for f in report.failures] == [MissingRequiredKeyError]

        self.store.set("a", "present")
        assert self.pipeline.check().valid is True


class TestValidators:

    def test_is_port(self):
        assert is_port(8080)
        assert not is_port(0)
        assert not is_port(65536)
        assert not is_port("8080")
        assert not is_port(True)

    def test_is_positive_int(self):
        assert is_positive_int(1)
        assert not is_positive_int(0)
        assert not is_positive_int(1.5)
        assert not is_positive_int(True)

    def test_min_length(self):
        check = min_length(8)
        assert check("longenough")
        assert not check("short")
        assert not check(12345678)

    def test_one_of(self):
        check = one_of("light", "dark")
        assert check("dark")
        assert not check("blue")

    def test_matches_whole_value(self):
        check = matches(r"[a-z]+")
        assert check("abc")
        assert not check("abc1")
        assert not check(None)
