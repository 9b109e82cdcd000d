"""
Unit tests for the custom exception hierarchy.

Validates exception creation, inheritance, attribute storage and the
ErrorKind each error maps to.
"""

import pytest

from llm_gateway.exceptions import (
    CacheStoreError,
    ConfigurationError,
    GatewayError,
    InvalidInputError,
    MalformedResponseError,
    NoProviderAvailableError,
    ProviderError,
    ProviderTransportError,
    UpstreamError,
)
from llm_gateway.llm.types import ErrorKind


class TestGatewayError:
    """Tests for the base exception class."""

    def test_basic_creation(self):
        err = GatewayError("something broke")
        assert str(err) == "something broke"
        assert err.details == {}
        assert err.kind is None

    def test_with_details(self):
        err = GatewayError("oops", details={"code": 42})
        assert err.details["code"] == 42


class TestConfigurationError:
    """Tests for configuration errors."""

    def test_stores_config_path(self):
        err = ConfigurationError("bad yaml", config_path="config/gateway.yaml")
        assert err.config_path == "config/gateway.yaml"

    def test_catchable_as_gateway_error(self):
        with pytest.raises(GatewayError):
            raise ConfigurationError("invalid")


class TestRoutingAndInputErrors:
    """Errors raised before any provider is called."""

    def test_no_provider_kind(self):
        assert NoProviderAvailableError("none").kind == ErrorKind.NO_PROVIDER_AVAILABLE

    def test_invalid_input_stores_field(self):
        err = InvalidInputError("blank", field="message")
        assert err.field == "message"
        assert err.kind == ErrorKind.INVALID_INPUT


class TestProviderErrors:
    """Tests for provider call errors."""

    def test_all_inherit_provider_error(self):
        for cls in (ProviderTransportError, UpstreamError, MalformedResponseError):
            assert issubclass(cls, ProviderError)
            assert issubclass(cls, GatewayError)

    def test_kinds(self):
        assert ProviderTransportError("x").kind == ErrorKind.TRANSPORT_ERROR
        assert UpstreamError("x").kind == ErrorKind.UPSTREAM_ERROR
        assert MalformedResponseError("x").kind == ErrorKind.MALFORMED_RESPONSE

    def test_only_transport_errors_are_retryable(self):
        assert ProviderTransportError.retryable is True
        assert UpstreamError.retryable is False
        assert MalformedResponseError.retryable is False

    def test_upstream_stores_context(self):
        err = UpstreamError(
            "HTTP 429",
            provider="cloud_b",
            status_code=429,
            provider_message="rate limited",
        )
        assert err.provider == "cloud_b"
        assert err.status_code == 429
        assert err.provider_message == "rate limited"


class TestCacheStoreError:
    """Tests for cache store errors."""

    def test_stores_operation(self):
        err = CacheStoreError("disk full", operation="upsert")
        assert err.operation == "upsert"
        assert err.kind is None
