"""
Tests for the RecoveryCoordinator: transient backoff and the separate
rate-limit retry path.
"""

import pytest

from spotify_library.errors import ConfigurationError, NetworkError, NetworkErrorKind
from spotify_library.events import EventBus, RateLimited, RequestRetried
from spotify_library.recovery import (
    NetworkRecoveryConfig,
    RecoveryCoordinator,
    RetryState,
)
from tests.fixtures.fakes import ScriptedTransport, json_response
from spotify_library.transport import TransportRequest

REQUEST = TransportRequest(method="GET", url="https://api.spotify.com/v1/me")


def make_coordinator(sleep, transport_config=None, max_rate_limit_retries=1, events=None):
    return RecoveryCoordinator(
        config=transport_config or NetworkRecoveryConfig(max_network_retries=3, base_delay=1.0, max_delay=30.0),
        max_rate_limit_retries=max_rate_limit_retries,
        events=events,
        sleep=sleep,
    )


class TestExponentialBackoff:
    @pytest.mark.asyncio
    async def test_always_503_makes_four_attempts_with_doubling_delays(self, recording_sleep):
        transport = ScriptedTransport([json_response(503, {"error": "unavailable"})])
        coordinator = make_coordinator(recording_sleep)
        state = RetryState()

        response = await coordinator.run(lambda: transport.send(REQUEST), state)

        assert response.status_code == 503
        assert transport.call_count == 4
        assert recording_sleep.delays == [1.0, 2.0, 4.0]
        assert state.attempts_made == 4
        assert state.transient_retries == 3

    @pytest.mark.asyncio
    async def test_delay_is_capped_at_max_delay(self, recording_sleep):
        transport = ScriptedTransport([json_response(500)])
        config = NetworkRecoveryConfig(max_network_retries=5, base_delay=1.0, max_delay=5.0)
        coordinator = make_coordinator(recording_sleep, config)

        await coordinator.run(lambda: transport.send(REQUEST))

        assert recording_sleep.delays == [1.0, 2.0, 4.0, 5.0, 5.0]

    @pytest.mark.asyncio
    async def test_success_after_transient_failure(self, recording_sleep):
        transport = ScriptedTransport([json_response(502), json_response(200, {"ok": True})])
        coordinator = make_coordinator(recording_sleep)

        response = await coordinator.run(lambda: transport.send(REQUEST))

        assert response.status_code == 200
        assert transport.call_count == 2
        assert recording_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_non_retryable_status_returns_immediately(self, recording_sleep):
        transport = ScriptedTransport([json_response(404)])
        coordinator = make_coordinator(recording_sleep)

        response = await coordinator.run(lambda: transport.send(REQUEST))

        assert response.status_code == 404
        assert transport.call_count == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_disabled_recovery_makes_single_attempt(self, recording_sleep):
        transport = ScriptedTransport([json_response(503)])
        coordinator = make_coordinator(recording_sleep, NetworkRecoveryConfig.disabled())

        await coordinator.run(lambda: transport.send(REQUEST))

        assert transport.call_count == 1


class TestNetworkErrors:
    @pytest.mark.asyncio
    async def test_retryable_network_error_is_retried_then_raised(self, recording_sleep):
        error = NetworkError(NetworkErrorKind.TIMED_OUT)
        transport = ScriptedTransport([error])
        coordinator = make_coordinator(recording_sleep)

        with pytest.raises(NetworkError) as excinfo:
            await coordinator.run(lambda: transport.send(REQUEST))

        assert excinfo.value is error
        assert transport.call_count == 4

    @pytest.mark.asyncio
    async def test_non_retryable_network_error_propagates_immediately(self, recording_sleep):
        transport = ScriptedTransport([NetworkError(NetworkErrorKind.OTHER)])
        coordinator = make_coordinator(recording_sleep)

        with pytest.raises(NetworkError):
            await coordinator.run(lambda: transport.send(REQUEST))

        assert transport.call_count == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_retryable_kinds_are_configurable(self, recording_sleep):
        config = NetworkRecoveryConfig(
            retryable_network_errors=frozenset({NetworkErrorKind.OTHER})
        )
        transport = ScriptedTransport(
            [NetworkError(NetworkErrorKind.OTHER), json_response(200, {})]
        )
        coordinator = make_coordinator(recording_sleep, config)

        response = await coordinator.run(lambda: transport.send(REQUEST))

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_other_exceptions_are_not_retried(self, recording_sleep):
        transport = ScriptedTransport([ValueError("bug")])
        coordinator = make_coordinator(recording_sleep)

        with pytest.raises(ValueError):
            await coordinator.run(lambda: transport.send(REQUEST))
        assert transport.call_count == 1


class TestRateLimitPath:
    @pytest.mark.asyncio
    async def test_retry_after_header_sets_delay(self, recording_sleep):
        transport = ScriptedTransport(
            [json_response(429, headers={"Retry-After": "2"}), json_response(200, {})]
        )
        coordinator = make_coordinator(recording_sleep)
        state = RetryState()

        response = await coordinator.run(lambda: transport.send(REQUEST), state)

        assert response.status_code == 200
        assert recording_sleep.delays == [2.0]
        assert state.rate_limit_retries == 1
        assert state.transient_retries == 0

    @pytest.mark.asyncio
    async def test_exhausted_budget_returns_the_429(self, recording_sleep):
        transport = ScriptedTransport([json_response(429, headers={"Retry-After": "2"})])
        coordinator = make_coordinator(recording_sleep, max_rate_limit_retries=1)

        response = await coordinator.run(lambda: transport.send(REQUEST))

        assert response.status_code == 429
        assert transport.call_count == 2
        assert recording_sleep.delays == [2.0]

    @pytest.mark.asyncio
    async def test_missing_retry_after_defaults_to_five_seconds(self, recording_sleep):
        transport = ScriptedTransport([json_response(429), json_response(200, {})])
        coordinator = make_coordinator(recording_sleep)

        await coordinator.run(lambda: transport.send(REQUEST))

        assert recording_sleep.delays == [5.0]

    @pytest.mark.asyncio
    async def test_budgets_are_independent(self, recording_sleep):
        transport = ScriptedTransport(
            [
                json_response(429, headers={"Retry-After": "3"}),
                json_response(503),
                json_response(503),
                json_response(503),
                json_response(200, {}),
            ]
        )
        coordinator = make_coordinator(recording_sleep)
        state = RetryState()

        response = await coordinator.run(lambda: transport.send(REQUEST), state)

        assert response.status_code == 200
        assert state.rate_limit_retries == 1
        assert state.transient_retries == 3
        assert recording_sleep.delays == [3.0, 1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_rate_limit_and_retry_events_are_published(self, recording_sleep):
        events = EventBus()
        subscription = events.subscribe()
        transport = ScriptedTransport(
            [
                json_response(429, headers={"Retry-After": "2", "X-RateLimit-Remaining": "0"}),
                json_response(200, {}),
            ]
        )
        coordinator = make_coordinator(recording_sleep, events=events)

        await coordinator.run(lambda: transport.send(REQUEST), path="/me")

        published = subscription.pending()
        rate_limited = [e for e in published if isinstance(e, RateLimited)]
        retried = [e for e in published if isinstance(e, RequestRetried)]
        assert len(rate_limited) == 1
        assert rate_limited[0].info.path == "/me"
        assert rate_limited[0].info.remaining == 0
        assert rate_limited[0].retry_after == 2.0
        assert retried[0].reason == "rate_limited"


class TestRecoveryConfigValidation:
    def test_defaults(self):
        config = NetworkRecoveryConfig.default()
        assert config.max_network_retries == 3
        assert config.base_delay == 1.0
        assert config.max_delay == 30.0
        assert config.retryable_status_codes == frozenset({500, 502, 503, 504})
        config.validate()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_network_retries": -1},
            {"base_delay": 0},
            {"base_delay": 5.0, "max_delay": 1.0},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            NetworkRecoveryConfig(**kwargs).validate()
