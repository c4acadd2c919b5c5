"""Tests for the tile request lifecycle."""

import asyncio

import pytest
from PIL import Image

from imagery.config import build_config, validate_options
from imagery.errors import InvalidTileStateError, RequestFailedError, TransportFailure
from imagery.lifecycle import TileRequestLifecycle
from imagery.request import TileRequest, TileRequestState
from imagery.retry import RetryChannel


def _config(**kwargs):
    opts = validate_options(
        {'url': 'made/up/server/', 'styleId': 'test-id', 'accessToken': 'tok', **kwargs}
    )
    return build_config(opts, 'tok')


def _lifecycle(transport, channel=None, request=None, **kwargs):
    request = request or TileRequest(0, 0, 0)
    return TileRequestLifecycle(_config(**kwargs), request, transport, channel or RetryChannel())


class TestTileRequestLifecycle:
    """Tests for TileRequestLifecycle."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, make_transport):
        transport = make_transport()
        lifecycle = _lifecycle(transport)
        image = await lifecycle.run()
        req = lifecycle.request
        assert isinstance(image, Image.Image)
        assert req.state is TileRequestState.RECEIVED
        assert req.attempt_count == 1
        assert req.image is image
        assert transport.calls == [
            ('made/up/server/mapbox/test-id/tiles/512/0/0/0?access_token=tok', None)
        ]

    @pytest.mark.asyncio
    async def test_retry_twice_then_succeed(self, make_transport, failure):
        """Two failures with retry granted, then success: three attempts."""
        transport = make_transport([failure(500), failure(None)])
        channel = RetryChannel()
        observed = []

        def observer(decision):
            observed.append(decision.times_retried)
            if decision.times_retried < 2:
                decision.retry = True

        channel.add_observer(observer)
        lifecycle = _lifecycle(transport, channel)
        await lifecycle.run()
        assert observed == [0, 1]
        assert len(transport.calls) == 3
        assert lifecycle.request.attempt_count == 3
        assert lifecycle.request.state is TileRequestState.RECEIVED

    @pytest.mark.asyncio
    async def test_no_observer_fails_fast(self, make_transport, failure):
        cause = failure(503)
        transport = make_transport([cause])
        lifecycle = _lifecycle(transport)
        with pytest.raises(RequestFailedError) as exc_info:
            await lifecycle.run()
        assert exc_info.value.__cause__ is cause
        assert exc_info.value.attempts == 1
        assert len(transport.calls) == 1
        assert lifecycle.request.state is TileRequestState.FAILED
        assert lifecycle.request.error is cause

    @pytest.mark.asyncio
    async def test_observer_declines(self, make_transport, failure):
        transport = make_transport([failure(500)])
        channel = RetryChannel()
        seen = []
        channel.add_observer(lambda d: seen.append(d.retry))
        with pytest.raises(RequestFailedError):
            await _lifecycle(transport, channel).run()
        assert seen == [False]
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_unbounded_retries(self, make_transport, failure):
        """Without a cap every granted retry is honoured."""
        transport = make_transport([failure(500)] * 25)
        channel = RetryChannel()

        def always(decision):
            decision.retry = True

        channel.add_observer(always)
        lifecycle = _lifecycle(transport, channel)
        await lifecycle.run()
        assert lifecycle.request.attempt_count == 26

    @pytest.mark.asyncio
    async def test_retry_cap(self, make_transport, failure):
        transport = make_transport([failure(500)] * 10)
        channel = RetryChannel()

        def always(decision):
            decision.retry = True

        channel.add_observer(always)
        lifecycle = _lifecycle(transport, channel, maxRetries=2)
        with pytest.raises(RequestFailedError):
            await lifecycle.run()
        assert len(transport.calls) == 3

    @pytest.mark.asyncio
    async def test_non_transport_error_goes_through_channel(self, make_transport):
        transport = make_transport([ValueError('bad image')])
        channel = RetryChannel()
        errors = []
        channel.add_observer(lambda d: errors.append(d.error))
        with pytest.raises(RequestFailedError):
            await _lifecycle(transport, channel).run()
        assert isinstance(errors[0], ValueError)

    @pytest.mark.asyncio
    async def test_delay_before_retry(self, make_transport, failure, monkeypatch):
        transport = make_transport([failure(429)])
        channel = RetryChannel()
        sleeps = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay):
            sleeps.append(delay)
            await real_sleep(0)

        monkeypatch.setattr('imagery.lifecycle.asyncio.sleep', fake_sleep)

        def grant(decision):
            decision.retry = True
            decision.delay = 0.5

        channel.add_observer(grant)
        await _lifecycle(transport, channel).run()
        assert sleeps == [0.5]
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_released_request_is_not_retried(self, make_transport, failure):
        request = TileRequest(0, 0, 0)
        request.add_reference()
        transport = make_transport([failure(500), failure(500)])
        channel = RetryChannel()

        def release_and_grant(decision):
            request.release_reference()
            decision.retry = True

        channel.add_observer(release_and_grant)
        with pytest.raises(RequestFailedError):
            await _lifecycle(transport, channel, request=request).run()
        assert len(transport.calls) == 1
        assert request.state is TileRequestState.FAILED

    @pytest.mark.asyncio
    async def test_in_flight_attempt_completes_after_release(self, make_transport):
        """Releasing during an attempt does not abort it."""
        request = TileRequest(0, 0, 0)
        request.add_reference()
        gate = asyncio.Event()

        class SlowTransport:
            calls = 0

            async def fetch(self, url, *, headers=None):
                SlowTransport.calls += 1
                await gate.wait()
                return Image.new('RGB', (4, 4))

        task = asyncio.create_task(
            _lifecycle(SlowTransport(), request=request).run()
        )
        await asyncio.sleep(0)
        assert request.state is TileRequestState.IN_FLIGHT
        request.release_reference()
        gate.set()
        await task
        assert request.state is TileRequestState.RECEIVED

    @pytest.mark.asyncio
    async def test_attempts_are_sequential(self, failure):
        """The next attempt starts only after the previous one finished."""
        active = 0
        peak = 0
        outcomes = [failure(500), failure(500)]

        class TrackingTransport:
            async def fetch(self, url, *, headers=None):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0)
                active -= 1
                if outcomes:
                    raise outcomes.pop(0)
                return Image.new('RGB', (4, 4))

        channel = RetryChannel()

        def grant(decision):
            decision.retry = True

        channel.add_observer(grant)
        await _lifecycle(TrackingTransport(), channel).run()
        assert peak == 1

    @pytest.mark.asyncio
    async def test_settled_request_cannot_be_reissued(self, make_transport):
        lifecycle = _lifecycle(make_transport())
        await lifecycle.run()
        with pytest.raises(InvalidTileStateError):
            await lifecycle.run()
        with pytest.raises(InvalidTileStateError):
            _lifecycle(make_transport(), request=lifecycle.request)

    def test_request_owned_by_single_lifecycle(self, make_transport):
        request = TileRequest(1, 2, 3)
        _lifecycle(make_transport(), request=request)
        with pytest.raises(InvalidTileStateError):
            _lifecycle(make_transport(), request=request)

    @pytest.mark.asyncio
    async def test_cancellation_fails_request(self):
        started = asyncio.Event()

        class HangingTransport:
            async def fetch(self, url, *, headers=None):
                started.set()
                await asyncio.Event().wait()

        lifecycle = _lifecycle(HangingTransport())
        task = asyncio.create_task(lifecycle.run())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert lifecycle.request.state is TileRequestState.FAILED

    @pytest.mark.asyncio
    async def test_negative_coordinate_fails_request(self, make_transport):
        """A URL that cannot be built ends in FAILED, not IN_FLIGHT."""
        transport = make_transport()
        lifecycle = _lifecycle(transport, request=TileRequest(0, -1, 0))
        with pytest.raises(RequestFailedError) as exc_info:
            await lifecycle.run()
        req = lifecycle.request
        assert req.state is TileRequestState.FAILED
        assert req.settled
        assert isinstance(req.error, ValueError)
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_headers_forwarded(self, make_transport):
        from imagery.resource import Resource

        transport = make_transport()
        resource = Resource(url='made/up/server', headers={'X-Test': '1'})
        await _lifecycle(transport, url=resource).run()
        assert transport.calls[0][1] == {'X-Test': '1'}

    @pytest.mark.asyncio
    async def test_independent_requests(self, make_transport, failure):
        """A failure of one tile does not affect another."""
        failing = _lifecycle(make_transport([failure(500)]), request=TileRequest(1, 0, 0))
        ok = _lifecycle(make_transport(), request=TileRequest(1, 1, 0))
        results = await asyncio.gather(failing.run(), ok.run(), return_exceptions=True)
        assert isinstance(results[0], RequestFailedError)
        assert isinstance(results[1], Image.Image)
        assert ok.request.state is TileRequestState.RECEIVED


def test_transport_failure_retryable():
    assert TransportFailure('x').retryable is True
    assert TransportFailure('x', status=429).retryable is True
    assert TransportFailure('x', status=502).retryable is True
    assert TransportFailure('x', status=401).retryable is False
    assert TransportFailure('x', status=404).retryable is False
