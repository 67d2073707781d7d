from __future__ import annotations

import asyncio
import logging
import random
import time
from collections import Counter

import httpx
import pytest

from kiroku import DeliveryOutcome, Forwarder, ForwarderConfig, LogEvent

from .conftest import ENDPOINT, TOKEN, Backend

BASE_KEYS = {
    'service.name',
    'service.namespace',
    'host.name',
    'cloud.platform',
    'deployment.environment',
}


class TestDisabled:

    @pytest.mark.parametrize('endpoint, token', [
        (None, TOKEN),
        ('', TOKEN),
        (ENDPOINT, None),
        (ENDPOINT, ''),
        (None, None),
    ])
    async def test_no_requests(self, backend, endpoint, token):
        async with backend.client() as client:
            fwd = Forwarder(ForwarderConfig(endpoint=endpoint, api_token=token),
                            client=client)
            for i in range(25):
                await fwd.record(f'event {i}', 'ERROR', {'i': str(i)})
                assert fwd.submit(f'event {i}') is None

        assert not fwd.enabled
        assert backend.requests == []
        assert fwd.stats == Counter()

    async def test_no_event_is_built(self, backend, monkeypatch):
        def boom(*args, **kwargs):
            raise AssertionError('event built while disabled')

        monkeypatch.setattr(LogEvent, 'build', boom)
        monkeypatch.setattr(LogEvent, 'to_json', boom)

        async with backend.client() as client:
            fwd = Forwarder(ForwarderConfig(api_token=TOKEN), client=client)
            await fwd.record('Health check from 10.0.0.1')

    def test_no_client_is_built(self):
        fwd = Forwarder(ForwarderConfig(endpoint=ENDPOINT))
        assert fwd._client is None

    async def test_deliver_reports_disabled(self):
        fwd = Forwarder(ForwarderConfig())
        result = await fwd.deliver(LogEvent('x'))
        assert result.outcome is DeliveryOutcome.DISABLED
        assert result.ok

    def test_enabled_is_fixed_at_construction(self, monkeypatch):
        fwd = Forwarder()
        assert not fwd.enabled

        monkeypatch.setenv('KIROKU_ENDPOINT', ENDPOINT)
        monkeypatch.setenv('KIROKU_API_TOKEN', TOKEN)
        assert not fwd.enabled


class TestRequest:

    async def test_health_check_scenario(self, forwarder, backend, config):
        await forwarder.record('Health check from 10.0.0.1', 'INFO',
                               {'endpoint': '/api/health'})

        assert len(backend.requests) == 1
        request = backend.requests[0]
        assert request.method == 'POST'
        assert str(request.url) == f'{ENDPOINT}/api/v2/logs/ingest'

        body = backend.bodies[0]
        assert body['content'] == 'Health check from 10.0.0.1'
        assert body['severity'] == 'INFO'
        assert body['attributes']['endpoint'] == '/api/health'
        assert BASE_KEYS <= body['attributes'].keys()

    async def test_headers(self, forwarder, backend):
        await forwarder.record('hello')

        headers = backend.requests[0].headers
        assert headers['Authorization'] == f'Api-Token {TOKEN}'
        assert headers['Content-Type'].startswith('application/json')

    async def test_body_field_order(self, forwarder, backend):
        await forwarder.record('hello')

        assert list(backend.bodies[0]) == [
            'content', 'severity', 'timestamp', 'attributes']

    async def test_attributes_are_union(self, forwarder, backend, config):
        await forwarder.record('hello', attributes={
            'endpoint': '/api/health',
            'remote_ip': '10.0.0.1',
        })

        assert backend.bodies[0]['attributes'] == {
            **config.base_attributes(),
            'endpoint': '/api/health',
            'remote_ip': '10.0.0.1',
        }

    async def test_caller_attributes_win(self, forwarder, backend):
        await forwarder.record('hello', attributes={
            'service.name': 'override',
            'deployment.environment': 'staging',
        })

        attrs = backend.bodies[0]['attributes']
        assert attrs['service.name'] == 'override'
        assert attrs['deployment.environment'] == 'staging'
        assert attrs['host.name'] == 'test-host'

    async def test_no_attributes(self, forwarder, backend, config):
        await forwarder.record('hello')
        assert backend.bodies[0]['attributes'] == config.base_attributes()

    async def test_attribute_values_become_strings(self, forwarder, backend):
        await forwarder.record('hello', attributes={'http.status_code': 404})
        assert backend.bodies[0]['attributes']['http.status_code'] == '404'

    @pytest.mark.parametrize('given, sent', [
        ('warn', 'WARN'),
        ('Error', 'ERROR'),
        ('INFO', 'INFO'),
        ('notice', 'NOTICE'),
    ])
    async def test_severity_uppercased(self, forwarder, backend, given, sent):
        await forwarder.record('hello', given)
        assert backend.bodies[0]['severity'] == sent

    async def test_default_severity(self, forwarder, backend):
        await forwarder.record('hello')
        assert backend.bodies[0]['severity'] == 'INFO'

    async def test_empty_message_is_sent(self, forwarder, backend):
        await forwarder.record('')
        assert backend.bodies[0]['content'] == ''

    async def test_timestamp_is_now(self, forwarder, backend):
        before = time.time() * 1000
        await forwarder.record('hello')
        after = time.time() * 1000

        ts = backend.bodies[0]['timestamp']
        assert isinstance(ts, int)
        assert before - 1000 <= ts <= after + 1000

    async def test_sequential_timestamps_do_not_decrease(self, forwarder, backend):
        for i in range(20):
            await forwarder.record(f'event {i}')

        stamps = [b['timestamp'] for b in backend.bodies]
        assert stamps == sorted(stamps)

    async def test_trailing_slash_endpoint(self, config, backend):
        cfg = ForwarderConfig(endpoint=ENDPOINT + '/', api_token=TOKEN)
        async with backend.client() as client:
            await Forwarder(cfg, client=client).record('hello')

        assert str(backend.requests[0].url) == f'{ENDPOINT}/api/v2/logs/ingest'


class TestFailOpen:

    @pytest.mark.parametrize('status', [400, 401, 404, 500, 503])
    async def test_rejected(self, config, caplog, status):
        backend = Backend(status=status)
        async with backend.client() as client:
            fwd = Forwarder(config, client=client)
            assert await fwd.record('hello') is None

        assert fwd.stats['rejected'] == 1
        assert f'Failed to send log: {status}' in caplog.text

    async def test_connection_error(self, config, caplog):
        backend = Backend(error=httpx.ConnectError('Connection refused'))
        async with backend.client() as client:
            fwd = Forwarder(config, client=client)
            await fwd.record('hello')

        assert fwd.stats['transport_error'] == 1
        assert 'Connection refused' in caplog.text

    async def test_transport_timeout(self, config, caplog):
        backend = Backend(error=httpx.ReadTimeout('read timed out'))
        async with backend.client() as client:
            fwd = Forwarder(config, client=client)
            await fwd.record('hello')

        assert fwd.stats['timeout'] == 1
        assert 'timeout' in caplog.text

    async def test_hung_backend_is_bounded(self, caplog):
        cfg = ForwarderConfig(endpoint=ENDPOINT, api_token=TOKEN, timeout=0.2)
        backend = Backend(delay=5)
        async with backend.client() as client:
            fwd = Forwarder(cfg, client=client)

            start = time.perf_counter()
            await fwd.record('hello')
            assert time.perf_counter() - start < 0.2 + 0.5

            # the shared client still works afterwards
            backend.delay = 0
            result = await fwd.deliver(fwd.build_event('again'))

        assert fwd.stats['timeout'] == 1
        assert result.outcome is DeliveryOutcome.DELIVERED
        assert 'No response within 0.2s' in caplog.text

    async def test_unserializable_message(self, forwarder, backend, caplog):
        await forwarder.record(object())

        assert backend.requests == []
        assert forwarder.stats['serialization_error'] == 1
        assert 'serialization_error' in caplog.text

    async def test_bad_attributes(self, forwarder, backend):
        await forwarder.record('hello', attributes=['not', 'a', 'mapping'])
        assert forwarder.submit('hello', attributes=42) is None

        assert backend.requests == []
        assert forwarder.stats['serialization_error'] == 2

    async def test_closed_client(self, config, backend):
        client = backend.client()
        await client.aclose()

        fwd = Forwarder(config, client=client)
        result = await fwd.deliver(fwd.build_event('hello'))
        assert result.outcome is DeliveryOutcome.TRANSPORT_ERROR

    async def test_rejected_result(self, config):
        backend = Backend(status=403, text='Token is missing scope')
        async with backend.client() as client:
            fwd = Forwarder(config, client=client)
            result = await fwd.deliver(fwd.build_event('hello'))

        assert result.failed
        assert result.outcome is DeliveryOutcome.REJECTED
        assert result.status_code == 403
        assert result.detail == 'Token is missing scope'

    async def test_diagnostic_is_redacted_and_internal(self, config, caplog):
        backend = Backend(status=401, text=f'Invalid Api-Token {TOKEN}')
        async with backend.client() as client:
            await Forwarder(config, client=client).record('hello')

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.kiroku_internal is True
        assert record.kiroku['status_code'] == 401
        assert TOKEN not in record.kiroku['detail']
        assert 'Api-Token [REDACTED]' in record.kiroku['detail']

    async def test_success_logs_nothing(self, forwarder, caplog):
        await forwarder.record('hello')

        assert forwarder.stats == Counter(delivered=1)
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


class TestConcurrency:

    async def test_many_concurrent_calls(self):
        timeout = 1.0
        cfg = ForwarderConfig(endpoint=ENDPOINT, api_token=TOKEN, timeout=timeout)
        backend = Backend(delay=lambda _: random.uniform(0, timeout))

        async with backend.client() as client:
            fwd = Forwarder(cfg, client=client)

            start = time.perf_counter()
            await asyncio.gather(*(fwd.record(f'event {i}') for i in range(150)))
            elapsed = time.perf_counter() - start

        assert elapsed < timeout + 0.5
        assert len(backend.requests) == 150
        assert sum(fwd.stats.values()) == 150
        assert set(fwd.stats) <= {'delivered', 'timeout'}

    async def test_hung_call_does_not_delay_others(self):
        cfg = ForwarderConfig(endpoint=ENDPOINT, api_token=TOKEN, timeout=2.0)
        backend = Backend(
            delay=lambda r: 10 if b'"stuck"' in r.content else 0)

        async with backend.client() as client:
            fwd = Forwarder(cfg, client=client)
            stuck = fwd.submit('stuck')

            start = time.perf_counter()
            await asyncio.gather(*(fwd.record(f'fast {i}') for i in range(20)))
            assert time.perf_counter() - start < 0.5
            assert not stuck.done()

            await stuck

        assert fwd.stats == Counter(delivered=20, timeout=1)


class TestSubmit:

    async def test_returns_awaitable_task(self, forwarder, backend):
        task = forwarder.submit('hello', 'warn', {'k': 'v'})

        assert isinstance(task, asyncio.Task)
        assert await task is not None
        assert backend.bodies[0]['severity'] == 'WARN'

    async def test_timestamp_taken_at_submit(self, forwarder, backend):
        before = time.time() * 1000
        task = forwarder.submit('hello')
        await asyncio.sleep(0.3)
        await task

        assert backend.bodies[0]['timestamp'] < before + 250

    def test_without_running_loop(self, config, backend):
        fwd = Forwarder(config, client=backend.client())
        assert fwd.submit('hello') is None
        assert backend.requests == []

    async def test_drain_waits_for_pending(self, config):
        backend = Backend(delay=0.05)
        async with backend.client() as client:
            fwd = Forwarder(config, client=client)
            for i in range(10):
                fwd.submit(f'event {i}')
            await fwd.drain()

        assert len(backend.requests) == 10
        assert fwd.stats['delivered'] == 10

    async def test_drain_cancels_stragglers(self, config, caplog):
        backend = Backend(delay=10)
        async with backend.client() as client:
            fwd = Forwarder(config, client=client)
            task = fwd.submit('hello')
            await fwd.drain(timeout=0.05)

        assert task.cancelled()
        assert 'Abandoned 1 in-flight event(s)' in caplog.text


class TestLifecycle:

    async def test_closes_own_client(self, config):
        async with Forwarder(config) as fwd:
            client = fwd._client
            assert not client.is_closed

        assert client.is_closed

    async def test_leaves_injected_client_open(self, config, backend):
        client = backend.client()
        async with Forwarder(config, client=client):
            pass

        assert not client.is_closed
        await client.aclose()

    async def test_failing_close_is_swallowed(self, config, caplog,
                                              monkeypatch):
        fwd = Forwarder(config)

        async def broken():
            raise RuntimeError('close failed')

        monkeypatch.setattr(fwd._client, 'aclose', broken)
        await fwd.aclose()

        assert 'Failed to close HTTP client' in caplog.text

    async def test_from_env(self, monkeypatch, backend):
        monkeypatch.setenv('DT_ENDPOINT', ENDPOINT)
        monkeypatch.setenv('DT_API_TOKEN', TOKEN)
        monkeypatch.setenv('WEBSITE_SITE_NAME', 'sample-api')

        async with backend.client() as client:
            fwd = Forwarder(client=client)
            await fwd.record('hello')

        assert fwd.enabled
        assert backend.bodies[0]['attributes']['service.name'] == 'sample-api'
