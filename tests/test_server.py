#!/usr/bin/env python3
"""
Test TCP subscribers, the ZeroMQ and log sinks and the integrated server
"""
import asyncio
import socket
import unittest

import zmq
import zmq.asyncio

from pinmon.core.broadcaster import Broadcaster
from pinmon.core.config import Config, DEFAULT_STATE_NAMES
from pinmon.core.events import ChangeFormatter, StateChange
from pinmon.core.registry import SubscriberRegistry
from pinmon.core.server import SubscriberServer
from pinmon.core.sinks import LogSink, WebSocketSink, ZMQSink
from pinmon.protocols.gpio import GPIOReader
from pinmon.server import PinMonitorServer


async def wait_until(predicate, timeout=2.0):
    """Poll predicate until it holds or fail after timeout"""
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout=timeout)


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestSubscriberServer(unittest.IsolatedAsyncioTestCase):
    """Test the TCP acceptor"""

    async def asyncSetUp(self):
        self.registry = SubscriberRegistry()
        self.server = SubscriberServer(self.registry, host="127.0.0.1", port=0)
        await self.server.start()
        self.broadcaster = Broadcaster(
            self.registry, ChangeFormatter({5: "Door"}, DEFAULT_STATE_NAMES)
        )

    async def asyncTearDown(self):
        await self.server.stop()

    async def connect(self):
        return await asyncio.open_connection("127.0.0.1", self.server.port)

    async def test_connection_receives_notifications(self):
        """Connected listeners get the plain text line"""
        reader, writer = await self.connect()
        await wait_until(lambda: len(self.registry) == 1)

        await self.broadcaster.broadcast(StateChange(5, 1))
        line = await asyncio.wait_for(reader.readline(), timeout=2)

        self.assertEqual(line, b"Door changed state to on\n")
        writer.close()
        await writer.wait_closed()

    async def test_identity_is_endpoint_pair(self):
        reader, writer = await self.connect()
        await wait_until(lambda: len(self.registry) == 1)

        local, remote = writer.get_extra_info('sockname'), writer.get_extra_info('peername')
        self.assertEqual(
            self.registry.identities(),
            [f"{remote[0]}:{remote[1]} - {local[0]}:{local[1]}"],
        )
        writer.close()
        await writer.wait_closed()

    async def test_disconnect_removes_subscriber(self):
        reader, writer = await self.connect()
        await wait_until(lambda: len(self.registry) == 1)

        writer.close()
        await writer.wait_closed()
        await wait_until(lambda: len(self.registry) == 0)

    async def test_many_subscribers(self):
        """Every connected client receives the same broadcast"""
        clients = [await self.connect() for _ in range(5)]
        await wait_until(lambda: len(self.registry) == 5)

        delivered = await self.broadcaster.broadcast(StateChange(5, 0))
        self.assertEqual(delivered, 5)

        for reader, writer in clients:
            line = await asyncio.wait_for(reader.readline(), timeout=2)
            self.assertEqual(line, b"Door changed state to off\n")
            writer.close()
            await writer.wait_closed()

    async def test_stop_closes_clients(self):
        reader, writer = await self.connect()
        await wait_until(lambda: len(self.registry) == 1)

        await self.server.stop()

        self.assertEqual(len(self.registry), 0)
        self.assertEqual(await asyncio.wait_for(reader.read(), timeout=2), b"")
        writer.close()


class TestStalledSubscriber(unittest.IsolatedAsyncioTestCase):
    """A listener that stops reading must not hold up the others"""

    async def asyncSetUp(self):
        self.registry = SubscriberRegistry()
        self.server = SubscriberServer(self.registry, host="127.0.0.1", port=0, write_timeout=0.5)
        await self.server.start()
        # Large enough to overflow the kernel buffers of a peer that never reads
        self.broadcaster = Broadcaster(
            self.registry, ChangeFormatter({5: "Door" * 250000, 6: "Window"}, DEFAULT_STATE_NAMES)
        )

        self.stalled = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.stalled.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, 4096)
        self.stalled.connect(("127.0.0.1", self.server.port))
        host, port = self.stalled.getsockname()[:2]
        self.stalled_suffix = f" - {host}:{port}"

        self.reader, self.writer = await asyncio.open_connection("127.0.0.1", self.server.port)
        await wait_until(lambda: len(self.registry) == 2)

        self.received = bytearray()
        self.consumer = asyncio.create_task(self.consume())

    async def asyncTearDown(self):
        self.consumer.cancel()
        await asyncio.gather(self.consumer, return_exceptions=True)
        self.writer.close()
        self.stalled.close()
        await asyncio.wait_for(self.server.stop(), timeout=5)

    async def consume(self):
        while True:
            chunk = await self.reader.read(65536)
            if not chunk:
                break
            self.received.extend(chunk)

    def stalled_registered(self):
        return any(identity.endswith(self.stalled_suffix) for identity in self.registry.identities())

    async def test_stalled_subscriber_is_dropped(self):
        """The stalled peer times out, is removed, and the reader keeps receiving"""
        self.assertTrue(self.stalled_registered())

        for _ in range(5):
            await asyncio.wait_for(self.broadcaster.broadcast(StateChange(5, 1)), timeout=5)
            if not self.stalled_registered():
                break

        self.assertFalse(self.stalled_registered())
        self.assertEqual(len(self.registry), 1)
        self.assertGreaterEqual(self.broadcaster.stats['failed'], 1)

        delivered = await asyncio.wait_for(self.broadcaster.broadcast(StateChange(6, 0)), timeout=5)
        self.assertEqual(delivered, 1)
        await wait_until(lambda: self.received.endswith(b"Window changed state to off\n"), timeout=5)

    async def test_new_subscriber_accepted_after_stall(self):
        """Registration is not blocked while the stalled peer is being dropped"""
        for _ in range(5):
            await asyncio.wait_for(self.broadcaster.broadcast(StateChange(5, 1)), timeout=5)
            if not self.stalled_registered():
                break

        reader, writer = await asyncio.wait_for(
            asyncio.open_connection("127.0.0.1", self.server.port), timeout=2
        )
        await wait_until(lambda: len(self.registry) == 2)
        writer.close()
        await writer.wait_closed()


class TestSinks(unittest.IsolatedAsyncioTestCase):
    """Test the log and ZeroMQ sinks"""

    async def test_log_sink(self):
        with self.assertLogs("pinmon.changes", level="INFO") as logs:
            await LogSink().write("Door changed state to on\n")
        self.assertEqual(logs.output, ["INFO:pinmon.changes:Door changed state to on"])

    async def test_websocket_close_is_bounded(self):
        """A peer that never completes the closing handshake cannot hang close()"""
        class HangingSocket:
            closed = False

            async def close(self):
                await asyncio.sleep(10)

        sink = WebSocketSink("ws test", HangingSocket(), write_timeout=0.1)
        await asyncio.wait_for(sink.close(), timeout=2)

    async def test_zmq_sink_publishes(self):
        context = zmq.asyncio.Context()
        sink = ZMQSink("inproc://pinmon-test", context=context)
        sub = context.socket(zmq.SUB)
        sub.setsockopt_string(zmq.SUBSCRIBE, "")
        sub.connect("inproc://pinmon-test")

        received = None
        try:
            # PUB drops messages until the subscription has propagated
            for _ in range(50):
                await sink.write("Door changed state to on\n")
                if await sub.poll(timeout=20):
                    received = await sub.recv_string()
                    break
        finally:
            sub.close(linger=0)
            await sink.close()
            context.term()

        self.assertEqual(received, "Door changed state to on\n")


class TestPinMonitorServer(unittest.IsolatedAsyncioTestCase):
    """Test the integrated daemon"""

    def make_server(self, **overrides):
        options = dict(pin_names={5: "Door", 6: "Window"}, gpio_mode="SIMULATOR", poll_interval_ms=10)
        options.update(overrides)
        config = Config(**options)
        reader = GPIOReader(config)
        return PinMonitorServer(config, reader), reader

    async def test_changes_logged_without_network(self):
        """With no network sink the notifications go to the log"""
        server, reader = self.make_server()
        reader.simulator.script(5, [0, 1])

        with self.assertLogs("pinmon.changes", level="INFO") as logs:
            task = asyncio.create_task(server.start())
            await server.wait_started()
            await wait_until(lambda: server.broadcaster.stats['events'] >= 1)
            await server.stop()
            await asyncio.wait_for(task, timeout=2)

        self.assertEqual(logs.output, ["INFO:pinmon.changes:Door changed state to on"])
        self.assertEqual(server.get_status()['states'], {5: 1, 6: 1})

    async def test_tcp_listener_end_to_end(self):
        port = free_port()
        server, reader = self.make_server(tcp_host="127.0.0.1", tcp_port=port)

        task = asyncio.create_task(server.start())
        await server.wait_started()

        client_reader, client_writer = await asyncio.open_connection("127.0.0.1", port)
        await wait_until(lambda: len(server.registry) == 1)
        await wait_until(lambda: server.sampler.stats['sweeps'] >= 1)

        reader.simulator.set_input(6, 0)
        line = await asyncio.wait_for(client_reader.readline(), timeout=2)
        self.assertEqual(line, b"Window changed state to off\n")

        await server.stop()
        await asyncio.wait_for(task, timeout=2)

        self.assertEqual(await asyncio.wait_for(client_reader.read(), timeout=2), b"")
        client_writer.close()

    async def test_bind_failure_is_fatal(self):
        """An unavailable listen port aborts startup"""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen()
            port = blocker.getsockname()[1]

            server, _ = self.make_server(tcp_host="127.0.0.1", tcp_port=port)
            with self.assertRaises(OSError):
                await server.start()

        self.assertFalse(server.running)


if __name__ == "__main__":
    unittest.main()
