import tempfile
import threading
import time
import unittest
from pathlib import Path

from config.settings import Preference, SettingsStore
from hardware.link_types import ConnectionInfo, LinkError, LinkState, NotConnectedError
from hardware.machine_sync import MachineSynchronizer
from hardware.serial_link import SerialLink, open_transport

from serial_fakes import FakeTransportFactory, Recorder


class SerialLinkTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SettingsStore(Path(self._tmp.name) / "serial-settings.json")
        self.factory = FakeTransportFactory(refuse=["/dev/missing"])
        self.link = SerialLink(self.store, transport_factory=self.factory, discover=lambda: [])
        self.events = Recorder()
        self.lines = Recorder()
        self.link.connection_changes.subscribe(self.events)
        self.link.lines.subscribe(self.lines)

    def tearDown(self):
        self.link.disconnect()
        self._tmp.cleanup()


class TestConnectionLifecycle(SerialLinkTestCase):
    def test_connect_emits_once_and_persists_preference(self):
        info = self.link.connect("/dev/ttyACM0", 57600)
        self.assertEqual(info, ConnectionInfo(connected=True, port="/dev/ttyACM0"))
        self.assertIs(self.link.state, LinkState.CONNECTED)
        self.assertEqual(self.events.items, [info])
        self.assertEqual(self.store.load(), Preference(last_port="/dev/ttyACM0", baud_rate=57600))

    def test_default_baud_rate(self):
        self.link.connect("/dev/ttyACM0")
        self.assertEqual(self.factory.last.baudrate, 115200)

    def test_connect_while_connected_is_idempotent(self):
        first = self.link.connect("/dev/ttyACM0")
        second = self.link.connect("/dev/ttyUSB9")
        self.assertEqual(first, second)
        self.assertEqual(self.factory.attempts, ["/dev/ttyACM0"])
        self.assertEqual(len(self.events.items), 1)

    def test_failed_open_raises_and_stays_disconnected(self):
        with self.assertRaises(LinkError) as ctx:
            self.link.connect("/dev/missing")
        self.assertIsNotNone(ctx.exception.__cause__)
        self.assertIs(self.link.state, LinkState.DISCONNECTED)
        self.assertEqual(self.link.connection_info(), ConnectionInfo(connected=False, port=None))
        self.assertEqual(self.events.items, [])
        self.assertEqual(self.store.load(), Preference())

    def test_empty_port_is_rejected(self):
        with self.assertRaises(LinkError):
            self.link.connect("")

    def test_disconnect_closes_and_emits_once(self):
        self.link.connect("/dev/ttyACM0")
        transport = self.factory.last
        info = self.link.disconnect()
        self.assertEqual(info, ConnectionInfo(connected=False, port=None))
        self.assertEqual(transport.close_calls, 1)
        self.assertEqual(len(self.events.items), 2)
        self.assertFalse(self.events.items[-1].connected)
        self.assertEqual(self.link.disconnect(), info)
        self.assertEqual(len(self.events.items), 2)

    def test_reconnect_after_disconnect_opens_again(self):
        self.link.connect("/dev/ttyACM0")
        self.link.disconnect()
        info = self.link.connect("/dev/ttyACM1")
        self.assertEqual(info.port, "/dev/ttyACM1")
        self.assertEqual(self.factory.attempts, ["/dev/ttyACM0", "/dev/ttyACM1"])

    def test_concurrent_connects_open_once(self):
        results = []
        barrier = threading.Barrier(4)

        def worker():
            barrier.wait()
            results.append(self.link.connect("/dev/ttyACM0"))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=2.0)
        self.assertEqual(self.factory.attempts, ["/dev/ttyACM0"])
        self.assertEqual(len(results), 4)
        self.assertTrue(all(r == results[0] for r in results))
        self.assertEqual(len(self.events.items), 1)


class TestSending(SerialLinkTestCase):
    def test_send_without_connection_fails(self):
        with self.assertRaises(NotConnectedError):
            self.link.send_line("START")

    def test_send_appends_newline(self):
        self.link.connect("/dev/ttyACM0")
        self.link.send_line("START")
        self.link.send_line("C UP")
        self.assertEqual(self.factory.last.written, [b"START\n", b"C UP\n"])

    def test_write_failure_surfaces_as_link_error(self):
        self.link.connect("/dev/ttyACM0")
        self.factory.last.fail_writes = True
        with self.assertRaises(LinkError):
            self.link.send_line("STOP")
        self.assertTrue(self.link.connection_info().connected)

    def test_non_ascii_text_is_rejected_without_writing(self):
        self.link.connect("/dev/ttyACM0")
        with self.assertRaises(LinkError) as ctx:
            self.link.send_line("Start ✓")
        self.assertNotIsInstance(ctx.exception, NotConnectedError)
        self.assertIsInstance(ctx.exception.__cause__, UnicodeEncodeError)
        self.assertEqual(self.factory.last.written, [])
        self.assertTrue(self.link.connection_info().connected)

    def test_connection_is_checked_before_encoding(self):
        with self.assertRaises(NotConnectedError):
            self.link.send_line("Start ✓")


class TestInbound(SerialLinkTestCase):
    def test_lines_are_forwarded_and_status_cached_first(self):
        seen_status = Recorder()
        self.link.lines.subscribe(lambda line: seen_status(self.link.last_status()))
        self.link.connect("/dev/ttyACM0")
        self.assertIsNone(self.link.last_status())

        transport = self.factory.last
        transport.feed(b"finisher ready\r\n\n")
        transport.feed(b"STATUS centralRPM=120 ")
        transport.feed(b"planetRPM=40 state=RUNNING\n")
        self.assertTrue(seen_status.wait_for(2))

        self.assertEqual(self.lines.items, ["finisher ready", "STATUS centralRPM=120 planetRPM=40 state=RUNNING"])
        self.assertEqual(seen_status.items, [None, "STATUS centralRPM=120 planetRPM=40 state=RUNNING"])
        self.assertEqual(self.link.last_status(), "STATUS centralRPM=120 planetRPM=40 state=RUNNING")

    def test_non_status_lines_leave_cache_alone(self):
        self.link.connect("/dev/ttyACM0")
        self.factory.last.feed(b"STATUS state=IDLE\nstatus state=RUNNING\n")
        self.assertTrue(self.lines.wait_for(2))
        self.assertEqual(self.link.last_status(), "STATUS state=IDLE")

    def test_failing_listener_does_not_stop_reader(self):
        def explode(line):
            raise RuntimeError("listener bug")

        self.link.lines.subscribe(explode)
        self.link.connect("/dev/ttyACM0")
        self.factory.last.feed(b"one\ntwo\n")
        self.assertTrue(self.lines.wait_for(2))


class TestUnsolicitedLoss(SerialLinkTestCase):
    def test_read_error_disconnects_with_single_event(self):
        self.link.connect("/dev/ttyACM0")
        transport = self.factory.last
        transport.break_link()
        self.assertTrue(self.events.wait_for(2))
        self.assertEqual(self.events.items[-1], ConnectionInfo(connected=False, port=None))
        self.assertIs(self.link.state, LinkState.DISCONNECTED)
        self.assertGreaterEqual(transport.close_calls, 1)

        self.link.disconnect()
        self.assertEqual(len(self.events.items), 2)
        with self.assertRaises(NotConnectedError):
            self.link.send_line("START")

    def test_can_reconnect_after_loss(self):
        self.link.connect("/dev/ttyACM0")
        self.factory.last.break_link()
        self.assertTrue(self.events.wait_for(2))
        info = self.link.connect("/dev/ttyACM0")
        self.assertTrue(info.connected)
        self.assertEqual(len(self.events.items), 3)


class TestOperationOrdering(unittest.TestCase):
    """Serialized connect/disconnect and single-writer sends."""

    def _link(self, factory):
        link = SerialLink(None, transport_factory=factory, discover=lambda: [])
        self.addCleanup(link.disconnect)
        events = Recorder()
        link.connection_changes.subscribe(events)
        return link, events

    def test_loss_right_after_open_arrives_after_connected(self):
        for _ in range(50):
            link, events = self._link(FakeTransportFactory(break_on_open=True))
            sync = MachineSynchronizer(link)
            sync.attach()
            link.connect("/dev/ttyACM0")
            self.assertTrue(events.wait_for(2))
            self.assertEqual([e.connected for e in events.items], [True, False])
            self.assertFalse(sync.snapshot().connected)
            self.assertFalse(link.connection_info().connected)
            self.assertIs(link.state, LinkState.DISCONNECTED)

    def test_disconnect_waits_for_in_flight_open(self):
        hold = threading.Event()
        factory = FakeTransportFactory(hold=hold)
        link, events = self._link(factory)
        results = {}

        opener = threading.Thread(target=lambda: results.setdefault("connect", link.connect("/dev/ttyACM0")))
        opener.start()
        self.assertTrue(factory.entered.wait(2.0))
        self.assertIs(link.state, LinkState.OPENING)

        closer = threading.Thread(target=lambda: results.setdefault("disconnect", link.disconnect()))
        closer.start()
        closer.join(timeout=0.1)
        self.assertTrue(closer.is_alive())

        hold.set()
        opener.join(timeout=2.0)
        closer.join(timeout=2.0)
        self.assertFalse(opener.is_alive())
        self.assertFalse(closer.is_alive())
        self.assertEqual([e.connected for e in events.items], [True, False])
        self.assertEqual(factory.last.close_calls, 1)
        self.assertEqual(results["disconnect"], ConnectionInfo(connected=False, port=None))
        self.assertIs(link.state, LinkState.DISCONNECTED)

    def test_disconnect_racing_loss_reports_once(self):
        for _ in range(30):
            factory = FakeTransportFactory()
            link, events = self._link(factory)
            link.connect("/dev/ttyACM0")
            factory.last.break_link()
            link.disconnect()
            self.assertTrue(events.wait_for(2))
            time.sleep(0.02)
            self.assertEqual([e.connected for e in events.items], [True, False])
            self.assertIs(link.state, LinkState.DISCONNECTED)

    def test_concurrent_sends_do_not_interleave(self):
        wire = bytearray()
        link, _ = self._link(FakeTransportFactory(wire=wire))
        link.connect("/dev/ttyACM0")
        commands = ["START", "C UP", "P DOWN", "STOP"]
        barrier = threading.Barrier(len(commands))

        def worker(command):
            barrier.wait()
            for _ in range(25):
                link.send_line(command)

        threads = [threading.Thread(target=worker, args=(c,)) for c in commands]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5.0)

        lines = bytes(wire).split(b"\n")
        self.assertEqual(lines[-1], b"")
        self.assertEqual(len(lines) - 1, 100)
        self.assertEqual(set(lines[:-1]), {c.encode("ascii") for c in commands})
        for command in commands:
            self.assertEqual(lines.count(command.encode("ascii")), 25)


class TestLoopbackTransport(unittest.TestCase):
    """End-to-end through pyserial's ``loop://`` handler."""

    def test_written_lines_come_back_as_events(self):
        link = SerialLink(None, transport_factory=open_transport, discover=lambda: [])
        lines = Recorder()
        link.lines.subscribe(lines)
        try:
            info = link.connect("loop://")
            self.assertTrue(info.connected)
            link.send_line("STATUS centralRPM=90 state=RUNNING")
            self.assertTrue(lines.wait_for(1))
            self.assertEqual(lines.items[0], "STATUS centralRPM=90 state=RUNNING")
            self.assertEqual(link.last_status(), "STATUS centralRPM=90 state=RUNNING")
        finally:
            link.disconnect()
        self.assertFalse(link.connection_info().connected)


if __name__ == "__main__":
    unittest.main()
