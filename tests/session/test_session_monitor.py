import unittest

from helix_workbench.session.monitor import SessionMonitor


class _RecordingStore:
    def __init__(self, name: str, journal: list[str]):
        self.name = name
        self.data: object | None = f"{name}-data"
        self._journal = journal

    def clear(self) -> None:
        self.data = None
        self._journal.append(f"clear:{self.name}")


class SessionMonitorTests(unittest.TestCase):
    def test_session_change_clears_every_store_before_listeners_run(self) -> None:
        journal: list[str] = []
        stores = [_RecordingStore("screening", journal), _RecordingStore("phenotype", journal)]
        monitor = SessionMonitor(stores, initial_session_id="s1")

        def listener(new_id, old_id) -> None:
            journal.append(f"listener:{old_id}->{new_id}")
            self.assertEqual("s2", monitor.current_session_id)
            self.assertTrue(all(store.data is None for store in stores))

        monitor.subscribe(listener)

        changed = monitor.set_session_id("s2")

        self.assertTrue(changed)
        self.assertEqual(
            ["clear:screening", "clear:phenotype", "listener:s1->s2"],
            journal,
        )

    def test_same_session_is_not_a_change(self) -> None:
        journal: list[str] = []
        monitor = SessionMonitor([_RecordingStore("screening", journal)], initial_session_id="s1")
        monitor.subscribe(lambda new_id, old_id: journal.append("listener"))

        self.assertFalse(monitor.set_session_id("s1"))
        self.assertEqual([], journal)

    def test_blank_session_id_clears_session(self) -> None:
        journal: list[str] = []
        monitor = SessionMonitor([_RecordingStore("literature", journal)], initial_session_id="s1")
        seen: list[tuple] = []
        monitor.subscribe(lambda new_id, old_id: seen.append((new_id, old_id)))

        self.assertTrue(monitor.set_session_id("   "))

        self.assertIsNone(monitor.current_session_id)
        self.assertEqual([(None, "s1")], seen)
        self.assertEqual(["clear:literature"], journal)

    def test_unsubscribe_stops_notifications(self) -> None:
        monitor = SessionMonitor([])
        seen: list[str | None] = []
        unsubscribe = monitor.subscribe(lambda new_id, old_id: seen.append(new_id))

        monitor.set_session_id("s1")
        unsubscribe()
        monitor.set_session_id("s2")

        self.assertEqual(["s1"], seen)


if __name__ == "__main__":
    unittest.main()
