import unittest

from vc_commit_planner.execution.backoff import Backoff


class TestBackoff(unittest.TestCase):
    def test_waits_fixed_delay(self) -> None:
        delays = []
        backoff = Backoff(0.25, sleep=delays.append)
        backoff.wait(1)
        backoff.wait(2)
        self.assertEqual(delays, [0.25, 0.25])
        self.assertEqual(backoff.waits, [0.25, 0.25])
        self.assertEqual(backoff.delay_for(5), 0.25)

    def test_zero_or_negative_delay_does_not_sleep(self) -> None:
        delays = []
        for value in (0, -3):
            backoff = Backoff(value, sleep=delays.append)
            backoff.wait(1)
            self.assertEqual(backoff.waits, [0.0])
        self.assertEqual(delays, [])


if __name__ == "__main__":
    unittest.main()
