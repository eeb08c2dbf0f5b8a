from toplevel.failures import CRITICAL_FAIL_THRESHOLD, FAILURE_WINDOW, FailureTracker
from toplevel.process import ServiceIdentity

FRONTEND = ServiceIdentity.FRONTEND
BACKEND = ServiceIdentity.BACKEND


def test_first_exit_never_trips():
    tracker = FailureTracker()
    assert tracker.record_exit(FRONTEND, 0.0) is False
    assert tracker.tally(FRONTEND) == [0.0]


def test_fifth_exit_within_window_trips():
    tracker = FailureTracker()
    results = [tracker.record_exit(BACKEND, t) for t in (0.0, 2.0, 4.0, 6.0, 8.0)]
    assert results == [False, False, False, False, True]


def test_sparse_exits_never_trip():
    tracker = FailureTracker()
    for i in range(50):
        assert tracker.record_exit(FRONTEND, i * (FAILURE_WINDOW + 1)) is False
    assert len(tracker.tally(FRONTEND)) == 1


def test_identities_are_isolated():
    tracker = FailureTracker()
    for i in range(CRITICAL_FAIL_THRESHOLD - 1):
        assert tracker.record_exit(FRONTEND, float(i)) is False
        assert tracker.record_exit(BACKEND, float(i)) is False
    assert len(tracker.tally(FRONTEND)) == 4
    assert len(tracker.tally(BACKEND)) == 4


def test_old_entries_are_pruned():
    tracker = FailureTracker()
    for t in (0.0, 1.0, 2.0, 3.0):
        tracker.record_exit(FRONTEND, t)

    # The first four exits fell out of the window
    assert tracker.record_exit(FRONTEND, 100.0) is False
    assert tracker.tally(FRONTEND) == [100.0]


def test_entry_exactly_at_window_edge_is_kept():
    tracker = FailureTracker(window=10.0, threshold=2)
    tracker.record_exit(FRONTEND, 0.0)
    assert tracker.record_exit(FRONTEND, 10.0) is True


def test_tally_keeps_growing_past_threshold_inside_window():
    tracker = FailureTracker(threshold=3)
    assert [tracker.record_exit(BACKEND, t) for t in (0.0, 1.0, 2.0, 3.0)] == [False, False, True, True]


def test_unknown_identity_has_empty_tally():
    assert FailureTracker().tally(BACKEND) == []
