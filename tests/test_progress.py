from strata.media.progress import ProgressWindow


def _window(**kwargs):
    return ProgressWindow(clock=lambda: 0.0, **kwargs)


def test_rate_and_eta_from_two_samples():
    window = _window(total=1_000_000)
    window.add_sample(0, now=0)
    window.add_sample(100_000, now=1000)

    assert window.rate(now=1000) == 100
    assert window.eta_ms(now=1000) == 9000


def test_old_samples_leave_the_window():
    window = _window(total=1_000_000, window_ms=5000)
    window.add_sample(0, now=0)
    window.add_sample(500_000, now=1000)  # burst
    window.add_sample(510_000, now=6500)
    window.add_sample(520_000, now=7000)

    # Only the samples within the last 5 s count: 10 000 bytes over 500 ms.
    assert window.rate(now=7000) == 20


def test_single_sample_falls_back_to_average_since_start():
    window = _window(total=1000)
    window.add_sample(200, now=100)
    assert window.rate(now=400) == 0.5


def test_eta_unknown_without_total_or_rate():
    assert _window().eta_ms() is None
    window = _window(total=100)
    window.add_sample(0, now=0)
    assert window.eta_ms(now=0) is None


def test_reports_are_debounced_but_first_and_last_always_pass():
    window = _window(total=10, interval_ms=800)
    assert window.should_report(now=0) is True
    assert window.should_report(now=300) is False
    assert window.should_report(now=799) is False
    assert window.should_report(now=800) is True
    assert window.should_report(now=900, is_last=True) is True


def test_snapshot_percent():
    window = _window(total=200)
    window.add_sample(50, now=10)
    assert window.snapshot(now=10).percent == 25.0
    assert _window().snapshot().percent is None
