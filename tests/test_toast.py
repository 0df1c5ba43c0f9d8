from services.overlays.toast import ToastQueue


def _queue(scheduler, changes=None):
    return ToastQueue(
        scheduler,
        dwell_seconds=8.0,
        dedup_window_seconds=30.0,
        on_change=(changes.append if changes is not None else None),
    )


def test_single_visible_item_in_fifo_order(scheduler):
    queue = _queue(scheduler)
    assert queue.offer("1", "first")
    assert queue.offer("2", "second")

    assert queue.current.text == "first"
    assert [item.text for item in queue.pending] == ["second"]

    scheduler.advance(7.0)
    assert queue.current.text == "first"

    scheduler.advance(1.0)
    assert queue.current.text == "second"

    scheduler.advance(8.0)
    assert queue.current is None


def test_duplicate_text_within_window_is_shown_once(scheduler):
    queue = _queue(scheduler)
    assert queue.offer("1", "Hello")
    assert not queue.offer("2", "Hello")  # visible

    scheduler.advance(20.0)
    assert queue.current is None
    assert not queue.offer("3", "Hello")  # shown 20s ago

    scheduler.advance(10.0)
    assert queue.offer("4", "Hello")
    assert queue.current.id == "4"
    assert queue.suppressed == 2


def test_pending_duplicate_is_rejected(scheduler):
    queue = _queue(scheduler)
    queue.offer("1", "a")
    queue.offer("2", "b")
    assert not queue.offer("3", "b")
    assert not queue.offer("4", "   ")


def test_clear_drops_everything_and_forgets_history(scheduler):
    changes = []
    queue = _queue(scheduler, changes)
    queue.offer("1", "a")
    queue.offer("2", "b")

    queue.clear()
    assert queue.current is None
    assert queue.pending == []
    assert scheduler.pending("toast") == []
    assert changes[-1] is None

    assert queue.offer("3", "a")
