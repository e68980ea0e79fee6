from codejudge.services.notifier import SubmissionNotifier


def test_notifies_submission_and_global_listeners():
    notifier = SubmissionNotifier()
    received = []
    notifier.subscribe(1, lambda record: received.append(("one", record["verdict"])))
    notifier.subscribe(2, lambda record: received.append(("two", record["verdict"])))
    notifier.subscribe_all(lambda record: received.append(("all", record["id"])))

    assert notifier.notify_complete({"id": 1, "verdict": "accepted"}) == 2
    assert received == [("one", "accepted"), ("all", 1)]


def test_unsubscribe():
    notifier = SubmissionNotifier()
    received = []
    callback = received.append
    notifier.subscribe(7, callback)
    assert notifier.subscriber_count(7) == 1

    notifier.unsubscribe(7, callback)
    assert notifier.subscriber_count(7) == 0
    assert notifier.notify_complete({"id": 7, "verdict": "accepted"}) == 0
    assert received == []


def test_failing_callback_does_not_block_others(caplog):
    notifier = SubmissionNotifier()
    received = []

    def broken(record):
        raise RuntimeError("socket closed")

    notifier.subscribe(3, broken)
    notifier.subscribe(3, received.append)

    assert notifier.notify_complete({"id": 3, "verdict": "wrong_answer"}) == 1
    assert received == [{"id": 3, "verdict": "wrong_answer"}]
    assert "Notification callback for submission 3 failed" in caplog.text
