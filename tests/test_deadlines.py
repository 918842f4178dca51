from quietdrop.deadlines import Deadline, DeadlineStore


def test_empty_store():
    s = DeadlineStore()
    assert len(s) == 0
    assert s.peek_earliest() is None
    assert s.pop_earliest() is None


def test_set_overwrites_key():
    s = DeadlineStore()
    s.set("a", 10.0)
    s.set("a", 5.0)
    assert len(s) == 1
    assert s.peek_earliest() == Deadline("a", 5.0)


def test_earliest_is_by_deadline_not_insertion():
    s = DeadlineStore()
    s.set("late", 30.0)
    s.set("early", 10.0)
    s.set("middle", 20.0)
    assert [s.pop_earliest().key for _ in range(3)] == ["early", "middle", "late"]
    assert s.pop_earliest() is None


def test_peek_does_not_mutate():
    s = DeadlineStore()
    s.set("a", 1.0)
    assert s.peek_earliest() == s.peek_earliest()
    assert "a" in s


def test_ties_break_on_key():
    s = DeadlineStore()
    s.set("b", 1.0)
    s.set("a", 1.0)
    assert s.pop_earliest() == Deadline("a", 1.0)
    assert s.pop_earliest() == Deadline("b", 1.0)
