from gatekeeper_core.journal import AttemptJournal


def test_journal_records_and_limits():
    journal = AttemptJournal(max_entries_per_guild=2)
    journal.record("1", "10", "100", "rejected", step="phrase", detail="eligibility")
    journal.record("1", "11", "101", "approved")
    journal.record("1", "10", "102", "approved")

    last = journal.last_for("1", "10")
    assert last is not None
    assert last.outcome == "approved"
    assert last.message_id == "102"
    assert journal.last_for("1", "11").message_id == "101"
    journal.record("1", "12", "103", "approved")
    journal.record("1", "13", "104", "approved")
    # Both entries for author 10 have been trimmed
    assert journal.last_for("1", "10") is None
    assert journal.last_for("2", "10") is None
