from classquiz.core.email_validation import is_valid_email, normalize_email, validate_emails


def test_normalize_email_trims_and_lowercases():
    assert normalize_email("  Ana.Lopez@School.EDU ") == "ana.lopez@school.edu"


def test_valid_batch_has_no_errors():
    assert validate_emails(["ana@school.edu", "ben@school.edu"]) == []


def test_blank_entries_are_ignored_and_positions_skip_them():
    errors = validate_emails(["ana@school.edu", "", "   ", "bad", "x@y"])

    assert errors == [
        'Email 2: "bad" is not a valid email address',
        'Email 3: "x@y" is not a valid email address',
    ]


def test_duplicates_are_listed_once():
    errors = validate_emails(["a@b.com", "c@d.com", "a@b.com", "a@b.com", "c@d.com"])

    assert errors == ["Duplicate emails found: a@b.com, c@d.com"]


def test_existing_members_are_reported():
    errors = validate_emails(["a@b.com", "new@b.com"], existing_emails=["a@b.com", "z@b.com"])

    assert errors == ["These emails are already in the class: a@b.com"]


def test_all_problem_kinds_are_reported_together():
    errors = validate_emails(["oops", "a@b.com", "a@b.com"], existing_emails=["a@b.com"])

    assert len(errors) == 3
    assert errors[0].startswith("Email 1:")
    assert errors[1] == "Duplicate emails found: a@b.com"
    assert errors[2] == "These emails are already in the class: a@b.com"


def test_is_valid_email_rejects_whitespace_and_missing_parts():
    assert is_valid_email("first.last@sub.school.edu")
    assert not is_valid_email("first last@school.edu")
    assert not is_valid_email("@school.edu")
    assert not is_valid_email("ana@school")
