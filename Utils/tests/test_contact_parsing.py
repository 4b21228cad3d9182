# Utils/tests/test_contact_parsing.py
# Contact value extraction and personal/work categorisation.

from Utils.contact_parsing import (
    categorize_contacts,
    clean_values,
    extract_emails,
    extract_phones,
    is_masked,
)


def test_categorize_splits_personal_and_work():
    result = categorize_contacts(
        ["jane@gmail.com", "jane@acme.com", "j.doe@acme.com", "jd@yahoo.com"],
        ["+14155551234", "+14155550000"],
    )
    assert result.personal_email == "jane@gmail.com"
    assert result.other_personal_emails == "jd@yahoo.com"
    assert result.work_email == "jane@acme.com"
    assert result.other_work_emails == "j.doe@acme.com"
    assert result.work_email_status == "Found"
    assert result.phone_number == "+14155551234"
    assert result.other_phone_numbers == "+14155550000"


def test_categorize_personal_only_marks_work_not_found():
    result = categorize_contacts(["someone@GMAIL.com"], [])
    assert result.personal_email == "someone@GMAIL.com"
    assert result.work_email == ""
    assert result.work_email_status == "Not Found"
    assert result.found_anything


def test_categorize_nothing_found():
    result = categorize_contacts([], [])
    assert not result.found_anything
    assert result.work_email_status == "Not Found"
    assert result.phone_number == ""


def test_categorize_drops_masked_phones():
    result = categorize_contacts([], ["+1 415 ***", "+14155551234"])
    assert result.phone_number == "+14155551234"
    assert result.other_phone_numbers == ""


def test_fallback_regex_recovers_email_and_phone():
    text = "Jane Doe\nAcme Inc\njane.doe@corp.io\nMobile: +14155551234\n"
    assert extract_emails(text) == ["jane.doe@corp.io"]
    assert extract_phones(text) == ["+14155551234"]


def test_masked_phone_never_extracted():
    text = "Phone: +1415555**** / 415•••1234"
    assert extract_phones(text) == []


def test_is_masked():
    assert is_masked("+1 (415) ***-1234")
    assert is_masked("415•••1234")
    assert not is_masked("+14155551234")


def test_clean_values_dedupes_in_order():
    assert clean_values([" a@x.com", "", "b@x.com", "a@x.com ", None]) == ["a@x.com", "b@x.com"]


def test_extract_on_empty_text():
    assert extract_emails("") == []
    assert extract_phones("") == []
