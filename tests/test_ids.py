import pytest
from hypothesis import given
from hypothesis import strategies as st

from forgeclaw.ids import (
    ChannelId,
    ContainerId,
    DispatchId,
    GroupId,
    IdError,
    JobId,
    PoolId,
    ProviderId,
    TaskId,
)


def test_display_shows_inner_string():
    assert str(GroupId("my-group")) == "my-group"


def test_from_string_and_value_roundtrip():
    original = "test-id-123"
    assert ContainerId(original).value == original


def test_from_str_ref():
    assert ProviderId("anthropic").value == "anthropic"


def test_equality_and_hash():
    a = ChannelId("discord")
    b = ChannelId("discord")
    c = ChannelId("telegram")
    assert a == b
    assert a != c
    seen = {a}
    assert b in seen
    assert c not in seen


def test_different_kinds_are_not_equal():
    assert GroupId("x") != ContainerId("x")


def test_serialised_roundtrip():
    job = JobId("job-42")
    assert JobId.parse(str(job)) == job


def test_parse_rejects_empty_string():
    with pytest.raises(IdError) as info:
        GroupId.parse("")
    assert "empty" in str(info.value)


def test_parse_rejects_whitespace_only():
    with pytest.raises(IdError):
        ContainerId.parse("   ")


def test_new_accepts_valid_string():
    assert GroupId.parse("my-group").value == "my-group"


def test_new_rejects_empty_string_reason():
    with pytest.raises(IdError) as info:
        GroupId.parse("")
    assert "empty" in info.value.reason


def test_new_rejects_whitespace_only_reason():
    with pytest.raises(IdError) as info:
        ContainerId.parse("   ")
    assert "empty" in info.value.reason


def test_new_rejects_tab_only():
    with pytest.raises(IdError) as info:
        ProviderId.parse("\t\n")
    assert "empty" in info.value.reason


def test_new_preserves_leading_trailing_whitespace():
    assert ChannelId.parse("  discord  ").value == "  discord  "


def test_id_error_display():
    with pytest.raises(IdError) as info:
        GroupId.parse("")
    assert str(info.value) == "invalid identifier: GroupId cannot be empty or whitespace-only"


def test_id_error_names_kind():
    with pytest.raises(IdError) as info:
        PoolId.parse(" ")
    assert info.value.reason == "PoolId cannot be empty or whitespace-only"


def test_parse_returns_subclass():
    parsed = TaskId.parse("t-1")
    assert type(parsed) is TaskId
    assert parsed == TaskId("t-1")


@given(s=st.text())
def test_ids_roundtrip(s):
    idents = [
        GroupId(s),
        ContainerId(s),
        ProviderId(s),
        ChannelId(s),
        JobId(s),
        TaskId(s),
        DispatchId(s),
        PoolId(s),
    ]
    for ident in idents:
        assert ident.value == s
        assert str(ident) == s


@given(s=st.from_regex(r"\s*", fullmatch=True))
def test_validated_rejects_empty_and_whitespace(s):
    with pytest.raises(IdError):
        GroupId.parse(s)


@given(s=st.from_regex(r".+\S.+", fullmatch=True))
def test_validated_accepts_non_whitespace(s):
    assert GroupId.parse(s).value == s