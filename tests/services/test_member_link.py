import pytest

from app.services.authorization.member_link import (
    MemberLinkSigner,
    build_member_link_signer,
)

CHAT = "-100200"


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def signer(clock):
    return MemberLinkSigner("link-secret", ttl_seconds=60, clock=clock)


def test_token_verifies_for_its_chat_and_member(signer):
    token = signer.sign(CHAT, "777")

    assert token.startswith("1060.")
    assert signer.verify(CHAT, "777", token)
    assert signer.verify(CHAT, 777, token)


@pytest.mark.parametrize("chat,member", [(CHAT, "778"), ("-100201", "777")])
def test_token_is_bound_to_chat_and_member(signer, chat, member):
    assert not signer.verify(chat, member, signer.sign(CHAT, "777"))


def test_expired_token(signer, clock):
    token = signer.sign(CHAT, "777")
    clock.now += 59
    assert signer.verify(CHAT, "777", token)
    clock.now += 1
    assert not signer.verify(CHAT, "777", token)


def test_other_secret_rejected(signer, clock):
    forged = MemberLinkSigner("guess", ttl_seconds=60, clock=clock).sign(CHAT, "777")
    assert not signer.verify(CHAT, "777", forged)


def test_extended_expiry_rejected(signer):
    _, _, digest = signer.sign(CHAT, "777").partition(".")
    assert not signer.verify(CHAT, "777", f"999999999.{digest}")


@pytest.mark.parametrize("token", [None, "", "abc", "notanumber.deadbeef", "1060.é"])
def test_malformed_tokens(signer, token):
    assert not signer.verify(CHAT, "777", token)


def test_empty_secret_rejected():
    with pytest.raises(ValueError):
        MemberLinkSigner("")


def test_build_without_secret_returns_none():
    assert build_member_link_signer("") is None
    assert isinstance(build_member_link_signer("s", 30), MemberLinkSigner)
