"""Exceptions raised while authorizing a chat member."""


class AuthorizationError(Exception):
    """Base exception for authorization failures.

    `client_message` is the only part of the failure returned to callers.
    """

    client_message = "authorization failed"


class UnknownChatError(AuthorizationError):
    """No agent is bound to the chat."""

    client_message = "unknown chat"


class InvalidChallengeError(AuthorizationError):
    """The challenge cannot be used; subclasses tell why."""

    client_message = "invalid challenge"


class ChallengeNotFoundError(InvalidChallengeError):
    """The challenge was never issued or has been forgotten."""

    pass


class ChallengeAlreadyUsedError(InvalidChallengeError):
    """The challenge was already consumed."""

    pass


class ChallengeExpiredError(InvalidChallengeError):
    """The challenge is past its expiry."""

    pass


class ChallengeContextMismatchError(InvalidChallengeError):
    """The challenge was issued for a different chat or user."""

    pass


class InvalidSignatureError(AuthorizationError):
    """The signature does not prove control of the claimed address."""

    client_message = "invalid signature"


class InsufficientSharesError(AuthorizationError):
    """The user holds fewer shares than the threshold."""

    client_message = "insufficient shares"


class GrantDeliveryFailedError(AuthorizationError):
    """The chat platform did not accept the grant or revoke."""

    client_message = "grant delivery failed"


class ChallengeCapacityError(AuthorizationError):
    """Every slot in the challenge store holds a live challenge."""

    client_message = "too many pending challenges"


class InvalidMemberTokenError(AuthorizationError):
    """The member id on a challenge request is not backed by a valid link token."""

    client_message = "invalid member token"
