# app/highfives/errors.py
from app.common.exceptions import ServiceError


class AlreadyInSession(ServiceError):
    code = "ALREADY_IN_SESSION"
    default_message = "Cannot connect: One of the users is already in another session"
    http_status = 409


class NotReady(ServiceError):
    code = "NOT_READY"
    default_message = "You need to be ready first!"
    http_status = 409

    @classmethod
    def for_side(cls, self_ready: bool, partner_ready: bool):
        if not self_ready:
            return cls("You need to be ready first!", side="self")
        return cls("Your friend needs to be ready!", side="partner")


class TooSlow(ServiceError):
    code = "TOO_SLOW"
    default_message = "Too slow! Try again!"
    http_status = 409


class NoResponse(ServiceError):
    code = "NO_RESPONSE"
    default_message = "High five expired!"
    http_status = 409


class SessionNotFound(ServiceError):
    code = "SESSION_NOT_FOUND"
    default_message = "session not found"
    http_status = 404


class AttemptNotFound(ServiceError):
    code = "ATTEMPT_NOT_FOUND"
    default_message = "high five not found"
    http_status = 404


class NotParticipant(ServiceError):
    code = "NOT_PARTICIPANT"
    default_message = "not your session"
    http_status = 403


class AttemptClosed(ServiceError):
    code = "ATTEMPT_CLOSED"
    default_message = "This high five is already over"
    http_status = 409


class InvalidPartner(ServiceError):
    code = "INVALID_PARTNER"
    default_message = "cannot high five yourself"
