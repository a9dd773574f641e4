"""Short QR tokens for stalls and student identities.

Token layout: ``{PREFIX}_{subject}_{issued_at_millis}_{random}`` where the
random part is 8 lowercase hex characters (32 bits from ``secrets``). Tokens
are capped at 50 characters so downstream QR encoders can render them at a
low error-correction version.

Verification is purely structural. Whether a well-formed token is actually
bound to a stall or student is decided by the caller with a lookup on the
stored token, and both failures must be reported the same way.
"""
import enum
import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from time_utils import epoch_millis, from_epoch_millis

TOKEN_MAX_LENGTH = 50
RANDOM_HEX_CHARS = 8
MAX_CLOCK_SKEW_MILLIS = 5 * 60 * 1000

STALL_NUMBER_RE = re.compile(r"^[A-Za-z0-9-]{1,16}$")
REGISTRATION_NO_RE = re.compile(r"^[A-Za-z0-9]{1,20}$")


class TokenKind(enum.Enum):
    STALL = "STALL"
    STUDENT = "STUDENT"


_SUBJECT_PATTERNS = {
    TokenKind.STALL: r"[A-Za-z0-9-]{1,16}",
    TokenKind.STUDENT: r"[A-Za-z0-9]{1,20}",
}

TOKEN_RE = re.compile(
    r"^(?P<kind>STALL|STUDENT)_(?P<subject>[A-Za-z0-9-]{1,20})_(?P<issued>\d{13})_(?P<nonce>[0-9a-f]{%d})$"
    % RANDOM_HEX_CHARS
)


@dataclass(frozen=True)
class TokenCheck:
    valid: bool
    kind: Optional[TokenKind] = None
    subject: Optional[str] = None
    issued_at: Optional[datetime] = None


INVALID = TokenCheck(valid=False)


def _issue(kind: TokenKind, subject: str) -> str:
    token = f"{kind.value}_{subject}_{epoch_millis()}_{secrets.token_hex(RANDOM_HEX_CHARS // 2)}"
    if len(token) > TOKEN_MAX_LENGTH:
        raise ValueError(f"Generated token too long: {len(token)} chars")
    return token


def issue_stall_token(stall_number: str) -> str:
    value = str(stall_number or "").strip()
    if not STALL_NUMBER_RE.match(value):
        raise ValueError("Stall number must be 1-16 letters, digits or dashes")
    return _issue(TokenKind.STALL, value)


def issue_student_token(registration_no: str) -> str:
    value = str(registration_no or "").strip()
    if not REGISTRATION_NO_RE.match(value):
        raise ValueError("Registration number must be 1-20 letters or digits")
    return _issue(TokenKind.STUDENT, value)


def verify_token(token) -> TokenCheck:
    if not isinstance(token, str) or not token or len(token) > TOKEN_MAX_LENGTH:
        return INVALID
    match = TOKEN_RE.match(token)
    if not match:
        return INVALID
    kind = TokenKind(match.group("kind"))
    subject = match.group("subject")
    if not re.fullmatch(_SUBJECT_PATTERNS[kind], subject):
        return INVALID
    issued_millis = int(match.group("issued"))
    if issued_millis > epoch_millis() + MAX_CLOCK_SKEW_MILLIS:
        return INVALID
    try:
        issued_at = from_epoch_millis(issued_millis)
    except (OverflowError, OSError, ValueError):
        return INVALID
    return TokenCheck(valid=True, kind=kind, subject=subject, issued_at=issued_at)


def _verify_kind(token, kind: TokenKind) -> TokenCheck:
    check = verify_token(token)
    if not check.valid or check.kind != kind:
        return INVALID
    return check


def verify_stall_token(token) -> TokenCheck:
    return _verify_kind(token, TokenKind.STALL)


def verify_student_token(token) -> TokenCheck:
    return _verify_kind(token, TokenKind.STUDENT)
