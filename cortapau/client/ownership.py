"""Decides whether a solicitation belongs to the current actor."""
from dataclasses import dataclass
from typing import Optional

from cortapau.client.models import AuthorRef


@dataclass(frozen=True)
class Actor:
    """The signed-in identity as returned by the auth boundary."""
    id: Optional[str] = None
    login: Optional[str] = None
    name: Optional[str] = None


def _normalize_login(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().lower()
    return value or None


def matches_by_id(author: AuthorRef, actor: Actor) -> bool:
    return bool(actor.id) and author.id == actor.id


def matches_by_login(author: AuthorRef, actor: Actor) -> bool:
    """Case-insensitive e-mail/login comparison; missing values never match."""
    actor_login = _normalize_login(actor.login)
    return actor_login is not None and _normalize_login(author.login) == actor_login


def is_owned_by(author: AuthorRef, actor: Optional[Actor]) -> bool:
    """
    Id match or login match; either is sufficient.

    The login check is a fallback for when identifiers are unavailable or
    disagree (e.g. an account recreated on the server).
    """
    if actor is None:
        return False
    return matches_by_id(author, actor) or matches_by_login(author, actor)
