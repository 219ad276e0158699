"""Tests for ownership resolution (id match or login fallback)."""
import pytest
from cortapau.client.models import AuthorRef
from cortapau.client.ownership import Actor, is_owned_by, matches_by_id, matches_by_login

ACTOR = Actor(id="U1", login="a@x.com")


class TestOwnership:

    def test_id_match(self):
        assert is_owned_by(AuthorRef(id="U1", login="b@y.com"), ACTOR)

    def test_login_match_is_case_insensitive(self):
        assert is_owned_by(AuthorRef(id="U2", login="A@X.com"), ACTOR)

    def test_neither_matches(self):
        assert not is_owned_by(AuthorRef(id="U2", login="c@z.com"), ACTOR)

    def test_checks_are_independent(self):
        author = AuthorRef(id="U1", login="A@X.COM ")

        assert matches_by_id(author, ACTOR)
        assert matches_by_login(author, ACTOR)

    @pytest.mark.parametrize("actor", [
        None,
        Actor(),
        Actor(id=None, login="   "),
    ])
    def test_missing_identity_never_matches(self, actor):
        """
        INVARIANT: Absent identifiers on both sides are not a match.
        """
        assert not is_owned_by(AuthorRef(id=None, login=None), actor)

    def test_login_only_actor(self):
        assert is_owned_by(AuthorRef(id="U9", login="a@x.com"), Actor(login="A@x.com"))

    def test_legacy_email_field_is_used_as_login(self):
        author = AuthorRef.from_wire({"id": "U2", "nome": "Ana", "email": "a@x.com"})

        assert author.login == "a@x.com"
        assert is_owned_by(author, ACTOR)
