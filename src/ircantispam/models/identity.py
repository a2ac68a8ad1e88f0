"""Chat participant identity."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from ircantispam.models.enums import BanFacet


class Identity(BaseModel):
    """A participant as seen on the wire.

    Up to three facets are known: the display handle (``nick``), the
    account/ident token (``user``) and the origin ``host``.  Two events for
    the same person may carry different facets (a cloaked host, a missing
    ident), so every facet is handled on its own.
    """

    model_config = ConfigDict(frozen=True)

    nick: str
    user: str | None = None
    host: str | None = None

    @classmethod
    def from_prefix(cls, prefix: str) -> Identity:
        """Parse an IRC source prefix such as ``nick!~user@host``.

        A bare ``nick`` or ``nick@host`` is accepted as well.
        """
        nick, _, rest = prefix.partition("!")
        user: str | None = None
        host: str | None = None
        if rest:
            user, _, host_part = rest.partition("@")
            host = host_part or None
        elif "@" in nick:
            nick, _, host_part = nick.partition("@")
            host = host_part or None
        return cls(nick=nick, user=user or None, host=host)

    @property
    def account(self) -> str | None:
        """The ident token with the unverified-ident ``~`` marker removed."""
        if not self.user:
            return None
        return self.user.lstrip("~") or None

    def facet(self, facet: BanFacet) -> str | None:
        """Return the value for *facet*, or ``None`` when it is unknown."""
        if facet is BanFacet.NICK:
            return self.nick
        if facet is BanFacet.ACCOUNT:
            return self.account
        return self.host

    def masks(self) -> list[str]:
        """Ban masks for every known facet, in nick, account, host order.

        Access lists store and compare these masks, so a value only ever
        matches in its own dimension: an ident of ``~alice`` gives
        ``*!alice@*`` and never matches the nick entry ``alice!*@*``.
        """
        masks = [self.ban_mask(f) for f in BanFacet]
        return [m for m in masks if m]

    def ban_mask(self, facet: BanFacet) -> str | None:
        """Ban mask matching this identity on *facet* only.

        Returns ``None`` when the facet cannot be resolved.
        """
        value = self.facet(facet)
        if not value:
            return None
        if facet is BanFacet.NICK:
            return f"{value}!*@*"
        if facet is BanFacet.ACCOUNT:
            return f"*!{value}@*"
        return f"*!*@{value}"

    def __str__(self) -> str:
        if self.user is None and self.host is None:
            return self.nick
        return f"{self.nick}!{self.user or '*'}@{self.host or '*'}"


def as_mask(entry: str) -> str:
    """Normalize an access-list entry.

    Entries containing ``!`` or ``@`` are taken as masks verbatim.  A bare
    value is a nick and becomes ``nick!*@*``.
    """
    if "!" in entry or "@" in entry:
        return entry
    return f"{entry}!*@*"
