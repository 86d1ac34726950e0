"""
Cache key derivation.

Every cache key in Goalpost is built here, so the key format lives in one
place. Keys have the shape::

    <namespace>:<resource>:<scope>[:<canonical params>]

where the namespace is ``<prefix>:v<version>`` from settings. List keys end
with a canonical rendering of the endpoint's recognised parameters: every
parameter is present (absent or empty values take a fixed default), pairs
are emitted in sorted name order and values are percent-encoded so that no
value can smuggle in a ``&`` or ``=`` and forge another query's key.

Two parameter mappings that mean the same query therefore produce the same
key regardless of insertion order or omitted defaults, and mappings that
differ in any recognised parameter produce different keys.
"""

from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any
from urllib.parse import quote

KEY_SEP = ":"

# Recognised parameters per list endpoint, with the value used when absent
GOAL_LIST_DEFAULTS: dict[str, str] = {
    "page": "1",
    "limit": "10",
    "status": "all",
    "title": "",
    "from": "",
    "to": "",
    "sort": "createdAt",
    "order": "desc",
}
SUBTASK_LIST_DEFAULTS: dict[str, str] = {"page": "1", "limit": "10"}
REWARD_LIST_DEFAULTS: dict[str, str] = {
    "page": "1",
    "limit": "10",
    "type": "all",
    "status": "all",
}
ANALYTICS_DEFAULTS: dict[str, str] = {"page": "1", "limit": "10"}

_INTEGER_PARAMS = frozenset({"page", "limit"})


def _render_value(name: str, value: Any) -> str:
    """Render one parameter value in its canonical text form."""
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if name in _INTEGER_PARAMS:
        try:
            return str(int(text))
        except ValueError:
            return text
    return text


def canonical_params(params: Mapping[str, Any] | None, defaults: Mapping[str, str]) -> str:
    """
    Render the recognised subset of ``params`` as ``k=v&k=v`` in sorted order.

    Unrecognised names are ignored; absent or empty values fall back to
    ``defaults``.
    """
    params = params or {}
    pairs = []
    for name in sorted(defaults):
        text = _render_value(name, params.get(name))
        if text == "":
            text = defaults[name]
        pairs.append(f"{name}={quote(text, safe='')}")
    return "&".join(pairs)


def _validate_key_component(value: str, name: str) -> str:
    """Reject identifiers containing the key separator.

    Raises:
        ValueError: If value is empty or contains KEY_SEP.
    """
    value = str(value)
    if not value or KEY_SEP in value:
        raise ValueError(
            f"Cache key component {name!r} must be non-empty and not contain {KEY_SEP!r}"
        )
    return value


class CacheKeys:
    """
    Key builders bound to one cache namespace.

    Usage:
        keys = CacheKeys("goalpost:v1")
        keys.goal("8c1e...")                      # goalpost:v1:goal:8c1e...
        keys.goals("u1", {"page": 1, "status": "active"})
    """

    def __init__(self, namespace: str, prefix: str | None = None):
        self.namespace = namespace
        # Unversioned root for keys that must survive a generation bump
        self.prefix = prefix or namespace

    def _join(self, *parts: str) -> str:
        return KEY_SEP.join((self.namespace, *parts))

    # ─── Single Entities ──────────────────────────────────────

    def goal(self, goal_id: str) -> str:
        return self._join("goal", _validate_key_component(goal_id, "goal_id"))

    def reward(self, reward_id: str) -> str:
        return self._join("reward", _validate_key_component(reward_id, "reward_id"))

    def user_profile(self, user_id: str) -> str:
        return self._join("user", _validate_key_component(user_id, "user_id"), "profile")

    # ─── Collections ──────────────────────────────────────────

    def goals(self, user_id: str, params: Mapping[str, Any] | None = None) -> str:
        """Goals list for a user under the given filters/sort/page."""
        return self._join(
            "goals",
            "user",
            _validate_key_component(user_id, "user_id"),
            canonical_params(params, GOAL_LIST_DEFAULTS),
        )

    def subtasks(self, goal_id: str, params: Mapping[str, Any] | None = None) -> str:
        return self._join(
            "subtasks",
            "goal",
            _validate_key_component(goal_id, "goal_id"),
            canonical_params(params, SUBTASK_LIST_DEFAULTS),
        )

    def rewards(self, user_id: str, params: Mapping[str, Any] | None = None) -> str:
        return self._join(
            "rewards",
            "user",
            _validate_key_component(user_id, "user_id"),
            canonical_params(params, REWARD_LIST_DEFAULTS),
        )

    def analytics(
        self,
        user_id: str,
        kind: str = "dashboard",
        params: Mapping[str, Any] | None = None,
    ) -> str:
        """Analytics of a given kind (``dashboard`` or ``full``) for a user."""
        return self._join(
            "analytics",
            _validate_key_component(kind, "kind"),
            "user",
            _validate_key_component(user_id, "user_id"),
            canonical_params(params, ANALYTICS_DEFAULTS),
        )

    # ─── Registry ─────────────────────────────────────────────

    def user_registry(self, user_id: str) -> str:
        """Set holding every list key cached on behalf of a user."""
        return self._join("user", _validate_key_component(user_id, "user_id"), "cache-keys")

    def public_rewards_registry(self) -> str:
        """Set holding every reward list key, whoever it was cached for."""
        return self._join("rewards", "public", "cache-keys")

    def namespace_prefix(self) -> str:
        """Prefix shared by every key of this generation (trailing separator included)."""
        return f"{self.namespace}{KEY_SEP}"

    # ─── Token Denylist ───────────────────────────────────────

    def revoked_token(self, token_id: str) -> str:
        """Marker for a revoked refresh token. Lives outside the versioned namespace."""
        token_id = _validate_key_component(token_id, "token_id")
        return KEY_SEP.join((self.prefix, "revoked", token_id))

    def revoked_prefix(self) -> str:
        return f"{self.prefix}{KEY_SEP}revoked{KEY_SEP}"
